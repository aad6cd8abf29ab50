from __future__ import annotations
"""Current-folder state for one browsing session."""
from .keys import DELIMITER, compose_key, ensure_folder_prefix, parent_prefix


class PathState:
    """Tracks the folder prefix a browsing session is scoped to.

    The current path is either empty (bucket root) or ends with ``/``.
    """

    def __init__(self, prefix: str = ""):
        self._prefix = ensure_folder_prefix(prefix)

    @property
    def current(self) -> str:
        return self._prefix

    @property
    def is_root(self) -> bool:
        return not self._prefix

    def navigate(self, prefix: str) -> str:
        self._prefix = ensure_folder_prefix(prefix)
        return self._prefix

    def enter(self, folder_name: str) -> str:
        return self.navigate(self.resolve(folder_name.strip().strip(DELIMITER)))

    def up(self) -> str:
        self._prefix = parent_prefix(self._prefix)
        return self._prefix

    def resolve(self, name: str) -> str:
        """Return the full key for ``name`` relative to the current path."""
        return compose_key(self._prefix, name)

    def breadcrumbs(self) -> list[tuple[str, str]]:
        """Return ``(label, prefix)`` pairs from the root down to the current path."""
        crumbs = [("Root", "")]
        parts = [part for part in self._prefix.split(DELIMITER) if part]
        for index, part in enumerate(parts):
            crumbs.append((part, DELIMITER.join(parts[: index + 1]) + DELIMITER))
        return crumbs
