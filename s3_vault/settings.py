from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import dataclass
import json
from pathlib import Path

MAX_PAGE_SIZE = 1000


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    page_size: int = MAX_PAGE_SIZE
    archive_compression_level: int = 9
    remember_last_path: bool = True
    last_path: str = ""


def _positive_int(value: object, default: int, *, upper: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    return min(number, upper)


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".s3vault_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()
        page_size = _positive_int(data.get("page_size"), AppSettings.page_size, upper=MAX_PAGE_SIZE)
        level = data.get("archive_compression_level", AppSettings.archive_compression_level)
        if not isinstance(level, int) or not 0 <= level <= 9:
            level = AppSettings.archive_compression_level
        remember = data.get("remember_last_path", AppSettings.remember_last_path)
        if not isinstance(remember, bool):
            remember = AppSettings.remember_last_path
        last_path = data.get("last_path", "")
        if not isinstance(last_path, str):
            last_path = ""
        return AppSettings(
            page_size=page_size,
            archive_compression_level=level,
            remember_last_path=remember,
            last_path=last_path,
        )

    def save(self, settings: AppSettings) -> None:
        payload = {
            "page_size": min(max(int(settings.page_size), 1), MAX_PAGE_SIZE),
            "archive_compression_level": min(max(int(settings.archive_compression_level), 0), 9),
            "remember_last_path": bool(settings.remember_last_path),
            "last_path": settings.last_path or "",
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
