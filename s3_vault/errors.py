from __future__ import annotations
"""Error types shared by the store adapter and the bulk operations."""
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .models import BatchResult


class S3VaultError(RuntimeError):
    """Base class for failures reported to the presentation layer."""


class NotConnectedError(S3VaultError):
    """Raised when an operation needs a store session and none is active."""


class StoreRequestFailed(S3VaultError):
    """Raised when a single store request fails (network, auth or service)."""

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        key: str | None = None,
        code: str | None = None,
    ):
        self.operation = operation
        self.key = key
        self.message = message
        self.code = code
        target = f" '{key}'" if key else ""
        super().__init__(f"{operation}{target} failed: {message}")


class ArchiveError(S3VaultError):
    """Raised when the local archive cannot be written or finalized."""


class PartialBatchFailure(S3VaultError):
    """A multi-object operation finished with some objects failing."""

    def __init__(self, result: "BatchResult"):
        self.result = result
        super().__init__(self._describe(result))

    @staticmethod
    def _describe(result: "BatchResult") -> str:
        failures = result.failures
        lines = [
            f"{result.operation}: {result.succeeded_count} succeeded, {len(failures)} failed"
        ]
        lines.extend(f"  {failure.key}: {failure.reason}" for failure in failures)
        return "\n".join(lines)


class UserCanceled(Exception):
    """The user abandoned a destination choice before any transfer started.

    Not an :class:`S3VaultError`: cancelling is an expected outcome.
    """
