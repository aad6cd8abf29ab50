from __future__ import annotations
"""Data models for listings, bulk operation results and transfers."""
from dataclasses import dataclass, field
from datetime import datetime
import enum
from typing import Optional

from .errors import PartialBatchFailure


@dataclass(frozen=True)
class ObjectRecord:
    """Snapshot of one stored object taken from a listing."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None

    @property
    def is_folder_marker(self) -> bool:
        return self.key.endswith("/")


@dataclass(frozen=True)
class FolderRecord:
    """A common prefix returned by a delimited listing."""

    prefix: str

    @property
    def name(self) -> str:
        return self.prefix.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class ListingPage:
    """One page returned by the store's list call."""

    objects: list[ObjectRecord] = field(default_factory=list)
    folders: list[FolderRecord] = field(default_factory=list)
    continuation_token: Optional[str] = None
    is_truncated: bool = False


@dataclass
class PrefixListing:
    """Every object and folder found under a prefix, across all pages."""

    prefix: str
    objects: list[ObjectRecord] = field(default_factory=list)
    folders: list[FolderRecord] = field(default_factory=list)
    page_count: int = 0

    @property
    def files(self) -> list[ObjectRecord]:
        """Objects excluding the marker that stands for the listed folder itself."""
        return [obj for obj in self.objects if not (obj.key == self.prefix and obj.is_folder_marker)]

    @property
    def keys(self) -> list[str]:
        return [obj.key for obj in self.objects]


class TransferKind(str, enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransferStatus.COMPLETED, TransferStatus.FAILED)


@dataclass
class TransferRecord:
    """Progress bookkeeping for one upload or download."""

    id: str
    kind: TransferKind
    file_name: str
    file_size: Optional[int] = None
    progress: int = 0
    status: TransferStatus = TransferStatus.PENDING
    error: Optional[str] = None
    start_time: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FailedKey:
    key: str
    reason: str


class BatchResult:
    """Common surface of multi-object results.

    Subclasses provide ``operation``, ``succeeded_count`` and ``failures``.
    """

    operation = "batch"

    @property
    def succeeded_count(self) -> int:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def failures(self) -> list[FailedKey]:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialBatchFailure(self)


@dataclass
class DeleteFolderResult(BatchResult):
    prefix: str
    deleted_count: int = 0
    failed: list[FailedKey] = field(default_factory=list)
    rounds: int = 0

    operation = "delete folder"

    @property
    def succeeded_count(self) -> int:
        return self.deleted_count

    @property
    def failures(self) -> list[FailedKey]:
        return list(self.failed)


class RenameState(str, enum.Enum):
    PENDING = "pending"
    COPIED = "copied"
    MOVED = "moved"
    COPY_FAILED = "copy_failed"
    DELETE_FAILED = "delete_failed"


@dataclass
class RenameEntry:
    """Two-phase state of one object moved by a folder rename."""

    source_key: str
    destination_key: str
    state: RenameState = RenameState.PENDING
    error: Optional[str] = None


@dataclass
class RenameFolderResult(BatchResult):
    old_prefix: str
    new_prefix: str
    entries: list[RenameEntry] = field(default_factory=list)

    operation = "rename folder"

    @property
    def renamed_count(self) -> int:
        return sum(1 for entry in self.entries if entry.state is RenameState.MOVED)

    @property
    def succeeded_count(self) -> int:
        return self.renamed_count

    @property
    def copied_not_deleted(self) -> list[RenameEntry]:
        """Objects now present under both the old and the new key."""
        return [entry for entry in self.entries if entry.state is RenameState.DELETE_FAILED]

    @property
    def failures(self) -> list[FailedKey]:
        failed = []
        for entry in self.entries:
            if entry.state is RenameState.COPY_FAILED:
                failed.append(FailedKey(entry.source_key, f"copy failed: {entry.error}"))
            elif entry.state is RenameState.DELETE_FAILED:
                failed.append(
                    FailedKey(
                        entry.source_key,
                        f"copied to '{entry.destination_key}', delete failed: {entry.error}",
                    )
                )
        return failed


@dataclass
class ArchiveResult(BatchResult):
    prefix: str
    archive_path: str
    archived_count: int = 0
    failed: list[FailedKey] = field(default_factory=list)

    operation = "download folder"

    @property
    def succeeded_count(self) -> int:
        return self.archived_count

    @property
    def failures(self) -> list[FailedKey]:
        return list(self.failed)


@dataclass
class FileDownload:
    key: str
    path: str
    transfer_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DownloadFilesResult(BatchResult):
    directory: str
    downloads: list[FileDownload] = field(default_factory=list)

    operation = "download files"

    @property
    def succeeded_count(self) -> int:
        return sum(1 for item in self.downloads if item.ok)

    @property
    def failures(self) -> list[FailedKey]:
        return [FailedKey(item.key, item.error) for item in self.downloads if not item.ok]
