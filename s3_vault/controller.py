from __future__ import annotations
"""Controller exposing the browsing and transfer operations a view drives."""
import logging
from typing import Callable

from .credentials import ConnectionConfig, CredentialStore
from .errors import NotConnectedError, S3VaultError, StoreRequestFailed, UserCanceled
from .keys import DELIMITER, base_name, compose_key, ensure_folder_prefix, format_size, parent_prefix
from .models import (
    ArchiveResult,
    DeleteFolderResult,
    DownloadFilesResult,
    PrefixListing,
    RenameEntry,
    RenameFolderResult,
    RenameState,
    TransferKind,
)
from .operations import FolderOperationEngine
from .pager import PrefixPager
from .paths import PathState
from .services import S3ObjectStore
from .settings import AppSettings
from .transfers import TransferTracker

LOGGER = logging.getLogger(__name__)

StoreFactory = Callable[[ConnectionConfig], S3ObjectStore]


def suggest_archive_name(prefix: str) -> str:
    return f"{base_name(prefix, default='bucket')}.zip"


def _folder_name(name: str) -> str:
    cleaned = name.strip().strip(DELIMITER)
    if not cleaned:
        raise ValueError("Folder name cannot be empty")
    return cleaned


class S3VaultController:
    """Coordinates user actions for one bucket session.

    Holds the session's current folder, so several controllers can browse
    independently within one process.
    """

    def __init__(
        self,
        credential_store: CredentialStore | None = None,
        settings: AppSettings | None = None,
        store_factory: StoreFactory | None = None,
        tracker: TransferTracker | None = None,
    ):
        self._credentials = credential_store or CredentialStore()
        self._settings = settings or AppSettings()
        self._store_factory = store_factory or S3ObjectStore
        self._tracker = tracker or TransferTracker()
        self._path = PathState()
        self._config: ConnectionConfig | None = None
        self._store: S3ObjectStore | None = None
        self._pager: PrefixPager | None = None
        self._engine: FolderOperationEngine | None = None

    @property
    def is_connected(self) -> bool:
        return self._store is not None

    @property
    def bucket_name(self) -> str | None:
        return self._config.bucket_name if self._config else None

    @property
    def current_path(self) -> str:
        return self._path.current

    @property
    def transfers(self) -> TransferTracker:
        return self._tracker

    def connect(self, config: ConnectionConfig, *, remember: bool = True) -> None:
        store = self._store_factory(config)
        store.verify(config.bucket_name)
        self._config = config
        self._store = store
        self._pager = PrefixPager(store, page_size=self._settings.page_size)
        self._engine = FolderOperationEngine(
            store,
            self._pager,
            compression_level=self._settings.archive_compression_level,
        )
        self._path.navigate("")
        if remember:
            self._credentials.save(config)
        LOGGER.debug("Connected to bucket '%s'", config.bucket_name)

    def restore_connection(self) -> bool:
        """Reconnect with saved credentials; returns ``False`` when none are saved."""
        config = self._credentials.load()
        if config is None:
            return False
        self.connect(config, remember=False)
        return True

    def disconnect(self) -> None:
        self._credentials.clear()
        self._config = None
        self._store = None
        self._pager = None
        self._engine = None
        self._path.navigate("")

    def navigate(self, prefix: str) -> str:
        return self._path.navigate(prefix)

    def navigate_up(self) -> str:
        return self._path.up()

    def breadcrumbs(self) -> list[tuple[str, str]]:
        return self._path.breadcrumbs()

    def list_current_folder(self) -> PrefixListing:
        self._require_connection()
        return self._pager.list_all(self._config.bucket_name, self._path.current)

    def create_folder(self, name: str) -> str:
        store = self._require_connection()
        key = self._path.resolve(_folder_name(name)) + DELIMITER
        store.put(self._config.bucket_name, key, b"")
        return key

    def delete_folder(self, prefix: str) -> DeleteFolderResult:
        self._require_connection()
        return self._engine.delete_folder(self._config.bucket_name, ensure_folder_prefix(prefix))

    def rename_folder(self, old_prefix: str, new_name: str) -> RenameFolderResult:
        self._require_connection()
        old_prefix = ensure_folder_prefix(old_prefix)
        new_prefix = compose_key(parent_prefix(old_prefix), _folder_name(new_name)) + DELIMITER
        return self._engine.rename_folder(self._config.bucket_name, old_prefix, new_prefix)

    def download_folder(self, prefix: str, name: str, destination: str | None) -> ArchiveResult:
        self._require_connection()
        if not destination:
            raise UserCanceled("Folder download cancelled")
        transfer_id = self._tracker.begin(TransferKind.DOWNLOAD, name)
        reporter = self._tracker.reporter(transfer_id)
        try:
            result = self._engine.download_folder(
                self._config.bucket_name,
                ensure_folder_prefix(prefix),
                destination,
                # complete() or fail() below finishes the record.
                progress=lambda percent: reporter.progress(min(percent, 99)),
            )
        except S3VaultError as exc:
            reporter.fail(str(exc))
            raise
        if result.ok:
            reporter.complete()
        else:
            total = result.archived_count + len(result.failures)
            reporter.fail(f"{len(result.failures)} of {total} file(s) could not be archived")
        return result

    def upload_file(self, name: str, data: bytes) -> str:
        store = self._require_connection()
        key = self._path.resolve(name)
        size = len(data)
        transfer_id = self._tracker.begin(TransferKind.UPLOAD, base_name(key), size)
        reporter = self._tracker.reporter(transfer_id)
        LOGGER.debug("Uploading '%s' (%s)", key, format_size(size))
        try:
            store.put(
                self._config.bucket_name,
                key,
                data,
                progress_callback=lambda sent: reporter.bytes_transferred(sent, size),
            )
        except S3VaultError as exc:
            reporter.fail(str(exc))
            raise
        reporter.complete()
        return key

    def download_file(self, key: str, destination: str | None) -> str:
        self._require_connection()
        if not destination:
            raise UserCanceled("Download cancelled")
        transfer_id = self._tracker.begin(TransferKind.DOWNLOAD, base_name(key))
        return self._engine.download_file(
            self._config.bucket_name,
            key,
            destination,
            self._tracker.reporter(transfer_id),
        )

    def download_files(self, keys: list[str], directory: str | None) -> DownloadFilesResult:
        self._require_connection()
        if not directory:
            raise UserCanceled("Download cancelled")
        keys = list(dict.fromkeys(keys))
        reporters = {}
        for key in keys:
            transfer_id = self._tracker.begin(TransferKind.DOWNLOAD, base_name(key))
            reporters[key] = self._tracker.reporter(transfer_id)
        return self._engine.download_files(self._config.bucket_name, keys, directory, reporters)

    def delete_file(self, key: str) -> None:
        store = self._require_connection()
        store.delete(self._config.bucket_name, key)

    def rename_file(self, old_key: str, new_name: str) -> str:
        self._require_connection()
        new_key = compose_key(parent_prefix(old_key), new_name)
        entry = self._engine.rename_object(self._config.bucket_name, old_key, new_key)
        if entry.state is not RenameState.MOVED:
            raise StoreRequestFailed("Rename", self._describe_rename_failure(entry), key=old_key)
        return new_key

    def share_link(self, key: str, expires_in: int = 3600) -> str:
        store = self._require_connection()
        return store.presign_download(self._config.bucket_name, key, expires_in=expires_in)

    def _describe_rename_failure(self, entry: RenameEntry) -> str:
        if entry.state is RenameState.DELETE_FAILED:
            return f"copied to '{entry.destination_key}' but the original remains: {entry.error}"
        return entry.error or "unknown error"

    def _require_connection(self) -> S3ObjectStore:
        if self._store is None:
            raise NotConnectedError("Not connected to S3")
        return self._store
