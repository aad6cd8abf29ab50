from __future__ import annotations
"""View-agnostic presenter that runs controller operations in the background."""
from dataclasses import replace
import logging
import threading
from typing import Callable

from .controller import S3VaultController, suggest_archive_name
from .credentials import ConnectionConfig
from .errors import PartialBatchFailure, S3VaultError, UserCanceled
from .models import (
    ArchiveResult,
    BatchResult,
    DeleteFolderResult,
    DownloadFilesResult,
    PrefixListing,
    RenameFolderResult,
    TransferRecord,
)
from .settings import AppSettings, SettingsStorage


DispatchFn = Callable[[Callable[[], None]], None]
ErrorFn = Callable[[str], None]
DoneFn = Callable[[], None]
PartialFn = Callable[[PartialBatchFailure], None]

LOGGER = logging.getLogger(__name__)


def _format_error(exc: BaseException) -> str:
    return str(exc)


class S3VaultPresenter:
    """Runs background operations and returns results via callbacks.

    ``dispatch`` marshals callbacks back onto the view's thread; the default
    runs them inline.
    """

    def __init__(
        self,
        *,
        controller: S3VaultController | None = None,
        settings_storage: SettingsStorage | None = None,
        dispatch: DispatchFn | None = None,
    ) -> None:
        self._settings_storage = settings_storage or SettingsStorage()
        self._settings = self._settings_storage.load()
        self._controller = controller or S3VaultController(settings=self._settings)
        self._dispatch = dispatch or (lambda func: func())

    @property
    def settings(self) -> AppSettings:
        return replace(self._settings)

    @property
    def is_connected(self) -> bool:
        return self._controller.is_connected

    @property
    def current_path(self) -> str:
        return self._controller.current_path

    def save_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._settings_storage.save(settings)

    def navigate(self, prefix: str) -> str:
        path = self._controller.navigate(prefix)
        self._remember_path(path)
        return path

    def navigate_up(self) -> str:
        path = self._controller.navigate_up()
        self._remember_path(path)
        return path

    def breadcrumbs(self) -> list[tuple[str, str]]:
        return self._controller.breadcrumbs()

    def suggest_archive_name(self, prefix: str) -> str:
        return suggest_archive_name(prefix)

    def poll_transfers(self) -> list[TransferRecord]:
        """Apply queued progress messages and return a snapshot for rendering."""
        tracker = self._controller.transfers
        tracker.pump()
        return tracker.list()

    def clear_completed_transfers(self) -> int:
        tracker = self._controller.transfers
        tracker.pump()
        return tracker.clear_completed()

    def dismiss_transfer(self, transfer_id: str) -> None:
        tracker = self._controller.transfers
        tracker.pump()
        tracker.remove(transfer_id)

    def connect(
        self,
        *,
        config: ConnectionConfig,
        remember: bool = True,
        on_success: DoneFn,
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        def work() -> None:
            self._controller.connect(config, remember=remember)

        self._run(
            f"connect to bucket '{config.bucket_name}'",
            work,
            on_success=lambda _result: on_success(),
            on_error=on_error,
            on_done=on_done,
        )

    def restore_connection(
        self,
        *,
        on_success: Callable[[bool], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        def work() -> bool:
            restored = self._controller.restore_connection()
            if restored and self._settings.remember_last_path and self._settings.last_path:
                self._controller.navigate(self._settings.last_path)
            return restored

        self._run("restore saved connection", work, on_success=on_success, on_error=on_error, on_done=on_done)

    def disconnect(self) -> None:
        self._controller.disconnect()

    def list_current_folder(
        self,
        *,
        on_success: Callable[[PrefixListing], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"list '{self._controller.current_path}'",
            self._controller.list_current_folder,
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def create_folder(self, *, name: str, on_success: Callable[[str], None], on_error: ErrorFn) -> None:
        self._run(
            f"create folder '{name}'",
            lambda: self._controller.create_folder(name),
            on_success=on_success,
            on_error=on_error,
        )

    def delete_folder(
        self,
        *,
        prefix: str,
        on_success: Callable[[DeleteFolderResult], None],
        on_error: ErrorFn,
        on_partial: PartialFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"delete folder '{prefix}'",
            lambda: self._controller.delete_folder(prefix),
            on_success=on_success,
            on_error=on_error,
            on_partial=on_partial,
            on_done=on_done,
        )

    def rename_folder(
        self,
        *,
        prefix: str,
        new_name: str,
        on_success: Callable[[RenameFolderResult], None],
        on_error: ErrorFn,
        on_partial: PartialFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"rename folder '{prefix}'",
            lambda: self._controller.rename_folder(prefix, new_name),
            on_success=on_success,
            on_error=on_error,
            on_partial=on_partial,
            on_done=on_done,
        )

    def download_folder(
        self,
        *,
        prefix: str,
        name: str,
        destination: str | None,
        on_success: Callable[[ArchiveResult], None],
        on_error: ErrorFn,
        on_partial: PartialFn | None = None,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"download folder '{prefix}'",
            lambda: self._controller.download_folder(prefix, name, destination),
            on_success=on_success,
            on_error=on_error,
            on_partial=on_partial,
            on_cancelled=on_cancelled,
            on_done=on_done,
        )

    def upload_file(
        self,
        *,
        name: str,
        data: bytes,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"upload '{name}'",
            lambda: self._controller.upload_file(name, data),
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def download_file(
        self,
        *,
        key: str,
        destination: str | None,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"download '{key}'",
            lambda: self._controller.download_file(key, destination),
            on_success=on_success,
            on_error=on_error,
            on_cancelled=on_cancelled,
            on_done=on_done,
        )

    def download_files(
        self,
        *,
        keys: list[str],
        directory: str | None,
        on_success: Callable[[DownloadFilesResult], None],
        on_error: ErrorFn,
        on_partial: PartialFn | None = None,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        self._run(
            f"download {len(keys)} file(s)",
            lambda: self._controller.download_files(keys, directory),
            on_success=on_success,
            on_error=on_error,
            on_partial=on_partial,
            on_cancelled=on_cancelled,
            on_done=on_done,
        )

    def delete_file(self, *, key: str, on_success: DoneFn, on_error: ErrorFn) -> None:
        self._run(
            f"delete '{key}'",
            lambda: self._controller.delete_file(key),
            on_success=lambda _result: on_success(),
            on_error=on_error,
        )

    def rename_file(
        self,
        *,
        key: str,
        new_name: str,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
    ) -> None:
        self._run(
            f"rename '{key}'",
            lambda: self._controller.rename_file(key, new_name),
            on_success=on_success,
            on_error=on_error,
        )

    def share_link(
        self,
        *,
        key: str,
        expires_in: int = 3600,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
    ) -> None:
        self._run(
            f"presign '{key}'",
            lambda: self._controller.share_link(key, expires_in),
            on_success=on_success,
            on_error=on_error,
        )

    def _remember_path(self, path: str) -> None:
        if not self._settings.remember_last_path:
            return
        self._settings = replace(self._settings, last_path=path)
        self._settings_storage.save(self._settings)

    def _run(
        self,
        label: str,
        work: Callable[[], object],
        *,
        on_success: Callable,
        on_error: ErrorFn,
        on_partial: PartialFn | None = None,
        on_cancelled: ErrorFn | None = None,
        on_done: DoneFn | None = None,
    ) -> None:
        LOGGER.debug("Starting %s", label)

        def task() -> None:
            try:
                result = work()
                if isinstance(result, BatchResult):
                    result.raise_for_failures()
            except UserCanceled as exc:
                LOGGER.debug("Cancelled %s", label)
                if on_cancelled:
                    message = _format_error(exc)
                    self._dispatch(lambda: on_cancelled(message))
            except PartialBatchFailure as exc:
                LOGGER.warning("%s finished with %d failure(s)", label, len(exc.result.failures))
                if on_partial:
                    failure = exc
                    self._dispatch(lambda: on_partial(failure))
                else:
                    message = _format_error(exc)
                    self._dispatch(lambda: on_error(message))
            except S3VaultError as exc:
                LOGGER.exception("Failed to %s", label)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            except Exception as exc:
                LOGGER.exception("Unexpected error during %s", label)
                message = _format_error(exc)
                self._dispatch(lambda: on_error(message))
            else:
                LOGGER.debug("Finished %s", label)
                self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        threading.Thread(target=task, daemon=True).start()
