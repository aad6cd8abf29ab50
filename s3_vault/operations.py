from __future__ import annotations
"""Folder-level operations built from prefix enumeration and per-object calls.

The store has no folders, no rename and no recursive delete. Each operation
here enumerates every key under a prefix and then issues one request per
object (or per delete batch), recording per-object outcomes so a failure on
one object never hides what happened to the others.

Nothing here is atomic: a concurrent writer into the same prefix can race a
delete or a rename.
"""
import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Mapping, Optional
import zipfile

from .errors import ArchiveError, NotConnectedError, S3VaultError, StoreRequestFailed
from .keys import base_name, relative_key, replace_prefix
from .models import (
    ArchiveResult,
    DeleteFolderResult,
    DownloadFilesResult,
    FailedKey,
    FileDownload,
    ObjectRecord,
    RenameEntry,
    RenameFolderResult,
    RenameState,
)
from .pager import PrefixPager
from .services import DOWNLOAD_CHUNK_SIZE, S3ObjectStore
from .transfers import ProgressReporter

LOGGER = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"
SPOOL_MAX_SIZE = 8 * 1024 * 1024


def _require_folder_prefix(prefix: str, *, allow_root: bool = False) -> None:
    if not prefix:
        if allow_root:
            return
        raise ValueError("A folder prefix is required")
    if not prefix.endswith("/"):
        raise ValueError(f"Folder prefix '{prefix}' must end with '/'")


def _discard(path: str | os.PathLike[str]) -> None:
    with contextlib.suppress(OSError):
        Path(path).unlink()


class FolderOperationEngine:
    """Runs delete, rename and download operations over whole prefixes."""

    def __init__(
        self,
        store: S3ObjectStore,
        pager: PrefixPager | None = None,
        *,
        compression_level: int = 9,
    ):
        self._store = store
        self._pager = pager or PrefixPager(store)
        self._compression_level = compression_level

    def delete_folder(self, bucket: str, prefix: str) -> DeleteFolderResult:
        """Delete every key under ``prefix``, folder markers included.

        Once a listing has needed more than one page, the prefix is enumerated
        again after each round until a round finds nothing or makes no progress.
        """

        _require_folder_prefix(prefix)
        result = DeleteFolderResult(prefix=prefix)
        failed: dict[str, str] = {}
        paginated = False
        while True:
            listing = self._pager.list_all(bucket, prefix, delimiter=None)
            if not listing.objects:
                break
            result.rounds += 1
            outcome = self._store.delete_many(bucket, listing.keys)
            result.deleted_count += len(outcome.deleted)
            for key in outcome.deleted:
                failed.pop(key, None)
            for failure in outcome.errors:
                LOGGER.warning("Could not delete '%s': %s", failure.key, failure.reason)
                failed[failure.key] = failure.reason
            paginated = paginated or listing.page_count > 1
            if not paginated or not outcome.deleted:
                break
        result.failed = [FailedKey(key, reason) for key, reason in failed.items()]
        LOGGER.debug(
            "Deleted %d object(s) under '%s' in %d round(s), %d failure(s)",
            result.deleted_count,
            prefix,
            result.rounds,
            len(result.failed),
        )
        return result

    def rename_folder(self, bucket: str, old_prefix: str, new_prefix: str) -> RenameFolderResult:
        """Move every key under ``old_prefix`` to ``new_prefix``.

        Each object is copied first and the original deleted only after the copy
        succeeded, so an interruption leaves a duplicate rather than a loss.
        """

        _require_folder_prefix(old_prefix)
        _require_folder_prefix(new_prefix)
        if old_prefix == new_prefix:
            raise ValueError("Source and destination folders are the same")

        # Snapshot first so keys written under the new prefix are never re-listed.
        listing = self._pager.list_all(bucket, old_prefix, delimiter=None)
        result = RenameFolderResult(old_prefix=old_prefix, new_prefix=new_prefix)
        for obj in listing.objects:
            entry = RenameEntry(obj.key, replace_prefix(obj.key, old_prefix, new_prefix))
            result.entries.append(entry)
            self._move(bucket, entry)
        LOGGER.debug(
            "Renamed %d of %d object(s) from '%s' to '%s'",
            result.renamed_count,
            len(result.entries),
            old_prefix,
            new_prefix,
        )
        return result

    def rename_object(self, bucket: str, old_key: str, new_key: str) -> RenameEntry:
        if old_key == new_key:
            raise ValueError("Source and destination keys are the same")
        entry = RenameEntry(old_key, new_key)
        self._move(bucket, entry)
        return entry

    def _move(self, bucket: str, entry: RenameEntry) -> None:
        try:
            self._store.copy(bucket, entry.source_key, entry.destination_key)
        except StoreRequestFailed as exc:
            LOGGER.warning("Copy of '%s' failed: %s", entry.source_key, exc.message)
            entry.state = RenameState.COPY_FAILED
            entry.error = exc.message
            return
        entry.state = RenameState.COPIED
        try:
            self._store.delete(bucket, entry.source_key)
        except StoreRequestFailed as exc:
            LOGGER.warning(
                "Copied '%s' to '%s' but could not delete the original: %s",
                entry.source_key,
                entry.destination_key,
                exc.message,
            )
            entry.state = RenameState.DELETE_FAILED
            entry.error = exc.message
            return
        entry.state = RenameState.MOVED

    def download_folder(
        self,
        bucket: str,
        prefix: str,
        destination: str | os.PathLike[str],
        *,
        progress: Optional[Callable[[int], None]] = None,
    ) -> ArchiveResult:
        """Write every file under ``prefix`` into a ZIP archive at ``destination``.

        Entry names are relative to ``prefix``. Objects that cannot be fetched
        are reported in the result; failing to write the archive itself raises
        :class:`ArchiveError` and removes the partial file.
        """

        _require_folder_prefix(prefix, allow_root=True)
        listing = self._pager.list_all(bucket, prefix, delimiter=None)
        targets = [obj for obj in listing.objects if obj.key != prefix and not obj.is_folder_marker]
        result = ArchiveResult(prefix=prefix, archive_path=os.fspath(destination))

        try:
            archive = zipfile.ZipFile(
                destination,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=self._compression_level,
            )
        except OSError as exc:
            raise ArchiveError(f"Unable to create archive '{result.archive_path}': {exc}") from exc

        try:
            for index, obj in enumerate(targets, start=1):
                self._archive_object(archive, bucket, prefix, obj, result)
                if progress:
                    progress(round(index * 100 / len(targets)))
        except Exception:
            with contextlib.suppress(OSError, ValueError):
                archive.close()
            _discard(destination)
            raise

        try:
            archive.close()
        except OSError as exc:
            _discard(destination)
            raise ArchiveError(f"Unable to finalize archive '{result.archive_path}': {exc}") from exc

        if progress and not targets:
            progress(100)
        LOGGER.debug(
            "Archived %d of %d object(s) under '%s' into %s",
            result.archived_count,
            len(targets),
            prefix,
            result.archive_path,
        )
        return result

    def _archive_object(
        self,
        archive: zipfile.ZipFile,
        bucket: str,
        prefix: str,
        obj: ObjectRecord,
        result: ArchiveResult,
    ) -> None:
        entry_name = relative_key(obj.key, prefix).lstrip("/")
        if not entry_name:
            return
        # The body is spooled first so a fetch that dies midway never leaves a
        # truncated entry in the archive.
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
            body = None
            try:
                body = self._store.get(bucket, obj.key)
                for chunk in body.iter_chunks():
                    spool.write(chunk)
            except StoreRequestFailed as exc:
                LOGGER.warning("Could not fetch '%s' for archive: %s", obj.key, exc.message)
                result.failed.append(FailedKey(obj.key, exc.message))
                return
            except OSError as exc:
                raise ArchiveError(f"Unable to buffer '{obj.key}' for archive: {exc}") from exc
            finally:
                if body is not None:
                    body.close()
            spool.seek(0)
            try:
                with archive.open(entry_name, "w", force_zip64=obj.size >= zipfile.ZIP64_LIMIT) as entry:
                    shutil.copyfileobj(spool, entry, DOWNLOAD_CHUNK_SIZE)
            except OSError as exc:
                raise ArchiveError(f"Unable to write '{entry_name}' to archive: {exc}") from exc
        result.archived_count += 1

    def download_file(
        self,
        bucket: str,
        key: str,
        destination: str | os.PathLike[str],
        reporter: ProgressReporter | None = None,
    ) -> str:
        """Stream one object to ``destination``, reporting byte progress.

        Data is written to a sibling ``.part`` file that replaces ``destination``
        only once the whole body arrived; a failed download leaves any existing
        file at ``destination`` untouched.
        """

        path = os.fspath(destination)
        partial = path + PARTIAL_SUFFIX
        try:
            size = self._store.head_metadata(bucket, key)
            if reporter:
                reporter.progress(0, file_size=size)
            body = self._store.get(bucket, key)
            try:
                transferred = 0
                with open(partial, "wb") as handle:
                    for chunk in body.iter_chunks():
                        handle.write(chunk)
                        transferred += len(chunk)
                        if reporter:
                            reporter.bytes_transferred(transferred, size)
            finally:
                body.close()
            os.replace(partial, path)
        except (S3VaultError, OSError) as exc:
            _discard(partial)
            if reporter:
                reporter.fail(exc.message if isinstance(exc, StoreRequestFailed) else str(exc))
            raise
        if reporter:
            reporter.complete()
        return path

    def download_files(
        self,
        bucket: str,
        keys: list[str],
        directory: str | os.PathLike[str],
        reporters: Mapping[str, ProgressReporter] | None = None,
    ) -> DownloadFilesResult:
        """Download each key into ``directory`` independently of the others."""

        result = DownloadFilesResult(directory=os.fspath(directory))
        reporters = reporters or {}
        for index, key in enumerate(keys):
            reporter = reporters.get(key)
            item = FileDownload(
                key=key,
                path=os.path.join(result.directory, base_name(key)),
                transfer_id=reporter.transfer_id if reporter else None,
            )
            try:
                self.download_file(bucket, key, item.path, reporter)
            except NotConnectedError as exc:
                for pending in keys[index + 1:]:
                    if pending in reporters:
                        reporters[pending].fail(str(exc))
                raise
            except StoreRequestFailed as exc:
                item.error = exc.message
            except OSError as exc:
                item.error = str(exc)
            if item.error:
                LOGGER.warning("Could not download '%s': %s", key, item.error)
            result.downloads.append(item)
        return result
