from __future__ import annotations
"""Complete prefix enumeration over a paginated list call."""
import logging
from typing import Iterator

from .errors import StoreRequestFailed
from .models import FolderRecord, ListingPage, ObjectRecord, PrefixListing
from .services import S3ObjectStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


class PrefixPager:
    """Follows continuation tokens until the store reports the last page."""

    def __init__(self, store: S3ObjectStore, page_size: int = DEFAULT_PAGE_SIZE):
        self._store = store
        self._page_size = page_size

    def iter_pages(
        self,
        bucket: str,
        prefix: str = "",
        *,
        delimiter: str | None = "/",
    ) -> Iterator[ListingPage]:
        token: str | None = None
        while True:
            page = self._store.list_page(
                bucket,
                prefix=prefix,
                delimiter=delimiter,
                max_keys=self._page_size,
                continuation_token=token,
            )
            yield page
            if not page.is_truncated:
                return
            if not page.continuation_token:
                raise StoreRequestFailed(
                    "ListObjectsV2",
                    "listing reported more pages without a continuation token",
                    key=prefix or None,
                )
            token = page.continuation_token

    def list_all(
        self,
        bucket: str,
        prefix: str = "",
        *,
        delimiter: str | None = "/",
    ) -> PrefixListing:
        """Return every object and folder under ``prefix``.

        With ``delimiter=None`` the enumeration is recursive and ``folders`` is
        empty. Any page failure propagates; partial listings are never returned.
        """

        objects: dict[str, ObjectRecord] = {}
        folders: dict[str, FolderRecord] = {}
        page_count = 0
        for page in self.iter_pages(bucket, prefix, delimiter=delimiter):
            page_count += 1
            for obj in page.objects:
                objects[obj.key] = obj
            for folder in page.folders:
                folders[folder.prefix] = folder
        LOGGER.debug(
            "Listed %d object(s) and %d folder(s) under '%s' in %d page(s)",
            len(objects),
            len(folders),
            prefix,
            page_count,
        )
        return PrefixListing(
            prefix=prefix,
            objects=[objects[key] for key in sorted(objects)],
            folders=[folders[key] for key in sorted(folders)],
            page_count=page_count,
        )
