from __future__ import annotations
"""boto3-backed adapter exposing the object store operations the browser needs."""
from contextlib import contextmanager
from dataclasses import dataclass, field
import io
import logging
import re
from typing import Callable, Iterator, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .credentials import ConnectionConfig
from .errors import NotConnectedError, StoreRequestFailed
from .models import FailedKey, FolderRecord, ListingPage, ObjectRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
MAX_PAGE_SIZE = 1000
MAX_DELETE_BATCH = 1000
DOWNLOAD_CHUNK_SIZE = 1024 * 1024
AUTH_ERROR_CODES = frozenset(
    {"InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken", "InvalidToken"}
)
BATCH_UNSUPPORTED_CODES = frozenset({"NotImplemented", "MethodNotAllowed"})
_AWS_ENDPOINT_REGION = re.compile(r"s3[.-]([a-z0-9-]+)\.amazonaws\.com")


def resolve_region(region: str | None, endpoint_url: str | None) -> str:
    """Pick the signing region, falling back to the one embedded in an AWS endpoint."""
    if region:
        return region
    if endpoint_url:
        match = _AWS_ENDPOINT_REGION.search(endpoint_url)
        if match:
            return match.group(1)
    return DEFAULT_REGION


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


@contextmanager
def store_errors(operation: str, key: str | None = None) -> Iterator[None]:
    """Translate botocore failures into :class:`StoreRequestFailed` / :class:`NotConnectedError`."""
    try:
        yield
    except NoCredentialsError as exc:
        raise NotConnectedError(str(exc)) from exc
    except ClientError as exc:
        if _error_code(exc) in AUTH_ERROR_CODES:
            raise NotConnectedError(str(exc)) from exc
        raise StoreRequestFailed(operation, str(exc), key=key, code=_error_code(exc)) from exc
    except BotoCoreError as exc:
        raise StoreRequestFailed(operation, str(exc), key=key) from exc


@dataclass
class ObjectBody:
    """Streaming body of a fetched object."""

    key: str
    size: Optional[int]
    stream: object

    def iter_chunks(self, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
        with store_errors("GetObject", self.key):
            for chunk in self.stream.iter_chunks(chunk_size):
                if chunk:
                    yield chunk

    def close(self) -> None:
        close = getattr(self.stream, "close", None)
        if close:
            close()


@dataclass
class DeleteManyResult:
    deleted: list[str] = field(default_factory=list)
    errors: list[FailedKey] = field(default_factory=list)


class S3ObjectStore:
    """Encapsulates S3 calls independent of any UI technology."""

    def __init__(self, config: ConnectionConfig, client_factory: Callable[..., object] | None = None):
        self._config = config
        self._client_factory = client_factory or boto3.client
        self._client = self._create_client()
        self._batch_delete_supported = True

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    def _create_client(self):
        endpoint_url = self._config.endpoint_url or None
        options: dict[str, object] = {"signature_version": "s3v4"}
        if endpoint_url:
            # S3-compatible services generally lack virtual-host bucket routing.
            options["s3"] = {"addressing_style": "path"}
        return self._client_factory(
            "s3",
            endpoint_url=endpoint_url,
            region_name=resolve_region(self._config.region, endpoint_url),
            aws_access_key_id=self._config.access_key_id,
            aws_secret_access_key=self._config.secret_access_key,
            config=Config(**options),
        )

    def verify(self, bucket: str) -> None:
        """Prove the credentials can read ``bucket``."""

        with store_errors("ListObjectsV2"):
            self._client.list_objects_v2(Bucket=bucket, MaxKeys=1)

    def list_page(
        self,
        bucket: str,
        *,
        prefix: str = "",
        delimiter: str | None = "/",
        max_keys: int = MAX_PAGE_SIZE,
        continuation_token: str | None = None,
    ) -> ListingPage:
        params: dict[str, object] = {"Bucket": bucket, "MaxKeys": max(1, min(max_keys, MAX_PAGE_SIZE))}
        if prefix:
            params["Prefix"] = prefix
        if delimiter:
            params["Delimiter"] = delimiter
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        with store_errors("ListObjectsV2", prefix or None):
            response = self._client.list_objects_v2(**params)

        objects = [
            ObjectRecord(
                key=obj["Key"],
                size=int(obj.get("Size") or 0),
                last_modified=obj.get("LastModified"),
                storage_class=obj.get("StorageClass"),
            )
            for obj in response.get("Contents", [])
        ]
        folders = [FolderRecord(common["Prefix"]) for common in response.get("CommonPrefixes", [])]
        return ListingPage(
            objects=objects,
            folders=folders,
            continuation_token=response.get("NextContinuationToken"),
            is_truncated=bool(response.get("IsTruncated", False)),
        )

    def get(self, bucket: str, key: str) -> ObjectBody:
        with store_errors("GetObject", key):
            response = self._client.get_object(Bucket=bucket, Key=key)
        return ObjectBody(key=key, size=response.get("ContentLength"), stream=response["Body"])

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> None:
        """Store ``data`` at ``key``; ``progress_callback`` receives cumulative bytes sent."""

        with store_errors("PutObject", key):
            if progress_callback is None:
                self._client.put_object(Bucket=bucket, Key=key, Body=data)
                return
            self._client.upload_fileobj(
                io.BytesIO(data),
                bucket,
                key,
                Callback=self._build_transfer_callback(progress_callback),
            )

    def delete(self, bucket: str, key: str) -> None:
        with store_errors("DeleteObject", key):
            self._client.delete_object(Bucket=bucket, Key=key)

    def delete_many(self, bucket: str, keys: list[str]) -> DeleteManyResult:
        """Delete ``keys``, reporting per-key outcomes instead of raising for them."""

        result = DeleteManyResult()
        for start in range(0, len(keys), MAX_DELETE_BATCH):
            chunk = keys[start:start + MAX_DELETE_BATCH]
            if self._batch_delete_supported:
                try:
                    self._delete_batch(bucket, chunk, result)
                    continue
                except StoreRequestFailed as exc:
                    if exc.code not in BATCH_UNSUPPORTED_CODES:
                        LOGGER.warning("Batch delete of %d key(s) failed: %s", len(chunk), exc.message)
                        result.errors.extend(FailedKey(key, exc.message) for key in chunk)
                        continue
                    LOGGER.info("Batch delete unsupported by store, deleting one key at a time")
                    self._batch_delete_supported = False
            self._delete_sequentially(bucket, chunk, result)
        return result

    def _delete_batch(self, bucket: str, keys: list[str], result: DeleteManyResult) -> None:
        with store_errors("DeleteObjects"):
            response = self._client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        failed: dict[str, str] = {}
        for error in response.get("Errors", []):
            code = error.get("Code", "")
            message = error.get("Message", "")
            failed[error.get("Key", "")] = f"{code}: {message}" if code else message
        result.deleted.extend(key for key in keys if key not in failed)
        result.errors.extend(FailedKey(key, reason) for key, reason in failed.items())

    def _delete_sequentially(self, bucket: str, keys: list[str], result: DeleteManyResult) -> None:
        for key in keys:
            try:
                self.delete(bucket, key)
            except StoreRequestFailed as exc:
                result.errors.append(FailedKey(key, exc.message))
            else:
                result.deleted.append(key)

    def copy(self, bucket: str, source_key: str, destination_key: str) -> None:
        """Server-side copy within ``bucket``."""

        with store_errors("CopyObject", source_key):
            self._client.copy({"Bucket": bucket, "Key": source_key}, bucket, destination_key)

    def head_metadata(self, bucket: str, key: str) -> int:
        with store_errors("HeadObject", key):
            response = self._client.head_object(Bucket=bucket, Key=key)
        return int(response.get("ContentLength") or 0)

    def presign_download(self, bucket: str, key: str, *, expires_in: int = 3600) -> str:
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")
        with store_errors("PresignGetObject", key):
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )

    def _build_transfer_callback(self, progress_callback: Callable[[int], None]):
        transferred = 0

        def _callback(bytes_amount: int) -> None:
            nonlocal transferred
            transferred += bytes_amount
            progress_callback(transferred)

        return _callback
