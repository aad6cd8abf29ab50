from __future__ import annotations
"""In-memory registry of uploads and downloads fed by a progress queue."""
from dataclasses import dataclass, replace
from datetime import datetime
import logging
import queue
import threading
from typing import Callable, Optional
import uuid

from .models import TransferKind, TransferRecord, TransferStatus

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """A progress message for one transfer id."""

    transfer_id: str
    progress: Optional[int] = None
    file_size: Optional[int] = None
    completed: bool = False
    error: Optional[str] = None


class ProgressChannel:
    """Thread-safe queue carrying :class:`ProgressEvent` messages to the tracker's owner."""

    def __init__(self) -> None:
        self._queue: queue.Queue[ProgressEvent] = queue.Queue()

    def publish(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def drain(self) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class ProgressReporter:
    """Publishes progress for a single transfer; handed to background operations."""

    def __init__(self, channel: ProgressChannel, transfer_id: str):
        self._channel = channel
        self.transfer_id = transfer_id

    def progress(self, percent: int, file_size: int | None = None) -> None:
        self._channel.publish(ProgressEvent(self.transfer_id, progress=percent, file_size=file_size))

    def bytes_transferred(self, transferred: int, total: int | None) -> None:
        if not total:
            return
        self.progress(min(100, round(transferred * 100 / total)))

    def complete(self) -> None:
        self._channel.publish(ProgressEvent(self.transfer_id, completed=True))

    def fail(self, error: str) -> None:
        self._channel.publish(ProgressEvent(self.transfer_id, error=error))


class TransferTracker:
    """Bookkeeping for concurrent transfers.

    Records move ``PENDING -> ACTIVE -> COMPLETED | FAILED`` (or straight from
    ``PENDING`` to ``FAILED``). Terminal records ignore further updates. The
    tracker only observes; it never talks to the store.
    """

    def __init__(
        self,
        channel: ProgressChannel | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._channel = channel or ProgressChannel()
        self._clock = clock
        self._records: dict[str, TransferRecord] = {}
        self._lock = threading.RLock()

    @property
    def channel(self) -> ProgressChannel:
        return self._channel

    def begin(
        self,
        kind: TransferKind,
        file_name: str,
        file_size: int | None = None,
        *,
        transfer_id: str | None = None,
    ) -> str:
        transfer_id = transfer_id or f"{kind.value}-{uuid.uuid4().hex}"
        with self._lock:
            if transfer_id in self._records:
                raise ValueError(f"Transfer '{transfer_id}' already exists")
            self._records[transfer_id] = TransferRecord(
                id=transfer_id,
                kind=kind,
                file_name=file_name,
                file_size=file_size,
                start_time=self._clock(),
            )
        LOGGER.debug("Began %s transfer '%s' for %s", kind.value, transfer_id, file_name)
        return transfer_id

    def reporter(self, transfer_id: str) -> ProgressReporter:
        return ProgressReporter(self._channel, transfer_id)

    def update(self, transfer_id: str, progress: int, file_size: int | None = None) -> None:
        with self._lock:
            record = self._live_record(transfer_id)
            if record is None:
                return
            record.progress = max(0, min(100, int(progress)))
            if file_size is not None:
                record.file_size = file_size
            record.status = TransferStatus.COMPLETED if record.progress >= 100 else TransferStatus.ACTIVE

    def complete(self, transfer_id: str) -> None:
        with self._lock:
            record = self._live_record(transfer_id)
            if record is None:
                return
            record.progress = 100
            record.status = TransferStatus.COMPLETED

    def fail(self, transfer_id: str, error: str) -> None:
        with self._lock:
            record = self._live_record(transfer_id)
            if record is None:
                return
            record.status = TransferStatus.FAILED
            record.error = error
        LOGGER.debug("Transfer '%s' failed: %s", transfer_id, error)

    def apply(self, event: ProgressEvent) -> None:
        if event.error is not None:
            self.fail(event.transfer_id, event.error)
        elif event.completed:
            self.complete(event.transfer_id)
        elif event.progress is not None:
            self.update(event.transfer_id, event.progress, event.file_size)
        elif event.file_size is not None:
            with self._lock:
                record = self._live_record(event.transfer_id)
                if record is not None:
                    record.file_size = event.file_size

    def pump(self) -> int:
        """Apply every queued progress event; returns how many were applied."""
        events = self._channel.drain()
        for event in events:
            self.apply(event)
        return len(events)

    def get(self, transfer_id: str) -> TransferRecord | None:
        with self._lock:
            record = self._records.get(transfer_id)
            return replace(record) if record else None

    def list(self) -> list[TransferRecord]:
        with self._lock:
            return [replace(record) for record in self._records.values()]

    def clear(self, predicate: Callable[[TransferRecord], bool]) -> int:
        with self._lock:
            doomed = [key for key, record in self._records.items() if predicate(record)]
            for key in doomed:
                del self._records[key]
        return len(doomed)

    def clear_completed(self) -> int:
        return self.clear(lambda record: record.status is TransferStatus.COMPLETED)

    def remove(self, transfer_id: str) -> None:
        with self._lock:
            self._records.pop(transfer_id, None)

    def _live_record(self, transfer_id: str) -> TransferRecord | None:
        record = self._records.get(transfer_id)
        if record is None:
            LOGGER.debug("Ignoring progress for unknown transfer '%s'", transfer_id)
            return None
        if record.status.is_terminal:
            return None
        return record
