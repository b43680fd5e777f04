from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any, Protocol, TypeVar

from ..db.kv_store import StoreConnectionError, StoreError, StoreTimeoutError

"""Bulk upload coordinator.

Normalized batches are cut into ordered chunks (500 records by default) and
sent one at a time; the next chunk is only sent once the previous one has been
acknowledged. Every transmission is bounded by ``asyncio.wait_for``; a
repository write that times out is told to drop its chunk and its worker
thread is not waited for. On PostgreSQL the connection's ``statement_timeout``
bounds the write itself. Failures are classified (timeout / connectivity /
rejected), never retried, and chunks already saved stay saved.

Progress goes 0 -> 99 across the chunks; 100 is only emitted once the
post-upload refresh has finished.
"""

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "UploadError",
    "UploadTimeoutError",
    "UploadConnectionError",
    "UploadRejectedError",
    "ChunkAck",
    "UploadStats",
    "chunk_records",
    "repository_transport",
    "BulkUploadCoordinator",
]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_CHUNK_TIMEOUT = 60.0
DEFAULT_REFRESH_TIMEOUT = 25.0

T = TypeVar("T")


class UploadError(Exception):
    """Base class for a failed upload; ``user_message`` is shown to operators."""

    user_message = "Upload failed."

    def __init__(self, detail: str, *, chunk_index: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.chunk_index = chunk_index


class UploadTimeoutError(UploadError):
    user_message = (
        "The server did not answer in time. Records already saved were kept; "
        "re-upload the file to send the rest."
    )


class UploadConnectionError(UploadError):
    user_message = "Could not reach the server. Check the connection and upload the file again."


class UploadRejectedError(UploadError):
    user_message = "The server rejected the data. Check the file contents and try again."


class ChunkAck(Protocol):
    saved_count: int
    skipped_duplicates: int


Transmit = Callable[[Sequence[Any]], Awaitable[ChunkAck]]
Refresh = Callable[[], Awaitable[Any]]
ProgressCallback = Callable[[int], None]


@dataclass
class UploadStats:
    saved_count: int = 0
    skipped_duplicates: int = 0
    chunks_sent: int = 0
    total_chunks: int = 0


def chunk_records(records: Sequence[T], chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[Sequence[T]]:
    """Split ``records`` into ordered chunks of at most ``chunk_size``."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [records[i:i + chunk_size] for i in range(0, len(records), chunk_size)]


def repository_transport(repository: Any) -> Transmit:
    """Adapt a blocking repository's ``bulk_upsert`` into an awaitable transmit.

    Each chunk runs on its own worker thread. When the await is cancelled (the
    chunk timed out) the repository is signalled to skip its write and the
    thread is left to finish without blocking the event loop shutdown.
    """

    async def transmit(chunk: Sequence[Any]) -> ChunkAck:
        cancelled = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bulk-upsert")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                executor, partial(repository.bulk_upsert, list(chunk), cancelled=cancelled),
            )
        except asyncio.CancelledError:
            cancelled.set()
            raise
        finally:
            executor.shutdown(wait=False)

    return transmit


def _classify(exc: BaseException, chunk_index: int) -> UploadError:
    if isinstance(exc, (TimeoutError, StoreTimeoutError)):
        return UploadTimeoutError(f"chunk {chunk_index} timed out", chunk_index=chunk_index)
    if isinstance(exc, (StoreConnectionError, ConnectionError, OSError)):
        return UploadConnectionError(f"chunk {chunk_index}: {exc}", chunk_index=chunk_index)
    return UploadRejectedError(f"chunk {chunk_index}: {exc}", chunk_index=chunk_index)


class BulkUploadCoordinator:
    """Sequential chunked uploader with bounded waits.

    Parameters
    ----------
    transmit: coroutine function sending one chunk, returning an object with
        ``saved_count`` and ``skipped_duplicates``
    refresh: optional coroutine function run after the last chunk succeeded
    chunk_timeout / refresh_timeout: seconds allowed per call
    """

    def __init__(
        self,
        transmit: Transmit,
        refresh: Refresh | None = None,
        *,
        chunk_timeout: float = DEFAULT_CHUNK_TIMEOUT,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
    ) -> None:
        self._transmit = transmit
        self._refresh = refresh
        self.chunk_timeout = chunk_timeout
        self.refresh_timeout = refresh_timeout
        self.stats = UploadStats()
        self.last_error: UploadError | None = None

    async def upload_in_batches(
        self,
        records: Sequence[Any],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: ProgressCallback | None = None,
    ) -> bool:
        """Upload ``records``; True when every chunk was acknowledged.

        On failure ``last_error`` holds the classified error and ``stats``
        what had been saved before it.
        """
        chunks = chunk_records(records, chunk_size)
        self.stats = UploadStats(total_chunks=len(chunks))
        self.last_error = None
        last_reported = -1

        def report(percent: int) -> None:
            nonlocal last_reported
            if percent > last_reported:
                last_reported = percent
                if on_progress is not None:
                    on_progress(percent)

        report(0)
        for index, chunk in enumerate(chunks, start=1):
            try:
                ack = await asyncio.wait_for(self._transmit(chunk), timeout=self.chunk_timeout)
            except (TimeoutError, StoreError, ConnectionError, OSError) as e:
                self.last_error = _classify(e, index)
                logger.error(
                    "upload stopped at chunk %d/%d (%s); saved so far: %d",
                    index, len(chunks), self.last_error.detail, self.stats.saved_count,
                )
                return False

            self.stats.saved_count += ack.saved_count
            self.stats.skipped_duplicates += ack.skipped_duplicates
            self.stats.chunks_sent += 1
            logger.info(
                "chunk %d/%d: %d records, saved=%d, duplicates=%d",
                index, len(chunks), len(chunk), ack.saved_count, ack.skipped_duplicates,
            )
            report(index * 99 // len(chunks))

        await self._run_refresh()
        report(100)
        return True

    async def _run_refresh(self) -> None:
        if self._refresh is None:
            return
        try:
            await asyncio.wait_for(self._refresh(), timeout=self.refresh_timeout)
        except (TimeoutError, StoreError, ConnectionError, OSError) as e:
            # the data is saved; a stale view only needs a manual reload
            logger.warning("refresh after upload failed: %s", e or type(e).__name__)
