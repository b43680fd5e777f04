from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config.loader import IngestConfig
from ..db.kv_store import KeyValueStore
from ..db.repositories import (
    InventoryRepository,
    PaymentMappingRepository,
    RecordRepository,
    ReturnsRepository,
    SalesRepository,
)
from ..logging.error_log import ErrorLogBuffer
from ..models.caller_context import CallerContext, ensure_can_upload
from ..models.upload_result import EcommerceUploadResult, InventoryUploadResult, Severity, UploadResult
from .bulk_upload import BulkUploadCoordinator, UploadError, repository_transport
from .file_processing import process_ecommerce_file, process_inventory_file, process_store_sales_file
from .progress import scaled_progress

"""End-to-end ingestion of one uploaded file.

read -> normalize -> write rejected rows to the error log -> (optionally)
upload the accepted records through the bulk upload coordinator.
Without ``commit`` nothing is written to the store (preview run).
"""

__all__ = [
    "UPLOAD_KINDS",
    "IngestOutcome",
    "ingest_file",
    "upload_records",
]

logger = logging.getLogger(__name__)

UPLOAD_KINDS = ("store", "ecommerce", "inventory")

AnyResult = UploadResult | EcommerceUploadResult | InventoryUploadResult
ProgressCallback = Callable[[int], None]


@dataclass
class IngestOutcome:
    """What happened to one file."""
    file: str
    kind: str
    result: AnyResult
    committed: bool = False
    saved_count: int = 0
    skipped_duplicates: int = 0
    upload_error: UploadError | None = None
    error_log_path: Path | None = None
    elapsed_seconds: float = 0.0
    saved_by_prefix: dict[str, int] = field(default_factory=dict)

    @property
    def file_rejected(self) -> bool:
        """The file never reached row processing (unsupported, empty, unreadable)."""
        return any(i.row == -1 and i.error_type.startswith("FILE_") for i in self.result.issues)

    @property
    def total_rows(self) -> int:
        return self.result.total_rows

    @property
    def valid_rows(self) -> int:
        r = self.result
        if isinstance(r, EcommerceUploadResult):
            return r.valid_sales_rows + r.valid_returns_rows
        if isinstance(r, InventoryUploadResult):
            return r.processed_count
        return r.valid_rows

    @property
    def rejected(self) -> int:
        return sum(1 for i in self.result.issues if i.severity is Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for i in self.result.issues if i.severity is Severity.WARNING)

    @property
    def duplicates(self) -> int:
        r = self.result
        return r.skipped_duplicates if isinstance(r, EcommerceUploadResult) else 0

    @property
    def upload_failed(self) -> bool:
        return self.upload_error is not None


async def upload_records(
    repository: RecordRepository,
    records: Sequence[Any],
    config: IngestConfig,
    on_progress: ProgressCallback | None = None,
) -> BulkUploadCoordinator:
    """Upload ``records`` into ``repository``; the coordinator keeps stats and the last error."""

    async def refresh() -> None:
        persisted = await asyncio.to_thread(repository.fetch_all)
        logger.debug("%s now holds %d records", repository.prefix, len(persisted))

    coordinator = BulkUploadCoordinator(
        repository_transport(repository),
        refresh,
        chunk_timeout=config.chunk_timeout,
        refresh_timeout=config.refresh_timeout,
    )
    await coordinator.upload_in_batches(records, config.chunk_size, on_progress)
    return coordinator


async def _commit(
    outcome: IngestOutcome,
    store: KeyValueStore,
    config: IngestConfig,
    on_progress: ProgressCallback | None,
) -> None:
    result = outcome.result
    plan: list[tuple[RecordRepository, Sequence[Any]]]
    if isinstance(result, EcommerceUploadResult):
        plan = [(SalesRepository(store), result.sales), (ReturnsRepository(store), result.returns)]
    elif isinstance(result, InventoryUploadResult):
        plan = [(InventoryRepository(store), result.processed_data)]
    else:
        plan = [(SalesRepository(store), result.data)]

    step = 100 // len(plan)
    for position, (repository, records) in enumerate(plan):
        end = 100 if position == len(plan) - 1 else (position + 1) * step
        coordinator = await upload_records(
            repository, records, config, scaled_progress(on_progress, position * step, end),
        )
        outcome.saved_count += coordinator.stats.saved_count
        outcome.skipped_duplicates += coordinator.stats.skipped_duplicates
        outcome.saved_by_prefix[repository.prefix] = coordinator.stats.saved_count
        if coordinator.last_error is not None:
            outcome.upload_error = coordinator.last_error
            return
    outcome.committed = True


def ingest_file(
    path: Path,
    kind: str,
    config: IngestConfig,
    store: KeyValueStore,
    context: CallerContext,
    *,
    commit: bool = False,
    error_log: ErrorLogBuffer | None = None,
    on_progress: ProgressCallback | None = None,
) -> IngestOutcome:
    """Process one file and, with ``commit``, persist its accepted records.

    Raises:
        PermissionDeniedError: the caller's role may not upload ``kind``
        ValueError: unknown ``kind``
        OSError: the file could not be read from disk
        StoreError: persisted signatures or payment mappings could not be loaded
    """
    ensure_can_upload(context, kind)
    start = time.perf_counter()
    content = path.read_bytes()

    result: AnyResult
    if kind == "store":
        result = process_store_sales_file(path.name, content, config.user_store_mapping)
    elif kind == "ecommerce":
        mappings = {**config.payment_mappings, **PaymentMappingRepository(store).load()}
        existing = SalesRepository(store).signatures() | ReturnsRepository(store).signatures()
        result = process_ecommerce_file(path.name, content, mappings, existing)
    else:
        result = process_inventory_file(path.name, content)

    outcome = IngestOutcome(file=path.name, kind=kind, result=result)
    logger.info(
        "%s (%s): rows=%d valid=%d rejected=%d warnings=%d duplicates=%d",
        outcome.file, kind, outcome.total_rows, outcome.valid_rows,
        outcome.rejected, outcome.warnings, outcome.duplicates,
    )

    buffer = error_log if error_log is not None else ErrorLogBuffer(config.logs_directory)
    if buffer.extend_issues(path.name, result.issues):
        outcome.error_log_path = buffer.flush()

    if commit and not outcome.file_rejected:
        asyncio.run(_commit(outcome, store, config, on_progress))
        if outcome.upload_error is not None:
            logger.error("upload: %s", outcome.upload_error.user_message)

    outcome.elapsed_seconds = time.perf_counter() - start
    return outcome
