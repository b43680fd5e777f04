from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..models.records import InventoryRecord, PaymentMapping, ReturnRecord, SaleRecord
from ..parsing.locale import normalize_sku
from ..parsing.signatures import return_signature, sale_signature
from .kv_store import KeyValueStore, StoreError

"""Record repositories over the key-value store.

Each repository owns a key prefix. ``bulk_upsert`` drops records whose
signature is already persisted (or repeated in the same call) and writes the
rest in one ``mset``; it reports ``saved_count`` / ``skipped_duplicates``.
A write whose caller has already given up (``cancelled`` set) is dropped
before anything reaches the store.
"""

__all__ = [
    "WriteCancelledError",
    "UpsertResult",
    "DuplicateGroup",
    "RecordRepository",
    "SalesRepository",
    "ReturnsRepository",
    "InventoryRepository",
    "PaymentMappingRepository",
]

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500

Record = SaleRecord | ReturnRecord | InventoryRecord | Mapping[str, Any]


class WriteCancelledError(StoreError):
    """The caller stopped waiting before the write started."""


@dataclass(frozen=True)
class UpsertResult:
    saved_count: int
    skipped_duplicates: int
    keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateGroup:
    signature: str
    keys: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.keys)


def _as_dict(record: Record) -> dict[str, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    return record.to_dict()


class RecordRepository:
    """Base repository; subclasses define the prefix, signature and stored shape."""

    prefix: str = ""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def signature(self, value: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def new_key(self) -> str:
        return f"{self.prefix}{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

    def build_value(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        return {"id": key, **value}

    def fetch_items(self) -> list[tuple[str, dict[str, Any]]]:
        return [(k, v) for k, v in self.store.get_by_prefix(self.prefix) if isinstance(v, Mapping)]

    def fetch_all(self) -> list[dict[str, Any]]:
        return [v for _, v in self.fetch_items()]

    def signatures(self) -> set[str]:
        return {self.signature(v) for v in self.fetch_all()}

    def bulk_upsert(
        self,
        records: Iterable[Record],
        cancelled: threading.Event | None = None,
    ) -> UpsertResult:
        known = self.signatures()
        to_save: dict[str, dict[str, Any]] = {}
        skipped = 0
        for record in records:
            value = _as_dict(record)
            sig = self.signature(value)
            if sig in known:
                skipped += 1
                continue
            known.add(sig)
            key = self.new_key()
            to_save[key] = self.build_value(key, value)
        if cancelled is not None and cancelled.is_set():
            raise WriteCancelledError(f"{self.prefix} write dropped: caller timed out")
        if to_save:
            self.store.mset(to_save)
        logger.debug("%s upsert: saved=%d skipped=%d", self.prefix, len(to_save), skipped)
        return UpsertResult(saved_count=len(to_save), skipped_duplicates=skipped, keys=tuple(to_save))

    def delete(self, key: str) -> None:
        if not key.startswith(self.prefix):
            raise ValueError(f"key '{key}' is outside prefix '{self.prefix}'")
        self.store.delete(key)

    def delete_all(self) -> int:
        keys = [k for k, _ in self.store.get_by_prefix(self.prefix)]
        deleted = 0
        for i in range(0, len(keys), DELETE_BATCH_SIZE):
            deleted += self.store.mdel(keys[i:i + DELETE_BATCH_SIZE])
        return deleted


class SalesRepository(RecordRepository):
    prefix = "sale_"

    _KEY_TIMESTAMP = re.compile(r"^sale_(\d+)_")

    def signature(self, value: Mapping[str, Any]) -> str:
        return sale_signature(value)

    def build_value(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        sku = value.get("sku") or value.get("productId")
        return {
            **value,
            "id": key,
            "user": value.get("user") or "unknown",
            "channel": value.get("channel") or "unknown",
            "sku": sku,
            "productId": sku,
            "brand": value.get("brand") or "Unknown",
            "category": value.get("category") or "abbigliamento",
            "season": value.get("season") or "autunno_inverno",
        }

    def find_duplicate_groups(self) -> list[DuplicateGroup]:
        """Persisted sales sharing a signature, largest groups first."""
        by_signature: dict[str, list[str]] = {}
        for key, value in self.fetch_items():
            by_signature.setdefault(self.signature(value), []).append(key)
        groups = [DuplicateGroup(sig, tuple(keys)) for sig, keys in by_signature.items() if len(keys) > 1]
        groups.sort(key=lambda g: g.count, reverse=True)
        return groups

    def _key_timestamp(self, key: str) -> int:
        match = self._KEY_TIMESTAMP.match(key)
        return int(match.group(1)) if match else int(time.time() * 1000)

    def remove_duplicates(self) -> int:
        """Keep the oldest sale of every duplicate group; return how many were deleted."""
        to_delete: list[str] = []
        for group in self.find_duplicate_groups():
            ordered = sorted(group.keys, key=self._key_timestamp)
            to_delete.extend(ordered[1:])
        deleted = 0
        for i in range(0, len(to_delete), DELETE_BATCH_SIZE):
            deleted += self.store.mdel(to_delete[i:i + DELETE_BATCH_SIZE])
        if deleted:
            logger.info("removed %d duplicate sales", deleted)
        return deleted


class ReturnsRepository(RecordRepository):
    prefix = "return_"

    def signature(self, value: Mapping[str, Any]) -> str:
        return return_signature(value)

    def build_value(self, key: str, value: dict[str, Any]) -> dict[str, Any]:
        return {
            **value,
            "id": key,
            "saleId": value.get("orderReference") or f"unknown_{key}",
            "reason": value.get("reason") or "Reso ecommerce",
            "channel": value.get("channel") or "ecommerce",
        }


class InventoryRepository(RecordRepository):
    prefix = "inventory_"

    def signature(self, value: Mapping[str, Any]) -> str:
        return normalize_sku(value.get("sku"))

    def new_key(self) -> str:
        return f"{self.prefix}{uuid.uuid4()}"


class PaymentMappingRepository:
    """Operator-maintained payment method -> {macroArea, channel} table."""

    prefix = "payment_mapping_"

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load(self) -> dict[str, PaymentMapping]:
        mappings: dict[str, PaymentMapping] = {}
        for key, value in self.store.get_by_prefix(self.prefix):
            if not isinstance(value, Mapping) or not value.get("macroArea") or not value.get("channel"):
                continue
            mappings[key[len(self.prefix):]] = PaymentMapping.from_dict(value)
        return mappings

    def save(self, payment_method: str, mapping: PaymentMapping) -> None:
        self.store.set(f"{self.prefix}{payment_method}", mapping.to_dict())
