from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import psycopg2
from psycopg2.errors import QueryCanceled
from psycopg2.extras import Json, execute_values

"""Key-value persistence contract and its implementations.

The store is a dumb surface: get / set / mset / delete / mdel / prefix scan
over JSON values. Deduplication against persisted data happens in the
repositories above it.

- ``PostgresKeyValueStore``: a ``(key TEXT PRIMARY KEY, value JSONB)`` table,
  bulk writes through ``psycopg2.extras.execute_values`` with upsert.
- ``InMemoryKeyValueStore``: dictionary backed; used in mock mode and tests.
"""

__all__ = [
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "WriteMetrics",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "PostgresKeyValueStore",
]


class StoreError(Exception):
    """The store rejected an operation."""


class StoreConnectionError(StoreError):
    """The store could not be reached."""


class StoreTimeoutError(StoreError):
    """The store cancelled a statement that ran past its time limit."""


@dataclass(frozen=True)
class WriteMetrics:
    """Timing for a single bulk write."""
    batch_size: int  # Number of key/value pairs written
    elapsed_seconds: float
    start_time: float  # time.time()
    end_time: float


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def mset(self, items: Mapping[str, Any]) -> int: ...

    def delete(self, key: str) -> None: ...

    def mdel(self, keys: Iterable[str]) -> int: ...

    def get_by_prefix(self, prefix: str) -> list[tuple[str, Any]]: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def mset(self, items: Mapping[str, Any]) -> int:
        self._data.update(items)
        return len(items)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def mdel(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    def get_by_prefix(self, prefix: str) -> list[tuple[str, Any]]:
        return sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._data)


def _like_prefix(prefix: str) -> str:
    # "_" and "%" are LIKE wildcards; key prefixes such as "sale_" contain them
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"


class PostgresKeyValueStore:
    """Key-value table in PostgreSQL.

    Parameters
    ----------
    cursor: psycopg2 cursor; each write commits on ``cursor.connection`` so a
        failed later chunk never rolls back chunks already saved
    table: table name (trusted configuration value)
    page_size: execute_values page size
    metrics_callback: receives WriteMetrics after every bulk write
    """

    def __init__(
        self,
        cursor: Any,
        table: str = "kv_store_sales",
        page_size: int = 1000,
        metrics_callback: Callable[[WriteMetrics], None] | None = None,
    ) -> None:
        self._cursor = cursor
        self._table = table
        self._page_size = page_size
        self._metrics_callback = metrics_callback

    @contextmanager
    def _guard(self, commit: bool = False) -> Iterator[None]:
        try:
            yield
            if commit:
                self._cursor.connection.commit()
        except QueryCanceled as e:
            self._rollback()
            raise StoreTimeoutError(str(e)) from e
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            self._rollback()
            raise StoreConnectionError(str(e)) from e
        except psycopg2.Error as e:
            self._rollback()
            raise StoreError(str(e)) from e

    def _rollback(self) -> None:
        conn = getattr(self._cursor, "connection", None)
        if conn is not None and not getattr(conn, "closed", False):
            conn.rollback()

    def ensure_table(self) -> None:
        with self._guard(commit=True):
            self._cursor.execute(
                f'CREATE TABLE IF NOT EXISTS {self._table} ("key" TEXT PRIMARY KEY, "value" JSONB NOT NULL)'
            )

    def get(self, key: str) -> Any | None:
        with self._guard():
            self._cursor.execute(f'SELECT "value" FROM {self._table} WHERE "key" = %s', (key,))
            row = self._cursor.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: Any) -> None:
        self.mset({key: value})

    def mset(self, items: Mapping[str, Any]) -> int:
        if not items:
            return 0
        rows = [(k, Json(v)) for k, v in items.items()]
        sql = (
            f'INSERT INTO {self._table} ("key", "value") VALUES %s '
            'ON CONFLICT ("key") DO UPDATE SET "value" = EXCLUDED."value"'
        )
        start_time = time.time()
        try:
            with self._guard(commit=True):
                execute_values(self._cursor, sql, rows, page_size=self._page_size)
        finally:
            end_time = time.time()
            if self._metrics_callback is not None:
                self._metrics_callback(WriteMetrics(
                    batch_size=len(rows),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                ))
        return len(rows)

    def delete(self, key: str) -> None:
        self.mdel([key])

    def mdel(self, keys: Iterable[str]) -> int:
        key_list = list(keys)
        if not key_list:
            return 0
        with self._guard(commit=True):
            self._cursor.execute(f'DELETE FROM {self._table} WHERE "key" = ANY(%s)', (key_list,))
            removed = self._cursor.rowcount
        return removed if removed is not None and removed >= 0 else len(key_list)

    def get_by_prefix(self, prefix: str) -> list[tuple[str, Any]]:
        with self._guard():
            self._cursor.execute(
                f'SELECT "key", "value" FROM {self._table} WHERE "key" LIKE %s ORDER BY "key"',
                (_like_prefix(prefix),),
            )
            return [(r[0], r[1]) for r in self._cursor.fetchall()]
