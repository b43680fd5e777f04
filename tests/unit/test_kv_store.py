from __future__ import annotations

import psycopg2
import psycopg2.errors
import pytest

from sales_ingest.db.kv_store import (
    InMemoryKeyValueStore,
    PostgresKeyValueStore,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    WriteMetrics,
)


class DummyConnection:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class DummyCursor:
    def __init__(self) -> None:
        self.connection = DummyConnection()
        self.queries: list[tuple[str, object]] = []
        self.fetched: list[tuple] = []
        self.rowcount = -1
        self.fail_with: Exception | None = None

    def execute(self, sql, params=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.queries.append((sql, params))

    def fetchone(self):
        return self.fetched[0] if self.fetched else None

    def fetchall(self):
        return self.fetched


# execute_values is patched inside the module so no database is needed
@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import sales_ingest.db.kv_store as kv

    calls = []

    def fake_execute_values(cursor, sql, rows, page_size=1000, template=None):
        if cursor.fail_with is not None:
            raise cursor.fail_with
        calls.append((sql, list(rows), page_size))

    monkeypatch.setattr(kv, "execute_values", fake_execute_values)
    return calls


def test_in_memory_store_operations():
    store = InMemoryKeyValueStore({"sale_2": {"n": 2}})
    store.set("sale_1", {"n": 1})
    assert store.mset({"return_1": {"n": 3}, "inventory_x": {}}) == 2
    assert store.get("sale_1") == {"n": 1}
    assert store.get("missing") is None
    assert store.get_by_prefix("sale_") == [("sale_1", {"n": 1}), ("sale_2", {"n": 2})]
    assert store.mdel(["sale_1", "nope"]) == 1
    store.delete("sale_2")
    assert store.get_by_prefix("sale_") == []


def test_postgres_mset_upserts_json(patch_execute_values):
    cur = DummyCursor()
    metrics: list[WriteMetrics] = []
    store = PostgresKeyValueStore(cur, table="kv_test", page_size=50, metrics_callback=metrics.append)
    assert store.mset({"sale_1": {"amount": 10}, "sale_2": {"amount": 20}}) == 2
    sql, rows, page_size = patch_execute_values[0]
    assert sql.startswith('INSERT INTO kv_test ("key", "value") VALUES %s')
    assert 'ON CONFLICT ("key") DO UPDATE' in sql
    assert [k for k, _ in rows] == ["sale_1", "sale_2"]
    assert rows[0][1].adapted == {"amount": 10}
    assert page_size == 50
    assert cur.connection.commits == 1
    assert metrics[0].batch_size == 2


def test_postgres_mset_empty_is_noop(patch_execute_values):
    cur = DummyCursor()
    assert PostgresKeyValueStore(cur).mset({}) == 0
    assert patch_execute_values == []
    assert cur.connection.commits == 0


def test_postgres_prefix_scan_escapes_like_wildcards():
    cur = DummyCursor()
    cur.fetched = [("sale_1", {"a": 1})]
    rows = PostgresKeyValueStore(cur).get_by_prefix("sale_")
    sql, params = cur.queries[0]
    assert "LIKE %s" in sql
    assert params == ("sale\\_%",)
    assert rows == [("sale_1", {"a": 1})]


def test_postgres_get_and_mdel():
    cur = DummyCursor()
    cur.fetched = [({"a": 1},)]
    store = PostgresKeyValueStore(cur)
    assert store.get("k") == {"a": 1}
    cur.rowcount = 2
    assert store.mdel(["a", "b", "c"]) == 2
    assert cur.queries[-1][1] == (["a", "b", "c"],)
    assert cur.connection.commits == 1


def test_connection_failures_are_classified():
    cur = DummyCursor()
    cur.fail_with = psycopg2.OperationalError("server closed the connection")
    store = PostgresKeyValueStore(cur)
    with pytest.raises(StoreConnectionError):
        store.mset({"k": 1})
    assert cur.connection.rollbacks == 1


def test_other_driver_errors_are_store_errors():
    cur = DummyCursor()
    cur.fail_with = psycopg2.DataError("invalid input syntax for type json")
    with pytest.raises(StoreError) as exc:
        PostgresKeyValueStore(cur).get("k")
    assert not isinstance(exc.value, StoreConnectionError)


def test_ensure_table_commits():
    cur = DummyCursor()
    PostgresKeyValueStore(cur, table="kv_x").ensure_table()
    assert "CREATE TABLE IF NOT EXISTS kv_x" in cur.queries[0][0]
    assert cur.connection.commits == 1


def test_statement_timeout_is_a_timeout_error():
    cur = DummyCursor()
    cur.fail_with = psycopg2.errors.QueryCanceled("canceling statement due to statement timeout")
    with pytest.raises(StoreTimeoutError):
        PostgresKeyValueStore(cur).mset({"sale_1": {"amount": 10}})
    assert cur.connection.rollbacks == 1
    assert cur.connection.commits == 0
