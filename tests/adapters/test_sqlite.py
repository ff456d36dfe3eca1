"""Tests for SQLiteAdapter against temporary database files."""

from __future__ import annotations

import asyncio
import sqlite3

import aiosqlite
import pytest

from sqlgate.adapters._base import (
    ConnectionConfig,
    DatabaseType,
    ForeignKeyInfo,
    IndexInfo,
)
from sqlgate.adapters.sqlite import SQLiteAdapter, resolve_path
from sqlgate.diagnostics import (
    CapabilityViolation,
    ConnectionFailed,
    InvalidInput,
    QueryFailed,
    QueryTimeout,
)
from sqlgate.policy import CapabilitySet, OperationCategory

INFINITE_CTE = (
    "WITH RECURSIVE r(n) AS (SELECT 1 UNION ALL SELECT n + 1 FROM r) "
    "SELECT count(*) FROM r"
)


def _run(config: ConnectionConfig, sql: str, **caps):
    return asyncio.run(SQLiteAdapter().run_statement(config, sql, CapabilitySet(**caps)))


# -- resolve_path() --


def test_resolve_path_read_only_uses_uri():
    assert resolve_path("/data/app.db", True) == ("file:///data/app.db?mode=ro", True)


def test_resolve_path_escapes_uri_delimiters():
    database, uri = resolve_path("/data/shop#1?v=2%.db", True)
    assert uri
    assert database == "file:///data/shop%231%3Fv%3D2%25.db?mode=ro"


def test_resolve_path_relative_made_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    database, _ = resolve_path("app.db", True)
    assert database == f"{(tmp_path / 'app.db').resolve().as_uri()}?mode=ro"


def test_resolve_path_writable():
    assert resolve_path("/data/app.db", False) == ("/data/app.db", False)


def test_resolve_path_memory_never_uri():
    assert resolve_path(":memory:", True) == (":memory:", False)


# -- config validation --


def test_missing_path_rejected():
    config = ConnectionConfig(name="x", db_type=DatabaseType.SQLITE, params={})
    with pytest.raises(InvalidInput, match="path"):
        _run(config, "SELECT 1")


def test_wrong_database_type_rejected(sqlite_path):
    config = ConnectionConfig(
        name="x", db_type=DatabaseType.POSTGRES, params={"path": sqlite_path}
    )
    with pytest.raises(InvalidInput, match="expected sqlite"):
        _run(config, "SELECT 1")


def test_missing_file_read_only_fails_to_connect(tmp_path):
    config = ConnectionConfig(
        name="gone", db_type=DatabaseType.SQLITE, params={"path": str(tmp_path / "gone.db")}
    )
    with pytest.raises(ConnectionFailed):
        _run(config, "SELECT 1")
    assert not (tmp_path / "gone.db").exists()


# -- check_connectivity() --


def test_check_connectivity(sqlite_config):
    summary = asyncio.run(SQLiteAdapter().check_connectivity(sqlite_config))
    assert summary.server_info.startswith("SQLite ")
    assert summary.database_version == sqlite3.sqlite_version
    assert summary.connected_database == "shop.db"
    assert summary.user is None


def test_check_connectivity_memory():
    config = ConnectionConfig(name="mem", db_type=DatabaseType.SQLITE, params={"path": ":memory:"})
    summary = asyncio.run(SQLiteAdapter().check_connectivity(config))
    assert summary.connected_database == ":memory:"


# -- describe_schema() --


def test_describe_schema_tables_and_views(sqlite_config):
    snapshot = asyncio.run(SQLiteAdapter().describe_schema(sqlite_config))
    assert [t.name for t in snapshot.tables] == ["customers", "orders"]
    assert [v.name for v in snapshot.views] == ["big_orders"]
    assert [c.name for c in snapshot.views[0].columns] == ["id", "total"]


def test_describe_schema_columns(sqlite_config):
    snapshot = asyncio.run(SQLiteAdapter().describe_schema(sqlite_config))
    customers = snapshot.tables[0]
    by_name = {c.name: c for c in customers.columns}
    assert by_name["id"].data_type == "INTEGER"
    assert by_name["email"].nullable is False
    assert by_name["name"].default == "'anonymous'"
    assert customers.primary_key == ["id"]
    assert customers.schema is None


def test_describe_schema_keys_and_indexes(sqlite_config):
    snapshot = asyncio.run(SQLiteAdapter().describe_schema(sqlite_config))
    customers, orders = snapshot.tables
    # The UNIQUE constraint's automatic index is not reported.
    assert customers.indexes == []
    assert orders.foreign_keys == [
        ForeignKeyInfo(
            name="fk_orders_0",
            columns=["customer_id"],
            referenced_table="customers",
            referenced_columns=["id"],
        )
    ]
    assert orders.indexes == [
        IndexInfo(name="idx_orders_customer", columns=["customer_id"], unique=False)
    ]


def test_describe_schema_rejects_scope(sqlite_config):
    with pytest.raises(InvalidInput, match="does not support"):
        asyncio.run(SQLiteAdapter().describe_schema(sqlite_config, "main"))


# -- run_statement() --


def test_select(sqlite_config):
    result = _run(sqlite_config, "SELECT id, name FROM customers ORDER BY id")
    assert result.category == OperationCategory.READ_ONLY
    assert result.columns == ["id", "name"]
    assert result.rows == [
        {"id": 1, "name": "Ada"},
        {"id": 2, "name": "Bob"},
        {"id": 3, "name": "Cy"},
    ]
    assert result.row_count == 3
    assert result.truncated is False
    assert result.rows_affected is None
    assert result.duration_ms is not None and result.duration_ms >= 0


def test_max_rows_truncates(sqlite_config):
    result = _run(sqlite_config, "SELECT id FROM customers ORDER BY id", max_rows=2)
    assert result.rows == [{"id": 1}, {"id": 2}]
    assert result.truncated is True


def test_max_rows_exact_fit_not_truncated(sqlite_config):
    result = _run(sqlite_config, "SELECT id FROM customers", max_rows=3)
    assert result.row_count == 3
    assert result.truncated is False


def test_max_rows_zero(sqlite_config):
    result = _run(sqlite_config, "SELECT id FROM customers", max_rows=0)
    assert result.columns == ["id"]
    assert result.rows == []
    assert result.truncated is True


def test_blob_base64(sqlite_config):
    result = _run(sqlite_config, "SELECT receipt FROM orders WHERE id = 2")
    assert result.rows == [{"receipt": "3q2+7w=="}]


def test_write_with_capability(sqlite_config, sqlite_path):
    result = _run(
        sqlite_config,
        "INSERT INTO customers (id, email) VALUES (4, 'd@example.com')",
        allow_write=True,
    )
    assert result.category == OperationCategory.WRITE
    assert result.columns == []
    assert result.rows_affected == 1

    conn = sqlite3.connect(sqlite_path)
    try:
        assert conn.execute("SELECT count(*) FROM customers").fetchone()[0] == 4
    finally:
        conn.close()


def test_ddl_with_capability(sqlite_config):
    result = _run(sqlite_config, "CREATE TABLE notes (body TEXT)", allow_ddl=True)
    assert result.category == OperationCategory.DDL
    snapshot = asyncio.run(SQLiteAdapter().describe_schema(sqlite_config))
    assert "notes" in [t.name for t in snapshot.tables]


def test_ddl_denied_with_write_only(sqlite_config, sqlite_path):
    with pytest.raises(CapabilityViolation, match="--allow-ddl"):
        _run(sqlite_config, "DROP TABLE orders", allow_write=True)

    conn = sqlite3.connect(sqlite_path)
    try:
        assert conn.execute("SELECT count(*) FROM orders").fetchone()[0] == 3
    finally:
        conn.close()


def test_denied_statement_never_connects(sqlite_config, monkeypatch):
    def _no_connect(*args, **kwargs):
        raise AssertionError("connection opened for a denied statement")

    monkeypatch.setattr("sqlgate.adapters.sqlite.aiosqlite.connect", _no_connect)
    with pytest.raises(CapabilityViolation):
        _run(sqlite_config, "DELETE FROM orders")
    with pytest.raises(InvalidInput, match="multi-statement"):
        _run(sqlite_config, "SELECT 1; DELETE FROM orders", allow_write=True)


def test_query_failure(sqlite_config):
    with pytest.raises(QueryFailed, match="no such table"):
        _run(sqlite_config, "SELECT * FROM missing")


def test_pragma_introspection_runs_read_only(sqlite_config):
    result = _run(sqlite_config, "PRAGMA table_info(customers)")
    assert result.category == OperationCategory.READ_ONLY
    assert [row["name"] for row in result.rows] == ["id", "email", "name"]


def test_timeout(sqlite_config):
    with pytest.raises(QueryTimeout) as exc_info:
        _run(sqlite_config, INFINITE_CTE, timeout=0.2)
    assert exc_info.value.code == "QUERY_TIMEOUT"

    # The database is still usable afterwards.
    assert _run(sqlite_config, "SELECT 1 AS x").rows == [{"x": 1}]


def test_timeout_closes_connection(sqlite_config, monkeypatch):
    closed = []
    original_close = aiosqlite.Connection.close

    async def _close(self):
        closed.append(self)
        await original_close(self)

    monkeypatch.setattr(aiosqlite.Connection, "close", _close)
    with pytest.raises(QueryTimeout):
        _run(sqlite_config, INFINITE_CTE, timeout=0.2)
    assert len(closed) == 1


def test_read_only_path_with_uri_delimiters(tmp_path):
    path = tmp_path / "shop#1.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (7)")
    conn.commit()
    conn.close()
    config = ConnectionConfig(
        name="hash", db_type=DatabaseType.SQLITE, params={"path": str(path)}
    )

    assert _run(config, "SELECT id FROM t").rows == [{"id": 7}]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["shop#1.db"]


def test_concurrent_statements(sqlite_config):
    adapter = SQLiteAdapter()

    async def _both():
        caps = CapabilitySet()
        return await asyncio.gather(
            adapter.run_statement(sqlite_config, "SELECT count(*) AS n FROM customers", caps),
            adapter.run_statement(sqlite_config, "SELECT count(*) AS n FROM orders", caps),
        )

    first, second = asyncio.run(_both())
    assert first.rows == [{"n": 3}]
    assert second.rows == [{"n": 3}]
