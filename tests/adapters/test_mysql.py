"""Tests for MySQLAdapter.

Unit tests run everywhere. Integration tests need a MySQL or MariaDB server
and SQLGATE_TEST_MYSQL=1 (see SQLGATE_MYSQL_* in conftest.py).
"""

from __future__ import annotations

import asyncio

import pytest

aiomysql = pytest.importorskip("aiomysql")

from sqlgate.adapters._base import ConnectionConfig, DatabaseType  # noqa: E402
from sqlgate.adapters.mysql import MySQLAdapter, parse_server_version  # noqa: E402
from sqlgate.diagnostics import (  # noqa: E402
    CapabilityViolation,
    InvalidInput,
    QueryFailed,
    QueryTimeout,
)
from sqlgate.policy import CapabilitySet, OperationCategory  # noqa: E402


def _run(config: ConnectionConfig, sql: str, **caps):
    return asyncio.run(MySQLAdapter().run_statement(config, sql, CapabilitySet(**caps)))


# -- parse_server_version() --


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("8.0.35", ("8.0.35", "MySQL 8.0.35")),
        ("8.4.0 MySQL Community Server", ("8.4.0", "MySQL 8.4.0")),
        ("10.11.2-MariaDB", ("10.11.2", "MariaDB 10.11.2")),
        ("10.6.16-MariaDB-1:10.6.16+maria~ubu2004", ("10.6.16", "MariaDB 10.6.16")),
        ("5.5.5-10.3.39-MariaDB-0+deb10u1", ("10.3.39", "MariaDB 10.3.39")),
    ],
)
def test_parse_server_version(raw, expected):
    assert parse_server_version(raw) == expected


# -- validation, no server needed --


def test_database_required():
    config = ConnectionConfig(
        name="m", db_type=DatabaseType.MYSQL, params={"host": "h", "user": "u"}
    )
    with pytest.raises(InvalidInput, match="missing: database"):
        _run(config, "SELECT 1")


def test_bad_port():
    config = ConnectionConfig(
        name="m",
        db_type=DatabaseType.MYSQL,
        params={"host": "h", "user": "u", "database": "d", "port": "nope"},
    )
    with pytest.raises(InvalidInput, match="port"):
        _run(config, "SELECT 1")


def test_denied_statement_never_connects(monkeypatch):
    async def _no_connect(*args, **kwargs):
        raise AssertionError("connection opened for a denied statement")

    monkeypatch.setattr("sqlgate.adapters.mysql.aiomysql.connect", _no_connect)
    config = ConnectionConfig(
        name="m", db_type=DatabaseType.MYSQL, params={"host": "h", "user": "u", "database": "d"}
    )
    with pytest.raises(CapabilityViolation):
        _run(config, "LOCK TABLES orders WRITE", allow_write=True)
    with pytest.raises(CapabilityViolation):
        _run(config, "/*!50000 DROP TABLE orders */")


class _RecordingCursor:
    def __init__(self, statements):
        self.statements = statements

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql):
        self.statements.append(sql)


class _RecordingConnection:
    def __init__(self):
        self.statements = []
        self.closed = False

    def cursor(self):
        return _RecordingCursor(self.statements)

    def close(self):
        self.closed = True


@pytest.mark.parametrize("read_only", [True, False])
def test_session_keeps_backslash_escapes(monkeypatch, read_only):
    from sqlgate.adapters.mysql import _connect

    conn = _RecordingConnection()

    async def _fake_connect(**kwargs):
        return conn

    async def _open():
        async with _connect(config, read_only=read_only):
            pass

    monkeypatch.setattr("sqlgate.adapters.mysql.aiomysql.connect", _fake_connect)
    config = ConnectionConfig(
        name="m", db_type=DatabaseType.MYSQL, params={"host": "h", "user": "u", "database": "d"}
    )
    asyncio.run(_open())

    assert "NO_BACKSLASH_ESCAPES" in conn.statements[0]
    assert ("SET SESSION TRANSACTION READ ONLY" in conn.statements) is read_only
    assert conn.closed


# -- integration --


@pytest.mark.mysql
def test_check_connectivity(mysql_config):
    summary = asyncio.run(MySQLAdapter().check_connectivity(mysql_config))
    assert summary.server_info.split()[0] in ("MySQL", "MariaDB")
    assert summary.connected_database == mysql_config.params["database"]


@pytest.mark.mysql
def test_select_with_truncation(mysql_config):
    sql = "SELECT 1 AS n UNION ALL SELECT 2 UNION ALL SELECT 3"
    result = _run(mysql_config, sql, max_rows=2)
    assert result.category == OperationCategory.READ_ONLY
    assert result.rows == [{"n": 1}, {"n": 2}]
    assert result.truncated is True


@pytest.mark.mysql
def test_backslash_escape_in_string(mysql_config):
    result = _run(mysql_config, r"SELECT 'a\'b' AS s")
    assert result.rows == [{"s": "a'b"}]


@pytest.mark.mysql
def test_read_only_session_blocks_writes(mysql_config):
    _run(mysql_config, "DROP TABLE IF EXISTS sqlgate_ro", allow_ddl=True)
    _run(mysql_config, "CREATE TABLE sqlgate_ro (id INT PRIMARY KEY)", allow_ddl=True)
    # Classified read-only, so it runs in a READ ONLY session.
    with pytest.raises(QueryFailed):
        asyncio.run(_write_in_read_only_session(mysql_config))
    _run(mysql_config, "DROP TABLE sqlgate_ro", allow_ddl=True)


async def _write_in_read_only_session(config):
    from sqlgate.adapters.mysql import _connect

    async with _connect(config, read_only=True) as conn:
        async with conn.cursor() as cur:
            try:
                await cur.execute("INSERT INTO sqlgate_ro VALUES (1)")
            except aiomysql.Error as e:
                raise QueryFailed(str(e)) from e


@pytest.mark.mysql
def test_describe_schema(mysql_config):
    _run(mysql_config, "DROP TABLE IF EXISTS sqlgate_child", allow_ddl=True)
    _run(mysql_config, "DROP TABLE IF EXISTS sqlgate_parent", allow_ddl=True)
    _run(mysql_config, "CREATE TABLE sqlgate_parent (id INT PRIMARY KEY)", allow_ddl=True)
    _run(
        mysql_config,
        "CREATE TABLE sqlgate_child (id INT PRIMARY KEY, parent_id INT NOT NULL, "
        "CONSTRAINT fk_child_parent FOREIGN KEY (parent_id) REFERENCES sqlgate_parent (id))",
        allow_ddl=True,
    )
    snapshot = asyncio.run(MySQLAdapter().describe_schema(mysql_config))
    child = next(t for t in snapshot.tables if t.name == "sqlgate_child")
    assert child.primary_key == ["id"]
    assert [fk.name for fk in child.foreign_keys] == ["fk_child_parent"]
    assert child.foreign_keys[0].referenced_columns == ["id"]
    _run(mysql_config, "DROP TABLE sqlgate_child", allow_ddl=True)
    _run(mysql_config, "DROP TABLE sqlgate_parent", allow_ddl=True)


@pytest.mark.mysql
def test_timeout(mysql_config):
    with pytest.raises(QueryTimeout):
        _run(mysql_config, "SELECT SLEEP(5)", timeout=0.3)
