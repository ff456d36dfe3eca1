"""SQLite adapter using aiosqlite.

Read-only statements open the file with ``mode=ro``, so even a statement
that slipped past classification cannot write through this connection.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from sqlgate.adapters._base import (
    ColumnInfo,
    ConnectionConfig,
    ConnectionSummary,
    DatabaseType,
    ForeignKeyInfo,
    IndexInfo,
    ResultSet,
    SchemaSnapshot,
    TableInfo,
    ViewInfo,
)
from sqlgate.adapters._execution import (
    cap_rows,
    fetch_size,
    require_config,
    run_with_timeout,
    shape_rows,
)
from sqlgate.diagnostics import ConnectionFailed, EngineError, InvalidInput, QueryFailed
from sqlgate.policy import CapabilitySet, OperationCategory, enforce

log = logging.getLogger(__name__)

_DIALECT = "sqlite"
_MEMORY = ":memory:"
_BUSY_TIMEOUT = 5.0
_AUTOINDEX_PREFIX = "sqlite_autoindex_"

_RELATIONS_SQL = (
    "SELECT name, type FROM sqlite_master "
    "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
    "ORDER BY name"
)
_COLUMNS_SQL = 'SELECT name, type, "notnull", dflt_value, pk FROM pragma_table_info(?)'
_FOREIGN_KEYS_SQL = (
    'SELECT id, "table", "from", "to" FROM pragma_foreign_key_list(?) ORDER BY id, seq'
)
_INDEX_LIST_SQL = 'SELECT name, "unique" FROM pragma_index_list(?) ORDER BY name'
_INDEX_INFO_SQL = "SELECT name FROM pragma_index_info(?) ORDER BY seqno"


def resolve_path(path: str, read_only: bool) -> tuple[str, bool]:
    """Return the (database, uri) pair for ``aiosqlite.connect``.

    ``as_uri`` percent-encodes ``#``, ``?`` and ``%`` so they stay part of the path.
    """
    if read_only and path not in (_MEMORY, ""):
        return f"{Path(path).resolve().as_uri()}?mode=ro", True
    return path, False


class SQLiteAdapter:
    """SQLite execution contract. Every call opens and closes its own connection."""

    def db_type(self) -> DatabaseType:
        return DatabaseType.SQLITE

    async def check_connectivity(self, config: ConnectionConfig) -> ConnectionSummary:
        _validate(config)
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.execute("SELECT sqlite_version()") as cur:
                    row = await cur.fetchone()
            except sqlite3.Error as e:
                raise ConnectionFailed(f"SQLite probe failed: {e}") from e

        version = row[0] if row else "unknown"
        path = config.params["path"]
        return ConnectionSummary(
            database_version=version,
            server_info=f"SQLite {version}",
            connected_database=path if path == _MEMORY else Path(path).name,
            user=None,
        )

    async def describe_schema(
        self, config: ConnectionConfig, scope: str | None = None
    ) -> SchemaSnapshot:
        """Enumerate tables and views. SQLite has no schemas to scope by."""
        _validate(config)
        if scope is not None:
            raise InvalidInput("SQLite does not support schema or database filters")

        snapshot = SchemaSnapshot()
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.execute(_RELATIONS_SQL) as cur:
                    relations = await cur.fetchall()
                for name, kind in relations:
                    if kind == "view":
                        columns, _ = await _columns(conn, name)
                        snapshot.views.append(ViewInfo(schema=None, name=name, columns=columns))
                    else:
                        snapshot.tables.append(await _describe_table(conn, name))
            except sqlite3.Error as e:
                raise EngineError(_DIALECT, f"introspection failed: {e}") from e

        return snapshot

    async def run_statement(
        self, config: ConnectionConfig, sql: str, caps: CapabilitySet
    ) -> ResultSet:
        """Authorize ``sql`` against ``caps``, then execute it.

        Raises InvalidInput or CapabilityViolation before the database file is
        opened when the statement is not permitted.
        """
        _validate(config)
        decision = enforce(sql, dialect=_DIALECT, caps=caps)
        max_rows = decision.params.max_rows
        read_only = decision.category == OperationCategory.READ_ONLY

        async with _connect(config, read_only=read_only) as conn:

            async def _execute() -> tuple[list[str], list[tuple], bool, int | None]:
                async with conn.execute(sql) as cur:
                    if cur.description is None:
                        return [], [], False, cur.rowcount
                    names = [desc[0] for desc in cur.description]
                    size = fetch_size(max_rows)
                    raw = await cur.fetchall() if size is None else await cur.fetchmany(size)
                    kept, truncated = cap_rows(list(raw), max_rows)
                    return names, kept, truncated, None

            t0 = time.monotonic()
            try:
                columns, raw_rows, truncated, affected = await run_with_timeout(
                    _execute, decision.params.timeout, conn.interrupt, dialect=_DIALECT
                )
            except sqlite3.Error as e:
                raise QueryFailed(f"SQLite execution failed: {e}") from e
            duration_ms = (time.monotonic() - t0) * 1000

        return ResultSet(
            category=decision.category,
            columns=columns,
            rows=shape_rows(columns, raw_rows),
            rows_affected=affected,
            truncated=truncated,
            duration_ms=duration_ms,
        )


def _validate(config: ConnectionConfig) -> None:
    require_config(config, DatabaseType.SQLITE, "path")


async def _columns(
    conn: aiosqlite.Connection, table: str
) -> tuple[list[ColumnInfo], list[str]]:
    """Columns of ``table`` plus its primary key columns in key order."""
    async with conn.execute(_COLUMNS_SQL, (table,)) as cur:
        rows = await cur.fetchall()
    columns = [
        ColumnInfo(
            name=name,
            data_type=data_type or "",
            nullable=not notnull,
            default=None if default is None else str(default),
        )
        for name, data_type, notnull, default, _ in rows
    ]
    primary_key = [row[0] for row in sorted((r for r in rows if r[4]), key=lambda r: r[4])]
    return columns, primary_key


async def _describe_table(conn: aiosqlite.Connection, name: str) -> TableInfo:
    columns, primary_key = await _columns(conn, name)
    table = TableInfo(schema=None, name=name, columns=columns, primary_key=primary_key)

    async with conn.execute(_FOREIGN_KEYS_SQL, (name,)) as cur:
        fk_rows = await cur.fetchall()
    by_id: dict[int, ForeignKeyInfo] = {}
    for fk_id, ref_table, column, ref_column in fk_rows:
        fk = by_id.get(fk_id)
        if fk is None:
            # SQLite foreign keys are unnamed.
            fk = ForeignKeyInfo(
                name=f"fk_{name}_{fk_id}",
                columns=[],
                referenced_table=ref_table,
                referenced_columns=[],
            )
            by_id[fk_id] = fk
            table.foreign_keys.append(fk)
        fk.columns.append(column)
        # A NULL target means the referenced table's primary key.
        if ref_column is not None:
            fk.referenced_columns.append(ref_column)

    async with conn.execute(_INDEX_LIST_SQL, (name,)) as cur:
        index_rows = await cur.fetchall()
    for index_name, unique in index_rows:
        if index_name.startswith(_AUTOINDEX_PREFIX):
            continue
        async with conn.execute(_INDEX_INFO_SQL, (index_name,)) as cur:
            index_columns = [r[0] for r in await cur.fetchall() if r[0] is not None]
        table.indexes.append(
            IndexInfo(name=index_name, columns=index_columns, unique=bool(unique))
        )

    return table


@asynccontextmanager
async def _connect(
    config: ConnectionConfig, *, read_only: bool
) -> AsyncIterator[aiosqlite.Connection]:
    database, uri = resolve_path(config.params["path"], read_only)
    try:
        conn = await aiosqlite.connect(
            database, uri=uri, isolation_level=None, timeout=_BUSY_TIMEOUT
        )
    except sqlite3.Error as e:
        raise ConnectionFailed(f"SQLite open failed for {config.name}: {e}") from e

    log.debug("sqlite connection opened for %s (read_only=%s)", config.name, read_only)
    try:
        yield conn
    finally:
        await conn.close()
        log.debug("sqlite connection closed for %s", config.name)
