"""MySQL / MariaDB adapter using aiomysql."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiomysql

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
    port_param,
    require_config,
    run_with_timeout,
    shape_rows,
)
from sqlgate.diagnostics import ConnectionFailed, EngineError, QueryFailed, redact
from sqlgate.policy import CapabilitySet, OperationCategory, enforce

log = logging.getLogger(__name__)

_DIALECT = "mysql"
_CONNECT_TIMEOUT = 10

# Statements are lexed with backslash escapes in strings, so no session may disable them.
_ESCAPING_SQL = (
    "SET SESSION sql_mode = TRIM(BOTH ',' FROM REPLACE("
    "CONCAT(',', @@SESSION.sql_mode, ','), ',NO_BACKSLASH_ESCAPES,', ','))"
)
_READ_ONLY_SQL = "SET SESSION TRANSACTION READ ONLY"

# MariaDB advertises itself behind this prefix for old replication clients.
_MARIADB_COMPAT_PREFIX = "5.5.5-"

_TABLES_SQL = """
SELECT table_name, table_type
FROM information_schema.tables
WHERE table_schema = %s
ORDER BY table_name
"""

_COLUMNS_SQL = """
SELECT table_name, column_name, column_type, is_nullable, column_default
FROM information_schema.columns
WHERE table_schema = %s
ORDER BY table_name, ordinal_position
"""

_KEY_COLUMNS_SQL = """
SELECT table_name, constraint_name, column_name,
       referenced_table_schema, referenced_table_name, referenced_column_name
FROM information_schema.key_column_usage
WHERE table_schema = %s
  AND (constraint_name = 'PRIMARY' OR referenced_table_name IS NOT NULL)
ORDER BY table_name, constraint_name, ordinal_position
"""

_INDEXES_SQL = """
SELECT table_name, index_name, column_name, non_unique
FROM information_schema.statistics
WHERE table_schema = %s AND index_name <> 'PRIMARY'
ORDER BY table_name, index_name, seq_in_index
"""


def parse_server_version(raw: str) -> tuple[str, str]:
    """Split ``SELECT VERSION()`` output into (version, server description).

    >>> parse_server_version("10.11.2-MariaDB")
    ('10.11.2', 'MariaDB 10.11.2')
    >>> parse_server_version("8.0.35")
    ('8.0.35', 'MySQL 8.0.35')
    """
    if "MARIADB" in raw.upper():
        if raw.startswith(_MARIADB_COMPAT_PREFIX):
            raw = raw[len(_MARIADB_COMPAT_PREFIX):]
        version = raw.split("-", 1)[0]
        return version, f"MariaDB {version}"
    parts = raw.split()
    version = parts[0] if parts else raw
    return version, f"MySQL {version}"


class MySQLAdapter:
    """MySQL execution contract. Every call opens and closes its own connection."""

    def db_type(self) -> DatabaseType:
        return DatabaseType.MYSQL

    async def check_connectivity(self, config: ConnectionConfig) -> ConnectionSummary:
        _validate(config)
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT VERSION(), DATABASE(), CURRENT_USER()")
                    row = await cur.fetchone()
            except aiomysql.Error as e:
                raise ConnectionFailed(f"MySQL probe failed: {_redact(e, config)}") from e

        if row is None:
            raise ConnectionFailed("MySQL probe returned no rows")
        raw_version, database, user = row
        version, server_info = parse_server_version(raw_version)
        return ConnectionSummary(
            database_version=version,
            server_info=server_info,
            connected_database=database,
            user=user,
        )

    async def describe_schema(
        self, config: ConnectionConfig, scope: str | None = None
    ) -> SchemaSnapshot:
        """Enumerate tables and views of ``scope`` (default: the connected database)."""
        _validate(config)
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.cursor() as cur:
                    database = scope
                    if database is None:
                        await cur.execute("SELECT DATABASE()")
                        (database,) = await cur.fetchone()
                    if not database:
                        raise EngineError(_DIALECT, "no database selected")
                    await cur.execute(_TABLES_SQL, (database,))
                    relations = await cur.fetchall()
                    await cur.execute(_COLUMNS_SQL, (database,))
                    column_rows = await cur.fetchall()
                    await cur.execute(_KEY_COLUMNS_SQL, (database,))
                    key_rows = await cur.fetchall()
                    await cur.execute(_INDEXES_SQL, (database,))
                    index_rows = await cur.fetchall()
            except aiomysql.Error as e:
                raise EngineError(
                    _DIALECT, f"introspection failed: {_redact(e, config)}"
                ) from e

        columns: dict[str, list[ColumnInfo]] = {}
        for table, name, data_type, nullable, default in column_rows:
            columns.setdefault(table, []).append(
                ColumnInfo(
                    name=name,
                    data_type=data_type,
                    nullable=(nullable == "YES"),
                    default=None if default is None else str(default),
                )
            )

        snapshot = SchemaSnapshot()
        tables: dict[str, TableInfo] = {}
        for name, table_type in relations:
            if table_type == "VIEW":
                snapshot.views.append(
                    ViewInfo(schema=database, name=name, columns=columns.get(name, []))
                )
                continue
            tables[name] = TableInfo(
                schema=database, name=name, columns=columns.get(name, [])
            )
            snapshot.tables.append(tables[name])

        foreign_keys: dict[tuple[str, str], ForeignKeyInfo] = {}
        for table, constraint, column, ref_schema, ref_table, ref_column in key_rows:
            if table not in tables:
                continue
            if constraint == "PRIMARY":
                tables[table].primary_key.append(column)
                continue
            fk = foreign_keys.get((table, constraint))
            if fk is None:
                referenced = ref_table if ref_schema == database else f"{ref_schema}.{ref_table}"
                fk = ForeignKeyInfo(
                    name=constraint,
                    columns=[],
                    referenced_table=referenced,
                    referenced_columns=[],
                )
                foreign_keys[(table, constraint)] = fk
                tables[table].foreign_keys.append(fk)
            fk.columns.append(column)
            fk.referenced_columns.append(ref_column)

        indexes: dict[tuple[str, str], IndexInfo] = {}
        for table, index_name, column, non_unique in index_rows:
            if table not in tables:
                continue
            index = indexes.get((table, index_name))
            if index is None:
                index = IndexInfo(name=index_name, columns=[], unique=not int(non_unique))
                indexes[(table, index_name)] = index
                tables[table].indexes.append(index)
            if column is not None:
                index.columns.append(column)

        return snapshot

    async def run_statement(
        self, config: ConnectionConfig, sql: str, caps: CapabilitySet
    ) -> ResultSet:
        """Authorize ``sql`` against ``caps``, then execute it.

        Raises InvalidInput or CapabilityViolation before any connection is
        opened when the statement is not permitted.
        """
        _validate(config)
        decision = enforce(sql, dialect=_DIALECT, caps=caps)
        max_rows = decision.params.max_rows
        read_only = decision.category == OperationCategory.READ_ONLY

        async with _connect(config, read_only=read_only) as conn:

            async def _execute() -> tuple[list[str], list[tuple], bool, int | None]:
                async with conn.cursor() as cur:
                    await cur.execute(sql)
                    if cur.description is None:
                        return [], [], False, cur.rowcount
                    names = [desc[0] for desc in cur.description]
                    size = fetch_size(max_rows)
                    raw = await cur.fetchall() if size is None else await cur.fetchmany(size)
                    kept, truncated = cap_rows(list(raw), max_rows)
                    return names, kept, truncated, None

            t0 = time.monotonic()
            try:
                # aiomysql cannot cancel server-side; closing the socket ends the session.
                columns, raw_rows, truncated, affected = await run_with_timeout(
                    _execute, decision.params.timeout, conn.close, dialect=_DIALECT
                )
            except aiomysql.Error as e:
                raise QueryFailed(f"MySQL execution failed: {_redact(e, config)}") from e
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
    require_config(config, DatabaseType.MYSQL, "host", "user", "database")


def _redact(error: BaseException, config: ConnectionConfig) -> str:
    return redact(str(error), [config.params.get("password")])


@asynccontextmanager
async def _connect(
    config: ConnectionConfig, *, read_only: bool
) -> AsyncIterator[aiomysql.Connection]:
    params = config.params
    try:
        conn = await aiomysql.connect(
            host=params["host"],
            port=port_param(config, 3306),
            user=params["user"],
            password=params.get("password") or "",
            db=params["database"],
            autocommit=True,
            connect_timeout=_CONNECT_TIMEOUT,
        )
    except (aiomysql.Error, OSError) as e:
        raise ConnectionFailed(f"MySQL connection failed: {_redact(e, config)}") from e

    log.debug("mysql connection opened for %s (read_only=%s)", config.name, read_only)
    try:
        try:
            async with conn.cursor() as cur:
                await cur.execute(_ESCAPING_SQL)
                if read_only:
                    await cur.execute(_READ_ONLY_SQL)
        except aiomysql.Error as e:
            raise ConnectionFailed(
                f"MySQL session setup failed: {_redact(e, config)}"
            ) from e
        yield conn
    finally:
        conn.close()
        log.debug("mysql connection closed for %s", config.name)
