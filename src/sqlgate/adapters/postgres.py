"""PostgreSQL adapter using psycopg (async)."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import psycopg

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

_DIALECT = "postgres"
# Statements are lexed with standard-conforming strings, so every session uses them.
_SESSION_OPTIONS = "-c standard_conforming_strings=on"
_READ_ONLY_OPTIONS = f"{_SESSION_OPTIONS} -c default_transaction_read_only=on"

# (%(schema)s IS NULL OR ...) keeps every query static; scope is optional.
_TABLES_SQL = """
SELECT table_schema, table_name, table_type
FROM information_schema.tables
WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
  AND table_schema NOT LIKE 'pg_toast%%'
  AND (%(schema)s::text IS NULL OR table_schema::text = %(schema)s::text)
ORDER BY table_schema, table_name
"""

_COLUMNS_SQL = """
SELECT table_schema, table_name, column_name, data_type, is_nullable, column_default
FROM information_schema.columns
WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
  AND (%(schema)s::text IS NULL OR table_schema::text = %(schema)s::text)
ORDER BY table_schema, table_name, ordinal_position
"""

_PRIMARY_KEYS_SQL = """
SELECT tc.table_schema, tc.table_name, kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
  ON kcu.constraint_name = tc.constraint_name
 AND kcu.table_schema = tc.table_schema
 AND kcu.table_name = tc.table_name
WHERE tc.constraint_type = 'PRIMARY KEY'
  AND (%(schema)s::text IS NULL OR tc.table_schema::text = %(schema)s::text)
ORDER BY tc.table_schema, tc.table_name, kcu.ordinal_position
"""

_FOREIGN_KEYS_SQL = """
SELECT n.nspname::text, c.relname::text, con.conname::text,
       ARRAY(SELECT a.attname::text
             FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
             JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
             ORDER BY k.ord),
       fn.nspname::text, fc.relname::text,
       ARRAY(SELECT a.attname::text
             FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
             JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
             ORDER BY k.ord)
FROM pg_constraint con
JOIN pg_class c ON c.oid = con.conrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
JOIN pg_class fc ON fc.oid = con.confrelid
JOIN pg_namespace fn ON fn.oid = fc.relnamespace
WHERE con.contype = 'f'
  AND n.nspname NOT IN ('pg_catalog', 'information_schema')
  AND (%(schema)s::text IS NULL OR n.nspname::text = %(schema)s::text)
ORDER BY n.nspname, c.relname, con.conname
"""

_INDEXES_SQL = """
SELECT schemaname::text, tablename::text, indexname::text, indexdef
FROM pg_indexes
WHERE schemaname NOT IN ('pg_catalog', 'information_schema')
  AND (%(schema)s::text IS NULL OR schemaname::text = %(schema)s::text)
ORDER BY schemaname, tablename, indexname
"""


def parse_index_columns(indexdef: str) -> list[str]:
    """Pull the key column list out of a ``pg_indexes.indexdef`` string.

    ``CREATE UNIQUE INDEX i ON public.t USING btree (a, lower(b)) WHERE (c)``
    gives ``["a", "lower(b)"]``.
    """
    using = indexdef.find(" USING ")
    start = indexdef.find("(", using if using != -1 else 0)
    if start == -1:
        return []

    columns: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in indexdef[start:]:
        if ch == "(":
            depth += 1
            if depth == 1:
                continue
        elif ch == ")":
            depth -= 1
            if depth == 0:
                break
        elif ch == "," and depth == 1:
            columns.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if current:
        columns.append("".join(current).strip())
    return [c for c in columns if c]


class PostgresAdapter:
    """PostgreSQL execution contract. Every call opens and closes its own connection."""

    def db_type(self) -> DatabaseType:
        return DatabaseType.POSTGRES

    async def check_connectivity(self, config: ConnectionConfig) -> ConnectionSummary:
        _validate(config)
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "SELECT current_setting('server_version'), "
                        "current_database(), current_user"
                    )
                    row = await cur.fetchone()
            except psycopg.Error as e:
                raise ConnectionFailed(
                    f"PostgreSQL probe failed: {_redact(e, config)}"
                ) from e

        if row is None:
            raise ConnectionFailed("PostgreSQL probe returned no rows")
        version, database, user = row
        return ConnectionSummary(
            database_version=version,
            server_info=f"PostgreSQL {version}",
            connected_database=database,
            user=user,
        )

    async def describe_schema(
        self, config: ConnectionConfig, scope: str | None = None
    ) -> SchemaSnapshot:
        """Enumerate tables and views, optionally limited to one schema."""
        _validate(config)
        params = {"schema": scope}
        async with _connect(config, read_only=True) as conn:
            try:
                async with conn.cursor() as cur:
                    await cur.execute(_TABLES_SQL, params)
                    relations = await cur.fetchall()
                    await cur.execute(_COLUMNS_SQL, params)
                    column_rows = await cur.fetchall()
                    await cur.execute(_PRIMARY_KEYS_SQL, params)
                    pk_rows = await cur.fetchall()
                    await cur.execute(_FOREIGN_KEYS_SQL, params)
                    fk_rows = await cur.fetchall()
                    await cur.execute(_INDEXES_SQL, params)
                    index_rows = await cur.fetchall()
            except psycopg.Error as e:
                raise EngineError(
                    _DIALECT, f"introspection failed: {_redact(e, config)}"
                ) from e

        columns: dict[tuple[str, str], list[ColumnInfo]] = {}
        for schema, table, name, data_type, nullable, default in column_rows:
            columns.setdefault((schema, table), []).append(
                ColumnInfo(
                    name=name,
                    data_type=data_type,
                    nullable=(nullable == "YES"),
                    default=default,
                )
            )

        snapshot = SchemaSnapshot()
        tables: dict[tuple[str, str], TableInfo] = {}
        for schema, name, table_type in relations:
            key = (schema, name)
            if table_type == "VIEW":
                snapshot.views.append(
                    ViewInfo(schema=schema, name=name, columns=columns.get(key, []))
                )
                continue
            table = TableInfo(schema=schema, name=name, columns=columns.get(key, []))
            tables[key] = table
            snapshot.tables.append(table)

        for schema, name, column in pk_rows:
            if (schema, name) in tables:
                tables[(schema, name)].primary_key.append(column)

        for schema, name, fk_name, fk_cols, ref_schema, ref_table, ref_cols in fk_rows:
            if (schema, name) in tables:
                tables[(schema, name)].foreign_keys.append(
                    ForeignKeyInfo(
                        name=fk_name,
                        columns=list(fk_cols),
                        referenced_table=f"{ref_schema}.{ref_table}",
                        referenced_columns=list(ref_cols),
                    )
                )

        for schema, name, index_name, indexdef in index_rows:
            # Primary key indexes are already reported as primary_key.
            if index_name.endswith("_pkey") or (schema, name) not in tables:
                continue
            tables[(schema, name)].indexes.append(
                IndexInfo(
                    name=index_name,
                    columns=parse_index_columns(indexdef),
                    unique=indexdef.startswith("CREATE UNIQUE"),
                )
            )

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
                    names = [desc.name for desc in cur.description]
                    size = fetch_size(max_rows)
                    raw = await cur.fetchall() if size is None else await cur.fetchmany(size)
                    kept, truncated = cap_rows(raw, max_rows)
                    return names, kept, truncated, None

            t0 = time.monotonic()
            try:
                columns, raw_rows, truncated, affected = await run_with_timeout(
                    _execute, decision.params.timeout, conn.cancel, dialect=_DIALECT
                )
            except psycopg.Error as e:
                raise QueryFailed(
                    f"PostgreSQL execution failed: {_redact(e, config)}"
                ) from e
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
    require_config(
        config, DatabaseType.POSTGRES, "host", "user", "database", alternatives=("dsn",)
    )


def _redact(error: BaseException, config: ConnectionConfig) -> str:
    return redact(str(error), [config.params.get("password")])


@asynccontextmanager
async def _connect(
    config: ConnectionConfig, *, read_only: bool
) -> AsyncIterator[psycopg.AsyncConnection]:
    params = config.params
    kwargs: dict[str, object] = {
        "autocommit": True,
        "application_name": "sqlgate",
        "options": _READ_ONLY_OPTIONS if read_only else _SESSION_OPTIONS,
    }

    try:
        if params.get("dsn"):
            conn = await psycopg.AsyncConnection.connect(params["dsn"], **kwargs)
        else:
            conn = await psycopg.AsyncConnection.connect(
                host=params["host"],
                port=port_param(config, 5432),
                user=params["user"],
                password=params.get("password"),
                dbname=params["database"],
                **kwargs,
            )
    except psycopg.Error as e:
        raise ConnectionFailed(
            f"PostgreSQL connection failed: {_redact(e, config)}"
        ) from e

    log.debug("postgres connection opened for %s (read_only=%s)", config.name, read_only)
    try:
        yield conn
    finally:
        await conn.close()
        log.debug("postgres connection closed for %s", config.name)
