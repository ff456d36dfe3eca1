"""The `query` command: gate → execute → audit.

The gate decision is made before a connection is opened. Denied statements
are logged and reported without contacting the database.
"""

from __future__ import annotations

import asyncio

import click

from sqlgate.adapters._base import ConnectionConfig, ResultSet
from sqlgate.adapters._registry import get_adapter
from sqlgate.cli._output import (
    emit_json,
    error_envelope,
    fail,
    render_result_text,
    result_data,
    success_envelope,
)
from sqlgate.cli._shared import (
    DB_HELP,
    build_caps,
    capability_options,
    format_option,
    parse_db,
    resolve_sql_stdin,
)
from sqlgate.diagnostics import SqlGateError
from sqlgate.policy import CapabilitySet, Denied, evaluate
from sqlgate.querylog import cleanup_old_logs, log_decision


async def _execute(sql: str, config: ConnectionConfig, caps: CapabilitySet) -> ResultSet:
    adapter = get_adapter(config.db_type)
    return await adapter.run_statement(config, sql, caps)


@click.command()
@click.argument("sql", required=False, default=None)
@click.option("--from-stdin", is_flag=True, help="Read SQL from stdin instead of argument.")
@click.option("--db", required=True, envvar="SQLGATE_DB", help=DB_HELP)
@capability_options
@click.option(
    "--max-rows",
    type=click.IntRange(min=0),
    default=None,
    help="Return at most N rows; the result is marked truncated if more existed.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Abort execution after N seconds.",
)
@format_option()
def query(
    sql: str | None,
    from_stdin: bool,
    db: str,
    allow_write: bool,
    allow_ddl: bool,
    max_rows: int | None,
    timeout: float | None,
    output_format: str,
) -> None:
    """Execute one SQL statement within the granted capabilities.

    Without flags only read-only statements run. --allow-write adds
    INSERT/UPDATE/DELETE; --allow-ddl adds schema changes and writes.
    """
    cleanup_old_logs()
    sql = resolve_sql_stdin(sql, from_stdin)
    caps = build_caps(
        allow_write=allow_write, allow_ddl=allow_ddl, max_rows=max_rows, timeout=timeout
    )

    try:
        config = parse_db(db)
    except click.BadParameter as e:
        click.echo(f"error: {e.format_message()}", err=True)
        raise SystemExit(1) from e
    except SqlGateError as e:
        fail(output_format, None, "query", e)

    dialect = config.dialect
    decision = evaluate(sql, dialect=dialect, caps=caps)
    if isinstance(decision, Denied):
        log_decision(
            sql=sql,
            dialect=dialect,
            db=config.name,
            category=decision.category.value if decision.category else None,
            allowed=False,
            error_code=str(decision.code),
        )
        if output_format == "json":
            emit_json(
                error_envelope(
                    dialect, "query", str(decision.code), decision.message, decision.hint
                )
            )
        else:
            click.echo(f"error[{decision.code}]: {decision.message}", err=True)
            if decision.hint:
                click.echo(f"  hint: {decision.hint}", err=True)
        raise SystemExit(1)

    try:
        result = asyncio.run(_execute(sql, config, caps))
    except SqlGateError as e:
        log_decision(
            sql=sql,
            dialect=dialect,
            db=config.name,
            category=decision.category.value,
            allowed=True,
            error_code=str(e.code),
        )
        fail(output_format, dialect, "query", e)

    log_decision(
        sql=sql,
        dialect=dialect,
        db=config.name,
        category=result.category.value,
        allowed=True,
        row_count=result.row_count,
        truncated=result.truncated,
        duration_ms=result.duration_ms,
    )

    if output_format == "json":
        data, meta = result_data(result)
        emit_json(success_envelope(dialect, "query", data, meta))
    else:
        click.echo(render_result_text(result))
