"""The `introspect` command: tables, columns, keys and indexes of a database."""

from __future__ import annotations

import asyncio

import click

from sqlgate.adapters._base import ConnectionConfig, SchemaSnapshot
from sqlgate.adapters._registry import get_adapter
from sqlgate.cli._output import emit_json, fail, render_schema_text, success_envelope
from sqlgate.cli._shared import DB_HELP, format_option, parse_db
from sqlgate.diagnostics import SqlGateError


async def _describe(config: ConnectionConfig, scope: str | None) -> SchemaSnapshot:
    adapter = get_adapter(config.db_type)
    return await adapter.describe_schema(config, scope)


@click.command()
@click.option("--db", required=True, envvar="SQLGATE_DB", help=DB_HELP)
@click.option(
    "--schema",
    "scope",
    default=None,
    help="Schema (postgres) or database (mysql) to describe. Not supported for sqlite.",
)
@format_option()
def introspect(db: str, scope: str | None, output_format: str) -> None:
    """Describe tables and views without running any user SQL."""
    try:
        config = parse_db(db)
        snapshot = asyncio.run(_describe(config, scope))
    except click.BadParameter as e:
        click.echo(f"error: {e.format_message()}", err=True)
        raise SystemExit(1) from e
    except SqlGateError as e:
        fail(output_format, None, "introspect", e)

    if output_format == "json":
        meta = {"table_count": len(snapshot.tables), "view_count": len(snapshot.views)}
        emit_json(success_envelope(config.dialect, "introspect", snapshot, meta))
    else:
        click.echo(render_schema_text(snapshot))
