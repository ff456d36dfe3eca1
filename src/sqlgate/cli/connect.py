"""The `connect` command group: manage named database connections."""

from __future__ import annotations

import asyncio

import click

from sqlgate.adapters._base import ConnectionConfig, ConnectionSummary, DatabaseType
from sqlgate.adapters._registry import get_adapter
from sqlgate.cli._output import emit_json, fail, success_envelope
from sqlgate.cli._shared import format_option, parse_db, parse_params
from sqlgate.connections import (
    list_connections,
    mask_params,
    remove_connection,
    save_connection,
)
from sqlgate.diagnostics import SqlGateError


async def _probe(config: ConnectionConfig) -> ConnectionSummary:
    adapter = get_adapter(config.db_type)
    return await adapter.check_connectivity(config)


@click.group()
def connect() -> None:
    """Manage named database connections (~/.sqlgate/connections.toml)."""


@connect.command("add")
@click.argument("name")
@click.argument("db_type", type=click.Choice([t.value for t in DatabaseType]))
@click.argument("params", nargs=-1, required=True)
def connect_add(name: str, db_type: str, params: tuple[str, ...]) -> None:
    """Add a named connection.

    \b
    Examples:
      sqlgate connect add wh postgres host=db user=reader database=wh password_env=WH_PW
      sqlgate connect add shop mysql host=127.0.0.1 user=app database=shop password_env=SHOP_PW
      sqlgate connect add local sqlite path=./app.db
    """
    parsed = parse_params(params)
    if "password" in parsed:
        click.echo(
            "warning: storing a plaintext password; prefer password_env=VAR", err=True
        )
    path = save_connection(name, db_type, parsed)
    click.echo(f"Saved connection '{name}' to {path}")


@connect.command("list")
def connect_list() -> None:
    """List all named connections."""
    try:
        connections = list_connections()
    except SqlGateError as e:
        fail("text", None, "connect list", e)
    if not connections:
        click.echo("No connections configured.")
        click.echo("Add one: sqlgate connect add <name> <type> <param>=<val>")
        return

    for name, entry in connections.items():
        db_type = entry.get("type", "?")
        params = mask_params({k: v for k, v in entry.items() if k != "type"})
        param_str = ", ".join(f"{k}={v}" for k, v in params.items())
        click.echo(f"  {name} ({db_type}): {param_str}")


@connect.command("remove")
@click.argument("name")
def connect_remove(name: str) -> None:
    """Remove a named connection."""
    if not remove_connection(name):
        click.echo(f"Connection '{name}' not found.", err=True)
        raise SystemExit(1)
    click.echo(f"Removed connection '{name}'.")


@connect.command("test")
@click.argument("db")
@format_option()
def connect_test(db: str, output_format: str) -> None:
    """Open, probe and close a connection. DB is a name or type:key=val,..."""
    try:
        config = parse_db(db)
        summary = asyncio.run(_probe(config))
    except click.BadParameter as e:
        click.echo(f"error: {e.format_message()}", err=True)
        raise SystemExit(1) from e
    except SqlGateError as e:
        fail(output_format, None, "connect test", e)

    if output_format == "json":
        emit_json(success_envelope(config.dialect, "connect test", summary))
    else:
        click.echo(f"ok: {summary.server_info}")
        if summary.connected_database:
            click.echo(f"  database: {summary.connected_database}")
        if summary.user:
            click.echo(f"  user: {summary.user}")
