"""Shared helpers for CLI commands."""

from __future__ import annotations

import sys

import click

from sqlgate.adapters._base import ConnectionConfig, DatabaseType
from sqlgate.connections import get_connection, resolve_password
from sqlgate.diagnostics import InvalidInput
from sqlgate.policy import CapabilitySet

DB_HELP = "Connection name or type:key=val,... (env: SQLGATE_DB)."


def resolve_sql_stdin(sql: str | None, from_stdin: bool) -> str:
    """Resolve SQL from positional argument or stdin. Exactly one source required.

    The text is passed on untouched; empty SQL is the gate's call to reject.
    """
    if sql is not None and from_stdin:
        raise click.UsageError("Provide SQL as an argument or --from-stdin, not both.")
    if from_stdin:
        if sys.stdin.isatty():
            raise click.UsageError("--from-stdin requires piped input (stdin is a terminal).")
        return sys.stdin.read()
    if sql is None:
        raise click.UsageError("Missing argument 'SQL'. Provide SQL or use --from-stdin.")
    return sql


def parse_db(value: str) -> ConnectionConfig:
    """Resolve --db: a named connection first, then the 'type:key=val' form.

    Raises ConfigError from the connection store as-is.
    """
    config = get_connection(value)
    if config is not None:
        return config

    if ":" not in value:
        raise click.BadParameter(
            f"Connection '{value}' not found in ~/.sqlgate/connections.toml "
            f"and not in 'type:key=val' format.\n"
            f"  Add it: sqlgate connect add {value} <type> <param>=<val>",
            param_hint="'--db'",
        )
    db_type_str, params_str = value.split(":", 1)

    try:
        db_type = DatabaseType(db_type_str)
    except ValueError as e:
        valid = ", ".join(t.value for t in DatabaseType)
        raise click.BadParameter(
            f"Unknown database type '{db_type_str}'. Valid: {valid}",
            param_hint="'--db'",
        ) from e

    return ConnectionConfig(
        name=db_type_str,
        db_type=db_type,
        params=resolve_password(db_type_str, parse_params(params_str.split(","))),
    )


def parse_params(pairs: list[str] | tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        if not pair.strip():
            continue
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value pair, got '{pair}'")
        key, val = pair.split("=", 1)
        params[key.strip()] = val.strip()
    return params


def build_caps(
    *,
    allow_write: bool,
    allow_ddl: bool,
    max_rows: int | None = None,
    timeout: float | None = None,
) -> CapabilitySet:
    try:
        return CapabilitySet(
            allow_write=allow_write, allow_ddl=allow_ddl, max_rows=max_rows, timeout=timeout
        )
    except InvalidInput as e:
        raise click.BadParameter(e.message) from e


def capability_options(func):
    """Attach --allow-write / --allow-ddl to a command."""
    func = click.option(
        "--allow-ddl",
        is_flag=True,
        help="Permit schema changes (CREATE, DROP, ALTER, ...). Implies --allow-write.",
    )(func)
    func = click.option(
        "--allow-write", is_flag=True, help="Permit INSERT/UPDATE/DELETE and procedure calls."
    )(func)
    return func


def format_option(default: str = "json"):
    return click.option(
        "--format",
        "output_format",
        type=click.Choice(["json", "text"]),
        default=default,
        help="Output format.",
    )
