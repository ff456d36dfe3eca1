"""The `check` command: run the gate on SQL without touching a database."""

from __future__ import annotations

import click

from sqlgate.cli._output import emit_json, error_envelope, success_envelope
from sqlgate.cli._shared import build_caps, capability_options, format_option, resolve_sql_stdin
from sqlgate.policy import SUPPORTED_DIALECTS, Permitted, evaluate


@click.command()
@click.argument("sql", required=False, default=None)
@click.option("--from-stdin", is_flag=True, help="Read SQL from stdin instead of argument.")
@click.option(
    "--dialect",
    required=True,
    type=click.Choice(SUPPORTED_DIALECTS),
    help="SQL dialect whose classification rules apply.",
)
@capability_options
@format_option()
def check(
    sql: str | None,
    from_stdin: bool,
    dialect: str,
    allow_write: bool,
    allow_ddl: bool,
    output_format: str,
) -> None:
    """Classify SQL and report whether the granted capabilities permit it.

    Exits 1 when the statement would be denied.
    """
    sql = resolve_sql_stdin(sql, from_stdin)
    caps = build_caps(allow_write=allow_write, allow_ddl=allow_ddl)
    decision = evaluate(sql, dialect=dialect, caps=caps)

    if isinstance(decision, Permitted):
        if output_format == "json":
            emit_json(
                success_envelope(
                    dialect,
                    "check",
                    {"allowed": True, "category": decision.category.value},
                )
            )
        else:
            click.echo(f"allowed: {decision.category.value}")
        return

    if output_format == "json":
        envelope = error_envelope(
            dialect, "check", str(decision.code), decision.message, decision.hint
        )
        if decision.category is not None:
            envelope["category"] = decision.category.value
        emit_json(envelope)
    else:
        category = f" ({decision.category.value})" if decision.category else ""
        click.echo(f"denied{category}: [{decision.code}] {decision.message}")
        if decision.hint:
            click.echo(f"  hint: {decision.hint}")
    raise SystemExit(1)
