"""Output envelopes and text rendering for CLI commands.

Every JSON document has the same outer shape::

    {"ok": true,  "engine": ..., "command": ..., "data": {...}, "meta": {...}}
    {"ok": false, "engine": ..., "command": ..., "error": {"code": ..., "message": ...}}
"""

from __future__ import annotations

import dataclasses
import json

import click

from sqlgate.adapters._base import ResultSet, SchemaSnapshot
from sqlgate.diagnostics import SqlGateError


def success_envelope(
    engine: str | None,
    command: str,
    data: object,
    meta: dict[str, object] | None = None,
) -> dict[str, object]:
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        data = dataclasses.asdict(data)
    return {"ok": True, "engine": engine, "command": command, "data": data, "meta": meta or {}}


def error_envelope(
    engine: str | None,
    command: str,
    code: str,
    message: str,
    hint: str | None = None,
) -> dict[str, object]:
    error: dict[str, str] = {"code": code, "message": message}
    if hint:
        error["hint"] = hint
    return {"ok": False, "engine": engine, "command": command, "error": error}


def emit_json(envelope: dict[str, object]) -> None:
    click.echo(json.dumps(envelope, indent=2, default=str))


def fail(
    output_format: str,
    engine: str | None,
    command: str,
    error: SqlGateError,
) -> None:
    """Report ``error`` in the requested format and exit with status 1."""
    if output_format == "json":
        emit_json(error_envelope(engine, command, **error.to_dict()))
    else:
        click.echo(f"error[{error.code}]: {error.message}", err=True)
    raise SystemExit(1)


def result_data(result: ResultSet) -> tuple[dict[str, object], dict[str, object]]:
    """Split a ResultSet into envelope ``data`` and ``meta``."""
    data: dict[str, object] = {
        "columns": result.columns,
        "rows": result.rows,
        "row_count": result.row_count,
    }
    if result.rows_affected is not None:
        data["rows_affected"] = result.rows_affected
    meta: dict[str, object] = {
        "category": result.category.value,
        "truncated": result.truncated,
        "duration_ms": result.duration_ms,
    }
    return data, meta


def render_result_text(result: ResultSet) -> str:
    """Simple tabular rendering."""
    lines: list[str] = []
    if result.columns:
        lines.append(" | ".join(result.columns))
        lines.append("-+-".join("-" * max(len(c), 5) for c in result.columns))
        for row in result.rows:
            lines.append(" | ".join(str(row.get(c, "")) for c in result.columns))

    summary = f"{result.row_count} rows"
    if result.rows_affected is not None and not result.columns:
        summary = f"{result.rows_affected} rows affected"
    if result.truncated:
        summary += ", truncated"
    if result.duration_ms is not None:
        summary += f", {result.duration_ms:.0f}ms"
    lines.append(f"\n({summary})")
    return "\n".join(lines)


def render_schema_text(snapshot: SchemaSnapshot) -> str:
    lines: list[str] = []
    for table in snapshot.tables:
        name = f"{table.schema}.{table.name}" if table.schema else table.name
        lines.append(name)
        for col in table.columns:
            nullable = "NULL" if col.nullable else "NOT NULL"
            line = f"  {col.name}  {col.data_type}  {nullable}"
            if col.default is not None:
                line += f"  DEFAULT {col.default}"
            lines.append(line)
        if table.primary_key:
            lines.append(f"  PRIMARY KEY ({', '.join(table.primary_key)})")
        for fk in table.foreign_keys:
            lines.append(
                f"  FOREIGN KEY {fk.name} ({', '.join(fk.columns)}) "
                f"-> {fk.referenced_table} ({', '.join(fk.referenced_columns)})"
            )
        for index in table.indexes:
            unique = "UNIQUE " if index.unique else ""
            lines.append(f"  {unique}INDEX {index.name} ({', '.join(index.columns)})")
    for view in snapshot.views:
        name = f"{view.schema}.{view.name}" if view.schema else view.name
        lines.append(f"{name} (view)")
    if not lines:
        lines.append("No tables found.")
    return "\n".join(lines)
