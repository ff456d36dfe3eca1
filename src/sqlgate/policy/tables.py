"""Referenced-table extraction for the audit log.

This is informational only and plays no part in authorization: the gate
works on the token stream, while this module asks sqlglot for a parse tree
and gives up quietly when it cannot produce one.
"""

from __future__ import annotations

import logging

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

log = logging.getLogger(__name__)

_SQLGLOT_DIALECTS = {"postgres": "postgres", "mysql": "mysql", "sqlite": "sqlite"}


def referenced_tables(sql: str, dialect: str) -> list[str]:
    """Return sorted physical table names referenced by ``sql``.

    CTE names are excluded. Names are ``schema.table`` when a schema is given.
    Returns an empty list when the statement cannot be parsed.
    """
    read = _SQLGLOT_DIALECTS.get(dialect)
    if read is None:
        return []
    try:
        statement = sqlglot.parse_one(sql, read=read)
        if statement is None:
            return []
        cte_names = {cte.alias_or_name for cte in statement.find_all(exp.CTE)}
        names = {
            _qualified_name(table)
            for table in statement.find_all(exp.Table)
            if table.name and table.name not in cte_names
        }
    except (SqlglotError, RecursionError) as e:
        # Deeply nested expressions exhaust sqlglot's recursive descent.
        log.debug("table extraction skipped for %s: %s", dialect, type(e).__name__)
        return []
    return sorted(names)


def _qualified_name(table: exp.Table) -> str:
    return f"{table.db}.{table.name}" if table.db else table.name
