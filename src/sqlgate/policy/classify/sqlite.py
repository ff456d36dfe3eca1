"""SQLite statement classifier.

PRAGMA is both SQLite's introspection interface and its runtime configuration
interface, so it is split by form:

- ``PRAGMA name = value``: changes settings → DDL
- ``PRAGMA name(arg)``: read-only only for the introspection pragmas below
- ``PRAGMA name``: read-only unless the pragma does work when queried
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlgate.policy._types import CanonicalForm, OperationCategory, Token

_READ_KEYWORDS = frozenset({"SELECT", "VALUES"})
_TRANSACTION_KEYWORDS = frozenset(
    {"BEGIN", "COMMIT", "END", "ROLLBACK", "SAVEPOINT", "RELEASE"}
)
_WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "REPLACE"})
_DDL_KEYWORDS = frozenset(
    {
        "CREATE", "DROP", "ALTER", "TRUNCATE", "RENAME",
        "VACUUM", "REINDEX", "ATTACH", "DETACH", "ANALYZE",
    }
)

_INTROSPECTION_PRAGMAS = frozenset(
    {
        "table_info", "table_xinfo", "table_list",
        "index_list", "index_info", "index_xinfo",
        "foreign_key_list", "foreign_key_check",
        "integrity_check", "quick_check",
        "function_list", "pragma_list", "module_list", "collation_list",
        "database_list", "compile_options",
    }
)
# Bare pragmas that do work when queried.
_SIDE_EFFECT_PRAGMAS = frozenset(
    {"optimize", "incremental_vacuum", "wal_checkpoint", "shrink_memory"}
)


def classify(canonical: CanonicalForm) -> OperationCategory:
    return _classify(canonical.tokens)


def _classify(tokens: Sequence[Token]) -> OperationCategory:
    tokens = _skip_open_parens(tokens)
    if not tokens or not tokens[0].is_word():
        return OperationCategory.DDL

    keyword = tokens[0].value
    if keyword in _READ_KEYWORDS:
        return OperationCategory.READ_ONLY
    if keyword == "PRAGMA":
        return _classify_pragma(tokens[1:])
    if keyword == "WITH":
        return _classify_with(tokens[1:])
    if keyword == "EXPLAIN":
        return _classify_explain(tokens[1:])
    if keyword in _TRANSACTION_KEYWORDS:
        return OperationCategory.READ_ONLY
    if keyword in _WRITE_KEYWORDS:
        return OperationCategory.WRITE
    if keyword in _DDL_KEYWORDS:
        return OperationCategory.DDL

    # Unrecognized statement shape: fail closed.
    return OperationCategory.DDL


def _skip_open_parens(tokens: Sequence[Token]) -> Sequence[Token]:
    i = 0
    while i < len(tokens) and tokens[i].is_punct("("):
        i += 1
    return tokens[i:]


def _classify_pragma(tokens: Sequence[Token]) -> OperationCategory:
    # PRAGMA [schema.]name
    if len(tokens) >= 3 and tokens[1].is_punct("."):
        tokens = tokens[2:]
    if not tokens or not tokens[0].is_word():
        return OperationCategory.DDL

    name = tokens[0].value.lower()
    rest = tokens[1:]
    if not rest:
        if name in _SIDE_EFFECT_PRAGMAS:
            return OperationCategory.DDL
        return OperationCategory.READ_ONLY
    if rest[0].is_punct("(") and name in _INTROSPECTION_PRAGMAS:
        return OperationCategory.READ_ONLY
    return OperationCategory.DDL


def _classify_with(tokens: Sequence[Token]) -> OperationCategory:
    """Classify each CTE body and the main statement; keep the most restrictive."""
    category = OperationCategory.READ_ONLY
    depth = 0
    body_start: int | None = None
    after_close = False

    for i, tok in enumerate(tokens):
        if depth == 0:
            if after_close and not (tok.is_punct(",") or tok.is_word("AS")):
                return category.most_restrictive(_classify(tokens[i:]))
            if tok.is_punct("(") and i > 0 and tokens[i - 1].is_word("AS", "MATERIALIZED"):
                body_start = i + 1

        after_close = False
        if tok.is_punct("("):
            depth += 1
        elif tok.is_punct(")"):
            depth -= 1
            if depth < 0:
                return OperationCategory.DDL
            if depth == 0:
                if body_start is not None:
                    category = category.most_restrictive(_classify(tokens[body_start:i]))
                    body_start = None
                after_close = True

    return OperationCategory.DDL


def _classify_explain(tokens: Sequence[Token]) -> OperationCategory:
    if len(tokens) >= 2 and tokens[0].is_word("QUERY") and tokens[1].is_word("PLAN"):
        tokens = tokens[2:]
    if not tokens:
        return OperationCategory.DDL
    return _classify(tokens)
