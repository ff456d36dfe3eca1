"""PostgreSQL statement classifier.

Keyword sets here are PostgreSQL's own and are not shared with the other
dialects, so a rule change for one engine cannot alter another.

Catches:
- Data-modifying CTEs: WITH d AS (DELETE ... RETURNING *) SELECT * FROM d
- SELECT INTO: SELECT * INTO new_table FROM t (creates a table)
- EXPLAIN ANALYZE: runs the statement, so the remainder is classified as-is
- Unknown statements (DO, COPY, SET ROLE, VACUUM, ...): DDL
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlgate.policy._types import CanonicalForm, OperationCategory, Token

_READ_KEYWORDS = frozenset({"SELECT", "VALUES", "TABLE", "SHOW"})
_TRANSACTION_KEYWORDS = frozenset(
    {"BEGIN", "START", "COMMIT", "END", "ROLLBACK", "ABORT", "SAVEPOINT", "RELEASE"}
)
_WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE", "CALL"})
_DDL_KEYWORDS = frozenset({"CREATE", "DROP", "ALTER", "TRUNCATE", "RENAME"})

_EXPLAIN_OPTIONS = frozenset({"ANALYZE", "ANALYSE", "VERBOSE"})
_CTE_CLAUSE_KEYWORDS = frozenset({"SEARCH", "CYCLE"})
_MAIN_STATEMENT_KEYWORDS = frozenset(
    {"SELECT", "VALUES", "TABLE", "INSERT", "UPDATE", "DELETE", "MERGE"}
)


def classify(canonical: CanonicalForm) -> OperationCategory:
    return _classify(canonical.tokens)


def _classify(tokens: Sequence[Token]) -> OperationCategory:
    tokens = _skip_open_parens(tokens)
    if not tokens or not tokens[0].is_word():
        return OperationCategory.DDL

    keyword = tokens[0].value
    if keyword in _READ_KEYWORDS:
        if keyword == "SELECT" and _has_into(tokens):
            return OperationCategory.DDL
        return OperationCategory.READ_ONLY
    if keyword == "WITH":
        return _classify_with(tokens[1:])
    if keyword == "EXPLAIN":
        return _classify_explain(tokens[1:])
    if keyword in _TRANSACTION_KEYWORDS:
        if keyword == "START" and not (len(tokens) > 1 and tokens[1].is_word("TRANSACTION")):
            return OperationCategory.DDL
        # COMMIT/ROLLBACK PREPARED finish a two-phase transaction from any session.
        if len(tokens) > 1 and tokens[1].is_word("PREPARED"):
            return OperationCategory.DDL
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


def _has_into(tokens: Sequence[Token]) -> bool:
    """SELECT ... INTO creates a table; INTO is not valid anywhere else in a SELECT."""
    return any(t.is_word("INTO") for t in tokens)


def _classify_with(tokens: Sequence[Token]) -> OperationCategory:
    """Classify each CTE body and the main statement; keep the most restrictive.

    Walks the CTE list by parenthesis depth. A depth-0 ``(`` right after
    ``AS`` or ``MATERIALIZED`` opens a CTE body. After a body closes, the next
    token is a comma, a SEARCH/CYCLE clause, or the start of the main statement.
    """
    category = OperationCategory.READ_ONLY
    depth = 0
    body_start: int | None = None
    after_close = False
    in_clause = False

    for i, tok in enumerate(tokens):
        if depth == 0:
            opens_body = (
                tok.is_punct("(") and i > 0 and tokens[i - 1].is_word("AS", "MATERIALIZED")
            )
            if after_close:
                if tok.is_word(*_CTE_CLAUSE_KEYWORDS):
                    in_clause = True
                elif not (tok.is_punct(",") or tok.is_word("AS")):
                    return category.most_restrictive(_classify(tokens[i:]))
            elif in_clause and not opens_body and (
                tok.is_punct("(") or tok.is_word(*_MAIN_STATEMENT_KEYWORDS)
            ):
                return category.most_restrictive(_classify(tokens[i:]))
            if opens_body:
                in_clause = False
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
                    body = _classify(tokens[body_start:i])
                    category = category.most_restrictive(body)
                    body_start = None
                after_close = True

    # CTE list with no statement after it.
    return OperationCategory.DDL


def _classify_explain(tokens: Sequence[Token]) -> OperationCategory:
    i = 0
    if tokens and tokens[0].is_punct("("):
        depth = 0
        for i, tok in enumerate(tokens):
            if tok.is_punct("("):
                depth += 1
            elif tok.is_punct(")"):
                depth -= 1
                if depth == 0:
                    break
        else:
            return OperationCategory.DDL
        i += 1
    while i < len(tokens) and tokens[i].is_word(*_EXPLAIN_OPTIONS):
        i += 1

    remainder = tokens[i:]
    if not remainder:
        return OperationCategory.DDL
    return _classify(remainder)
