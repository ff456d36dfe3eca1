"""MySQL / MariaDB statement classifier.

MySQL commits the open transaction implicitly before and after many
statements that are not schema definitions (LOCK TABLES, FLUSH, GRANT, ...).
Those cannot be rolled back, so they classify as DDL here.

EXPLAIN, DESCRIBE and DESC are synonyms in MySQL. Followed by a table name
they describe the table; followed by a statement they plan it (and with
ANALYZE, run it), so the statement itself is classified.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlgate.policy._types import CanonicalForm, OperationCategory, Token, TokenKind

_READ_KEYWORDS = frozenset({"SELECT", "VALUES", "TABLE", "SHOW", "HELP"})
_DESCRIBE_KEYWORDS = frozenset({"EXPLAIN", "DESCRIBE", "DESC"})
_TRANSACTION_KEYWORDS = frozenset(
    {"BEGIN", "START", "COMMIT", "ROLLBACK", "SAVEPOINT", "RELEASE"}
)
_WRITE_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "REPLACE", "CALL", "EXEC"})
_DDL_KEYWORDS = frozenset(
    {
        "CREATE", "DROP", "ALTER", "TRUNCATE", "RENAME",
        # implicit commit
        "LOCK", "UNLOCK", "FLUSH", "ANALYZE", "OPTIMIZE", "REPAIR", "CHECK",
        "CACHE", "RESET", "GRANT", "REVOKE", "INSTALL", "UNINSTALL",
    }
)

_EXPLAIN_FLAGS = frozenset({"ANALYZE", "EXTENDED", "PARTITIONS"})
_FILE_TARGETS = frozenset({"OUTFILE", "DUMPFILE"})
_STATEMENT_KEYWORDS = (
    _READ_KEYWORDS
    | _DESCRIBE_KEYWORDS
    | _TRANSACTION_KEYWORDS
    | _WRITE_KEYWORDS
    | _DDL_KEYWORDS
    | {"WITH"}
)


def classify(canonical: CanonicalForm) -> OperationCategory:
    return _classify(canonical.tokens)


def _classify(tokens: Sequence[Token]) -> OperationCategory:
    tokens = _skip_open_parens(tokens)
    if not tokens or not tokens[0].is_word():
        return OperationCategory.DDL

    keyword = tokens[0].value
    if keyword in _READ_KEYWORDS:
        if _writes_file(tokens):
            return OperationCategory.DDL
        return OperationCategory.READ_ONLY
    if keyword == "WITH":
        return _classify_with(tokens[1:])
    if keyword in _DESCRIBE_KEYWORDS:
        return _classify_describe(tokens[1:])
    if keyword in _TRANSACTION_KEYWORDS:
        if keyword == "START" and not (len(tokens) > 1 and tokens[1].is_word("TRANSACTION")):
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


def _writes_file(tokens: Sequence[Token]) -> bool:
    """SELECT, TABLE or VALUES ... INTO OUTFILE/DUMPFILE writes to the server filesystem.

    INTO @var only assigns session variables and stays read-only.
    """
    return any(
        tok.is_word("INTO") and nxt.is_word(*_FILE_TARGETS)
        for tok, nxt in zip(tokens, tokens[1:])
    )


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
            if tok.is_punct("(") and i > 0 and tokens[i - 1].is_word("AS"):
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


def _classify_describe(tokens: Sequence[Token]) -> OperationCategory:
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.is_word(*_EXPLAIN_FLAGS):
            i += 1
        elif tok.is_word("FORMAT") and i + 2 < len(tokens) and tokens[i + 1].is_punct("="):
            i += 3
        elif (
            tok.is_word("INTO")
            and i + 1 < len(tokens)
            and tokens[i + 1].kind == TokenKind.PARAMETER
        ):
            # EXPLAIN FORMAT=JSON INTO @var SELECT ...
            i += 2
        else:
            break

    remainder = tokens[i:]
    if not remainder:
        return OperationCategory.DDL
    head = remainder[0]
    if head.is_word("FOR") and len(remainder) > 1 and remainder[1].is_word("CONNECTION"):
        return OperationCategory.READ_ONLY
    if head.is_punct("(") or head.is_word(*_STATEMENT_KEYWORDS):
        return _classify(remainder)
    if head.is_word() or head.kind == TokenKind.QUOTED_IDENTIFIER:
        # DESCRIBE tbl [column]
        return OperationCategory.READ_ONLY
    return OperationCategory.DDL
