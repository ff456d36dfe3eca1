"""Normalize raw SQL into a canonical single-statement token sequence.

Comments are removed, whitespace collapsed and keywords upper-cased, while
string literals and quoted identifiers are kept intact so nothing inside them
can be mistaken for a keyword or a statement separator.

The lexer only knows dialect *lexical* rules (comment and quoting syntax).
What a statement means is decided by the per-dialect classifiers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sqlgate.policy._types import CanonicalForm, Rejection, Token, TokenKind

_DOLLAR_TAG_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


@dataclass(frozen=True)
class _LexicalRules:
    string_quotes: tuple[str, ...] = ("'",)
    identifier_quotes: dict[str, str] = field(default_factory=lambda: {'"': '"'})
    backslash_escapes: bool = False
    escape_string_prefix: bool = False
    dollar_quotes: bool = False
    nested_block_comments: bool = False
    hash_comments: bool = False
    dash_comment_needs_space: bool = False
    executable_comments: bool = False


_RULES: dict[str, _LexicalRules] = {
    "postgres": _LexicalRules(
        escape_string_prefix=True,
        dollar_quotes=True,
        nested_block_comments=True,
    ),
    # MySQL runs the body of /*! ... */ and MariaDB of /*M! ... */, so both are lexed as code.
    "mysql": _LexicalRules(
        string_quotes=("'", '"'),
        identifier_quotes={"`": "`"},
        backslash_escapes=True,
        hash_comments=True,
        dash_comment_needs_space=True,
        executable_comments=True,
    ),
    "sqlite": _LexicalRules(
        identifier_quotes={'"': '"', "`": "`", "[": "]"},
    ),
}


class _Unterminated(Exception):
    pass


class _Lexer:
    def __init__(self, sql: str, rules: _LexicalRules) -> None:
        self.sql = sql
        self.rules = rules
        self.pos = 0
        self.tokens: list[Token] = []
        self._in_executable_comment = False

    def run(self) -> list[Token]:
        sql = self.sql
        while self.pos < len(sql):
            ch = sql[self.pos]
            if ch.isspace():
                self.pos += 1
            elif self._at_line_comment():
                self._skip_line()
            elif sql.startswith("/*", self.pos):
                self._block_comment()
            elif self._in_executable_comment and sql.startswith("*/", self.pos):
                self._in_executable_comment = False
                self.pos += 2
            elif ch in self.rules.string_quotes:
                self._quoted(ch, ch, TokenKind.STRING, self.rules.backslash_escapes)
            elif (
                self.rules.escape_string_prefix
                and ch in "eE"
                and sql.startswith("'", self.pos + 1)
            ):
                self.pos += 1
                self._quoted("'", "'", TokenKind.STRING, True, prefix=ch)
            elif ch in self.rules.identifier_quotes:
                close = self.rules.identifier_quotes[ch]
                self._quoted(ch, close, TokenKind.QUOTED_IDENTIFIER, False)
            elif ch == "$" and self.rules.dollar_quotes and self._dollar_quoted():
                pass
            elif ch.isalpha() or ch == "_":
                self._word()
            elif ch.isdigit() or (ch == "." and sql[self.pos + 1 : self.pos + 2].isdigit()):
                self._number()
            elif ch == "?" or (ch == "$" and sql[self.pos + 1 : self.pos + 2].isdigit()):
                self._parameter()
            elif ch == "@" and self._next_is_word_char():
                self._parameter()
            else:
                self.tokens.append(Token(TokenKind.PUNCTUATION, ch))
                self.pos += 1

        if self._in_executable_comment:
            raise _Unterminated("executable comment")
        return self.tokens

    # -- comments -------------------------------------------------------------

    def _at_line_comment(self) -> bool:
        sql = self.sql
        if self.rules.hash_comments and sql[self.pos] == "#":
            return True
        if not sql.startswith("--", self.pos):
            return False
        if not self.rules.dash_comment_needs_space:
            return True
        after = sql[self.pos + 2 : self.pos + 3]
        return after == "" or after.isspace()

    def _skip_line(self) -> None:
        end = self.sql.find("\n", self.pos)
        self.pos = len(self.sql) if end == -1 else end + 1

    def _executable_comment_marker(self) -> str:
        """``/*!`` (MySQL) or ``/*M!`` (MariaDB) at the cursor, else empty."""
        if not self.rules.executable_comments:
            return ""
        for marker in ("/*!", "/*M!"):
            if self.sql.startswith(marker, self.pos):
                return marker
        return ""

    def _block_comment(self) -> None:
        sql = self.sql
        marker = self._executable_comment_marker()
        if marker:
            if self._in_executable_comment:
                raise _Unterminated("nested executable comment")
            self.pos += len(marker)
            while self.pos < len(sql) and sql[self.pos].isdigit():
                self.pos += 1
            self._in_executable_comment = True
            return

        depth = 1
        self.pos += 2
        while depth:
            if self.pos >= len(sql):
                raise _Unterminated("block comment")
            if sql.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
            elif self.rules.nested_block_comments and sql.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            else:
                self.pos += 1

    # -- literals -------------------------------------------------------------

    def _quoted(
        self,
        open_char: str,
        close_char: str,
        kind: TokenKind,
        backslash_escapes: bool,
        *,
        prefix: str = "",
    ) -> None:
        sql = self.sql
        start = self.pos
        self.pos += len(open_char)
        while True:
            if self.pos >= len(sql):
                raise _Unterminated(kind.value)
            ch = sql[self.pos]
            if backslash_escapes and ch == "\\":
                self.pos += 2
                continue
            if ch == close_char:
                if sql.startswith(close_char * 2, self.pos):
                    self.pos += 2
                    continue
                self.pos += 1
                break
            self.pos += 1
        self.tokens.append(Token(kind, prefix + sql[start : self.pos]))

    def _dollar_quoted(self) -> bool:
        match = _DOLLAR_TAG_RE.match(self.sql, self.pos)
        if match is None:
            return False
        delimiter = match.group(0)
        end = self.sql.find(delimiter, match.end())
        if end == -1:
            raise _Unterminated("dollar-quoted string")
        self.pos = end + len(delimiter)
        self.tokens.append(Token(TokenKind.STRING, self.sql[match.start() : self.pos]))
        return True

    def _next_is_word_char(self) -> bool:
        nxt = self.sql[self.pos + 1 : self.pos + 2]
        return bool(nxt) and (nxt.isalnum() or nxt in "_@")

    def _word(self) -> None:
        start = self.pos
        while self.pos < len(self.sql) and (
            self.sql[self.pos].isalnum() or self.sql[self.pos] in "_$"
        ):
            self.pos += 1
        self.tokens.append(Token(TokenKind.WORD, self.sql[start : self.pos].upper()))

    def _number(self) -> None:
        start = self.pos
        while self.pos < len(self.sql) and (
            self.sql[self.pos].isalnum() or self.sql[self.pos] in "._"
        ):
            self.pos += 1
        self.tokens.append(Token(TokenKind.NUMBER, self.sql[start : self.pos]))

    def _parameter(self) -> None:
        start = self.pos
        self.pos += 1
        while self.pos < len(self.sql) and (
            self.sql[self.pos].isalnum() or self.sql[self.pos] in "_@$."
        ):
            self.pos += 1
        self.tokens.append(Token(TokenKind.PARAMETER, self.sql[start : self.pos]))


def normalize(raw: str, dialect: str) -> CanonicalForm | Rejection:
    """Reduce raw SQL to a single canonical statement, or say why not.

    Trailing statement separators are tolerated; anything after a separator
    is a second statement and rejects the whole input.
    """
    rules = _RULES.get(dialect)
    if rules is None:
        return Rejection.UNSUPPORTED_DIALECT

    try:
        tokens = _Lexer(raw.strip(), rules).run()
    except _Unterminated:
        return Rejection.MALFORMED

    while tokens and tokens[-1].is_punct(";"):
        tokens.pop()
    if not tokens:
        return Rejection.EMPTY
    if any(t.is_punct(";") for t in tokens):
        return Rejection.MULTI_STATEMENT

    text = " ".join(t.value for t in tokens)
    return CanonicalForm(dialect=dialect, text=text, tokens=tuple(tokens))
