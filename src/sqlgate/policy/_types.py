"""Internal types for the policy engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass

SUPPORTED_DIALECTS = ("postgres", "mysql", "sqlite")


class OperationCategory(enum.Enum):
    READ_ONLY = "read_only"
    WRITE = "write"
    DDL = "ddl"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def most_restrictive(self, other: OperationCategory) -> OperationCategory:
        return self if self.rank >= other.rank else other


_RANKS = {
    OperationCategory.READ_ONLY: 0,
    OperationCategory.WRITE: 1,
    OperationCategory.DDL: 2,
}


class Rejection(enum.Enum):
    """Why the preprocessor refused to produce a canonical form."""

    EMPTY = "empty"
    MULTI_STATEMENT = "multi_statement"
    MALFORMED = "malformed"
    UNSUPPORTED_DIALECT = "unsupported_dialect"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    Rejection.EMPTY: "query cannot be empty",
    Rejection.MULTI_STATEMENT: "multi-statement queries are not allowed",
    Rejection.MALFORMED: "unterminated string, identifier or comment",
    Rejection.UNSUPPORTED_DIALECT: "unsupported SQL dialect",
}


class TokenKind(enum.Enum):
    WORD = "word"
    QUOTED_IDENTIFIER = "quoted_identifier"
    STRING = "string"
    NUMBER = "number"
    PARAMETER = "parameter"
    PUNCTUATION = "punctuation"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str

    def is_word(self, *words: str) -> bool:
        return self.kind == TokenKind.WORD and (not words or self.value in words)

    def is_punct(self, char: str) -> bool:
        return self.kind == TokenKind.PUNCTUATION and self.value == char


@dataclass(frozen=True)
class CanonicalForm:
    """Comment-free token sequence of exactly one statement.

    WORD tokens are upper-cased; literals keep their original text.
    """

    dialect: str
    text: str
    tokens: tuple[Token, ...]


@dataclass(frozen=True)
class ClassificationOutcome:
    category: OperationCategory | None = None
    rejection: Rejection | None = None

    @property
    def rejected(self) -> bool:
        return self.rejection is not None
