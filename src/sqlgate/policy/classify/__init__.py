"""Classify canonical SQL into an operation category, per dialect.

Each dialect module owns its keyword sets and walking logic. This module
only dispatches; it holds no rules of its own.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlgate.policy._types import CanonicalForm, OperationCategory
from sqlgate.policy.classify import mysql, postgres, sqlite

_CLASSIFIERS: dict[str, Callable[[CanonicalForm], OperationCategory]] = {
    "postgres": postgres.classify,
    "mysql": mysql.classify,
    "sqlite": sqlite.classify,
}


def classify(canonical: CanonicalForm, dialect: str) -> OperationCategory:
    """Map a canonical statement to READ_ONLY, WRITE or DDL.

    Never raises. A dialect with no classifier, or a canonical form produced
    for a different dialect, yields DDL.
    """
    classifier = _CLASSIFIERS.get(dialect)
    if classifier is None or canonical.dialect != dialect:
        return OperationCategory.DDL
    return classifier(canonical)


__all__ = ["classify"]
