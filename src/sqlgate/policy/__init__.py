"""Policy engine: normalize, classify, authorize.

Pure functions only. Nothing here opens a connection or keeps state between
calls, so identical (dialect, sql, caps) inputs always produce identical
decisions.
"""

from __future__ import annotations

import logging

from sqlgate.diagnostics import CapabilityViolation, ErrorCode, InvalidInput
from sqlgate.policy._types import (
    SUPPORTED_DIALECTS,
    CanonicalForm,
    ClassificationOutcome,
    OperationCategory,
    Rejection,
)
from sqlgate.policy.classify import classify
from sqlgate.policy.gate import (
    CapabilitySet,
    Denied,
    ExecutionParams,
    GateDecision,
    Permitted,
    authorize,
)
from sqlgate.policy.preprocess import normalize

log = logging.getLogger(__name__)


def classify_sql(sql: str, *, dialect: str) -> ClassificationOutcome:
    """Run the preprocessor and classifier.

    Steps:
        1. Normalize (comments, whitespace, multi-statement detection)
        2. Classify the canonical form with the dialect's own rules
    """
    canonical = normalize(sql, dialect)
    if isinstance(canonical, Rejection):
        log.debug("rejected %s input: %s", dialect, canonical.value)
        return ClassificationOutcome(rejection=canonical)
    category = classify(canonical, dialect)
    log.debug("classified %s statement as %s", dialect, category.value)
    return ClassificationOutcome(category=category)


def evaluate(sql: str, *, dialect: str, caps: CapabilitySet) -> GateDecision:
    """Run the full pipeline and return the gate decision. Never raises."""
    return authorize(classify_sql(sql, dialect=dialect), caps)


def enforce(sql: str, *, dialect: str, caps: CapabilitySet) -> Permitted:
    """Like :func:`evaluate`, but raise on denial.

    Raises:
        InvalidInput: the statement was rejected before classification.
        CapabilityViolation: the category is not covered by ``caps``.
    """
    decision = evaluate(sql, dialect=dialect, caps=caps)
    if isinstance(decision, Permitted):
        return decision
    message = decision.message
    if decision.hint:
        message = f"{message} ({decision.hint})"
    if decision.code == ErrorCode.CAPABILITY_VIOLATION:
        raise CapabilityViolation(message)
    raise InvalidInput(message)


__all__ = [
    "SUPPORTED_DIALECTS",
    "CanonicalForm",
    "CapabilitySet",
    "ClassificationOutcome",
    "Denied",
    "ExecutionParams",
    "GateDecision",
    "OperationCategory",
    "Permitted",
    "Rejection",
    "authorize",
    "classify",
    "classify_sql",
    "enforce",
    "evaluate",
    "normalize",
]
