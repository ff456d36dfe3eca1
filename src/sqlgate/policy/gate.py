"""Capability gate: combine a classification with caller-granted capabilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlgate.diagnostics import ErrorCode, InvalidInput
from sqlgate.policy._types import ClassificationOutcome, OperationCategory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilitySet:
    """Permissions declared by the caller for a single invocation.

    ``allow_ddl`` implies write access; ``allow_write`` never implies DDL.
    ``max_rows`` and ``timeout`` (seconds) of ``None`` mean no limit.
    """

    allow_write: bool = False
    allow_ddl: bool = False
    max_rows: int | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_rows is not None and self.max_rows < 0:
            raise InvalidInput(f"max_rows must be >= 0, got {self.max_rows}")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidInput(f"timeout must be > 0 seconds, got {self.timeout}")

    @property
    def can_write(self) -> bool:
        return self.allow_write or self.allow_ddl

    @property
    def can_ddl(self) -> bool:
        return self.allow_ddl


@dataclass(frozen=True)
class ExecutionParams:
    max_rows: int | None = None
    timeout: float | None = None


@dataclass(frozen=True)
class Permitted:
    category: OperationCategory
    params: ExecutionParams

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    """A refusal. Carries the error code and category, never the SQL text."""

    code: ErrorCode
    message: str
    category: OperationCategory | None = None
    hint: str | None = None

    @property
    def allowed(self) -> bool:
        return False


GateDecision = Permitted | Denied


def authorize(outcome: ClassificationOutcome, caps: CapabilitySet) -> GateDecision:
    """Decide whether a classified statement may execute under ``caps``.

    Rejected input is denied before capabilities are consulted.
    """
    if outcome.rejection is not None:
        decision: GateDecision = Denied(ErrorCode.INVALID_INPUT, outcome.rejection.message)
    elif outcome.category is None:
        decision = Denied(ErrorCode.INVALID_INPUT, "statement was not classified")
    elif outcome.category == OperationCategory.READ_ONLY:
        decision = _permit(outcome.category, caps)
    elif outcome.category == OperationCategory.WRITE:
        if caps.can_write:
            decision = _permit(outcome.category, caps)
        else:
            decision = Denied(
                ErrorCode.CAPABILITY_VIOLATION,
                "write operation blocked",
                outcome.category,
                hint="pass --allow-write to enable INSERT/UPDATE/DELETE",
            )
    elif caps.can_ddl:
        decision = _permit(outcome.category, caps)
    else:
        decision = Denied(
            ErrorCode.CAPABILITY_VIOLATION,
            "DDL operation blocked",
            outcome.category,
            hint="pass --allow-ddl to enable schema changes (--allow-write is not enough)",
        )

    log.debug(
        "gate decision: category=%s allowed=%s",
        outcome.category.value if outcome.category else None,
        decision.allowed,
    )
    return decision


def _permit(category: OperationCategory, caps: CapabilitySet) -> Permitted:
    return Permitted(category, ExecutionParams(max_rows=caps.max_rows, timeout=caps.timeout))
