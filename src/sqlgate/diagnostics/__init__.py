"""Error codes, exception taxonomy and credential redaction."""

from sqlgate.diagnostics.codes import ErrorCode
from sqlgate.diagnostics.errors import (
    CapabilityViolation,
    ConfigError,
    ConnectionFailed,
    EngineError,
    InvalidInput,
    QueryFailed,
    QueryTimeout,
    SqlGateError,
    redact,
)

__all__ = [
    "CapabilityViolation",
    "ConfigError",
    "ConnectionFailed",
    "EngineError",
    "ErrorCode",
    "InvalidInput",
    "QueryFailed",
    "QueryTimeout",
    "SqlGateError",
    "redact",
]
