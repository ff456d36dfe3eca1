"""Exception taxonomy shared by the policy engine, adapters and CLI.

Every failure that crosses a module boundary is one of these. Driver
exceptions are caught at the adapter boundary and re-raised as the matching
subclass, with their text passed through :func:`redact` first.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from sqlgate.diagnostics.codes import ErrorCode

_URL_PASSWORD_RE = re.compile(r"(://[^:/@\s]+:)[^@\s]+(@)")
_KV_PASSWORD_RE = re.compile(
    r"""(?i)\b(password|passwd|pwd)(\s*[=:]\s*)('[^']*'|"[^"]*"|[^\s,;)]+)"""
)

MASK = "****"


def redact(text: str, secrets: Iterable[str | None] = ()) -> str:
    """Mask credential-shaped substrings in driver or config error text."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    text = _URL_PASSWORD_RE.sub(rf"\1{MASK}\2", text)
    return _KV_PASSWORD_RE.sub(rf"\1\2{MASK}", text)


class SqlGateError(Exception):
    """Base class: a stable error code plus a human-readable message."""

    code: ErrorCode = ErrorCode.ENGINE_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": str(self.code), "message": self.message}


class InvalidInput(SqlGateError):
    code = ErrorCode.INVALID_INPUT


class CapabilityViolation(SqlGateError):
    code = ErrorCode.CAPABILITY_VIOLATION


class ConnectionFailed(SqlGateError):
    code = ErrorCode.CONNECTION_FAILED


class QueryFailed(SqlGateError):
    code = ErrorCode.QUERY_FAILED


class QueryTimeout(SqlGateError):
    code = ErrorCode.QUERY_TIMEOUT

    def __init__(self, dialect: str, timeout: float) -> None:
        super().__init__(f"{dialect} statement exceeded timeout of {timeout:g}s")
        self.dialect = dialect
        self.timeout = timeout


class EngineError(SqlGateError):
    code = ErrorCode.ENGINE_ERROR

    def __init__(self, dialect: str, detail: str) -> None:
        super().__init__(f"{dialect}: {detail}")
        self.dialect = dialect
        self.detail = detail


class ConfigError(SqlGateError):
    code = ErrorCode.CONFIG_ERROR
