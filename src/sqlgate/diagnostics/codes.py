"""Stable, searchable error code registry.

These strings are the only part of an error that callers may match on; the
free-text message that accompanies them can change between releases.

- INVALID_INPUT:          empty, multi-statement or unlexable SQL; bad config/caps
- CAPABILITY_VIOLATION:   statement category not permitted by the capability set
- CONNECTION_FAILED:      could not establish or probe a connection
- QUERY_FAILED:           the driver rejected the statement after authorization
- QUERY_TIMEOUT:          execution exceeded the granted timeout
- ENGINE_ERROR:           dialect-specific failure not covered above
- CONFIG_ERROR:           connection store or credential resolution failure
"""

from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    INVALID_INPUT = "INVALID_INPUT"
    CAPABILITY_VIOLATION = "CAPABILITY_VIOLATION"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    QUERY_FAILED = "QUERY_FAILED"
    QUERY_TIMEOUT = "QUERY_TIMEOUT"
    ENGINE_ERROR = "ENGINE_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"

    def __str__(self) -> str:
        return self.value

