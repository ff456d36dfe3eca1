"""Audit log of gate decisions: daily JSONL files per project, with retention cleanup.

Entries record what was decided and which tables were touched. The SQL text
itself is not stored; literals in it may carry data the caller never meant to
persist.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlgate.policy.tables import referenced_tables

log = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30
_LOG_ROOT = Path.home() / ".sqlgate" / "logs"


def _project_slug() -> str:
    """Encode cwd into a directory-safe slug."""
    return os.getcwd().replace(os.sep, "-").lstrip("-")


def _log_dir() -> Path:
    return _LOG_ROOT / _project_slug()


def _today_file() -> Path:
    today = datetime.now(UTC).strftime("%Y-%m-%d")
    return _log_dir() / f"{today}.jsonl"


def log_decision(
    *,
    sql: str,
    dialect: str,
    db: str | None = None,
    command: str = "query",
    category: str | None = None,
    allowed: bool,
    error_code: str | None = None,
    row_count: int | None = None,
    truncated: bool = False,
    duration_ms: float | None = None,
) -> Path:
    """Append one decision to today's JSONL file and return the file path."""
    entry = {
        "ts": datetime.now(UTC).isoformat(),
        "command": command,
        "db": db,
        "dialect": dialect,
        "category": category,
        "allowed": allowed,
        "error_code": error_code,
        "tables": referenced_tables(sql, dialect),
        "row_count": row_count,
        "truncated": truncated,
        "duration_ms": duration_ms,
    }

    log_file = _today_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(log_file, "a") as f:
        f.write(json.dumps(entry, default=str) + "\n")
    return log_file


def read_entries(day: str | None = None) -> list[dict]:
    """Entries for ``day`` (YYYY-MM-DD, default today) in the current project."""
    log_file = _today_file() if day is None else _log_dir() / f"{day}.jsonl"
    if not log_file.exists():
        return []
    with open(log_file) as f:
        return [json.loads(line) for line in f if line.strip()]


def cleanup_old_logs(*, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
    """Delete log files older than retention_days. Returns count of deleted files."""
    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    deleted = 0

    log_dir = _log_dir()
    if not log_dir.exists():
        return 0

    for log_file in log_dir.glob("*.jsonl"):
        try:
            file_date = datetime.strptime(log_file.stem, "%Y-%m-%d").replace(tzinfo=UTC)
        except ValueError:
            continue
        if file_date < cutoff:
            log_file.unlink()
            deleted += 1

    if deleted:
        log.debug("removed %d audit log file(s) older than %d days", deleted, retention_days)

    # Only succeeds once the directory is empty.
    with contextlib.suppress(OSError):
        log_dir.rmdir()

    return deleted
