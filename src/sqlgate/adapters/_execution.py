"""Execution plumbing shared by the adapters: timeouts, row shaping, config checks.

Nothing in here looks at SQL text. Classification lives in the policy package.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

from sqlgate.adapters._base import ConnectionConfig, DatabaseType
from sqlgate.diagnostics import InvalidInput, QueryTimeout

T = TypeVar("T")
log = logging.getLogger(__name__)


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout: float | None,
    cancel: Callable[[], object] | None = None,
    *,
    dialect: str,
) -> T:
    """Await ``operation()`` bounded by ``timeout`` seconds.

    On expiry ``cancel`` (sync or async) is invoked while the operation is
    still pending, so drivers that run statements on a worker thread can
    unblock it. The operation is then cancelled and QueryTimeout is raised.
    The caller still owns closing the connection.
    """
    if timeout is None:
        return await operation()

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    log.warning("%s statement timed out after %gs", dialect, timeout)
    if cancel is not None:
        try:
            result = cancel()
            if inspect.isawaitable(result):
                await result
        except Exception as cancel_exc:
            log.warning("%s statement cancellation failed: %s", dialect, cancel_exc)
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        log.debug(
            "%s statement ended with %s after cancellation",
            dialect,
            type(task.exception()).__name__,
        )
    raise QueryTimeout(dialect, timeout)


def encode_value(value: object) -> object:
    """Make a driver value JSON-friendly: binary becomes Base64 text."""
    if isinstance(value, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def shape_rows(
    columns: Sequence[str], raw_rows: Iterable[Sequence[object]]
) -> list[dict[str, object]]:
    return [
        {col: encode_value(val) for col, val in zip(columns, row, strict=True)}
        for row in raw_rows
    ]


def fetch_size(max_rows: int | None) -> int | None:
    """Rows to request from the cursor; one extra reveals truncation."""
    return None if max_rows is None else max_rows + 1


def cap_rows(rows: list[T], max_rows: int | None) -> tuple[list[T], bool]:
    if max_rows is None or len(rows) <= max_rows:
        return rows, False
    return rows[:max_rows], True


def require_config(
    config: ConnectionConfig,
    db_type: DatabaseType,
    *required: str,
    alternatives: Sequence[str] = (),
) -> None:
    """Validate that ``config`` targets ``db_type`` and has the needed params.

    ``alternatives`` names params that, when present, satisfy ``required``
    on their own (e.g. a PostgreSQL ``dsn``).
    """
    if config.db_type != db_type:
        raise InvalidInput(
            f"expected {db_type.value} connection, got {config.db_type.value}"
        )
    if any(config.params.get(key) for key in alternatives):
        return
    missing = [key for key in required if not config.params.get(key)]
    if missing:
        raise InvalidInput(
            f"{db_type.value} connection '{config.name}' is missing: {', '.join(missing)}"
        )


def port_param(config: ConnectionConfig, default: int) -> int:
    raw = config.params.get("port")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidInput(f"port must be an integer, got {raw!r}") from e
