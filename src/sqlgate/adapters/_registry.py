"""Lazy adapter loading: driver modules are imported only when needed."""

from __future__ import annotations

import importlib

from sqlgate.adapters._base import DatabaseType, ExecutionContract
from sqlgate.diagnostics import EngineError

_ADAPTER_MAP: dict[DatabaseType, tuple[str, str]] = {
    DatabaseType.POSTGRES: ("sqlgate.adapters.postgres", "PostgresAdapter"),
    DatabaseType.MYSQL: ("sqlgate.adapters.mysql", "MySQLAdapter"),
    DatabaseType.SQLITE: ("sqlgate.adapters.sqlite", "SQLiteAdapter"),
}

_EXTRAS: dict[DatabaseType, str] = {
    DatabaseType.POSTGRES: "postgres",
    DatabaseType.MYSQL: "mysql",
    DatabaseType.SQLITE: "sqlite",
}


def get_adapter(db_type: DatabaseType) -> ExecutionContract:
    """Load the adapter for ``db_type`` and return an instance.

    Raises EngineError with an install hint if the driver package is missing.
    """
    entry = _ADAPTER_MAP.get(db_type)
    if entry is None:
        raise EngineError(db_type.value, "no adapter registered")

    module_path, class_name = entry
    try:
        mod = importlib.import_module(module_path)
    except ImportError as e:
        extra = _EXTRAS.get(db_type, "all")
        raise EngineError(
            db_type.value,
            f"missing driver. Install with: pip install 'sqlgate[{extra}]'",
        ) from e

    return getattr(mod, class_name)()
