"""Test lazy adapter registry."""

from unittest.mock import patch

import pytest

from sqlgate.adapters._base import DatabaseType, ExecutionContract
from sqlgate.adapters._registry import _ADAPTER_MAP, _EXTRAS, get_adapter
from sqlgate.diagnostics import EngineError


def test_get_sqlite_adapter():
    adapter = get_adapter(DatabaseType.SQLITE)
    assert type(adapter).__name__ == "SQLiteAdapter"
    assert adapter.db_type() == DatabaseType.SQLITE
    assert isinstance(adapter, ExecutionContract)


@pytest.mark.parametrize(
    "db_type,class_name,extra",
    [
        (DatabaseType.POSTGRES, "PostgresAdapter", "postgres"),
        (DatabaseType.MYSQL, "MySQLAdapter", "mysql"),
    ],
)
def test_get_server_adapter(db_type, class_name, extra):
    """Driver may or may not be installed."""
    try:
        adapter = get_adapter(db_type)
        assert type(adapter).__name__ == class_name
    except EngineError as e:
        assert "missing driver" in str(e)
        assert f"sqlgate[{extra}]" in str(e)


def test_missing_driver_has_install_hint():
    with patch(
        "sqlgate.adapters._registry.importlib.import_module",
        side_effect=ImportError("No module named 'aiosqlite'"),
    ):
        with pytest.raises(EngineError) as exc_info:
            get_adapter(DatabaseType.SQLITE)
    assert exc_info.value.dialect == "sqlite"
    assert "pip install 'sqlgate[sqlite]'" in exc_info.value.message


def test_every_adapter_has_an_extra():
    for db_type in _ADAPTER_MAP:
        assert db_type in _EXTRAS


def test_adapters_are_fresh_instances():
    assert get_adapter(DatabaseType.SQLITE) is not get_adapter(DatabaseType.SQLITE)
