"""Database adapters: implementations of the ExecutionContract protocol."""

from sqlgate.adapters._base import (
    ColumnInfo,
    ConnectionConfig,
    ConnectionSummary,
    DatabaseType,
    ExecutionContract,
    ForeignKeyInfo,
    IndexInfo,
    ResultSet,
    SchemaSnapshot,
    TableInfo,
    ViewInfo,
)
from sqlgate.adapters._registry import get_adapter

__all__ = [
    "ColumnInfo",
    "ConnectionConfig",
    "ConnectionSummary",
    "DatabaseType",
    "ExecutionContract",
    "ForeignKeyInfo",
    "IndexInfo",
    "ResultSet",
    "SchemaSnapshot",
    "TableInfo",
    "ViewInfo",
    "get_adapter",
]
