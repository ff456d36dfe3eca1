"""Execution contract: the boundary between the policy engine and drivers.

Adapters hold no state. Each operation receives the connection config, opens
its own connection, and closes it before returning or raising.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlgate.policy import CapabilitySet, OperationCategory


class DatabaseType(enum.Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"


@dataclass
class ConnectionConfig:
    name: str
    db_type: DatabaseType
    params: dict[str, str] = field(default_factory=dict)

    @property
    def dialect(self) -> str:
        return self.db_type.value


@dataclass
class ConnectionSummary:
    """What a successful connectivity probe learned about the server."""

    database_version: str
    server_info: str
    connected_database: str | None = None
    user: str | None = None


@dataclass
class ColumnInfo:
    name: str
    data_type: str
    nullable: bool = True
    default: str | None = None


@dataclass
class ForeignKeyInfo:
    name: str
    columns: list[str]
    referenced_table: str
    referenced_columns: list[str]


@dataclass
class IndexInfo:
    name: str
    columns: list[str]
    unique: bool = False


@dataclass
class TableInfo:
    schema: str | None
    name: str
    columns: list[ColumnInfo] = field(default_factory=list)
    primary_key: list[str] = field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = field(default_factory=list)
    indexes: list[IndexInfo] = field(default_factory=list)


@dataclass
class ViewInfo:
    schema: str | None
    name: str
    columns: list[ColumnInfo] = field(default_factory=list)


@dataclass
class SchemaSnapshot:
    tables: list[TableInfo] = field(default_factory=list)
    views: list[ViewInfo] = field(default_factory=list)


@dataclass
class ResultSet:
    """Outcome of an authorized statement.

    ``truncated`` is True when the statement produced more rows than the
    granted ``max_rows``; only the first ``max_rows`` are kept.
    ``rows_affected`` is the driver's row count for statements without a
    result set, else None.
    """

    category: OperationCategory
    columns: list[str]
    rows: list[dict[str, object]]
    rows_affected: int | None = None
    truncated: bool = False
    duration_ms: float | None = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


@runtime_checkable
class ExecutionContract(Protocol):
    async def check_connectivity(self, config: ConnectionConfig) -> ConnectionSummary: ...
    async def describe_schema(
        self, config: ConnectionConfig, scope: str | None = None
    ) -> SchemaSnapshot: ...
    async def run_statement(
        self, config: ConnectionConfig, sql: str, caps: CapabilitySet
    ) -> ResultSet: ...
    def db_type(self) -> DatabaseType: ...
