"""
Pytest configuration and shared fixtures for schemasync tests.

This module provides recording fakes for database connections and a real
SQLite database for end-to-end reconciliation tests.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
import yaml

from schemasync.database.connection import (
    ConnectionConfig,
    DatabaseConnection,
    SQLiteConnection,
    Transaction,
)
from schemasync.schema.dialects import Dialect
from schemasync.schema.model import TableDefinition
from schemasync.schema.types import ColumnSpec, LogicalType


# ============================================================================
# Recording fakes
# ============================================================================

class FakeTransaction(Transaction):
    """Records statements and fails on the one matching ``fail_on``.

    ``commit_error`` and ``rollback_error`` on the owner make those calls raise.
    """

    def __init__(self, owner: "FakeConnection"):
        self.owner = owner
        self.committed = False
        self.rolled_back = False

    async def execute(self, statement: str, *args) -> Any:
        if self.owner.fail_on and self.owner.fail_on in statement:
            raise RuntimeError(f"simulated failure: {statement}")
        self.owner.transaction_statements.append(statement)

    async def commit(self) -> None:
        if self.owner.commit_error:
            raise self.owner.commit_error
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True
        if self.owner.rollback_error:
            raise self.owner.rollback_error
        self.owner.transaction_statements.clear()


class FakeConnection(DatabaseConnection):
    """A DatabaseConnection that records what would run against the database."""

    def __init__(self, dialect: Dialect = Dialect.MYSQL, tables: Optional[List[str]] = None):
        super().__init__(ConnectionConfig(dialect=dialect, database="fake"))
        self.dialect = dialect
        self.executed: List[str] = []
        self.transaction_statements: List[str] = []
        self.transactions: List[FakeTransaction] = []
        self.fail_on: Optional[str] = None
        self.fail_execute_on: Optional[str] = None
        self.commit_error: Optional[Exception] = None
        self.rollback_error: Optional[Exception] = None
        self.tables = list(tables or [])
        self.rows: List[Dict[str, Any]] = []
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def fetch(self, query: str, *args) -> List[Dict[str, Any]]:
        if "TABLES" in query.upper() or "SQLITE_MASTER" in query.upper():
            prefix = str(args[-1]).rstrip("%") if args else ""
            return [
                {"table_name": t, "name": t} for t in self.tables if t.startswith(prefix)
            ]
        return self.rows

    async def execute(self, statement: str, *args) -> Any:
        if self.fail_execute_on and self.fail_execute_on in statement:
            raise RuntimeError(f"simulated failure: {statement}")
        self.executed.append(statement)
        return 0

    async def begin(self) -> Transaction:
        transaction = FakeTransaction(self)
        self.transactions.append(transaction)
        return transaction


@pytest.fixture
def fake_mysql() -> FakeConnection:
    return FakeConnection(Dialect.MYSQL)


@pytest.fixture
def fake_sqlite() -> FakeConnection:
    return FakeConnection(Dialect.SQLITE)


@pytest.fixture
def mock_connection():
    """Driver-level mock exposing fetch/fetchval/execute."""
    connection = AsyncMock()
    connection.dialect = Dialect.POSTGRESQL
    connection.db_schema = "public"
    return connection


# ============================================================================
# Column fixtures
# ============================================================================

@pytest.fixture
def users_columns() -> List[ColumnSpec]:
    """Live columns of a small users table."""
    return [
        ColumnSpec("id", LogicalType.BIG_INT, primary_key=True, auto_increment=True),
        ColumnSpec("email", LogicalType.STRING, length=255, not_null=True, unique=True),
        ColumnSpec("status", LogicalType.STRING, length=10, default_value="'active'"),
    ]


@pytest.fixture
def users_definition() -> TableDefinition:
    return (
        TableDefinition("users")
        .field("id", value_type=int, primary_key=True, auto_increment=True)
        .field("email", type="varchar", size=255, nullable=False, unique=True)
        .field("status", type="varchar", size=20, default="active")
    )


# ============================================================================
# SQLite fixtures
# ============================================================================

@pytest.fixture
def sqlite_path(tmp_path) -> str:
    return str(tmp_path / "schemasync.db")


@pytest_asyncio.fixture
async def sqlite_connection(sqlite_path):
    """An open SQLite connection on a temporary database file."""
    connection = SQLiteConnection(ConnectionConfig(dialect="sqlite", database=sqlite_path))
    await connection.connect()
    yield connection
    await connection.close()


@pytest.fixture
def config_file(tmp_path, sqlite_path):
    """A YAML configuration file pointing at the temporary SQLite database."""
    data = {
        "databases": [
            {
                "name": "local",
                "url": f"sqlite:///{sqlite_path}",
                "tables": [
                    {
                        "table": "users",
                        "fields": [
                            {
                                "name": "id",
                                "value_type": "int64",
                                "primary_key": True,
                                "auto_increment": True,
                            },
                            {"name": "email", "type": "varchar", "size": 255, "nullable": False},
                            {"name": "status", "type": "varchar", "size": 20, "default": "active"},
                        ],
                    }
                ],
            }
        ],
        "reconciliation": {"backup": True, "backup_retention_days": 7},
    }
    path = tmp_path / "schemasync.yaml"
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    return str(path)
