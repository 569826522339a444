"""
Tests for schemasync.schema.reconciler module.
"""

from datetime import datetime, timezone

import pytest

from schemasync.config import ReconciliationConfig
from schemasync.schema.model import TableDefinition
from schemasync.schema.reconciler import SchemaReconciler
from schemasync.schema.types import ChangeKind

from tests.conftest import FakeConnection


def _mysql_row(name, column_type, nullable="YES", default=None, key="", extra=""):
    return {
        "column_name": name,
        "column_type": column_type,
        "max_length": None,
        "numeric_precision": None,
        "numeric_scale": None,
        "is_nullable": nullable,
        "column_default": default,
        "column_comment": "",
        "column_key": key,
        "extra": extra,
    }


LIVE_USERS = [
    _mysql_row("id", "bigint", nullable="NO", key="PRI", extra="auto_increment"),
    _mysql_row("email", "varchar(255)", nullable="NO", key="UNI"),
    _mysql_row("status", "varchar(10)", default="active"),
    _mysql_row("legacy", "text"),
]


def fixed_clock():
    return datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def live_mysql():
    connection = FakeConnection(tables=["users"])
    connection.rows = LIVE_USERS
    return connection


class TestSchemaReconcilerPlan:
    """Test planning without execution."""

    @pytest.mark.asyncio
    async def test_plan_existing_table(self, live_mysql, users_definition):
        plan = await SchemaReconciler(live_mysql).plan(users_definition)

        assert plan.table_exists
        assert [(c.kind, c.column) for c in plan.changes] == [
            (ChangeKind.DROP, "legacy"),
            (ChangeKind.MODIFY, "status"),
        ]
        assert plan.statements == [
            "ALTER TABLE users DROP COLUMN legacy, "
            "MODIFY COLUMN status VARCHAR(20) DEFAULT 'active'"
        ]
        assert live_mysql.executed == []

    @pytest.mark.asyncio
    async def test_plan_keeps_columns_when_drops_disabled(self, live_mysql, users_definition):
        reconciler = SchemaReconciler(live_mysql, allow_drop_columns=False)
        plan = await reconciler.plan(users_definition)
        assert plan.skipped_drops == ["legacy"]
        assert [c.kind for c in plan.changes] == [ChangeKind.MODIFY]

    @pytest.mark.asyncio
    async def test_plan_missing_table(self, users_definition):
        plan = await SchemaReconciler(FakeConnection()).plan(users_definition)
        assert not plan.table_exists
        assert all(c.reason == "new table" for c in plan.changes)
        assert len(plan.statements) == 1
        assert plan.statements[0].startswith("CREATE TABLE users (")

    @pytest.mark.asyncio
    async def test_plan_up_to_date(self, live_mysql):
        definition = (
            TableDefinition("users")
            .field("id", value_type=int, primary_key=True, auto_increment=True)
            .field("email", type="varchar", size=255, nullable=False, unique=True)
            .field("status", type="varchar", size=10, default="active")
            .field("legacy", type="text")
        )
        plan = await SchemaReconciler(live_mysql).plan(definition)
        assert plan.is_empty
        assert plan.statements == []


class TestSchemaReconcilerReconcile:
    """Test reconciliation through the SafeExecutor."""

    @pytest.mark.asyncio
    async def test_reconcile_applies_with_backup(self, live_mysql, users_definition):
        reconciler = SchemaReconciler(live_mysql, clock=fixed_clock)
        result = await reconciler.reconcile(users_definition)

        assert result.success
        assert result.backup_table == "users_backup_20240315120000"
        assert live_mysql.transaction_statements == list(result.statements)

    @pytest.mark.asyncio
    async def test_reconcile_creates_missing_table_without_backup(self, users_definition):
        connection = FakeConnection()
        result = await SchemaReconciler(connection).reconcile(users_definition)

        assert result.success
        assert result.backup_table is None
        assert connection.executed == []
        assert connection.transaction_statements[0].startswith("CREATE TABLE users")

    @pytest.mark.asyncio
    async def test_missing_table_with_creation_disabled(self, users_definition):
        reconciler = SchemaReconciler(FakeConnection(), create_missing_tables=False)
        result = await reconciler.reconcile(users_definition)
        assert not result.success
        assert "does not exist" in result.error

    @pytest.mark.asyncio
    async def test_from_config(self, live_mysql, users_definition):
        settings = ReconciliationConfig(dry_run=True, allow_drop_columns=False)
        reconciler = SchemaReconciler.from_config(live_mysql, settings)
        result = await reconciler.reconcile(users_definition)
        assert result.dry_run
        assert [c.column for c in result.changes] == ["status"]
        assert live_mysql.transactions == []

    @pytest.mark.asyncio
    async def test_reconcile_all_and_summary(self, live_mysql, users_definition):
        live_mysql.fail_on = "MODIFY COLUMN"
        reconciler = SchemaReconciler(live_mysql, backup=False)
        results = await reconciler.reconcile_all([users_definition])
        summary = reconciler.get_reconciliation_summary(results)

        assert summary["total_tables"] == 1
        assert summary["failed"] == 1
        assert summary["failed_tables"] == ["users"]
        assert summary["total_changes"] == 2
        assert summary["backups"] == []
