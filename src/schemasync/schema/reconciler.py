"""
Schema reconciliation core logic for schemasync.

Reads the live schema of a table, compares it with the table's definition,
synthesizes the statements and hands them to the SafeExecutor.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.introspection import SchemaReader, get_schema_reader
from .comparator import compare_columns
from .ddl import synthesize, synthesize_create_table
from .dialects import DialectStrategy, get_dialect
from .executor import ReconciliationResult, SafeExecutor
from .model import TableDefinition
from .types import ChangeKind, ColumnChange, ColumnSpec


logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Changes and statements computed for one table, before execution."""

    table: str
    table_exists: bool
    desired: List[ColumnSpec]
    actual: List[ColumnSpec]
    changes: List[ColumnChange] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)
    skipped_drops: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.changes


class SchemaReconciler:
    """
    Core schema reconciliation engine for schemasync.

    Coordinates:
    - live schema reading through the dialect's SchemaReader
    - comparison of live and desired columns
    - DDL synthesis, including CREATE TABLE for missing tables
    - safe execution with backups and rollback

    Applies against the same table are not serialized here.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        dry_run: bool = False,
        backup: bool = True,
        allow_drop_columns: bool = True,
        create_missing_tables: bool = True,
        executor_logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.connection = connection
        self.dialect: DialectStrategy = get_dialect(connection.dialect)
        self.reader: SchemaReader = get_schema_reader(connection)
        self.allow_drop_columns = allow_drop_columns
        self.create_missing_tables = create_missing_tables
        self.executor = SafeExecutor(
            connection,
            self.dialect,
            dry_run=dry_run,
            backup=backup,
            logger=executor_logger or logger,
            clock=clock,
        )

    @classmethod
    def from_config(cls, connection: DatabaseConnection, config, **kwargs) -> "SchemaReconciler":
        """Build a reconciler from a ReconciliationConfig."""
        return cls(
            connection,
            dry_run=config.dry_run,
            backup=config.backup,
            allow_drop_columns=config.allow_drop_columns,
            create_missing_tables=config.create_missing_tables,
            **kwargs,
        )

    async def plan(self, definition: TableDefinition) -> ReconciliationPlan:
        """Compute the changes and statements for one table without executing them."""
        table = definition.table
        desired = definition.columns()

        exists = await self.reader.table_exists(table)
        if not exists:
            changes = [
                ColumnChange(column=c.name, kind=ChangeKind.ADD, after=c, reason="new table")
                for c in desired
            ]
            statements = (
                synthesize_create_table(self.dialect, table, desired)
                if self.create_missing_tables
                else []
            )
            return ReconciliationPlan(
                table=table,
                table_exists=False,
                desired=desired,
                actual=[],
                changes=changes if self.create_missing_tables else [],
                statements=statements,
            )

        actual = await self.reader.read_columns(table)
        changes = compare_columns(actual, desired, self.dialect)

        skipped_drops = []
        if not self.allow_drop_columns:
            skipped_drops = [c.column for c in changes if c.kind is ChangeKind.DROP]
            changes = [c for c in changes if c.kind is not ChangeKind.DROP]
            if skipped_drops:
                logger.info(
                    f"Keeping columns {', '.join(skipped_drops)} of {table}: dropping is disabled"
                )

        return ReconciliationPlan(
            table=table,
            table_exists=True,
            desired=desired,
            actual=actual,
            changes=changes,
            statements=synthesize(self.dialect, table, changes),
            skipped_drops=skipped_drops,
        )

    async def reconcile(self, definition: TableDefinition) -> ReconciliationResult:
        """
        Reconcile a single table.

        Returns:
            ReconciliationResult with the changes, statements, backup and any failure
        """
        start_time = time.monotonic()
        logger.info(f"Starting reconciliation for {definition.table}")

        plan = await self.plan(definition)
        if not plan.table_exists and not self.create_missing_tables:
            logger.warning(f"Table {definition.table} does not exist and creation is disabled")
            return ReconciliationResult(
                table=definition.table,
                success=False,
                error=f"Table {definition.table} does not exist",
                message="table missing",
            )

        if not plan.table_exists:
            # Nothing to back up yet.
            executor = SafeExecutor(
                self.connection,
                self.dialect,
                dry_run=self.executor.dry_run,
                backup=False,
                logger=self.executor.logger,
                clock=self.executor.clock,
            )
            result = await executor.apply(plan.table, plan.changes, statements=plan.statements)
        else:
            result = await self.executor.apply(plan.table, plan.changes, statements=plan.statements)

        execution_time = time.monotonic() - start_time
        logger.info(
            f"Reconciliation completed for {definition.table} in {execution_time:.3f}s: "
            f"{'success' if result.success else 'failed'}"
        )
        return result

    async def reconcile_all(
        self, definitions: Iterable[TableDefinition]
    ) -> List[ReconciliationResult]:
        """Reconcile tables one after another; a failed apply does not stop the rest."""
        results = []
        for definition in definitions:
            results.append(await self.reconcile(definition))
        return results

    async def rebuild(self, definition: TableDefinition) -> ReconciliationResult:
        """Rebuild a table into its desired shape. Never called implicitly."""
        actual = await self.reader.read_columns(definition.table)
        return await self.executor.rebuild_table(definition.table, definition.columns(), actual)

    def get_reconciliation_summary(
        self, results: List[ReconciliationResult]
    ) -> Dict[str, Any]:
        """Get a summary of reconciliation results."""
        total = len(results)
        failed = [r for r in results if not r.success]
        return {
            "total_tables": total,
            "successful": total - len(failed),
            "failed": len(failed),
            "tables_changed": sum(1 for r in results if r.changes),
            "total_changes": sum(len(r.changes) for r in results),
            "statements": sum(len(r.executable_statements) for r in results),
            "backups": [r.backup_table for r in results if r.backup_table],
            "failed_tables": [r.table for r in failed],
            "total_duration": sum(r.duration for r in results),
        }
