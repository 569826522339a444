"""
Safe execution of schema changes for schemasync.

Orchestrates dry-run, backup, transactional apply and recovery reporting:

    Start -> (DryRunExit | BackupFailed | Applying -> Committed | RolledBack)

A failed apply is never retried. Callers must serialize applies against
the same table.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from ..database.connection import DatabaseConnection
from ..database.introspection import get_schema_reader
from ..exceptions import ApplyError, BackupError
from .comparator import compare_columns
from .ddl import advisory_statements, executable_statements, synthesize, synthesize_rebuild
from .dialects import DialectStrategy, get_dialect
from .types import ColumnChange, ColumnSpec


BACKUP_INFIX = "_backup_"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
COMMIT_STATEMENT = "COMMIT"
_BACKUP_SUFFIX = re.compile(r"_backup_(\d{14})$")


def backup_table_name(table: str, moment: datetime) -> str:
    """``<table>_backup_<YYYYMMDDHHMMSS>``."""
    return f"{table}{BACKUP_INFIX}{moment.strftime(BACKUP_TIMESTAMP_FORMAT)}"


def parse_backup_timestamp(name: str) -> Optional[datetime]:
    """Creation time encoded in a backup table name, or None if it is not one."""
    match = _BACKUP_SUFFIX.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), BACKUP_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one safe apply."""

    table: str
    changes: Tuple[ColumnChange, ...] = ()
    statements: Tuple[str, ...] = ()
    success: bool = True
    dry_run: bool = False
    backup_table: Optional[str] = None
    failed_statement: Optional[str] = None
    recovery_instructions: Optional[str] = None
    duration: float = 0.0
    error: Optional[str] = None
    message: str = ""

    @property
    def executable_statements(self) -> List[str]:
        return executable_statements(self.statements)

    @property
    def advisories(self) -> List[str]:
        return advisory_statements(self.statements)

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def summary_rows(self) -> List[Tuple[str, str, str]]:
        """One ``(column, glyph, reason)`` row per change."""
        return [(c.column, c.glyph, c.reason) for c in self.changes]

    def log_summary(self, logger: logging.Logger) -> None:
        """Write an operator-facing summary of this result to ``logger``."""
        if not self.changes:
            logger.info(f"Table {self.table}: schema is up to date")
            return
        mode = " (dry run)" if self.dry_run else ""
        logger.info(f"Table {self.table}: {len(self.changes)} change(s){mode}")
        for column, glyph, reason in self.summary_rows():
            logger.info(f"  {glyph} {column}: {reason}")
        for advisory in self.advisories:
            logger.warning(f"  {advisory}")
        if self.backup_table:
            logger.info(f"  backup: {self.backup_table}")
        if self.success:
            logger.info(f"  completed in {self.duration:.3f}s")
        else:
            logger.error(f"  failed statement: {self.failed_statement}")
            logger.error(f"  error: {self.error}")
            if self.recovery_instructions:
                logger.error(self.recovery_instructions)


class SafeExecutor:
    """
    Applies synthesized statements to one table with optional backup.

    The logger is injected so callers decide where summaries go. ``clock``
    returns the current UTC time and exists for deterministic backup names.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        dialect=None,
        dry_run: bool = False,
        backup: bool = True,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.connection = connection
        self.dialect: DialectStrategy = get_dialect(
            dialect if dialect is not None else connection.dialect
        )
        self.dry_run = dry_run
        self.backup = backup
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or _utcnow

    async def apply(
        self,
        table: str,
        changes: Sequence[ColumnChange],
        statements: Optional[Sequence[str]] = None,
    ) -> ReconciliationResult:
        """
        Apply ``changes`` to ``table``.

        Statements are synthesized from the changes unless given. Backup
        failures raise BackupError before anything is mutated; statement
        and commit failures are rolled back and reported in the result.
        """
        start = time.monotonic()
        changes = tuple(changes)
        if not changes:
            return ReconciliationResult(table=table, dry_run=self.dry_run, message="no changes")

        if statements is None:
            statements = synthesize(self.dialect, table, changes)
        statements = tuple(statements)
        runnable = executable_statements(statements)

        if self.dry_run:
            result = ReconciliationResult(
                table=table,
                changes=changes,
                statements=statements,
                dry_run=True,
                duration=time.monotonic() - start,
                message="dry run: no statements executed",
            )
            result.log_summary(self.logger)
            return result

        if not runnable:
            # Only advisories: nothing can be applied automatically.
            result = ReconciliationResult(
                table=table,
                changes=changes,
                statements=statements,
                duration=time.monotonic() - start,
                message="no executable statements",
            )
            result.log_summary(self.logger)
            return result

        backup_table = None
        if self.backup:
            backup_table = await self.create_backup(table)

        failed_statement = None
        error = None
        transaction = await self.connection.begin()
        try:
            for statement in runnable:
                failed_statement = statement
                self.logger.debug(f"Executing: {statement}")
                await transaction.execute(statement)
            failed_statement = None
        except Exception as e:
            error = str(e)
            self.logger.error(f"Statement failed on {table}, rolling back: {failed_statement}: {e}")
            await self._rollback(transaction, table)
        else:
            try:
                await transaction.commit()
            except Exception as e:
                failed_statement = COMMIT_STATEMENT
                error = str(e)
                self.logger.error(f"Commit failed on {table}, rolling back: {e}")
                await self._rollback(transaction, table)

        duration = time.monotonic() - start
        if error is not None:
            recovery = (
                self.dialect.recovery_instructions(table, backup_table) if backup_table else None
            )
            result = ReconciliationResult(
                table=table,
                changes=changes,
                statements=statements,
                success=False,
                backup_table=backup_table,
                failed_statement=failed_statement,
                recovery_instructions=recovery,
                duration=duration,
                error=error,
                message="rolled back",
            )
        else:
            result = ReconciliationResult(
                table=table,
                changes=changes,
                statements=statements,
                backup_table=backup_table,
                duration=duration,
                message=f"applied {len(runnable)} statement(s)",
            )
        result.log_summary(self.logger)
        return result

    async def create_backup(self, table: str) -> str:
        """Copy structure and data of ``table`` into a timestamped backup table."""
        backup_table = backup_table_name(table, self.clock())
        self.logger.info(f"Backing up {table} to {backup_table}")
        try:
            for statement in self.dialect.backup_statements(table, backup_table):
                await self.connection.execute(statement)
        except Exception as e:
            self.logger.error(f"Backup of {table} failed: {e}")
            try:
                await self.connection.execute(self.dialect.drop_table_statement(backup_table))
            except Exception as drop_error:
                self.logger.warning(f"Could not drop partial backup {backup_table}: {drop_error}")
            raise BackupError(table, backup_table, cause=e) from e
        return backup_table

    async def restore_from_backup(self, table: str, backup_table: str) -> None:
        """Replace ``table`` with ``backup_table`` by drop and rename."""
        if parse_backup_timestamp(backup_table) is None:
            raise ApplyError(f"'{backup_table}' is not a backup table name")
        self.logger.warning(f"Restoring {table} from {backup_table}")
        statements = self.dialect.restore_statements(table, backup_table)
        await self._run_in_transaction(table, statements)

    async def cleanup_backups(self, table: str, keep_days: int) -> List[str]:
        """
        Drop backup tables of ``table`` older than ``keep_days`` days.

        Age comes from the timestamp suffix of each backup table name.
        Returns the dropped table names.
        """
        cutoff = self.clock() - timedelta(days=keep_days)
        reader = get_schema_reader(self.connection, self.dialect.dialect)
        dropped = []
        for name in await reader.list_tables(f"{table}{BACKUP_INFIX}"):
            created = parse_backup_timestamp(name)
            if created is None or name != backup_table_name(table, created):
                continue
            if created < cutoff:
                self.logger.info(f"Dropping expired backup {name}")
                await self.connection.execute(self.dialect.drop_table_statement(name))
                dropped.append(name)
        return dropped

    async def rebuild_table(
        self,
        table: str,
        desired: Sequence[ColumnSpec],
        actual: Sequence[ColumnSpec],
    ) -> ReconciliationResult:
        """
        Rebuild ``table`` into the desired shape. Only ever invoked explicitly,
        for changes the dialect cannot apply with ALTER TABLE.
        """
        statements = synthesize_rebuild(self.dialect, table, desired, actual)
        self.logger.warning(f"Rebuilding table {table}")
        changes = compare_columns(actual, desired, self.dialect)
        return await self.apply(table, changes, statements=statements)

    async def _rollback(self, transaction, table: str) -> None:
        # The original failure is what gets reported.
        try:
            await transaction.rollback()
        except Exception as e:
            self.logger.error(f"Rollback failed on {table}: {e}")

    async def _run_in_transaction(self, table: str, statements: Sequence[str]) -> None:
        transaction = await self.connection.begin()
        statement = None
        try:
            for statement in statements:
                await transaction.execute(statement)
        except Exception as e:
            await self._rollback(transaction, table)
            raise ApplyError(f"Statement failed: {e}", statement=statement, cause=e) from e
        await transaction.commit()
