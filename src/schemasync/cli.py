"""
Command-line interface for schemasync.
"""

import asyncio
import sys
import traceback
from contextlib import asynccontextmanager
from functools import wraps
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import SchemaSyncConfig
from .database.connection import create_connection
from .database.introspection import get_schema_reader
from .exceptions import ConfigurationError, SchemaSyncError
from .schema.executor import ReconciliationResult, SafeExecutor
from .schema.model import TableDefinition
from .schema.reconciler import ReconciliationPlan, SchemaReconciler


console = Console()

_GLYPH_STYLES = {"+": "green", "~": "yellow", "-": "red"}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SchemaSyncError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                traceback.print_exc()
            sys.exit(1)
    return wrapper


def config_option(func):
    return click.option(
        "--config",
        "-c",
        type=click.Path(exists=True),
        required=True,
        help="Configuration file path",
    )(func)


def database_option(func):
    return click.option(
        "--database",
        "-d",
        help="Database name (optional when only one is configured)",
    )(func)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """schemasync: reconcile live database schemas with declared column models."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="schemasync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new schemasync configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    _create_default_config().to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Point the database URL at your database")
    console.print("2. Declare the columns of each table")
    console.print(f"3. Run: schemasync validate-config -c {output}")
    console.print(f"4. Run: schemasync plan -c {output}")


@main.command()
@config_option
@click.pass_context
@handle_errors
def validate_config(ctx, config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        sync_config = _load_config(ctx, config)
        sync_config.validate_config()
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")
    _display_config_summary(sync_config)


@main.command()
@config_option
@database_option
@click.option("--table", "-t", required=True, help="Table name")
@click.pass_context
@handle_errors
def inspect(ctx, config: str, database: Optional[str], table: str):
    """Show the live columns of a table."""
    sync_config = _load_config(ctx, config)

    async def run_inspect():
        async with _open_database(sync_config, database) as (_, connection):
            reader = get_schema_reader(connection)
            if not await reader.table_exists(table):
                console.print(f"[red]✗[/red] Table {table} does not exist")
                return 1
            columns = await reader.read_columns(table)

        column_table = Table(title=f"Live columns of {table}")
        column_table.add_column("Column", style="cyan")
        column_table.add_column("Type", style="magenta")
        column_table.add_column("Null", style="green")
        column_table.add_column("Default", style="yellow")
        column_table.add_column("Key")
        column_table.add_column("Comment")
        for column in columns:
            key = "PRI" if column.primary_key else "UNI" if column.unique else ""
            if column.auto_increment:
                key = f"{key} auto".strip()
            column_table.add_row(
                column.name,
                column.native_type or column.describe_type(),
                "NO" if column.not_null else "YES",
                column.default_value or "",
                key,
                column.comment,
            )
        console.print(column_table)
        return 0

    sys.exit(asyncio.run(run_inspect()))


@main.command()
@config_option
@database_option
@click.option("--table", "-t", help="Only plan this table")
@click.pass_context
@handle_errors
def plan(ctx, config: str, database: Optional[str], table: Optional[str]):
    """Show the changes and statements needed, without executing anything."""
    sync_config = _load_config(ctx, config)

    async def run_plan():
        async with _open_database(sync_config, database) as (db_config, connection):
            reconciler = SchemaReconciler.from_config(connection, sync_config.reconciliation)
            for definition in _definitions(db_config, table):
                _display_plan(await reconciler.plan(definition))

    asyncio.run(run_plan())


@main.command()
@config_option
@database_option
@click.option("--table", "-t", help="Only reconcile this table")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without making changes",
)
@click.option("--no-backup", is_flag=True, help="Skip the backup table")
@click.pass_context
@handle_errors
def apply(
    ctx,
    config: str,
    database: Optional[str],
    table: Optional[str],
    dry_run: bool,
    no_backup: bool,
):
    """Reconcile live tables with the configured columns."""
    sync_config = _load_config(ctx, config)
    settings = sync_config.reconciliation
    if dry_run:
        settings.dry_run = True
        console.print("[yellow]Dry run mode - no changes will be made[/yellow]")
    if no_backup:
        settings.backup = False

    async def run_apply():
        async with _open_database(sync_config, database) as (db_config, connection):
            reconciler = SchemaReconciler.from_config(connection, settings)
            results = await reconciler.reconcile_all(_definitions(db_config, table))
            summary = reconciler.get_reconciliation_summary(results)

        for result in results:
            _display_result(result)

        console.print(
            f"\n[bold]Summary[/bold]: {summary['successful']}/{summary['total_tables']} tables "
            f"succeeded, {summary['total_changes']} change(s), "
            f"{summary['statements']} statement(s)"
        )
        return 1 if summary["failed"] else 0

    sys.exit(asyncio.run(run_apply()))


@main.command()
@config_option
@database_option
@click.option("--table", "-t", help="Only clean up backups of this table")
@click.option(
    "--days",
    type=int,
    help="Keep backups younger than this many days (overrides config)",
)
@click.pass_context
@handle_errors
def cleanup_backups(
    ctx, config: str, database: Optional[str], table: Optional[str], days: Optional[int]
):
    """Drop backup tables older than the retention period."""
    sync_config = _load_config(ctx, config)
    keep_days = days if days is not None else sync_config.reconciliation.backup_retention_days

    async def run_cleanup():
        dropped = []
        async with _open_database(sync_config, database) as (db_config, connection):
            executor = SafeExecutor(connection)
            for definition in _definitions(db_config, table):
                dropped.extend(await executor.cleanup_backups(definition.table, keep_days))
        return dropped

    dropped = asyncio.run(run_cleanup())
    if not dropped:
        console.print(f"No backups older than {keep_days} day(s)")
    for name in dropped:
        console.print(f"[green]✓[/green] Dropped {name}")


@main.command()
@config_option
@database_option
@click.option("--table", "-t", required=True, help="Table to restore")
@click.option("--backup", "-b", "backup_table", required=True, help="Backup table name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def restore(
    ctx, config: str, database: Optional[str], table: str, backup_table: str, yes: bool
):
    """Replace a table with one of its backups."""
    sync_config = _load_config(ctx, config)
    if not yes and not click.confirm(f"Drop {table} and replace it with {backup_table}?"):
        return

    async def run_restore():
        async with _open_database(sync_config, database) as (_, connection):
            await SafeExecutor(connection).restore_from_backup(table, backup_table)

    asyncio.run(run_restore())
    console.print(f"[green]✓[/green] Restored {table} from {backup_table}")


@main.command()
@config_option
@database_option
@click.option("--table", "-t", required=True, help="Table to rebuild")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def rebuild(ctx, config: str, database: Optional[str], table: str, yes: bool):
    """Recreate a table in its configured shape, copying shared columns."""
    sync_config = _load_config(ctx, config)
    if not yes and not click.confirm(f"Rebuild {table} by copying it into a new table?"):
        return

    async def run_rebuild():
        async with _open_database(sync_config, database) as (db_config, connection):
            reconciler = SchemaReconciler.from_config(connection, sync_config.reconciliation)
            definition = db_config.get_table(table).to_definition()
            result = await reconciler.rebuild(definition)
        _display_result(result)
        return 0 if result.success else 1

    sys.exit(asyncio.run(run_rebuild()))


def _load_config(ctx, path: str) -> SchemaSyncConfig:
    """Load the configuration and set up logging from it."""
    sync_config = SchemaSyncConfig.from_yaml(path)
    debug = bool(ctx.obj and ctx.obj.get("debug")) or sync_config.debug
    sync_config.logging.configure(debug)
    return sync_config


@asynccontextmanager
async def _open_database(sync_config: SchemaSyncConfig, name: Optional[str]):
    db_config = sync_config.get_database(name)
    async with create_connection(db_config.connection_config()) as connection:
        yield db_config, connection


def _definitions(db_config, table: Optional[str]) -> List[TableDefinition]:
    if table:
        return [db_config.get_table(table).to_definition()]
    return [t.to_definition() for t in db_config.tables]


def _create_default_config() -> SchemaSyncConfig:
    """Create a default configuration with examples."""
    from .config import DatabaseConfig, FieldConfig, TableConfig

    databases = [
        DatabaseConfig(
            name="primary",
            url="${DATABASE_URL}",
            tables=[
                TableConfig(
                    table="users",
                    fields=[
                        FieldConfig(name="id", value_type="int64", primary_key=True, auto_increment=True),
                        FieldConfig(name="email", type="varchar", size=255, nullable=False, unique=True),
                        FieldConfig(name="status", type="varchar", size=20, default="active"),
                        FieldConfig(name="created_at", type="datetime", auto_create_time=True),
                    ],
                ),
            ],
        )
    ]

    return SchemaSyncConfig(databases=databases)


def _display_config_summary(config: SchemaSyncConfig):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    db_table = Table(title="Databases")
    db_table.add_column("Name", style="cyan")
    db_table.add_column("Target", style="magenta")
    db_table.add_column("Tables", style="yellow")

    for db in config.databases:
        db_table.add_row(db.name, db.connection_config().describe(), str(len(db.tables)))

    console.print(db_table)

    if any(db.tables for db in config.databases):
        table_table = Table(title="Tables to Reconcile")
        table_table.add_column("Database", style="cyan")
        table_table.add_column("Table", style="magenta")
        table_table.add_column("Columns", style="green")

        for db in config.databases:
            for table in db.tables:
                table_table.add_row(
                    db.name,
                    table.table,
                    str(len([f for f in table.fields if not f.skip])),
                )

        console.print(table_table)


def _changes_table(title: str, rows) -> Table:
    change_table = Table(title=title)
    change_table.add_column("", width=1)
    change_table.add_column("Column", style="cyan")
    change_table.add_column("Reason")
    for column, glyph, reason in rows:
        style = _GLYPH_STYLES[glyph]
        change_table.add_row(f"[{style}]{glyph}[/{style}]", column, reason)
    return change_table


def _display_statements(statements) -> None:
    for statement in statements:
        if statement.startswith("--"):
            console.print(statement, style="yellow", markup=False, highlight=False)
        else:
            console.print(f"{statement};", markup=False)


def _display_plan(plan: ReconciliationPlan) -> None:
    if plan.is_empty:
        if not plan.table_exists:
            console.print(f"[yellow]Table {plan.table} does not exist and creation is disabled[/yellow]")
        else:
            console.print(f"[green]✓[/green] {plan.table}: schema is up to date")
        return

    rows = [(c.column, c.glyph, c.reason) for c in plan.changes]
    title = f"{plan.table} (new table)" if not plan.table_exists else plan.table
    console.print(_changes_table(title, rows))
    for column in plan.skipped_drops:
        console.print(f"  [dim]kept {column}: dropping columns is disabled[/dim]")
    _display_statements(plan.statements)


def _display_result(result: ReconciliationResult) -> None:
    if not result.has_changes:
        if result.success:
            console.print(f"[green]✓[/green] {result.table}: schema is up to date")
        else:
            console.print(f"[red]✗[/red] {result.table}: {result.error}")
        return

    console.print(_changes_table(result.table, result.summary_rows()))
    _display_statements(result.statements)
    if result.backup_table:
        console.print(f"Backup: {result.backup_table}")

    if result.dry_run:
        console.print(f"[yellow]{result.table}: dry run, nothing executed[/yellow]")
    elif result.success:
        console.print(
            f"[green]✓[/green] {result.table}: {result.message} in {result.duration:.3f}s"
        )
    else:
        console.print(f"[red]✗[/red] {result.table}: {result.error}")
        console.print(f"Failed statement: {result.failed_statement}", markup=False)
        if result.recovery_instructions:
            console.print(result.recovery_instructions, markup=False)


if __name__ == "__main__":
    main()
