"""
DDL synthesis for schemasync.

Converts ColumnChange records into ordered, dialect-specific statements.
Changes a dialect cannot express through ALTER TABLE are not executed;
they are reported through an advisory comment statement instead.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .dialects import Dialect, DialectStrategy, get_dialect
from .types import ChangeKind, ColumnChange, ColumnSpec, IndexKind, quote_literal


logger = logging.getLogger(__name__)

COMMENT_PREFIX = "--"


def is_comment(statement: str) -> bool:
    """Whether a synthesized statement is an advisory comment."""
    return statement.lstrip().startswith(COMMENT_PREFIX)


class DDLSynthesizer:
    """Column-definition rendering shared by every dialect."""

    def __init__(self, dialect: DialectStrategy):
        self.dialect = dialect

    def synthesize(self, table: str, changes: Sequence[ColumnChange]) -> List[str]:
        raise NotImplementedError

    # -- column definitions ------------------------------------------------

    def column_definition(
        self,
        spec: ColumnSpec,
        for_add: bool = False,
        inline_primary_key: bool = False,
        inline_unique: bool = False,
    ) -> str:
        """
        Render ``name type[(n)] [NOT NULL] [DEFAULT v] [AUTO_INCREMENT] [COMMENT '...']``.

        ``inline_primary_key`` and ``inline_unique`` add the column constraints
        used when creating or adding a column.
        """
        d = self.dialect
        parts = [d.quote(spec.name), d.render_type(spec, for_add=for_add)]
        if spec.not_null:
            parts.append("NOT NULL")
        default = d.render_default(spec)
        if default is not None:
            parts.append(f"DEFAULT {default}")
        if spec.auto_increment and d.autoincrement_keyword and not self._autoincrement_needs_key():
            parts.append(d.autoincrement_keyword)
        if inline_primary_key:
            parts.append("PRIMARY KEY")
            if spec.auto_increment and d.autoincrement_keyword and self._autoincrement_needs_key():
                parts.append(d.autoincrement_keyword)
        elif inline_unique and spec.unique:
            parts.append("UNIQUE")
        if spec.comment and d.inline_comments:
            parts.append(f"COMMENT {quote_literal(spec.comment)}")
        return " ".join(parts)

    def _autoincrement_needs_key(self) -> bool:
        return False

    # -- constraints and indexes ---------------------------------------------

    def foreign_key_clause(self, table: str, spec: ColumnSpec) -> str:
        """``CONSTRAINT fk_<table>_<column> FOREIGN KEY (...) REFERENCES ...``."""
        d = self.dialect
        fk = spec.foreign_key
        clause = (
            f"CONSTRAINT {d.quote(f'fk_{table}_{spec.name}')} FOREIGN KEY ({d.quote(spec.name)}) "
            f"REFERENCES {d.quote(fk.table)} ({d.quote(fk.column)})"
        )
        if fk.on_delete:
            clause += f" ON DELETE {fk.on_delete}"
        if fk.on_update:
            clause += f" ON UPDATE {fk.on_update}"
        return clause

    def create_index_statement(self, table: str, spec: ColumnSpec) -> str:
        """Standalone ``CREATE [UNIQUE] INDEX`` for a column's index request."""
        d = self.dialect
        index = spec.index
        if index.kind in (IndexKind.FULLTEXT, IndexKind.SPATIAL):
            logger.warning(
                f"{index.kind.value} index on {table}.{spec.name} is not supported by "
                f"{d.name}, creating a regular index"
            )
        unique = "UNIQUE " if index.kind is IndexKind.UNIQUE else ""
        using = f" USING {index.method}" if index.method and d.dialect is Dialect.POSTGRESQL else ""
        return (
            f"CREATE {unique}INDEX {d.quote(index.resolve_name(table, spec.name))} "
            f"ON {d.quote(table)}{using} ({d.quote(spec.name)})"
        )

    def index_statements(self, table: str, columns: Sequence[ColumnSpec]) -> List[str]:
        return [self.create_index_statement(table, c) for c in columns if c.index]

    # -- whole tables ---------------------------------------------------------

    def create_table_statements(self, table: str, columns: Sequence[ColumnSpec]) -> List[str]:
        """``CREATE TABLE`` for a missing table, followed by its index statements."""
        return [self.create_table_statement(table, columns)] + self.index_statements(table, columns)

    def create_table_statement(
        self,
        table: str,
        columns: Sequence[ColumnSpec],
        constraint_table: Optional[str] = None,
    ) -> str:
        d = self.dialect
        primary_keys = [c for c in columns if c.primary_key]
        inline_pk = len(primary_keys) == 1
        definitions = [
            self.column_definition(
                c,
                for_add=True,
                inline_primary_key=inline_pk and c.primary_key,
                inline_unique=True,
            )
            for c in columns
        ]
        if primary_keys and not inline_pk:
            keys = ", ".join(d.quote(c.name) for c in primary_keys)
            definitions.append(f"PRIMARY KEY ({keys})")
        definitions.extend(
            self.foreign_key_clause(constraint_table or table, c) for c in columns if c.foreign_key
        )
        return f"CREATE TABLE {d.quote(table)} ({', '.join(definitions)})"

    def rebuild_statements(
        self,
        table: str,
        desired: Sequence[ColumnSpec],
        actual: Sequence[ColumnSpec],
    ) -> List[str]:
        """
        Rebuild a table into the desired shape: create a new table, copy the
        columns both shapes share, drop the old table and rename the new one.
        """
        d = self.dialect
        staging = f"{table}__rebuild"
        live_names = {c.name for c in actual}
        shared = ", ".join(d.quote(c.name) for c in desired if c.name in live_names)
        statements = [
            d.drop_table_statement(staging),
            self.create_table_statement(staging, desired, constraint_table=table),
        ]
        if shared:
            statements.append(
                f"INSERT INTO {d.quote(staging)} ({shared}) SELECT {shared} FROM {d.quote(table)}"
            )
        statements.append(f"DROP TABLE {d.quote(table)}")
        statements.append(d.rename_table_statement(staging, table))
        statements.extend(self.index_statements(table, desired))
        return statements


class MySQLSynthesizer(DDLSynthesizer):
    """All changes combined into one ALTER TABLE, in differ order."""

    def synthesize(self, table: str, changes: Sequence[ColumnChange]) -> List[str]:
        d = self.dialect
        clauses: List[str] = []
        trailing: List[str] = []
        for change in changes:
            if change.kind is ChangeKind.ADD:
                spec = change.after
                clauses.append(
                    "ADD COLUMN "
                    + self.column_definition(
                        spec,
                        for_add=True,
                        inline_primary_key=spec.primary_key,
                        inline_unique=True,
                    )
                )
                if spec.index:
                    trailing.append(self._add_index_clause(table, spec))
                if spec.foreign_key:
                    trailing.append("ADD " + self.foreign_key_clause(table, spec))
            elif change.kind is ChangeKind.MODIFY:
                clauses.append("MODIFY COLUMN " + self.column_definition(change.after))
            else:
                clauses.append(f"DROP COLUMN {d.quote(change.column)}")

        clauses.extend(trailing)
        if not clauses:
            return []
        return [f"ALTER TABLE {d.quote(table)} " + ", ".join(clauses)]

    def _add_index_clause(self, table: str, spec: ColumnSpec) -> str:
        d = self.dialect
        index = spec.index
        kind = {
            IndexKind.UNIQUE: "UNIQUE INDEX",
            IndexKind.FULLTEXT: "FULLTEXT INDEX",
            IndexKind.SPATIAL: "SPATIAL INDEX",
        }.get(index.kind, "INDEX")
        clause = f"ADD {kind} {d.quote(index.resolve_name(table, spec.name))} ({d.quote(spec.name)})"
        if index.method:
            clause += f" USING {index.method}"
        return clause

    def create_index_statement(self, table: str, spec: ColumnSpec) -> str:
        return f"ALTER TABLE {self.dialect.quote(table)} {self._add_index_clause(table, spec)}"


class PostgreSQLSynthesizer(DDLSynthesizer):
    """One statement per added/dropped column and per modified attribute."""

    def synthesize(self, table: str, changes: Sequence[ColumnChange]) -> List[str]:
        d = self.dialect
        prefix = f"ALTER TABLE {d.quote(table)}"
        statements: List[str] = []
        for change in changes:
            column = d.quote(change.column)
            if change.kind is ChangeKind.ADD:
                spec = change.after
                statements.append(
                    f"{prefix} ADD COLUMN "
                    + self.column_definition(
                        spec,
                        for_add=True,
                        inline_primary_key=spec.primary_key,
                        inline_unique=True,
                    )
                )
                if spec.foreign_key:
                    statements.append(f"{prefix} ADD " + self.foreign_key_clause(table, spec))
                if spec.index:
                    statements.append(self.create_index_statement(table, spec))
                if spec.comment:
                    statements.append(self.comment_statement(table, spec))
            elif change.kind is ChangeKind.DROP:
                statements.append(f"{prefix} DROP COLUMN {column}")
            else:
                statements.extend(self._modify_statements(table, change))
        return statements

    def _modify_statements(self, table: str, change: ColumnChange) -> List[str]:
        d = self.dialect
        after = change.after
        alter = f"ALTER TABLE {d.quote(table)} ALTER COLUMN {d.quote(change.column)}"
        statements = []
        if any(change.differs_in(a) for a in ("type", "length", "precision", "scale")):
            statements.append(f"{alter} TYPE {d.render_type(after)}")
        if change.differs_in("default"):
            default = d.render_default(after)
            if default is None:
                statements.append(f"{alter} DROP DEFAULT")
            else:
                statements.append(f"{alter} SET DEFAULT {default}")
        if change.differs_in("not_null"):
            statements.append(f"{alter} {'SET' if after.not_null else 'DROP'} NOT NULL")
        if change.differs_in("comment"):
            statements.append(self.comment_statement(table, after))
        return statements

    def comment_statement(self, table: str, spec: ColumnSpec) -> str:
        d = self.dialect
        comment = quote_literal(spec.comment) if spec.comment else "NULL"
        return f"COMMENT ON COLUMN {d.quote(table)}.{d.quote(spec.name)} IS {comment}"

    def create_table_statements(self, table: str, columns: Sequence[ColumnSpec]) -> List[str]:
        statements = super().create_table_statements(table, columns)
        statements.extend(self.comment_statement(table, c) for c in columns if c.comment)
        return statements


class SQLiteSynthesizer(DDLSynthesizer):
    """
    ADD COLUMN only. Modify and drop changes collapse into a single advisory
    comment; applying them needs an explicit table rebuild.
    """

    def _autoincrement_needs_key(self) -> bool:
        return True

    def synthesize(self, table: str, changes: Sequence[ColumnChange]) -> List[str]:
        d = self.dialect
        statements: List[str] = []
        unsupported: List[ColumnChange] = []
        for change in changes:
            if change.kind is ChangeKind.ADD and not change.after.primary_key:
                spec = change.after
                definition = self.column_definition(spec, for_add=True)
                if spec.foreign_key:
                    fk = spec.foreign_key
                    definition += f" REFERENCES {d.quote(fk.table)} ({d.quote(fk.column)})"
                    if fk.on_delete:
                        definition += f" ON DELETE {fk.on_delete}"
                    if fk.on_update:
                        definition += f" ON UPDATE {fk.on_update}"
                statements.append(f"ALTER TABLE {d.quote(table)} ADD COLUMN {definition}")
                if spec.unique and not (spec.index and spec.index.kind is IndexKind.UNIQUE):
                    statements.append(
                        f"CREATE UNIQUE INDEX {d.quote(f'uniq_{table}_{spec.name}')} "
                        f"ON {d.quote(table)} ({d.quote(spec.name)})"
                    )
                if spec.index:
                    statements.append(self.create_index_statement(table, spec))
            else:
                unsupported.append(change)

        if unsupported:
            affected = ", ".join(f"{c.column} ({c.kind.value})" for c in unsupported)
            logger.warning(
                f"Table {table} needs a rebuild for changes SQLite cannot apply with ALTER: {affected}"
            )
            statements.append(
                f"{COMMENT_PREFIX} WARNING: table {table} requires recreation to apply "
                f"changes to columns: {affected}. Run an explicit table rebuild."
            )
        return statements


_SYNTHESIZERS: Dict[Dialect, type] = {
    Dialect.MYSQL: MySQLSynthesizer,
    Dialect.POSTGRESQL: PostgreSQLSynthesizer,
    Dialect.SQLITE: SQLiteSynthesizer,
}


def get_synthesizer(dialect) -> DDLSynthesizer:
    strategy = get_dialect(dialect)
    return _SYNTHESIZERS[strategy.dialect](strategy)


def synthesize(dialect, table: str, changes: Sequence[ColumnChange]) -> List[str]:
    """Ordered statements implementing ``changes`` on ``table``."""
    return get_synthesizer(dialect).synthesize(table, changes)


def synthesize_create_table(dialect, table: str, columns: Sequence[ColumnSpec]) -> List[str]:
    """Statements creating ``table`` with the given columns."""
    return get_synthesizer(dialect).create_table_statements(table, columns)


def synthesize_rebuild(
    dialect,
    table: str,
    desired: Sequence[ColumnSpec],
    actual: Sequence[ColumnSpec],
) -> List[str]:
    """Statements rebuilding ``table`` into the desired shape."""
    return get_synthesizer(dialect).rebuild_statements(table, desired, actual)


def executable_statements(statements: Sequence[str]) -> List[str]:
    return [s for s in statements if not is_comment(s)]


def advisory_statements(statements: Sequence[str]) -> List[str]:
    return [s for s in statements if is_comment(s)]
