"""
Live schema introspection for schemasync.

One reader per dialect queries the database catalog and returns the
table's columns as canonical ColumnSpec values, in ordinal order. Query
errors from the driver propagate to the caller unwrapped.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from .connection import DatabaseConnection
from ..exceptions import UnsupportedDialectError
from ..schema.dialects import Dialect, DialectStrategy, get_dialect
from ..schema.types import ColumnSpec, GeneratedMode, LogicalType


logger = logging.getLogger(__name__)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "Y", "TRUE", "1")
    return bool(value)


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class SchemaReader(ABC):
    """Reads the live column structure of tables."""

    dialect_name: Dialect

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection
        self.dialect: DialectStrategy = get_dialect(self.dialect_name)

    @abstractmethod
    async def read_columns(self, table: str) -> List[ColumnSpec]:
        """Columns of ``table`` in ordinal order; empty if the table does not exist."""

    @abstractmethod
    async def table_exists(self, table: str) -> bool:
        """Check if a table exists."""

    @abstractmethod
    async def list_tables(self, prefix: str = "") -> List[str]:
        """Names of tables starting with ``prefix``, sorted."""

    def _spec(
        self,
        name: str,
        native_type: str,
        length: Optional[int],
        precision: Optional[int],
        scale: Optional[int],
        **attributes,
    ) -> ColumnSpec:
        logical_type = self.dialect.canonicalize(native_type)
        if logical_type.is_bounded and length is None:
            length = self.dialect.native_length(native_type)
        if logical_type is LogicalType.DECIMAL and precision is None:
            precision, scale = self.dialect.native_precision(native_type)
        return ColumnSpec(
            name=name,
            logical_type=logical_type,
            length=length,
            precision=precision,
            scale=scale,
            native_type=native_type,
            **attributes,
        )

    @staticmethod
    def _matching(names: List[str], prefix: str) -> List[str]:
        # LIKE treats "_" as a wildcard, so filter exactly here.
        return sorted(n for n in names if n.startswith(prefix))


class MySQLSchemaReader(SchemaReader):
    """Reads information_schema.COLUMNS of the current database."""

    dialect_name = Dialect.MYSQL

    COLUMNS_QUERY = """
        SELECT COLUMN_NAME AS column_name,
               COLUMN_TYPE AS column_type,
               CHARACTER_MAXIMUM_LENGTH AS max_length,
               NUMERIC_PRECISION AS numeric_precision,
               NUMERIC_SCALE AS numeric_scale,
               IS_NULLABLE AS is_nullable,
               COLUMN_DEFAULT AS column_default,
               COLUMN_COMMENT AS column_comment,
               COLUMN_KEY AS column_key,
               EXTRA AS extra
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
    """

    async def read_columns(self, table: str) -> List[ColumnSpec]:
        rows = await self.connection.fetch(self.COLUMNS_QUERY, table)
        columns = []
        for row in rows:
            extra = (row.get("extra") or "").lower()
            column_key = (row.get("column_key") or "").upper()
            generated = None
            if "virtual generated" in extra:
                generated = GeneratedMode.VIRTUAL
            elif "stored generated" in extra:
                generated = GeneratedMode.STORED
            columns.append(
                self._spec(
                    row["column_name"],
                    row["column_type"],
                    _int(row.get("max_length")),
                    _int(row.get("numeric_precision")),
                    _int(row.get("numeric_scale")),
                    not_null=not _flag(row.get("is_nullable")),
                    default_value=self.dialect.normalize_default(
                        row.get("column_default"),
                        expression="default_generated" in extra,
                    ),
                    comment=row.get("column_comment") or "",
                    primary_key=column_key == "PRI",
                    unique=column_key == "UNI",
                    auto_increment="auto_increment" in extra,
                    generated=generated,
                )
            )
        logger.debug(f"Read {len(columns)} columns of MySQL table {table}")
        return columns

    async def table_exists(self, table: str) -> bool:
        count = await self.connection.fetchval(
            "SELECT COUNT(*) FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s",
            table,
        )
        return bool(count)

    async def list_tables(self, prefix: str = "") -> List[str]:
        rows = await self.connection.fetch(
            "SELECT TABLE_NAME AS table_name FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME LIKE %s",
            f"{prefix}%",
        )
        return self._matching([r["table_name"] for r in rows], prefix)


class PostgreSQLSchemaReader(SchemaReader):
    """Reads information_schema.columns, key constraints and column comments."""

    dialect_name = Dialect.POSTGRESQL

    COLUMNS_QUERY = """
        SELECT c.column_name,
               c.data_type,
               c.udt_name,
               c.character_maximum_length,
               c.numeric_precision,
               c.numeric_scale,
               c.is_nullable,
               c.column_default,
               c.is_identity,
               c.is_generated,
               col_description(
                   (quote_ident(c.table_schema) || '.' || quote_ident(c.table_name))::regclass,
                   c.ordinal_position
               ) AS column_comment
        FROM information_schema.columns c
        WHERE c.table_schema = $1 AND c.table_name = $2
        ORDER BY c.ordinal_position
    """

    CONSTRAINTS_QUERY = """
        SELECT kcu.column_name, tc.constraint_type, tc.constraint_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON tc.constraint_name = kcu.constraint_name
         AND tc.table_schema = kcu.table_schema
         AND tc.table_name = kcu.table_name
        WHERE tc.table_schema = $1 AND tc.table_name = $2
          AND tc.constraint_type IN ('PRIMARY KEY', 'UNIQUE')
    """

    def __init__(self, connection: DatabaseConnection, db_schema: Optional[str] = None):
        super().__init__(connection)
        self.db_schema = db_schema or getattr(connection, "db_schema", None) or "public"

    async def read_columns(self, table: str) -> List[ColumnSpec]:
        rows = await self.connection.fetch(self.COLUMNS_QUERY, self.db_schema, table)
        if not rows:
            return []
        primary, unique = await self._key_columns(table)

        columns = []
        for row in rows:
            name = row["column_name"]
            native_type = row["data_type"]
            if native_type in ("USER-DEFINED", "ARRAY"):
                native_type = row.get("udt_name") or native_type
            raw_default = row.get("column_default")
            auto_increment = _flag(row.get("is_identity")) or (
                raw_default is not None and str(raw_default).lower().startswith("nextval(")
            )
            generated = GeneratedMode.STORED if (row.get("is_generated") or "").upper() == "ALWAYS" else None
            columns.append(
                self._spec(
                    name,
                    native_type,
                    _int(row.get("character_maximum_length")),
                    _int(row.get("numeric_precision")),
                    _int(row.get("numeric_scale")),
                    not_null=not _flag(row.get("is_nullable")),
                    default_value=self.dialect.normalize_default(raw_default),
                    comment=row.get("column_comment") or "",
                    primary_key=name in primary,
                    unique=name in unique,
                    auto_increment=auto_increment,
                    generated=generated,
                )
            )
        logger.debug(f"Read {len(columns)} columns of PostgreSQL table {self.db_schema}.{table}")
        return columns

    async def _key_columns(self, table: str):
        rows = await self.connection.fetch(self.CONSTRAINTS_QUERY, self.db_schema, table)
        primary: Set[str] = set()
        unique_members: Dict[str, List[str]] = {}
        for row in rows:
            if row["constraint_type"] == "PRIMARY KEY":
                primary.add(row["column_name"])
            else:
                unique_members.setdefault(row["constraint_name"], []).append(row["column_name"])
        # Only single-column unique constraints make a column unique.
        unique = {cols[0] for cols in unique_members.values() if len(cols) == 1}
        return primary, unique

    async def table_exists(self, table: str) -> bool:
        count = await self.connection.fetchval(
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE table_schema = $1 AND table_name = $2",
            self.db_schema,
            table,
        )
        return bool(count)

    async def list_tables(self, prefix: str = "") -> List[str]:
        rows = await self.connection.fetch(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = $1 AND table_type = 'BASE TABLE' AND table_name LIKE $2",
            self.db_schema,
            f"{prefix}%",
        )
        return self._matching([r["table_name"] for r in rows], prefix)


class SQLiteSchemaReader(SchemaReader):
    """
    Reads PRAGMA table_info and index_list.

    SQLite keeps no auto-increment flag in its catalog, so the table's
    CREATE statement is searched for the AUTOINCREMENT keyword.
    """

    dialect_name = Dialect.SQLITE

    async def read_columns(self, table: str) -> List[ColumnSpec]:
        quoted = self._pragma_arg(table)
        rows = await self.connection.fetch(f"PRAGMA table_info({quoted})")
        if not rows:
            return []

        unique = await self._unique_columns(table)
        pk_columns = [r for r in rows if r["pk"]]
        autoincrement = False
        if len(pk_columns) == 1 and (pk_columns[0]["type"] or "").strip().upper() == "INTEGER":
            autoincrement = await self._has_autoincrement(table)

        columns = []
        for row in rows:
            native_type = row["type"] or ""
            primary_key = bool(row["pk"])
            columns.append(
                self._spec(
                    row["name"],
                    native_type,
                    None,
                    None,
                    None,
                    not_null=bool(row["notnull"]) or primary_key,
                    default_value=self.dialect.normalize_default(row["dflt_value"]),
                    primary_key=primary_key,
                    unique=row["name"] in unique,
                    auto_increment=primary_key and autoincrement,
                )
            )
        logger.debug(f"Read {len(columns)} columns of SQLite table {table}")
        return columns

    async def _unique_columns(self, table: str) -> Set[str]:
        unique: Set[str] = set()
        indexes = await self.connection.fetch(f"PRAGMA index_list({self._pragma_arg(table)})")
        for index in indexes:
            if not index["unique"] or index.get("origin") == "pk":
                continue
            members = await self.connection.fetch(
                f"PRAGMA index_info({self._pragma_arg(index['name'])})"
            )
            if len(members) == 1:
                unique.add(members[0]["name"])
        return unique

    async def _has_autoincrement(self, table: str) -> bool:
        sql = await self.connection.fetchval(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", table
        )
        return bool(sql) and "AUTOINCREMENT" in sql.upper()

    @staticmethod
    def _pragma_arg(name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    async def table_exists(self, table: str) -> bool:
        name = await self.connection.fetchval(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", table
        )
        return name is not None

    async def list_tables(self, prefix: str = "") -> List[str]:
        rows = await self.connection.fetch(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE ?",
            f"{prefix}%",
        )
        return self._matching([r["name"] for r in rows], prefix)


_READERS = {
    Dialect.MYSQL: MySQLSchemaReader,
    Dialect.POSTGRESQL: PostgreSQLSchemaReader,
    Dialect.SQLITE: SQLiteSchemaReader,
}


def get_schema_reader(connection: DatabaseConnection, dialect=None) -> SchemaReader:
    """Schema reader for a connection, by its dialect unless one is given."""
    name = dialect if dialect is not None else getattr(connection, "dialect", None)
    if name is None:
        raise UnsupportedDialectError(str(name))
    reader_class = _READERS.get(Dialect.parse(name))
    return reader_class(connection)


async def read_columns(connection: DatabaseConnection, table: str) -> List[ColumnSpec]:
    """Read the live columns of ``table``."""
    return await get_schema_reader(connection).read_columns(table)
