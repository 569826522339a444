"""
Dialect strategies for schemasync.

One strategy object per supported database owns everything that differs
between them: native type names in both directions, default-value
normalization, identifier quoting, and the statements used for backups
and renames. The reader, differ and DDL synthesizer all go through the
same strategy so they agree on what an equal type is.
"""

import logging
import re
from abc import ABC
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..exceptions import UnsupportedDialectError
from .types import (
    CURRENT_TIMESTAMP,
    ColumnSpec,
    LogicalType,
    is_numeric_literal,
    normalize_default,
    quote_literal,
    unquote_literal,
)


logger = logging.getLogger(__name__)


class Dialect(str, Enum):
    """Supported database dialects."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, name: str) -> "Dialect":
        """Resolve a driver name or alias to a dialect."""
        if isinstance(name, cls):
            return name
        key = (name or "").strip().lower()
        dialect = _DIALECT_ALIASES.get(key)
        if dialect is None:
            raise UnsupportedDialectError(name)
        return dialect


_DIALECT_ALIASES = {
    "mysql": Dialect.MYSQL,
    "mariadb": Dialect.MYSQL,
    "postgresql": Dialect.POSTGRESQL,
    "postgres": Dialect.POSTGRESQL,
    "pg": Dialect.POSTGRESQL,
    "pgsql": Dialect.POSTGRESQL,
    "sqlite": Dialect.SQLITE,
    "sqlite3": Dialect.SQLITE,
}


# Native type names (lowercased, without arguments) understood by every dialect.
_NATIVE_TYPES: Dict[str, LogicalType] = {
    "varchar": LogicalType.STRING,
    "character varying": LogicalType.STRING,
    "nvarchar": LogicalType.STRING,
    "varchar2": LogicalType.STRING,
    "string": LogicalType.STRING,
    "enum": LogicalType.STRING,
    "set": LogicalType.STRING,
    "inet": LogicalType.STRING,
    "cidr": LogicalType.STRING,
    "macaddr": LogicalType.STRING,
    "char": LogicalType.FIXED_STRING,
    "character": LogicalType.FIXED_STRING,
    "nchar": LogicalType.FIXED_STRING,
    "bpchar": LogicalType.FIXED_STRING,
    "uuid": LogicalType.FIXED_STRING,
    "text": LogicalType.TEXT,
    "tinytext": LogicalType.TEXT,
    "clob": LogicalType.TEXT,
    "xml": LogicalType.TEXT,
    "mediumtext": LogicalType.LONG_TEXT,
    "longtext": LogicalType.LONG_TEXT,
    "tinyint": LogicalType.SMALL_INT,
    "smallint": LogicalType.SMALL_INT,
    "int2": LogicalType.SMALL_INT,
    "smallserial": LogicalType.SMALL_INT,
    "int": LogicalType.INT,
    "integer": LogicalType.INT,
    "int4": LogicalType.INT,
    "mediumint": LogicalType.INT,
    "serial": LogicalType.INT,
    "year": LogicalType.INT,
    "bigint": LogicalType.BIG_INT,
    "int8": LogicalType.BIG_INT,
    "bigserial": LogicalType.BIG_INT,
    "float": LogicalType.FLOAT,
    "real": LogicalType.FLOAT,
    "float4": LogicalType.FLOAT,
    "double": LogicalType.DOUBLE,
    "double precision": LogicalType.DOUBLE,
    "float8": LogicalType.DOUBLE,
    "decimal": LogicalType.DECIMAL,
    "numeric": LogicalType.DECIMAL,
    "money": LogicalType.DECIMAL,
    "boolean": LogicalType.BOOLEAN,
    "bool": LogicalType.BOOLEAN,
    "bit": LogicalType.BOOLEAN,
    "date": LogicalType.DATE,
    "datetime": LogicalType.DATETIME,
    "datetime2": LogicalType.DATETIME,
    "timestamp": LogicalType.TIMESTAMP,
    "timestamp without time zone": LogicalType.TIMESTAMP,
    "timestamp with time zone": LogicalType.TIMESTAMP,
    "timestamptz": LogicalType.TIMESTAMP,
    "time": LogicalType.TIME,
    "time without time zone": LogicalType.TIME,
    "time with time zone": LogicalType.TIME,
    "timetz": LogicalType.TIME,
    "blob": LogicalType.BINARY,
    "tinyblob": LogicalType.BINARY,
    "mediumblob": LogicalType.BINARY,
    "longblob": LogicalType.BINARY,
    "binary": LogicalType.BINARY,
    "varbinary": LogicalType.BINARY,
    "bytea": LogicalType.BINARY,
    "json": LogicalType.JSON,
    "jsonb": LogicalType.JSON,
    "array": LogicalType.JSON,
}

_RESERVED_WORDS = {
    "add", "all", "alter", "and", "as", "asc", "between", "by", "case", "check",
    "column", "constraint", "create", "cross", "current_date", "current_time",
    "current_timestamp", "default", "delete", "desc", "distinct", "drop", "else",
    "end", "exists", "foreign", "from", "full", "group", "having", "in", "index",
    "inner", "insert", "interval", "into", "is", "join", "key", "left", "like",
    "limit", "not", "null", "offset", "on", "or", "order", "outer", "primary",
    "references", "right", "select", "set", "table", "then", "to", "union",
    "unique", "update", "user", "using", "values", "when", "where", "with",
}

_SIMPLE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_native_type(native: str) -> Tuple[str, List[str]]:
    """
    Split a declared type such as ``VARCHAR(255)`` into its lowercased base
    name and its argument list.
    """
    text = " ".join((native or "").strip().lower().split())
    args: List[str] = []
    open_at = text.find("(")
    if open_at != -1:
        close_at = text.find(")", open_at)
        if close_at == -1:
            close_at = len(text)
        args = [a.strip() for a in text[open_at + 1:close_at].split(",") if a.strip()]
        suffix = text[close_at + 1:].strip()
        text = text[:open_at].strip()
        # "timestamp(6) with time zone" keeps its suffix as part of the name
        if suffix in ("with time zone", "without time zone"):
            text = f"{text} {suffix}"
    for modifier in (" unsigned", " signed", " zerofill"):
        if text.endswith(modifier):
            text = text[: -len(modifier)].strip()
    return text, args


def _affinity(base: str) -> LogicalType:
    """Fallback mapping for unknown type names, by substring affinity."""
    if "int" in base:
        return LogicalType.INT
    if "char" in base or "clob" in base or "text" in base:
        return LogicalType.TEXT
    if "blob" in base or not base:
        return LogicalType.BINARY
    if "real" in base or "floa" in base or "doub" in base:
        return LogicalType.DOUBLE
    if "time" in base or "date" in base:
        return LogicalType.DATETIME
    return LogicalType.TEXT


class DialectStrategy(ABC):
    """Dialect-specific knowledge shared by reader, differ and synthesizer."""

    dialect: Dialect
    type_names: Dict[LogicalType, str]
    identifier_quote = '"'
    autoincrement_keyword: Optional[str] = None
    supports_comments = False
    inline_comments = False
    supports_alter_modify = True
    supports_alter_drop = True
    combined_alter = False
    requires_length = False

    @property
    def name(self) -> str:
        return self.dialect.value

    # -- types -----------------------------------------------------------

    def canonicalize(self, native: str) -> LogicalType:
        """Map a native type name to the canonical vocabulary."""
        base, _ = parse_native_type(native)
        if base.startswith("_"):
            return LogicalType.JSON
        logical = _NATIVE_TYPES.get(base)
        if logical is None:
            logical = _affinity(base)
            logger.debug(f"Unknown {self.name} type '{native}', treating as {logical.value}")
        return logical

    def native_length(self, native: str) -> Optional[int]:
        """Length argument of a declared type, if any."""
        _, args = parse_native_type(native)
        if len(args) == 1 and args[0].isdigit():
            return int(args[0])
        return None

    def native_precision(self, native: str) -> Tuple[Optional[int], Optional[int]]:
        _, args = parse_native_type(native)
        numbers = [int(a) for a in args if a.isdigit()]
        precision = numbers[0] if numbers else None
        scale = numbers[1] if len(numbers) > 1 else None
        return precision, scale

    def type_name(self, logical_type: LogicalType) -> str:
        """Native type name rendered for a canonical type."""
        return self.type_names[LogicalType(logical_type)]

    def types_equal(self, a: LogicalType, b: LogicalType) -> bool:
        """Two canonical types are equal when this dialect renders them the same."""
        return self.type_name(a) == self.type_name(b)

    def renders_length(self, logical_type: LogicalType) -> bool:
        return LogicalType(logical_type).is_bounded

    def renders_precision(self, logical_type: LogicalType) -> bool:
        return LogicalType(logical_type).is_decimal

    def render_type(self, spec: ColumnSpec, for_add: bool = False) -> str:
        """Render ``type[(length)|(precision[,scale])]`` for a column."""
        name = self.type_name(spec.logical_type)
        if self.renders_length(spec.logical_type):
            length = spec.length
            if length is None and self.requires_length:
                length = 255 if spec.logical_type is LogicalType.STRING else 1
            if length is not None:
                return f"{name}({length})"
        if self.renders_precision(spec.logical_type) and spec.precision is not None:
            if spec.scale is not None:
                return f"{name}({spec.precision},{spec.scale})"
            return f"{name}({spec.precision})"
        return name

    # -- defaults --------------------------------------------------------

    def render_default(self, spec: ColumnSpec) -> Optional[str]:
        """DEFAULT clause value for a column, or None."""
        return spec.default_value

    def defaults_equal(self, a: Optional[str], b: Optional[str]) -> bool:
        """Canonical defaults compare as text, numeric literals by value (0 == 0.00)."""
        if a == b:
            return True
        if a is None or b is None:
            return False
        if is_numeric_literal(a) and is_numeric_literal(b):
            return Decimal(a) == Decimal(b)
        return False

    def normalize_default(self, raw: Optional[str], expression: bool = False) -> Optional[str]:
        """Normalize a catalog default expression to canonical literal text."""
        if raw is None:
            return None
        text = str(raw).strip()
        while len(text) >= 2 and text[0] == "(" and text[-1] == ")":
            text = text[1:-1].strip()
        if not text:
            return None
        lowered = text.lower()
        if lowered == "null":
            return None
        if lowered in ("true", "false"):
            return "1" if lowered == "true" else "0"
        if text[0] == "'" or is_numeric_literal(text):
            return normalize_default(text)
        if lowered in ("now()", "current_timestamp", "current_timestamp()", "localtimestamp"):
            return CURRENT_TIMESTAMP
        return text

    # -- identifiers -----------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Quote an identifier only when it is not a plain, unreserved name."""
        if _SIMPLE_IDENTIFIER.match(identifier) and identifier.lower() not in _RESERVED_WORDS:
            return identifier
        q = self.identifier_quote
        return f"{q}{identifier.replace(q, q + q)}{q}"

    # -- table-level statements -------------------------------------------

    def backup_statements(self, table: str, backup_table: str) -> List[str]:
        """Statements that copy structure and data of ``table`` into ``backup_table``."""
        raise NotImplementedError

    def drop_table_statement(self, table: str) -> str:
        return f"DROP TABLE IF EXISTS {self.quote(table)}"

    def rename_table_statement(self, table: str, new_name: str) -> str:
        return f"ALTER TABLE {self.quote(table)} RENAME TO {self.quote(new_name)}"

    def restore_statements(self, table: str, backup_table: str) -> List[str]:
        """Statements that replace ``table`` with ``backup_table`` by rename."""
        return [
            self.drop_table_statement(table),
            self.rename_table_statement(backup_table, table),
        ]

    def recovery_instructions(self, table: str, backup_table: str) -> str:
        """Literal operator instructions for restoring a table from its backup."""
        steps = "\n".join(f"  {s};" for s in self.restore_statements(table, backup_table))
        return (
            f"Table '{table}' was backed up to '{backup_table}' before the failed apply.\n"
            f"To restore it, run:\n{steps}"
        )


class MySQLDialect(DialectStrategy):
    """MySQL and MariaDB."""

    dialect = Dialect.MYSQL
    identifier_quote = "`"
    autoincrement_keyword = "AUTO_INCREMENT"
    supports_comments = True
    inline_comments = True
    combined_alter = True
    requires_length = True
    type_names = {
        LogicalType.STRING: "VARCHAR",
        LogicalType.FIXED_STRING: "CHAR",
        LogicalType.TEXT: "TEXT",
        LogicalType.LONG_TEXT: "LONGTEXT",
        LogicalType.SMALL_INT: "SMALLINT",
        LogicalType.INT: "INT",
        LogicalType.BIG_INT: "BIGINT",
        LogicalType.FLOAT: "FLOAT",
        LogicalType.DOUBLE: "DOUBLE",
        LogicalType.DECIMAL: "DECIMAL",
        LogicalType.BOOLEAN: "BOOLEAN",
        LogicalType.DATE: "DATE",
        LogicalType.DATETIME: "DATETIME",
        LogicalType.TIMESTAMP: "TIMESTAMP",
        LogicalType.TIME: "TIME",
        LogicalType.BINARY: "BLOB",
        LogicalType.JSON: "JSON",
    }

    def canonicalize(self, native: str) -> LogicalType:
        base, args = parse_native_type(native)
        # BOOLEAN is stored as TINYINT(1)
        if base == "tinyint" and args == ["1"]:
            return LogicalType.BOOLEAN
        return super().canonicalize(native)

    def normalize_default(self, raw: Optional[str], expression: bool = False) -> Optional[str]:
        if raw is None:
            return None
        if raw == "" and not expression:
            return quote_literal("")
        text = str(raw).strip()
        # MySQL 8 reports string defaults without quotes
        if (
            not expression
            and text
            and text[0] not in "'("
            and text.lower() not in ("null", "current_timestamp", "current_timestamp()", "now()")
            and not is_numeric_literal(text)
        ):
            return quote_literal(text)
        return super().normalize_default(text)

    def backup_statements(self, table: str, backup_table: str) -> List[str]:
        return [
            f"CREATE TABLE {self.quote(backup_table)} LIKE {self.quote(table)}",
            f"INSERT INTO {self.quote(backup_table)} SELECT * FROM {self.quote(table)}",
        ]

    def rename_table_statement(self, table: str, new_name: str) -> str:
        return f"RENAME TABLE {self.quote(table)} TO {self.quote(new_name)}"


class PostgreSQLDialect(DialectStrategy):
    """PostgreSQL."""

    dialect = Dialect.POSTGRESQL
    supports_comments = True
    type_names = {
        LogicalType.STRING: "VARCHAR",
        LogicalType.FIXED_STRING: "CHAR",
        LogicalType.TEXT: "TEXT",
        LogicalType.LONG_TEXT: "TEXT",
        LogicalType.SMALL_INT: "SMALLINT",
        LogicalType.INT: "INTEGER",
        LogicalType.BIG_INT: "BIGINT",
        LogicalType.FLOAT: "REAL",
        LogicalType.DOUBLE: "DOUBLE PRECISION",
        LogicalType.DECIMAL: "NUMERIC",
        LogicalType.BOOLEAN: "BOOLEAN",
        LogicalType.DATE: "DATE",
        LogicalType.DATETIME: "TIMESTAMP",
        LogicalType.TIMESTAMP: "TIMESTAMP",
        LogicalType.TIME: "TIME",
        LogicalType.BINARY: "BYTEA",
        LogicalType.JSON: "JSONB",
    }
    serial_names = {
        LogicalType.SMALL_INT: "SMALLSERIAL",
        LogicalType.INT: "SERIAL",
        LogicalType.BIG_INT: "BIGSERIAL",
    }
    _numeric_casts = {
        "integer", "bigint", "smallint", "numeric", "real", "double precision",
        "int", "int2", "int4", "int8", "float4", "float8", "decimal",
    }

    def uses_serial(self, spec: ColumnSpec) -> bool:
        return spec.auto_increment and spec.logical_type in self.serial_names

    def render_type(self, spec: ColumnSpec, for_add: bool = False) -> str:
        if for_add and self.uses_serial(spec):
            return self.serial_names[spec.logical_type]
        return super().render_type(spec, for_add)

    def render_default(self, spec: ColumnSpec) -> Optional[str]:
        value = spec.default_value
        if value is None:
            return None
        if spec.logical_type is LogicalType.BOOLEAN and value in ("1", "0"):
            return "TRUE" if value == "1" else "FALSE"
        return value

    def normalize_default(self, raw: Optional[str], expression: bool = False) -> Optional[str]:
        if raw is None:
            return None
        text = str(raw).strip()
        if text.lower().startswith("nextval("):
            return None
        cast = None
        match = re.match(r"^(.*?)::([\w ]+)(\[\])?$", text, re.DOTALL)
        if match:
            text, cast = match.group(1).strip(), match.group(2).strip().lower()
            while len(text) >= 2 and text[0] == "(" and text[-1] == ")":
                text = text[1:-1].strip()
        if cast in self._numeric_casts:
            inner = unquote_literal(text)
            if is_numeric_literal(inner):
                return inner
        return super().normalize_default(text)

    def backup_statements(self, table: str, backup_table: str) -> List[str]:
        return [f"CREATE TABLE {self.quote(backup_table)} AS TABLE {self.quote(table)}"]


class SQLiteDialect(DialectStrategy):
    """SQLite: only ADD COLUMN is supported by ALTER TABLE."""

    dialect = Dialect.SQLITE
    autoincrement_keyword = "AUTOINCREMENT"
    supports_alter_modify = False
    supports_alter_drop = False
    type_names = {
        LogicalType.STRING: "VARCHAR",
        LogicalType.FIXED_STRING: "CHAR",
        LogicalType.TEXT: "TEXT",
        LogicalType.LONG_TEXT: "TEXT",
        LogicalType.SMALL_INT: "INTEGER",
        LogicalType.INT: "INTEGER",
        LogicalType.BIG_INT: "INTEGER",
        LogicalType.FLOAT: "REAL",
        LogicalType.DOUBLE: "REAL",
        LogicalType.DECIMAL: "NUMERIC",
        LogicalType.BOOLEAN: "BOOLEAN",
        LogicalType.DATE: "DATE",
        LogicalType.DATETIME: "DATETIME",
        LogicalType.TIMESTAMP: "DATETIME",
        LogicalType.TIME: "TIME",
        LogicalType.BINARY: "BLOB",
        LogicalType.JSON: "TEXT",
    }

    def backup_statements(self, table: str, backup_table: str) -> List[str]:
        return [f"CREATE TABLE {self.quote(backup_table)} AS SELECT * FROM {self.quote(table)}"]


_STRATEGIES: Dict[Dialect, DialectStrategy] = {
    Dialect.MYSQL: MySQLDialect(),
    Dialect.POSTGRESQL: PostgreSQLDialect(),
    Dialect.SQLITE: SQLiteDialect(),
}


def get_dialect(name) -> DialectStrategy:
    """Return the strategy for a dialect name, alias, or Dialect member."""
    if isinstance(name, DialectStrategy):
        return name
    return _STRATEGIES[Dialect.parse(name)]
