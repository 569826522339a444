"""
Canonical, dialect-independent column model for schemasync.

Both sides of a reconciliation are expressed in these types: the desired
columns built from declarative field metadata and the actual columns read
from a live database.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..exceptions import ValidationError


CURRENT_TIMESTAMP = "CURRENT_TIMESTAMP"

_NUMERIC_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_NOW_KEYWORDS = {"now", "now()", "current_timestamp", "current_timestamp()", "localtimestamp"}


class LogicalType(str, Enum):
    """Canonical column type vocabulary shared by every dialect."""

    STRING = "string"
    FIXED_STRING = "fixed_string"
    TEXT = "text"
    LONG_TEXT = "long_text"
    SMALL_INT = "small_int"
    INT = "int"
    BIG_INT = "big_int"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    TIME = "time"
    BINARY = "binary"
    JSON = "json"

    @property
    def is_bounded(self) -> bool:
        """Whether the type carries a length."""
        return self in (LogicalType.STRING, LogicalType.FIXED_STRING)

    @property
    def is_decimal(self) -> bool:
        return self is LogicalType.DECIMAL

    @property
    def is_integer(self) -> bool:
        return self in (LogicalType.SMALL_INT, LogicalType.INT, LogicalType.BIG_INT)


class GeneratedMode(str, Enum):
    """Generated column storage modes."""

    VIRTUAL = "virtual"
    STORED = "stored"


class IndexKind(str, Enum):
    """Kinds of single-column index a field may request."""

    INDEX = "index"
    UNIQUE = "unique"
    FULLTEXT = "fulltext"
    SPATIAL = "spatial"


class ChangeKind(str, Enum):
    """Kinds of column mutation produced by the differ."""

    ADD = "add"
    MODIFY = "modify"
    DROP = "drop"


@dataclass(frozen=True)
class ForeignKeyRef:
    """Foreign key target and referential actions."""

    table: str
    column: str
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    @classmethod
    def parse(
        cls,
        target: str,
        on_delete: Optional[str] = None,
        on_update: Optional[str] = None,
    ) -> "ForeignKeyRef":
        """
        Parse a foreign key target written as ``table.column`` or ``table(column)``.

        A bare table name references its ``id`` column.
        """
        target = target.strip()
        match = re.match(r"^([\w$]+)\s*\(\s*([\w$]+)\s*\)$", target)
        if match:
            table, column = match.group(1), match.group(2)
        elif "." in target:
            table, _, column = target.rpartition(".")
        elif target:
            table, column = target, "id"
        else:
            raise ValidationError("Foreign key target must not be empty")

        return cls(
            table=table,
            column=column,
            on_delete=on_delete.upper() if on_delete else None,
            on_update=on_update.upper() if on_update else None,
        )

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


@dataclass(frozen=True)
class IndexSpec:
    """Single-column index request."""

    kind: IndexKind = IndexKind.INDEX
    name: Optional[str] = None
    method: Optional[str] = None

    def resolve_name(self, table: str, column: str) -> str:
        """Index name, defaulting to ``idx_<table>_<column>``."""
        if self.name:
            return self.name
        prefix = "uniq" if self.kind is IndexKind.UNIQUE else "idx"
        return f"{prefix}_{table}_{column}"


@dataclass(frozen=True)
class ColumnSpec:
    """One column's canonical description."""

    name: str
    logical_type: LogicalType = LogicalType.STRING
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    not_null: bool = False
    default_value: Optional[str] = None
    comment: str = ""
    primary_key: bool = False
    unique: bool = False
    auto_increment: bool = False
    foreign_key: Optional[ForeignKeyRef] = None
    generated: Optional[GeneratedMode] = None
    index: Optional[IndexSpec] = None
    native_type: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ValidationError("Column name is required")
        logical_type = LogicalType(self.logical_type)
        object.__setattr__(self, "logical_type", logical_type)
        if not logical_type.is_bounded:
            object.__setattr__(self, "length", None)
        if not logical_type.is_decimal:
            object.__setattr__(self, "precision", None)
            object.__setattr__(self, "scale", None)
        if self.primary_key and not self.not_null:
            object.__setattr__(self, "not_null", True)
        if self.comment is None:
            object.__setattr__(self, "comment", "")

    def describe_type(self) -> str:
        """Short canonical type description such as ``string(20)``."""
        if self.length is not None:
            return f"{self.logical_type.value}({self.length})"
        if self.precision is not None:
            if self.scale is not None:
                return f"{self.logical_type.value}({self.precision},{self.scale})"
            return f"{self.logical_type.value}({self.precision})"
        return self.logical_type.value


@dataclass(frozen=True)
class ColumnChange:
    """One required mutation of a live table."""

    column: str
    kind: ChangeKind
    before: Optional[ColumnSpec] = None
    after: Optional[ColumnSpec] = None
    attributes: Tuple[str, ...] = ()
    reason: str = ""

    @property
    def glyph(self) -> str:
        """Operator-facing action glyph."""
        return {ChangeKind.ADD: "+", ChangeKind.MODIFY: "~", ChangeKind.DROP: "-"}[self.kind]

    def differs_in(self, attribute: str) -> bool:
        return attribute in self.attributes


def ensure_unique_names(columns: Iterable[ColumnSpec]) -> None:
    """Raise ValidationError if two columns share a name."""
    seen = set()
    for column in columns:
        if column.name in seen:
            raise ValidationError(
                f"Duplicate column name '{column.name}'", {"column": column.name}
            )
        seen.add(column.name)


def is_numeric_literal(value: str) -> bool:
    return bool(_NUMERIC_LITERAL.match(value.strip()))


def quote_literal(value: str) -> str:
    """Single-quote a string literal, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def unquote_literal(value: str) -> str:
    """Strip one level of single quotes from a SQL string literal."""
    value = value.strip()
    if len(value) >= 2 and value[0] == "'" and value[-1] == "'":
        return value[1:-1].replace("''", "'")
    return value


def normalize_default(value) -> Optional[str]:
    """
    Normalize a declared default value into canonical literal text.

    ``now``/``current_timestamp`` become the CURRENT_TIMESTAMP sentinel,
    booleans become ``1``/``0``, numbers pass through unquoted, ``null``
    means no default and anything else is single-quoted.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)

    text = str(value).strip()
    lowered = text.lower()
    if lowered == "null":
        return None
    if lowered in _NOW_KEYWORDS:
        return CURRENT_TIMESTAMP
    if lowered == "true":
        return "1"
    if lowered == "false":
        return "0"
    if is_numeric_literal(text):
        return text
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return quote_literal(unquote_literal(text))
    return quote_literal(text)
