"""
Column Model Builder for schemasync.

Turns per-field declarative metadata into canonical ColumnSpec values.
Field metadata is plain data: a list of FieldMetadata built by ordinary
code, by the chaining TableDefinition builder, or from configuration.
"""

import datetime
import decimal
import logging
import types
import typing
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..exceptions import ValidationError
from .types import (
    ColumnSpec,
    ForeignKeyRef,
    GeneratedMode,
    IndexKind,
    IndexSpec,
    LogicalType,
    ensure_unique_names,
    normalize_default,
)


logger = logging.getLogger(__name__)


DEFAULT_STRING_LENGTH = 255
DEFAULT_FIXED_STRING_LENGTH = 1
DEFAULT_DECIMAL_PRECISION = 10
DEFAULT_DECIMAL_SCALE = 2


# Explicit type tokens. Values are (logical type, implied length).
TYPE_ALIASES: Dict[str, Tuple[LogicalType, Optional[int]]] = {
    "string": (LogicalType.STRING, None),
    "varchar": (LogicalType.STRING, None),
    "fixed_string": (LogicalType.FIXED_STRING, None),
    "char": (LogicalType.FIXED_STRING, None),
    "character": (LogicalType.FIXED_STRING, None),
    "text": (LogicalType.TEXT, None),
    "tinytext": (LogicalType.TEXT, None),
    "long_text": (LogicalType.LONG_TEXT, None),
    "longtext": (LogicalType.LONG_TEXT, None),
    "mediumtext": (LogicalType.LONG_TEXT, None),
    "small_int": (LogicalType.SMALL_INT, None),
    "smallint": (LogicalType.SMALL_INT, None),
    "tinyint": (LogicalType.SMALL_INT, None),
    "int8": (LogicalType.SMALL_INT, None),
    "int16": (LogicalType.SMALL_INT, None),
    "byte": (LogicalType.SMALL_INT, None),
    "short": (LogicalType.SMALL_INT, None),
    "int": (LogicalType.INT, None),
    "integer": (LogicalType.INT, None),
    "int32": (LogicalType.INT, None),
    "mediumint": (LogicalType.INT, None),
    "year": (LogicalType.INT, None),
    "big_int": (LogicalType.BIG_INT, None),
    "bigint": (LogicalType.BIG_INT, None),
    "int64": (LogicalType.BIG_INT, None),
    "long": (LogicalType.BIG_INT, None),
    "float": (LogicalType.FLOAT, None),
    "float32": (LogicalType.FLOAT, None),
    "real": (LogicalType.FLOAT, None),
    "double": (LogicalType.DOUBLE, None),
    "float64": (LogicalType.DOUBLE, None),
    "double_precision": (LogicalType.DOUBLE, None),
    "decimal": (LogicalType.DECIMAL, None),
    "numeric": (LogicalType.DECIMAL, None),
    "money": (LogicalType.DECIMAL, None),
    "boolean": (LogicalType.BOOLEAN, None),
    "bool": (LogicalType.BOOLEAN, None),
    "bit": (LogicalType.BOOLEAN, None),
    "date": (LogicalType.DATE, None),
    "datetime": (LogicalType.DATETIME, None),
    "datetime2": (LogicalType.DATETIME, None),
    "timestamp": (LogicalType.TIMESTAMP, None),
    "timestamptz": (LogicalType.TIMESTAMP, None),
    "time": (LogicalType.TIME, None),
    "timetz": (LogicalType.TIME, None),
    "binary": (LogicalType.BINARY, None),
    "blob": (LogicalType.BINARY, None),
    "tinyblob": (LogicalType.BINARY, None),
    "mediumblob": (LogicalType.BINARY, None),
    "longblob": (LogicalType.BINARY, None),
    "varbinary": (LogicalType.BINARY, None),
    "bytea": (LogicalType.BINARY, None),
    "json": (LogicalType.JSON, None),
    "jsonb": (LogicalType.JSON, None),
    "array": (LogicalType.JSON, None),
    "uuid": (LogicalType.FIXED_STRING, 36),
    "guid": (LogicalType.FIXED_STRING, 36),
    "enum": (LogicalType.STRING, 255),
    "set": (LogicalType.STRING, 255),
    "inet": (LogicalType.STRING, None),
    "cidr": (LogicalType.STRING, None),
    "macaddr": (LogicalType.STRING, None),
    "xml": (LogicalType.TEXT, None),
    "geometry": (LogicalType.TEXT, None),
    "point": (LogicalType.TEXT, None),
    "linestring": (LogicalType.TEXT, None),
    "polygon": (LogicalType.TEXT, None),
}

# Native value types. Order matters: bool before int, datetime before date.
_PYTHON_TYPES: List[Tuple[type, Tuple[LogicalType, Optional[int]]]] = [
    (bool, (LogicalType.BOOLEAN, None)),
    (int, (LogicalType.BIG_INT, None)),
    (float, (LogicalType.DOUBLE, None)),
    (decimal.Decimal, (LogicalType.DECIMAL, None)),
    (str, (LogicalType.STRING, None)),
    (bytes, (LogicalType.BINARY, None)),
    (bytearray, (LogicalType.BINARY, None)),
    (memoryview, (LogicalType.BINARY, None)),
    (datetime.datetime, (LogicalType.DATETIME, None)),
    (datetime.date, (LogicalType.DATE, None)),
    (datetime.time, (LogicalType.TIME, None)),
    (datetime.timedelta, (LogicalType.BIG_INT, None)),
    (uuid.UUID, (LogicalType.FIXED_STRING, 36)),
    (dict, (LogicalType.JSON, None)),
    (list, (LogicalType.JSON, None)),
    (tuple, (LogicalType.JSON, None)),
    (set, (LogicalType.JSON, None)),
    (frozenset, (LogicalType.JSON, None)),
]


@dataclass
class FieldMetadata:
    """Declarative description of one persisted field."""

    name: str
    type: Optional[str] = None
    value_type: Any = None
    size: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    primary_key: bool = False
    auto_increment: bool = False
    unique: bool = False
    nullable: bool = True
    indexed: bool = False
    index_kind: Optional[str] = None
    index_name: Optional[str] = None
    index_method: Optional[str] = None
    default: Any = None
    auto_create_time: bool = False
    comment: str = ""
    foreign_key: Optional[str] = None
    on_delete: Optional[str] = None
    on_update: Optional[str] = None
    generated: Optional[str] = None
    skip: bool = False
    # Opaque pass-through flags such as encrypted/hidden/readonly
    attributes: Dict[str, Any] = field(default_factory=dict)


class TableDefinition:
    """
    Desired shape of one table: a name and an ordered list of fields.

    Fields can be passed up front or added with the chaining ``field`` method::

        users = (
            TableDefinition("users")
            .field("id", value_type=int, primary_key=True, auto_increment=True)
            .field("email", type="varchar", size=255, unique=True, nullable=False)
        )
    """

    def __init__(self, table: str, fields: Optional[Iterable[FieldMetadata]] = None):
        if not table:
            raise ValidationError("Table name is required")
        self.table = table
        self.fields: List[FieldMetadata] = list(fields or [])

    def field(self, name: str, **kwargs) -> "TableDefinition":
        """Append a field and return self."""
        self.fields.append(FieldMetadata(name=name, **kwargs))
        return self

    def columns(self) -> List[ColumnSpec]:
        """Desired ColumnSpec list for this table."""
        return build_columns(self.fields)

    def __repr__(self) -> str:
        return f"TableDefinition({self.table!r}, fields={len(self.fields)})"


class SchemaRegistry:
    """Holds one TableDefinition per table, registered up front."""

    def __init__(self):
        self._definitions: Dict[str, TableDefinition] = {}

    def register(self, definition: TableDefinition) -> TableDefinition:
        if definition.table in self._definitions:
            raise ValidationError(f"Table '{definition.table}' is already registered")
        self._definitions[definition.table] = definition
        return definition

    def get(self, table: str) -> TableDefinition:
        if table not in self._definitions:
            raise ValidationError(f"Table '{table}' is not registered")
        return self._definitions[table]

    def tables(self) -> List[str]:
        return list(self._definitions)

    def __iter__(self):
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


class ColumnModelBuilder:
    """Builds canonical column specs from field metadata."""

    def build(self, fields: Iterable[FieldMetadata]) -> List[ColumnSpec]:
        columns = [self.build_column(f) for f in fields if not f.skip]
        ensure_unique_names(columns)
        return columns

    def build_column(self, meta: FieldMetadata) -> ColumnSpec:
        logical_type, implied_length = self.resolve_type(meta)

        length = meta.size if meta.size is not None else implied_length
        if logical_type is LogicalType.STRING and length is None:
            length = DEFAULT_STRING_LENGTH
        elif logical_type is LogicalType.FIXED_STRING and length is None:
            length = DEFAULT_FIXED_STRING_LENGTH

        precision, scale = meta.precision, meta.scale
        if logical_type is LogicalType.DECIMAL:
            precision = precision or DEFAULT_DECIMAL_PRECISION
            scale = scale if scale is not None else DEFAULT_DECIMAL_SCALE

        default_value = normalize_default(meta.default)
        if default_value is None and meta.auto_create_time:
            default_value = normalize_default("current_timestamp")

        return ColumnSpec(
            name=meta.name,
            logical_type=logical_type,
            length=length,
            precision=precision,
            scale=scale,
            not_null=meta.primary_key or not meta.nullable,
            default_value=default_value,
            comment=meta.comment or "",
            primary_key=meta.primary_key,
            unique=meta.unique,
            auto_increment=meta.auto_increment,
            foreign_key=self._foreign_key(meta),
            generated=GeneratedMode(meta.generated.lower()) if meta.generated else None,
            index=self._index(meta),
        )

    def resolve_type(self, meta: FieldMetadata) -> Tuple[LogicalType, Optional[int]]:
        """Explicit type token first, then inference from the native value type."""
        if meta.type:
            token = meta.type.strip().lower()
            if token in TYPE_ALIASES:
                return TYPE_ALIASES[token]
            logger.warning(
                f"Unknown type '{meta.type}' for field '{meta.name}', "
                f"falling back to inferred type"
            )
        if meta.auto_create_time and meta.value_type is None:
            return LogicalType.DATETIME, None
        return infer_type(meta.value_type)

    def _foreign_key(self, meta: FieldMetadata) -> Optional[ForeignKeyRef]:
        if not meta.foreign_key:
            return None
        return ForeignKeyRef.parse(meta.foreign_key, meta.on_delete, meta.on_update)

    def _index(self, meta: FieldMetadata) -> Optional[IndexSpec]:
        if not (meta.indexed or meta.index_kind or meta.index_name):
            return None
        kind = IndexKind(meta.index_kind.lower()) if meta.index_kind else IndexKind.INDEX
        method = meta.index_method.upper() if meta.index_method else None
        return IndexSpec(kind=kind, name=meta.index_name, method=method)


def infer_type(value_type: Any) -> Tuple[LogicalType, Optional[int]]:
    """
    Infer a canonical type from a native value type.

    Accepts Python types, typing generics (``Optional[int]``,
    ``List[str]``, ``Dict[str, Any]``) and type names such as ``"int64"``.
    Anything unrecognized is a bounded string.
    """
    if value_type is None:
        return LogicalType.STRING, None

    if isinstance(value_type, str):
        token = value_type.strip().lower()
        if token in ("str", "string"):
            return LogicalType.STRING, None
        if token in TYPE_ALIASES:
            return TYPE_ALIASES[token]
        if token in ("bytes", "bytearray"):
            return LogicalType.BINARY, None
        if token in ("dict", "list", "tuple", "map", "struct", "slice"):
            return LogicalType.JSON, None
        return LogicalType.STRING, None

    origin = typing.get_origin(value_type)
    if origin is Union or origin is getattr(types, "UnionType", Union):
        args = [a for a in typing.get_args(value_type) if a is not type(None)]
        if len(args) == 1:
            return infer_type(args[0])
        return LogicalType.JSON, None
    if origin is not None:
        value_type = origin

    if isinstance(value_type, type):
        for python_type, mapped in _PYTHON_TYPES:
            if issubclass(value_type, python_type):
                return mapped

    return LogicalType.STRING, None


_builder = ColumnModelBuilder()


def build_columns(fields: Iterable[FieldMetadata]) -> List[ColumnSpec]:
    """Build the desired ColumnSpec list from field metadata."""
    return _builder.build(fields)
