"""
Schema management package for schemasync.

This package provides:
- The canonical column model and dialect strategies
- The column model builder for declarative field metadata
- Column comparison and DDL synthesis

Execution lives in ``schemasync.schema.executor`` and
``schemasync.schema.reconciler``, which depend on ``schemasync.database``.
"""

from .types import ColumnSpec, ColumnChange, ChangeKind, LogicalType
from .dialects import Dialect, DialectStrategy, get_dialect
from .model import FieldMetadata, TableDefinition, SchemaRegistry, build_columns
from .comparator import SchemaComparator, compare_columns
from .ddl import synthesize, synthesize_create_table, synthesize_rebuild

__all__ = [
    "ColumnSpec",
    "ColumnChange",
    "ChangeKind",
    "LogicalType",
    "Dialect",
    "DialectStrategy",
    "get_dialect",
    "FieldMetadata",
    "TableDefinition",
    "SchemaRegistry",
    "build_columns",
    "SchemaComparator",
    "compare_columns",
    "synthesize",
    "synthesize_create_table",
    "synthesize_rebuild",
]
