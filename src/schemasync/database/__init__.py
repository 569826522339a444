"""
Database integration package for schemasync.

This package provides:
- Async connections for PostgreSQL, MySQL and SQLite
- Explicit transactions behind one interface
- Live schema introspection per dialect
"""

from .connection import (
    ConnectionConfig,
    DatabaseConnection,
    DatabaseManager,
    Transaction,
    create_connection,
)
from .introspection import SchemaReader, get_schema_reader, read_columns

__all__ = [
    "ConnectionConfig",
    "DatabaseConnection",
    "DatabaseManager",
    "Transaction",
    "create_connection",
    "SchemaReader",
    "get_schema_reader",
    "read_columns",
]
