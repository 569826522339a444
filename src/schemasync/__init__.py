"""
schemasync: declarative schema reconciliation for MySQL, PostgreSQL and SQLite.

schemasync compares the column structure you declare in code with the live
structure of each table, synthesizes the DDL that brings them into agreement,
and applies it safely with backups and transactional rollback.
"""

__version__ = "0.1.0"
__author__ = "schemasync Contributors"

from .config import SchemaSyncConfig
from .exceptions import (
    SchemaSyncError,
    ConfigurationError,
    UnsupportedDialectError,
    DatabaseError,
    BackupError,
)

__all__ = [
    "__version__",
    "SchemaSyncConfig",
    "SchemaSyncError",
    "ConfigurationError",
    "UnsupportedDialectError",
    "DatabaseError",
    "BackupError",
]
