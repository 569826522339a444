"""
Exception classes for schemasync.
"""

from typing import Any, Dict, Optional


class SchemaSyncError(Exception):
    """Base exception for all schemasync errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SchemaSyncError):
    """Raised when there's an error in configuration."""

    pass


class UnsupportedDialectError(ConfigurationError):
    """Raised when a database driver name is not one of the supported dialects."""

    def __init__(self, driver: str) -> None:
        super().__init__(f"unsupported database driver: {driver}", {"driver": driver})
        self.driver = driver


class ValidationError(SchemaSyncError):
    """Raised when there's a validation error."""

    pass


class DatabaseError(SchemaSyncError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when there's an error establishing or maintaining database connections."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class SchemaError(DatabaseError):
    """Raised when there's an error with database schema operations."""

    pass


class BackupError(SchemaError):
    """Raised when a backup table cannot be created or populated."""

    def __init__(
        self,
        table_name: str,
        backup_table: str,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            f"Failed to back up table '{table_name}' to '{backup_table}'",
            {"table": table_name, "backup_table": backup_table},
            cause,
        )
        self.table_name = table_name
        self.backup_table = backup_table


class ApplyError(SchemaError):
    """Raised when a schema statement fails outside of a reconciliation apply."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if statement:
            details["statement"] = statement
        super().__init__(message, details, cause)
        self.statement = statement
