"""
Configuration system for schemasync using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings
from rich.logging import RichHandler

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError, DatabaseConfigurationError
from .exceptions import ValidationError as SchemaValidationError
from .schema.model import FieldMetadata, TableDefinition
from .schema.types import ForeignKeyRef


class FieldConfig(BaseModel):
    """Declarative metadata for one column."""

    name: str = Field(..., description="Physical column name")
    type: Optional[str] = Field(None, description="Explicit type token, e.g. varchar or uuid")
    value_type: Optional[str] = Field(
        None, description="Native value type name used when no type is given, e.g. int64"
    )
    size: Optional[int] = Field(None, description="Length for string types")
    precision: Optional[int] = Field(None, description="Decimal precision")
    scale: Optional[int] = Field(None, description="Decimal scale")
    primary_key: bool = Field(False, description="Part of the primary key")
    auto_increment: bool = Field(False, description="Auto-incrementing column")
    unique: bool = Field(False, description="Unique column")
    nullable: bool = Field(True, description="Column accepts NULL")
    indexed: bool = Field(False, description="Create an index on this column")
    index_kind: Optional[Literal["index", "unique", "fulltext", "spatial"]] = Field(
        None, description="Index kind"
    )
    index_name: Optional[str] = Field(None, description="Index name")
    index_method: Optional[str] = Field(None, description="Index method, e.g. btree or hash")
    default: Optional[Union[bool, int, float, str]] = Field(None, description="Default value literal")
    auto_create_time: bool = Field(False, description="Default to the current timestamp")
    comment: str = Field("", description="Column comment")
    foreign_key: Optional[str] = Field(
        None, description="Foreign key target as table.column or table(column)"
    )
    on_delete: Optional[str] = Field(None, description="ON DELETE action")
    on_update: Optional[str] = Field(None, description="ON UPDATE action")
    generated: Optional[Literal["virtual", "stored"]] = Field(
        None, description="Generated column mode"
    )
    skip: bool = Field(False, description="Not persisted, ignored by reconciliation")
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Opaque flags such as encrypted, hidden, readonly"
    )

    def to_metadata(self) -> FieldMetadata:
        return FieldMetadata(**self.model_dump())


class TableConfig(BaseModel):
    """Desired columns of a single table."""

    table: str = Field(..., description="Table name")
    fields: List[FieldConfig] = Field(default_factory=list, description="Column declarations")

    def to_definition(self) -> TableDefinition:
        return TableDefinition(self.table, [f.to_metadata() for f in self.fields])


class DatabaseConfig(BaseModel):
    """Configuration for a single database."""

    name: str = Field(..., description="Database configuration name")
    url: Optional[str] = Field(None, description="Database URL")
    connection: Optional[ConnectionConfig] = Field(None, description="Connection details")
    tables: List[TableConfig] = Field(default_factory=list, description="Tables to reconcile")

    @model_validator(mode="after")
    def check_connection(self) -> "DatabaseConfig":
        if self.url is None and self.connection is None:
            raise ValueError(f"Database '{self.name}' needs either 'url' or 'connection'")
        return self

    def connection_config(self) -> ConnectionConfig:
        """Connection details, parsed from the URL when no explicit block is given."""
        if self.connection is not None:
            return self.connection
        return ConnectionConfig.from_url(self.url)

    def get_table(self, table: str) -> TableConfig:
        for table_config in self.tables:
            if table_config.table == table:
                return table_config
        raise ConfigurationError(f"Table '{table}' is not configured for database '{self.name}'")


class ReconciliationConfig(BaseModel):
    """Schema reconciliation behaviour."""

    dry_run: bool = Field(False, description="Compute statements without executing them")
    backup: bool = Field(True, description="Back up tables before applying changes")
    backup_retention_days: int = Field(7, ge=0, description="Days to keep backup tables")
    allow_drop_columns: bool = Field(
        True, description="Drop live columns that are missing from the model"
    )
    create_missing_tables: bool = Field(True, description="Create tables that do not exist")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")

    def configure(self, debug: bool = False) -> None:
        """Install console and optional rotating file handlers on the root logger."""
        root = logging.getLogger()
        root.setLevel(logging.DEBUG if debug else self.level)
        for handler in list(root.handlers):
            root.removeHandler(handler)

        console_handler = RichHandler(rich_tracebacks=debug, show_path=debug)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(console_handler)

        if self.file:
            file_handler = logging.handlers.RotatingFileHandler(
                self.file, maxBytes=self.max_size, backupCount=self.backup_count
            )
            file_handler.setFormatter(logging.Formatter(self.format))
            root.addHandler(file_handler)


class SchemaSyncConfig(BaseSettings):
    """Main schemasync configuration."""

    debug: bool = Field(False, description="Enable debug mode")

    databases: List[DatabaseConfig] = Field(
        default_factory=list, description="Database configurations"
    )
    reconciliation: ReconciliationConfig = Field(
        default_factory=ReconciliationConfig, description="Reconciliation configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="SCHEMASYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SchemaSyncConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_database(self, name: Optional[str] = None) -> DatabaseConfig:
        """Get database configuration by name, or the only one when name is omitted."""
        if name is None:
            if len(self.databases) == 1:
                return self.databases[0]
            raise ConfigurationError(
                f"Database name is required when {len(self.databases)} databases are configured"
            )
        for db in self.databases:
            if db.name == name:
                return db
        raise ConfigurationError(f"Database configuration '{name}' not found")

    def validate_config(self) -> None:
        """Validate the entire configuration for consistency."""
        seen_databases = set()
        for db in self.databases:
            if db.name in seen_databases:
                raise ConfigurationError(f"Duplicate database configuration '{db.name}'")
            seen_databases.add(db.name)

            try:
                db.connection_config()
            except (DatabaseConfigurationError, ValidationError) as e:
                raise ConfigurationError(f"Database '{db.name}' has an invalid URL: {e}", cause=e)

            seen_tables = set()
            for table in db.tables:
                if table.table in seen_tables:
                    raise ConfigurationError(
                        f"Table '{table.table}' is configured twice for database '{db.name}'"
                    )
                seen_tables.add(table.table)

                if not [f for f in table.fields if not f.skip]:
                    raise ConfigurationError(
                        f"Table '{table.table}' in database '{db.name}' has no columns"
                    )

                seen_fields = set()
                for field_config in table.fields:
                    if field_config.name in seen_fields:
                        raise ConfigurationError(
                            f"Column '{field_config.name}' is declared twice in table '{table.table}'"
                        )
                    seen_fields.add(field_config.name)
                    if field_config.foreign_key:
                        try:
                            ForeignKeyRef.parse(field_config.foreign_key)
                        except SchemaValidationError as e:
                            raise ConfigurationError(
                                f"Column '{table.table}.{field_config.name}' has an invalid "
                                f"foreign key '{field_config.foreign_key}'",
                                cause=e,
                            )

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
