"""
Tests for schemasync.schema.model module.
"""

import datetime
import decimal
import uuid
from typing import Any, Dict, List, Optional

import pytest

from schemasync.exceptions import ValidationError
from schemasync.schema.model import (
    ColumnModelBuilder,
    FieldMetadata,
    SchemaRegistry,
    TableDefinition,
    build_columns,
    infer_type,
)
from schemasync.schema.types import CURRENT_TIMESTAMP, GeneratedMode, IndexKind, LogicalType


class TestInferType:
    """Test type inference from native value types."""

    @pytest.mark.parametrize(
        "value_type,expected",
        [
            (bool, LogicalType.BOOLEAN),
            (int, LogicalType.BIG_INT),
            (float, LogicalType.DOUBLE),
            (decimal.Decimal, LogicalType.DECIMAL),
            (str, LogicalType.STRING),
            (bytes, LogicalType.BINARY),
            (datetime.datetime, LogicalType.DATETIME),
            (datetime.date, LogicalType.DATE),
            (datetime.time, LogicalType.TIME),
            (dict, LogicalType.JSON),
            (List[str], LogicalType.JSON),
            (Dict[str, Any], LogicalType.JSON),
            (Optional[int], LogicalType.BIG_INT),
            ("int32", LogicalType.INT),
            ("int64", LogicalType.BIG_INT),
            ("float64", LogicalType.DOUBLE),
            ("bool", LogicalType.BOOLEAN),
            ("map", LogicalType.JSON),
        ],
    )
    def test_infer(self, value_type, expected):
        assert infer_type(value_type)[0] is expected

    def test_uuid_is_fixed_string_36(self):
        assert infer_type(uuid.UUID) == (LogicalType.FIXED_STRING, 36)

    def test_unknown_falls_back_to_string(self):
        class Custom:
            pass

        assert infer_type(Custom)[0] is LogicalType.STRING
        assert infer_type(None)[0] is LogicalType.STRING


class TestColumnModelBuilder:
    """Test ColumnSpec construction from field metadata."""

    def setup_method(self):
        self.builder = ColumnModelBuilder()

    def test_explicit_type_overrides_inference(self):
        spec = self.builder.build_column(FieldMetadata("body", type="text", value_type=int))
        assert spec.logical_type is LogicalType.TEXT

    def test_string_default_length(self):
        spec = self.builder.build_column(FieldMetadata("name", value_type=str))
        assert spec.length == 255

    def test_explicit_size(self):
        spec = self.builder.build_column(FieldMetadata("code", type="char", size=3))
        assert spec.logical_type is LogicalType.FIXED_STRING
        assert spec.length == 3

    def test_uuid_alias_implies_length(self):
        spec = self.builder.build_column(FieldMetadata("ref", type="uuid"))
        assert (spec.logical_type, spec.length) == (LogicalType.FIXED_STRING, 36)

    def test_decimal_defaults(self):
        spec = self.builder.build_column(FieldMetadata("price", type="decimal"))
        assert (spec.precision, spec.scale) == (10, 2)

    def test_decimal_explicit_precision(self):
        spec = self.builder.build_column(
            FieldMetadata("price", type="numeric", precision=12, scale=4)
        )
        assert (spec.precision, spec.scale) == (12, 4)

    def test_unknown_type_token_warns_and_infers(self, caplog):
        spec = self.builder.build_column(FieldMetadata("n", type="hyperint", value_type=int))
        assert spec.logical_type is LogicalType.BIG_INT
        assert "Unknown type 'hyperint'" in caplog.text

    def test_nullable_and_primary_key(self):
        pk = self.builder.build_column(FieldMetadata("id", value_type=int, primary_key=True))
        required = self.builder.build_column(FieldMetadata("email", nullable=False))
        optional = self.builder.build_column(FieldMetadata("nickname"))
        assert pk.not_null and pk.primary_key
        assert required.not_null
        assert not optional.not_null

    def test_defaults_normalized(self):
        status = self.builder.build_column(FieldMetadata("status", default="active"))
        flag = self.builder.build_column(FieldMetadata("flag", value_type=bool, default=True))
        created = self.builder.build_column(FieldMetadata("created_at", auto_create_time=True))
        assert status.default_value == "'active'"
        assert flag.default_value == "1"
        assert created.logical_type is LogicalType.DATETIME
        assert created.default_value == CURRENT_TIMESTAMP

    def test_foreign_key_and_index(self):
        spec = self.builder.build_column(
            FieldMetadata(
                "user_id",
                value_type=int,
                foreign_key="users.id",
                on_delete="cascade",
                indexed=True,
                index_method="btree",
            )
        )
        assert spec.foreign_key.table == "users"
        assert spec.foreign_key.on_delete == "CASCADE"
        assert spec.index.kind is IndexKind.INDEX
        assert spec.index.method == "BTREE"

    def test_generated_mode(self):
        spec = self.builder.build_column(FieldMetadata("total", value_type=int, generated="STORED"))
        assert spec.generated is GeneratedMode.STORED

    def test_skipped_fields_excluded(self):
        columns = build_columns([FieldMetadata("id", value_type=int), FieldMetadata("cache", skip=True)])
        assert [c.name for c in columns] == ["id"]

    def test_duplicate_fields_rejected(self):
        with pytest.raises(ValidationError):
            build_columns([FieldMetadata("id"), FieldMetadata("id")])


class TestTableDefinition:
    """Test TableDefinition and SchemaRegistry."""

    def test_chaining_preserves_order(self, users_definition):
        assert [c.name for c in users_definition.columns()] == ["id", "email", "status"]

    def test_table_name_required(self):
        with pytest.raises(ValidationError):
            TableDefinition("")

    def test_registry(self, users_definition):
        registry = SchemaRegistry()
        registry.register(users_definition)
        assert registry.get("users") is users_definition
        assert registry.tables() == ["users"]
        assert len(registry) == 1
        assert list(registry) == [users_definition]

    def test_registry_rejects_duplicates(self, users_definition):
        registry = SchemaRegistry()
        registry.register(users_definition)
        with pytest.raises(ValidationError):
            registry.register(TableDefinition("users"))

    def test_registry_unknown_table(self):
        with pytest.raises(ValidationError):
            SchemaRegistry().get("missing")
