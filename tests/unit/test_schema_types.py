"""
Tests for schemasync.schema.types module.
"""

import pytest

from schemasync.exceptions import ValidationError
from schemasync.schema.types import (
    CURRENT_TIMESTAMP,
    ChangeKind,
    ColumnChange,
    ColumnSpec,
    ForeignKeyRef,
    IndexKind,
    IndexSpec,
    LogicalType,
    ensure_unique_names,
    normalize_default,
    quote_literal,
    unquote_literal,
)


class TestColumnSpec:
    """Test ColumnSpec normalization."""

    def test_length_dropped_for_unbounded_types(self):
        spec = ColumnSpec("body", LogicalType.TEXT, length=500)
        assert spec.length is None

    def test_precision_dropped_for_non_decimal(self):
        spec = ColumnSpec("count", LogicalType.INT, precision=10, scale=2)
        assert spec.precision is None
        assert spec.scale is None

    def test_primary_key_implies_not_null(self):
        spec = ColumnSpec("id", LogicalType.BIG_INT, primary_key=True)
        assert spec.not_null is True

    def test_logical_type_coerced_from_string(self):
        spec = ColumnSpec("name", "string", length=20)
        assert spec.logical_type is LogicalType.STRING

    def test_native_type_ignored_in_equality(self):
        a = ColumnSpec("name", LogicalType.STRING, length=20, native_type="varchar(20)")
        b = ColumnSpec("name", LogicalType.STRING, length=20, native_type="VARCHAR(20)")
        assert a == b

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            ColumnSpec("")

    def test_describe_type(self):
        assert ColumnSpec("a", LogicalType.STRING, length=20).describe_type() == "string(20)"
        assert (
            ColumnSpec("b", LogicalType.DECIMAL, precision=10, scale=2).describe_type()
            == "decimal(10,2)"
        )
        assert ColumnSpec("c", LogicalType.JSON).describe_type() == "json"

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError):
            ensure_unique_names([ColumnSpec("a"), ColumnSpec("a")])


class TestColumnChange:
    """Test ColumnChange helpers."""

    def test_glyphs(self):
        assert ColumnChange("a", ChangeKind.ADD).glyph == "+"
        assert ColumnChange("a", ChangeKind.MODIFY).glyph == "~"
        assert ColumnChange("a", ChangeKind.DROP).glyph == "-"

    def test_differs_in(self):
        change = ColumnChange("a", ChangeKind.MODIFY, attributes=("length", "default"))
        assert change.differs_in("length")
        assert not change.differs_in("type")


class TestForeignKeyRef:
    """Test foreign key target parsing."""

    @pytest.mark.parametrize(
        "target,table,column",
        [
            ("users.id", "users", "id"),
            ("users(uuid)", "users", "uuid"),
            ("accounts", "accounts", "id"),
        ],
    )
    def test_parse(self, target, table, column):
        fk = ForeignKeyRef.parse(target)
        assert (fk.table, fk.column) == (table, column)

    def test_actions_upper_cased(self):
        fk = ForeignKeyRef.parse("users.id", "cascade", "set null")
        assert fk.on_delete == "CASCADE"
        assert fk.on_update == "SET NULL"

    def test_empty_target_rejected(self):
        with pytest.raises(ValidationError):
            ForeignKeyRef.parse("  ")


class TestIndexSpec:
    def test_default_names(self):
        assert IndexSpec().resolve_name("users", "email") == "idx_users_email"
        assert IndexSpec(IndexKind.UNIQUE).resolve_name("users", "email") == "uniq_users_email"
        assert IndexSpec(name="by_email").resolve_name("users", "email") == "by_email"


class TestNormalizeDefault:
    """Test default value normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            ("null", None),
            ("NULL", None),
            (True, "1"),
            (False, "0"),
            ("true", "1"),
            ("FALSE", "0"),
            (0, "0"),
            (42, "42"),
            (1.5, "1.5"),
            ("3.14", "3.14"),
            ("-7", "-7"),
            ("now", CURRENT_TIMESTAMP),
            ("now()", CURRENT_TIMESTAMP),
            ("CURRENT_TIMESTAMP", CURRENT_TIMESTAMP),
            ("active", "'active'"),
            ("'active'", "'active'"),
            ("it's", "'it''s'"),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_default(value) == expected

    def test_quote_round_trip(self):
        assert unquote_literal(quote_literal("it's")) == "it's"
