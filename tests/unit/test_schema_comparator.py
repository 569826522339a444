"""
Tests for schemasync.schema.comparator module.
"""

import pytest

from schemasync.exceptions import ValidationError
from schemasync.schema.comparator import SchemaComparator, compare_columns
from schemasync.schema.types import ChangeKind, ColumnSpec, LogicalType


class TestSchemaComparator:
    """Test column set comparison."""

    def test_equal_sets_produce_no_changes(self, users_columns):
        assert compare_columns(users_columns, list(users_columns), "mysql") == []

    def test_one_extra_desired_column(self, users_columns):
        desired = users_columns + [ColumnSpec("nickname", LogicalType.STRING, length=50)]
        changes = compare_columns(users_columns, desired, "mysql")
        assert len(changes) == 1
        assert changes[0].kind is ChangeKind.ADD
        assert changes[0].column == "nickname"
        assert changes[0].after == desired[-1]
        assert changes[0].reason == "new column"

    def test_length_change_mentions_both_lengths(self):
        actual = [ColumnSpec("name", LogicalType.STRING, length=50)]
        desired = [ColumnSpec("name", LogicalType.STRING, length=100)]
        changes = compare_columns(actual, desired, "mysql")
        assert len(changes) == 1
        change = changes[0]
        assert change.kind is ChangeKind.MODIFY
        assert change.attributes == ("length",)
        assert "50" in change.reason and "100" in change.reason

    def test_drop_of_unlisted_column(self, users_columns):
        changes = compare_columns(users_columns, users_columns[:2], "postgresql")
        assert [(c.kind, c.column) for c in changes] == [(ChangeKind.DROP, "status")]
        assert changes[0].before == users_columns[2]

    def test_change_order_is_adds_drops_modifies(self):
        actual = [
            ColumnSpec("a", LogicalType.INT),
            ColumnSpec("b", LogicalType.STRING, length=10),
            ColumnSpec("gone", LogicalType.TEXT),
        ]
        desired = [
            ColumnSpec("new1", LogicalType.TEXT),
            ColumnSpec("b", LogicalType.STRING, length=20),
            ColumnSpec("a", LogicalType.BIG_INT),
            ColumnSpec("new2", LogicalType.TEXT),
        ]
        changes = compare_columns(actual, desired, "mysql")
        assert [(c.kind, c.column) for c in changes] == [
            (ChangeKind.ADD, "new1"),
            (ChangeKind.ADD, "new2"),
            (ChangeKind.DROP, "gone"),
            (ChangeKind.MODIFY, "b"),
            (ChangeKind.MODIFY, "a"),
        ]

    def test_status_scenario_reason(self):
        actual = [ColumnSpec("status", LogicalType.STRING, length=10, default_value="'active'")]
        desired = [ColumnSpec("status", LogicalType.STRING, length=20, default_value="'active'")]
        changes = compare_columns(actual, desired, "mysql")
        assert changes[0].reason == "length: 10 -> 20"

    def test_multiple_attributes_in_fixed_order(self):
        actual = [ColumnSpec("note", LogicalType.STRING, length=10, comment="old")]
        desired = [
            ColumnSpec(
                "note",
                LogicalType.STRING,
                length=20,
                not_null=True,
                default_value="'x'",
                comment="new",
            )
        ]
        change = SchemaComparator("mysql").compare(actual, desired)[0]
        assert change.attributes == ("length", "not_null", "default", "comment")
        assert change.reason == (
            "length: 10 -> 20; not_null: NULL -> NOT NULL; "
            "default: none -> 'x'; comment: old -> new"
        )

    def test_type_change_uses_native_names(self):
        actual = [ColumnSpec("n", LogicalType.INT)]
        desired = [ColumnSpec("n", LogicalType.BIG_INT)]
        change = compare_columns(actual, desired, "postgresql")[0]
        assert change.reason == "type: INTEGER -> BIGINT"

    def test_types_rendered_alike_are_equal(self):
        actual = [ColumnSpec("n", LogicalType.INT)]
        desired = [ColumnSpec("n", LogicalType.BIG_INT)]
        assert compare_columns(actual, desired, "sqlite") == []

    def test_comments_ignored_without_dialect_support(self):
        actual = [ColumnSpec("n", LogicalType.TEXT)]
        desired = [ColumnSpec("n", LogicalType.TEXT, comment="notes")]
        assert compare_columns(actual, desired, "sqlite") == []
        assert len(compare_columns(actual, desired, "postgresql")) == 1

    def test_duplicate_names_rejected(self):
        columns = [ColumnSpec("a"), ColumnSpec("a")]
        with pytest.raises(ValidationError):
            compare_columns(columns, [], "mysql")
