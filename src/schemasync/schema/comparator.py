"""
Schema comparison for schemasync.

Compares the actual columns of a live table with the desired columns and
produces the minimal, deterministic list of ColumnChange records.
"""

import logging
from typing import Callable, Dict, List, Sequence, Tuple

from .dialects import DialectStrategy, get_dialect
from .types import ChangeKind, ColumnChange, ColumnSpec, ensure_unique_names


logger = logging.getLogger(__name__)


def _text(value) -> str:
    return "none" if value is None or value == "" else str(value)


def _nullability(not_null: bool) -> str:
    return "NOT NULL" if not_null else "NULL"


class SchemaComparator:
    """Attribute-by-attribute column comparison for one dialect."""

    def __init__(self, dialect):
        self.dialect: DialectStrategy = get_dialect(dialect)

    def compare(
        self,
        actual: Sequence[ColumnSpec],
        desired: Sequence[ColumnSpec],
    ) -> List[ColumnChange]:
        """
        Compute the changes that turn ``actual`` into ``desired``.

        Adds come first in desired order, then drops in actual order, then
        modifies in desired order.
        """
        ensure_unique_names(actual)
        ensure_unique_names(desired)
        actual_by_name: Dict[str, ColumnSpec] = {c.name: c for c in actual}
        desired_by_name: Dict[str, ColumnSpec] = {c.name: c for c in desired}

        adds = [
            ColumnChange(column=c.name, kind=ChangeKind.ADD, after=c, reason="new column")
            for c in desired
            if c.name not in actual_by_name
        ]
        drops = [
            ColumnChange(
                column=c.name, kind=ChangeKind.DROP, before=c, reason="column not in model"
            )
            for c in actual
            if c.name not in desired_by_name
        ]
        modifies = []
        for column in desired:
            current = actual_by_name.get(column.name)
            if current is None:
                continue
            differences = self.diff_column(current, column)
            if differences:
                modifies.append(
                    ColumnChange(
                        column=column.name,
                        kind=ChangeKind.MODIFY,
                        before=current,
                        after=column,
                        attributes=tuple(name for name, _ in differences),
                        reason="; ".join(text for _, text in differences),
                    )
                )

        changes = adds + drops + modifies
        if changes:
            logger.debug(
                f"Compared {len(actual)} live and {len(desired)} desired columns: "
                f"{len(adds)} add, {len(drops)} drop, {len(modifies)} modify"
            )
        return changes

    def diff_column(
        self, before: ColumnSpec, after: ColumnSpec
    ) -> List[Tuple[str, str]]:
        """Differing attributes as ``(name, "name: before -> after")`` pairs, in fixed order."""
        dialect = self.dialect
        differences: List[Tuple[str, str]] = []

        def check(name: str, old, new, render: Callable = _text) -> None:
            if old != new:
                differences.append((name, f"{name}: {render(old)} -> {render(new)}"))

        type_equal = dialect.types_equal(before.logical_type, after.logical_type)
        if not type_equal:
            differences.append(
                (
                    "type",
                    f"type: {dialect.type_name(before.logical_type)} -> "
                    f"{dialect.type_name(after.logical_type)}",
                )
            )
        if type_equal and dialect.renders_length(after.logical_type):
            check("length", before.length, after.length)
        if type_equal and dialect.renders_precision(after.logical_type):
            check("precision", before.precision, after.precision)
            check("scale", before.scale, after.scale)
        check("not_null", before.not_null, after.not_null, _nullability)
        if not dialect.defaults_equal(before.default_value, after.default_value):
            differences.append(
                (
                    "default",
                    f"default: {_text(before.default_value)} -> {_text(after.default_value)}",
                )
            )
        if dialect.supports_comments:
            check("comment", before.comment or "", after.comment or "")
        return differences


def compare_columns(
    actual: Sequence[ColumnSpec],
    desired: Sequence[ColumnSpec],
    dialect,
) -> List[ColumnChange]:
    """Compare live columns with desired columns for the given dialect."""
    return SchemaComparator(dialect).compare(actual, desired)
