"""Live table metadata as read from ``system_schema``.

These models describe what exists on the cluster right now. They are built
fresh for every reconciliation pass and are free of driver types.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from cqlops.core.schema import PrimaryKey

PARTITION_KEY = "partition_key"
CLUSTERING = "clustering"
REGULAR = "regular"

_TARGET_RE = re.compile(r"^(?:keys|values|entries|full)\((.+)\)$")


@dataclass(frozen=True)
class LiveColumn:
    """A column of a live table."""

    name: str
    kind: str
    position: int
    type: str
    clustering_order: str | None = None


@dataclass(frozen=True)
class LiveIndex:
    """A secondary index of a live table."""

    name: str
    target: str
    kind: str | None = None


@dataclass(frozen=True)
class LiveSchemaSnapshot:
    """What the cluster currently knows about one table."""

    table: str
    exists: bool
    columns: tuple[LiveColumn, ...] = ()
    indexes: tuple[LiveIndex, ...] = ()

    def column(self, name: str) -> LiveColumn | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    def index_on(self, column: str) -> LiveIndex | None:
        for index in self.indexes:
            if index.target == column:
                return index
        return None

    def primary_key(self) -> PrimaryKey:
        """Partition group and clustering columns, each ordered by position."""
        partition = sorted(
            (c for c in self.columns if c.kind == PARTITION_KEY), key=lambda c: c.position
        )
        clustering = sorted(
            (c for c in self.columns if c.kind == CLUSTERING), key=lambda c: c.position
        )
        return PrimaryKey(
            partition=tuple(c.name for c in partition),
            clustering=tuple(c.name for c in clustering),
        )


def normalize_index_target(raw: str | None) -> str:
    """
    Reduce an index target option to the bare column name.

    ``"\\"userId\\""`` -> ``userId``, ``values(roles)`` -> ``roles``.
    """
    target = (raw or "").strip()
    match = _TARGET_RE.match(target)
    if match:
        target = match.group(1).strip()
    if len(target) >= 2 and target[0] == target[-1] == '"':
        target = target[1:-1].replace('""', '"')
    return target


def build_snapshot(
    table: str,
    table_rows: Iterable[Mapping[str, Any]],
    column_rows: Iterable[Mapping[str, Any]],
    index_rows: Iterable[Mapping[str, Any]],
) -> LiveSchemaSnapshot:
    """Build a snapshot from rows of system_schema.tables/columns/indexes."""
    if not list(table_rows):
        return LiveSchemaSnapshot(table=table, exists=False)

    columns = tuple(
        LiveColumn(
            name=row["column_name"],
            kind=row.get("kind") or REGULAR,
            position=int(row.get("position") or 0),
            type=row.get("type") or "",
            clustering_order=row.get("clustering_order"),
        )
        for row in column_rows
    )
    indexes = tuple(
        LiveIndex(
            name=row["index_name"],
            target=normalize_index_target((row.get("options") or {}).get("target")),
            kind=row.get("kind"),
        )
        for row in index_rows
    )
    return LiveSchemaSnapshot(table=table, exists=True, columns=columns, indexes=indexes)
