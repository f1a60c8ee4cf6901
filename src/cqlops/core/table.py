"""Query layer: parameterized statements for one declared table.

Every value crosses the application/wire boundary through the schema's
``RowCodec``. Reads migrate stale rows before returning them, so callers only
ever see rows shaped like the current schema.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from cqlops.core.codec import RowCodec
from cqlops.core.errors import QueryError
from cqlops.core.logging import get_logger
from cqlops.core.migration import RowMigrator
from cqlops.core.schema import TableSchema
from cqlops.core.types import parse_column_type

if TYPE_CHECKING:
    from cqlops.core.client import Client

log = get_logger(__name__)

Row = dict[str, Any]


class RowSet(Sequence):
    """Materialized result of ``Table.find``; iterable any number of times."""

    def __init__(self, rows: Iterable[Row] = ()):
        self._rows = list(rows)

    def __getitem__(self, index):
        return self._rows[index]

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"RowSet({self._rows!r})"

    def to_list(self) -> list[Row]:
        return list(self._rows)

    def first(self) -> Row | None:
        return self._rows[0] if self._rows else None


class Table:
    """Reads and writes rows of one ``TableSchema`` through a ``Client``."""

    def __init__(self, client: Client, schema: TableSchema):
        self.client = client
        self.schema = schema
        self.migrator = RowMigrator(self)

    def __repr__(self) -> str:
        return f"Table({self.schema.qualified_name})"

    # -- reads -------------------------------------------------------------

    def get(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        fields: Sequence[str] | str = "*",
        allow_filtering: bool = False,
        additional_columns: Mapping[str, Any] | None = None,
    ) -> Row | None:
        """
        Fetch a single row.

        Args:
            filter: Equality conditions, ANDed together.
            fields: Field names to return, or ``"*"`` for every column.
            allow_filtering: Append ``ALLOW FILTERING`` to the query.
            additional_columns: ``{field: type}`` for live columns that are no
                longer declared but should still be decoded.

        Returns:
            The row, or None when nothing matches.
        """
        rows = self._select(filter, fields, allow_filtering, additional_columns, limit=1)
        return rows[0] if rows else None

    def find(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        fields: Sequence[str] | str = "*",
        allow_filtering: bool = False,
        limit: int | None = None,
        additional_columns: Mapping[str, Any] | None = None,
    ) -> RowSet:
        """Fetch every matching row; see ``get`` for the arguments."""
        if limit is not None and limit < 1:
            raise ValueError(f"[{self.schema.table_name}] limit must be positive, got {limit}")
        return RowSet(
            self._select(filter, fields, allow_filtering, additional_columns, limit=limit)
        )

    # -- writes ------------------------------------------------------------

    def create(self, data: Mapping[str, Any], *, version: int | None = None) -> Row:
        """Insert a row, stamped with ``version`` (default: the current version).

        Returns the inserted data.
        """
        if not data:
            raise ValueError(f"[{self.schema.table_name}] Cannot insert an empty row")
        self._check_fields(data, "insert")

        codec = self.schema.codec
        columns = [codec.wire_name(f) for f in data]
        params = [codec.encode_value(f, v) for f, v in data.items()]

        stamp = self._version_stamp(version)
        if stamp is not None:
            columns.append(self.schema.version_column)
            params.append(stamp)

        placeholders = ", ".join("?" for _ in columns)
        query = (
            f"INSERT INTO {self.schema.qualified_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders})"
        )
        self.execute(query, params, action="insert the row")
        log.bind(table=self.schema.table_name).debug("row inserted", fields=list(data))
        return dict(data)

    insert = create

    def update(
        self,
        filter: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        version: int | None = None,
        additional_columns: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Set the ``patch`` fields on the rows matching ``filter``.

        ``additional_columns`` names live columns that are no longer declared,
        as for reads, so they can still be written or filtered on.
        """
        if not patch:
            raise ValueError(f"[{self.schema.table_name}] Cannot update with an empty patch")
        if not filter:
            raise ValueError(f"[{self.schema.table_name}] An update needs a filter")
        codec = self._codec(additional_columns)
        self._check_fields(patch, "update", codec)

        assignments = [f"{codec.wire_name(f)} = ?" for f in patch]
        params = [codec.encode_value(f, v) for f, v in patch.items()]

        if version is not None:
            stamp = self._version_stamp(version)
            assignments.append(f"{self.schema.version_column} = ?")
            params.append(stamp)

        clause, where_params = self.where_clause(filter, codec)
        query = (
            f"UPDATE {self.schema.qualified_name} SET {', '.join(assignments)} "
            f"WHERE {clause}"
        )
        self.execute(query, [*params, *where_params], action="update the row")
        log.bind(table=self.schema.table_name).debug(
            "row updated", filter=list(filter), fields=list(patch)
        )

    def delete(self, filter: Mapping[str, Any]) -> None:
        """Delete rows by primary key; only primary key fields may be used."""
        if not filter:
            raise ValueError(f"[{self.schema.table_name}] A delete needs a filter")
        keys = set(self.schema.primary_key.columns)
        extra = [f for f in filter if f not in keys]
        if extra:
            raise ValueError(
                f"[{self.schema.table_name}] Deletes can only filter on primary keys, "
                f"got {', '.join(extra)}"
            )

        clause, params = self.where_clause(filter)
        query = f"DELETE FROM {self.schema.qualified_name} WHERE {clause}"
        self.execute(query, params, action="delete the row")
        log.bind(table=self.schema.table_name).debug("row deleted", filter=list(filter))

    remove = delete

    # -- shared helpers ----------------------------------------------------

    def execute(
        self,
        query: str,
        params: Sequence[Any] = (),
        *,
        action: str = "run the query",
    ) -> list[dict[str, Any]]:
        """Run a statement; store failures become ``QueryError``."""
        self.client.ensure_connected()
        try:
            return self.client.execute(query, params)
        except Exception as exc:  # noqa: BLE001
            raise QueryError(self.schema.table_name, f"Failed to {action}: {exc}") from exc

    def where_clause(
        self,
        filter: Mapping[str, Any],
        codec: RowCodec | None = None,
    ) -> tuple[str, list[Any]]:
        codec = codec or self.schema.codec
        clause = " AND ".join(f"{codec.wire_name(f)} = ?" for f in filter)
        params = [codec.encode_value(f, v) for f, v in filter.items()]
        return clause, params

    def _select(
        self,
        filter: Mapping[str, Any] | None,
        fields: Sequence[str] | str,
        allow_filtering: bool,
        additional_columns: Mapping[str, Any] | None,
        limit: int | None,
    ) -> list[Row]:
        schema = self.schema
        filter = dict(filter or {})
        codec = self._codec(additional_columns)
        requested = self._requested_fields(fields, codec)

        if requested is None:
            selected = "*"
            if not schema.ignore_warnings:
                log.bind(table=schema.table_name).warning(
                    "fetching every column, list the fields you need instead"
                )
        else:
            columns = [codec.wire_name(f) for f in requested]
            if schema.version_column:
                # Stale rows are migrated in place, so each needs its full key.
                columns.extend(codec.wire_name(k) for k in schema.primary_key.columns)
                columns.append(schema.version_column)
            selected = ", ".join(dict.fromkeys(columns))

        query = f"SELECT {selected} FROM {schema.qualified_name}"
        params: list[Any] = []
        if filter:
            clause, params = self.where_clause(filter, codec)
            query += f" WHERE {clause}"
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        if allow_filtering:
            query += " ALLOW FILTERING"

        raw_rows = self.execute(query, params, action="fetch the data")
        return [self._finish(raw, codec, requested, filter) for raw in raw_rows]

    def _finish(
        self,
        raw: Mapping[str, Any],
        codec: RowCodec,
        requested: list[str] | None,
        filter: Mapping[str, Any],
    ) -> Row:
        schema = self.schema
        row = codec.decode_row(raw)

        if schema.versioned:
            stored = raw.get(schema.version_column) or 0
            if stored < schema.current_version:
                row = self.migrator.migrate(row, stored, filter)

        if requested is None:
            return row
        return {
            f: row[f] if f in row else codec.by_field[f].empty()
            for f in requested
        }

    def _codec(self, additional_columns: Mapping[str, Any] | None) -> RowCodec:
        if not additional_columns:
            return self.schema.codec
        extra = {
            name: parse_column_type(descriptor, self.schema.types)
            for name, descriptor in additional_columns.items()
        }
        return self.schema.codec.extend(extra)

    def _requested_fields(
        self, fields: Sequence[str] | str, codec: RowCodec
    ) -> list[str] | None:
        if fields == "*":
            return None
        if isinstance(fields, str):
            fields = [fields]
        requested = list(dict.fromkeys(f for f in fields if f != self.schema.version_field))
        if not requested:
            raise ValueError(f"[{self.schema.table_name}] No fields requested")
        unknown = [f for f in requested if f not in codec.by_field]
        if unknown:
            raise ValueError(
                f"[{self.schema.table_name}] Unknown fields requested: {', '.join(unknown)}"
            )
        return requested

    def _check_fields(
        self, data: Mapping[str, Any], action: str, codec: RowCodec | None = None
    ) -> None:
        known = (codec or self.schema.codec).by_field
        unknown = [f for f in data if f not in known]
        if unknown:
            raise ValueError(
                f"[{self.schema.table_name}] Cannot {action} undeclared fields: "
                f"{', '.join(unknown)}"
            )

    def _version_stamp(self, version: int | None) -> int | None:
        if not self.schema.versioned:
            if version is not None:
                raise ValueError(
                    f"[{self.schema.table_name}] The table is not versioned, "
                    "a version cannot be set"
                )
            return None
        return self.schema.current_version if version is None else int(version)
