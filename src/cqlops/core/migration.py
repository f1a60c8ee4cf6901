"""Lazy, per-row schema migration.

Rows carry the schema version they were written at in the version column.
Whenever a read returns a row whose marker is behind the declared version, the
row is walked forward one version at a time through the table's migration
scripts and written back after every step.

Concurrent migrations of the same row are not coordinated: each writer
updates unconditionally and the last write wins.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Mapping

from cqlops.core.logging import get_logger
from cqlops.core.schema import ALWAYS_RUN, MigrationScript

if TYPE_CHECKING:
    from cqlops.core.table import Table

log = get_logger(__name__)


class RowMigrator:
    """Walks rows of one table forward to its current version."""

    def __init__(self, table: Table):
        self.table = table
        self.schema = table.schema
        self.codec = table.schema.codec

    def migrate(
        self,
        row: dict[str, Any],
        stored_version: int | None,
        filter: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Migrate ``row`` from ``stored_version`` to the current version.

        Args:
            row: Decoded row as returned by the read that found it stale.
            stored_version: Version marker of the stored row (None means 0).
            filter: The filter of that read; used to address the row.

        Returns:
            The migrated row, or the row as far as it could be migrated when a
            script is missing or the row cannot be found again.
        """
        version = stored_version or 0
        current = self.schema.current_version
        filter = dict(filter or {})
        bound = log.bind(table=self.schema.table_name)

        while version < current:
            script = self.schema.migration_scripts.get(version)
            if script is None:
                bound.warning(
                    "no migration script for version, row left behind",
                    version=version,
                    current=current,
                )
                return row

            bound.debug(
                "migrating row",
                source=version,
                target=version + 1,
                changes=script.changes,
            )
            migrated = self._step(row, version, script, filter)
            if migrated is None:
                return row
            row = migrated
            version += 1

        return row

    def _step(
        self,
        row: dict[str, Any],
        version: int,
        script: MigrationScript,
        filter: dict[str, Any],
    ) -> dict[str, Any] | None:
        always = self.schema.migration_scripts.get(ALWAYS_RUN)
        wildcard = script.wildcard or bool(always and always.wildcard)
        needed = self._needed_fields(script, always, wildcard)

        keys = self._known_keys(row, filter)
        missing_keys = [k for k in self.schema.primary_key.columns if k not in keys]
        missing_fields = [f for f in needed if f not in row]

        if missing_keys or missing_fields:
            fetched = self._fetch(filter, keys, missing_fields + missing_keys, wildcard)
            if fetched is None:
                return None
            row = {**row, **fetched}
            keys = self._known_keys(row, keys)
            if len(keys) < len(self.schema.primary_key.columns):
                return None

        migrated, changed = self._run(script, row, version, keys)
        if always is not None:
            migrated, changed_again = self._run(always, migrated, version, keys)
            changed = changed or changed_again

        if changed:
            fields = None if wildcard else needed
            self._write(migrated, keys, version + 1, fields)
        else:
            self._write_version(keys, version + 1)
        return migrated

    def _needed_fields(
        self,
        script: MigrationScript,
        always: MigrationScript | None,
        wildcard: bool,
    ) -> list[str]:
        if wildcard:
            return list(self.schema.columns)
        fields = list(script.fields)
        if always is not None:
            fields.extend(f for f in always.fields if f not in fields)
        return fields

    def _known_keys(self, row: Mapping[str, Any], filter: Mapping[str, Any]) -> dict[str, Any]:
        keys = {}
        for key in self.schema.primary_key.columns:
            if key in filter:
                keys[key] = filter[key]
            elif key in row:
                keys[key] = row[key]
        return keys

    def _run(
        self,
        script: MigrationScript,
        row: dict[str, Any],
        version: int,
        keys: Mapping[str, Any],
    ) -> tuple[dict[str, Any], bool]:
        result = script.migrate(self.table.client, copy.deepcopy(row), version)
        if result is None:
            # The script persisted the row itself; pick up what it wrote.
            reread = self._fetch({}, keys, [], wildcard=True)
            return (reread if reread is not None else row), False
        return result, result != row

    def _fetch(
        self,
        filter: Mapping[str, Any],
        keys: Mapping[str, Any],
        fields: list[str],
        wildcard: bool,
    ) -> dict[str, Any] | None:
        where = {**filter, **keys}
        if not where:
            log.bind(table=self.schema.table_name).warning(
                "cannot address the row to migrate, no filter or keys known"
            )
            return None

        if wildcard:
            selected = "*"
        else:
            selected = ", ".join(dict.fromkeys(self.codec.wire_name(f) for f in fields))
        clause, params = self.table.where_clause(where)
        allow_filtering = set(where) != set(self.schema.primary_key.columns)
        query = f"SELECT {selected} FROM {self.schema.qualified_name} WHERE {clause} LIMIT 1"
        if allow_filtering:
            query += " ALLOW FILTERING"

        rows = self.table.execute(query, params, action="fetch the row to migrate")
        if not rows:
            return None
        return self.codec.decode_row(rows[0])

    def _write(
        self,
        row: Mapping[str, Any],
        keys: Mapping[str, Any],
        version: int,
        fields: list[str] | None,
    ) -> None:
        if fields is None:
            fields = [f for f in row if f in self.schema.columns]
        fields = [f for f in fields if f not in keys]

        assignments = [f"{self.codec.wire_name(f)} = ?" for f in fields]
        params = [self.codec.encode_value(f, row.get(f)) for f in fields]
        assignments.append(f"{self.schema.version_column} = ?")
        params.append(version)
        self._update(assignments, params, keys)
        log.bind(table=self.schema.table_name).debug("row migrated", version=version)

    def _write_version(self, keys: Mapping[str, Any], version: int) -> None:
        self._update([f"{self.schema.version_column} = ?"], [version], keys)
        log.bind(table=self.schema.table_name).debug(
            "row unchanged, version advanced", version=version
        )

    def _update(self, assignments: list[str], params: list[Any], keys: Mapping[str, Any]) -> None:
        clause, key_params = self.table.where_clause(keys)
        query = (
            f"UPDATE {self.schema.qualified_name} SET {', '.join(assignments)} "
            f"WHERE {clause}"
        )
        self.table.execute(query, [*params, *key_params], action="update the migrated row")
