"""Declarative table schemas.

A ``TableSchema`` is built once at process start, validated on construction
and never mutated afterwards. Construction is where every configuration error
surfaces: bad identifiers, unknown column types, primary keys that cover the
whole table or reserved version numbers.

Example:

    users = TableSchema(
        name="users",
        columns={"userId": str, "flags": int, "roles": [str]},
        primary_keys=["userId"],
        version=1,
        migration_scripts={
            0: MigrationScript(fields="*", migrate=add_default_flags),
        },
    )
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping, Sequence

from cqlops.core.codec import RowCodec
from cqlops.core.errors import ConfigurationError
from cqlops.core.logging import get_logger
from cqlops.core.types import (
    IDENTIFIER_RE,
    RESERVED_NAMES,
    ColumnType,
    NamingMode,
    from_identifier,
    parse_column_type,
    to_identifier,
)

log = get_logger(__name__)

DEFAULT_VERSION_COLUMN = "int_tbl_ver"

# Script keys with a special meaning; neither can be a table's current version.
UNVERSIONED = 0
ALWAYS_RUN = -1

# More indexes than this share of the columns only triggers a warning.
INDEX_RATIO_WARNING = 0.75

MigrateFn = Callable[[Any, dict, int], "dict | None"]


@dataclass(frozen=True)
class PrimaryKey:
    """Primary key split into its partition group and clustering columns."""

    partition: tuple[str, ...]
    clustering: tuple[str, ...] = ()

    @classmethod
    def from_spec(cls, spec: Sequence[Any]) -> PrimaryKey:
        """
        Build a primary key from its declaration.

        ``["a", "b"]`` is partition ``a`` with clustering ``b``;
        ``[("a", "b"), "c"]`` is the composite partition ``(a, b)`` with
        clustering ``c``.
        """
        if isinstance(spec, str):
            spec = [spec]
        if not spec:
            raise ConfigurationError("Primary keys are required")
        head, *rest = spec
        partition = tuple(head) if isinstance(head, (list, tuple)) else (head,)
        for key in rest:
            if isinstance(key, (list, tuple)):
                raise ConfigurationError(
                    "Only the first primary key entry may be a composite partition key"
                )
        return cls(partition=partition, clustering=tuple(rest))

    @property
    def columns(self) -> tuple[str, ...]:
        return self.partition + self.clustering

    def to_identifiers(self) -> PrimaryKey:
        return PrimaryKey(
            partition=tuple(to_identifier(k) for k in self.partition),
            clustering=tuple(to_identifier(k) for k in self.clustering),
        )

    def to_cql(self) -> str:
        keys = self.to_identifiers()
        if len(keys.partition) == 1:
            head = keys.partition[0]
        else:
            head = f"({', '.join(keys.partition)})"
        return ", ".join((head, *keys.clustering))


@dataclass(frozen=True)
class IndexSpec:
    """A secondary index on one column; ``name`` defaults to ``<table>_inx_<column>``."""

    column: str
    name: str | None = None


@dataclass(frozen=True)
class MigrationScript:
    """
    Moves a row from one version to the next.

    Attributes:
        migrate: ``(handle, row, source_version) -> row | None``. The row is a
            deep copy; returning ``None`` means the script persisted the row
            itself and only the version marker has to move.
        fields: The fields the script reads and writes, or ``"*"`` for all.
        changes: Free-form description used in log messages.
    """

    migrate: MigrateFn
    fields: tuple[str, ...] | Literal["*"] = "*"
    changes: str | None = None

    def __post_init__(self) -> None:
        if self.fields != "*":
            if isinstance(self.fields, str):
                object.__setattr__(self, "fields", (self.fields,))
            else:
                object.__setattr__(self, "fields", tuple(self.fields))

    @property
    def wildcard(self) -> bool:
        return self.fields == "*"


@dataclass(frozen=True)
class MigrationSettings:
    """
    Background migration settings.

    Reserved: rows are only migrated on the read path, nothing schedules a
    sweep from these values yet.
    """

    at_a_time: int = 250
    max_version: int | None = None
    set_times: tuple[tuple[str, str], ...] = ()
    should_slowly_migrate: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Declared shape of one table, its indexes and its row migrations."""

    name: str
    columns: Mapping[str, Any]
    primary_keys: Sequence[Any]
    indexes: Sequence[Any] = ()
    version: int | tuple[str, int] | None = None
    migration_scripts: Mapping[int, Any] = field(default_factory=dict)
    mode: NamingMode | str = NamingMode.CAMEL
    types: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    options: Mapping[str, Any] = field(default_factory=dict)
    keyspace: str | None = None
    if_not_exists: bool = False
    ignore_missing_columns: bool = False
    ignore_warnings: bool = False
    migration: MigrationSettings = field(default_factory=MigrationSettings)

    primary_key: PrimaryKey = field(init=False, repr=False, compare=False)
    codec: RowCodec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        set_ = object.__setattr__

        set_(self, "mode", self._check_mode(self.mode))
        self._check_name()

        if not self.columns:
            raise ConfigurationError(f"[{self.name}] Columns are required")

        types = self._parse_types()
        columns = self._parse_columns(types)
        set_(self, "types", MappingProxyType(types))
        set_(self, "columns", MappingProxyType(columns))

        primary_key = PrimaryKey.from_spec(self.primary_keys)
        set_(self, "primary_key", primary_key)
        self._check_primary_key()

        set_(self, "indexes", tuple(self._parse_indexes()))
        self._check_version()
        set_(self, "migration_scripts", MappingProxyType(self._parse_scripts()))
        set_(self, "options", MappingProxyType(dict(self.options)))

        set_(self, "codec", RowCodec(columns, types))

    # -- derived names -----------------------------------------------------

    @property
    def table_name(self) -> str:
        return to_identifier(self.name)

    @property
    def qualified_name(self) -> str:
        if self.keyspace:
            return f"{self.keyspace}.{self.table_name}"
        return self.table_name

    @property
    def versioned(self) -> bool:
        return self.version is not None

    @property
    def current_version(self) -> int:
        """Declared version, 0 when the table is unversioned."""
        if self.version is None:
            return 0
        if isinstance(self.version, (list, tuple)):
            return int(self.version[1])
        return int(self.version)

    @property
    def version_field(self) -> str | None:
        if self.version is None:
            return None
        if isinstance(self.version, (list, tuple)):
            return self.version[0]
        return DEFAULT_VERSION_COLUMN

    @property
    def version_column(self) -> str | None:
        field_name = self.version_field
        return to_identifier(field_name) if field_name else None

    @property
    def version_index_name(self) -> str | None:
        if not self.version_column:
            return None
        return f"{self.table_name}_inx_{self.version_column}"

    def index_name(self, index: IndexSpec) -> str:
        return index.name or f"{self.table_name}_inx_{to_identifier(index.column)}"

    def is_list_column(self, field_name: str) -> bool:
        return self.codec.is_list(field_name)

    # -- validation --------------------------------------------------------

    @staticmethod
    def _check_mode(mode: NamingMode | str) -> NamingMode:
        try:
            return NamingMode(mode)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown naming mode: {mode!r}") from exc

    def _check_name(self) -> None:
        if not self.name:
            raise ConfigurationError("Table name is required")
        if not IDENTIFIER_RE.match(self.name):
            raise ConfigurationError(
                f"The table name {self.name} is invalid, it must match {IDENTIFIER_RE.pattern}"
            )
        if _is_reserved(self.name):
            raise ConfigurationError(
                f"The table name {self.name} is a reserved keyword, "
                f"consider {self.name}s or {self.name}_ instead"
            )
        if self.keyspace is not None and not IDENTIFIER_RE.match(self.keyspace):
            raise ConfigurationError(f"The keyspace name {self.keyspace} is invalid")

    def _parse_types(self) -> dict[str, dict[str, ColumnType]]:
        names = list(self.types)
        parsed: dict[str, dict[str, ColumnType]] = {}
        for type_name, fields in self.types.items():
            if not IDENTIFIER_RE.match(type_name):
                raise ConfigurationError(f"The type name {type_name} is invalid")
            if not fields:
                raise ConfigurationError(f"The type {type_name} declares no fields")
            parsed[type_name] = {}
            for field_name, descriptor in fields.items():
                if not IDENTIFIER_RE.match(field_name):
                    raise ConfigurationError(
                        f"The field name {type_name}.{field_name} is invalid"
                    )
                parsed[type_name][field_name] = parse_column_type(descriptor, names)
        return parsed

    def _parse_columns(self, types: Mapping[str, Any]) -> dict[str, ColumnType]:
        columns: dict[str, ColumnType] = {}
        for column, descriptor in self.columns.items():
            if not IDENTIFIER_RE.match(column):
                raise ConfigurationError(
                    f"The column name {column} is invalid, it must match {IDENTIFIER_RE.pattern}"
                )
            if _is_reserved(column) and not self.ignore_warnings:
                log.bind(table=self.name).warning(
                    "reserved column name, suffixing it with an underscore",
                    column=column,
                )
            elif not self.ignore_warnings and not _round_trips(column, self.mode):
                log.bind(table=self.name).warning(
                    "column name does not survive the identifier round trip",
                    column=column,
                    identifier=to_identifier(column),
                    mode=self.mode.value,
                )
            try:
                columns[column] = parse_column_type(descriptor, types)
            except ConfigurationError as exc:
                raise ConfigurationError(f"[{self.name}] column {column}: {exc}") from exc

        wire_names = [to_identifier(c) for c in columns]
        if len(set(wire_names)) != len(wire_names):
            raise ConfigurationError(
                f"[{self.name}] Two columns map to the same identifier: {wire_names}"
            )
        return columns

    def _check_primary_key(self) -> None:
        keys = self.primary_key.columns
        for key in keys:
            if key not in self.columns:
                raise ConfigurationError(
                    f"[{self.name}] Primary key {key} is not a declared column"
                )
        if len(set(keys)) != len(keys):
            raise ConfigurationError(f"[{self.name}] Primary keys contain duplicates")
        if len(keys) >= len(self.columns):
            raise ConfigurationError(
                f"[{self.name}] All columns are primary keys, this is not allowed, "
                "please have the minimal amount of primary keys"
            )

    def _parse_indexes(self) -> list[IndexSpec]:
        parsed: list[IndexSpec] = []
        for index in self.indexes:
            if isinstance(index, IndexSpec):
                spec = index
            elif isinstance(index, str):
                spec = IndexSpec(column=index)
            elif isinstance(index, (list, tuple)) and len(index) == 2:
                spec = IndexSpec(column=index[1], name=index[0])
            else:
                raise ConfigurationError(f"[{self.name}] Invalid index: {index!r}")

            if spec.column not in self.columns:
                raise ConfigurationError(
                    f"[{self.name}] Index target {spec.column} is not a declared column"
                )
            if spec.name is not None and not IDENTIFIER_RE.match(spec.name):
                raise ConfigurationError(f"[{self.name}] Invalid index name {spec.name}")
            parsed.append(spec)

        limit = math.floor(len(self.columns) * INDEX_RATIO_WARNING)
        if len(parsed) > limit and not self.ignore_warnings:
            log.bind(table=self.name).warning(
                "more than 75% of the columns are indexed, keep indexes to a minimum",
                indexes=len(parsed),
                columns=len(self.columns),
            )
        return parsed

    def _check_version(self) -> None:
        if self.version is None:
            return
        if isinstance(self.version, (list, tuple)):
            if len(self.version) != 2 or not IDENTIFIER_RE.match(str(self.version[0])):
                raise ConfigurationError(
                    f"[{self.name}] A custom version must be (column_name, version)"
                )
        version = self.current_version
        if version in (UNVERSIONED, ALWAYS_RUN):
            raise ConfigurationError(
                f"[{self.name}] Version {version} is used internally by migration "
                "scripts, please use a version of 1 or higher"
            )
        if version < 1:
            raise ConfigurationError(
                f"[{self.name}] Version must be 1 or higher, got {version}"
            )
        if self.version_column in {to_identifier(c) for c in self.columns}:
            raise ConfigurationError(
                f"[{self.name}] The version column {self.version_column} collides "
                "with a declared column"
            )

    def _parse_scripts(self) -> dict[int, MigrationScript]:
        scripts: dict[int, MigrationScript] = {}
        for key, script in self.migration_scripts.items():
            try:
                version = int(key)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"[{self.name}] Migration script key {key!r} is not a version"
                ) from exc
            if version < ALWAYS_RUN:
                raise ConfigurationError(
                    f"[{self.name}] Migration script key {version} is not a version"
                )
            if isinstance(script, Mapping):
                script = MigrationScript(
                    migrate=script["migrate"],
                    fields=script.get("fields", "*"),
                    changes=script.get("changes"),
                )
            if not isinstance(script, MigrationScript) or not callable(script.migrate):
                raise ConfigurationError(
                    f"[{self.name}] Migration script {version} has no migrate function"
                )
            if not script.wildcard:
                for name in script.fields:
                    if name not in self.columns:
                        raise ConfigurationError(
                            f"[{self.name}] Migration script {version} lists "
                            f"unknown field {name}"
                        )
            scripts[version] = script

        if scripts and not self.versioned:
            raise ConfigurationError(
                f"[{self.name}] Migration scripts need a table version"
            )
        return scripts


def _is_reserved(name: str) -> bool:
    wire = to_identifier(name)
    return wire.endswith("_") and wire[:-1] in RESERVED_NAMES


def _round_trips(name: str, mode: NamingMode) -> bool:
    return from_identifier(to_identifier(name), mode) == name
