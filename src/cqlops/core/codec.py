"""Conversion between wire rows and application rows.

A ``RowCodec`` is built once per schema. For every column it precomputes the
wire identifier and a pair of decode/encode callables derived from the column
type, so reading a row is a dictionary lookup per column instead of a walk
over the declared types.

Decoding rules:
  - wire identifiers become application field names,
  - bigint values become Python ints,
  - nested records become dicts keyed by application field names,
  - a list the store returns as null becomes ``[]``, at any depth.

Encoding mirrors this; nested records are sent as tuples ordered like the
type declaration, which is what the driver serializes for user defined types.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from cqlops.core.errors import ConfigurationError
from cqlops.core.types import (
    ColumnType,
    Frozen,
    ListOf,
    Named,
    Primitive,
    PrimitiveKind,
    is_list_type,
    to_identifier,
)

Converter = Callable[[Any], Any]


@dataclass(frozen=True)
class ColumnCodec:
    """Precomputed conversion for one column (or one nested record field)."""

    field: str
    wire: str
    ctype: ColumnType
    decode: Converter
    encode: Converter

    @property
    def is_list(self) -> bool:
        return is_list_type(self.ctype)

    def empty(self) -> Any:
        """Value used when the column is requested but absent."""
        return [] if self.is_list else None


def _identity(value: Any) -> Any:
    return value


def _to_int(value: Any) -> Any:
    return None if value is None else int(value)


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    if hasattr(value, "_asdict"):
        return value._asdict()
    return vars(value)


class RowCodec:
    """Column conversion table for one schema."""

    def __init__(
        self,
        columns: Mapping[str, ColumnType],
        types: Mapping[str, Mapping[str, ColumnType]] | None = None,
    ):
        self._types = dict(types or {})
        self._records: dict[str, tuple[ColumnCodec, ...]] = {}
        self._building: set[str] = set()

        for type_name in self._types:
            self._record(type_name)

        self.by_field: dict[str, ColumnCodec] = {
            name: self._column(name, ctype) for name, ctype in columns.items()
        }
        self.by_wire: dict[str, ColumnCodec] = {
            col.wire: col for col in self.by_field.values()
        }

    def extend(self, extra: Mapping[str, ColumnType]) -> RowCodec:
        """Return a codec that also knows about ``extra`` columns."""
        if not extra:
            return self
        other = copy.copy(self)
        other.by_field = dict(self.by_field)
        for name, ctype in extra.items():
            other.by_field[name] = self._column(name, ctype)
        other.by_wire = {col.wire: col for col in other.by_field.values()}
        return other

    def wire_name(self, field: str) -> str:
        col = self.by_field.get(field)
        return col.wire if col else to_identifier(field)

    def is_list(self, field: str) -> bool:
        col = self.by_field.get(field)
        return bool(col and col.is_list)

    def decode_row(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Decode a wire row, dropping columns this codec does not know."""
        row: dict[str, Any] = {}
        for wire, value in raw.items():
            col = self.by_wire.get(wire)
            if col is None:
                continue
            row[col.field] = col.decode(value)
        return row

    def encode_value(self, field: str, value: Any) -> Any:
        col = self.by_field.get(field)
        if col is None:
            return value
        return col.encode(value)

    def _column(self, name: str, ctype: ColumnType) -> ColumnCodec:
        return ColumnCodec(
            field=name,
            wire=to_identifier(name),
            ctype=ctype,
            decode=self._decoder(ctype),
            encode=self._encoder(ctype),
        )

    def _record(self, type_name: str) -> tuple[ColumnCodec, ...]:
        if type_name in self._records:
            return self._records[type_name]
        if type_name not in self._types:
            raise ConfigurationError(f"Unknown nested type: {type_name!r}")
        if type_name in self._building:
            raise ConfigurationError(f"Nested type {type_name!r} references itself")

        self._building.add(type_name)
        try:
            fields = tuple(
                self._column(name, ctype)
                for name, ctype in self._types[type_name].items()
            )
        finally:
            self._building.discard(type_name)
        self._records[type_name] = fields
        return fields

    def _decoder(self, ctype: ColumnType) -> Converter:
        if isinstance(ctype, Primitive):
            return _to_int if ctype.kind is PrimitiveKind.BIGINT else _identity

        if isinstance(ctype, Frozen):
            return self._decoder(ctype.inner)

        if isinstance(ctype, ListOf):
            element = self._decoder(ctype.element)

            def decode_list(value: Any) -> list[Any]:
                if not value:
                    return []
                return [element(v) for v in value]

            return decode_list

        fields = self._record(ctype.name)

        def decode_record(value: Any) -> dict[str, Any] | None:
            if value is None:
                return None
            raw = _as_mapping(value)
            return {f.field: f.decode(raw.get(f.wire)) for f in fields}

        return decode_record

    def _encoder(self, ctype: ColumnType) -> Converter:
        if isinstance(ctype, Primitive):
            return _to_int if ctype.kind is PrimitiveKind.BIGINT else _identity

        if isinstance(ctype, Frozen):
            return self._encoder(ctype.inner)

        if isinstance(ctype, ListOf):
            element = self._encoder(ctype.element)

            def encode_list(value: Any) -> list[Any] | None:
                if value is None:
                    return None
                return [element(v) for v in value]

            return encode_list

        fields = self._record(ctype.name)

        def encode_record(value: Any) -> Any:
            if not isinstance(value, Mapping):
                return value
            return tuple(
                f.encode(value[f.field] if f.field in value else value.get(f.wire))
                for f in fields
            )

        return encode_record


def record_type_names(ctype: ColumnType) -> list[str]:
    """Nested type names referenced by a column type, outermost first."""
    if isinstance(ctype, Named):
        return [ctype.name]
    if isinstance(ctype, ListOf):
        return record_type_names(ctype.element)
    if isinstance(ctype, Frozen):
        return record_type_names(ctype.inner)
    return []
