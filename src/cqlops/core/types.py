"""Column types and identifier conversion.

Column types are a closed set of immutable variants:

    Primitive(kind) | ListOf(element) | Frozen(inner) | Named(name)

Declarations may use friendlier descriptors (Python types, one-element lists,
string tokens such as ``"list<frozen<int>>"``); ``parse_column_type`` turns
them into variants once, when the schema is built, so nothing downstream has
to inspect descriptors at query time.

Identifiers cross the application/wire boundary through ``to_identifier`` and
``from_identifier``, which are inverses of each other for every valid field
name of a naming mode.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from cqlops.core.errors import ConfigurationError

IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")

_BOUNDARY_RE = re.compile(r"([a-z\d])([A-Z])")

RESERVED_NAMES = frozenset(
    {
        "partition_key",
        "cluster_key",
        "key",
        "column1",
        "value",
        "writetime",
        "ttl",
        "add",
        "all",
        "allow",
        "alter",
        "and",
        "apply",
        "asc",
        "authorize",
        "batch",
        "begin",
        "by",
        "columnfamily",
        "create",
        "delete",
        "desc",
        "drop",
        "from",
        "grant",
        "in",
        "index",
        "insert",
        "into",
        "keyspace",
        "limit",
        "modify",
        "of",
        "on",
        "order",
        "primary",
        "rename",
        "revoke",
        "schema",
        "select",
        "set",
        "table",
        "to",
        "token",
        "truncate",
        "update",
        "use",
        "using",
        "where",
        "with",
    }
)


class NamingMode(str, Enum):
    """Case convention of application-level field names."""

    CAMEL = "camelCase"
    PASCAL = "PascalCase"
    SNAKE = "snake_case"


class PrimitiveKind(str, Enum):
    """Scalar column kinds; the value is the wire type token."""

    BIGINT = "bigint"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    NUMBER = "int"
    STRING = "text"


@dataclass(frozen=True)
class Primitive:
    kind: PrimitiveKind


@dataclass(frozen=True)
class ListOf:
    element: "ColumnType"


@dataclass(frozen=True)
class Frozen:
    inner: "ColumnType"


@dataclass(frozen=True)
class Named:
    """Reference to a nested (user defined) type declared on the schema."""

    name: str


ColumnType = Primitive | ListOf | Frozen | Named

BIGINT = Primitive(PrimitiveKind.BIGINT)
BOOLEAN = Primitive(PrimitiveKind.BOOLEAN)
TIMESTAMP = Primitive(PrimitiveKind.TIMESTAMP)
NUMBER = Primitive(PrimitiveKind.NUMBER)
STRING = Primitive(PrimitiveKind.STRING)

_TOKENS = {
    "bigint": BIGINT,
    "boolean": BOOLEAN,
    "date": TIMESTAMP,
    "timestamp": TIMESTAMP,
    "int": NUMBER,
    "number": NUMBER,
    "string": STRING,
    "text": STRING,
}

# bool is checked before int: bool is a subclass of int.
_PYTHON_TYPES: tuple[tuple[type, Primitive], ...] = (
    (bool, BOOLEAN),
    (int, NUMBER),
    (str, STRING),
    (datetime, TIMESTAMP),
)


def to_identifier(name: str) -> str:
    """Convert an application field name into a wire identifier.

    ``userId`` -> ``user_id``, ``Key`` -> ``key_`` (reserved keyword).
    """
    snake = _BOUNDARY_RE.sub(r"\1_\2", name).lower()
    if snake in RESERVED_NAMES:
        return f"{snake}_"
    return snake


def from_identifier(identifier: str, mode: NamingMode | str = NamingMode.CAMEL) -> str:
    """Convert a wire identifier back into an application field name."""
    mode = NamingMode(mode)
    name = identifier
    if name.endswith("_") and name[:-1] in RESERVED_NAMES:
        name = name[:-1]

    if mode is NamingMode.SNAKE:
        return name

    parts = name.split("_")
    if mode is NamingMode.PASCAL:
        return "".join(part[:1].upper() + part[1:] for part in parts)
    return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


def to_wire_type(ctype: ColumnType) -> str:
    """Render a column type as its CQL type name."""
    if isinstance(ctype, Primitive):
        return ctype.kind.value
    if isinstance(ctype, ListOf):
        return f"list<{to_wire_type(ctype.element)}>"
    if isinstance(ctype, Frozen):
        return f"frozen<{to_wire_type(ctype.inner)}>"
    if isinstance(ctype, Named):
        return to_identifier(ctype.name)
    raise ConfigurationError(f"Unsupported column type: {ctype!r}")


def is_list_type(ctype: ColumnType) -> bool:
    """Return True if values of this type come back from the store as lists."""
    if isinstance(ctype, Frozen):
        return is_list_type(ctype.inner)
    return isinstance(ctype, ListOf)


def parse_column_type(descriptor: Any, type_names: Iterable[str] = ()) -> ColumnType:
    """
    Turn a column type descriptor into a ColumnType.

    Args:
        descriptor: A ColumnType, a Python type (str, int, bool, datetime),
            a one-element list (``[str]``) or a string token such as
            ``"string"``, ``"BigInt"``, ``"list<frozen<int>>"`` or the name
            of a nested type.
        type_names: Names of the nested types declared on the schema.

    Raises:
        ConfigurationError: If the descriptor is not understood or references
            an undeclared nested type.
    """
    names = set(type_names)

    if isinstance(descriptor, (Primitive, ListOf, Frozen, Named)):
        _check_named(descriptor, names)
        return descriptor

    if isinstance(descriptor, type):
        for py_type, ctype in _PYTHON_TYPES:
            if issubclass(descriptor, py_type):
                return ctype
        raise ConfigurationError(f"Unsupported column type: {descriptor.__name__}")

    if isinstance(descriptor, (list, tuple)):
        if len(descriptor) != 1:
            raise ConfigurationError(
                f"List type descriptors take exactly one element type, got {descriptor!r}"
            )
        return ListOf(parse_column_type(descriptor[0], names))

    if isinstance(descriptor, str):
        return _parse_token(descriptor.strip(), names)

    raise ConfigurationError(f"Unsupported column type descriptor: {descriptor!r}")


def _parse_token(token: str, names: set[str]) -> ColumnType:
    lowered = token.lower()
    for prefix, wrap in (("list<", ListOf), ("frozen<", Frozen)):
        if lowered.startswith(prefix):
            if not token.endswith(">"):
                raise ConfigurationError(f"Malformed column type: {token!r}")
            return wrap(_parse_token(token[len(prefix) : -1].strip(), names))

    if lowered in _TOKENS:
        return _TOKENS[lowered]

    if token in names:
        return Named(token)

    raise ConfigurationError(f"Unknown column type: {token!r}")


def _check_named(ctype: ColumnType, names: set[str]) -> None:
    if isinstance(ctype, ListOf):
        _check_named(ctype.element, names)
    elif isinstance(ctype, Frozen):
        _check_named(ctype.inner, names)
    elif isinstance(ctype, Named) and ctype.name not in names:
        raise ConfigurationError(f"Unknown nested type: {ctype.name!r}")
