"""CQL statement generation for schema objects (types, tables, indexes, keyspaces)."""

from __future__ import annotations

from typing import Any, Mapping

from cqlops.core.codec import record_type_names
from cqlops.core.schema import TableSchema
from cqlops.core.types import ColumnType, to_identifier, to_wire_type


def render_with_option(key: str, value: Any) -> str:
    """
    Render one ``WITH`` option of a CREATE TABLE statement.

    Keys are converted to identifiers; strings are quoted, maps become
    ``{'k': 'v'}`` and lists ``[a, b]``. ``clustering_order`` takes the
    ``CLUSTERING ORDER BY (...)`` form. ``None`` renders as an empty string.
    """
    if value is None:
        return ""

    key = to_identifier(key)
    if key == "clustering_order":
        return f"CLUSTERING ORDER BY ({value})"

    if isinstance(value, bool):
        rendered = "true" if value else "false"
    elif isinstance(value, (int, float)):
        rendered = str(value)
    elif isinstance(value, str):
        rendered = f"'{value}'"
    elif isinstance(value, Mapping):
        pairs = ", ".join(
            f"'{to_identifier(str(k))}': '{_option_scalar(v)}'" for k, v in value.items()
        )
        rendered = f"{{{pairs}}}"
    elif isinstance(value, (list, tuple)):
        rendered = f"[{', '.join(str(v) for v in value)}]"
    else:
        return ""

    return f"{key} = {rendered}"


def _option_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _ordered_types(schema: TableSchema) -> list[str]:
    """Nested type names ordered so that every type follows the ones it uses."""
    ordered: list[str] = []

    def visit(name: str) -> None:
        if name in ordered:
            return
        for ctype in schema.types[name].values():
            for dependency in record_type_names(ctype):
                visit(dependency)
        ordered.append(name)

    for name in schema.types:
        visit(name)
    return ordered


def _qualify(schema: TableSchema, name: str) -> str:
    return f"{schema.keyspace}.{name}" if schema.keyspace else name


def create_type_statements(schema: TableSchema) -> list[str]:
    statements = []
    for type_name in _ordered_types(schema):
        fields: Mapping[str, ColumnType] = schema.types[type_name]
        body = ", ".join(
            f"{to_identifier(name)} {to_wire_type(ctype)}" for name, ctype in fields.items()
        )
        statements.append(
            f"CREATE TYPE IF NOT EXISTS {_qualify(schema, to_identifier(type_name))} ({body});"
        )
    return statements


def create_table_statement(schema: TableSchema) -> str:
    columns = [
        f"{to_identifier(name)} {to_wire_type(ctype)}"
        for name, ctype in schema.columns.items()
    ]
    if schema.version_column:
        columns.append(f"{schema.version_column} int")
    columns.append(f"PRIMARY KEY ({schema.primary_key.to_cql()})")

    if_not_exists = " IF NOT EXISTS" if schema.if_not_exists else ""
    statement = f"CREATE TABLE{if_not_exists} {schema.qualified_name} ({', '.join(columns)})"

    options = [
        rendered
        for rendered in (render_with_option(k, v) for k, v in schema.options.items())
        if rendered
    ]
    if options:
        statement += f" WITH {' AND '.join(options)}"
    return f"{statement};"


def create_index_statement(schema: TableSchema, name: str, column: str) -> str:
    """``column`` is the wire identifier of the indexed column."""
    return f"CREATE INDEX IF NOT EXISTS {name} ON {schema.qualified_name} ({column});"


def declared_indexes(schema: TableSchema) -> list[tuple[str, str]]:
    """(index name, wire column) for each declared index, version index excluded."""
    return [
        (schema.index_name(index), to_identifier(index.column))
        for index in schema.indexes
    ]


def create_index_statements(schema: TableSchema) -> list[str]:
    statements = [
        create_index_statement(schema, name, column)
        for name, column in declared_indexes(schema)
    ]
    if schema.version_index_name and schema.version_column:
        statements.append(
            create_index_statement(schema, schema.version_index_name, schema.version_column)
        )
    return statements


def create_statements(schema: TableSchema) -> list[str]:
    """Every statement needed to create the table from scratch, in order."""
    return [
        *create_type_statements(schema),
        create_table_statement(schema),
        *create_index_statements(schema),
    ]


def add_column_statement(schema: TableSchema, column: str, wire_type: str) -> str:
    return f"ALTER TABLE {schema.qualified_name} ADD {column} {wire_type};"


def drop_column_statement(schema: TableSchema, column: str) -> str:
    return f"ALTER TABLE {schema.qualified_name} DROP {column};"


def drop_index_statement(schema: TableSchema, name: str) -> str:
    return f"DROP INDEX IF EXISTS {_qualify(schema, name)};"


def create_keyspace_statement(
    keyspace: str,
    *,
    replication: Mapping[str, int] | None = None,
    durable_writes: bool = False,
) -> str:
    """
    Build a CREATE KEYSPACE statement.

    With a replication map (data center -> factor) NetworkTopologyStrategy is
    used, otherwise SimpleStrategy with a single replica.
    """
    if replication:
        factors = ", ".join(f"'{dc}' : {factor}" for dc, factor in replication.items())
        strategy = f"{{ 'class' : 'NetworkTopologyStrategy', {factors} }}"
    else:
        strategy = "{ 'class' : 'SimpleStrategy', 'replication_factor' : 1 }"

    durable = "true" if durable_writes else "false"
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {keyspace} WITH REPLICATION = {strategy} "
        f"AND DURABLE_WRITES = {durable};"
    )
