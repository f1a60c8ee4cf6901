"""Reconcile a declared table schema with the live cluster schema.

Reconciliation runs once per table when the client connects. Non-destructive
corrections (missing types, tables, columns and indexes) are applied
unconditionally; anything that drops data is only done after the
``ConfirmationSink`` agrees. A primary key that differs from the declaration
is always fatal: moving data to a new key layout is left to the operator.

The module is free of prompt/UI concerns; the CLI supplies an interactive
sink, automation supplies one of the policies below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from cqlops.core import ddl
from cqlops.core.errors import ReconciliationError
from cqlops.core.live import LiveSchemaSnapshot
from cqlops.core.logging import get_logger
from cqlops.core.schema import TableSchema
from cqlops.core.types import to_identifier, to_wire_type

log = get_logger(__name__)


class ConfirmationSink(Protocol):
    """Decides whether a destructive schema change may go ahead."""

    def confirm(self, message: str) -> bool:
        """Return True to apply the change described by ``message``."""
        ...


class MetadataAdapter(Protocol):
    """Store operations the reconciler needs."""

    def execute(self, query: str, params: list | tuple = ()) -> list[dict]:
        ...

    def table_snapshot(self, keyspace: str, table: str) -> LiveSchemaSnapshot:
        ...


class AlwaysConfirm:
    """Accept every destructive change (automated deployments)."""

    def confirm(self, message: str) -> bool:
        return True


class NeverConfirm:
    """Decline every destructive change; drift is logged and left in place."""

    def confirm(self, message: str) -> bool:
        return False


class FailFastConfirm:
    """Treat any destructive change as an error."""

    def confirm(self, message: str) -> bool:
        raise ReconciliationError(
            None, f"Refusing a destructive change without an operator: {message}"
        )


@dataclass(frozen=True)
class ReconcileAction:
    """One statement the reconciler ran, skipped or planned."""

    statement: str
    description: str
    destructive: bool = False
    applied: bool = False


@dataclass
class ReconcileResult:
    """Outcome of reconciling one table."""

    table: str
    created: bool = False
    dry_run: bool = False
    actions: list[ReconcileAction] = field(default_factory=list)
    declined: list[ReconcileAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(a.applied for a in self.actions)


class _Run:
    """State of a single reconciliation pass."""

    def __init__(
        self,
        adapter: MetadataAdapter,
        schema: TableSchema,
        confirm: ConfirmationSink,
        dry_run: bool,
    ):
        self.adapter = adapter
        self.schema = schema
        self.confirm = confirm
        self.dry_run = dry_run
        self.result = ReconcileResult(table=schema.table_name, dry_run=dry_run)
        self.log = log.bind(table=schema.table_name)

    def apply(self, statement: str, description: str) -> bool:
        """Run a non-destructive statement (or plan it in dry-run mode)."""
        if self.dry_run:
            self.result.actions.append(ReconcileAction(statement, description))
            return True
        self._execute(statement, description)
        self.result.actions.append(ReconcileAction(statement, description, applied=True))
        self.log.info(description)
        return True

    def offer(self, statement: str, description: str, question: str) -> bool:
        """Run a statement only if the confirmation sink agrees."""
        action = ReconcileAction(statement, description, destructive=True)
        if self.dry_run:
            self.result.actions.append(action)
            return False
        if not self.confirm.confirm(question):
            self.result.declined.append(action)
            self.log.warning("declined", change=description)
            return False
        self._execute(statement, description)
        self.result.actions.append(
            ReconcileAction(statement, description, destructive=True, applied=True)
        )
        self.log.info(description)
        return True

    def warn(self, message: str, **details: object) -> None:
        self.result.warnings.append(message)
        self.log.warning(message, **details)

    def _execute(self, statement: str, description: str) -> None:
        try:
            self.adapter.execute(statement)
        except Exception as exc:  # noqa: BLE001
            raise ReconciliationError(
                self.schema.table_name, f"Failed to {description}: {exc}"
            ) from exc


def reconcile_table(
    adapter: MetadataAdapter,
    schema: TableSchema,
    *,
    keyspace: str,
    confirm: ConfirmationSink,
    dry_run: bool = False,
) -> ReconcileResult:
    """
    Bring the live table in line with its declaration.

    Steps:
      1) table missing -> create nested types, the table and all indexes
      2) compare primary keys (fatal on any difference)
      3) add missing columns, offer to drop undeclared ones
      4) create missing indexes, offer to drop undeclared ones
      5) offer to add the version column, create its index

    Args:
        adapter: Store adapter used for metadata reads and DDL.
        schema: The declared schema.
        keyspace: Keyspace used when the schema does not name one.
        confirm: Sink asked before every destructive change.
        dry_run: Plan statements without running them or asking anything.

    Returns:
        ReconcileResult listing applied, planned and declined statements.

    Raises:
        ReconciliationError: On primary key drift or any failed statement.
    """
    run = _Run(adapter, schema, confirm, dry_run)
    table = schema.table_name

    try:
        snapshot = adapter.table_snapshot(schema.keyspace or keyspace, table)
    except Exception as exc:  # noqa: BLE001
        raise ReconciliationError(table, f"Failed to get table metadata: {exc}") from exc

    if not snapshot.exists:
        _create_table(run)
        return run.result

    _check_primary_key(run, snapshot)
    _reconcile_columns(run, snapshot)
    _reconcile_indexes(run, snapshot)
    _reconcile_version(run, snapshot)
    return run.result


def _create_table(run: _Run) -> None:
    schema = run.schema
    run.result.created = True
    for statement in ddl.create_type_statements(schema):
        run.apply(statement, "create type")
    run.apply(ddl.create_table_statement(schema), f"create table {schema.table_name}")
    for statement in ddl.create_index_statements(schema):
        run.apply(statement, "create index")


def _check_primary_key(run: _Run, snapshot: LiveSchemaSnapshot) -> None:
    live = snapshot.primary_key()
    declared = run.schema.primary_key.to_identifiers()
    if live != declared:
        raise ReconciliationError(
            run.schema.table_name,
            f"The primary key changed (live {live.to_cql()} != declared "
            f"{declared.to_cql()}); a primary key cannot be altered, back up "
            "the data and recreate the table",
        )


def _reconcile_columns(run: _Run, snapshot: LiveSchemaSnapshot) -> None:
    schema = run.schema
    declared = {to_identifier(name): ctype for name, ctype in schema.columns.items()}

    for column, ctype in declared.items():
        wire_type = to_wire_type(ctype)
        live = snapshot.column(column)
        if live is None:
            run.apply(
                ddl.add_column_statement(schema, column, wire_type),
                f"add column {column}",
            )
        elif live.type and live.type.replace(" ", "") != wire_type:
            run.warn("column type differs", column=column, live=live.type, declared=wire_type)

    if schema.ignore_missing_columns:
        return

    for live in snapshot.columns:
        if live.name in declared or live.name == schema.version_column:
            continue
        run.offer(
            ddl.drop_column_statement(schema, live.name),
            f"drop column {live.name}",
            f"[{schema.table_name}] The column {live.name} is not declared locally, "
            "would you like to drop it (its data is lost)?",
        )


def _reconcile_indexes(run: _Run, snapshot: LiveSchemaSnapshot) -> None:
    schema = run.schema
    declared = ddl.declared_indexes(schema)
    declared_names = {name for name, _ in declared}
    live_names = {index.name for index in snapshot.indexes}

    for name, column in declared:
        if name not in live_names:
            run.apply(ddl.create_index_statement(schema, name, column), f"create index {name}")

    for index in snapshot.indexes:
        if index.name in declared_names:
            continue
        if schema.version_column and (
            index.name == schema.version_index_name or index.target == schema.version_column
        ):
            continue
        run.offer(
            ddl.drop_index_statement(schema, index.name),
            f"drop index {index.name}",
            f"[{schema.table_name}] The index {index.name} (target: {index.target}) "
            "is not declared locally, would you like to remove it?",
        )


def _reconcile_version(run: _Run, snapshot: LiveSchemaSnapshot) -> None:
    schema = run.schema
    column = schema.version_column
    if not column or not schema.version_index_name:
        return

    has_column = snapshot.has_column(column)
    if not has_column:
        has_column = run.offer(
            ddl.add_column_statement(schema, column, "int"),
            f"add version column {column}",
            f"[{schema.table_name}] The version column {column} is missing, "
            "would you like to add it?",
        )

    if snapshot.index_on(column) is not None:
        return
    if not has_column and not run.dry_run:
        run.warn("version column missing, version index not created", column=column)
        return
    run.apply(
        ddl.create_index_statement(schema, schema.version_index_name, column),
        f"create version index {schema.version_index_name}",
    )
