"""The client: one store session, one schema registry, many tables.

``connect`` creates and selects the keyspace, then reconciles every registered
schema one after the other so that interactive confirmations never interleave.
Schemas registered after the client is connected are reconciled as soon as
they are registered.

The client is also the handle passed to migration scripts, which can use
``client.table(...)`` to read or write other tables while migrating a row.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from cqlops.core.config import StoreConfig, load_config
from cqlops.core.errors import ConnectivityError, NotConnectedError
from cqlops.core.live import LiveSchemaSnapshot
from cqlops.core.logging import get_logger
from cqlops.core.reconcile import (
    ConfirmationSink,
    FailFastConfirm,
    ReconcileResult,
    reconcile_table,
)
from cqlops.core.registry import SchemaRegistry
from cqlops.core.schema import TableSchema
from cqlops.core.table import Table

log = get_logger(__name__)


class StoreAdapter(Protocol):
    """What the client needs from a store session."""

    def execute(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        ...

    def table_snapshot(self, keyspace: str, table: str) -> LiveSchemaSnapshot:
        ...

    def ensure_keyspace(
        self,
        keyspace: str,
        *,
        replication: dict[str, int] | None = None,
        durable_writes: bool = False,
    ) -> None:
        ...

    def use_keyspace(self, keyspace: str) -> None:
        ...

    def close(self) -> None:
        ...


class Client:
    """Owns the store adapter and reconciles the registry against it."""

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        adapter: StoreAdapter | None = None,
        confirm: ConfirmationSink | None = None,
    ):
        self.registry = registry
        self.adapter = adapter
        self.confirm = confirm or FailFastConfirm()
        self.config: StoreConfig | None = None
        self.connected = False
        self.results: dict[str, ReconcileResult] = {}
        self._tables: dict[str, Table] = {}
        self._unsubscribe = None

    @property
    def keyspace(self) -> str:
        if self.config is None:
            raise NotConnectedError()
        return self.config.keyspace

    def connect(self, config: StoreConfig | None = None, *, dry_run: bool = False) -> Client:
        """
        Connect, prepare the keyspace and reconcile every registered schema.

        Args:
            config: Store settings; loaded from the default profile when omitted.
            dry_run: Plan reconciliation without running DDL (see ``results``).
                The client stays disconnected afterwards; a later ``connect``
                prepares the keyspace and applies the plan.

        Raises:
            ConnectivityError: When the session or the keyspace cannot be set up.
            ReconciliationError: When a table cannot be reconciled.
        """
        if self.connected:
            return self

        self.config = config or load_config()
        log.debug("connecting", config=self.config.redacted())

        if self.adapter is None:
            from cqlops.core.adapters.cassandra import CassandraAdapter

            self.adapter = CassandraAdapter.connect(self.config)

        # A dry run only reads system_schema, so the keyspace may not exist yet.
        if not dry_run:
            self._prepare_keyspace(self.config)

        for schema in self.registry.all():
            self.reconcile(schema, dry_run=dry_run)

        if dry_run:
            return self

        self._unsubscribe = self.registry.subscribe(self._on_register)
        self.connected = True
        return self

    def reconcile(self, schema: TableSchema, *, dry_run: bool = False) -> ReconcileResult:
        """Reconcile one schema against the live keyspace."""
        if self.adapter is None or self.config is None:
            raise NotConnectedError()
        result = reconcile_table(
            self.adapter,
            schema,
            keyspace=self.config.keyspace,
            confirm=self.confirm,
            dry_run=dry_run,
        )
        self.results[schema.name] = result
        return result

    def table(self, schema: TableSchema | str) -> Table:
        """Return the ``Table`` for a registered schema (by object or name)."""
        if isinstance(schema, str):
            schema = self.registry.get(schema)
        table = self._tables.get(schema.name)
        if table is None or table.schema is not schema:
            table = Table(self, schema)
            self._tables[schema.name] = table
        return table

    def ensure_connected(self) -> None:
        if not self.connected or self.adapter is None:
            raise NotConnectedError()

    def execute(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a raw statement on the session."""
        self.ensure_connected()
        return self.adapter.execute(query, params)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.adapter is not None:
            self.adapter.close()
        self.connected = False

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _prepare_keyspace(self, config: StoreConfig) -> None:
        keyspace = config.keyspace
        try:
            self.adapter.ensure_keyspace(
                keyspace,
                replication=dict(config.replication),
                durable_writes=config.durable_writes,
            )
        except Exception as exc:  # noqa: BLE001
            raise ConnectivityError(f"Failed to create keyspace {keyspace}: {exc}") from exc
        try:
            self.adapter.use_keyspace(keyspace)
        except Exception as exc:  # noqa: BLE001
            raise ConnectivityError(f"Failed to use keyspace {keyspace}: {exc}") from exc

    def _on_register(self, schema: TableSchema | None, previous: TableSchema | None) -> None:
        if schema is None:
            self._tables.pop(previous.name, None)
            return
        self.reconcile(schema)
