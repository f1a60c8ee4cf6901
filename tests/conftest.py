from __future__ import annotations

import sys
from pathlib import Path

import pytest
import structlog

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from cqlops.core.client import Client  # noqa: E402
from cqlops.core.config import StoreConfig  # noqa: E402
from cqlops.core.live import LiveSchemaSnapshot  # noqa: E402
from cqlops.core.reconcile import AlwaysConfirm  # noqa: E402
from cqlops.core.registry import SchemaRegistry  # noqa: E402


class FakeStore:
    """In-memory store adapter: records statements, answers SELECTs from a queue."""

    def __init__(self, snapshots: dict[str, LiveSchemaSnapshot] | None = None):
        self.statements: list[tuple[str, tuple]] = []
        self.results: list[list[dict]] = []
        self.snapshots = dict(snapshots or {})
        self.fail_on: str | None = None
        self.keyspaces: list[tuple[str, dict, bool]] = []
        self.used: str | None = None
        self.closed = False

    def execute(self, query: str, params=()) -> list[dict]:
        self.statements.append((query, tuple(params)))
        if self.fail_on and self.fail_on in query:
            raise RuntimeError("boom")
        if query.startswith("SELECT"):
            return self.results.pop(0) if self.results else []
        return []

    def table_snapshot(self, keyspace: str, table: str) -> LiveSchemaSnapshot:
        return self.snapshots.get(table, LiveSchemaSnapshot(table=table, exists=False))

    def ensure_keyspace(self, keyspace, *, replication=None, durable_writes=False) -> None:
        self.keyspaces.append((keyspace, dict(replication or {}), durable_writes))

    def use_keyspace(self, keyspace: str) -> None:
        self.used = keyspace

    def close(self) -> None:
        self.closed = True

    def queries(self, prefix: str = "") -> list[str]:
        return [q for q, _ in self.statements if q.startswith(prefix)]

    def params(self, prefix: str = "") -> list[tuple]:
        return [p for q, p in self.statements if q.startswith(prefix)]


@pytest.fixture(autouse=True)
def _reset_structlog():
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def connect(store: FakeStore):
    """Connect a client over the fake store and forget the reconciliation statements."""

    def _connect(*schemas) -> Client:
        client = Client(SchemaRegistry(list(schemas)), adapter=store, confirm=AlwaysConfirm())
        client.connect(StoreConfig(keyspace="app"))
        store.statements.clear()
        return client

    return _connect
