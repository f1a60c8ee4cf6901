from __future__ import annotations

from typing import Any, Mapping, Sequence

from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, Session
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra.query import dict_factory

from cqlops.core import ddl
from cqlops.core.config import StoreConfig
from cqlops.core.errors import ConnectivityError
from cqlops.core.live import LiveSchemaSnapshot, build_snapshot
from cqlops.core.logging import get_logger

log = get_logger(__name__)

_TABLES_QUERY = (
    "SELECT table_name FROM system_schema.tables WHERE keyspace_name = ? AND table_name = ?"
)
_COLUMNS_QUERY = (
    "SELECT column_name, kind, position, type, clustering_order "
    "FROM system_schema.columns WHERE keyspace_name = ? AND table_name = ?"
)
_INDEXES_QUERY = (
    "SELECT index_name, kind, options "
    "FROM system_schema.indexes WHERE keyspace_name = ? AND table_name = ?"
)


class CassandraAdapter:
    """Adapter around a cassandra-driver session (statements and schema metadata)."""

    def __init__(self, session: Session, cluster: Cluster | None = None) -> None:
        self.session = session
        self.cluster = cluster
        self._prepared: dict[str, Any] = {}

    @classmethod
    def connect(cls, config: StoreConfig) -> CassandraAdapter:
        """Open a session against the configured contact points."""
        auth = None
        if config.username:
            auth = PlainTextAuthProvider(username=config.username, password=config.password)
        profile = ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(
                DCAwareRoundRobinPolicy(local_dc=config.local_datacenter)
            ),
            row_factory=dict_factory,
        )
        cluster = Cluster(
            contact_points=list(config.nodes),
            port=config.port,
            auth_provider=auth,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        )
        try:
            session = cluster.connect()
        except Exception as exc:  # noqa: BLE001
            cluster.shutdown()
            raise ConnectivityError(
                f"Failed to connect to {', '.join(config.nodes)}:{config.port}: {exc}"
            ) from exc
        log.info("connected", nodes=list(config.nodes), datacenter=config.local_datacenter)
        return cls(session, cluster)

    def execute(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a statement; parameterized statements are prepared once and cached."""
        if params:
            prepared = self._prepared.get(query)
            if prepared is None:
                prepared = self.session.prepare(query)
                self._prepared[query] = prepared
            result = self.session.execute(prepared, list(params))
        else:
            result = self.session.execute(query)
        return list(result) if result is not None else []

    def table_snapshot(self, keyspace: str, table: str) -> LiveSchemaSnapshot:
        """Read the live definition of one table from system_schema."""
        params = (keyspace, table)
        return build_snapshot(
            table,
            self.execute(_TABLES_QUERY, params),
            self.execute(_COLUMNS_QUERY, params),
            self.execute(_INDEXES_QUERY, params),
        )

    def ensure_keyspace(
        self,
        keyspace: str,
        *,
        replication: Mapping[str, int] | None = None,
        durable_writes: bool = False,
    ) -> None:
        self.execute(
            ddl.create_keyspace_statement(
                keyspace, replication=replication, durable_writes=durable_writes
            )
        )

    def use_keyspace(self, keyspace: str) -> None:
        self.session.set_keyspace(keyspace)

    def close(self) -> None:
        if self.cluster is not None:
            self.cluster.shutdown()
        else:
            self.session.shutdown()
