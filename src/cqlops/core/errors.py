"""Exception hierarchy for cqlops.

Configuration and reconciliation errors abort startup; query errors carry the
table they happened on and keep the driver error as ``__cause__``.
"""

from __future__ import annotations


class CqlOpsError(Exception):
    """Base class for all cqlops errors."""


class ConfigurationError(CqlOpsError):
    """Raised when a schema declaration or client configuration is invalid."""


class ConnectivityError(CqlOpsError):
    """Raised when the store cannot be reached or the keyspace cannot be used."""


class ReconciliationError(CqlOpsError):
    """Raised when a declared schema cannot be reconciled with the live one."""

    def __init__(self, table: str | None, message: str):
        self.table = table
        super().__init__(f"[{table}] {message}" if table else message)


class NotConnectedError(CqlOpsError):
    """Raised when a table operation runs before the client is connected."""

    def __init__(self) -> None:
        super().__init__("The client is not connected yet.")


class QueryError(CqlOpsError):
    """Raised when a statement issued for a table fails."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"[{table}] {message}")
