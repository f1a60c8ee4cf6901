"""Application context management for the CLI."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any

from cqlops.cli.common.exits import die, exit_from_exc
from cqlops.core.adapters.cassandra import CassandraAdapter
from cqlops.core.client import Client
from cqlops.core.config import StoreConfig, load_config
from cqlops.core.errors import CqlOpsError
from cqlops.core.reconcile import ConfirmationSink
from cqlops.core.registry import SchemaRegistry
from cqlops.core.schema import TableSchema


@dataclass
class SchemaAppContext:
    """Application context holding the loaded schemas and the connection profile."""

    profile: str | None
    registry: SchemaRegistry

    def load_config(self) -> StoreConfig:
        try:
            return load_config(self.profile)
        except CqlOpsError as exc:
            exit_from_exc(exc, code=2)

    def connect(self, confirm: ConfirmationSink, *, dry_run: bool = False) -> Client:
        """Open a session and reconcile every loaded schema."""
        config = self.load_config()
        try:
            adapter = CassandraAdapter.connect(config)
        except CqlOpsError as exc:
            exit_from_exc(exc, code=1)
        client = Client(self.registry, adapter=adapter, confirm=confirm)
        try:
            return client.connect(config, dry_run=dry_run)
        except CqlOpsError as exc:
            client.close()
            exit_from_exc(exc, code=1)


def _as_registry(value: Any, target: str) -> SchemaRegistry:
    if isinstance(value, SchemaRegistry):
        return value
    if isinstance(value, TableSchema):
        return SchemaRegistry([value])
    if isinstance(value, (list, tuple)) and all(isinstance(v, TableSchema) for v in value):
        return SchemaRegistry(list(value))
    die(f"{target} is not a SchemaRegistry or a list of TableSchema", code=2)


def load_registry(target: str) -> SchemaRegistry:
    """Import ``module:attribute`` and return it as a registry."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        die(f"Invalid schemas location {target!r}, expected module:attribute", code=2)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        exit_from_exc(exc, message=f"Could not import {module_name}: {exc}", code=2)
    except CqlOpsError as exc:
        exit_from_exc(exc, message=f"Invalid schema in {module_name}: {exc}", code=2)
    try:
        value = getattr(module, attr)
    except AttributeError as exc:
        exit_from_exc(exc, message=f"{module_name} has no attribute {attr!r}", code=2)
    return _as_registry(value, target)


def build_schema_context(schemas: str, profile: str | None) -> SchemaAppContext:
    """Build and return the application context for schema commands."""
    return SchemaAppContext(profile=profile, registry=load_registry(schemas))
