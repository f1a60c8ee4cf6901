"""Registry of declared table schemas.

The registry is an explicit object handed to the ``Client``; there is no
process-wide table list. Subscribers are told about every (re)registration,
which is how a connected client reconciles schemas registered late.
"""

from __future__ import annotations

from typing import Callable, Iterator

from cqlops.core.schema import TableSchema

Listener = Callable[[TableSchema | None, TableSchema | None], None]


class SchemaRegistry:
    """Declared schemas keyed by name."""

    def __init__(self, schemas: list[TableSchema] | None = None):
        self._schemas: dict[str, TableSchema] = {}
        self._listeners: list[Listener] = []
        for schema in schemas or []:
            self.register(schema)

    def register(self, schema: TableSchema) -> TableSchema:
        """Store a schema, replacing any schema of the same name, and notify."""
        previous = self._schemas.get(schema.name)
        self._schemas[schema.name] = schema
        self._emit(schema, previous)
        return schema

    def unregister(self, name: str) -> TableSchema | None:
        previous = self._schemas.pop(name, None)
        if previous is not None:
            self._emit(None, previous)
        return previous

    def get(self, name: str) -> TableSchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise KeyError(f"No schema registered under '{name}'") from None

    def all(self) -> list[TableSchema]:
        """Registered schemas in registration order."""
        return list(self._schemas.values())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener(schema, previous)`` on every change.

        Returns:
            A function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, schema: TableSchema | None, previous: TableSchema | None) -> None:
        for listener in list(self._listeners):
            listener(schema, previous)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[TableSchema]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._schemas)
