# src/taskboard_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync engine depends on Protocols instead of concrete stores.
This keeps the remote document store swappable and makes testing easier.
"""

from collections.abc import AsyncIterator, Mapping
from enum import StrEnum
from typing import Any, Protocol

Document = dict[str, Any]
# Raw snapshot entry: {"id": "...", "name": "...", "createdAt": ..., ...}.

Snapshot = list[Document]


class Direction(StrEnum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class _ServerTimestamp:
    """Sentinel asking the store to fill a field with its own commit time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class Subscription(Protocol):
    """
    Cancellable stream of full-collection snapshots.

    Iteration yields complete, ordered snapshots in emission order and ends
    once cancel() has been called. A fresh stream is obtained by calling
    RemoteStore.subscribe() again.
    """

    def __aiter__(self) -> AsyncIterator[Snapshot]: ...

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class RemoteStore(Protocol):
    """Remote document collection keyed by id; assigns creation timestamps."""

    def subscribe(
        self,
        collection: str,
        order_by: str,
        direction: Direction = Direction.DESCENDING,
    ) -> Subscription: ...

    async def add(self, collection: str, fields: Mapping[str, Any]) -> str: ...

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def close(self) -> None: ...
