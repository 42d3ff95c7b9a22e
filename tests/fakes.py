# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from taskboard_sync.core.ports import Direction, Document
from taskboard_sync.stores.subscriptions import QueueSubscription

BASE_TS = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def ts(minutes: int) -> datetime:
    return BASE_TS + timedelta(minutes=minutes)


def doc(
    doc_id: str,
    name: str = "Task",
    *,
    status: str = "To Do",
    minute: int | None = 0,
    **extra: Any,
) -> Document:
    """Raw snapshot document as a store would push it (minute=None -> pending createdAt)."""
    out: Document = {
        "id": doc_id,
        "name": name,
        "status": status,
        "createdAt": ts(minute) if minute is not None else None,
    }
    out.update(extra)
    return out


async def settle(rounds: int = 10) -> None:
    """Let the sync pump task drain what was pushed so far."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass(slots=True)
class StoreCall:
    op: str
    collection: str
    doc_id: str | None = None
    fields: dict[str, Any] | None = None


@dataclass(slots=True)
class FakeRemoteStore:
    """
    Recording RemoteStore used by engine and command tests.

    - Snapshots are pushed manually with push(), so tests decide what the
      "server" reports and when
    - Every add/update/delete is captured in `calls`
    - `fail_with` makes the next writes raise (connectivity, permissions, ...)
    """

    calls: list[StoreCall] = field(default_factory=list)
    subscriptions: list[QueueSubscription] = field(default_factory=list)
    subscribe_args: list[tuple[str, str, Direction]] = field(default_factory=list)
    fail_with: Exception | None = None
    next_id: int = 0
    closed: bool = False

    def subscribe(
        self,
        collection: str,
        order_by: str,
        direction: Direction = Direction.DESCENDING,
    ) -> QueueSubscription:
        sub = QueueSubscription(label=f"fake:{collection}")
        self.subscriptions.append(sub)
        self.subscribe_args.append((collection, order_by, direction))
        return sub

    @property
    def active(self) -> list[QueueSubscription]:
        return [s for s in self.subscriptions if not s.cancelled]

    def push(self, docs: Iterable[Mapping[str, Any]], *, sub: QueueSubscription | None = None) -> None:
        target = sub or self.subscriptions[-1]
        target.push([dict(d) for d in docs])

    def _record(self, call: StoreCall) -> None:
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    async def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        self._record(StoreCall("add", collection, None, dict(fields)))
        self.next_id += 1
        return f"t{self.next_id}"

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        self._record(StoreCall("update", collection, doc_id, dict(fields)))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._record(StoreCall("delete", collection, doc_id))

    async def close(self) -> None:
        self.closed = True
        for sub in self.subscriptions:
            sub.cancel()
