# tests/test_memory_store.py

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from taskboard_sync.core.errors import DocumentNotFoundError
from taskboard_sync.core.ports import SERVER_TIMESTAMP, Direction
from taskboard_sync.stores.memory_store import InMemoryDocumentStore


@pytest.mark.asyncio
async def test_add_assigns_id_and_increasing_server_timestamps() -> None:
    store = InMemoryDocumentStore()

    first = await store.add("tasks", {"name": "a", "createdAt": SERVER_TIMESTAMP})
    second = await store.add("tasks", {"name": "b", "createdAt": SERVER_TIMESTAMP})

    docs = {d["id"]: d for d in store.snapshot("tasks")}
    assert first != second and len(first) == 20
    assert isinstance(docs[first]["createdAt"], datetime)
    assert docs[second]["createdAt"] > docs[first]["createdAt"]
    assert [d["id"] for d in store.snapshot("tasks")] == [second, first]
    assert [d["id"] for d in store.snapshot("tasks", "createdAt", Direction.ASCENDING)] == [first, second]


@pytest.mark.asyncio
async def test_subscription_gets_current_state_then_every_change() -> None:
    store = InMemoryDocumentStore()
    doc_id = await store.add("tasks", {"name": "a", "createdAt": SERVER_TIMESTAMP})

    sub = store.subscribe("tasks", "createdAt", Direction.DESCENDING)
    it = sub.__aiter__()

    initial = await asyncio.wait_for(it.__anext__(), timeout=1.0)
    assert [d["id"] for d in initial] == [doc_id]

    await store.update("tasks", doc_id, {"status": "Done"})
    updated = await asyncio.wait_for(it.__anext__(), timeout=1.0)
    assert updated[0]["status"] == "Done"
    assert updated[0]["name"] == "a"

    await store.delete("tasks", doc_id)
    assert await asyncio.wait_for(it.__anext__(), timeout=1.0) == []

    sub.cancel()
    assert store.subscriber_count("tasks") == 0
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(it.__anext__(), timeout=1.0)


@pytest.mark.asyncio
async def test_snapshots_are_copies() -> None:
    store = InMemoryDocumentStore()
    doc_id = await store.add("tasks", {"name": "a", "tags": ["x"]})

    snap = store.snapshot("tasks")
    snap[0]["tags"].append("y")

    assert store.snapshot("tasks")[0]["tags"] == ["x"]
    assert snap[0]["id"] == doc_id


@pytest.mark.asyncio
async def test_update_missing_raises_and_delete_missing_is_noop() -> None:
    store = InMemoryDocumentStore()

    with pytest.raises(DocumentNotFoundError):
        await store.update("tasks", "nope", {"status": "Done"})

    await store.delete("tasks", "nope")
    assert store.snapshot("tasks") == []


@pytest.mark.asyncio
async def test_collections_are_independent_and_close_ends_streams() -> None:
    store = InMemoryDocumentStore()
    sub = store.subscribe("tasks", "createdAt")
    await store.add("other", {"name": "x"})

    it = sub.__aiter__()
    assert await asyncio.wait_for(it.__anext__(), timeout=1.0) == []

    await store.close()
    assert sub.cancelled
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(it.__anext__(), timeout=1.0)
