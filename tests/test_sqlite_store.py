# tests/test_sqlite_store.py

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from taskboard_sync.core.errors import DocumentNotFoundError
from taskboard_sync.core.ports import SERVER_TIMESTAMP, Direction
from taskboard_sync.stores.sqlite_store import SqliteDocumentStore
from taskboard_sync.sync.engine import SyncEngine
from taskboard_sync.tasks.task_models import TaskStatus

from .fakes import settle


@pytest.mark.asyncio
async def test_add_update_delete_roundtrip(tmp_path: Path) -> None:
    store = SqliteDocumentStore(tmp_path / "board.sqlite3")
    due = datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)

    doc_id = await store.add(
        "tasks",
        {"name": "a", "status": "To Do", "createdAt": SERVER_TIMESTAMP, "dueAt": due, "id": "ignored"},
    )
    await store.update("tasks", doc_id, {"status": "Done", "assignedTo": "Alice"})

    revision, docs = store.snapshot("tasks")
    (doc,) = docs
    assert doc["id"] == doc_id
    assert doc["status"] == "Done"
    assert doc["assignedTo"] == "Alice"
    assert doc["dueAt"] == due
    assert isinstance(doc["createdAt"], datetime) and doc["createdAt"].tzinfo is not None
    assert revision == 2

    await store.delete("tasks", doc_id)
    assert store.snapshot("tasks") == (3, [])


@pytest.mark.asyncio
async def test_missing_documents(tmp_path: Path) -> None:
    store = SqliteDocumentStore(tmp_path / "board.sqlite3")

    with pytest.raises(DocumentNotFoundError):
        await store.update("tasks", "nope", {"status": "Done"})
    await store.delete("tasks", "nope")

    assert store.revision("tasks") == 0


@pytest.mark.asyncio
async def test_creation_order_is_strict_and_shared_between_handles(tmp_path: Path) -> None:
    path = tmp_path / "board.sqlite3"
    writer = SqliteDocumentStore(path)
    reader = SqliteDocumentStore(path)

    ids = [await writer.add("tasks", {"name": str(i), "createdAt": SERVER_TIMESTAMP}) for i in range(5)]

    _, newest_first = reader.snapshot("tasks", "createdAt", Direction.DESCENDING)
    assert [d["id"] for d in newest_first] == list(reversed(ids))
    created = [d["createdAt"] for d in newest_first]
    assert len(set(created)) == len(created)


@pytest.mark.asyncio
async def test_subscription_sees_writes_from_another_handle(tmp_path: Path) -> None:
    path = tmp_path / "board.sqlite3"
    watcher = SqliteDocumentStore(path, poll_interval=0.01)
    writer = SqliteDocumentStore(path)

    sub = watcher.subscribe("tasks", "createdAt", Direction.DESCENDING)
    it = sub.__aiter__()
    assert await asyncio.wait_for(it.__anext__(), timeout=2.0) == []

    doc_id = await writer.add("tasks", {"name": "a", "createdAt": SERVER_TIMESTAMP})
    snapshot = await asyncio.wait_for(it.__anext__(), timeout=2.0)
    assert [d["id"] for d in snapshot] == [doc_id]

    await watcher.close()
    assert sub.cancelled


@pytest.mark.asyncio
async def test_engine_over_sqlite_store(tmp_path: Path) -> None:
    store = SqliteDocumentStore(tmp_path / "board.sqlite3", poll_interval=0.01)
    engine = SyncEngine(store)
    engine.start()

    task_id = await engine.create({"name": "Persisted", "priority": "Low"})
    await engine.change_status(task_id, "done")

    for _ in range(200):
        if engine.find(task_id) is not None and engine.find(task_id).status == TaskStatus.DONE:
            break
        await asyncio.sleep(0.01)
    await settle()

    record = engine.find(task_id)
    assert record is not None
    assert record.status == TaskStatus.DONE
    assert engine.board().columns[TaskStatus.DONE] == [record]

    engine.stop()
    await engine.wait_stopped()
    await store.close()


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "board.sqlite3"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE documents (collection TEXT NOT NULL, id TEXT NOT NULL, created_at REAL NOT NULL, "
        "PRIMARY KEY (collection, id))"
    )
    conn.execute("INSERT INTO documents(collection, id, created_at) VALUES ('tasks', 'old', 1.0)")
    conn.commit()
    conn.close()

    store = SqliteDocumentStore(path)

    conn = sqlite3.connect(path)
    cols = {row[1] for row in conn.execute("PRAGMA table_info(documents)")}
    conn.close()
    assert {"updated_at", "data"} <= cols
    assert store.snapshot("tasks")[1] == [{"id": "old"}]
