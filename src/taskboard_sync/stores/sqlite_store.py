# src/taskboard_sync/stores/sqlite_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.errors import DocumentNotFoundError, RemoteStoreError
from ..core.ports import SERVER_TIMESTAMP, Direction, Document, Snapshot
from .documents import new_document_id, sort_documents
from .subscriptions import PollingSubscription

logger = logging.getLogger(__name__)

_TS_KEY = "$timestamp"


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_TS_KEY: value.timestamp()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_object(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _TS_KEY in obj:
        return datetime.fromtimestamp(float(obj[_TS_KEY]), tz=timezone.utc)
    return obj


class SqliteDocumentStore:
    """
    SQLite document store shared by every board process on the same machine.

    Documents are JSON blobs keyed by (collection, id). Each write bumps a
    per-collection revision; subscriptions poll that revision and re-read the
    collection only when it moved.

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - blocking calls run in a worker thread (asyncio.to_thread)
    """

    def __init__(self, db_path: str | Path = "board.sqlite3", *, poll_interval: float = 1.0) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._poll_interval = float(poll_interval)
        self._subscriptions: list[PollingSubscription] = []
        self._ensure_schema()
        logger.info("SqliteDocumentStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    data TEXT NOT NULL DEFAULT '{}',
                    PRIMARY KEY (collection, id)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS revisions (
                    collection TEXT PRIMARY KEY,
                    revision INTEGER NOT NULL DEFAULT 0
                )
                """
            )

            cur.execute("PRAGMA table_info(documents)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE documents ADD COLUMN {name} {decl}")
                logger.info("SqliteDocumentStore migration: added column %s", name)

            add_col("updated_at", "REAL NOT NULL DEFAULT 0")
            add_col("data", "TEXT NOT NULL DEFAULT '{}'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_created ON documents(collection, created_at)")
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _dumps(data: Mapping[str, Any]) -> str:
        try:
            return json.dumps(data, ensure_ascii=False, default=_encode_value)
        except TypeError as e:
            raise RemoteStoreError(f"Document is not storable: {e}") from e

    @staticmethod
    def _loads(raw: str | None) -> Document:
        if not raw:
            return {}
        try:
            val = json.loads(raw, object_hook=_decode_object)
            return val if isinstance(val, dict) else {}
        except Exception:
            logger.exception("Corrupted document JSON; treating as empty.")
            return {}

    @staticmethod
    def _bump(cur: sqlite3.Cursor, collection: str) -> None:
        cur.execute(
            """
            INSERT INTO revisions(collection, revision) VALUES (?, 1)
            ON CONFLICT(collection) DO UPDATE SET revision = revision + 1
            """,
            (collection,),
        )

    @staticmethod
    def _server_now(cur: sqlite3.Cursor, collection: str) -> float:
        """Commit time, strictly after every creation time already in the collection."""
        cur.execute("SELECT MAX(created_at) FROM documents WHERE collection = ?", (collection,))
        (last,) = cur.fetchone()
        now = time.time()
        if last is not None and now <= float(last):
            now = float(last) + 1e-6
        return now

    @staticmethod
    def _resolve(fields: Mapping[str, Any], now: float) -> Document:
        ts = datetime.fromtimestamp(now, tz=timezone.utc)
        return {k: (ts if v is SERVER_TIMESTAMP else v) for k, v in fields.items() if k != "id"}

    # ---- sync implementations (run in a worker thread) ----

    def _add_sync(self, collection: str, fields: Mapping[str, Any]) -> str:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            now = self._server_now(cur, collection)
            data = self._dumps(self._resolve(fields, now))
            while True:
                doc_id = new_document_id()
                try:
                    cur.execute(
                        """
                        INSERT INTO documents(collection, id, created_at, updated_at, data)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (collection, doc_id, now, now, data),
                    )
                    break
                except sqlite3.IntegrityError:
                    continue
            self._bump(cur, collection)
            conn.commit()
            logger.debug("Document added %s/%s", collection, doc_id)
            return doc_id
        finally:
            conn.close()

    def _update_sync(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT data FROM documents WHERE collection = ? AND id = ?", (collection, doc_id))
            row = cur.fetchone()
            if row is None:
                conn.rollback()
                raise DocumentNotFoundError(collection, doc_id)

            now = time.time()
            data = self._loads(row["data"])
            data.update(self._resolve(fields, now))
            cur.execute(
                "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND id = ?",
                (self._dumps(data), now, collection, doc_id),
            )
            self._bump(cur, collection)
            conn.commit()
            logger.debug("Document updated %s/%s fields=%s", collection, doc_id, sorted(fields))
        finally:
            conn.close()

    def _delete_sync(self, collection: str, doc_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM documents WHERE collection = ? AND id = ?", (collection, doc_id))
            if cur.rowcount == 0:
                conn.rollback()
                logger.debug("Delete of missing document %s/%s ignored", collection, doc_id)
                return
            self._bump(cur, collection)
            conn.commit()
            logger.debug("Document deleted %s/%s", collection, doc_id)
        finally:
            conn.close()

    def revision(self, collection: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT revision FROM revisions WHERE collection = ?", (collection,))
            row = cur.fetchone()
            return int(row["revision"]) if row else 0
        finally:
            conn.close()

    def snapshot(
        self,
        collection: str,
        order_by: str = "createdAt",
        direction: Direction = Direction.DESCENDING,
    ) -> tuple[int, Snapshot]:
        """Read (revision, documents) in one transaction."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("SELECT revision FROM revisions WHERE collection = ?", (collection,))
            row = cur.fetchone()
            revision = int(row["revision"]) if row else 0
            cur.execute("SELECT id, data FROM documents WHERE collection = ?", (collection,))
            docs = [{"id": r["id"], **self._loads(r["data"])} for r in cur.fetchall()]
            conn.commit()
            return revision, sort_documents(docs, order_by, direction)
        finally:
            conn.close()

    # ---- RemoteStore API ----

    def subscribe(
        self,
        collection: str,
        order_by: str,
        direction: Direction = Direction.DESCENDING,
    ) -> PollingSubscription:
        async def fetch(known: int | None) -> tuple[int, Snapshot | None]:
            if known is not None:
                current = await asyncio.to_thread(self.revision, collection)
                if current == known:
                    return current, None
            return await asyncio.to_thread(self.snapshot, collection, order_by, direction)

        sub = PollingSubscription(fetch, interval=self._poll_interval, label=f"sqlite:{collection}")
        self._subscriptions = [s for s in self._subscriptions if not s.cancelled]
        self._subscriptions.append(sub)
        return sub

    async def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        return await asyncio.to_thread(self._add_sync, collection, fields)

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._update_sync, collection, doc_id, fields)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, collection, doc_id)

    async def close(self) -> None:
        """No persistent connections; only live subscriptions are cancelled."""
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
