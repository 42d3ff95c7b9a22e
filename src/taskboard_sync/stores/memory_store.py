# src/taskboard_sync/stores/memory_store.py

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from ..core.errors import DocumentNotFoundError
from ..core.ports import SERVER_TIMESTAMP, Direction, Document, Snapshot
from .documents import new_document_id, sort_documents
from .subscriptions import QueueSubscription

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """
    Process-local document store.

    - assigns ids and strictly increasing `createdAt`-style server timestamps
    - every write pushes a fresh full snapshot to each live subscription
    - a new subscription receives the current snapshot immediately

    Used for demos (TASKBOARD_STORE_BACKEND=memory) and as a realistic store in tests.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._subscribers: dict[str, list[tuple[QueueSubscription, str, Direction]]] = {}
        self._last_ts: datetime | None = None

    # ---- helpers ----

    def _server_now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _resolve(self, fields: Mapping[str, Any]) -> Document:
        out: Document = {}
        ts: datetime | None = None
        for key, value in fields.items():
            if key == "id":
                continue
            if value is SERVER_TIMESTAMP:
                if ts is None:
                    ts = self._server_now()
                value = ts
            out[key] = copy.deepcopy(value)
        return out

    def snapshot(
        self,
        collection: str,
        order_by: str = "createdAt",
        direction: Direction = Direction.DESCENDING,
    ) -> Snapshot:
        docs = self._collections.get(collection, {})
        items = [{"id": doc_id, **copy.deepcopy(data)} for doc_id, data in docs.items()]
        return sort_documents(items, order_by, direction)

    def _publish(self, collection: str) -> None:
        for sub, order_by, direction in list(self._subscribers.get(collection, [])):
            sub.push(self.snapshot(collection, order_by, direction))

    def _forget(self, collection: str, sub: QueueSubscription) -> None:
        subs = self._subscribers.get(collection, [])
        self._subscribers[collection] = [entry for entry in subs if entry[0] is not sub]

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscribers.get(collection, []))

    # ---- RemoteStore API ----

    def subscribe(
        self,
        collection: str,
        order_by: str,
        direction: Direction = Direction.DESCENDING,
    ) -> QueueSubscription:
        sub = QueueSubscription(
            label=f"memory:{collection}",
            on_cancel=lambda s: self._forget(collection, s),
        )
        self._subscribers.setdefault(collection, []).append((sub, order_by, direction))
        sub.push(self.snapshot(collection, order_by, direction))
        logger.debug("Subscribed collection=%s subscribers=%d", collection, self.subscriber_count(collection))
        return sub

    async def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        docs = self._collections.setdefault(collection, {})
        doc_id = new_document_id()
        while doc_id in docs:
            doc_id = new_document_id()
        docs[doc_id] = self._resolve(fields)
        logger.debug("Document added %s/%s", collection, doc_id)
        self._publish(collection)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFoundError(collection, doc_id)
        docs[doc_id].update(self._resolve(fields))
        logger.debug("Document updated %s/%s fields=%s", collection, doc_id, sorted(fields))
        self._publish(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        docs = self._collections.get(collection, {})
        if docs.pop(doc_id, None) is None:
            # Deleting a missing document succeeds, as in Firestore.
            logger.debug("Delete of missing document %s/%s ignored", collection, doc_id)
            return
        logger.debug("Document deleted %s/%s", collection, doc_id)
        self._publish(collection)

    async def close(self) -> None:
        for subs in list(self._subscribers.values()):
            for sub, _, _ in list(subs):
                sub.cancel()
        self._subscribers.clear()
