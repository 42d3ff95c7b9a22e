# src/taskboard_sync/stores/firestore_rest.py

"""
Cloud Firestore over its REST API.

Writes go through `documents:commit` so that server timestamps
(`REQUEST_TIME` transforms) and existence preconditions are applied by the
server in the same request. The change stream is a polling `runQuery`: a
snapshot is emitted whenever the (name, updateTime) listing changes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import httpx

from ..core.errors import DocumentNotFoundError, RemoteStoreError
from ..core.ports import SERVER_TIMESTAMP, Direction, Document, Snapshot
from .documents import new_document_id
from .subscriptions import PollingSubscription

logger = logging.getLogger(__name__)

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")
_FRACTION = re.compile(r"\.(\d+)")


class FirestoreNotFound(RemoteStoreError):
    """NOT_FOUND answer (e.g. update precondition `exists: true` failed)."""


def _field_path(name: str) -> str:
    if _SIMPLE_FIELD.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def _rfc3339(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_rfc3339(raw: str) -> datetime:
    # Firestore returns up to nanosecond precision; datetime keeps microseconds.
    s = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw.strip(), count=1)
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def encode_value(value: Any) -> dict[str, Any]:
    """Python value -> Firestore typed Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _rfc3339(value)}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": {str(k): encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise RemoteStoreError(f"Unsupported Firestore value type: {type(value).__name__}")


def decode_value(value: Mapping[str, Any]) -> Any:
    """Firestore typed Value -> Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return _parse_rfc3339(value["timestampValue"])
    if "mapValue" in value:
        fields = value["mapValue"].get("fields") or {}
        return {k: decode_value(v) for k, v in fields.items()}
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values") or []]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "bytesValue" in value:
        return value["bytesValue"]
    logger.warning("Unknown Firestore value %r; using None", value)
    return None


def decode_document(doc: Mapping[str, Any]) -> Document:
    name = str(doc.get("name") or "")
    out: Document = {"id": name.rsplit("/", 1)[-1]}
    for key, value in (doc.get("fields") or {}).items():
        out[key] = decode_value(value)
    return out


class FirestoreRestStore:
    def __init__(
        self,
        *,
        project_id: str,
        api_key: str | None = None,
        database: str = "(default)",
        base_url: str = "https://firestore.googleapis.com/v1",
        poll_interval: float = 1.0,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not project_id:
            raise ValueError("Firestore project_id is required")
        self._db_root = f"projects/{project_id}/databases/{database}"
        self._docs_root = f"{self._db_root}/documents"
        self._api_key = api_key
        self._poll_interval = float(poll_interval)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)),
            headers={"User-Agent": "taskboard-sync/0.1", "Accept": "application/json"},
        )
        self._subscriptions: list[PollingSubscription] = []

    # ---- low-level helpers ----

    def _doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self._docs_root}/{collection}/{doc_id}"

    async def _post(self, endpoint: str, body: Mapping[str, Any]) -> Any:
        params = {"key": self._api_key} if self._api_key else None
        try:
            response = await self._client.post(f"/{endpoint}", json=body, params=params)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"Firestore request {endpoint} failed: {e}") from e

        if response.status_code >= 400:
            status, message = self._error_details(response)
            if status == "NOT_FOUND" or response.status_code == 404:
                raise FirestoreNotFound(f"Firestore NOT_FOUND: {message}")
            raise RemoteStoreError(f"Firestore error {response.status_code} {status}: {message}")
        return response.json()

    @staticmethod
    def _error_details(response: httpx.Response) -> tuple[str, str]:
        try:
            err = response.json().get("error") or {}
        except ValueError:
            return "", response.text
        if isinstance(err, list):
            err = err[0] if err else {}
        return str(err.get("status") or ""), str(err.get("message") or response.text)

    async def _commit(self, writes: list[dict[str, Any]]) -> Any:
        return await self._post(f"{self._docs_root}:commit", {"writes": writes})

    @staticmethod
    def _split_fields(fields: Mapping[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        encoded: dict[str, Any] = {}
        transforms: list[dict[str, Any]] = []
        for key, value in fields.items():
            if key == "id":
                continue
            if value is SERVER_TIMESTAMP:
                transforms.append({"fieldPath": _field_path(key), "setToServerValue": "REQUEST_TIME"})
            else:
                encoded[key] = encode_value(value)
        return encoded, transforms

    async def run_query(self, collection: str, order_by: str, direction: Direction) -> list[Mapping[str, Any]]:
        body = {
            "structuredQuery": {
                "from": [{"collectionId": collection}],
                "orderBy": [
                    {
                        "field": {"fieldPath": _field_path(order_by)},
                        "direction": "DESCENDING" if direction == Direction.DESCENDING else "ASCENDING",
                    }
                ],
            }
        }
        rows = await self._post(f"{self._docs_root}:runQuery", body)
        return [row["document"] for row in rows or [] if isinstance(row, dict) and row.get("document")]

    # ---- RemoteStore API ----

    def subscribe(
        self,
        collection: str,
        order_by: str,
        direction: Direction = Direction.DESCENDING,
    ) -> PollingSubscription:
        async def fetch(known: Any) -> tuple[Any, Snapshot | None]:
            raw_docs = await self.run_query(collection, order_by, direction)
            version = tuple((d.get("name"), d.get("updateTime")) for d in raw_docs)
            if known is not None and version == known:
                return version, None
            return version, [decode_document(d) for d in raw_docs]

        sub = PollingSubscription(fetch, interval=self._poll_interval, label=f"firestore:{collection}")
        self._subscriptions = [s for s in self._subscriptions if not s.cancelled]
        self._subscriptions.append(sub)
        return sub

    async def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        doc_id = new_document_id()
        encoded, transforms = self._split_fields(fields)
        write: dict[str, Any] = {
            "update": {"name": self._doc_name(collection, doc_id), "fields": encoded},
            "currentDocument": {"exists": False},
        }
        if transforms:
            write["updateTransforms"] = transforms
        await self._commit([write])
        logger.debug("Document added %s/%s", collection, doc_id)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        encoded, transforms = self._split_fields(fields)
        write: dict[str, Any] = {
            "update": {"name": self._doc_name(collection, doc_id), "fields": encoded},
            "updateMask": {"fieldPaths": [_field_path(k) for k in encoded]},
            "currentDocument": {"exists": True},
        }
        if transforms:
            write["updateTransforms"] = transforms
        try:
            await self._commit([write])
        except FirestoreNotFound as e:
            raise DocumentNotFoundError(collection, doc_id) from e
        logger.debug("Document updated %s/%s fields=%s", collection, doc_id, sorted(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._commit([{"delete": self._doc_name(collection, doc_id)}])
        logger.debug("Document deleted %s/%s", collection, doc_id)

    async def close(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
        if self._owns_client:
            await self._client.aclose()
