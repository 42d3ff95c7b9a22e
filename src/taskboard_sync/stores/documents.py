# src/taskboard_sync/stores/documents.py

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Any

from ..core.ports import Direction, Document

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 20


def new_document_id() -> str:
    """Random 20-char id, the same shape Firestore auto-ids have."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def _sort_value(value: Any) -> tuple[int, Any]:
    # None sorts first ascending; values of different kinds never compare directly.
    if value is None:
        return (0, "")
    if isinstance(value, datetime):
        return (2, value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (3, str(value))


def sort_documents(docs: list[Document], order_by: str, direction: Direction) -> list[Document]:
    """Order snapshot documents by one field, ties by id (same direction)."""
    docs.sort(
        key=lambda d: (_sort_value(d.get(order_by)), str(d.get("id", ""))),
        reverse=direction == Direction.DESCENDING,
    )
    return docs
