# src/taskboard_sync/tasks/task_models.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError
from ..core.ports import SERVER_TIMESTAMP, Document

logger = logging.getLogger(__name__)

# Wire field names.
F_NAME = "name"
F_ASSIGNED_TO = "assignedTo"
F_PRIORITY = "priority"
F_STATUS = "status"
F_CREATED_AT = "createdAt"
F_DUE_AT = "dueAt"

# Field names written by the first web client of the board.
_LEGACY_ALIASES = {"assigned": F_ASSIGNED_TO, "due": F_DUE_AT}

_INPUT_ALIASES = {
    **_LEGACY_ALIASES,
    "assigned_to": F_ASSIGNED_TO,
    "due_at": F_DUE_AT,
    "created_at": F_CREATED_AT,
}


class TaskStatus(StrEnum):
    """Board column. Values are what the store persists."""

    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class TaskPriority(StrEnum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"

    @classmethod
    def parse(cls, raw: Any) -> TaskPriority:
        if isinstance(raw, TaskPriority):
            return raw
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.NORMAL
        key = str(raw).strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValidationError(f"Invalid priority: {raw!r} (expected Low, Normal or High)")

    @classmethod
    def from_db(cls, raw: Any) -> TaskPriority:
        try:
            return cls.parse(raw)
        except ValidationError:
            return cls.NORMAL


def _from_epoch(seconds: float) -> datetime:
    # inf, nan and out-of-range epochs (OverflowError / OSError) are unreadable too.
    try:
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValueError(f"Timestamp out of range: {seconds!r}") from e


def coerce_timestamp(raw: Any) -> datetime | None:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Accepts datetime (naive = UTC), epoch seconds, RFC 3339 strings and
    {"seconds": ..., "nanos": ...} mappings. None / "" -> None.
    Raises ValueError for anything else.
    """
    if raw is None or raw is SERVER_TIMESTAMP:
        return None
    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            return raw.replace(tzinfo=timezone.utc)
        try:
            return raw.astimezone(timezone.utc)
        except OverflowError as e:
            raise ValueError(f"Timestamp out of range: {raw!r}") from e
    if isinstance(raw, bool):
        raise ValueError(f"Not a timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        return _from_epoch(raw)
    if isinstance(raw, Mapping) and "seconds" in raw:
        try:
            seconds = float(raw["seconds"]) + float(raw.get("nanos", 0) or 0) / 1e9
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"Not a timestamp: {raw!r}") from e
        return _from_epoch(seconds)
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        return coerce_timestamp(dt)
    raise ValueError(f"Not a timestamp: {raw!r}")


def _canonical_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in fields.items():
        out[_INPUT_ALIASES.get(key, key)] = value
    return out


@dataclass(frozen=True, slots=True)
class TaskRecord:
    """One task as mirrored from the remote store. Immutable for readers."""

    id: str
    name: str
    status: TaskStatus
    created_at: datetime
    assigned_to: str = ""
    priority: TaskPriority = TaskPriority.NORMAL
    due_at: datetime | None = None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> TaskRecord | None:
        """
        Build a record from a raw snapshot document.

        Returns None when the document must stay invisible:
        - createdAt not assigned by the store yet (pending write)
        - status outside the three board columns
        - missing id / empty name / unreadable timestamps
        """
        data = dict(doc)
        for legacy, canonical in _LEGACY_ALIASES.items():
            if canonical not in data and legacy in data:
                data[canonical] = data[legacy]

        doc_id = str(data.get("id") or "").strip()
        if not doc_id:
            logger.warning("Skipping document without id: %r", doc)
            return None

        try:
            created_at = coerce_timestamp(data.get(F_CREATED_AT))
        except ValueError:
            logger.warning("Skipping task id=%s: unreadable createdAt=%r", doc_id, data.get(F_CREATED_AT))
            return None
        if created_at is None:
            logger.debug("Task id=%s has a pending createdAt; hidden until acknowledged", doc_id)
            return None

        try:
            status = TaskStatus(data.get(F_STATUS))
        except ValueError:
            logger.warning("Skipping task id=%s: unknown status=%r", doc_id, data.get(F_STATUS))
            return None

        name = str(data.get(F_NAME) or "").strip()
        if not name:
            logger.warning("Skipping task id=%s: empty name", doc_id)
            return None

        try:
            due_at = coerce_timestamp(data.get(F_DUE_AT))
        except ValueError:
            logger.warning("Task id=%s: unreadable dueAt=%r; treating as no deadline", doc_id, data.get(F_DUE_AT))
            due_at = None

        return cls(
            id=doc_id,
            name=name,
            status=status,
            created_at=created_at,
            assigned_to=str(data.get(F_ASSIGNED_TO) or "").strip(),
            priority=TaskPriority.from_db(data.get(F_PRIORITY)),
            due_at=due_at,
        )


def _parse_due(raw: Any) -> datetime | None:
    try:
        return coerce_timestamp(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid due date: {raw!r}") from e


def _parse_name(raw: Any) -> str:
    name = str(raw or "").strip()
    if not name:
        raise ValidationError("Task name is required")
    return name


@dataclass(frozen=True, slots=True)
class TaskDraft:
    """Validated input of a create action."""

    name: str
    assigned_to: str = ""
    priority: TaskPriority = TaskPriority.NORMAL
    due_at: datetime | None = None

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> TaskDraft:
        data = _canonical_fields(fields)
        if F_CREATED_AT in data:
            raise ValidationError("createdAt is assigned by the store")
        if "id" in data:
            raise ValidationError("id is assigned by the store")
        if data.get(F_STATUS) is not None:
            from .status_machine import TaskStatusMachine

            if TaskStatusMachine().normalize(data[F_STATUS]) is not TaskStatus.TODO:
                raise ValidationError("New tasks always start in To Do")

        return cls(
            name=_parse_name(data.get(F_NAME)),
            assigned_to=str(data.get(F_ASSIGNED_TO) or "").strip(),
            priority=TaskPriority.parse(data.get(F_PRIORITY)),
            due_at=_parse_due(data.get(F_DUE_AT)),
        )

    def to_payload(self) -> Document:
        return {
            F_NAME: self.name,
            F_ASSIGNED_TO: self.assigned_to,
            F_PRIORITY: self.priority.value,
            F_STATUS: TaskStatus.TODO.value,
            F_CREATED_AT: SERVER_TIMESTAMP,
            F_DUE_AT: self.due_at,
        }


_EDITABLE = (F_NAME, F_ASSIGNED_TO, F_PRIORITY, F_DUE_AT, F_STATUS)


@dataclass(frozen=True, slots=True)
class TaskEdit:
    """
    Validated partial edit of an existing task.

    Only fields present in the input end up in the payload. `status` is kept
    raw here; the status machine owns its normalization.
    """

    changes: Mapping[str, Any]

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> TaskEdit:
        data = _canonical_fields(fields)
        if not data:
            raise ValidationError("Nothing to change")

        changes: dict[str, Any] = {}
        for key, value in data.items():
            if key not in _EDITABLE:
                raise ValidationError(f"Field {key!r} cannot be edited")
            if key == F_NAME:
                changes[key] = _parse_name(value)
            elif key == F_ASSIGNED_TO:
                changes[key] = str(value or "").strip()
            elif key == F_PRIORITY:
                changes[key] = TaskPriority.parse(value).value
            elif key == F_DUE_AT:
                changes[key] = _parse_due(value)
            else:
                changes[key] = value
        return cls(changes=changes)

    @property
    def status(self) -> Any:
        return self.changes.get(F_STATUS)

    def to_payload(self, status: TaskStatus | None = None) -> Document:
        payload = {k: v for k, v in self.changes.items() if k != F_STATUS}
        if status is not None:
            payload[F_STATUS] = status.value
        return payload


__all__ = [
    "TaskDraft",
    "TaskEdit",
    "TaskPriority",
    "TaskRecord",
    "TaskStatus",
    "coerce_timestamp",
]
