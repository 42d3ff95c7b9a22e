# src/taskboard_sync/core/errors.py

"""
Error taxonomy.

Local errors (ValidationError, InvalidStatusError) are raised before anything
reaches the remote store. Remote errors are surfaced to the caller as-is,
with the store's own exception chained as __cause__. Nothing here retries.
"""

from __future__ import annotations


class TaskBoardError(Exception):
    """Base class for all taskboard_sync errors."""


class ValidationError(TaskBoardError):
    """User input rejected locally (e.g. empty task name)."""


class InvalidStatusError(ValidationError):
    """Status value outside {To Do, In Progress, Done}."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid status: {value!r}")
        self.value = value


class RemoteWriteError(TaskBoardError):
    """A create/update/delete request failed at the store boundary."""

    def __init__(self, operation: str, task_id: str | None, message: str) -> None:
        target = f" task_id={task_id}" if task_id else ""
        super().__init__(f"{operation} failed{target}: {message}")
        self.operation = operation
        self.task_id = task_id


class SubscriptionError(TaskBoardError):
    """The change stream failed or disconnected; the mirror is stale."""


class RemoteStoreError(TaskBoardError):
    """Raised by concrete stores when a request cannot be served."""


class DocumentNotFoundError(RemoteStoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id
