# src/taskboard_sync/sync/engine.py

"""
Sync engine.

Keeps a local mirror of the remote task collection:
- one subscription, consumed by one pump task (the mirror's only writer),
- each snapshot replaces the mirror wholesale (no diffing, no merge),
- mutations are forwarded to the remote store and never touch the mirror;
  their effect shows up through a later snapshot.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..core.errors import RemoteWriteError, SubscriptionError, ValidationError
from ..core.ports import Direction, RemoteStore, Subscription
from ..tasks.partition import BoardColumns, partition_board
from ..tasks.status_machine import TaskStatusMachine
from ..tasks.task_models import F_CREATED_AT, F_STATUS, TaskDraft, TaskEdit, TaskRecord

logger = logging.getLogger(__name__)


class SyncPhase(StrEnum):
    IDLE = "idle"  # not subscribed (never started, or stopped)
    LOADING = "loading"  # subscribed, first snapshot not delivered yet
    LIVE = "live"
    STALE = "stale"  # change stream failed; mirror kept as last seen


@dataclass(frozen=True, slots=True)
class BoardState:
    """What the display layer receives on every change."""

    phase: SyncPhase
    columns: BoardColumns
    total: int
    error: SubscriptionError | None = None

    @property
    def is_loading(self) -> bool:
        return self.phase == SyncPhase.LOADING

    @property
    def is_empty(self) -> bool:
        return self.phase == SyncPhase.LIVE and self.total == 0


BoardListener = Callable[[BoardState], None]


@dataclass(frozen=True, slots=True)
class BoardActions:
    """Callbacks handed to the display layer for user intents."""

    create: Callable[[Mapping[str, Any]], Awaitable[str]]
    change_status: Callable[[str, Any], Awaitable[None]]
    remove: Callable[[str], Awaitable[None]]
    edit: Callable[[str, Mapping[str, Any]], Awaitable[None]]


class SyncEngine:
    def __init__(
        self,
        store: RemoteStore,
        *,
        collection: str = "tasks",
        status_machine: TaskStatusMachine | None = None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._machine = status_machine or TaskStatusMachine()

        self._mirror: tuple[TaskRecord, ...] = ()
        self._phase = SyncPhase.IDLE
        self._last_error: SubscriptionError | None = None

        self._subscription: Subscription | None = None
        self._pump: asyncio.Task[None] | None = None
        # Bumped by start()/stop(); a pump only applies snapshots of its own generation.
        self._generation = 0

        self._listeners: list[BoardListener] = []

    # ---- read side ----

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def mirror(self) -> tuple[TaskRecord, ...]:
        return self._mirror

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def last_error(self) -> SubscriptionError | None:
        return self._last_error

    @property
    def started(self) -> bool:
        return self._subscription is not None

    def find(self, task_id: str) -> TaskRecord | None:
        for record in self._mirror:
            if record.id == task_id:
                return record
        return None

    def board(self) -> BoardState:
        mirror = self._mirror
        return BoardState(
            phase=self._phase,
            columns=partition_board(mirror),
            total=len(mirror),
            error=self._last_error if self._phase == SyncPhase.STALE else None,
        )

    def actions(self) -> BoardActions:
        return BoardActions(
            create=self.create,
            change_status=self.change_status,
            remove=self.remove,
            edit=self.edit,
        )

    def add_listener(self, listener: BoardListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BoardListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # ---- lifecycle ----

    def start(self) -> None:
        """Open the single subscription. No-op while already started."""
        if self._subscription is not None:
            logger.debug("SyncEngine already started collection=%s", self._collection)
            return

        loop = asyncio.get_running_loop()

        self._generation += 1
        generation = self._generation
        self._last_error = None
        self._mirror = ()

        subscription = self._store.subscribe(self._collection, F_CREATED_AT, Direction.DESCENDING)
        self._subscription = subscription
        self._pump = loop.create_task(
            self._consume(subscription, generation),
            name=f"sync-pump:{self._collection}",
        )
        logger.info("SyncEngine started collection=%s", self._collection)
        self._set_phase(SyncPhase.LOADING)

    def stop(self) -> None:
        """
        Release the subscription.

        After this returns no snapshot is applied, even one already in flight.
        Pending create/update/delete calls are left to finish on their own.
        """
        if self._subscription is None and (self._pump is None or self._pump.done()):
            self._set_phase(SyncPhase.IDLE)
            return

        self._generation += 1
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._pump is not None and not self._pump.done():
            self._pump.cancel()

        logger.info("SyncEngine stopped collection=%s", self._collection)
        self._set_phase(SyncPhase.IDLE)

    async def wait_stopped(self) -> None:
        """Wait until the pump task has exited (after stop() or a stream failure)."""
        pump = self._pump
        if pump is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await pump

    async def __aenter__(self) -> SyncEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()
        await self.wait_stopped()

    async def _consume(self, subscription: Subscription, generation: int) -> None:
        try:
            async for documents in subscription:
                if generation != self._generation:
                    logger.debug("Discarding snapshot delivered after stop()")
                    return
                self._apply_snapshot(documents)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(subscription, generation, f"change stream failed: {e}", e)
            return

        if generation == self._generation and not subscription.cancelled:
            self._fail(subscription, generation, "change stream ended unexpectedly", None)

    def _fail(
        self,
        subscription: Subscription,
        generation: int,
        message: str,
        cause: BaseException | None,
    ) -> None:
        if generation != self._generation:
            return
        err = SubscriptionError(f"{self._collection}: {message}")
        err.__cause__ = cause
        logger.error("SyncEngine subscription lost collection=%s: %s", self._collection, message)

        subscription.cancel()
        self._subscription = None
        self._last_error = err
        self._set_phase(SyncPhase.STALE)

    # ---- snapshot handling ----

    def on_snapshot(self, documents: Iterable[Mapping[str, Any]]) -> bool:
        """
        Replace the mirror with the given snapshot.

        Returns False (and changes nothing) when the engine is not started.
        """
        if self._subscription is None:
            logger.debug("Snapshot ignored: engine not started")
            return False
        self._apply_snapshot(documents)
        return True

    def _apply_snapshot(self, documents: Iterable[Mapping[str, Any]]) -> None:
        records: list[TaskRecord] = []
        seen: set[str] = set()
        for doc in documents:
            try:
                record = TaskRecord.from_document(doc)
            except Exception:
                logger.exception("Skipping unreadable document id=%s", doc.get("id"))
                continue
            if record is None:
                continue
            if record.id in seen:
                logger.warning("Duplicate task id=%s in snapshot; keeping the first", record.id)
                continue
            seen.add(record.id)
            records.append(record)

        records.sort(key=lambda r: r.sort_key, reverse=True)

        # Single reference swap: readers see either the old or the new mirror.
        self._mirror = tuple(records)
        self._phase = SyncPhase.LIVE
        logger.debug("Snapshot applied collection=%s tasks=%d", self._collection, len(records))
        self._notify()

    def _set_phase(self, phase: SyncPhase) -> None:
        if phase == self._phase:
            return
        self._phase = phase
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.board()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Board listener failed")

    # ---- mutations (forwarded to the remote store only) ----

    async def create(self, fields: Mapping[str, Any] | TaskDraft) -> str:
        """Create a task in To Do. Visible only once a snapshot carries it."""
        draft = fields if isinstance(fields, TaskDraft) else TaskDraft.from_fields(fields)
        try:
            doc_id = await self._store.add(self._collection, draft.to_payload())
        except Exception as e:
            logger.warning("Task create failed name=%r: %s", draft.name, e)
            raise RemoteWriteError("create", None, str(e)) from e

        logger.info("Task create forwarded id=%s name=%r", doc_id, draft.name)
        return str(doc_id)

    async def change_status(self, task_id: str, new_status: Any) -> None:
        task_id = self._check_id(task_id)
        current = self.find(task_id)
        status = self._machine.validate_transition(current.status if current else None, new_status)
        if current is None:
            logger.debug("Task id=%s not in mirror; forwarding status change anyway", task_id)

        await self._update(task_id, {F_STATUS: status.value})
        logger.info("Task status change forwarded id=%s -> %s", task_id, status.value)

    async def edit(self, task_id: str, changes: Mapping[str, Any]) -> None:
        task_id = self._check_id(task_id)
        task_edit = TaskEdit.from_fields(changes)

        status = None
        if task_edit.status is not None:
            current = self.find(task_id)
            status = self._machine.validate_transition(current.status if current else None, task_edit.status)

        payload = task_edit.to_payload(status)
        await self._update(task_id, payload)
        logger.info("Task edit forwarded id=%s fields=%s", task_id, sorted(payload))

    async def remove(self, task_id: str) -> None:
        """Delete a task. It leaves the mirror with the first snapshot without it."""
        task_id = self._check_id(task_id)
        try:
            await self._store.delete(self._collection, task_id)
        except Exception as e:
            logger.warning("Task delete failed id=%s: %s", task_id, e)
            raise RemoteWriteError("delete", task_id, str(e)) from e
        logger.info("Task delete forwarded id=%s", task_id)

    async def _update(self, task_id: str, payload: Mapping[str, Any]) -> None:
        try:
            await self._store.update(self._collection, task_id, payload)
        except Exception as e:
            logger.warning("Task update failed id=%s: %s", task_id, e)
            raise RemoteWriteError("update", task_id, str(e)) from e

    @staticmethod
    def _check_id(task_id: Any) -> str:
        s = str(task_id or "").strip()
        if not s:
            raise ValidationError("Task id is required")
        return s
