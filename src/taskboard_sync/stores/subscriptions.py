# src/taskboard_sync/stores/subscriptions.py

from __future__ import annotations

"""
Subscription primitives shared by the concrete stores.

- QueueSubscription: the store pushes snapshots into it (in-process stores).
- PollingSubscription: re-reads the collection every interval and yields
  only when the store reports a new version (SQLite, Firestore REST).

Both end iteration once cancel() is called and never reorder snapshots.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from ..core.ports import Snapshot

logger = logging.getLogger(__name__)

_END = object()


class QueueSubscription:
    def __init__(self, label: str, on_cancel: Callable[[QueueSubscription], None] | None = None) -> None:
        self.label = label
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._cancelled = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, snapshot: Snapshot) -> None:
        if not self._cancelled:
            self._queue.put_nowait(snapshot)

    def fail(self, exc: BaseException) -> None:
        """Terminate the stream with an error (seen by the consumer after queued snapshots)."""
        if not self._cancelled:
            self._queue.put_nowait(exc)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(_END)
        if self._on_cancel is not None:
            self._on_cancel(self)

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Snapshot]:
        while not self._cancelled:
            item = await self._queue.get()
            if item is _END or self._cancelled:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


# fetch(known_version) -> (version, snapshot or None when unchanged)
PollFetch = Callable[[Any], Awaitable[tuple[Any, Snapshot | None]]]


class PollingSubscription:
    """
    Poll-based change stream.

    Transient fetch errors are retried on the next tick; after
    `max_consecutive_errors` failures in a row the last error ends the stream.
    """

    def __init__(
        self,
        fetch: PollFetch,
        *,
        interval: float,
        label: str,
        max_consecutive_errors: int = 3,
    ) -> None:
        self.label = label
        self._fetch = fetch
        self._interval = max(0.01, float(interval))
        self._max_errors = max(1, int(max_consecutive_errors))
        self._cancelled = False
        self._wake = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._wake.set()

    def __aiter__(self) -> AsyncIterator[Snapshot]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Snapshot]:
        version: Any = None
        errors = 0
        first = True

        while not self._cancelled:
            try:
                new_version, snapshot = await self._fetch(None if first else version)
            except Exception:
                errors += 1
                if errors >= self._max_errors:
                    raise
                logger.warning(
                    "Poll failed subscription=%s (%d/%d)", self.label, errors, self._max_errors, exc_info=True
                )
            else:
                errors = 0
                if self._cancelled:
                    return
                if snapshot is not None and (first or new_version != version):
                    first = False
                    version = new_version
                    logger.debug("Snapshot emitted subscription=%s version=%s", self.label, version)
                    yield snapshot

            await self._sleep()

    async def _sleep(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
