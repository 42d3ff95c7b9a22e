# tests/test_subscriptions.py

from __future__ import annotations

import asyncio

import pytest

from taskboard_sync.stores.subscriptions import PollingSubscription, QueueSubscription


class ScriptedFetch:
    """Returns the scripted (version, snapshot) answers, then repeats the last one."""

    def __init__(self, answers: list) -> None:
        self.answers = list(answers)
        self.known: list = []

    async def __call__(self, known):
        self.known.append(known)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.mark.asyncio
async def test_polling_emits_first_snapshot_and_then_only_changes() -> None:
    fetch = ScriptedFetch(
        [
            (1, [{"id": "a"}]),
            (1, None),
            (1, [{"id": "a"}]),  # same version, not emitted again
            (2, [{"id": "a"}, {"id": "b"}]),
        ]
    )
    sub = PollingSubscription(fetch, interval=0.001, label="test")
    it = sub.__aiter__()

    assert await asyncio.wait_for(it.__anext__(), timeout=1.0) == [{"id": "a"}]
    assert await asyncio.wait_for(it.__anext__(), timeout=1.0) == [{"id": "a"}, {"id": "b"}]

    assert fetch.known[0] is None
    assert set(fetch.known[1:]) <= {1, 2}

    sub.cancel()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(it.__anext__(), timeout=1.0)


@pytest.mark.asyncio
async def test_polling_retries_transient_errors() -> None:
    fetch = ScriptedFetch([OSError("blip"), OSError("blip"), (7, [])])
    sub = PollingSubscription(fetch, interval=0.001, label="test", max_consecutive_errors=3)

    assert await asyncio.wait_for(sub.__aiter__().__anext__(), timeout=1.0) == []
    sub.cancel()


@pytest.mark.asyncio
async def test_polling_gives_up_after_consecutive_errors() -> None:
    fetch = ScriptedFetch([OSError("down")])
    sub = PollingSubscription(fetch, interval=0.001, label="test", max_consecutive_errors=3)

    with pytest.raises(OSError):
        await asyncio.wait_for(sub.__aiter__().__anext__(), timeout=1.0)
    assert len(fetch.known) == 3


@pytest.mark.asyncio
async def test_queue_subscription_preserves_order_and_failure() -> None:
    sub = QueueSubscription("test")
    sub.push([{"id": "1"}])
    sub.push([{"id": "2"}])
    sub.fail(RuntimeError("gone"))

    it = sub.__aiter__()
    assert await it.__anext__() == [{"id": "1"}]
    assert await it.__anext__() == [{"id": "2"}]
    with pytest.raises(RuntimeError):
        await it.__anext__()


@pytest.mark.asyncio
async def test_queue_subscription_cancel_drops_pending_snapshots() -> None:
    cancelled = []
    sub = QueueSubscription("test", on_cancel=cancelled.append)
    sub.push([{"id": "1"}])
    sub.cancel()
    sub.cancel()
    sub.push([{"id": "2"}])

    assert cancelled == [sub]
    with pytest.raises(StopAsyncIteration):
        await sub.__aiter__().__anext__()
