"""
Tests for status polling, backoff, and cooperative cancellation.
"""

import asyncio
from dataclasses import dataclass

import httpx
import pytest

from bridgehop.core.bridge.errors import BridgeOperationCancelled, PollingTimeoutError
from bridgehop.core.bridge.poller import (
    AbortSignal,
    BridgeStatusPoller,
    PollOptions,
    abort_after,
    race_abort,
)


@dataclass
class FakeStatus:
    status: str

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "failure", "refund")


class RecordingSleep:
    def __init__(self):
        self.intervals = []

    async def __call__(self, seconds: float) -> None:
        self.intervals.append(seconds)


def _sequence_fetch(statuses):
    calls = []
    remaining = list(statuses)

    async def fetch(request_id):
        calls.append(request_id)
        item = remaining.pop(0) if remaining else statuses[-1]
        if isinstance(item, Exception):
            raise item
        return FakeStatus(item)

    return fetch, calls


# =============================================================================
# Backoff and Terminal Detection
# =============================================================================

class TestBridgeStatusPoller:
    """Tests for polling until terminal status."""

    @pytest.mark.asyncio
    async def test_returns_on_first_terminal_status(self):
        fetch, calls = _sequence_fetch(["pending", "pending", "success", "pending"])
        sleep = RecordingSleep()
        poller = BridgeStatusPoller(fetch, options=PollOptions(max_attempts=10), sleep=sleep)

        status = await poller.poll("req-1")

        assert status.status == "success"
        assert len(calls) == 3
        assert len(sleep.intervals) == 2

    @pytest.mark.asyncio
    async def test_interval_progression_is_capped(self):
        fetch, _ = _sequence_fetch(["pending"] * 6 + ["refund"])
        sleep = RecordingSleep()
        options = PollOptions(max_attempts=10, interval_s=2.0, backoff_multiplier=2.0, max_interval_s=10.0)
        poller = BridgeStatusPoller(fetch, options=options, sleep=sleep)

        await poller.poll("req-1")

        assert sleep.intervals == [2.0, 4.0, 8.0, 10.0, 10.0, 10.0]
        for current, following in zip(sleep.intervals, sleep.intervals[1:]):
            assert following == min(current * options.backoff_multiplier, options.max_interval_s)

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_timeout(self):
        fetch, calls = _sequence_fetch(["pending"])
        sleep = RecordingSleep()
        poller = BridgeStatusPoller(fetch, options=PollOptions(max_attempts=3), sleep=sleep)

        with pytest.raises(PollingTimeoutError):
            await poller.poll("req-1")

        assert len(calls) == 3
        assert len(sleep.intervals) == 2  # no sleep after the final attempt

    @pytest.mark.asyncio
    async def test_transient_errors_keep_polling(self):
        request = httpx.Request("GET", "https://api.relay.link/intents/status/v2")
        fetch, calls = _sequence_fetch([
            httpx.ReadTimeout("slow", request=request),
            httpx.ConnectError("refused", request=request),
            ValueError("bad json"),
            "success",
        ])
        poller = BridgeStatusPoller(fetch, options=PollOptions(max_attempts=5), sleep=RecordingSleep())

        status = await poller.poll("req-1")

        assert status.status == "success"
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_on_status_sees_every_status(self):
        fetch, _ = _sequence_fetch(["pending", "failure"])
        seen = []

        async def on_status(status):
            seen.append(status.status)

        poller = BridgeStatusPoller(fetch, options=PollOptions(max_attempts=5), sleep=RecordingSleep(), on_status=on_status)
        await poller.poll("req-1")

        assert seen == ["pending", "failure"]

    def test_next_interval(self):
        options = PollOptions(interval_s=3.0, backoff_multiplier=1.5, max_interval_s=5.0)
        assert options.next_interval(3.0) == 4.5
        assert options.next_interval(4.5) == 5.0


# =============================================================================
# Cancellation
# =============================================================================

class TestAbortSignal:
    """Tests for abort propagation into fetches and sleeps."""

    @pytest.mark.asyncio
    async def test_abort_during_sleep_stops_polling(self):
        fetch, calls = _sequence_fetch(["pending"])
        signal = AbortSignal()
        poller = BridgeStatusPoller(fetch, options=PollOptions(max_attempts=10, interval_s=10.0))

        task = asyncio.create_task(poller.poll("req-1", signal=signal))
        await asyncio.sleep(0.01)
        signal.abort("user closed")

        with pytest.raises(BridgeOperationCancelled) as exc_info:
            await task

        assert exc_info.value.reason == "user closed"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_abort_during_fetch_cancels_request(self):
        signal = AbortSignal()
        started = asyncio.Event()
        cancelled = False

        async def hanging_fetch(request_id):
            nonlocal cancelled
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled = True
                raise

        poller = BridgeStatusPoller(hanging_fetch, options=PollOptions(max_attempts=3))
        task = asyncio.create_task(poller.poll("req-1", signal=signal))
        await started.wait()
        signal.abort()

        with pytest.raises(BridgeOperationCancelled):
            await task
        assert cancelled is True

    @pytest.mark.asyncio
    async def test_already_aborted_signal_issues_no_fetch(self):
        fetch, calls = _sequence_fetch(["pending"])
        signal = AbortSignal()
        signal.abort()

        with pytest.raises(BridgeOperationCancelled):
            await BridgeStatusPoller(fetch).poll("req-1", signal=signal)

        assert calls == []

    @pytest.mark.asyncio
    async def test_child_follows_parent(self):
        parent = AbortSignal()
        child = AbortSignal(parent)

        parent.abort("parent gone")

        assert child.aborted is True
        assert child.reason == "parent gone"
        with pytest.raises(BridgeOperationCancelled):
            await race_abort(asyncio.sleep(5), child)

    @pytest.mark.asyncio
    async def test_race_abort_returns_result(self):
        async def work():
            return 7

        assert await race_abort(work(), AbortSignal()) == 7
        assert await race_abort(work(), None) == 7

    @pytest.mark.asyncio
    async def test_abort_after_converts_expiry_to_timeout(self):
        with pytest.raises(PollingTimeoutError):
            with abort_after(0.01) as signal:
                await race_abort(asyncio.sleep(5), signal)

    @pytest.mark.asyncio
    async def test_abort_after_keeps_caller_cancellation(self):
        parent = AbortSignal()
        parent.abort("caller")

        with pytest.raises(BridgeOperationCancelled) as exc_info:
            with abort_after(5, parent) as signal:
                await race_abort(asyncio.sleep(5), signal)

        assert exc_info.value.reason == "caller"
