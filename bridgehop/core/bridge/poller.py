"""Status polling with exponential backoff and cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterator, Optional, Protocol, TypeVar

import httpx

from ...config import settings
from .errors import BridgeOperationCancelled, PollingTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class AbortSignal:
    """Set-once cancellation flag observed by fetches and sleeps.

    A child signal is aborted when either it or its parent is.
    """

    def __init__(self, parent: Optional["AbortSignal"] = None) -> None:
        self._event = asyncio.Event()
        self._parent = parent
        self._reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set() or (self._parent is not None and self._parent.aborted)

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return None

    def abort(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        if self._parent is None:
            await self._event.wait()
            return

        waiters = [asyncio.ensure_future(self._event.wait()), asyncio.ensure_future(self._parent.wait())]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise BridgeOperationCancelled(self.reason)


async def race_abort(awaitable: Awaitable[T], signal: Optional[AbortSignal]) -> T:
    """Await ``awaitable`` unless ``signal`` fires first.

    On abort the pending work is cancelled and ``BridgeOperationCancelled`` is
    raised; the abort wins if both finish in the same loop iteration.
    """

    if signal is None:
        return await awaitable

    if signal.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise BridgeOperationCancelled(signal.reason)

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if signal.aborted:
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
        raise BridgeOperationCancelled(signal.reason)

    return work.result()


@contextmanager
def abort_after(seconds: float, parent: Optional[AbortSignal] = None) -> Iterator[AbortSignal]:
    """Yield a signal that aborts after an absolute wall-clock limit.

    The yielded signal also follows ``parent``. The timer handle is cancelled
    on every exit path, and a cancellation caused by the timer surfaces as
    ``PollingTimeoutError``.
    """

    loop = asyncio.get_running_loop()
    signal = AbortSignal(parent)
    expired = False

    def _expire() -> None:
        nonlocal expired
        expired = True
        signal.abort(f"exceeded {seconds:g}s monitoring limit")

    handle = loop.call_later(seconds, _expire)
    try:
        yield signal
    except BridgeOperationCancelled as exc:
        if expired:
            raise PollingTimeoutError(f"Bridge monitoring exceeded {seconds:g}s") from exc
        raise
    finally:
        handle.cancel()


class PollStatus(Protocol):
    @property
    def is_terminal(self) -> bool:
        ...


S = TypeVar("S", bound=PollStatus)


@dataclass
class PollOptions:
    max_attempts: int = 60
    interval_s: float = 3.0
    backoff_multiplier: float = 1.5
    max_interval_s: float = 30.0

    @classmethod
    def from_settings(cls) -> "PollOptions":
        return cls(
            max_attempts=settings.status_poll_max_attempts,
            interval_s=settings.status_poll_initial_interval_seconds,
            backoff_multiplier=settings.status_poll_backoff_multiplier,
            max_interval_s=settings.status_poll_max_interval_seconds,
        )

    def next_interval(self, current: float) -> float:
        return min(current * self.backoff_multiplier, self.max_interval_s)


class BridgeStatusPoller(Generic[S]):
    """Polls ``fetch_status`` until a terminal status, the attempt cap, or abort.

    Transient HTTP failures are logged and polling continues on the same
    backoff schedule.
    """

    def __init__(
        self,
        fetch_status: Callable[[str], Awaitable[S]],
        *,
        options: Optional[PollOptions] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        on_status: Optional[Callable[[S], Awaitable[None]]] = None,
        name: str = "bridge",
    ) -> None:
        self._fetch_status = fetch_status
        self.options = options or PollOptions.from_settings()
        self._sleep = sleep or asyncio.sleep
        self._on_status = on_status
        self._name = name

    async def poll(
        self,
        request_id: str,
        options: Optional[PollOptions] = None,
        signal: Optional[AbortSignal] = None,
    ) -> S:
        opts = options or self.options
        interval = opts.interval_s

        for attempt in range(1, opts.max_attempts + 1):
            if signal is not None:
                signal.raise_if_aborted()

            try:
                status = await race_abort(self._fetch_status(request_id), signal)
            except httpx.TimeoutException:
                logger.warning("[%s] Timeout during status polling for %s, will retry", self._name, request_id)
            except httpx.HTTPError as exc:
                logger.warning("[%s] Network error during status polling for %s, will retry: %s", self._name, request_id, exc)
            except ValueError as exc:
                logger.warning("[%s] Malformed status response for %s, will retry: %s", self._name, request_id, exc)
            else:
                logger.debug("[%s] Status poll %s attempt=%d terminal=%s", self._name, request_id, attempt, status.is_terminal)
                if self._on_status is not None:
                    await self._on_status(status)
                if status.is_terminal:
                    return status

            if attempt == opts.max_attempts:
                break

            await race_abort(self._sleep(interval), signal)
            interval = opts.next_interval(interval)

        raise PollingTimeoutError(
            f"Bridge status polling timeout after {opts.max_attempts} attempts",
            details={"request_id": request_id},
        )
