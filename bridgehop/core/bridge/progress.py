"""Progress event channel the orchestrator publishes to and callers subscribe to."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from .models import ProgressEvent

ProgressListener = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)


class ProgressChannel:
    """Fan-out of ``ProgressEvent``s to subscribed listeners.

    Listeners may be plain or async callables. A listener that raises is
    logged and skipped; delivery to the others continues.
    """

    def __init__(self) -> None:
        self._listeners: List[ProgressListener] = []
        self.last_event: Optional[ProgressEvent] = None

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: ProgressEvent) -> None:
        self.last_event = event
        for listener in list(self._listeners):
            try:
                result: Any = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Progress listener failed for %s", event.provider.value)
