"""In-memory ledger of in-flight bridge attempts.

Records exist only while an attempt is active; ``complete`` and ``fail``
remove them. Failures are forwarded to an error logger with provider, retry
count and route context.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from .errors import categorize_bridge_error, get_bridge_error_message
from .models import AttemptStatus, BridgeAttempt, BridgeProvider, OperationType

ErrorLogger = Callable[[str, Dict[str, Any]], None]

logger = logging.getLogger(__name__)


def log_bridge_error(message: str, context: Dict[str, Any]) -> None:
    """Default error logger: one structured error line per failed attempt."""

    logger.error("%s", message, extra={"bridge": context})


class AttemptTracker:
    def __init__(
        self,
        *,
        error_logger: Optional[ErrorLogger] = None,
        stale_after_seconds: float = 900.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._attempts: Dict[str, BridgeAttempt] = {}
        self._error_logger = error_logger or log_bridge_error
        self._stale_after = stale_after_seconds
        self._clock = clock

    @staticmethod
    def _new_id(now: float) -> str:
        return f"bridge_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"

    def sweep(self) -> int:
        """Drop attempts abandoned without complete/fail."""

        cutoff = self._clock() - self._stale_after
        stale = [attempt_id for attempt_id, attempt in self._attempts.items() if attempt.start_time < cutoff]
        for attempt_id in stale:
            del self._attempts[attempt_id]
        return len(stale)

    def start(
        self,
        provider: BridgeProvider,
        operation_type: OperationType,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        self.sweep()
        now = self._clock()
        attempt_id = self._new_id(now)
        self._attempts[attempt_id] = BridgeAttempt(
            id=attempt_id,
            provider=provider,
            operation_type=operation_type,
            start_time=now,
            transaction_context=dict(context or {}),
        )
        logger.debug("Bridge attempt started id=%s provider=%s op=%s", attempt_id, provider.value, operation_type.value)
        return attempt_id

    def get(self, attempt_id: str) -> Optional[BridgeAttempt]:
        return self._attempts.get(attempt_id)

    @property
    def active(self) -> List[BridgeAttempt]:
        return list(self._attempts.values())

    def update(self, attempt_id: str, **changes: Any) -> Optional[BridgeAttempt]:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return None
        for name, value in changes.items():
            if not hasattr(attempt, name):
                raise AttributeError(f"BridgeAttempt has no field {name!r}")
            setattr(attempt, name, value)
        return attempt

    def increment_retry_count(self, attempt_id: str) -> None:
        attempt = self._attempts.get(attempt_id)
        if attempt is not None:
            attempt.retry_count += 1

    def complete(
        self,
        attempt_id: str,
        *,
        source_tx_hash: Optional[str] = None,
        destination_tx_hash: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[BridgeAttempt]:
        attempt = self._attempts.pop(attempt_id, None)
        if attempt is None:
            return None

        attempt.status = AttemptStatus.SUCCESS
        attempt.end_time = self._clock()
        attempt.source_tx_hash = source_tx_hash or attempt.source_tx_hash
        attempt.destination_tx_hash = destination_tx_hash or attempt.destination_tx_hash
        attempt.metadata.update(metadata or {})
        return attempt

    def fail(self, attempt_id: str, error: BaseException) -> Optional[BridgeAttempt]:
        attempt = self._attempts.pop(attempt_id, None)
        if attempt is None:
            return None

        error_type = categorize_bridge_error(error)
        message = get_bridge_error_message(error, retry_count=attempt.retry_count)
        attempt.status = AttemptStatus.FAILED
        attempt.end_time = self._clock()
        attempt.error = {
            "type": error_type.value,
            "title": message.title,
            "message": str(error),
        }

        self._report(attempt)
        return attempt

    def _report(self, attempt: BridgeAttempt) -> None:
        context = {
            "attempt_id": attempt.id,
            "provider": attempt.provider.value,
            "operation": attempt.operation_type.value,
            "error": attempt.error,
            "retry_count": attempt.retry_count,
            "duration": attempt.duration,
            "route": attempt.transaction_context,
        }
        try:
            self._error_logger("Bridge attempt failed", context)
        except Exception:
            # Reporting is best-effort
            logger.warning("Bridge error logger raised for attempt %s", attempt.id, exc_info=True)

    def clear(self) -> None:
        self._attempts.clear()
