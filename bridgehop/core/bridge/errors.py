"""
Bridge Error Classification

Every exception caught by the fallback orchestrator is classified once. The
category decides whether the next provider is tried (no route, network) or
the error is surfaced immediately (execution failures such as a rejected
signature, which would only re-prompt the user).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class BridgeErrorType(str, Enum):
    """Categories of bridge failures."""

    NO_ROUTES = "NO_ROUTES"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"  # execution error refinement
    USER_REJECTED = "USER_REJECTED"                # execution error refinement
    UNKNOWN = "UNKNOWN"


FAILOVER_ERROR_TYPES = frozenset({BridgeErrorType.NO_ROUTES, BridgeErrorType.NETWORK_ERROR})


class BridgeError(Exception):
    """Base class for failures raised by the bridge engine."""

    error_type: BridgeErrorType = BridgeErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}


class NoRoutesError(BridgeError):
    """The backend has no route for this token pair."""

    error_type = BridgeErrorType.NO_ROUTES

    def __init__(self, message: str = "No routes found", **kwargs: Any):
        super().__init__(message, **kwargs)


class UnsupportedRouteError(BridgeError):
    """No configured provider supports the chain pair; never retried."""

    error_type = BridgeErrorType.NO_ROUTES

    def __init__(self, from_chain_id: int, to_chain_id: int):
        super().__init__(
            f"No bridge providers support route {from_chain_id} -> {to_chain_id}",
            details={"from_chain_id": from_chain_id, "to_chain_id": to_chain_id},
        )
        self.from_chain_id = from_chain_id
        self.to_chain_id = to_chain_id


class BridgeNetworkError(BridgeError):
    error_type = BridgeErrorType.NETWORK_ERROR


class BridgeTimeoutError(BridgeError):
    error_type = BridgeErrorType.TIMEOUT


class PollingTimeoutError(BridgeTimeoutError):
    """Status polling gave up before a terminal status was observed."""

    def __init__(self, message: str = "Bridge status polling timeout", **kwargs: Any):
        super().__init__(message, **kwargs)


class BridgeExecutionError(BridgeError):
    error_type = BridgeErrorType.EXECUTION_ERROR


class UserRejectedError(BridgeExecutionError):
    error_type = BridgeErrorType.USER_REJECTED

    def __init__(self, message: str = "User rejected the request", **kwargs: Any):
        super().__init__(message, **kwargs)


class InsufficientBalanceError(BridgeExecutionError):
    error_type = BridgeErrorType.INSUFFICIENT_BALANCE

    def __init__(self, message: str = "Insufficient balance", **kwargs: Any):
        super().__init__(message, **kwargs)


class BridgeStatusError(BridgeExecutionError):
    """The backend reported a terminal failure or refund for the transfer."""

    def __init__(self, status: str, details: Optional[str] = None, **kwargs: Any):
        super().__init__(f"Bridge {status}: {details or 'Unknown error'}", **kwargs)
        self.status = status


class AllProvidersFailedError(BridgeError):
    """No candidate provider could be attempted for the route."""

    def __init__(self, message: str = "All bridge providers failed", **kwargs: Any):
        super().__init__(message, **kwargs)


class BridgeOperationCancelled(Exception):
    """Raised when an abort signal fires.

    Not a ``BridgeError``; it never triggers fallback.
    """

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason or "Bridge operation cancelled")
        self.reason = reason


_NO_ROUTE_PATTERNS = ("no routes found", "no route", "no_swap_routes_found")
_USER_REJECTED_PATTERNS = ("user rejected", "user denied", "rejected the request")
_NETWORK_PATTERNS = ("network error", "fetch failed", "connection", "unreachable", "econnrefused")
_TIMEOUT_PATTERNS = ("timeout", "timed out")
_EXECUTION_PATTERNS = ("execution reverted", "revert", "useroperation failed", "approval failed")


def _error_code(error: BaseException) -> Any:
    return getattr(error, "code", None)


def categorize_bridge_error(error: Optional[BaseException]) -> BridgeErrorType:
    """Classify an exception into a ``BridgeErrorType``."""

    if error is None:
        return BridgeErrorType.UNKNOWN

    if isinstance(error, BridgeError):
        return error.error_type

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return BridgeErrorType.TIMEOUT

    if isinstance(error, httpx.RequestError):
        return BridgeErrorType.NETWORK_ERROR

    message = str(error).lower()

    if isinstance(error, httpx.HTTPStatusError):
        body = error.response.text.lower() if error.response is not None else ""
        if any(pattern in body for pattern in _NO_ROUTE_PATTERNS):
            return BridgeErrorType.NO_ROUTES
        if error.response is not None and (error.response.status_code >= 500 or error.response.status_code == 429):
            return BridgeErrorType.NETWORK_ERROR

    if _error_code(error) in ("ACTION_REJECTED", 4001):
        return BridgeErrorType.USER_REJECTED

    if "insufficient" in message and ("balance" in message or "funds" in message):
        return BridgeErrorType.INSUFFICIENT_BALANCE

    if any(pattern in message for pattern in _NO_ROUTE_PATTERNS):
        return BridgeErrorType.NO_ROUTES

    if any(pattern in message for pattern in _USER_REJECTED_PATTERNS):
        return BridgeErrorType.USER_REJECTED

    if any(pattern in message for pattern in _NETWORK_PATTERNS):
        return BridgeErrorType.NETWORK_ERROR

    if any(pattern in message for pattern in _TIMEOUT_PATTERNS):
        return BridgeErrorType.TIMEOUT

    if any(pattern in message for pattern in _EXECUTION_PATTERNS):
        return BridgeErrorType.EXECUTION_ERROR

    return BridgeErrorType.UNKNOWN


def is_failover_error(error_type: BridgeErrorType) -> bool:
    return error_type in FAILOVER_ERROR_TYPES


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BridgeErrorMessage:
    title: str
    description: str
    is_retryable: bool
    error_type: BridgeErrorType = BridgeErrorType.UNKNOWN

    @property
    def severity(self) -> str:
        return "medium" if self.is_retryable else "high"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.error_type.value,
            "title": self.title,
            "description": self.description,
            "isRetryable": self.is_retryable,
            "severity": self.severity,
        }


BRIDGE_ERROR_MESSAGES: Dict[BridgeErrorType, BridgeErrorMessage] = {
    BridgeErrorType.INSUFFICIENT_BALANCE: BridgeErrorMessage(
        title="Insufficient Balance",
        description="You do not have enough tokens to complete this transaction.",
        is_retryable=False,
        error_type=BridgeErrorType.INSUFFICIENT_BALANCE,
    ),
    BridgeErrorType.NO_ROUTES: BridgeErrorMessage(
        title="No Bridge Route Available",
        description="No route found for this token pair. The token may not be supported on the destination chain.",
        is_retryable=False,
        error_type=BridgeErrorType.NO_ROUTES,
    ),
    BridgeErrorType.NETWORK_ERROR: BridgeErrorMessage(
        title="Network Error",
        description="A network error occurred. Please try again.",
        is_retryable=True,
        error_type=BridgeErrorType.NETWORK_ERROR,
    ),
    BridgeErrorType.TIMEOUT: BridgeErrorMessage(
        title="Bridge Timed Out",
        description="The bridge did not respond in time. Check your wallet activity before retrying.",
        is_retryable=True,
        error_type=BridgeErrorType.TIMEOUT,
    ),
    BridgeErrorType.USER_REJECTED: BridgeErrorMessage(
        title="Transaction Cancelled",
        description="You cancelled the transaction.",
        is_retryable=False,
        error_type=BridgeErrorType.USER_REJECTED,
    ),
    BridgeErrorType.EXECUTION_ERROR: BridgeErrorMessage(
        title="Bridge Transaction Failed",
        description="The bridge transaction could not be completed.",
        is_retryable=False,
        error_type=BridgeErrorType.EXECUTION_ERROR,
    ),
    BridgeErrorType.UNKNOWN: BridgeErrorMessage(
        title="Bridge Error",
        description="An error occurred during bridging. Please try again.",
        is_retryable=True,
        error_type=BridgeErrorType.UNKNOWN,
    ),
}


def get_bridge_error_message(
    error: Optional[BaseException],
    *,
    retry_count: int = 0,
) -> BridgeErrorMessage:
    error_type = categorize_bridge_error(error)
    base = BRIDGE_ERROR_MESSAGES[error_type]
    if retry_count > 0:
        return BridgeErrorMessage(
            title=base.title,
            description=f"{base.description} (Attempt {retry_count + 1})",
            is_retryable=base.is_retryable,
            error_type=error_type,
        )
    return base


def should_auto_retry_error(error_type: BridgeErrorType, retry_count: int, max_retries: int = 3) -> bool:
    if retry_count >= max_retries:
        return False
    return BRIDGE_ERROR_MESSAGES[error_type].is_retryable


def calculate_retry_delay(error_type: BridgeErrorType, retry_count: int, base_delay: float = 2.0) -> float:
    """Linear delay in seconds: 2s, 4s, 6s..."""

    return base_delay * (retry_count + 1)
