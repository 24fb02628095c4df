"""Multi-provider bridge execution engine."""

from typing import TYPE_CHECKING

from .errors import BridgeError, BridgeOperationCancelled
from .models import BridgeProvider, ExecutionResult, PriceParams, QuoteParams, UnifiedQuote

if TYPE_CHECKING:  # pragma: no cover
    from .manager import BridgeManager

__all__ = [
    "BridgeError",
    "BridgeManager",
    "BridgeOperationCancelled",
    "BridgeProvider",
    "ExecutionResult",
    "PriceParams",
    "QuoteParams",
    "UnifiedQuote",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "BridgeManager":
        from .manager import BridgeManager as _BridgeManager

        return _BridgeManager
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
