"""Typed models used by the bridge subsystem."""

from __future__ import annotations

import copy
import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .constants import RELAY_TERMINAL_STATUSES


class BridgeProvider(str, Enum):
    """Closed set of supported bridge backends."""

    RELAY = "relay"
    BUNGEE = "bungee"


class OperationType(str, Enum):
    PRICE = "price"
    QUOTE = "quote"
    EXECUTE = "execute"


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ProgressState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    COMPLETE = "complete"


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainSupport:
    origins: Tuple[int, ...]
    destinations: Tuple[int, ...]
    min_amount_usd: Optional[float] = None
    max_amount_usd: Optional[float] = None


@dataclass(frozen=True)
class ProviderCapabilities:
    supports_erc4337: bool = True
    supports_gas_sponsorship: bool = True
    supports_partial_fill: bool = True
    max_transaction_value_usd: float = 0.0
    min_transaction_value_usd: float = 0.0
    supported_features: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["supported_features"] = list(self.supported_features)
        return data


@dataclass(frozen=True)
class ProviderTimeouts:
    quote_timeout_s: float
    execution_timeout_s: float


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    backoff_multiplier: float
    base_delay_s: float


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    api_key: Optional[str] = None
    requests_per_second: Optional[int] = None
    burst_limit: Optional[int] = None


@dataclass(frozen=True)
class ProviderConfig:
    """Static description of one backend. Lower ``priority`` is preferred."""

    provider: BridgeProvider
    enabled: bool
    priority: int
    supported_chains: ChainSupport
    capabilities: ProviderCapabilities
    timeouts: ProviderTimeouts
    retry_policy: RetryPolicy
    api_config: ApiConfig

    def supports_pair(self, from_chain_id: int, to_chain_id: int) -> bool:
        return (
            from_chain_id in self.supported_chains.origins
            and to_chain_id in self.supported_chains.destinations
        )


@dataclass(frozen=True)
class BridgeDefaults:
    primary_provider: BridgeProvider = BridgeProvider.RELAY
    fallback_provider: BridgeProvider = BridgeProvider.BUNGEE
    enable_auto_fallback: bool = True
    max_providers_to_try: int = 3


@dataclass(frozen=True)
class BridgeConfig:
    providers: Dict[BridgeProvider, ProviderConfig]
    fallback_enabled: bool = True
    defaults: BridgeDefaults = field(default_factory=BridgeDefaults)

    def get(self, provider: BridgeProvider) -> ProviderConfig:
        return self.providers[provider]


# ---------------------------------------------------------------------------
# Selection / request parameters
# ---------------------------------------------------------------------------


@dataclass
class RouteSelection:
    primary: Optional[BridgeProvider] = None
    fallback: List[BridgeProvider] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.primary is None

    def ordered(self) -> List[BridgeProvider]:
        if self.primary is None:
            return []
        return [self.primary, *self.fallback]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.value if self.primary else None,
            "fallback": [provider.value for provider in self.fallback],
            "reasoning": list(self.reasoning),
        }


@dataclass
class PriceParams:
    """Indicative price request, expressed in the engine's own chain ids."""

    origin_chain_id: int
    destination_chain_id: int
    origin_currency: str
    destination_currency: str
    amount: str
    user: str
    recipient: Optional[str] = None
    trade_type: str = "EXACT_INPUT"

    def cache_key(self, prefix: str, provider: Optional[BridgeProvider] = None) -> str:
        parts = [
            prefix,
            str(self.origin_chain_id),
            str(self.destination_chain_id),
            self.amount,
            self.origin_currency.lower(),
            self.destination_currency.lower(),
            (self.recipient or "").lower(),
            self.user.lower(),
            self.trade_type,
            provider.value if provider else "default",
        ]
        return "-".join(parts)


@dataclass
class QuoteParams(PriceParams):
    """Executable quote request. ``options`` is passed through to the backend."""

    options: Dict[str, Any] = field(default_factory=dict)

    def cache_key(self, prefix: str, provider: Optional[BridgeProvider] = None) -> str:
        base = super().cache_key(prefix, provider)
        return f"{base}-{json.dumps(self.options, sort_keys=True, default=str)}"


# ---------------------------------------------------------------------------
# Quotes and execution results
# ---------------------------------------------------------------------------


@dataclass
class UnifiedQuote:
    """Backend-neutral quote.

    ``steps[].items[].data`` always carries ``to``, ``data`` and ``value`` plus
    optional gas fields, so execution code never has to know where the quote
    came from. ``extras`` holds backend material needed later (Bungee route,
    approval data).
    """

    provider: BridgeProvider
    details: Dict[str, Any] = field(default_factory=dict)
    fees: Dict[str, Any] = field(default_factory=dict)
    steps: List[Dict[str, Any]] = field(default_factory=list)
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_relay(cls, payload: Dict[str, Any]) -> "UnifiedQuote":
        return cls(
            provider=BridgeProvider.RELAY,
            details=dict(payload.get("details") or {}),
            fees=dict(payload.get("fees") or {}),
            steps=list(payload.get("steps") or []),
        )

    def copy(self) -> "UnifiedQuote":
        return copy.deepcopy(self)

    def _currency_chain(self, side: str) -> Optional[int]:
        currency = (self.details.get(side) or {}).get("currency") or {}
        chain_id = currency.get("chainId")
        return int(chain_id) if chain_id is not None else None

    @property
    def origin_chain_id(self) -> Optional[int]:
        return self._currency_chain("currencyIn")

    @property
    def destination_chain_id(self) -> Optional[int]:
        return self._currency_chain("currencyOut")

    @property
    def recipient(self) -> Optional[str]:
        return self.details.get("recipient")

    @property
    def time_estimate(self) -> Optional[int]:
        return self.details.get("timeEstimate")

    def iter_items(self) -> Iterator[Dict[str, Any]]:
        for step in self.steps:
            for item in step.get("items") or []:
                yield item

    def transaction_items(self) -> List[Dict[str, Any]]:
        return [item for item in self.iter_items() if isinstance(item.get("data"), dict) and item["data"].get("to")]

    def request_id(self) -> Optional[str]:
        """Relay status request id; the last item that carries one wins."""

        found: Optional[str] = None
        for step in self.steps:
            if step.get("requestId"):
                found = step["requestId"]
            for item in step.get("items") or []:
                check = item.get("check") or {}
                if check.get("requestId"):
                    found = check["requestId"]
                elif item.get("requestId"):
                    found = item["requestId"]
                elif item.get("request_id"):
                    found = item["request_id"]
        return found

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "details": self.details,
            "fees": self.fees,
            "steps": self.steps,
        }


@dataclass
class TxHash:
    tx_hash: str
    chain_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"txHash": self.tx_hash, "chainId": self.chain_id}


@dataclass
class ProgressEvent:
    provider: BridgeProvider
    state: ProgressState = ProgressState.PENDING
    tx_hashes: List[TxHash] = field(default_factory=list)
    user_op_hash: Optional[str] = None
    status: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    fees: Dict[str, Any] = field(default_factory=dict)
    steps: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "state": self.state.value,
            "txHashes": [tx.to_dict() for tx in self.tx_hashes],
            "userOpHash": self.user_op_hash,
            "status": self.status,
        }


@dataclass
class ExecutionResult:
    provider: BridgeProvider
    success: bool
    transaction_hash: Optional[str] = None
    user_op_hash: Optional[str] = None
    tx_hashes: List[TxHash] = field(default_factory=list)
    status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "success": self.success,
            "transactionHash": self.transaction_hash,
            "userOpHash": self.user_op_hash,
            "txHashes": [tx.to_dict() for tx in self.tx_hashes],
            "status": self.status,
        }


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass
class FallbackAttempt:
    provider: BridgeProvider
    reason: str
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider.value, "reason": self.reason, "timestamp": self.timestamp}


@dataclass
class ExecutionContext:
    """History of provider switches for one top-level user action."""

    session_id: str
    timestamp: float
    provider: Optional[BridgeProvider] = None
    fallback_attempts: List[FallbackAttempt] = field(default_factory=list)
    chain_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
            "provider": self.provider.value if self.provider else None,
            "fallbackAttempts": [attempt.to_dict() for attempt in self.fallback_attempts],
            "chainData": self.chain_data,
        }


@dataclass
class BridgeAttempt:
    id: str
    provider: BridgeProvider
    operation_type: OperationType
    start_time: float
    status: AttemptStatus = AttemptStatus.PENDING
    end_time: Optional[float] = None
    source_tx_hash: Optional[str] = None
    destination_tx_hash: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    retry_count: int = 0
    transaction_context: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass
class RelayStatusResponse:
    status: str
    details: Optional[str] = None
    in_tx_hashes: List[str] = field(default_factory=list)
    tx_hashes: List[str] = field(default_factory=list)
    time: Optional[int] = None
    origin_chain_id: Optional[int] = None
    destination_chain_id: Optional[int] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RelayStatusResponse":
        return cls(
            status=str(payload.get("status") or "pending").lower(),
            details=payload.get("details"),
            in_tx_hashes=list(payload.get("inTxHashes") or []),
            tx_hashes=list(payload.get("txHashes") or []),
            time=payload.get("time"),
            origin_chain_id=payload.get("originChainId"),
            destination_chain_id=payload.get("destinationChainId"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in RELAY_TERMINAL_STATUSES

    def all_tx_hashes(self) -> List[TxHash]:
        hashes = [TxHash(tx, self.origin_chain_id) for tx in self.in_tx_hashes]
        hashes.extend(TxHash(tx, self.destination_chain_id) for tx in self.tx_hashes)
        return hashes


@dataclass
class BungeeStatusResponse:
    source_tx_status: Optional[str] = None
    destination_tx_status: Optional[str] = None
    source_transaction_hash: Optional[str] = None
    destination_transaction_hash: Optional[str] = None
    from_chain_id: Optional[int] = None
    to_chain_id: Optional[int] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any], *, to_chain_id: Optional[int] = None) -> "BungeeStatusResponse":
        result = payload.get("result") or {}
        return cls(
            source_tx_status=result.get("sourceTxStatus"),
            destination_tx_status=result.get("destinationTxStatus"),
            source_transaction_hash=result.get("sourceTransactionHash"),
            destination_transaction_hash=result.get("destinationTransactionHash"),
            from_chain_id=result.get("fromChainId"),
            to_chain_id=to_chain_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.source_tx_status == "COMPLETED" and self.destination_tx_status == "COMPLETED"

    @property
    def status(self) -> str:
        if self.is_terminal:
            return "COMPLETED"
        return self.destination_tx_status or self.source_tx_status or "PENDING"
