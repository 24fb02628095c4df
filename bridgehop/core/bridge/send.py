"""Send USDC from Base to any supported chain/token through the bridge engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Set

from eth_utils import is_address, to_checksum_address

from ...cache import QuoteCache
from ...config import Settings, settings
from .constants import BASE_USDC_ADDRESS, USDC_DECIMALS
from .errors import BridgeExecutionError
from .manager import BridgeManager
from .models import (
    BridgeProvider,
    ExecutionResult,
    PriceParams,
    ProgressEvent,
    ProgressState,
    QuoteParams,
    TxHash,
)
from .poller import AbortSignal

logger = logging.getLogger(__name__)

TransactionSignedCallback = Callable[[List[TxHash]], None]


@dataclass
class SendRequest:
    amount: str  # human readable USDC, e.g. "0.2"
    recipient: str
    from_chain_id: int
    to_chain_id: int
    to_token: str

    @property
    def is_direct_transfer(self) -> bool:
        return self.from_chain_id == self.to_chain_id and self.to_token.lower() == BASE_USDC_ADDRESS.lower()


@dataclass
class BridgeQuoteSummary:
    provider: BridgeProvider
    estimated_time: int
    total_fee: str
    gas_fees_usd: str
    relayer_fee_usd: str
    output_amount: str
    output_amount_formatted: str
    fallback_providers: List[BridgeProvider] = field(default_factory=list)
    selection_reason: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "estimatedTime": self.estimated_time,
            "totalFee": self.total_fee,
            "gasFeesInUsd": self.gas_fees_usd,
            "relayerFeeInUsd": self.relayer_fee_usd,
            "outputAmount": self.output_amount,
            "outputAmountFormatted": self.output_amount_formatted,
            "fallbackProviders": [provider.value for provider in self.fallback_providers],
            "selectionReason": self.selection_reason,
        }


@dataclass
class BridgeSendResult:
    success: bool
    provider: Optional[BridgeProvider]
    tx_hashes: List[TxHash] = field(default_factory=list)
    execution: Optional[ExecutionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "provider": self.provider.value if self.provider else None,
            "txHashes": [tx.to_dict() for tx in self.tx_hashes],
            "execution": self.execution.to_dict() if self.execution else None,
        }


def to_token_units(amount: str, decimals: int = USDC_DECIMALS) -> int:
    """Convert a human readable amount to integer token units, truncating extra precision."""

    value = Decimal(amount)
    return int((value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN))


class _CompletionTracker:
    """Collects tx hashes from progress events and decides when the send is done."""

    def __init__(
        self,
        request: SendRequest,
        provider: BridgeProvider,
        on_transaction_signed: Optional[TransactionSignedCallback],
    ) -> None:
        self._request = request
        self._is_bungee = provider == BridgeProvider.BUNGEE
        self._on_transaction_signed = on_transaction_signed
        self._signed_reported = False
        self._seen: Set[str] = set()
        self.tx_hashes: List[TxHash] = []
        self.completed = asyncio.Event()

    def _has_hash_on(self, chain_id: int) -> bool:
        return any(tx.chain_id == chain_id for tx in self.tx_hashes)

    def _has_confirmed_source(self) -> bool:
        return any(
            tx.chain_id == self._request.from_chain_id and not tx.tx_hash.startswith("pending-")
            for tx in self.tx_hashes
        )

    def __call__(self, event: ProgressEvent) -> None:
        for tx in event.tx_hashes:
            if tx.tx_hash not in self._seen:
                self._seen.add(tx.tx_hash)
                self.tx_hashes.append(tx)

        if self.tx_hashes and not self._signed_reported and self._on_transaction_signed is not None:
            self._signed_reported = True
            self._on_transaction_signed(list(self.tx_hashes))

        if self._is_bungee:
            done = self._has_hash_on(self._request.from_chain_id) and self._has_hash_on(self._request.to_chain_id)
        else:
            done = self._has_confirmed_source()
        expected = 2 if self._is_bungee else 1
        validating = event.state == ProgressState.VALIDATING and len(self.tx_hashes) >= expected

        if (done or validating or event.state == ProgressState.COMPLETE) and not self.completed.is_set():
            logger.info("Bridge send complete: %s", [tx.tx_hash for tx in self.tx_hashes])
            self.completed.set()


class SendWithBridge:
    """Send-USDC action that bridges when the destination is not Base USDC.

    Quote summaries are cached per route and per currently selected provider
    so a provider switch never serves a stale entry.
    """

    def __init__(
        self,
        manager: BridgeManager,
        *,
        user_address: Optional[str],
        is_smart_account: bool = False,
        quote_cache: Optional[QuoteCache] = None,
        config_settings: Optional[Settings] = None,
    ) -> None:
        self.manager = manager
        self.user_address = user_address
        self.is_smart_account = is_smart_account
        self.quote_cache = quote_cache or QuoteCache()
        self._settings = config_settings or settings
        self._background: Set["asyncio.Task[Any]"] = set()
        self._signal = AbortSignal()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validated_units(self, amount: str, action: str) -> str:
        try:
            parsed = Decimal(amount)
        except (InvalidOperation, TypeError):
            raise ValueError(f"Invalid amount for bridge {action}") from None
        if not parsed.is_finite() or parsed <= 0:
            raise ValueError(f"Invalid amount for bridge {action}")

        minimum = Decimal(str(self._settings.effective_min_bridge_amount_usd))
        if parsed < minimum:
            raise ValueError(f"Amount must be at least ${minimum} USD")
        return str(to_token_units(amount))

    def _validated_user(self) -> str:
        if not self.user_address or not is_address(self.user_address):
            raise ValueError("Valid user address required for bridge operations")
        return to_checksum_address(self.user_address)

    def _cache_key(self, request: SendRequest) -> str:
        provider = self.manager.get_current_provider()
        return "-".join(
            [
                str(request.from_chain_id),
                str(request.to_chain_id),
                request.amount,
                request.to_token,
                (self.user_address or "").lower(),
                provider.value if provider else "default",
            ]
        )

    # ------------------------------------------------------------------
    # Quote
    # ------------------------------------------------------------------

    async def get_bridge_quote(self, request: SendRequest) -> Optional[BridgeQuoteSummary]:
        if request.is_direct_transfer:
            return None

        cache_key = self._cache_key(request)
        cached = await self.quote_cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached bridge quote for %s", cache_key)
            return cached

        amount = self._validated_units(request.amount, "quote")
        user = self._validated_user()
        selection = self.manager.select_provider(request.from_chain_id, request.to_chain_id)

        try:
            quote = await self.manager.get_price(
                PriceParams(
                    origin_chain_id=request.from_chain_id,
                    destination_chain_id=request.to_chain_id,
                    origin_currency=BASE_USDC_ADDRESS,
                    destination_currency=request.to_token,
                    amount=amount,
                    user=user,
                    recipient=request.recipient,
                )
            )
        except Exception:
            if self.manager.fallback_attempts:
                logger.info(
                    "Bridge fallback attempts: %s",
                    [attempt.to_dict() for attempt in self.manager.fallback_attempts],
                )
            raise

        if quote is None:
            logger.info("No bridge quote received from any provider")
            return None

        provider = self.manager.get_current_provider() or selection.primary or quote.provider
        currency_out = quote.details.get("currencyOut") or {}
        gas_usd = str((quote.fees.get("gas") or {}).get("amountUsd") or "0")
        relayer_usd = str((quote.fees.get("relayer") or {}).get("amountUsd") or "0")
        summary = BridgeQuoteSummary(
            provider=provider,
            estimated_time=quote.time_estimate or 60,
            total_fee=f"{Decimal(gas_usd) + Decimal(relayer_usd):.2f}",
            gas_fees_usd=gas_usd,
            relayer_fee_usd=relayer_usd,
            output_amount=str(currency_out.get("amount") or "0"),
            output_amount_formatted=str(currency_out.get("amountFormatted") or "0"),
            fallback_providers=list(selection.fallback),
            selection_reason=list(selection.reasoning),
        )

        # Keyed by the provider that actually answered
        await self.quote_cache.set(self._cache_key(request), summary)
        return summary

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_with_bridge(
        self,
        request: SendRequest,
        on_transaction_signed: Optional[TransactionSignedCallback] = None,
    ) -> BridgeSendResult:
        if request.is_direct_transfer:
            raise ValueError("Same-chain USDC sends do not need a bridge")

        amount = self._validated_units(request.amount, "execution")
        user = self._validated_user()

        quote = await self.manager.get_quote(
            QuoteParams(
                origin_chain_id=request.from_chain_id,
                destination_chain_id=request.to_chain_id,
                origin_currency=BASE_USDC_ADDRESS,
                destination_currency=request.to_token,
                amount=amount,
                user=user,
                recipient=request.recipient,
            )
        )
        if quote is None:
            raise BridgeExecutionError("Failed to get bridge quote")

        provider = quote.provider
        tracker = _CompletionTracker(request, provider, on_transaction_signed)
        execution = asyncio.ensure_future(self.manager.execute_quote(quote, tracker, self._signal))

        # Relay with a smart account only ever reports the source transaction
        if provider == BridgeProvider.RELAY and self.is_smart_account:
            completed = asyncio.ensure_future(tracker.completed.wait())
            try:
                await asyncio.wait({execution, completed}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not completed.done():
                    completed.cancel()

            if not execution.done():
                self._background.add(execution)
                execution.add_done_callback(self._background_done)
                return BridgeSendResult(success=True, provider=provider, tx_hashes=list(tracker.tx_hashes))

        result = await execution
        tx_hashes = list(tracker.tx_hashes)
        if result is not None:
            known = {tx.tx_hash for tx in tx_hashes}
            tx_hashes.extend(tx for tx in result.tx_hashes if tx.tx_hash not in known)
        return BridgeSendResult(
            success=bool(result and result.success),
            provider=provider,
            tx_hashes=tx_hashes,
            execution=result,
        )

    def _background_done(self, task: "asyncio.Task[Any]") -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background bridge monitoring ended with error: %s", exc)

    async def aclose(self) -> None:
        """Abort destination monitoring still running after an early return."""

        self._signal.abort("send closed")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
