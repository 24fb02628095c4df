"""Common contract for bridge backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Tuple

from ....cache import RequestDeduplicator
from ....config import settings
from ...execution.wallet import Call, WalletContext
from ..config import BRIDGE_CONFIG
from ..errors import BridgeExecutionError
from ..gas import GasPriceEscalator
from ..models import (
    BridgeConfig,
    BridgeProvider,
    ExecutionResult,
    PriceParams,
    ProgressEvent,
    ProgressState,
    ProviderCapabilities,
    ProviderConfig,
    QuoteParams,
    TxHash,
    UnifiedQuote,
)
from ..normalizer import (
    is_special_chain_pair,
    normalize_chain_id_for_provider,
    provider_supports_special_chain,
    transform_params_for_provider,
)
from ..poller import AbortSignal

OnProgress = Callable[[ProgressEvent], Awaitable[None]]


class BridgeProviderAdapter(ABC):
    """One backend behind a uniform price / quote / execute interface.

    ``get_price`` and ``get_quote`` return ``None`` when the backend has no
    route. Identical concurrent requests share a single backend call through
    the injected ``RequestDeduplicator``.
    """

    provider: BridgeProvider

    def __init__(
        self,
        *,
        config: Optional[BridgeConfig] = None,
        wallet: Optional[WalletContext] = None,
        gas: Optional[GasPriceEscalator] = None,
        dedup: Optional[RequestDeduplicator] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or BRIDGE_CONFIG
        self.wallet = wallet or WalletContext()
        self._gas = gas or GasPriceEscalator()
        self._dedup = dedup or RequestDeduplicator()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self.provider.value

    @property
    def provider_config(self) -> ProviderConfig:
        return self._config.get(self.provider)

    # ------------------------------------------------------------------
    # Capability checks (no network)
    # ------------------------------------------------------------------

    def is_supported(self, from_chain_id: int, to_chain_id: int) -> bool:
        if is_special_chain_pair(from_chain_id, to_chain_id) and not (
            provider_supports_special_chain(self.provider, from_chain_id)
            and provider_supports_special_chain(self.provider, to_chain_id)
        ):
            return False

        config = self.provider_config
        return config.enabled and config.supports_pair(
            normalize_chain_id_for_provider(from_chain_id, self.provider),
            normalize_chain_id_for_provider(to_chain_id, self.provider),
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return self.provider_config.capabilities

    async def is_healthy(self) -> bool:
        return self.provider_config.enabled

    def transform_params(self, params: PriceParams) -> PriceParams:
        return transform_params_for_provider(params, self.provider)

    # ------------------------------------------------------------------
    # Deduplicated request path
    # ------------------------------------------------------------------

    async def get_price(self, params: PriceParams) -> Optional[UnifiedQuote]:
        request = self.transform_params(params)
        key = request.cache_key("price", self.provider)
        return await self._dedup.get_or_create(key, lambda: self._fetch_price(request, params))

    async def get_quote(self, params: QuoteParams) -> Optional[UnifiedQuote]:
        request = self.transform_params(params)
        key = request.cache_key("quote", self.provider)
        return await self._dedup.get_or_create(key, lambda: self._fetch_quote(request, params))

    @abstractmethod
    async def _fetch_price(self, request: PriceParams, original: PriceParams) -> Optional[UnifiedQuote]:
        """``request`` is in backend conventions, ``original`` in the engine's."""

    @abstractmethod
    async def _fetch_quote(self, request: QuoteParams, original: QuoteParams) -> Optional[UnifiedQuote]:
        ...

    @abstractmethod
    async def execute(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress] = None,
        signal: Optional[AbortSignal] = None,
    ) -> ExecutionResult:
        ...

    # ------------------------------------------------------------------
    # Shared execution helpers
    # ------------------------------------------------------------------

    def _user_address(self, params: PriceParams) -> str:
        return params.user or self.wallet.address or ""

    async def _emit(self, on_progress: Optional[OnProgress], event: ProgressEvent) -> None:
        if on_progress is not None:
            await on_progress(event)

    def _event(
        self,
        quote: UnifiedQuote,
        state: ProgressState,
        tx_hashes: Optional[List[TxHash]] = None,
        **kwargs,
    ) -> ProgressEvent:
        return ProgressEvent(
            provider=self.provider,
            state=state,
            tx_hashes=list(tx_hashes or []),
            details=quote.details,
            fees=quote.fees,
            steps=quote.steps,
            **kwargs,
        )

    async def _send_user_operation(
        self,
        calls: List[Call],
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress],
    ) -> Tuple[str, str]:
        """Batch ``calls`` into one user operation and wait for its receipt.

        Returns ``(user_op_hash, transaction_hash)``.
        """

        account = self.wallet.smart_account
        if account is None:
            raise BridgeExecutionError("Smart account not available", provider=self.name)
        if not calls:
            raise BridgeExecutionError(f"No transaction calls found in {self.name} quote", provider=self.name)

        self._logger.info("[%s] Sending user operation with %d call(s)", self.name, len(calls))
        user_op_hash = await account.send_user_operation(calls)
        await self._emit(on_progress, self._event(quote, ProgressState.PENDING, user_op_hash=user_op_hash))

        receipt = await account.wait_for_user_operation_receipt(
            user_op_hash,
            timeout=settings.user_op_timeout_seconds,
        )
        if not receipt.success or not receipt.transaction_hash:
            raise BridgeExecutionError(
                "UserOperation failed",
                provider=self.name,
                details={"user_op_hash": user_op_hash},
            )
        return user_op_hash, receipt.transaction_hash
