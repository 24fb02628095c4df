"""BridgeManager drives one logical bridge operation across the provider list."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ...cache import RequestDeduplicator
from ...logging_config import bind_bridge_context
from ...providers.rpc import get_rpc_provider
from ..execution.wallet import WalletContext
from .adapters import BridgeProviderAdapter, create_adapter
from .config import BRIDGE_CONFIG
from .errors import (
    AllProvidersFailedError,
    BridgeOperationCancelled,
    NoRoutesError,
    UnsupportedRouteError,
    categorize_bridge_error,
    is_failover_error,
)
from .gas import GasPriceEscalator
from .models import (
    BridgeConfig,
    BridgeProvider,
    ExecutionContext,
    ExecutionResult,
    FallbackAttempt,
    OperationType,
    PriceParams,
    ProgressEvent,
    ProviderCapabilities,
    QuoteParams,
    RouteSelection,
    UnifiedQuote,
)
from .monitoring import AttemptTracker
from .poller import AbortSignal
from .progress import ProgressChannel, ProgressListener
from .selector import get_providers_for_chain_pair, select_provider

T = TypeVar("T")

NO_ROUTES_REASON = "no routes available"

ProviderSwitchCallback = Callable[[BridgeProvider, BridgeProvider, str], None]


class BridgeManager:
    """Fallback orchestrator.

    Providers are attempted strictly one after another. A ``None`` result is a
    soft "no route" and always moves on to the next provider; an exception
    moves on only when it classifies as no-routes or network. Every provider
    that is skipped, returns nothing or fails leaves one entry in
    ``fallback_attempts``.
    """

    def __init__(
        self,
        *,
        config: Optional[BridgeConfig] = None,
        wallet: Optional[WalletContext] = None,
        adapters: Optional[Dict[BridgeProvider, BridgeProviderAdapter]] = None,
        tracker: Optional[AttemptTracker] = None,
        dedup: Optional[RequestDeduplicator] = None,
        gas: Optional[GasPriceEscalator] = None,
        progress: Optional[ProgressChannel] = None,
        enable_fallback: Optional[bool] = None,
        max_providers_to_try: Optional[int] = None,
        on_provider_switch: Optional[ProviderSwitchCallback] = None,
        logger: Optional[logging.Logger] = None,
        **adapter_kwargs: Any,
    ) -> None:
        self._config = config or BRIDGE_CONFIG
        self._logger = logger or logging.getLogger(__name__)
        self.tracker = tracker or AttemptTracker()
        self.progress = progress or ProgressChannel()
        self._enable_fallback = self._config.fallback_enabled if enable_fallback is None else enable_fallback
        self._max_providers = max_providers_to_try or self._config.defaults.max_providers_to_try
        self._on_provider_switch = on_provider_switch

        if adapters is None:
            shared_dedup = dedup or RequestDeduplicator()
            gas = gas or GasPriceEscalator(adapter_kwargs.get("rpc") or get_rpc_provider())
            adapters = {
                provider: create_adapter(
                    provider,
                    config=self._config,
                    wallet=wallet,
                    gas=gas,
                    dedup=shared_dedup,
                    **adapter_kwargs,
                )
                for provider in self._config.providers
            }
        self._adapters = adapters

        # Observable state
        self.is_loading = False
        self.error: Optional[BaseException] = None
        self.current_provider: Optional[BridgeProvider] = None
        self.last_attempt_provider: Optional[BridgeProvider] = None
        self.fallback_attempts: List[FallbackAttempt] = []
        self.execution_context: Optional[ExecutionContext] = None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_provider(self, from_chain_id: int, to_chain_id: int) -> RouteSelection:
        return select_provider(from_chain_id, to_chain_id, self._config)

    def get_available_providers(self, from_chain_id: int, to_chain_id: int) -> List[BridgeProvider]:
        return get_providers_for_chain_pair(from_chain_id, to_chain_id, self._config)

    def get_capabilities(self, provider: BridgeProvider) -> ProviderCapabilities:
        return self._config.get(provider).capabilities

    def get_current_provider(self) -> Optional[BridgeProvider]:
        return self.current_provider

    def get_adapter(self, provider: BridgeProvider) -> BridgeProviderAdapter:
        return self._adapters[provider]

    async def check_provider_health(self, provider: BridgeProvider) -> bool:
        try:
            return await self.get_adapter(provider).is_healthy()
        except Exception:
            self._logger.exception("Health check failed for %s", provider.value)
            return False

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_price(self, params: PriceParams) -> Optional[UnifiedQuote]:
        return await self._execute_with_fallback(
            lambda adapter: adapter.get_price(params),
            params.origin_chain_id,
            params.destination_chain_id,
            OperationType.PRICE,
            route_context=self._route_context(params),
        )

    async def get_quote(self, params: QuoteParams) -> Optional[UnifiedQuote]:
        return await self._execute_with_fallback(
            lambda adapter: adapter.get_quote(params),
            params.origin_chain_id,
            params.destination_chain_id,
            OperationType.QUOTE,
            route_context=self._route_context(params),
        )

    async def execute_quote(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[ProgressListener] = None,
        signal: Optional[AbortSignal] = None,
    ) -> Optional[ExecutionResult]:
        """Execute ``quote`` with the adapter of the provider that issued it.

        Quote payloads are backend specific, so execution never moves to a
        different provider. Progress goes to ``self.progress`` and, for this
        call only, to ``on_progress``.
        """

        from_chain_id = quote.origin_chain_id or 8453
        to_chain_id = quote.destination_chain_id or 8453
        unsubscribe = self.progress.subscribe(on_progress) if on_progress is not None else None

        async def run(adapter: BridgeProviderAdapter) -> ExecutionResult:
            return await adapter.execute(quote, self._publish, signal)

        try:
            return await self._execute_with_fallback(
                run,
                from_chain_id,
                to_chain_id,
                OperationType.EXECUTE,
                selection=RouteSelection(
                    primary=quote.provider,
                    reasoning=[f"Executing with quoting provider {quote.provider.value}"],
                ),
                route_context={
                    "from_chain": from_chain_id,
                    "to_chain": to_chain_id,
                    "amount": (quote.details.get("currencyIn") or {}).get("amount"),
                    "recipient": quote.recipient,
                },
            )
        finally:
            if unsubscribe is not None:
                unsubscribe()

    async def _publish(self, event: ProgressEvent) -> None:
        await self.progress.publish(event)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    @staticmethod
    def _route_context(params: PriceParams) -> Dict[str, Any]:
        return {
            "from_chain": params.origin_chain_id,
            "to_chain": params.destination_chain_id,
            "from_token": params.origin_currency,
            "to_token": params.destination_currency,
            "amount": params.amount,
            "recipient": params.recipient,
        }

    def _record_fallback(self, provider: BridgeProvider, reason: str) -> None:
        attempt = FallbackAttempt(provider=provider, reason=reason, timestamp=time.time())
        self.fallback_attempts.append(attempt)
        if self.execution_context is not None:
            self.execution_context.fallback_attempts.append(attempt)

    def _notify_switch(self, providers: List[BridgeProvider], index: int, reason: str) -> None:
        if index + 1 >= len(providers):
            return
        current, nxt = providers[index], providers[index + 1]
        self._logger.info("Falling back from %s to %s: %s", current.value, nxt.value, reason)
        if self._on_provider_switch is not None:
            self._on_provider_switch(current, nxt, reason)

    async def _execute_with_fallback(
        self,
        operation: Callable[[BridgeProviderAdapter], Awaitable[Optional[T]]],
        from_chain_id: int,
        to_chain_id: int,
        operation_type: OperationType,
        *,
        selection: Optional[RouteSelection] = None,
        route_context: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        self.is_loading = True
        self.error = None
        self.fallback_attempts = []

        try:
            return await self._run_providers(
                operation,
                from_chain_id,
                to_chain_id,
                operation_type,
                selection=selection,
                route_context=route_context or {},
            )
        except BaseException as exc:
            self.error = exc
            raise
        finally:
            self.is_loading = False

    async def _run_providers(
        self,
        operation: Callable[[BridgeProviderAdapter], Awaitable[Optional[T]]],
        from_chain_id: int,
        to_chain_id: int,
        operation_type: OperationType,
        *,
        selection: Optional[RouteSelection],
        route_context: Dict[str, Any],
    ) -> Optional[T]:
        if selection is None:
            selection = self.select_provider(from_chain_id, to_chain_id)
        if selection.is_empty:
            raise UnsupportedRouteError(from_chain_id, to_chain_id)

        providers = selection.ordered()[: self._max_providers]
        self._logger.info(
            "Provider selection for %s -> %s: %s (%s)",
            from_chain_id,
            to_chain_id,
            [provider.value for provider in providers],
            "; ".join(selection.reasoning),
        )

        session_id = f"bridge_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        bind_bridge_context(bridge_session=session_id, operation=operation_type.value)
        self.execution_context = ExecutionContext(
            session_id=session_id,
            timestamp=time.time(),
            provider=selection.primary,
            chain_data={"from_chain": from_chain_id, "to_chain": to_chain_id},
        )

        last_error: Optional[BaseException] = None

        for index, provider in enumerate(providers):
            adapter = self._adapters[provider]

            if not adapter.is_supported(from_chain_id, to_chain_id):
                reason = f"Provider {provider.value} does not support route {from_chain_id} -> {to_chain_id}"
                self._logger.info("Skipping: %s", reason)
                self._record_fallback(provider, reason)
                continue

            self.current_provider = provider
            self.last_attempt_provider = provider
            self.execution_context.provider = provider
            attempt_id = self.tracker.start(provider, operation_type, route_context)
            self._logger.info("Attempting %s with %s (attempt %d)", operation_type.value, provider.value, index + 1)

            try:
                result = await operation(adapter)
            except BridgeOperationCancelled as exc:
                self.tracker.fail(attempt_id, exc)
                raise
            except Exception as exc:
                last_error = exc
                error_type = categorize_bridge_error(exc)
                self.tracker.fail(attempt_id, exc)
                self._record_fallback(provider, str(exc))
                self._logger.warning(
                    "%s failed for %s (%s): %s",
                    provider.value,
                    operation_type.value,
                    error_type.value,
                    exc,
                )

                has_next = index + 1 < len(providers)
                if self._enable_fallback and is_failover_error(error_type) and has_next:
                    self._notify_switch(providers, index, str(exc))
                    continue
                raise

            if result is None:
                # The call succeeded; the provider simply had nothing to offer
                last_error = NoRoutesError(f"{provider.value}: No routes available", provider=provider.value)
                self.tracker.complete(attempt_id, metadata={"result": NO_ROUTES_REASON})
                self._record_fallback(provider, NO_ROUTES_REASON)
                self._logger.info("%s returned no routes", provider.value)
                if index + 1 < len(providers):
                    self._notify_switch(providers, index, NO_ROUTES_REASON)
                    continue
                return None

            self._complete_success(attempt_id, result)
            return result

        if last_error is not None:
            raise last_error
        self._logger.error("All bridge providers failed for %s -> %s", from_chain_id, to_chain_id)
        raise AllProvidersFailedError(details={"from_chain_id": from_chain_id, "to_chain_id": to_chain_id})

    def _complete_success(self, attempt_id: str, result: Any) -> None:
        if isinstance(result, ExecutionResult):
            hashes = result.tx_hashes
            self.tracker.complete(
                attempt_id,
                source_tx_hash=result.transaction_hash,
                destination_tx_hash=hashes[-1].tx_hash if len(hashes) > 1 else None,
            )
        else:
            self.tracker.complete(attempt_id)
