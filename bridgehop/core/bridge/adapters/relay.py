"""Relay backend adapter."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ....config import settings
from ....providers.relay import RelayProvider
from ...execution.wallet import Call, TransactionRequest
from ..constants import DEFAULT_REFERRER, EOA_GAS_OVERHEAD, SMART_ACCOUNT_GAS_OVERHEAD
from ..errors import BridgeExecutionError, BridgeStatusError, NoRoutesError, PollingTimeoutError
from ..models import (
    BridgeProvider,
    ExecutionResult,
    PriceParams,
    ProgressState,
    QuoteParams,
    RelayStatusResponse,
    TxHash,
    UnifiedQuote,
)
from ..poller import AbortSignal, BridgeStatusPoller, PollOptions, abort_after
from .base import BridgeProviderAdapter, OnProgress

_NO_ROUTE_MARKERS = ("no routes found", "no_swap_routes_found", "no route")


def _is_no_route_response(exc: httpx.HTTPStatusError) -> bool:
    if exc.response.status_code not in (400, 404, 422):
        return False
    body = exc.response.text.lower()
    return any(marker in body for marker in _NO_ROUTE_MARKERS)


class RelayAdapter(BridgeProviderAdapter):
    """Relay: price and quote come straight from the API in the unified shape.

    Relay raises for unroutable pairs; that is surfaced as ``NoRoutesError`` so
    the orchestrator fails over.
    """

    provider = BridgeProvider.RELAY

    def __init__(
        self,
        *,
        client: Optional[RelayProvider] = None,
        poller: Optional[BridgeStatusPoller[RelayStatusResponse]] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._client = client or RelayProvider(base_url=self.provider_config.api_config.base_url)
        self._poller = poller or BridgeStatusPoller(self._fetch_status, name="relay")

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def _base_payload(self, request: PriceParams) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "user": self._user_address(request),
            "originChainId": request.origin_chain_id,
            "destinationChainId": request.destination_chain_id,
            "originCurrency": request.origin_currency,
            "destinationCurrency": request.destination_currency,
            "amount": request.amount,
            "tradeType": request.trade_type,
        }
        if request.recipient:
            payload["recipient"] = request.recipient
        return payload

    async def _call(self, method, payload: Dict[str, Any]) -> Optional[UnifiedQuote]:
        try:
            data = await method(payload)
        except httpx.HTTPStatusError as exc:
            if _is_no_route_response(exc):
                self._logger.info("[relay] No routes for %s -> %s", payload["originChainId"], payload["destinationChainId"])
                raise NoRoutesError(provider=self.name) from exc
            raise

        if not data or not data.get("details"):
            return None
        return UnifiedQuote.from_relay(data)

    async def _fetch_price(self, request: PriceParams, original: PriceParams) -> Optional[UnifiedQuote]:
        return await self._call(self._client.price, self._base_payload(request))

    async def _fetch_quote(self, request: QuoteParams, original: QuoteParams) -> Optional[UnifiedQuote]:
        payload = self._base_payload(request)
        payload["referrer"] = DEFAULT_REFERRER
        payload["userOperationGasOverhead"] = (
            SMART_ACCOUNT_GAS_OVERHEAD if self.wallet.is_smart_account else EOA_GAS_OVERHEAD
        )
        payload.update(request.options)
        return await self._call(self._client.quote, payload)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def _fetch_status(self, request_id: str) -> RelayStatusResponse:
        return RelayStatusResponse.from_dict(await self._client.get_status(request_id))

    async def poll_status(
        self,
        request_id: str,
        options: Optional[PollOptions] = None,
        signal: Optional[AbortSignal] = None,
    ) -> RelayStatusResponse:
        with abort_after(settings.bridge_monitor_timeout_seconds, signal) as monitor_signal:
            return await self._poller.poll(request_id, options=options, signal=monitor_signal)

    async def _await_fill(
        self,
        quote: UnifiedQuote,
        source_hashes: List[TxHash],
        on_progress: Optional[OnProgress],
        signal: Optional[AbortSignal],
        user_op_hash: Optional[str] = None,
    ) -> ExecutionResult:
        """Poll Relay until the destination fill; fall back to source hashes on timeout."""

        submitted = ExecutionResult(
            provider=self.provider,
            success=True,
            transaction_hash=source_hashes[0].tx_hash if source_hashes else None,
            user_op_hash=user_op_hash,
            tx_hashes=list(source_hashes),
            status="submitted",
        )

        request_id = quote.request_id()
        if not request_id:
            self._logger.info("[relay] Quote carries no request id; returning source transaction only")
            return submitted

        try:
            status = await self.poll_status(request_id, signal=signal)
        except PollingTimeoutError as exc:
            self._logger.warning("[relay] Status polling for %s did not finish: %s", request_id, exc)
            return submitted

        if status.status != "success":
            raise BridgeStatusError(status.status, status.details, provider=self.name)

        tx_hashes = status.all_tx_hashes() or list(source_hashes)
        await self._emit(
            on_progress,
            self._event(quote, ProgressState.COMPLETE, tx_hashes, user_op_hash=user_op_hash, status=status.status),
        )
        return ExecutionResult(
            provider=self.provider,
            success=True,
            transaction_hash=submitted.transaction_hash,
            user_op_hash=user_op_hash,
            tx_hashes=tx_hashes,
            status=status.status,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress] = None,
        signal: Optional[AbortSignal] = None,
    ) -> ExecutionResult:
        if self.wallet.is_smart_account:
            return await self._execute_with_smart_account(quote, on_progress, signal)
        return await self._execute_with_signer(quote, on_progress, signal)

    async def _execute_with_smart_account(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress],
        signal: Optional[AbortSignal],
    ) -> ExecutionResult:
        calls = [Call.from_tx_data(item["data"]) for item in quote.transaction_items()]
        user_op_hash, tx_hash = await self._send_user_operation(calls, quote, on_progress)

        source = [TxHash(tx_hash, quote.origin_chain_id)]
        await self._emit(on_progress, self._event(quote, ProgressState.PENDING, source, user_op_hash=user_op_hash))
        return await self._await_fill(quote, source, on_progress, signal, user_op_hash=user_op_hash)

    async def _execute_with_signer(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress],
        signal: Optional[AbortSignal],
    ) -> ExecutionResult:
        signer = self.wallet.signer
        if signer is None:
            raise BridgeExecutionError("No wallet available to execute Relay quote", provider=self.name)

        escalated = await self._gas.escalate(quote)
        items = escalated.transaction_items()
        if not items:
            raise BridgeExecutionError("No transaction calls found in relay quote", provider=self.name)

        source: List[TxHash] = []
        for item in items:
            if signal is not None:
                signal.raise_if_aborted()

            tx = TransactionRequest.from_tx_data(item["data"])
            tx_hash = await signer.send_transaction(tx)
            receipt = await signer.wait_for_transaction_receipt(tx_hash)
            if not receipt.success:
                raise BridgeExecutionError(
                    "Transaction reverted",
                    provider=self.name,
                    details={"tx_hash": tx_hash},
                )

            source.append(TxHash(tx_hash, tx.chain_id or quote.origin_chain_id))
            await self._emit(on_progress, self._event(quote, ProgressState.PENDING, source))

        return await self._await_fill(quote, source, on_progress, signal)
