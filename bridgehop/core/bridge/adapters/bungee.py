"""Bungee (Socket) backend adapter."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ....config import settings
from ....providers.bungee import BungeeProvider
from ....providers.rpc import EvmRpcProvider, get_rpc_provider
from ...execution.tx_builder import build_erc20_approve_tx
from ...execution.wallet import Call, TransactionRequest
from ..constants import NATIVE_PLACEHOLDER, USDC_DECIMALS
from ..errors import BridgeExecutionError
from ..models import (
    BridgeProvider,
    BungeeStatusResponse,
    ExecutionResult,
    PriceParams,
    ProgressState,
    QuoteParams,
    TxHash,
    UnifiedQuote,
)
from ..normalizer import normalize_chain_id_for_provider
from ..poller import AbortSignal, BridgeStatusPoller, PollOptions, abort_after
from .base import BridgeProviderAdapter, OnProgress

# Fixed five second cadence, five minutes total
BUNGEE_MONITOR_OPTIONS = PollOptions(max_attempts=60, interval_s=5.0, backoff_multiplier=1.0, max_interval_s=5.0)


def _format_amount(raw: Any, decimals: Optional[int]) -> str:
    value = Decimal(str(raw or 0)) / (Decimal(10) ** (decimals or USDC_DECIMALS))
    return format(value.normalize(), "f")


class BungeeAdapter(BridgeProviderAdapter):
    """Bungee: REST quote -> build-tx, with an ERC-20 approval when the allowance is short."""

    provider = BridgeProvider.BUNGEE

    def __init__(
        self,
        *,
        client: Optional[BungeeProvider] = None,
        rpc: Optional[EvmRpcProvider] = None,
        monitor_options: Optional[PollOptions] = None,
        sleep=None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        api_config = self.provider_config.api_config
        self._client = client or BungeeProvider(api_key=api_config.api_key, base_url=api_config.base_url)
        self._rpc = rpc or get_rpc_provider()
        self._monitor_options = monitor_options or BUNGEE_MONITOR_OPTIONS
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def _fetch_price(self, request: PriceParams, original: PriceParams) -> Optional[UnifiedQuote]:
        if not self.is_supported(original.origin_chain_id, original.destination_chain_id):
            self._logger.info(
                "[bungee] Chain pair %s -> %s not supported",
                original.origin_chain_id,
                original.destination_chain_id,
            )
            return None

        query: Dict[str, Any] = {
            "fromChainId": str(request.origin_chain_id),
            "toChainId": str(request.destination_chain_id),
            "fromTokenAddress": request.origin_currency,
            "toTokenAddress": request.destination_currency,
            "fromAmount": request.amount or "0",
            "userAddress": self._user_address(request) or NATIVE_PLACEHOLDER,
            "singleTxOnly": "true",
            "sort": "output",
            "uniqueRoutesPerBridge": "true",
            "recipient": request.recipient,
        }

        try:
            data = await self._client.quote(query)
        except httpx.HTTPStatusError as exc:
            if "no routes found" in exc.response.text.lower():
                return None
            raise

        routes: List[Dict[str, Any]] = (data.get("result") or {}).get("routes") or []
        if not routes:
            return None

        return self._route_to_quote(routes[0], original)

    def _route_to_quote(self, route: Dict[str, Any], params: PriceParams) -> UnifiedQuote:
        from_decimals = (route.get("fromAsset") or {}).get("decimals")
        to_decimals = (route.get("toAsset") or {}).get("decimals")
        return UnifiedQuote(
            provider=self.provider,
            details={
                "currencyIn": {
                    "currency": {"chainId": params.origin_chain_id, "address": params.origin_currency},
                    "amount": route.get("fromAmount"),
                    "amountFormatted": _format_amount(route.get("fromAmount"), from_decimals),
                },
                "currencyOut": {
                    "currency": {"chainId": params.destination_chain_id, "address": params.destination_currency},
                    "amount": route.get("toAmount"),
                    "amountFormatted": _format_amount(route.get("toAmount"), to_decimals),
                    "amountUsd": route.get("outputValueInUsd"),
                },
                "recipient": params.recipient,
                "timeEstimate": route.get("serviceTime") or 300,
            },
            fees={
                "gas": {"amountUsd": str((route.get("gasFees") or {}).get("feesInUsd") or "0")},
                "relayer": {"amountUsd": str((route.get("bridgeFee") or {}).get("feesInUsd") or "0")},
            },
            extras={"bungee_route": route},
        )

    async def _fetch_quote(self, request: QuoteParams, original: QuoteParams) -> Optional[UnifiedQuote]:
        price = await self.get_price(original)
        if price is None or not price.extras.get("bungee_route"):
            return None

        route = price.extras["bungee_route"]
        built = await self._client.build_tx(route)
        result = built.get("result") or {}
        if not result.get("txTarget"):
            raise BridgeExecutionError("Bungee build-tx returned no transaction", provider=self.name)

        tx_data = {
            "to": result["txTarget"],
            "data": result.get("txData") or "0x",
            "value": result.get("value") or "0x00",
            "from": self._user_address(original),
            "chainId": result.get("chainId") or original.origin_chain_id,
        }
        return UnifiedQuote(
            provider=self.provider,
            details=price.details,
            fees=price.fees,
            steps=[
                {
                    "id": "bungee-bridge",
                    "action": "bridge",
                    "description": "Bridge via Bungee",
                    "kind": "transaction",
                    "items": [{"status": "incomplete", "data": tx_data}],
                }
            ],
            extras={
                "bungee_route": route,
                "bungee_tx_data": result,
                "approval_data": result.get("approvalData"),
            },
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _approval_tx(self, quote: UnifiedQuote, owner: str) -> Optional[Dict[str, Any]]:
        approval = quote.extras.get("approval_data")
        if not approval:
            return None

        token = approval["approvalTokenAddress"]
        spender = approval["allowanceTarget"]
        minimum = int(approval["minimumApprovalAmount"])
        allowance = await self._rpc.get_erc20_allowance(token, owner, spender)
        if allowance >= minimum:
            return None

        self._logger.info("[bungee] Allowance %s below %s; approving %s", allowance, minimum, spender)
        return build_erc20_approve_tx(token, spender, minimum)

    async def execute(
        self,
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress] = None,
        signal: Optional[AbortSignal] = None,
    ) -> ExecutionResult:
        items = quote.transaction_items()
        if not items:
            raise BridgeExecutionError("No transaction found in Bungee quote", provider=self.name)

        owner = self.wallet.address
        if not owner:
            raise BridgeExecutionError("No wallet available to execute Bungee quote", provider=self.name)

        bridge_tx = items[0]["data"]
        approval_tx = await self._approval_tx(quote, owner)
        user_op_hash: Optional[str] = None

        if self.wallet.is_smart_account:
            calls = [Call.from_tx_data(tx) for tx in (approval_tx, bridge_tx) if tx is not None]
            user_op_hash, source_hash = await self._send_user_operation(calls, quote, on_progress)
        else:
            source_hash = await self._send_with_signer(bridge_tx, approval_tx)

        origin = quote.origin_chain_id
        await self._emit(
            on_progress,
            self._event(quote, ProgressState.PENDING, [TxHash(source_hash, origin)], user_op_hash=user_op_hash),
        )

        status = await self.monitor_bridge_status(
            source_hash,
            from_chain_id=origin,
            to_chain_id=quote.destination_chain_id,
            quote=quote,
            on_progress=on_progress,
            signal=signal,
        )

        tx_hashes = [TxHash(source_hash, origin)]
        if status.destination_transaction_hash:
            tx_hashes.append(TxHash(status.destination_transaction_hash, quote.destination_chain_id))
        return ExecutionResult(
            provider=self.provider,
            success=True,
            transaction_hash=source_hash,
            user_op_hash=user_op_hash,
            tx_hashes=tx_hashes,
            status=status.status,
        )

    async def _send_with_signer(self, bridge_tx: Dict[str, Any], approval_tx: Optional[Dict[str, Any]]) -> str:
        signer = self.wallet.signer
        if signer is None:
            raise BridgeExecutionError("No wallet available to execute Bungee quote", provider=self.name)

        minimum = await self._gas.get_min_gas_price()

        def _floored(tx_data: Dict[str, Any]) -> TransactionRequest:
            tx = TransactionRequest.from_tx_data(tx_data)
            tx.max_fee_per_gas = max(tx.max_fee_per_gas or 0, minimum.max)
            tx.max_priority_fee_per_gas = max(tx.max_priority_fee_per_gas or 0, minimum.priority)
            return tx

        if approval_tx is not None:
            approval_hash = await signer.send_transaction(_floored(approval_tx))
            receipt = await signer.wait_for_transaction_receipt(approval_hash)
            if not receipt.success:
                raise BridgeExecutionError("Token approval failed", provider=self.name, details={"tx_hash": approval_hash})

        return await signer.send_transaction(_floored(bridge_tx))

    async def monitor_bridge_status(
        self,
        tx_hash: str,
        *,
        from_chain_id: Optional[int],
        to_chain_id: Optional[int],
        quote: UnifiedQuote,
        on_progress: Optional[OnProgress] = None,
        signal: Optional[AbortSignal] = None,
    ) -> BungeeStatusResponse:
        """Poll ``/bridge-status`` until both legs report COMPLETED."""

        from_chain = normalize_chain_id_for_provider(from_chain_id or 0, self.provider)
        to_chain = normalize_chain_id_for_provider(to_chain_id or 0, self.provider)

        async def fetch(source_hash: str) -> BungeeStatusResponse:
            payload = await self._client.bridge_status(source_hash, from_chain, to_chain)
            return BungeeStatusResponse.from_dict(payload, to_chain_id=to_chain_id)

        async def report(status: BungeeStatusResponse) -> None:
            tx_hashes = []
            if status.source_transaction_hash:
                tx_hashes.append(TxHash(status.source_transaction_hash, status.from_chain_id or from_chain_id))
            if status.destination_transaction_hash:
                tx_hashes.append(TxHash(status.destination_transaction_hash, to_chain_id))

            state = ProgressState.PENDING
            if status.is_terminal:
                state = ProgressState.VALIDATING if status.destination_transaction_hash else ProgressState.COMPLETE
            await self._emit(on_progress, self._event(quote, state, tx_hashes, status=status.status))

        poller = BridgeStatusPoller(
            fetch,
            options=self._monitor_options,
            sleep=self._sleep,
            on_status=report,
            name="bungee",
        )
        with abort_after(settings.bridge_monitor_timeout_seconds, signal) as monitor_signal:
            return await poller.poll(tx_hash, signal=monitor_signal)
