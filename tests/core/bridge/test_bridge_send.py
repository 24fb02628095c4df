"""
Tests for the send-with-bridge flow: validation, quote summaries and completion.
"""

import asyncio

import pytest
from unittest.mock import MagicMock

from eth_utils import to_checksum_address

from bridgehop.cache import QuoteCache
from bridgehop.config import Settings
from bridgehop.core.bridge.config import BRIDGE_CONFIG
from bridgehop.core.bridge.constants import BASE_USDC_ADDRESS
from bridgehop.core.bridge.errors import BridgeExecutionError
from bridgehop.core.bridge.manager import BridgeManager
from bridgehop.core.bridge.models import (
    BridgeProvider,
    ExecutionResult,
    ProgressEvent,
    ProgressState,
    TxHash,
    UnifiedQuote,
)
from bridgehop.core.bridge.poller import race_abort
from bridgehop.core.bridge.send import SendRequest, SendWithBridge, to_token_units

USER = "0x50ac5cfcc81bb0872e85255d7079f8a529345d16"
RECIPIENT = "0x1111111111111111111111111111111111111111"
POLYGON_USDC = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"


def _quote(provider: BridgeProvider, gas="0.05", relayer="0.021") -> UnifiedQuote:
    return UnifiedQuote(
        provider=provider,
        details={
            "currencyIn": {"currency": {"chainId": 8453}, "amount": "1000000"},
            "currencyOut": {"currency": {"chainId": 137}, "amount": "990000", "amountFormatted": "0.99"},
            "timeEstimate": 45,
        },
        fees={"gas": {"amountUsd": gas}, "relayer": {"amountUsd": relayer}},
    )


class ScriptedAdapter:
    def __init__(self, provider, price=None, quote=None, execute=None):
        self.provider = provider
        self.price_result = price
        self.quote_result = quote
        self.execute_impl = execute
        self.price_calls = []
        self.quote_calls = []

    def is_supported(self, from_chain_id, to_chain_id):
        return True

    async def get_price(self, params):
        self.price_calls.append(params)
        return self.price_result

    async def get_quote(self, params):
        self.quote_calls.append(params)
        return self.quote_result

    async def execute(self, quote, on_progress=None, signal=None):
        return await self.execute_impl(quote, on_progress, signal)


def _flow(relay, bungee, **kwargs) -> SendWithBridge:
    manager = BridgeManager(
        config=BRIDGE_CONFIG,
        adapters={BridgeProvider.RELAY: relay, BridgeProvider.BUNGEE: bungee},
    )
    kwargs.setdefault("user_address", USER)
    kwargs.setdefault("config_settings", Settings(min_bridge_amount_usd=0.01, environment="development"))
    kwargs.setdefault("quote_cache", QuoteCache(ttl_seconds=30, max_size=10))
    return SendWithBridge(manager, **kwargs)


def _request(amount: str = "1", to_chain_id: int = 137, to_token: str = POLYGON_USDC) -> SendRequest:
    return SendRequest(
        amount=amount,
        recipient=RECIPIENT,
        from_chain_id=8453,
        to_chain_id=to_chain_id,
        to_token=to_token,
    )


# =============================================================================
# Validation
# =============================================================================

class TestSendValidation:
    """Tests for amount and address validation."""

    def test_token_units_truncate(self):
        assert to_token_units("0.2") == 200_000
        assert to_token_units("1.0000009") == 1_000_000

    @pytest.mark.asyncio
    async def test_direct_transfer_needs_no_quote(self):
        relay = ScriptedAdapter(BridgeProvider.RELAY, price=_quote(BridgeProvider.RELAY))
        flow = _flow(relay, ScriptedAdapter(BridgeProvider.BUNGEE))

        request = _request(to_chain_id=8453, to_token=BASE_USDC_ADDRESS.lower())

        assert request.is_direct_transfer
        assert await flow.get_bridge_quote(request) is None
        assert relay.price_calls == []
        with pytest.raises(ValueError):
            await flow.execute_with_bridge(request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["abc", "0", "-1", "NaN"])
    async def test_invalid_amount_rejected(self, amount):
        flow = _flow(ScriptedAdapter(BridgeProvider.RELAY), ScriptedAdapter(BridgeProvider.BUNGEE))

        with pytest.raises(ValueError, match="Invalid amount for bridge quote"):
            await flow.get_bridge_quote(_request(amount=amount))

    @pytest.mark.asyncio
    async def test_amount_below_minimum_rejected(self):
        flow = _flow(ScriptedAdapter(BridgeProvider.RELAY), ScriptedAdapter(BridgeProvider.BUNGEE))

        with pytest.raises(ValueError, match="at least"):
            await flow.get_bridge_quote(_request(amount="0.001"))

    @pytest.mark.asyncio
    async def test_production_minimum_is_higher(self):
        flow = _flow(
            ScriptedAdapter(BridgeProvider.RELAY),
            ScriptedAdapter(BridgeProvider.BUNGEE),
            config_settings=Settings(min_bridge_amount_usd=0.01, environment="production"),
        )

        with pytest.raises(ValueError, match="at least"):
            await flow.execute_with_bridge(_request(amount="0.05"))

    @pytest.mark.asyncio
    async def test_invalid_user_address_rejected(self):
        flow = _flow(
            ScriptedAdapter(BridgeProvider.RELAY),
            ScriptedAdapter(BridgeProvider.BUNGEE),
            user_address="not-an-address",
        )

        with pytest.raises(ValueError, match="Valid user address"):
            await flow.get_bridge_quote(_request())


# =============================================================================
# Quote Summary
# =============================================================================

class TestBridgeQuoteSummary:
    """Tests for quote summaries and their cache."""

    @pytest.mark.asyncio
    async def test_summary_fields(self):
        relay = ScriptedAdapter(BridgeProvider.RELAY, price=_quote(BridgeProvider.RELAY))
        flow = _flow(relay, ScriptedAdapter(BridgeProvider.BUNGEE))

        summary = await flow.get_bridge_quote(_request(amount="1"))

        assert summary.provider == BridgeProvider.RELAY
        assert summary.total_fee == "0.07"
        assert summary.estimated_time == 45
        assert summary.output_amount_formatted == "0.99"
        assert summary.fallback_providers == [BridgeProvider.BUNGEE]
        params = relay.price_calls[0]
        assert params.amount == "1000000"
        assert params.user == to_checksum_address(USER)
        assert params.origin_currency == BASE_USDC_ADDRESS
        assert summary.to_dict()["totalFee"] == "0.07"

    @pytest.mark.asyncio
    async def test_summary_reports_fallback_provider(self):
        relay = ScriptedAdapter(BridgeProvider.RELAY, price=None)
        bungee = ScriptedAdapter(BridgeProvider.BUNGEE, price=_quote(BridgeProvider.BUNGEE))
        flow = _flow(relay, bungee)

        summary = await flow.get_bridge_quote(_request())

        assert summary.provider == BridgeProvider.BUNGEE

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self):
        relay = ScriptedAdapter(BridgeProvider.RELAY, price=_quote(BridgeProvider.RELAY))
        flow = _flow(relay, ScriptedAdapter(BridgeProvider.BUNGEE))

        first = await flow.get_bridge_quote(_request())
        second = await flow.get_bridge_quote(_request())

        assert first is second
        assert len(relay.price_calls) == 1

    @pytest.mark.asyncio
    async def test_shared_cache_is_keyed_by_user(self):
        relay = ScriptedAdapter(BridgeProvider.RELAY, price=_quote(BridgeProvider.RELAY))
        bungee = ScriptedAdapter(BridgeProvider.BUNGEE)
        cache = QuoteCache(ttl_seconds=30, max_size=10)

        await _flow(relay, bungee, quote_cache=cache).get_bridge_quote(_request())
        await _flow(relay, bungee, quote_cache=cache, user_address=RECIPIENT).get_bridge_quote(_request())

        assert len(relay.price_calls) == 2
        assert relay.price_calls[1].user == to_checksum_address(RECIPIENT)

    @pytest.mark.asyncio
    async def test_no_quote_returns_none(self):
        flow = _flow(ScriptedAdapter(BridgeProvider.RELAY), ScriptedAdapter(BridgeProvider.BUNGEE))

        assert await flow.get_bridge_quote(_request()) is None


# =============================================================================
# Execution
# =============================================================================

class TestExecuteWithBridge:
    """Tests for executing a bridged send and detecting completion."""

    @pytest.mark.asyncio
    async def test_missing_quote_raises(self):
        flow = _flow(ScriptedAdapter(BridgeProvider.RELAY), ScriptedAdapter(BridgeProvider.BUNGEE))

        with pytest.raises(BridgeExecutionError, match="Failed to get bridge quote"):
            await flow.execute_with_bridge(_request())

    @pytest.mark.asyncio
    async def test_bungee_send_reports_signed_once(self):
        quote = _quote(BridgeProvider.BUNGEE)

        async def execute(quote, on_progress, signal):
            source = TxHash("0xsrc", 8453)
            await on_progress(ProgressEvent(provider=BridgeProvider.BUNGEE, tx_hashes=[source]))
            await on_progress(
                ProgressEvent(
                    provider=BridgeProvider.BUNGEE,
                    state=ProgressState.VALIDATING,
                    tx_hashes=[source, TxHash("0xdst", 137)],
                )
            )
            return ExecutionResult(
                provider=BridgeProvider.BUNGEE,
                success=True,
                transaction_hash="0xsrc",
                tx_hashes=[source, TxHash("0xdst", 137)],
            )

        relay = ScriptedAdapter(BridgeProvider.RELAY, quote=None)
        bungee = ScriptedAdapter(BridgeProvider.BUNGEE, quote=quote, execute=execute)
        flow = _flow(relay, bungee)
        signed = MagicMock()

        result = await flow.execute_with_bridge(_request(), on_transaction_signed=signed)

        assert result.success is True
        assert result.provider == BridgeProvider.BUNGEE
        assert [tx.tx_hash for tx in result.tx_hashes] == ["0xsrc", "0xdst"]
        signed.assert_called_once()
        assert [tx.tx_hash for tx in signed.call_args[0][0]] == ["0xsrc"]

    @pytest.mark.asyncio
    async def test_relay_smart_account_returns_after_source_hash(self):
        gate = asyncio.Event()

        async def execute(quote, on_progress, signal):
            await on_progress(ProgressEvent(provider=BridgeProvider.RELAY, tx_hashes=[TxHash("0xsrc", 8453)]))
            await race_abort(gate.wait(), signal)
            return ExecutionResult(provider=BridgeProvider.RELAY, success=True)

        relay = ScriptedAdapter(BridgeProvider.RELAY, quote=_quote(BridgeProvider.RELAY), execute=execute)
        flow = _flow(relay, ScriptedAdapter(BridgeProvider.BUNGEE), is_smart_account=True)

        result = await flow.execute_with_bridge(_request())

        assert result.success is True
        assert result.execution is None
        assert [tx.tx_hash for tx in result.tx_hashes] == ["0xsrc"]
        assert len(flow._background) == 1

        await flow.aclose()

        assert flow._background == set()

    @pytest.mark.asyncio
    async def test_relay_pending_placeholder_is_not_completion(self):
        async def execute(quote, on_progress, signal):
            await on_progress(ProgressEvent(provider=BridgeProvider.RELAY, tx_hashes=[TxHash("pending-1", 8453)]))
            await on_progress(ProgressEvent(provider=BridgeProvider.RELAY, tx_hashes=[TxHash("0xsrc", 8453)]))
            return ExecutionResult(
                provider=BridgeProvider.RELAY,
                success=True,
                transaction_hash="0xsrc",
                tx_hashes=[TxHash("0xsrc", 8453), TxHash("0xdst", 137)],
            )

        relay = ScriptedAdapter(BridgeProvider.RELAY, quote=_quote(BridgeProvider.RELAY), execute=execute)
        flow = _flow(relay, ScriptedAdapter(BridgeProvider.BUNGEE))

        result = await flow.execute_with_bridge(_request())

        assert [tx.tx_hash for tx in result.tx_hashes] == ["pending-1", "0xsrc", "0xdst"]
        assert result.execution.transaction_hash == "0xsrc"
