"""
Tests for the fallback orchestrator.
"""

import asyncio

import httpx
import pytest
from unittest.mock import MagicMock

from bridgehop.core.bridge.config import BRIDGE_CONFIG
from bridgehop.core.bridge.errors import (
    AllProvidersFailedError,
    BridgeExecutionError,
    BridgeOperationCancelled,
    NoRoutesError,
    UnsupportedRouteError,
    UserRejectedError,
)
from bridgehop.core.bridge.manager import NO_ROUTES_REASON, BridgeManager
from bridgehop.core.bridge.models import (
    AttemptStatus,
    BridgeProvider,
    ExecutionResult,
    OperationType,
    PriceParams,
    ProgressEvent,
    ProgressState,
    QuoteParams,
    TxHash,
    UnifiedQuote,
)
from bridgehop.core.bridge.monitoring import AttemptTracker

USER = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
POLYGON_USDC = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"


class FakeAdapter:
    """Scripted adapter; each entry in ``results`` is returned or raised in turn."""

    def __init__(self, provider, results=None, supported=True, healthy=True):
        self.provider = provider
        self.results = list(results or [])
        self.supported = supported
        self.healthy = healthy
        self.calls = []
        self.active = 0
        self.max_active = 0

    def is_supported(self, from_chain_id, to_chain_id):
        return self.supported

    async def is_healthy(self):
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy

    async def _next(self, name, *args):
        self.calls.append((name, args))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            result = self.results.pop(0) if self.results else None
            if isinstance(result, BaseException):
                raise result
            return result
        finally:
            self.active -= 1

    async def get_price(self, params):
        return await self._next("price", params)

    async def get_quote(self, params):
        return await self._next("quote", params)

    async def execute(self, quote, on_progress=None, signal=None):
        if on_progress is not None:
            await on_progress(ProgressEvent(provider=self.provider, state=ProgressState.PENDING))
        return await self._next("execute", quote, signal)


def _params(to_chain_id: int = 137) -> PriceParams:
    return PriceParams(
        origin_chain_id=8453,
        destination_chain_id=to_chain_id,
        origin_currency=BASE_USDC,
        destination_currency=POLYGON_USDC,
        amount="1000000",
        user=USER,
    )


def _quote(provider: BridgeProvider) -> UnifiedQuote:
    return UnifiedQuote(
        provider=provider,
        details={
            "currencyIn": {"currency": {"chainId": 8453}, "amount": "1000000"},
            "currencyOut": {"currency": {"chainId": 137}, "amount": "990000"},
        },
    )


def _network_error() -> httpx.ConnectError:
    return httpx.ConnectError("connection refused", request=httpx.Request("POST", "https://api.relay.link/price"))


def _manager(relay, bungee, **kwargs) -> BridgeManager:
    return BridgeManager(
        config=BRIDGE_CONFIG,
        adapters={BridgeProvider.RELAY: relay, BridgeProvider.BUNGEE: bungee},
        **kwargs,
    )


# =============================================================================
# Selection Surface
# =============================================================================

class TestManagerSelection:
    """Tests for the selection helpers exposed by the manager."""

    def test_select_and_list_providers(self):
        manager = _manager(FakeAdapter(BridgeProvider.RELAY), FakeAdapter(BridgeProvider.BUNGEE))

        selection = manager.select_provider(8453, 137)

        assert selection.ordered() == [BridgeProvider.RELAY, BridgeProvider.BUNGEE]
        assert manager.get_available_providers(8453, 137) == [BridgeProvider.RELAY, BridgeProvider.BUNGEE]
        assert manager.get_current_provider() is None

    @pytest.mark.asyncio
    async def test_health_check_failure_reports_unhealthy(self):
        manager = _manager(
            FakeAdapter(BridgeProvider.RELAY, healthy=RuntimeError("down")),
            FakeAdapter(BridgeProvider.BUNGEE),
        )

        assert await manager.check_provider_health(BridgeProvider.RELAY) is False
        assert await manager.check_provider_health(BridgeProvider.BUNGEE) is True


# =============================================================================
# Fallback Orchestration
# =============================================================================

class TestFallbackOrchestration:
    """Tests for sequential provider fallback."""

    @pytest.mark.asyncio
    async def test_unsupported_route_touches_no_adapter(self):
        relay, bungee = FakeAdapter(BridgeProvider.RELAY), FakeAdapter(BridgeProvider.BUNGEE)
        manager = _manager(relay, bungee)

        with pytest.raises(UnsupportedRouteError):
            await manager.get_price(_params(to_chain_id=123456789))

        assert relay.calls == [] and bungee.calls == []
        assert isinstance(manager.error, UnsupportedRouteError)
        assert manager.is_loading is False

    @pytest.mark.asyncio
    async def test_no_route_from_primary_falls_back(self):
        bungee_quote = _quote(BridgeProvider.BUNGEE)
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [bungee_quote])
        switches = []
        manager = _manager(relay, bungee, on_provider_switch=lambda *args: switches.append(args))

        result = await manager.get_price(_params())

        assert result is bungee_quote
        assert manager.current_provider == BridgeProvider.BUNGEE
        assert [(a.provider, a.reason) for a in manager.fallback_attempts] == [
            (BridgeProvider.RELAY, NO_ROUTES_REASON)
        ]
        assert switches == [(BridgeProvider.RELAY, BridgeProvider.BUNGEE, NO_ROUTES_REASON)]
        assert manager.execution_context.session_id.startswith("bridge_")
        assert manager.execution_context.fallback_attempts == manager.fallback_attempts

    @pytest.mark.asyncio
    async def test_network_error_fails_over(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [_network_error()])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])
        manager = _manager(relay, bungee)

        result = await manager.get_quote(QuoteParams(**vars(_params())))

        assert result.provider == BridgeProvider.BUNGEE
        assert manager.fallback_attempts[0].provider == BridgeProvider.RELAY
        assert "connection refused" in manager.fallback_attempts[0].reason

    @pytest.mark.asyncio
    async def test_no_routes_error_fails_over(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [NoRoutesError(provider="relay")])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])

        result = await _manager(relay, bungee).get_price(_params())

        assert result.provider == BridgeProvider.BUNGEE

    @pytest.mark.asyncio
    async def test_user_rejection_is_not_retried(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [UserRejectedError()])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])
        manager = _manager(relay, bungee)

        with pytest.raises(UserRejectedError):
            await manager.get_price(_params())

        assert bungee.calls == []
        assert isinstance(manager.error, UserRejectedError)
        assert manager.last_attempt_provider == BridgeProvider.RELAY

    @pytest.mark.asyncio
    async def test_execution_error_is_not_retried(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [BridgeExecutionError("execution reverted")])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])

        with pytest.raises(BridgeExecutionError):
            await _manager(relay, bungee).get_price(_params())

        assert bungee.calls == []

    @pytest.mark.asyncio
    async def test_fallback_disabled_raises_first_error(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [_network_error()])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])

        with pytest.raises(httpx.ConnectError):
            await _manager(relay, bungee, enable_fallback=False).get_price(_params())

        assert bungee.calls == []

    @pytest.mark.asyncio
    async def test_providers_attempted_one_at_a_time(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [None])

        await _manager(relay, bungee).get_price(_params())

        assert relay.max_active == 1 and bungee.max_active == 1
        assert len(relay.calls) == 1 and len(bungee.calls) == 1

    @pytest.mark.asyncio
    async def test_no_route_from_every_provider_returns_none(self):
        manager = _manager(FakeAdapter(BridgeProvider.RELAY, [None]), FakeAdapter(BridgeProvider.BUNGEE, [None]))

        assert await manager.get_price(_params()) is None
        assert [a.reason for a in manager.fallback_attempts] == [NO_ROUTES_REASON, NO_ROUTES_REASON]
        assert manager.error is None

    @pytest.mark.asyncio
    async def test_no_route_then_unsupported_raises_no_routes(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, supported=False)
        manager = _manager(relay, bungee)

        with pytest.raises(NoRoutesError, match="relay: No routes available"):
            await manager.get_price(_params())

        assert manager.fallback_attempts[1].provider == BridgeProvider.BUNGEE
        assert "does not support" in manager.fallback_attempts[1].reason
        assert manager.get_current_provider() == BridgeProvider.RELAY
        assert manager.last_attempt_provider == BridgeProvider.RELAY

    @pytest.mark.asyncio
    async def test_every_provider_skipped_raises_all_failed(self):
        manager = _manager(
            FakeAdapter(BridgeProvider.RELAY, supported=False),
            FakeAdapter(BridgeProvider.BUNGEE, supported=False),
        )

        with pytest.raises(AllProvidersFailedError):
            await manager.get_price(_params())

        assert manager.get_current_provider() is None
        assert manager.execution_context.provider == BridgeProvider.RELAY

    @pytest.mark.asyncio
    async def test_max_providers_limits_attempts(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])

        assert await _manager(relay, bungee, max_providers_to_try=1).get_price(_params()) is None
        assert bungee.calls == []

    @pytest.mark.asyncio
    async def test_cancellation_propagates_without_fallback(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [BridgeOperationCancelled("user closed")])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_quote(BridgeProvider.BUNGEE)])
        tracker = AttemptTracker(error_logger=MagicMock())
        manager = _manager(relay, bungee, tracker=tracker)

        with pytest.raises(BridgeOperationCancelled):
            await manager.get_price(_params())

        assert bungee.calls == []
        assert manager.fallback_attempts == []
        assert tracker.active == []


# =============================================================================
# Attempt Tracking
# =============================================================================

class TestAttemptRecording:
    """Tests for the tracker calls made per provider attempt."""

    @pytest.mark.asyncio
    async def test_none_completes_and_exception_fails(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_network_error()])
        tracker = MagicMock()
        tracker.start.side_effect = ["attempt-relay", "attempt-bungee"]
        manager = _manager(relay, bungee, tracker=tracker)

        with pytest.raises(httpx.ConnectError):
            await manager.get_price(_params())

        assert tracker.start.call_args_list[0][0][:2] == (BridgeProvider.RELAY, OperationType.PRICE)
        tracker.complete.assert_called_once_with("attempt-relay", metadata={"result": NO_ROUTES_REASON})
        assert tracker.fail.call_args[0][0] == "attempt-bungee"

    @pytest.mark.asyncio
    async def test_last_network_error_is_raised_when_nothing_left(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [None])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [_network_error()])

        with pytest.raises(httpx.ConnectError):
            await _manager(relay, bungee).get_price(_params())

    @pytest.mark.asyncio
    async def test_successful_attempt_is_completed(self):
        tracker = AttemptTracker(error_logger=MagicMock())
        manager = _manager(
            FakeAdapter(BridgeProvider.RELAY, [_quote(BridgeProvider.RELAY)]),
            FakeAdapter(BridgeProvider.BUNGEE),
            tracker=tracker,
        )

        await manager.get_price(_params())

        assert tracker.active == []


# =============================================================================
# Execution
# =============================================================================

class TestExecuteQuote:
    """Tests for executing with the provider that issued the quote."""

    @pytest.mark.asyncio
    async def test_executes_with_quoting_provider_only(self):
        result = ExecutionResult(
            provider=BridgeProvider.BUNGEE,
            success=True,
            transaction_hash="0xsrc",
            tx_hashes=[TxHash("0xsrc", 8453), TxHash("0xdst", 137)],
        )
        relay = FakeAdapter(BridgeProvider.RELAY)
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [result])
        tracker = MagicMock()
        tracker.start.return_value = "attempt-1"
        manager = _manager(relay, bungee, tracker=tracker)
        events = []

        outcome = await manager.execute_quote(_quote(BridgeProvider.BUNGEE), on_progress=events.append)

        assert outcome is result
        assert relay.calls == []
        assert [event.provider for event in events] == [BridgeProvider.BUNGEE]
        assert manager.progress.listener_count == 0
        tracker.complete.assert_called_once_with("attempt-1", source_tx_hash="0xsrc", destination_tx_hash="0xdst")

    @pytest.mark.asyncio
    async def test_execution_failure_does_not_fall_back(self):
        relay = FakeAdapter(BridgeProvider.RELAY, [_network_error()])
        bungee = FakeAdapter(BridgeProvider.BUNGEE, [ExecutionResult(provider=BridgeProvider.BUNGEE, success=True)])
        manager = _manager(relay, bungee)

        with pytest.raises(httpx.ConnectError):
            await manager.execute_quote(_quote(BridgeProvider.RELAY))

        assert bungee.calls == []
        assert manager.is_loading is False
