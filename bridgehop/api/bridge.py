from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.bridge.errors import BridgeError, NoRoutesError, UnsupportedRouteError
from ..core.bridge.manager import BridgeManager
from ..core.bridge.models import PriceParams, QuoteParams, UnifiedQuote
from .deps import get_bridge_manager

router = APIRouter(prefix="/bridge")


class BridgePriceRequest(BaseModel):
    user: str = Field(..., description="Address initiating the bridge")
    originChainId: int = Field(..., description="Source chain ID")
    destinationChainId: int = Field(..., description="Destination chain ID")
    originCurrency: str = Field(..., description="Input token address or zero-address for native")
    destinationCurrency: str = Field(..., description="Output token address or zero-address for native")
    amount: str = Field(..., description="Amount in smallest units (wei / token decimals)")
    recipient: Optional[str] = Field(default=None, description="Recipient address on the destination chain")
    tradeType: str = Field('EXACT_INPUT', description="Trade type", pattern='^(EXACT_INPUT|EXACT_OUTPUT)$')

    def to_params(self) -> PriceParams:
        return PriceParams(
            origin_chain_id=self.originChainId,
            destination_chain_id=self.destinationChainId,
            origin_currency=self.originCurrency,
            destination_currency=self.destinationCurrency,
            amount=self.amount,
            user=self.user,
            recipient=self.recipient,
            trade_type=self.tradeType,
        )


class BridgeQuoteRequest(BridgePriceRequest):
    options: Dict[str, Any] = Field(default_factory=dict, description="Extra backend quote options")

    def to_params(self) -> QuoteParams:
        base = super().to_params()
        return QuoteParams(**vars(base), options=dict(self.options))


def _quote_response(manager: BridgeManager, quote: Optional[UnifiedQuote]) -> Dict[str, Any]:
    if quote is None:
        raise HTTPException(status_code=404, detail="No bridge route available")
    return {
        "success": True,
        "provider": quote.provider.value,
        "quote": quote.to_dict(),
        "fallbackAttempts": [attempt.to_dict() for attempt in manager.fallback_attempts],
    }


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, UnsupportedRouteError):
        raise HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, NoRoutesError):
        raise HTTPException(status_code=404, detail=str(exc))
    raise HTTPException(status_code=502, detail=f"Bridge provider error: {exc}")


@router.get("/providers")
async def bridge_providers(
    fromChainId: int = Query(..., description="Source chain ID"),
    toChainId: int = Query(..., description="Destination chain ID"),
    manager: BridgeManager = Depends(get_bridge_manager),
) -> Dict[str, Any]:
    available = manager.get_available_providers(fromChainId, toChainId)
    return {
        "success": True,
        "providers": [provider.value for provider in available],
        "capabilities": {
            provider.value: manager.get_capabilities(provider).to_dict()
            for provider in available
        },
        "selection": manager.select_provider(fromChainId, toChainId).to_dict(),
    }


@router.post("/price")
async def bridge_price(
    request: BridgePriceRequest,
    manager: BridgeManager = Depends(get_bridge_manager),
) -> Dict[str, Any]:
    try:
        quote = await manager.get_price(request.to_params())
    except (BridgeError, httpx.HTTPError) as exc:
        _raise_http(exc)
    return _quote_response(manager, quote)


@router.post("/quote")
async def bridge_quote(
    request: BridgeQuoteRequest,
    manager: BridgeManager = Depends(get_bridge_manager),
) -> Dict[str, Any]:
    try:
        quote = await manager.get_quote(request.to_params())
    except (BridgeError, httpx.HTTPError) as exc:
        _raise_http(exc)
    return _quote_response(manager, quote)
