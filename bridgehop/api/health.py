from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..core.bridge.manager import BridgeManager
from ..core.bridge.models import BridgeProvider
from .deps import get_bridge_manager

router = APIRouter()


@router.get("/healthz")
async def health_check(manager: BridgeManager = Depends(get_bridge_manager)) -> Dict[str, Any]:
    """Health check endpoint that reports bridge provider status"""

    provider_status = {}
    for provider in BridgeProvider:
        healthy = await manager.check_provider_health(provider)
        provider_status[provider.value] = {"status": "healthy" if healthy else "unavailable"}

    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] == "healthy"
    )

    return {
        "status": "healthy" if available_providers > 0 else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status)
    }
