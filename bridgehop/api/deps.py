from typing import Dict, Optional

from ..cache import RequestDeduplicator
from ..core.bridge.adapters import BridgeProviderAdapter, create_adapter
from ..core.bridge.config import BRIDGE_CONFIG
from ..core.bridge.gas import GasPriceEscalator
from ..core.bridge.manager import BridgeManager
from ..core.bridge.models import BridgeProvider
from ..providers.rpc import get_rpc_provider

_adapters: Optional[Dict[BridgeProvider, BridgeProviderAdapter]] = None


def get_shared_adapters() -> Dict[BridgeProvider, BridgeProviderAdapter]:
    """Adapters (and their dedup store) live for the whole process."""

    global _adapters
    if _adapters is None:
        dedup = RequestDeduplicator()
        gas = GasPriceEscalator(get_rpc_provider())
        _adapters = {
            provider: create_adapter(provider, config=BRIDGE_CONFIG, dedup=dedup, gas=gas)
            for provider in BRIDGE_CONFIG.providers
        }
    return _adapters


def get_bridge_manager() -> BridgeManager:
    # Orchestrator state is per request; adapters are shared
    return BridgeManager(config=BRIDGE_CONFIG, adapters=get_shared_adapters())
