"""Bridge backend adapters and their single construction point."""

from typing import Any

from ..models import BridgeProvider
from .base import BridgeProviderAdapter, OnProgress
from .bungee import BungeeAdapter
from .relay import RelayAdapter

__all__ = ["BridgeProviderAdapter", "BungeeAdapter", "OnProgress", "RelayAdapter", "create_adapter"]


def create_adapter(provider: BridgeProvider, **kwargs: Any) -> BridgeProviderAdapter:
    """Build the adapter for ``provider``.

    ``kwargs`` are forwarded to the adapter; ``relay_client`` / ``bungee_client``
    and ``rpc`` are routed only to the variant that uses them.
    """

    relay_client = kwargs.pop("relay_client", None)
    bungee_client = kwargs.pop("bungee_client", None)
    rpc = kwargs.pop("rpc", None)

    if provider == BridgeProvider.RELAY:
        return RelayAdapter(client=relay_client, **kwargs)
    if provider == BridgeProvider.BUNGEE:
        return BungeeAdapter(client=bungee_client, rpc=rpc, **kwargs)
    raise ValueError(f"Unknown bridge provider: {provider!r}")
