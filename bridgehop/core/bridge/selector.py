"""Provider selection for a chain pair."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .config import BRIDGE_CONFIG
from .constants import SOLANA_CHAIN_ID
from .models import BridgeConfig, BridgeProvider, RouteSelection
from .normalizer import normalize_chain_id_for_provider, provider_supports_special_chain


def get_enabled_providers(config: Optional[BridgeConfig] = None) -> List[BridgeProvider]:
    cfg = config or BRIDGE_CONFIG
    return [provider for provider, provider_config in cfg.providers.items() if provider_config.enabled]


def sort_providers_by_priority(
    providers: Iterable[BridgeProvider],
    config: Optional[BridgeConfig] = None,
) -> List[BridgeProvider]:
    cfg = config or BRIDGE_CONFIG
    return sorted(providers, key=lambda provider: cfg.get(provider).priority)


def get_providers_for_chain_pair(
    from_chain_id: int,
    to_chain_id: int,
    config: Optional[BridgeConfig] = None,
) -> List[BridgeProvider]:
    """Enabled providers that can serve the pair, in priority order."""

    cfg = config or BRIDGE_CONFIG
    supported: List[BridgeProvider] = []
    for provider in get_enabled_providers(cfg):
        if not (
            provider_supports_special_chain(provider, from_chain_id)
            and provider_supports_special_chain(provider, to_chain_id)
        ):
            continue
        if cfg.get(provider).supports_pair(
            normalize_chain_id_for_provider(from_chain_id, provider),
            normalize_chain_id_for_provider(to_chain_id, provider),
        ):
            supported.append(provider)
    return sort_providers_by_priority(supported, cfg)


def _prefer(provider: BridgeProvider, supported: List[BridgeProvider], reason: str) -> RouteSelection:
    return RouteSelection(
        primary=provider,
        fallback=[candidate for candidate in supported if candidate != provider],
        reasoning=[reason],
    )


def select_provider(
    from_chain_id: int,
    to_chain_id: int,
    config: Optional[BridgeConfig] = None,
) -> RouteSelection:
    """Order the providers able to serve a route.

    Returns an empty selection when nothing supports the route; callers treat
    that as terminal.
    """

    cfg = config or BRIDGE_CONFIG
    supported = get_providers_for_chain_pair(from_chain_id, to_chain_id, cfg)

    if not supported:
        return RouteSelection(reasoning=[f"No bridge providers support route {from_chain_id} -> {to_chain_id}"])

    if from_chain_id == to_chain_id and BridgeProvider.RELAY in supported:
        return _prefer(BridgeProvider.RELAY, supported, "Using Relay for same-chain swap (DEX aggregation)")

    if SOLANA_CHAIN_ID in (from_chain_id, to_chain_id) and BridgeProvider.RELAY in supported:
        return _prefer(BridgeProvider.RELAY, supported, "Using Relay for Solana route (native support)")

    primary = cfg.defaults.primary_provider
    if primary in supported:
        return _prefer(primary, supported, f"Using configured primary provider: {primary.value}")

    fallback = cfg.defaults.fallback_provider
    if fallback in supported:
        return _prefer(
            fallback,
            supported,
            f"Primary provider {primary.value} not supported, using fallback: {fallback.value}",
        )

    return _prefer(supported[0], supported, f"Using first supported provider: {supported[0].value}")
