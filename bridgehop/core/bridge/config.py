"""Static provider table: chain support, priority, capabilities and retry policy."""

from __future__ import annotations

from typing import Optional

from ...config import Settings, settings
from .constants import BUNGEE_SUPPORTED_CHAINS, RELAY_SUPPORTED_CHAINS
from .models import (
    ApiConfig,
    BridgeConfig,
    BridgeDefaults,
    BridgeProvider,
    ChainSupport,
    ProviderCapabilities,
    ProviderConfig,
    ProviderTimeouts,
    RetryPolicy,
)

RELAY_DEFAULT_BASE_URL = "https://api.relay.link"
BUNGEE_DEFAULT_BASE_URL = "https://api.socket.tech/v2"


def build_bridge_config(config_settings: Optional[Settings] = None) -> BridgeConfig:
    """Assemble the provider table from code defaults and environment settings."""

    cfg = config_settings or settings

    relay = ProviderConfig(
        provider=BridgeProvider.RELAY,
        enabled=True,
        priority=1,
        supported_chains=ChainSupport(
            origins=RELAY_SUPPORTED_CHAINS,
            destinations=RELAY_SUPPORTED_CHAINS,
            min_amount_usd=1,
            max_amount_usd=1_000_000,
        ),
        capabilities=ProviderCapabilities(
            max_transaction_value_usd=1_000_000,
            min_transaction_value_usd=1,
            supported_features=("cross-chain", "non-evm", "solana", "tron"),
        ),
        timeouts=ProviderTimeouts(quote_timeout_s=10, execution_timeout_s=120),
        retry_policy=RetryPolicy(max_retries=3, backoff_multiplier=1.5, base_delay_s=1.0),
        api_config=ApiConfig(base_url=cfg.relay_base_url or RELAY_DEFAULT_BASE_URL),
    )

    bungee = ProviderConfig(
        provider=BridgeProvider.BUNGEE,
        enabled=True,
        priority=2,
        supported_chains=ChainSupport(
            origins=BUNGEE_SUPPORTED_CHAINS,
            destinations=BUNGEE_SUPPORTED_CHAINS,
            min_amount_usd=1,
            max_amount_usd=500_000,
        ),
        capabilities=ProviderCapabilities(
            max_transaction_value_usd=500_000,
            min_transaction_value_usd=1,
            supported_features=("evm-optimized", "competitive-rates"),
        ),
        timeouts=ProviderTimeouts(quote_timeout_s=8, execution_timeout_s=100),
        retry_policy=RetryPolicy(max_retries=3, backoff_multiplier=1.8, base_delay_s=1.2),
        api_config=ApiConfig(
            base_url=cfg.bungee_base_url or BUNGEE_DEFAULT_BASE_URL,
            api_key=cfg.bungee_api_key or None,
            requests_per_second=10,
            burst_limit=15,
        ),
    )

    return BridgeConfig(
        providers={relay.provider: relay, bungee.provider: bungee},
        fallback_enabled=cfg.bridge_fallback_enabled,
        defaults=BridgeDefaults(
            primary_provider=BridgeProvider.RELAY,
            fallback_provider=BridgeProvider.BUNGEE,
            enable_auto_fallback=True,
            max_providers_to_try=cfg.max_providers_to_try,
        ),
    )


# Loaded once at import; treat as read-only
BRIDGE_CONFIG = build_bridge_config()
