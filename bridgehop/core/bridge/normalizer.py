"""Chain id and token address remapping for backends with their own conventions."""

from __future__ import annotations

import dataclasses
from typing import TypeVar

from .constants import (
    BUNGEE_SOLANA_CHAIN_ID,
    HYPERLIQUID_CHAIN_ID,
    HYPERLIQUID_USDC_ADDRESS,
    SOLANA_CHAIN_ID,
    SPECIAL_CHAINS,
)
from .models import BridgeProvider, PriceParams

P = TypeVar("P", bound=PriceParams)


def normalize_chain_id_for_provider(chain_id: int, provider: BridgeProvider) -> int:
    """Bungee models Solana as 89999; everything else uses the engine's ids."""

    if chain_id == SOLANA_CHAIN_ID and provider == BridgeProvider.BUNGEE:
        return BUNGEE_SOLANA_CHAIN_ID
    return chain_id


def get_token_address_for_chain(chain_id: int, default_address: str) -> str:
    if chain_id == HYPERLIQUID_CHAIN_ID:
        return HYPERLIQUID_USDC_ADDRESS
    return default_address


def provider_supports_special_chain(provider: BridgeProvider, chain_id: int) -> bool:
    if chain_id == HYPERLIQUID_CHAIN_ID:
        return provider == BridgeProvider.RELAY
    if chain_id == SOLANA_CHAIN_ID:
        return provider in (BridgeProvider.RELAY, BridgeProvider.BUNGEE)
    return True


def is_special_chain_pair(from_chain_id: int, to_chain_id: int) -> bool:
    return from_chain_id in SPECIAL_CHAINS or to_chain_id in SPECIAL_CHAINS


def transform_params_for_provider(params: P, provider: BridgeProvider) -> P:
    """Return a copy of ``params`` expressed in ``provider``'s conventions.

    The Hyperliquid token override is decided from the original destination
    chain, before any chain id remapping.
    """

    destination_currency = get_token_address_for_chain(
        params.destination_chain_id, params.destination_currency
    )
    return dataclasses.replace(
        params,
        origin_chain_id=normalize_chain_id_for_provider(params.origin_chain_id, provider),
        destination_chain_id=normalize_chain_id_for_provider(params.destination_chain_id, provider),
        destination_currency=destination_currency,
    )
