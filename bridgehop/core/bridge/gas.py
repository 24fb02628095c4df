"""Minimum gas pricing so stale backend quotes do not submit stuck transactions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union

from .models import UnifiedQuote

GWEI = 10**9

CONGESTION_THRESHOLD = 5 * GWEI
MIN_PRIORITY_FEE = 1 * GWEI
MIN_MAX_FEE = 2 * GWEI

FALLBACK_PRIORITY_FEE = 2 * GWEI
FALLBACK_MAX_FEE = 4 * GWEI
FALLBACK_BASE_FEE = 1 * GWEI


class GasOracle(Protocol):
    async def get_block(self, block_tag: str = "latest") -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class GasPrice:
    priority: int
    max: int
    base_fee: int = FALLBACK_BASE_FEE
    is_congested: bool = False


@dataclass(frozen=True)
class NetworkConditions:
    base_fee: int
    is_congested: bool
    recommended_buffer_percent: int


FALLBACK_GAS_PRICE = GasPrice(priority=FALLBACK_PRIORITY_FEE, max=FALLBACK_MAX_FEE)


def _to_int(value: Union[int, str, None]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 0)


def calculate_gas_with_buffer(estimated: int, is_congested: bool) -> int:
    """+30% under congestion, +20% otherwise."""

    multiplier = 130 if is_congested else 120
    return estimated * multiplier // 100


class GasPriceEscalator:
    """Derives a minimum acceptable fee from the latest block's base fee."""

    def __init__(self, oracle: Optional[GasOracle] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self._oracle = oracle
        self._logger = logger or logging.getLogger(__name__)

    async def _latest_base_fee(self) -> int:
        if self._oracle is None:
            raise RuntimeError("Gas oracle not configured")
        block = await self._oracle.get_block("latest")
        return _to_int(block.get("baseFeePerGas")) or FALLBACK_BASE_FEE

    async def get_min_gas_price(self) -> GasPrice:
        try:
            base_fee = await self._latest_base_fee()
        except Exception as exc:
            self._logger.warning("Failed to fetch base fee, using fallback gas prices: %s", exc)
            return FALLBACK_GAS_PRICE

        is_congested = base_fee > CONGESTION_THRESHOLD
        adjusted = base_fee * (2 if is_congested else 1)
        priority = max(adjusted // 10, MIN_PRIORITY_FEE)
        max_fee = max(adjusted * 12 // 10, MIN_MAX_FEE)

        self._logger.debug(
            "Dynamic gas pricing base_fee=%s congested=%s priority=%s max=%s",
            base_fee,
            is_congested,
            priority,
            max_fee,
        )
        return GasPrice(priority=priority, max=max_fee, base_fee=base_fee, is_congested=is_congested)

    async def get_network_conditions(self) -> NetworkConditions:
        try:
            base_fee = await self._latest_base_fee()
        except Exception as exc:
            self._logger.warning("Failed to get network conditions: %s", exc)
            return NetworkConditions(base_fee=FALLBACK_BASE_FEE, is_congested=False, recommended_buffer_percent=25)

        is_congested = base_fee > CONGESTION_THRESHOLD
        return NetworkConditions(
            base_fee=base_fee,
            is_congested=is_congested,
            recommended_buffer_percent=30 if is_congested else 20,
        )

    def apply_min_gas(self, quote: UnifiedQuote, minimum: GasPrice) -> UnifiedQuote:
        """Return a copy of ``quote`` with gas fields raised to ``minimum``.

        Only items that already carry ``maxPriorityFeePerGas`` are touched, and
        a field is never lowered.
        """

        escalated = quote.copy()
        for item in escalated.iter_items():
            data = item.get("data")
            if not isinstance(data, dict) or data.get("maxPriorityFeePerGas") is None:
                continue

            self._raise_field(data, "maxPriorityFeePerGas", minimum.priority)
            self._raise_field(data, "maxFeePerGas", minimum.max)
        return escalated

    def _raise_field(self, data: Dict[str, Any], name: str, required: int) -> None:
        current_raw = data.get(name)
        current = _to_int(current_raw) or 0
        if current >= required:
            return

        self._logger.info("Raising %s from %s to %s", name, current, required)
        data[name] = required if isinstance(current_raw, int) else str(required)

    async def escalate(self, quote: UnifiedQuote) -> UnifiedQuote:
        return self.apply_min_gas(quote, await self.get_min_gas_price())
