"""
EVM JSON-RPC provider used for gas pricing and ERC-20 allowance reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.execution.tx_builder import encode_erc20_allowance


class RpcError(Exception):
    """JSON-RPC error response."""
    pass


@dataclass
class RpcConfig:
    rpc_url: str


class EvmRpcProvider(Provider):
    name = "evm_rpc"
    timeout_s = 10

    def __init__(
        self,
        config: Optional[RpcConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or RpcConfig(rpc_url=settings.rpc_url)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def ready(self) -> bool:
        return bool(self._config.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "RPC URL not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": int(result, 16)}
        except (httpx.HTTPError, RpcError, ValueError, TypeError) as exc:
            return {"status": "error", "reason": str(exc)}

    async def get_block(self, block_tag: str = "latest") -> Dict[str, Any]:
        result = await self._rpc_call("eth_getBlockByNumber", [block_tag, False])
        if not isinstance(result, dict):
            raise RpcError(f"Block {block_tag} not found")
        return result

    async def get_erc20_allowance(self, token: str, owner: str, spender: str) -> int:
        result = await self._rpc_call(
            "eth_call",
            [{"to": token, "data": encode_erc20_allowance(owner, spender)}, "latest"],
        )
        if not isinstance(result, str):
            raise RpcError("Invalid eth_call response for allowance")
        return int(result, 16) if result not in ("0x", "") else 0

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

        response = await self._client.post(
            self._config.rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )
        response.raise_for_status()
        payload = response.json()
        if "error" in payload:
            raise RpcError(payload["error"])
        return payload.get("result")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_rpc_provider: Optional[EvmRpcProvider] = None


def get_rpc_provider() -> EvmRpcProvider:
    global _rpc_provider
    if _rpc_provider is None:
        _rpc_provider = EvmRpcProvider()
    return _rpc_provider
