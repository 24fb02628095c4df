import os
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import Provider


class BungeeProvider(Provider):
    """Thin client for the Bungee (Socket) v2 API surface."""

    name = 'bungee'

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Try explicit args → settings → environment → defaults
        self.api_key = (
            api_key
            or getattr(settings, 'bungee_api_key', '')
            or os.environ.get('BUNGEE_API_KEY', '')
        )

        configured = (
            base_url
            or getattr(settings, 'bungee_base_url', '')
            or os.environ.get('BUNGEE_BASE_URL', '')
        )
        if configured:
            self.base_urls: List[str] = [configured.rstrip('/')]
        else:
            self.base_urls = ['https://api.socket.tech/v2']

        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if self.api_key:
            headers['API-KEY'] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(base_url=base_url, timeout=self.timeout_s, transport=self._transport) as client:
                    resp = await client.request(method, path, headers=merged_headers, **kwargs)
                    resp.raise_for_status()
                    return resp
            except httpx.HTTPStatusError as exc:
                # Some hosts omit certain routes. Fall back when we hit 404/405.
                if exc.response.status_code in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                continue

        if last_error:
            raise last_error
        raise RuntimeError('All Bungee hosts failed without a specific error')

    async def ready(self) -> bool:
        return bool(self.api_key)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {'status': 'disabled', 'reason': 'Bungee API key not configured'}
        return {'status': 'healthy', 'base_url': self.base_urls[0]}

    async def quote(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Fetch candidate routes, best output first."""

        cleaned_params: Dict[str, Any] = {k: v for k, v in params.items() if v is not None}
        resp = await self._request('GET', '/quote', params=cleaned_params)
        return resp.json()

    async def build_tx(self, route: Dict[str, Any]) -> Dict[str, Any]:
        """Build the transaction (and approval data) for a route returned by ``quote``."""

        resp = await self._request('POST', '/build-tx', json={'route': route})
        return resp.json()

    async def bridge_status(self, tx_hash: str, from_chain_id: int, to_chain_id: int) -> Dict[str, Any]:
        params = {
            'transactionHash': tx_hash,
            'fromChainId': from_chain_id,
            'toChainId': to_chain_id,
        }
        resp = await self._request('GET', '/bridge-status', params=params)
        return resp.json()
