"""
Network RPC Client

Minimal JSON-RPC and HTTP client used to probe the local blockchain network
and the backend server.
"""

import asyncio
import itertools
from typing import Any

import aiohttp

from .exceptions import RpcConnectionError, RpcError, RpcTimeoutError


class NetworkRpcClient:
    """Client for the JSON-RPC endpoint of the local network."""

    def __init__(self, url: str, timeout: float = 5, retry_attempts: int = 1):
        self.url = url
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self._session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if not self._session:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def call(self, method: str, params: list | None = None) -> Any:
        """Invoke a JSON-RPC method and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        session = await self._get_session()

        for attempt in range(self.retry_attempts):
            try:
                async with session.post(self.url, json=payload) as response:
                    if response.status != 200:
                        raise RpcConnectionError(
                            f"{self.url} returned HTTP {response.status}"
                        )
                    body = await response.json(content_type=None)
                    break
            except asyncio.TimeoutError:
                if attempt == self.retry_attempts - 1:
                    raise RpcTimeoutError(
                        f"{method} timed out after {self.retry_attempts} attempts"
                    )
            except aiohttp.ClientError as e:
                if attempt == self.retry_attempts - 1:
                    raise RpcConnectionError(f"Failed to reach {self.url}: {e}")

            # Exponential backoff
            await asyncio.sleep(2**attempt)

        if "error" in body:
            raise RpcError(f"{method} failed: {body['error']}")
        return body.get("result")

    async def network_version(self) -> str:
        """Return the network id reported by ``net_version``."""
        return str(await self.call("net_version"))

    async def block_number(self) -> int:
        """Return the latest block number."""
        return int(await self.call("eth_blockNumber"), 16)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None


async def probe_http(url: str, timeout: float = 5) -> int:
    """GET ``url`` and return the HTTP status code."""
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.get(url) as response:
                return response.status
    except asyncio.TimeoutError:
        raise RpcTimeoutError(f"GET {url} timed out after {timeout:g}s")
    except aiohttp.ClientError as e:
        raise RpcConnectionError(f"Failed to reach {url}: {e}")


__all__ = [
    "NetworkRpcClient",
    "probe_http",
]
