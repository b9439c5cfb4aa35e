"""Unit tests for the network RPC client against a local aiohttp server."""

import pytest
import pytest_asyncio
from aiohttp import web

from agrichain_devctl.shared.exceptions import (
    RpcConnectionError,
    RpcError,
    RpcTimeoutError,
)
from agrichain_devctl.shared.rpc_client import NetworkRpcClient, probe_http


async def handle_rpc(request):
    body = await request.json()
    method = body["method"]
    if method == "net_version":
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": "5777"})
    if method == "eth_blockNumber":
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": "0x1a"})
    return web.json_response(
        {
            "jsonrpc": "2.0",
            "id": body["id"],
            "error": {"code": -32601, "message": "Method not found"},
        }
    )


async def handle_unavailable(request):
    return web.Response(status=503)


async def handle_root(request):
    return web.Response(status=404, text="Cannot GET /")


@pytest_asyncio.fixture
async def server_url():
    app = web.Application()
    app.router.add_post("/", handle_rpc)
    app.router.add_get("/", handle_root)
    app.router.add_post("/down", handle_unavailable)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    yield f"http://{host}:{port}"
    await runner.cleanup()


class TestNetworkRpcClient:
    """Test JSON-RPC calls."""

    @pytest.mark.asyncio
    async def test_network_version_and_block_number(self, server_url):
        """Test the probe methods decode their results."""
        client = NetworkRpcClient(server_url)
        try:
            assert await client.network_version() == "5777"
            assert await client.block_number() == 26
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_rpc_error_response(self, server_url):
        """Test a JSON-RPC error object is raised."""
        client = NetworkRpcClient(server_url)
        try:
            with pytest.raises(RpcError, match="Method not found"):
                await client.call("eth_unknown")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self, server_url):
        """Test a non-200 answer is a connection error."""
        client = NetworkRpcClient(f"{server_url}/down")
        try:
            with pytest.raises(RpcConnectionError, match="HTTP 503"):
                await client.network_version()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unreachable(self, server_url):
        """Test a closed port is a connection error."""
        client = NetworkRpcClient("http://127.0.0.1:9", timeout=2)
        try:
            with pytest.raises((RpcConnectionError, RpcTimeoutError)):
                await client.network_version()
        finally:
            await client.close()


class TestProbeHttp:
    """Test the plain HTTP probe."""

    @pytest.mark.asyncio
    async def test_returns_status(self, server_url):
        """Test any HTTP answer is returned as its status code."""
        assert await probe_http(server_url) == 404

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Test a closed port raises a connection error."""
        with pytest.raises((RpcConnectionError, RpcTimeoutError)):
            await probe_http("http://127.0.0.1:9", timeout=2)
