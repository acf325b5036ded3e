"""Tests for prodshot.core.keep_alive - the self-ping loop."""

from __future__ import annotations

import asyncio

import httpx

from prodshot.core.keep_alive import keep_alive_loop, ping_once


def _ping(handler) -> bool:
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await ping_once(client, "https://svc.test/health")

    return asyncio.run(scenario())


class TestPingOnce:
    """A single health check."""

    def test_healthy(self):
        assert _ping(lambda request: httpx.Response(200, json={"status": "ok"})) is True

    def test_server_error_is_logged_not_raised(self, caplog):
        assert _ping(lambda request: httpx.Response(502)) is False
        assert "Keep-alive ping" in caplog.text

    def test_connection_error_is_logged_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        assert _ping(handler) is False


class TestKeepAliveLoop:
    """The loop keeps pinging until cancelled."""

    def test_pings_health_endpoint_repeatedly(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200 if len(seen) != 2 else 500)

        async def scenario():
            task = asyncio.create_task(
                keep_alive_loop(
                    "https://svc.test/",
                    0.01,
                    transport=httpx.MockTransport(handler),
                )
            )
            while len(seen) < 3:
                await asyncio.sleep(0.01)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))
        assert seen[:3] == ["https://svc.test/health"] * 3
