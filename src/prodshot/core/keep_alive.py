"""Self-ping loop for hosts that idle out inactive services.

Some free hosting tiers spin a service down after a quiet period.  When
``PRODSHOT_KEEP_ALIVE_URL`` is set, the API lifespan starts
:func:`keep_alive_loop`, which GETs ``{url}/health`` on a fixed interval.
Failures are logged and never stop the loop.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


async def ping_once(client: httpx.AsyncClient, health_url: str) -> bool:
    """Hit the health endpoint once.  Returns whether it answered 2xx."""
    try:
        response = await client.get(health_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Keep-alive ping to %s failed: %s", health_url, exc)
        return False

    logger.debug("Keep-alive ping OK (%d).", response.status_code)
    return True


async def keep_alive_loop(
    base_url: str,
    interval_seconds: float,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Ping ``{base_url}/health`` every *interval_seconds* until cancelled."""
    health_url = f"{base_url.rstrip('/')}/health"
    logger.info("Keep-alive started: pinging %s every %.0fs.", health_url, interval_seconds)

    async with httpx.AsyncClient(timeout=30, transport=transport) as client:
        while True:
            await asyncio.sleep(interval_seconds)
            await ping_once(client, health_url)
