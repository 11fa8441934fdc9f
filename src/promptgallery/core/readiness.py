"""Wait for a freshly generated image to become fetchable.

The workflow answers as soon as the image is rendered, but the file server
may need a moment before the URL resolves.  :func:`wait_until_ready` probes
the URL a bounded number of times with a fixed delay between attempts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


async def wait_until_ready(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_attempts: int = 5,
    interval: float = 1.0,
    initial_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Probe *url* until it answers with a 2xx status.

    Args:
        client: HTTP client used for the probes.
        url: Image URL returned by the webhook.
        max_attempts: Maximum number of GET probes.
        interval: Seconds to wait after each failed probe.
        initial_delay: Seconds to wait before the first probe.
        sleep: Awaitable sleep function (replaced in tests).

    Returns:
        ``True`` as soon as a probe succeeds, ``False`` once every attempt
        has failed.
    """
    if initial_delay > 0:
        await sleep(initial_delay)

    for attempt in range(1, max_attempts + 1):
        try:
            response = await client.get(url)
            if response.is_success:
                logger.debug(f"Image ready after {attempt} attempt(s): {url}")
                return True
            logger.debug(f"Attempt {attempt} failed with status {response.status_code}, retrying...")
        except httpx.HTTPError as e:
            logger.debug(f"Attempt {attempt} failed ({e}), retrying...")

        if attempt < max_attempts:
            await sleep(interval)

    logger.warning(f"Image not reachable after {max_attempts} attempts: {url}")
    return False
