"""Outbound request limits for the REST record store.

Two limits apply to every request: a cap on requests in flight and a
requests-per-minute budget. Both are asyncio primitives bound to the event
loop that created them, so one pair is kept per running loop.
"""

import asyncio
import logging
from typing import NamedTuple

from aiolimiter import AsyncLimiter

from config.settings import get_settings

logger = logging.getLogger(__name__)


class RequestLimits(NamedTuple):
    """Concurrency cap and per-minute budget shared by requests on one loop."""

    concurrency: asyncio.Semaphore
    rate: AsyncLimiter


_limits: dict[asyncio.AbstractEventLoop, RequestLimits] = {}


def _new_limits() -> RequestLimits:
    settings = get_settings()
    logger.debug(
        f"Record store limits: {settings.record_store_rate_limit} req/min, "
        f"{settings.record_store_max_concurrent} concurrent"
    )
    return RequestLimits(
        concurrency=asyncio.Semaphore(settings.record_store_max_concurrent),
        rate=AsyncLimiter(settings.record_store_rate_limit, 60),
    )


def get_request_limits() -> RequestLimits:
    """Limits for the running event loop; fresh, unshared limits outside a loop."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return _new_limits()

    if loop not in _limits:
        _limits[loop] = _new_limits()
    return _limits[loop]


def reset_rate_limiting() -> None:
    """Drop every loop's limits (tests create a loop per test)."""
    _limits.clear()
