"""
Request spacing for the metered upstream APIs.

Jina and Exa bill and throttle per key, so calls to them go through a sliding
window limiter keyed by upstream name.
"""

import asyncio
import time
from collections import defaultdict
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Sliding-window limiter with per-upstream tracking.

    One lock per upstream serializes waiters for that upstream only; calls to
    different upstreams never wait on each other.
    """

    # (requests, period_seconds)
    DEFAULT_LIMITS = {
        "jina_reader": (20, 60),
        "jina_search": (10, 60),
        "exa": (5, 1),
        "wikipedia": (50, 1),
        "default": (60, 60),
    }

    def __init__(self, limits: Optional[dict[str, tuple[int, int]]] = None):
        self._request_times: dict[str, list[float]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._custom_limits: dict[str, tuple[int, int]] = dict(limits or {})

    def set_limit(self, upstream: str, requests: int, period_seconds: int):
        self._custom_limits[upstream] = (requests, period_seconds)

    def _get_limit(self, upstream: str) -> tuple[int, int]:
        if upstream in self._custom_limits:
            return self._custom_limits[upstream]
        return self.DEFAULT_LIMITS.get(upstream, self.DEFAULT_LIMITS["default"])

    async def acquire(self, upstream: str, timeout: Optional[float] = 30.0) -> bool:
        """
        Wait for a free slot.

        Returns False instead of waiting when the next slot opens later than
        `timeout` seconds from the call.
        """
        start = time.monotonic()
        max_requests, period_seconds = self._get_limit(upstream)

        async with self._locks[upstream]:
            while True:
                now = time.monotonic()
                cutoff = now - period_seconds
                window = [t for t in self._request_times[upstream] if t > cutoff]
                self._request_times[upstream] = window

                if len(window) < max_requests:
                    window.append(now)
                    return True

                wait_seconds = min(window) + period_seconds - now

                if timeout is not None and (now - start) + wait_seconds > timeout:
                    logger.warning(
                        "Rate limit wait exceeds timeout",
                        upstream=upstream,
                        wait_seconds=round(wait_seconds, 1),
                    )
                    return False

                logger.debug("Rate limited", upstream=upstream, wait_seconds=round(wait_seconds, 1))
                await asyncio.sleep(min(wait_seconds + 0.05, 1.0))

    def get_status(self, upstream: str) -> dict:
        max_requests, period_seconds = self._get_limit(upstream)
        cutoff = time.monotonic() - period_seconds
        recent = [t for t in self._request_times[upstream] if t > cutoff]
        return {
            "upstream": upstream,
            "max_requests": max_requests,
            "period_seconds": period_seconds,
            "current_requests": len(recent),
            "available": max_requests - len(recent),
        }
