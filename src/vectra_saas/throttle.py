"""
Fixed-delay request pacing.

Every outbound API call waits a fixed amount of time after its token
check and before it goes on the wire. There is no adaptivity and no
backoff: it is a crude client-side brake that keeps bursts of calls
from tripping the platform's rate limits.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from vectra_saas.config import DEFAULT_THROTTLE_SECONDS
from vectra_saas.exceptions import ValidationError


@dataclass
class ThrottleStats:
    """Statistics for monitoring throttle behavior."""
    calls: int = 0
    total_wait_time: float = 0.0


class FixedDelayThrottle:
    """
    Sleeps a fixed delay per call.

    Example:
        throttle = FixedDelayThrottle(delay_seconds=0.5)
        await throttle.wait()
        await make_api_request()
    """

    def __init__(
        self,
        delay_seconds: float = DEFAULT_THROTTLE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if delay_seconds < 0:
            raise ValidationError("delay_seconds cannot be negative")

        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self.stats = ThrottleStats()

    async def wait(self) -> None:
        self.stats.calls += 1
        if self.delay_seconds > 0:
            self.stats.total_wait_time += self.delay_seconds
            await self._sleep(self.delay_seconds)

    async def __aenter__(self) -> "FixedDelayThrottle":
        await self.wait()
        return self

    async def __aexit__(self, *args) -> None:
        pass

    def get_stats(self) -> dict:
        """Get throttle statistics for monitoring."""
        return {
            "calls": self.stats.calls,
            "delay_seconds": self.delay_seconds,
            "total_wait_time_seconds": round(self.stats.total_wait_time, 2),
        }
