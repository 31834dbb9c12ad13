"""Timing policies: settle wait, challenge grace wait and inter-keyword pacing.

These are configuration, not business logic. Every wait goes through an
injectable ``sleep`` coroutine so tests can run with a recording clock.

Usage:
    from jobscan.timing import PacingPolicy

    pacing = PacingPolicy.from_settings(settings)
    await pacing.keyword_pause()
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from .bootstrap import SCAN_PACING_WAIT

if TYPE_CHECKING:  # pragma: no cover
    from .bootstrap import Settings

Sleeper = Callable[[float], Awaitable[None]]


def random_delay(min_ms: int, max_ms: int, rng: Optional[random.Random] = None) -> int:
    """Uniformly distributed integer delay in [min_ms, max_ms]."""
    if max_ms < min_ms:
        min_ms, max_ms = max_ms, min_ms
    r = rng or random
    return r.randint(min_ms, max_ms)


@dataclass
class PacingPolicy:
    settle_ms: int = 5000
    challenge_grace_ms: int = 10_000
    keyword_delay_min_ms: int = 3000
    keyword_delay_max_ms: int = 6000
    sleep: Sleeper = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_settings(cls, settings: "Settings", *, sleep: Sleeper = asyncio.sleep) -> "PacingPolicy":
        return cls(
            settle_ms=settings.settle_wait_ms,
            challenge_grace_ms=settings.challenge_grace_ms,
            keyword_delay_min_ms=settings.keyword_delay_min_ms,
            keyword_delay_max_ms=settings.keyword_delay_max_ms,
            sleep=sleep,
        )

    async def wait_ms(self, ms: int) -> None:
        if ms > 0:
            await self.sleep(ms / 1000.0)

    async def settle(self) -> None:
        await self.wait_ms(self.settle_ms)

    async def challenge_grace(self) -> None:
        await self.wait_ms(self.challenge_grace_ms)

    def next_keyword_delay_ms(self) -> int:
        return random_delay(self.keyword_delay_min_ms, self.keyword_delay_max_ms, self.rng)

    async def keyword_pause(self) -> int:
        """Sleep a randomized pacing delay; returns the delay in ms."""
        delay = self.next_keyword_delay_ms()
        await self.wait_ms(delay)
        SCAN_PACING_WAIT.inc(delay / 1000.0)
        return delay
