"""Anti-bot interstitial detection.

The browser layer solves the challenge on its own; this module only waits a
bounded grace period and confirms the page moved on. One re-check, never more.
"""
from __future__ import annotations

import enum
from typing import Any, Awaitable, Callable, Protocol, Sequence

import structlog

from .bootstrap import SCAN_CHALLENGE_CHECKS

logger = structlog.get_logger(__name__)


class TitledPage(Protocol):
    async def title(self) -> str: ...


class ChallengeState(str, enum.Enum):
    NOT_PRESENT = "not_present"
    CLEARED = "cleared"
    BLOCKED = "blocked"


DEFAULT_MARKERS = ("Just a moment", "Cloudflare")


class ChallengeDetector:
    def __init__(
        self,
        markers: Sequence[str] = DEFAULT_MARKERS,
        grace: Callable[[], Awaitable[Any]] | None = None,
    ):
        self.markers = [m for m in markers if m]
        self._grace = grace

    def matches(self, title: str | None) -> bool:
        if not title:
            return False
        return any(m in title for m in self.markers)

    async def check(self, page: TitledPage, title: str | None = None) -> ChallengeState:
        """Classify ``page``. ``title`` is the already-read title, if any."""
        if title is None:
            title = await page.title()
        if not self.matches(title):
            SCAN_CHALLENGE_CHECKS.labels(state=ChallengeState.NOT_PRESENT.value).inc()
            return ChallengeState.NOT_PRESENT

        logger.info("challenge_detected", title=title)
        if self._grace is not None:
            await self._grace()
        retitle = await page.title()
        state = ChallengeState.BLOCKED if self.matches(retitle) else ChallengeState.CLEARED
        SCAN_CHALLENGE_CHECKS.labels(state=state.value).inc()
        if state is ChallengeState.BLOCKED:
            logger.warning("challenge_blocked", title=retitle)
        else:
            logger.info("challenge_cleared", title=retitle)
        return state
