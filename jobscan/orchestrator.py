"""Single-keyword scrape.

acquire session -> navigate (bounded retries) -> settle -> title + debug
screenshot -> challenge check -> snapshot the DOM -> extract -> stamp.

Returns a ``KeywordOutcome``. A blocked challenge is an outcome with no jobs
and the failure attached; navigation errors raise ``NavigationFailure`` so the
caller decides how to account for them.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Optional, TYPE_CHECKING
from urllib.parse import quote

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .bootstrap import SCAN_JOBS_EXTRACTED, SCAN_KEYWORD_DURATION
from .challenge import ChallengeDetector, ChallengeState
from .core.document import parse_document
from .core.extract import extract_jobs
from .errors import ChallengeBlocked, NavigationFailure, log_browser_failure
from .models import KeywordOutcome, utcnow_iso
from .timing import PacingPolicy

if TYPE_CHECKING:  # pragma: no cover
    from .bootstrap import Settings
    from .session import BrowserSession

SCREENSHOT_NAME = "last_scrape.png"


def build_search_url(base_url: str, keyword: str, sort: str = "recency") -> str:
    return f"{base_url}?q={quote(keyword, safe='')}&sort={quote(sort, safe='')}"


class ScrapeOrchestrator:
    def __init__(
        self,
        session: "BrowserSession",
        settings: "Settings",
        *,
        pacing: Optional[PacingPolicy] = None,
        detector: Optional[ChallengeDetector] = None,
        logger: Any = None,
        clock: Callable[[], str] = utcnow_iso,
    ):
        self.session = session
        self.settings = settings
        self.pacing = pacing or PacingPolicy.from_settings(settings)
        self.detector = detector or ChallengeDetector(settings.challenge_title_markers, grace=self.pacing.challenge_grace)
        self.logger = (logger or structlog.get_logger(__name__)).bind(component="orchestrator")
        self.clock = clock

    def search_url(self, keyword: str) -> str:
        return build_search_url(self.settings.search_base_url, keyword, self.settings.search_sort)

    async def _navigate(self, page: Any, keyword: str, url: str) -> None:
        s = self.settings
        log = self.logger.bind(keyword=keyword)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(1 + max(0, s.navigation_retry_attempts)),
                wait=wait_fixed(s.navigation_retry_backoff_ms / 1000.0),
                retry=retry_if_exception_type(Exception),
                sleep=self.pacing.sleep,
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        log.warning("navigation_retry", url=url, attempt=attempt.retry_state.attempt_number)
                    await page.goto(url, wait_until=s.navigation_wait_until, timeout=s.navigation_timeout_ms)
        except Exception as exc:
            log_browser_failure("navigation", exc, keyword=keyword, url=url)
            log.warning("navigation_failed", url=url, error=str(exc))
            raise NavigationFailure(keyword, url, exc) from exc

    async def _screenshot(self, page: Any) -> None:
        if not self.settings.screenshot_enabled:
            return
        path = Path(self.settings.screenshot_dir) / SCREENSHOT_NAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path))
        except Exception as exc:  # debug artifact only
            self.logger.debug("screenshot_failed", path=str(path), error=str(exc))

    async def scrape_keyword(self, keyword: str) -> KeywordOutcome:
        log = self.logger.bind(keyword=keyword)
        t0 = time.perf_counter()
        url = self.search_url(keyword)
        log.info("keyword_scrape_start", url=url)

        page = await self.session.acquire()
        await self._navigate(page, keyword, url)
        await self.pacing.settle()

        title = await page.title()
        log.info("page_loaded", title=title)
        await self._screenshot(page)

        state = await self.detector.check(page, title)
        if state is ChallengeState.BLOCKED:
            elapsed = time.perf_counter() - t0
            SCAN_KEYWORD_DURATION.observe(elapsed)
            return KeywordOutcome(keyword=keyword, failure=ChallengeBlocked(keyword, title), duration_seconds=elapsed)

        html = await page.content()
        scraped_at = self.clock()
        jobs = [job.stamped(keyword, scraped_at) for job in extract_jobs(parse_document(html), self.settings.site_origin)]
        SCAN_JOBS_EXTRACTED.inc(len(jobs))
        elapsed = time.perf_counter() - t0
        SCAN_KEYWORD_DURATION.observe(elapsed)
        log.info("keyword_scrape_done", jobs=len(jobs), challenge=state.value, elapsed=f"{elapsed:.2f}s")
        return KeywordOutcome(keyword=keyword, jobs=jobs, duration_seconds=elapsed)
