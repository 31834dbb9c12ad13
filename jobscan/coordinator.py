"""Multi-keyword scan.

Walks keywords in rotation order, one at a time, until every keyword was
visited or the aggregate job count reached the limit.

Cursor bookkeeping (rotation only):
- stopped by the limit: persist the index of the first unvisited keyword
- full pass: persist 0
- otherwise nothing is written

Keyword failures (challenge, navigation, anything unexpected) are logged and
counted; they still count as processed and never abort the scan.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, TYPE_CHECKING

import structlog

from .bootstrap import SCAN_KEYWORD_FAILURES, SCAN_KEYWORDS_PROCESSED
from .errors import KeywordScrapeError
from .keyword_rotation import KeywordRotationScheduler
from .models import JobRecord, KeywordOutcome, ScanRequest, ScanResult, utcnow_iso
from .timing import PacingPolicy

if TYPE_CHECKING:  # pragma: no cover
    from .orchestrator import ScrapeOrchestrator


class ScanCoordinator:
    def __init__(
        self,
        orchestrator: "ScrapeOrchestrator",
        scheduler: KeywordRotationScheduler,
        pacing: PacingPolicy,
        *,
        default_limit: int = 100,
        logger: Any = None,
        clock: Callable[[], str] = utcnow_iso,
    ):
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.pacing = pacing
        self.default_limit = default_limit
        self.logger = (logger or structlog.get_logger(__name__)).bind(component="scan")
        self.clock = clock

    async def _scrape_one(self, keyword: str) -> KeywordOutcome:
        try:
            outcome = await self.orchestrator.scrape_keyword(keyword)
        except KeywordScrapeError as exc:
            outcome = KeywordOutcome(keyword=keyword, failure=exc)
        except Exception as exc:
            self.logger.error("keyword_unexpected_error", keyword=keyword, error=str(exc), exc_info=True)
            outcome = KeywordOutcome(keyword=keyword, failure=KeywordScrapeError(keyword, str(exc)))
            SCAN_KEYWORD_FAILURES.labels(reason="unexpected").inc()
            return outcome
        if outcome.failure is not None:
            SCAN_KEYWORD_FAILURES.labels(reason=outcome.failure.reason).inc()
            self.logger.warning("keyword_failed", keyword=keyword, reason=outcome.failure.reason, error=outcome.failure.message)
        return outcome

    async def scan(self, request: ScanRequest, *, limit: Optional[int] = None) -> ScanResult:
        keywords = list(request.keywords)
        n = len(keywords)
        limit = limit if limit is not None else request.effective_limit(self.default_limit)
        rotate = request.rotate
        log = self.logger.bind(limit=limit, rotation=rotate)

        start = self.scheduler.start_index(keywords, rotate)
        log.info("scan_start", keywords=keywords, start_index=start)

        jobs: list[JobRecord] = []
        outcomes: list[KeywordOutcome] = []
        processed = 0
        next_index = start

        for step, idx in enumerate(self.scheduler.order(start, n)):
            keyword = keywords[idx]
            if len(jobs) >= limit:
                log.info("scan_limit_reached", at_keyword=keyword, index=idx, jobs=len(jobs))
                if rotate:
                    self.scheduler.persist(idx)
                break

            outcome = await self._scrape_one(keyword)
            outcomes.append(outcome)
            jobs.extend(outcome.jobs)
            processed += 1
            next_index = self.scheduler.advance(idx, n)
            SCAN_KEYWORDS_PROCESSED.inc()

            if step < n - 1 and len(jobs) < limit:
                delay = await self.pacing.keyword_pause()
                log.debug("keyword_pause", ms=delay)

        if processed == n:
            next_index = 0
            if rotate:
                self.scheduler.persist(0)
                log.info("rotation_full_pass")

        result = ScanResult(
            jobs=jobs[:limit],
            keywords_processed=processed,
            next_start_keyword=keywords[next_index] if rotate else None,
            scraped_at=self.clock(),
            limit=limit,
            rotation=rotate,
            outcomes=outcomes,
        )
        log.info(
            "scan_complete",
            total_jobs=len(result.jobs),
            found=len(jobs),
            keywords_processed=processed,
            failures=len(result.failures),
            next_start_keyword=result.next_start_keyword,
        )
        return result
