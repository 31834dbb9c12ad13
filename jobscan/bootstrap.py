"""Bootstrap module for the scanning subsystem.

Central responsibilities:
- Load and validate settings from environment (.env supported through pydantic-settings)
- Configure structured logging (structlog + optional rotating file handler)
- Expose Prometheus metric instruments (counters, histograms)
- Provide a shared context object owning the single browser session, the
  rotation cursor store and the scan guard

Design notes:
- Avoid heavy imports at module import time (Playwright is only touched when a
  session is actually acquired)
- Ensure idempotent initialization (``bootstrap()`` returns the same context
  unless ``force=True``)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING
import asyncio
import logging
from logging.handlers import RotatingFileHandler
import sys
import time

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from prometheus_client import Counter, Histogram

if TYPE_CHECKING:  # pragma: no cover
    from .session import BrowserSession
    from .state_store import StateStore
    from .orchestrator import ScrapeOrchestrator
    from .coordinator import ScanCoordinator

# ------------------------------------------------------------
# Settings
# ------------------------------------------------------------

class Settings(BaseSettings):
    """Application settings loaded from environment.

    Uses Pydantic BaseSettings to automatically read from env vars.
    Timing values are milliseconds; defaults reproduce the reference pacing.
    """

    app_name: str = Field("jobscan", alias="APP_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(None, alias="LOG_FILE")
    log_max_bytes: int = Field(2_000_000, alias="LOG_MAX_BYTES")  # ~2MB
    log_backup_count: int = Field(5, alias="LOG_BACKUP_COUNT")

    # Target marketplace
    site_origin: str = Field("https://www.upwork.com", alias="SITE_ORIGIN")
    search_path: str = Field("/nx/search/jobs/", alias="SEARCH_PATH")
    search_sort: str = Field("recency", alias="SEARCH_SORT")

    # Browser
    browser_profile_dir: str = Field("chrome-profile", alias="BROWSER_PROFILE_DIR")
    browser_headless: bool = Field(False, alias="BROWSER_HEADLESS")  # visible window clears challenges more often
    browser_channel: Optional[str] = Field(None, alias="BROWSER_CHANNEL")  # e.g. "chrome" for system Chrome
    stealth_enabled: bool = Field(True, alias="STEALTH_ENABLED")

    # Timeouts & retries
    navigation_timeout_ms: int = Field(90_000, alias="NAVIGATION_TIMEOUT_MS")
    navigation_wait_until: str = Field("networkidle", alias="NAVIGATION_WAIT_UNTIL")
    navigation_retry_attempts: int = Field(0, alias="NAVIGATION_RETRY_ATTEMPTS")  # extra attempts besides first
    navigation_retry_backoff_ms: int = Field(1200, alias="NAVIGATION_RETRY_BACKOFF_MS")

    # Challenge handling
    settle_wait_ms: int = Field(5000, alias="SETTLE_WAIT_MS")
    challenge_grace_ms: int = Field(10_000, alias="CHALLENGE_GRACE_MS")
    challenge_title_markers_raw: str = Field("Just a moment;Cloudflare", alias="CHALLENGE_TITLE_MARKERS")

    # Pacing between keywords (uniform jitter)
    keyword_delay_min_ms: int = Field(3000, alias="KEYWORD_DELAY_MIN_MS")
    keyword_delay_max_ms: int = Field(6000, alias="KEYWORD_DELAY_MAX_MS")

    # Scan defaults
    default_scan_limit: int = Field(100, alias="DEFAULT_SCAN_LIMIT")
    test_keyword: str = Field("n8n", alias="TEST_KEYWORD")
    keyword_state_file: str = Field("keyword_state.json", alias="KEYWORD_STATE_FILE")

    # Files / artifacts
    screenshot_enabled: bool = Field(True, alias="SCREENSHOT_ENABLED")
    screenshot_dir: str = Field("screenshots", alias="SCREENSHOT_DIR")

    # Misc
    enable_metrics: bool = Field(True, alias="ENABLE_METRICS")

    @model_validator(mode="after")
    def _normalise_delay_range(self) -> "Settings":
        if self.keyword_delay_min_ms > self.keyword_delay_max_ms:
            lo, hi = self.keyword_delay_max_ms, self.keyword_delay_min_ms
            object.__setattr__(self, "keyword_delay_min_ms", lo)
            object.__setattr__(self, "keyword_delay_max_ms", hi)
        return self

    @property
    def challenge_title_markers(self) -> list[str]:
        return [m.strip() for m in self.challenge_title_markers_raw.split(";") if m.strip()]

    @property
    def search_base_url(self) -> str:
        return self.site_origin.rstrip("/") + "/" + self.search_path.lstrip("/")

    # Pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# ------------------------------------------------------------
# Logging configuration (structlog)
# ------------------------------------------------------------

# Browser cookies and proxy credentials must never reach the JSON log
_REDACTED_KEYS = ("cookie", "authorization", "proxy_password", "storage_state")


def _bind_request_id(logger, method_name, event_dict):  # noqa: D401
    rid = structlog.contextvars.get_contextvars().get("request_id")
    if rid:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _redact(logger, method_name, event_dict):  # noqa: D401
    """Mask top-level values whose key looks like a credential."""
    for key in list(event_dict):
        if any(marker in str(key).lower() for marker in _REDACTED_KEYS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def _rotating_file_handler(settings: Settings) -> logging.Handler | None:
    path = Path(settings.log_file)  # type: ignore[arg-type]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:  # pragma: no cover
        print(f"log file unavailable ({path}): {exc}", file=sys.stderr)
        return None
    return handler


def configure_logging(level: str = "INFO", settings: Settings | None = None) -> None:
    """Configure structured logging with structlog.

    structlog renders one JSON object per event and hands it to the stdlib
    root logger, which writes to stdout and, when LOG_FILE is set, to a
    size-rotated file.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _bind_request_id,
            structlog.processors.add_log_level,
            _redact,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings and settings.log_file:
        file_handler = _rotating_file_handler(settings)
        if file_handler is not None:
            handlers.append(file_handler)
    plain = logging.Formatter("%(message)s")
    for handler in handlers:
        handler.setFormatter(plain)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(numeric_level)


# ------------------------------------------------------------
# Metrics instruments
# ------------------------------------------------------------
SCAN_REQUESTS_TOTAL = Counter(
    "scan_requests_total", "Total scan requests handled", labelnames=("status",)
)
SCAN_KEYWORDS_PROCESSED = Counter(
    "scan_keywords_processed_total", "Keywords processed (successfully or not)"
)
SCAN_JOBS_EXTRACTED = Counter(
    "scan_jobs_extracted_total", "Job records extracted from result pages"
)
SCAN_KEYWORD_FAILURES = Counter(
    "scan_keyword_failures_total", "Keyword-level failures", labelnames=("reason",)
)
SCAN_CHALLENGE_CHECKS = Counter(
    "scan_challenge_checks_total", "Challenge detector outcomes", labelnames=("state",)
)
SCAN_EXTRACTION_SKIPPED = Counter(
    "scan_extraction_skipped_total", "Job elements skipped during extraction", labelnames=("reason",)
)
SCAN_PACING_WAIT = Counter(
    "scan_pacing_wait_seconds_total", "Cumulative seconds spent in inter-keyword pacing"
)
SCAN_KEYWORD_DURATION = Histogram(
    "scan_keyword_duration_seconds", "Duration of a single keyword scrape in seconds"
)


# ------------------------------------------------------------
# Application context
# ------------------------------------------------------------
@dataclass
class AppContext:
    settings: Settings
    logger: structlog.BoundLogger
    session: "BrowserSession"
    state_store: "StateStore"
    # Only one scan may drive the browser at a time; the HTTP layer allows overlapping requests.
    scan_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def orchestrator(self) -> "ScrapeOrchestrator":
        from .orchestrator import ScrapeOrchestrator

        return ScrapeOrchestrator(self.session, self.settings, logger=self.logger)

    def coordinator(self) -> "ScanCoordinator":
        from .coordinator import ScanCoordinator
        from .keyword_rotation import KeywordRotationScheduler
        from .timing import PacingPolicy

        return ScanCoordinator(
            self.orchestrator(),
            KeywordRotationScheduler(self.state_store),
            PacingPolicy.from_settings(self.settings),
            default_limit=self.settings.default_scan_limit,
            logger=self.logger,
        )


_context_singleton: Optional[AppContext] = None
_context_lock = asyncio.Lock()


async def bootstrap(force: bool = False, settings: Settings | None = None) -> AppContext:
    """Create (or return existing) application context.

    Args:
        force: Recreate the context even if already initialized (tests mostly).
        settings: Explicit settings instead of reading the environment.
    """
    global _context_singleton
    if _context_singleton and not force:
        return _context_singleton

    async with _context_lock:
        if _context_singleton and not force:
            return _context_singleton

        settings = settings or Settings()  # Loads from env automatically
        configure_logging(settings.log_level, settings)
        logger = structlog.get_logger().bind(component="bootstrap")

        for d in (settings.screenshot_dir,):
            try:
                Path(d).mkdir(parents=True, exist_ok=True)
            except OSError as e:  # pragma: no cover
                logger.warning("directory_creation_failed", path=d, error=str(e))

        t0 = time.perf_counter()
        # Lazy imports keep Playwright out of module import time
        from .session import BrowserSession
        from .state_store import JsonFileStateStore

        ctx = AppContext(
            settings=settings,
            logger=logger.bind(subsystem="core"),
            session=BrowserSession(settings),
            state_store=JsonFileStateStore(settings.keyword_state_file),
        )
        logger.info(
            "bootstrap_complete",
            elapsed=f"{time.perf_counter() - t0:.3f}s",
            search_url=settings.search_base_url,
            profile_dir=settings.browser_profile_dir,
            state_file=settings.keyword_state_file,
            headless=settings.browser_headless,
        )
        _context_singleton = ctx
        return ctx


# ------------------------------------------------------------
# Helper accessors
# ------------------------------------------------------------
async def get_context() -> AppContext:
    """Public accessor for the global application context."""
    return await bootstrap()


def reset_context() -> None:
    """Drop the cached context (the browser session is not closed)."""
    global _context_singleton
    _context_singleton = None


def context_snapshot(ctx: AppContext) -> dict[str, Any]:
    return {
        "app_name": ctx.settings.app_name,
        "browser_connected": ctx.session.is_connected,
        "scan_in_progress": ctx.scan_lock.locked(),
    }
