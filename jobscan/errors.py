"""Error taxonomy for the scanning pipeline plus a structured browser failure registry.

Keyword-level errors (``ChallengeBlocked``, ``NavigationFailure``) are absorbed by the
scan coordinator; ``InvalidRequest`` is rejected by the HTTP layer; element and
persistence failures never leave their module.

The registry writes JSON lines to a configurable file (env BROWSER_FAILURE_LOG,
default browser_failures.log). Per-process aggregation keeps an in-memory counter
to avoid excessive disk writes for identical signatures.
"""
from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ScanError(Exception):
    """Base class for every error raised by the scanning pipeline."""


class KeywordScrapeError(ScanError):
    """A single keyword could not be scraped. Never aborts a multi-keyword scan."""

    reason = "keyword"

    def __init__(self, keyword: str, message: str) -> None:
        super().__init__(message)
        self.keyword = keyword
        self.message = message


class ChallengeBlocked(KeywordScrapeError):
    """The anti-bot interstitial was still showing after the grace wait."""

    reason = "challenge_blocked"

    def __init__(self, keyword: str, title: str = "") -> None:
        super().__init__(keyword, "Could not get past the anti-bot challenge page")
        self.title = title


class NavigationFailure(KeywordScrapeError):
    """Timeout or network error while loading the search page."""

    reason = "navigation"

    def __init__(self, keyword: str, url: str, cause: Optional[BaseException] = None) -> None:
        detail = str(cause) if cause is not None else "navigation failed"
        super().__init__(keyword, f"Navigation to {url} failed: {detail}")
        self.url = url
        self.cause = cause


class ExtractionElementFailure(ScanError):
    """One job element was malformed; the extractor skips it."""


class StatePersistenceFailure(ScanError):
    """The rotation cursor could not be read or written."""


class InvalidRequest(ScanError):
    """Request payload failed validation (client error)."""

    def __init__(self, message: str, example: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.example = example or {}


# ------------------------------------------------------------
# Browser failure registry
# ------------------------------------------------------------
# Repeats of one signature are written for the first few occurrences, then sampled
_ALWAYS_WRITE = 3
_SAMPLE_EVERY = 10

_lock = threading.Lock()
_seen: Dict[str, int] = {}


@dataclass
class BrowserFailure:
    at: str
    category: str
    signature: str
    error: str
    occurrences: int
    context: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


def _log_path() -> str:
    return os.environ.get("BROWSER_FAILURE_LOG", "browser_failures.log")


def _signature(category: str, exc: BaseException | str) -> str:
    kind = "message" if isinstance(exc, str) else type(exc).__name__
    return f"{category}:{kind}"


def log_browser_failure(category: str, exc: BaseException | str, **context: Any) -> int:
    """Count a browser failure and append it to the JSONL registry when sampled.

    ``context`` carries what the caller was doing (keyword and url for
    navigation, profile directory for launch). Returns the per-process count
    for the failure signature.
    """
    sig = _signature(category, exc)
    with _lock:
        count = _seen[sig] = _seen.get(sig, 0) + 1
        if count > _ALWAYS_WRITE and count % _SAMPLE_EVERY:
            return count
        record = BrowserFailure(
            at=datetime.now(timezone.utc).isoformat(),
            category=category,
            signature=sig,
            error=str(exc),
            occurrences=count,
            context={k: v for k, v in context.items() if v is not None},
        )
        try:
            with open(_log_path(), "a", encoding="utf-8") as f:
                f.write(record.to_json() + "\n")
        except OSError:
            # best-effort
            return count
    return count
