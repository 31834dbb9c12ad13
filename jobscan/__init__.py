"""Job listing scanner.

Extracts structured job records from a marketplace search page behind an
anti-bot interstitial, using one long-lived automated browser session.

MODULES:
    - bootstrap: settings, logging, metrics and the shared application context
    - state_store: persisted rotation cursor
    - keyword_rotation: start/next index of a rotating scan
    - challenge: interstitial detection with a grace wait
    - core.extract: job tile extraction over a parsed document
    - session: the browser session
    - orchestrator: one keyword, end to end
    - coordinator: multi-keyword scan with limit and pacing

USAGE:
    from jobscan import ScanRequest, get_context

    ctx = await get_context()
    result = await ctx.coordinator().scan(ScanRequest(keywords=["n8n"], limit=30))
"""

from .bootstrap import AppContext, Settings, bootstrap, get_context  # noqa: F401
from .errors import (  # noqa: F401
    ChallengeBlocked,
    InvalidRequest,
    NavigationFailure,
    ScanError,
)
from .models import JobRecord, ScanRequest, ScanResult  # noqa: F401

__all__ = [
    "AppContext",
    "Settings",
    "bootstrap",
    "get_context",
    "ScanError",
    "ChallengeBlocked",
    "NavigationFailure",
    "InvalidRequest",
    "JobRecord",
    "ScanRequest",
    "ScanResult",
]
