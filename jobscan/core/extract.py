"""Job tile extraction.

Turns a search-results document into ``JobRecord`` instances. The function is
pure over the ``Node`` interface from ``core.document``: no browser binding,
no clock, no keyword. The orchestrator stamps keyword and timestamp.

Design notes:
* Fallback selectors for title and description tolerate layout churn.
* Fault isolation: a tile that raises while being parsed is skipped and the
  rest of the page is still extracted.
* Budget precedence is a heuristic kept as observed on the site: job-type
  rate, then fixed price, then the first dollar amount in any info item,
  then "Negotiable". Unrelated dollar amounts can win the generic scan.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin

import structlog

from ..bootstrap import SCAN_EXTRACTION_SKIPPED
from ..errors import ExtractionElementFailure
from ..models import JobRecord
from .document import Node

logger = structlog.get_logger(__name__)

# ------------------------------------------------------------
# Selectors
# ------------------------------------------------------------
JOB_TILE_SELECTOR = 'article[data-test="JobTile"]'
JOB_ID_ATTRIBUTE = "data-ev-job-uid"
TITLE_LINK_SELECTORS = ['a[data-test="job-tile-title-link"]', "h2.job-tile-title a"]
POSTED_SELECTOR = 'small[data-test="job-pubilshed-date"]'  # sic, matches the site markup
DESCRIPTION_SELECTORS = ['[data-test="JobDescription"] p', ".air3-line-clamp p"]
JOB_INFO_SELECTOR = 'ul[data-test="JobInfo"]'
JOB_TYPE_SELECTOR = 'li[data-test="job-type-label"]'
FIXED_PRICE_SELECTOR = 'li[data-test="is-fixed-price"]'
EXPERIENCE_SELECTOR = 'li[data-test="experience-level"] strong'
DURATION_SELECTOR = 'li[data-test="duration-label"]'
PAYMENT_VERIFIED_SELECTOR = 'li[data-test="payment-verified"]'
CLIENT_INFO_SELECTOR = 'ul[data-test="JobInfoClient"]'
CLIENT_SPENT_SELECTOR = 'li[data-test="total-spent"] strong'
CLIENT_LOCATION_SELECTOR = 'li[data-test="location"] span.rr-mask'
SKILL_TOKEN_SELECTOR = 'button[data-test="token"] span'
PROPOSALS_SELECTOR = 'li[data-test="proposals-tier"] strong'

MIN_TITLE_LENGTH = 5
MAX_DESCRIPTION_LENGTH = 1000
DEFAULT_BUDGET = "Negotiable"

_AMOUNT = r"\$[\d,]+(?:\.\d{2})?"
RATE_PATTERN = re.compile(_AMOUNT + r"(?:\s*-\s*" + _AMOUNT + r")?")
PRICE_PATTERN = re.compile(_AMOUNT)


def _first(node: Node, selectors: list[str]) -> Optional[Node]:
    for css in selectors:
        found = node.select_one(css)
        if found is not None:
            return found
    return None


def _text(node: Optional[Node]) -> str:
    return node.text().strip() if node is not None else ""


def absolute_url(href: str, origin: str) -> str:
    if href and not href.startswith("http"):
        return urljoin(origin.rstrip("/") + "/", href)
    return href


def posted_label(tile: Node) -> str:
    el = tile.select_one(POSTED_SELECTOR)
    if el is None:
        return ""
    spans = el.select("span")
    if len(spans) >= 2:
        return _text(spans[1])
    return el.text().replace("Posted", "", 1).strip()


def parse_budget(info: Node) -> str:
    budget = DEFAULT_BUDGET

    job_type = info.select_one(JOB_TYPE_SELECTOR)
    if job_type is not None:
        type_text = _text(job_type)
        m = RATE_PATTERN.search(type_text)
        if m:
            budget = f"Hourly: {m.group(0)}/hr"
        elif "hourly" in type_text.lower():
            budget = "Hourly"

    fixed = info.select_one(FIXED_PRICE_SELECTOR)
    if fixed is not None:
        m = PRICE_PATTERN.search(_text(fixed))
        budget = f"Fixed: {m.group(0)}" if m else "Fixed Price"

    for item in info.select("li"):
        text = _text(item)
        if "$" in text and "$" not in budget:
            m = RATE_PATTERN.search(text)
            if m:
                budget = m.group(0)
    return budget


def parse_tile(tile: Node, origin: str) -> Optional[JobRecord]:
    """Parse one tile; ``None`` when the title is unusable.

    Raises ``ExtractionElementFailure`` if the tile breaks while being read.
    """
    try:
        job_id = tile.attr(JOB_ID_ATTRIBUTE) or ""

        link = _first(tile, TITLE_LINK_SELECTORS)
        title = _text(link)
        if len(title) < MIN_TITLE_LENGTH:
            return None
        url = absolute_url((link.attr("href") or "").strip(), origin) if link is not None else ""

        desc_node = _first(tile, DESCRIPTION_SELECTORS)
        description = desc_node.rendered_text()[:MAX_DESCRIPTION_LENGTH] if desc_node is not None else ""

        budget = DEFAULT_BUDGET
        experience = ""
        duration = ""
        info = tile.select_one(JOB_INFO_SELECTOR)
        if info is not None:
            budget = parse_budget(info)
            experience = _text(info.select_one(EXPERIENCE_SELECTOR))
            dur = info.select_one(DURATION_SELECTOR)
            if dur is not None:
                duration = dur.text().replace("Est. time:", "", 1).strip()

        client_spent = ""
        client_location = ""
        client = tile.select_one(CLIENT_INFO_SELECTOR)
        if client is not None:
            client_spent = _text(client.select_one(CLIENT_SPENT_SELECTOR))
            loc = client.select_one(CLIENT_LOCATION_SELECTOR)
            if loc is not None:
                client_location = loc.text().replace("Location", "", 1).strip()

        skills = [s for s in (_text(t) for t in tile.select(SKILL_TOKEN_SELECTOR)) if s and not s.startswith("+")]

        return JobRecord(
            job_id=job_id,
            title=title,
            url=url,
            posted_at=posted_label(tile),
            description=description,
            budget=budget,
            experience_level=experience,
            duration=duration,
            client_payment_verified=tile.select_one(PAYMENT_VERIFIED_SELECTOR) is not None,
            client_spent=client_spent,
            client_location=client_location,
            skills=skills,
            proposals=_text(tile.select_one(PROPOSALS_SELECTOR)),
        )
    except Exception as exc:
        raise ExtractionElementFailure(f"{type(exc).__name__}: {exc}") from exc


def extract_jobs(document: Node, origin: str = "https://www.upwork.com") -> list[JobRecord]:
    """Extract every usable job tile in document order."""
    jobs: list[JobRecord] = []
    tiles = document.select(JOB_TILE_SELECTOR)
    for idx, tile in enumerate(tiles):
        try:
            record = parse_tile(tile, origin)
        except ExtractionElementFailure as exc:
            SCAN_EXTRACTION_SKIPPED.labels(reason="element_error").inc()
            logger.debug("job_tile_skipped", index=idx, reason="element_error", error=str(exc))
            continue
        if record is None:
            SCAN_EXTRACTION_SKIPPED.labels(reason="invalid_title").inc()
            continue
        jobs.append(record)
    logger.debug("job_tiles_extracted", tiles=len(tiles), jobs=len(jobs))
    return jobs
