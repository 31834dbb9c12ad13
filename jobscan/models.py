from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator

from .errors import InvalidRequest, KeywordScrapeError

KEYWORDS_ERROR = "keywords must be a non-empty array"
REQUEST_EXAMPLE: dict[str, Any] = {"keywords": ["n8n", "automation"], "limit": 30, "rotate": True}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class JobRecord:
    """One listing found on a results page.

    ``keyword`` and ``scraped_at`` stay empty until the orchestrator stamps
    the record with the fetch that produced it.
    """

    job_id: str
    title: str
    url: str
    posted_at: str = ""
    description: str = ""
    budget: str = "Negotiable"
    experience_level: str = ""
    duration: str = ""
    client_payment_verified: bool = False
    client_spent: str = ""
    client_location: str = ""
    skills: list[str] = field(default_factory=list)
    proposals: str = ""
    keyword: str = ""
    scraped_at: str = ""

    def stamped(self, keyword: str, scraped_at: str) -> "JobRecord":
        return replace(self, keyword=keyword, scraped_at=scraped_at, skills=list(self.skills))

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "title": self.title,
            "url": self.url,
            "postedAt": self.posted_at,
            "description": self.description,
            "budget": self.budget,
            "experienceLevel": self.experience_level,
            "duration": self.duration,
            "clientPaymentVerified": self.client_payment_verified,
            "clientSpent": self.client_spent,
            "clientLocation": self.client_location,
            "skills": list(self.skills),
            "proposals": self.proposals,
            "keyword": self.keyword,
            "scrapedAt": self.scraped_at,
        }


@dataclass(slots=True)
class KeywordOutcome:
    """Result of scraping one keyword: records, or an empty list plus the failure."""

    keyword: str
    jobs: list[JobRecord] = field(default_factory=list)
    failure: Optional[KeywordScrapeError] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def reason(self) -> Optional[str]:
        return self.failure.reason if self.failure is not None else None


@dataclass(slots=True)
class ScanResult:
    jobs: list[JobRecord]
    keywords_processed: int
    next_start_keyword: Optional[str]
    scraped_at: str
    limit: int
    rotation: bool
    outcomes: list[KeywordOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[KeywordOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "totalJobs": len(self.jobs),
            "limit": self.limit,
            "rotation": self.rotation,
            "keywordsProcessed": self.keywords_processed,
            "nextStartKeyword": self.next_start_keyword,
            "scrapedAt": self.scraped_at,
            "jobs": [j.to_dict() for j in self.jobs],
        }


class ScanRequest(BaseModel):
    """POST /scrape body.

    ``keywords`` is strict (non-empty list). ``limit`` and ``rotate`` are
    lenient: an unusable limit falls back to the default and ``rotate`` is on
    only for a literal ``true``.
    """

    keywords: list[str]
    limit: Optional[int] = None
    rotate: bool = False

    @field_validator("keywords", mode="before")
    @classmethod
    def _check_keywords(cls, v: Any) -> list[str]:
        if not isinstance(v, list) or not v:
            raise ValueError(KEYWORDS_ERROR)
        return [k if isinstance(k, str) else str(k) for k in v]

    @field_validator("limit", mode="before")
    @classmethod
    def _lenient_limit(cls, v: Any) -> Optional[int]:
        if isinstance(v, bool):
            return None
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        if isinstance(v, int) and v > 0:
            return v
        return None

    @field_validator("rotate", mode="before")
    @classmethod
    def _literal_true(cls, v: Any) -> bool:
        return v is True

    def effective_limit(self, default: int = 100) -> int:
        return self.limit if self.limit is not None else default

    @classmethod
    def from_payload(cls, payload: Any) -> "ScanRequest":
        """Validate a decoded JSON body, raising ``InvalidRequest`` on failure."""
        if not isinstance(payload, dict):
            raise InvalidRequest(KEYWORDS_ERROR, example=REQUEST_EXAMPLE)
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise InvalidRequest(KEYWORDS_ERROR, example=REQUEST_EXAMPLE) from exc
