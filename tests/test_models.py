"""Tests for jobscan/models.py - request parsing and record serialisation."""
import pytest

from jobscan.errors import InvalidRequest
from jobscan.models import JobRecord, ScanRequest, ScanResult


class TestScanRequest:

    @pytest.mark.parametrize(
        "payload",
        [{}, {"keywords": []}, {"keywords": "n8n"}, {"keywords": None}, {"limit": 5}, [], "keywords", None],
    )
    def test_invalid_keywords(self, payload):
        with pytest.raises(InvalidRequest) as exc_info:
            ScanRequest.from_payload(payload)
        assert exc_info.value.message == "keywords must be a non-empty array"
        assert exc_info.value.example["keywords"] == ["n8n", "automation"]

    def test_defaults(self):
        req = ScanRequest.from_payload({"keywords": ["n8n"]})
        assert req.keywords == ["n8n"]
        assert req.effective_limit(100) == 100
        assert req.rotate is False

    @pytest.mark.parametrize("limit", [0, -3, "30", 2.5, True, None])
    def test_unusable_limit_falls_back(self, limit):
        req = ScanRequest.from_payload({"keywords": ["a"], "limit": limit})
        assert req.effective_limit(100) == 100

    def test_integral_float_limit_accepted(self):
        assert ScanRequest.from_payload({"keywords": ["a"], "limit": 30.0}).effective_limit() == 30

    def test_positive_limit(self):
        assert ScanRequest.from_payload({"keywords": ["a"], "limit": 5}).effective_limit(100) == 5

    @pytest.mark.parametrize("rotate,expected", [(True, True), ("true", False), (1, False), (False, False)])
    def test_rotate_only_literal_true(self, rotate, expected):
        assert ScanRequest.from_payload({"keywords": ["a"], "rotate": rotate}).rotate is expected


def _record(**overrides):
    base = dict(job_id="~01", title="Automation specialist", url="https://www.upwork.com/jobs/~01")
    base.update(overrides)
    return JobRecord(**base)


class TestJobRecord:

    def test_to_dict_keys(self):
        data = _record().stamped("n8n", "2025-01-01T00:00:00Z").to_dict()
        assert list(data) == [
            "jobId", "title", "url", "postedAt", "description", "budget", "experienceLevel",
            "duration", "clientPaymentVerified", "clientSpent", "clientLocation", "skills",
            "proposals", "keyword", "scrapedAt",
        ]
        assert data["keyword"] == "n8n"
        assert data["scrapedAt"] == "2025-01-01T00:00:00Z"
        assert data["budget"] == "Negotiable"

    def test_stamped_copies(self):
        rec = _record(skills=["a"])
        stamped = rec.stamped("kw", "ts")
        stamped.skills.append("b")
        assert rec.skills == ["a"]
        assert rec.keyword == ""


def test_scan_result_response_shape():
    result = ScanResult(
        jobs=[_record()],
        keywords_processed=1,
        next_start_keyword=None,
        scraped_at="2025-01-01T00:00:00Z",
        limit=30,
        rotation=False,
    )
    body = result.to_response()
    assert body["success"] is True
    assert body["totalJobs"] == 1
    assert body["limit"] == 30
    assert body["rotation"] is False
    assert body["keywordsProcessed"] == 1
    assert body["nextStartKeyword"] is None
    assert body["jobs"][0]["title"] == "Automation specialist"
