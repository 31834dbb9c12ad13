"""Tests for jobscan/orchestrator.py using a scripted page instead of a browser."""
import pytest

from jobscan import orchestrator as orch_mod
from jobscan.errors import ChallengeBlocked, NavigationFailure
from jobscan.orchestrator import ScrapeOrchestrator, build_search_url
from jobscan.timing import PacingPolicy


def _orchestrator(settings, session, sleeper):
    pacing = PacingPolicy.from_settings(settings, sleep=sleeper)
    return ScrapeOrchestrator(session, settings, pacing=pacing, clock=lambda: "2025-01-01T00:00:00Z")


def test_search_url_encoding():
    url = build_search_url("https://www.upwork.com/nx/search/jobs/", "make.com & zapier")
    assert url == "https://www.upwork.com/nx/search/jobs/?q=make.com%20%26%20zapier&sort=recency"


@pytest.mark.asyncio
async def test_scrape_keyword_stamps_records(settings, sleeper, tile, page_html, fake_page_factory, fake_session_factory):
    page = fake_page_factory(html=page_html(tile(uid="1"), tile(uid="2", title="Second automation job")))
    session = fake_session_factory(page)
    outcome = await _orchestrator(settings, session, sleeper).scrape_keyword("n8n")

    assert outcome.ok
    assert [j.job_id for j in outcome.jobs] == ["1", "2"]
    assert all(j.keyword == "n8n" for j in outcome.jobs)
    assert all(j.scraped_at == "2025-01-01T00:00:00Z" for j in outcome.jobs)
    assert page.visited == ["https://www.upwork.com/nx/search/jobs/?q=n8n&sort=recency"]
    assert page.goto_kwargs[0] == {"wait_until": "networkidle", "timeout": 90000}
    assert page.screenshots and page.screenshots[0].endswith("last_scrape.png")
    assert session.acquired == 1


@pytest.mark.asyncio
async def test_challenge_blocked_returns_tagged_empty_outcome(settings, sleeper, tile, page_html, fake_page_factory, fake_session_factory):
    page = fake_page_factory(html=page_html(tile()), titles=["Just a moment..."])
    outcome = await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")

    assert outcome.jobs == []
    assert isinstance(outcome.failure, ChallengeBlocked)
    assert outcome.reason == "challenge_blocked"


@pytest.mark.asyncio
async def test_challenge_cleared_extracts(settings, sleeper, tile, page_html, fake_page_factory, fake_session_factory):
    settings.challenge_grace_ms = 10_000
    page = fake_page_factory(html=page_html(tile()), titles=["Just a moment...", "n8n Jobs | Upwork"])
    outcome = await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")

    assert outcome.ok
    assert len(outcome.jobs) == 1
    assert 10.0 in sleeper.calls


@pytest.mark.asyncio
async def test_navigation_failure_raises(settings, sleeper, fake_page_factory, fake_session_factory):
    page = fake_page_factory(goto_errors=[TimeoutError("Timeout 90000ms exceeded")])
    with pytest.raises(NavigationFailure) as exc_info:
        await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")
    assert exc_info.value.keyword == "n8n"
    assert "Timeout" in exc_info.value.message


@pytest.mark.asyncio
async def test_navigation_failure_recorded_with_keyword(settings, sleeper, fake_page_factory, fake_session_factory, monkeypatch):
    recorded = []
    monkeypatch.setattr(orch_mod, "log_browser_failure", lambda category, exc, **ctx: recorded.append((category, ctx)))
    page = fake_page_factory(goto_errors=[TimeoutError("Timeout 90000ms exceeded")])
    with pytest.raises(NavigationFailure):
        await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")
    assert recorded == [
        ("navigation", {"keyword": "n8n", "url": "https://www.upwork.com/nx/search/jobs/?q=n8n&sort=recency"})
    ]


@pytest.mark.asyncio
async def test_navigation_retry(settings, sleeper, tile, page_html, fake_page_factory, fake_session_factory):
    settings.navigation_retry_attempts = 1
    settings.navigation_retry_backoff_ms = 1200
    page = fake_page_factory(html=page_html(tile()), goto_errors=[ConnectionError("net::ERR_CONNECTION_RESET")])
    outcome = await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")

    assert outcome.ok
    assert len(page.visited) == 2
    assert 1.2 in sleeper.calls


@pytest.mark.asyncio
async def test_screenshot_disabled(settings, sleeper, page_html, fake_page_factory, fake_session_factory):
    settings.screenshot_enabled = False
    page = fake_page_factory(html=page_html())
    outcome = await _orchestrator(settings, fake_session_factory(page), sleeper).scrape_keyword("n8n")
    assert outcome.ok and outcome.jobs == []
    assert page.screenshots == []
