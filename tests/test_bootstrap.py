from __future__ import annotations

import importlib
import json

import pytest
from prometheus_client import REGISTRY

from jobscan.errors import log_browser_failure
from jobscan.session import BrowserSession
from jobscan.state_store import JsonFileStateStore

bs = importlib.import_module("jobscan.bootstrap")


@pytest.mark.asyncio
async def test_bootstrap_basic(settings):
    ctx = await bs.bootstrap(force=True, settings=settings)
    try:
        assert ctx.settings.app_name == "jobscan"
        assert ctx.logger is not None
        assert isinstance(ctx.session, BrowserSession)
        assert isinstance(ctx.state_store, JsonFileStateStore)
        # the browser is only launched by the first scrape
        assert ctx.session.is_connected is False
        assert await bs.get_context() is ctx
        snap = bs.context_snapshot(ctx)
        assert snap == {"app_name": "jobscan", "browser_connected": False, "scan_in_progress": False}
    finally:
        bs.reset_context()


@pytest.mark.asyncio
async def test_context_builds_pipeline(settings):
    ctx = await bs.bootstrap(force=True, settings=settings)
    try:
        coordinator = ctx.coordinator()
        assert coordinator.default_limit == settings.default_scan_limit
        assert coordinator.orchestrator.session is ctx.session
    finally:
        bs.reset_context()


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("KEYWORD_DELAY_MIN_MS", "7000")
    monkeypatch.setenv("KEYWORD_DELAY_MAX_MS", "4000")
    monkeypatch.setenv("CHALLENGE_TITLE_MARKERS", "Just a moment; Attention Required ;")
    monkeypatch.setenv("SITE_ORIGIN", "https://example.test/")
    s = bs.Settings()
    assert (s.keyword_delay_min_ms, s.keyword_delay_max_ms) == (4000, 7000)
    assert s.challenge_title_markers == ["Just a moment", "Attention Required"]
    assert s.search_base_url == "https://example.test/nx/search/jobs/"


def test_settings_defaults(monkeypatch):
    for name in ("SETTLE_WAIT_MS", "CHALLENGE_GRACE_MS", "KEYWORD_DELAY_MIN_MS", "KEYWORD_DELAY_MAX_MS"):
        monkeypatch.delenv(name, raising=False)
    s = bs.Settings()
    assert s.navigation_timeout_ms == 90_000
    assert s.settle_wait_ms == 5000
    assert s.challenge_grace_ms == 10_000
    assert (s.keyword_delay_min_ms, s.keyword_delay_max_ms) == (3000, 6000)
    assert s.default_scan_limit == 100
    assert s.challenge_title_markers == ["Just a moment", "Cloudflare"]


def test_metrics_registered():
    bs.SCAN_KEYWORDS_PROCESSED.inc(0)
    families = {m.name for m in REGISTRY.collect()}
    # Accept either family naming (prometheus_client versions differ on the _total suffix)
    assert "scan_keywords_processed" in families or "scan_keywords_processed_total" in families
    assert "scan_keyword_duration_seconds" in families


def test_browser_failure_log_is_rate_limited(tmp_path, monkeypatch):
    path = tmp_path / "failures.log"
    monkeypatch.setenv("BROWSER_FAILURE_LOG", str(path))
    counts = [log_browser_failure("bootstrap_test_unique", TimeoutError("slow")) for _ in range(12)]
    assert counts == list(range(1, 13))
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    # first three, then the 10th
    assert [rec["occurrences"] for rec in lines] == [1, 2, 3, 10]
    assert lines[0]["signature"] == "bootstrap_test_unique:TimeoutError"


def test_browser_failure_records_context(tmp_path, monkeypatch):
    path = tmp_path / "failures.log"
    monkeypatch.setenv("BROWSER_FAILURE_LOG", str(path))
    log_browser_failure(
        "bootstrap_test_context", TimeoutError("Timeout 90000ms exceeded"), keyword="n8n", url="https://x/?q=n8n", attempt=None
    )
    rec = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
    assert rec["error"] == "Timeout 90000ms exceeded"
    assert rec["context"] == {"keyword": "n8n", "url": "https://x/?q=n8n"}
    assert rec["at"].endswith("+00:00")
