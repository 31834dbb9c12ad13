import os
import tempfile
from typing import Any, Optional

import pytest

# Deterministic, sleep-free environment; artifacts go to a throwaway directory
_TMP = tempfile.mkdtemp(prefix="jobscan-tests-")
os.environ.setdefault("KEYWORD_STATE_FILE", os.path.join(_TMP, "keyword_state.json"))
os.environ.setdefault("SCREENSHOT_DIR", os.path.join(_TMP, "screenshots"))
os.environ.setdefault("BROWSER_PROFILE_DIR", os.path.join(_TMP, "chrome-profile"))
os.environ.setdefault("BROWSER_FAILURE_LOG", os.path.join(_TMP, "browser_failures.log"))
os.environ.setdefault("SETTLE_WAIT_MS", "0")
os.environ.setdefault("CHALLENGE_GRACE_MS", "0")
os.environ.setdefault("KEYWORD_DELAY_MIN_MS", "0")
os.environ.setdefault("KEYWORD_DELAY_MAX_MS", "0")


class RecordingSleep:
    """Stand-in for asyncio.sleep that only records requested durations."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakePage:
    """Minimal async page: scripted titles, fixed HTML, optional goto failures."""

    def __init__(self, html: str = "", titles: Optional[list[str]] = None, goto_errors: Optional[list[Exception]] = None):
        self.html = html
        self.titles = list(titles or ["Job search results"])
        self.goto_errors = list(goto_errors or [])
        self.visited: list[str] = []
        self.goto_kwargs: list[dict[str, Any]] = []
        self.screenshots: list[str] = []
        self.closed = False

    async def goto(self, url: str, **kwargs: Any) -> None:
        self.visited.append(url)
        self.goto_kwargs.append(kwargs)
        if self.goto_errors:
            raise self.goto_errors.pop(0)

    async def title(self) -> str:
        # The last scripted title sticks
        if len(self.titles) > 1:
            return self.titles.pop(0)
        return self.titles[0]

    async def content(self) -> str:
        return self.html

    async def screenshot(self, path: str) -> None:
        self.screenshots.append(path)

    def is_closed(self) -> bool:
        return self.closed


class FakeSession:
    def __init__(self, page: Optional[FakePage] = None):
        self.page = page or FakePage()
        self.acquired = 0
        self.closed = 0
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def acquire(self) -> FakePage:
        self.acquired += 1
        self._connected = True
        return self.page

    async def close(self) -> None:
        self.closed += 1
        self._connected = False


def job_tile(
    uid: str = "~0123",
    title: str = "Build an n8n automation workflow",
    href: str = "/jobs/~0123",
    *,
    posted: str = "<span>Posted</span><span>2 hours ago</span>",
    description: str = "We need an automation expert.",
    job_info: str = '<li data-test="job-type-label"><strong>Hourly: $15.00 - $30.00</strong></li>'
    '<li data-test="experience-level"><strong>Intermediate</strong></li>'
    '<li data-test="duration-label"><strong>Est. time:</strong> 1 to 3 months</li>',
    verified: bool = True,
    client: str = '<li data-test="total-spent"><strong>$10K+</strong> spent</li>'
    '<li data-test="location"><span class="rr-mask">Location United States</span></li>',
    skills: tuple[str, ...] = ("n8n", "Zapier", "+3"),
    proposals: str = "10 to 15",
    title_markup: Optional[str] = None,
) -> str:
    link = title_markup if title_markup is not None else (
        f'<h2><a data-test="job-tile-title-link" href="{href}">{title}</a></h2>'
    )
    tokens = "".join(f'<button data-test="token"><span>{s}</span></button>' for s in skills)
    verified_li = '<li data-test="payment-verified">Payment verified</li>' if verified else ""
    return (
        f'<article data-test="JobTile" data-ev-job-uid="{uid}">'
        f'<small data-test="job-pubilshed-date">{posted}</small>'
        f"{link}"
        f'<ul data-test="JobInfo">{job_info}</ul>'
        f'<div data-test="JobDescription"><p>{description}</p></div>'
        f"{tokens}"
        f'<ul data-test="JobInfoClient">{verified_li}{client}</ul>'
        f'<ul><li data-test="proposals-tier">Proposals: <strong>{proposals}</strong></li></ul>'
        "</article>"
    )


def results_page(*tiles: str, title: str = "Job search results") -> str:
    return f"<html><head><title>{title}</title></head><body><section>{''.join(tiles)}</section></body></html>"


@pytest.fixture
def tile():
    return job_tile


@pytest.fixture
def page_html():
    return results_page


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def settings(tmp_path):
    from jobscan.bootstrap import Settings

    return Settings(
        keyword_state_file=str(tmp_path / "keyword_state.json"),
        screenshot_dir=str(tmp_path / "screenshots"),
        browser_profile_dir=str(tmp_path / "profile"),
        settle_wait_ms=0,
        challenge_grace_ms=0,
        keyword_delay_min_ms=0,
        keyword_delay_max_ms=0,
    )


@pytest.fixture
def fake_page_factory():
    return FakePage


@pytest.fixture
def fake_session_factory():
    return FakeSession
