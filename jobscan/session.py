"""Single long-lived browser session.

One persistent Chromium context per process, created on first ``acquire()``
and reused while it stays open. The profile directory keeps cookies and
challenge clearance between restarts. ``close()`` releases everything; the
next ``acquire()`` launches a fresh context.

Callers that may overlap (HTTP requests) must serialize whole scans with
``AppContext.scan_lock``; the session lock below only protects creation and
teardown.
"""
from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Any, Optional, TYPE_CHECKING

import structlog

from .errors import log_browser_failure
from .stealth import LAUNCH_ARGS, apply_stealth_scripts, get_stealth_context_options

try:  # Playwright is optional at import time so tests can run without browsers
    from playwright.async_api import async_playwright
except ImportError:  # pragma: no cover
    async_playwright = None  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from .bootstrap import Settings

logger = structlog.get_logger(__name__)


class BrowserSession:
    def __init__(self, settings: "Settings"):
        self.settings = settings
        self._lock = asyncio.Lock()
        self._playwright: Any = None
        self._context: Any = None
        self._page: Any = None

    @property
    def is_connected(self) -> bool:
        return self._context is not None

    def _on_context_close(self, *_: Any) -> None:
        if self._context is not None:  # closed from outside (window closed, crash)
            logger.warning("browser_context_lost")
        self._context = None
        self._page = None

    async def _launch(self) -> None:
        if async_playwright is None:
            raise RuntimeError("Playwright not installed.")
        s = self.settings
        profile = Path(s.browser_profile_dir)
        profile.mkdir(parents=True, exist_ok=True)
        if self._playwright is not None:
            # driver left behind by a context that closed from outside
            with contextlib.suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("browser_launch", profile_dir=str(profile), headless=s.browser_headless, channel=s.browser_channel)
        self._playwright = await async_playwright().start()
        try:
            launch_kwargs: dict[str, Any] = {
                "headless": s.browser_headless,
                "args": list(LAUNCH_ARGS),
                **get_stealth_context_options(s.stealth_enabled),
            }
            if s.browser_channel:
                launch_kwargs["channel"] = s.browser_channel
            context = await self._playwright.chromium.launch_persistent_context(str(profile), **launch_kwargs)
            await apply_stealth_scripts(context, s.stealth_enabled)
        except Exception as exc:
            log_browser_failure("launch", exc, profile_dir=str(profile), channel=s.browser_channel)
            with contextlib.suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
            raise
        context.on("close", self._on_context_close)
        self._context = context
        self._page = context.pages[0] if context.pages else await context.new_page()
        logger.info("browser_ready")

    async def acquire(self) -> Any:
        """Return the session page, launching the browser if needed."""
        async with self._lock:
            if self._context is None:
                await self._launch()
            elif self._page is None or self._page.is_closed():
                self._page = await self._context.new_page()
            return self._page

    async def close(self) -> None:
        async with self._lock:
            context, pw = self._context, self._playwright
            self._context = None
            self._page = None
            self._playwright = None
            if context is not None:
                try:
                    await context.close()
                except Exception as exc:
                    log_browser_failure("close", exc)
                    logger.warning("browser_close_failed", error=str(exc))
            if pw is not None:
                with contextlib.suppress(Exception):
                    await pw.stop()
            if context is not None:
                logger.info("browser_closed")
