"""Headless browser ownership and DOM polling.

A ``BrowserHandle`` owns exactly one Chromium instance. It is launched on the
first ``get()`` and torn down by ``close()``; every render runs in its own
browser context so concurrent requests never share DOM state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from playwright.async_api import Browser, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import EngineClosedError

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
POLL_INTERVAL_MS = 100

Launcher = Callable[[], Awaitable[tuple[Any, Browser]]]


async def launch_chromium() -> tuple[Any, Browser]:
    """Start Playwright and a headless Chromium. Returns (playwright, browser)."""
    from playwright.async_api import async_playwright

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)
    except BaseException:
        await playwright.stop()
        raise
    return playwright, browser


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CLOSED = "closed"


class BrowserHandle:
    """Lock-guarded, lazily created browser.

    ``get()`` and ``close()`` are the only lifecycle operations. Once closed
    the handle stays closed.
    """

    def __init__(self, launcher: Optional[Launcher] = None, name: str = "browser"):
        self._launcher = launcher or launch_chromium
        self._name = name
        self._lock = asyncio.Lock()
        self._state = EngineState.IDLE
        self._playwright: Any = None
        self._browser: Optional[Browser] = None

    @property
    def state(self) -> EngineState:
        return self._state

    async def get(self) -> Browser:
        """Return the running browser, launching it on first use."""
        async with self._lock:
            if self._state is EngineState.CLOSED:
                raise EngineClosedError(f"Rendering engine '{self._name}' has been shut down")
            if self._state is EngineState.RUNNING and not self._browser.is_connected():
                logger.warning("event=engine_disconnected name=%s", self._name)
                await self._discard()
            if self._state is EngineState.IDLE:
                logger.info("event=engine_launch name=%s", self._name)
                self._playwright, self._browser = await self._launcher()
                self._state = EngineState.RUNNING
            return self._browser

    async def close(self) -> None:
        """Close the browser if it was ever launched. Safe to call repeatedly."""
        async with self._lock:
            if self._state is EngineState.CLOSED:
                return
            was_running = self._state is EngineState.RUNNING
            self._state = EngineState.CLOSED
            browser, playwright = self._browser, self._playwright
            self._browser = self._playwright = None
            if not was_running:
                return
            try:
                await browser.close()
            finally:
                if playwright is not None:
                    await playwright.stop()
            logger.info("event=engine_closed name=%s", self._name)

    async def _discard(self) -> None:
        """Drop a crashed browser so the next ``get()`` relaunches. Caller holds the lock."""
        playwright = self._playwright
        self._browser = self._playwright = None
        self._state = EngineState.IDLE
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning("event=engine_stop_failed name=%s error=%s", self._name, e)

    @asynccontextmanager
    async def isolated_page(self, viewport: Optional[dict] = None) -> AsyncIterator[Page]:
        """Yield a page in a fresh browser context, closing the context on exit."""
        browser = await self.get()
        context = await browser.new_context(viewport=viewport)
        try:
            page = await context.new_page()
            yield page
        finally:
            await context.close()


# ============================================================================
# Bounded DOM polling
# ============================================================================

@dataclass(frozen=True)
class Ready:
    state: Any


@dataclass(frozen=True)
class Errored:
    message: str


@dataclass(frozen=True)
class TimedOut:
    timeout_ms: int


PollOutcome = Union[Ready, Errored, TimedOut]


async def poll_until(page: Page, expression: str, timeout_ms: int) -> PollOutcome:
    """Poll ``expression`` in the page until it returns a terminal state.

    The expression must evaluate to a falsy value while rendering is still in
    progress, and to ``{"error": <text or null>}`` or ``{"ready": true}`` once
    it has finished.
    """
    try:
        handle = await page.wait_for_function(
            expression, timeout=timeout_ms, polling=POLL_INTERVAL_MS
        )
    except PlaywrightTimeoutError:
        return TimedOut(timeout_ms)

    state = await handle.json_value()
    if isinstance(state, dict) and "error" in state:
        return Errored(state["error"] or "Unknown syntax error")
    return Ready(state)
