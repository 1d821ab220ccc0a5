"""Shared fixtures: settings on tmp dirs and in-memory browser fakes."""

import asyncio
import base64
from pathlib import Path
from typing import Any, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from diagram_mcp.config import Settings
from diagram_mcp.engine import BrowserHandle
from diagram_mcp.file_manager import FileManager
from diagram_mcp.models import RenderFormat, RenderResult, Size
from diagram_mcp.output import OutputRouter

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
PDF_BYTES = b"%PDF-1.4\n%fake\n"
SVG_MARKUP = '<svg xmlns="http://www.w3.org/2000/svg" id="rendered-diagram"><g></g></svg>'
DEFAULT_BOX = {"x": 20.0, "y": 20.0, "width": 320.0, "height": 180.0}

MERMAID_CODE = "graph TD\n A[Start] --> B[End]"
PLOTLY_CODE = "Plotly.newPlot('plotly-chart', [{x: [1, 2], y: [3, 4]}], {}, config);"


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values = {
        "static_dir": tmp_path / "static",
        "allowed_dirs": [],
        "port": 8099,
        "transport_type": "stdio",
        "log_dir": tmp_path / "logs",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ============================================================================
# Browser fakes
# ============================================================================

class FakeHandle:
    def __init__(self, value: Any):
        self._value = value

    async def json_value(self) -> Any:
        return self._value


class FakeElement:
    def __init__(self, box: Optional[dict] = None, markup: Optional[str] = None):
        self.box = box
        self.markup = markup

    async def bounding_box(self) -> Optional[dict]:
        return self.box

    async def evaluate(self, expression: str) -> Optional[str]:
        return self.markup


class FakePage:
    """Records what the renderer asks of it and answers with canned values."""

    def __init__(
        self,
        state: Any = None,
        box: Optional[dict] = DEFAULT_BOX,
        markup: Optional[str] = SVG_MARKUP,
        timeout: bool = False,
        load_error: Optional[Exception] = None,
        screenshot_bytes: bytes = PNG_BYTES,
        load_delay: float = 0.0,
    ):
        self.state = {"ready": True} if state is None else state
        self.box = box
        self.markup = markup
        self.timeout = timeout
        self.load_error = load_error
        self.screenshot_bytes = screenshot_bytes
        self.load_delay = load_delay
        self.viewport: Optional[dict] = None
        self.captured: list[tuple[float, float]] = []
        self.content: Optional[str] = None
        self.expression: Optional[str] = None
        self.wait_timeout: Optional[int] = None
        self.selectors: list[str] = []
        self.screenshots: list[dict] = []
        self.pdfs: list[dict] = []

    async def set_content(self, html: str, wait_until: Optional[str] = None, timeout: Optional[int] = None):
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        self.content = html

    async def wait_for_function(self, expression: str, timeout: Optional[int] = None, polling: Any = None):
        self.expression = expression
        self.wait_timeout = timeout
        if self.timeout:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        return FakeHandle(self.state)

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        self.selectors.append(selector)
        if selector.endswith("svg") or "svg." in selector:
            return None if self.markup is None else FakeElement(markup=self.markup)
        return FakeElement(box=self.box)

    async def screenshot(self, **options: Any) -> bytes:
        """Mimic Playwright: without full_page the clip is trimmed to the viewport."""
        self.screenshots.append(options)
        clip = options.get("clip")
        if clip is not None:
            width, height = clip["width"], clip["height"]
            if not options.get("full_page") and self.viewport is not None:
                width = max(0.0, min(clip["x"] + width, self.viewport["width"]) - clip["x"])
                height = max(0.0, min(clip["y"] + height, self.viewport["height"]) - clip["y"])
            self.captured.append((width, height))
        return self.screenshot_bytes

    async def pdf(self, **options: Any) -> bytes:
        self.pdfs.append(options)
        return PDF_BYTES


class FakeContext:
    def __init__(self, page: FakePage, viewport: Optional[dict]):
        self.page = page
        self.viewport = viewport
        self.closed = False
        page.viewport = viewport

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory=FakePage):
        self.page_factory = page_factory
        self.contexts: list[FakeContext] = []
        self.closed = False
        self.connected = True

    def is_connected(self) -> bool:
        return self.connected

    async def new_context(self, viewport: Optional[dict] = None) -> FakeContext:
        context = FakeContext(self.page_factory(), viewport)
        self.contexts.append(context)
        return context

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self):
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class FakeLauncher:
    def __init__(self, browser: Optional[FakeBrowser] = None):
        self.browser = browser or FakeBrowser()
        self.playwright = FakePlaywright()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        return self.playwright, self.browser


def handle_for(page: FakePage) -> tuple[BrowserHandle, FakeLauncher]:
    launcher = FakeLauncher(FakeBrowser(lambda: page))
    return BrowserHandle(launcher, name="test"), launcher


# ============================================================================
# Stub renderer for adapter tests
# ============================================================================

class StubRenderer:
    def __init__(self, result: RenderResult, label: str = "Mermaid"):
        self.result = result
        self.label = label
        self.requests: list = []
        self.closed = False

    async def render(self, request) -> RenderResult:
        self.requests.append(request)
        return self.result

    async def close(self) -> None:
        self.closed = True


def png_result() -> RenderResult:
    return RenderResult.ok(
        base64.b64encode(PNG_BYTES).decode("ascii"),
        RenderFormat.PNG,
        Size(width=320.0, height=180.0),
    )


def svg_result() -> RenderResult:
    return RenderResult.ok(SVG_MARKUP, RenderFormat.SVG)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def file_manager(settings: Settings) -> FileManager:
    return FileManager(settings.static_dir, settings.allowed_dirs)


@pytest.fixture
def router(file_manager: FileManager, settings: Settings) -> OutputRouter:
    return OutputRouter(file_manager, settings.port, settings.public_host)
