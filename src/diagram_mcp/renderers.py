"""Mermaid and Plotly renderers.

Each renderer owns one ``BrowserHandle``. A render call loads a generated HTML
document into an isolated page, waits for the library to either draw or
report an error, then extracts SVG markup or captures PNG/JPEG/PDF bytes.

``render()`` never raises: every failure comes back as a ``RenderResult``
with ``success=False``.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .engine import BrowserHandle, Errored, Launcher, TimedOut, poll_until
from .errors import EngineClosedError
from .models import (
    DEFAULT_QUALITY,
    PLOTLY_CONTAINER_ID,
    MermaidRenderRequest,
    PlotlyRenderRequest,
    RenderFormat,
    RenderRequest,
    RenderResult,
    Size,
)
from .templates import (
    MERMAID_DOCUMENT,
    PLOTLY_DOCUMENT,
    render_document,
    status_expression,
)

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}
PAGE_PADDING = 40
PDF_PAGE_FORMAT = "A4"


class BaseRenderer(ABC):
    """Shared render procedure; subclasses supply the document and selectors."""

    label = "Diagram"
    container_selector = ""
    done_selector = ""
    svg_selector = ""
    default_timeout_ms = 10_000

    def __init__(
        self,
        script_url: str,
        timeout_ms: Optional[int] = None,
        engine: Optional[BrowserHandle] = None,
        launcher: Optional[Launcher] = None,
    ):
        self.script_url = script_url
        self.timeout_ms = timeout_ms or self.default_timeout_ms
        self.engine = engine or BrowserHandle(launcher, name=self.label.lower())
        self._status_expression = status_expression(self.done_selector)

    # -- hooks -------------------------------------------------------------

    @abstractmethod
    def build_document(self, request: RenderRequest) -> str:
        """Return the full HTML page that renders ``request``."""

    def precheck(self, request: RenderRequest) -> Optional[str]:
        """Return an error message if the request must not reach the engine."""
        if not request.source or not request.source.strip():
            return f"{self.label} code cannot be empty"
        for name in ("width", "height"):
            value = getattr(request, name)
            if value is not None and value <= 0:
                return f"{name.capitalize()} must be positive, got: {value}"
        if request.quality is not None and not 1 <= request.quality <= 100:
            return f"Quality must be between 1 and 100, got: {request.quality}"
        return None

    # -- procedure ---------------------------------------------------------

    async def render(self, request: RenderRequest) -> RenderResult:
        fmt = request.format
        problem = self.precheck(request)
        if problem:
            return RenderResult.failure(problem, fmt)

        try:
            async with self.engine.isolated_page(self._viewport(request)) as page:
                return await self._render_on_page(page, request)
        except PlaywrightTimeoutError as e:
            logger.warning("event=render_timeout renderer=%s error=%s", self.label, e)
            return RenderResult.failure(f"Render timed out: {e}", fmt)
        except PlaywrightError as e:
            logger.warning("event=engine_error renderer=%s error=%s", self.label, e)
            return RenderResult.failure(f"Rendering engine error: {e}", fmt)
        except EngineClosedError as e:
            return RenderResult.failure(str(e), fmt)
        except Exception as e:
            logger.exception("event=render_failed renderer=%s", self.label)
            return RenderResult.failure(str(e) or type(e).__name__, fmt)

    async def _render_on_page(self, page: Page, request: RenderRequest) -> RenderResult:
        fmt = request.format
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_ms / 1000
        await page.set_content(
            self.build_document(request), wait_until="load", timeout=self.timeout_ms
        )

        # Loading and drawing share one budget
        remaining_ms = max(1, int((deadline - loop.time()) * 1000))
        outcome = await poll_until(page, self._status_expression, remaining_ms)
        if isinstance(outcome, TimedOut):
            return RenderResult.failure(
                f"Render timed out after {self.timeout_ms} ms", fmt
            )
        if isinstance(outcome, Errored):
            return RenderResult.failure(
                f"{self.label} syntax error: {outcome.message}", fmt
            )

        if fmt.is_vector:
            return await self._extract_svg(page, fmt)

        element = await page.query_selector(self.container_selector)
        if element is None:
            return RenderResult.failure(
                f"Could not find {self.label.lower()} element '{self.container_selector}'", fmt
            )
        box = await element.bounding_box()
        if not box or box["width"] <= 0 or box["height"] <= 0:
            return RenderResult.failure(
                "Could not measure diagram: rendered element has zero size", fmt
            )

        size = Size(
            width=request.width or box["width"],
            height=request.height or box["height"],
        )

        if fmt is RenderFormat.PDF:
            buffer = await page.pdf(format=PDF_PAGE_FORMAT, print_background=True)
        else:
            # full_page trims the clip to the document, not the viewport
            options = {
                "type": fmt.screenshot_type,
                "full_page": True,
                "clip": {
                    "x": box["x"],
                    "y": box["y"],
                    "width": size.width,
                    "height": size.height,
                },
            }
            if fmt is RenderFormat.JPG:
                options["quality"] = request.quality or DEFAULT_QUALITY
            buffer = await page.screenshot(**options)

        if not buffer:
            return RenderResult.failure(f"{self.label} capture produced no data", fmt)

        logger.debug(
            "event=rendered renderer=%s format=%s bytes=%d", self.label, fmt.value, len(buffer)
        )
        return RenderResult.ok(base64.b64encode(buffer).decode("ascii"), fmt, size)

    async def _extract_svg(self, page: Page, fmt: RenderFormat) -> RenderResult:
        element = await page.query_selector(self.svg_selector)
        if element is None:
            return RenderResult.failure(f"{self.label} did not produce an SVG element", fmt)
        markup = await element.evaluate("el => el.outerHTML")
        if not markup:
            return RenderResult.failure(f"{self.label} SVG element is empty", fmt)
        return RenderResult.ok(markup, fmt)

    def _viewport(self, request: RenderRequest) -> dict:
        return {
            "width": max(DEFAULT_VIEWPORT["width"], int(request.width or 0) + 2 * PAGE_PADDING),
            "height": max(DEFAULT_VIEWPORT["height"], int(request.height or 0) + 2 * PAGE_PADDING),
        }

    async def close(self) -> None:
        await self.engine.close()


class MermaidRenderer(BaseRenderer):
    label = "Mermaid"
    container_selector = ".diagram"
    done_selector = "#mermaid-container svg"
    svg_selector = "#mermaid-container svg"
    default_timeout_ms = 10_000

    def precheck(self, request: MermaidRenderRequest) -> Optional[str]:
        problem = super().precheck(request)
        if problem:
            return problem
        if request.font_size is not None and request.font_size <= 0:
            return f"Font size must be positive, got: {request.font_size}"
        if request.max_text_size is not None and request.max_text_size <= 0:
            return f"Max text size must be positive, got: {request.max_text_size}"
        return None

    def mermaid_config(self, request: MermaidRenderRequest) -> dict:
        config = {
            "theme": request.theme.value,
            "startOnLoad": False,
            "securityLevel": "strict",
            "fontFamily": request.font_family or "Arial, sans-serif",
            "fontSize": request.font_size,
            "darkMode": request.dark_mode,
            "htmlLabels": request.html_labels,
            "maxTextSize": request.max_text_size,
        }
        if request.flowchart is not None:
            config["flowchart"] = request.flowchart.model_dump(
                mode="json", by_alias=True, exclude_none=True
            )
        if request.sequence is not None:
            config["sequence"] = request.sequence.model_dump(
                mode="json", by_alias=True, exclude_none=True
            )
        return {k: v for k, v in config.items() if v is not None}

    def build_document(self, request: MermaidRenderRequest) -> str:
        return render_document(
            MERMAID_DOCUMENT,
            self.script_url,
            {
                "source": request.mermaid_code,
                "config": self.mermaid_config(request),
                "backgroundColor": request.background_color,
            },
        )


class PlotlyRenderer(BaseRenderer):
    label = "Plotly"
    container_selector = ".chart-container"
    done_selector = f"#{PLOTLY_CONTAINER_ID} .plotly svg.main-svg"
    svg_selector = f"#{PLOTLY_CONTAINER_ID} svg.main-svg"
    default_timeout_ms = 15_000

    def precheck(self, request: PlotlyRenderRequest) -> Optional[str]:
        problem = super().precheck(request)
        if problem:
            return problem
        if PLOTLY_CONTAINER_ID not in request.plotly_code:
            return f"Plotly must contain id '{PLOTLY_CONTAINER_ID}'"
        return None

    def plotly_config(self, request: PlotlyRenderRequest) -> dict:
        return {
            "responsive": request.responsive,
            "displayModeBar": request.display_mode_bar,
            "modeBarButtonsToRemove": list(request.mode_bar_buttons_to_remove),
            "displaylogo": request.displaylogo,
        }

    def build_document(self, request: PlotlyRenderRequest) -> str:
        return render_document(
            PLOTLY_DOCUMENT,
            self.script_url,
            {
                "source": request.plotly_code,
                "config": self.plotly_config(request),
                "backgroundColor": request.background_color,
                "width": request.width,
                "height": request.height,
            },
        )
