#!/usr/bin/env python3
"""
Diagram MCP - Server Implementation
===================================

Registers the rendering tools on a FastMCP server and builds the Starlette
app used for HTTP transport and static file serving.

Tools:
- render_mermaid: Render Mermaid source to SVG/PNG/JPG/PDF
- render_plotly: Render a Plotly.js snippet to SVG/PNG/JPG/PDF

HTTP routes:
- POST /mcp: Streamable HTTP protocol endpoint (http transport only)
- GET /: Status document
- GET /static/<file>: Rendered artifacts from the static directory
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Awaitable, Callable, Iterable, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from . import __version__
from .config import Settings
from .models import DeliveryMode, FlowchartCurve, MermaidTheme, RenderFormat, choices
from .tools import RenderTools, format_hint

logger = logging.getLogger(__name__)

SERVER_NAME = "diagram-mcp"
SERVER_DESCRIPTION = "Diagram MCP server"
TOOL_NAMES = ("render_mermaid", "render_plotly")

OUTPUT_HELP = """Output options:
- "link" (default): Returns a localhost URL for easy viewing
- "filepath": Saves to disk and returns the file path
- "raw": Returns base64 data for images or raw SVG string"""

RENDER_MERMAID_DESCRIPTION = f"""Render a Mermaid diagram to SVG, PNG, JPG, or PDF format with theme, font and layout options.
{OUTPUT_HELP}

Examples:
- Flowchart: mermaidCode='graph TD\\n  A[Start] --> B[End]'
- Dark PNG: format='png', theme='dark'
- Save to disk: output='filepath'"""

RENDER_PLOTLY_DESCRIPTION = f"""Render a Plotly chart to SVG, PNG, JPG, or PDF format with comprehensive styling and output options.
{OUTPUT_HELP}

The code runs in a page that provides a div with id 'plotly-chart' and a
`config` object built from the responsive/displayModeBar/displaylogo options.

Plotly Code Example:
Plotly.newPlot('plotly-chart', [{{
  x: [1, 2, 3, 4, 5],
  y: [1, 2, 4, 8, 16],
  type: 'scatter'
}}], {{
  margin: {{ t: 0 }}
}}, config);"""

FORMAT_HELP = "Output format: svg, png, jpg or pdf"
OUTPUT_MODE_HELP = "How the result is returned: link, filepath or raw"


def _enum_field(description: str, enum_cls) -> Any:
    """Advertise the choices in the schema; the adapter enforces them."""
    return Field(description=description, json_schema_extra={"enum": choices(enum_cls)})


def _compact(**arguments: Any) -> dict:
    return {key: value for key, value in arguments.items() if value is not None}


async def _dispatch(
    handler: Callable[[dict], Awaitable[dict]],
    arguments: dict,
) -> str:
    """Run a tool adapter and serialize its result; never raises."""
    try:
        result = await handler(arguments)
    except Exception as e:
        logger.exception("event=tool_failed format=%s", format_hint(arguments))
        result = {
            "success": False,
            "error": str(e) or "Unknown error",
            "format": format_hint(arguments),
        }
    return json.dumps(result, indent=2)


def create_server(settings: Optional[Settings] = None, tools: Optional[RenderTools] = None) -> FastMCP:
    """Create the MCP server with both rendering tools registered."""
    settings = settings or Settings()
    tools = tools or RenderTools(settings)

    mcp = FastMCP(
        SERVER_NAME,
        instructions="Render Mermaid diagrams and Plotly charts to SVG, PNG, JPG or PDF.",
        stateless_http=True,
        json_response=True,
    )

    # ========================================================================
    # Mermaid
    # ========================================================================

    @mcp.tool(name="render_mermaid", description=RENDER_MERMAID_DESCRIPTION)
    async def render_mermaid(
        mermaidCode: Annotated[str, Field(description="Mermaid diagram source")],  # noqa: N803
        format: Annotated[str, _enum_field(FORMAT_HELP, RenderFormat)] = "svg",  # noqa: A002
        theme: Annotated[str, _enum_field("Mermaid theme", MermaidTheme)] = "default",
        backgroundColor: Annotated[Optional[str], Field(description="CSS background color")] = None,  # noqa: N803
        filePath: Annotated[Optional[str], Field(description="Also save a copy to this path")] = None,  # noqa: N803
        width: Annotated[Optional[float], Field(description="Output width in pixels")] = None,
        height: Annotated[Optional[float], Field(description="Output height in pixels")] = None,
        quality: Annotated[int, Field(description="JPEG quality 1-100")] = 90,
        output: Annotated[str, _enum_field(OUTPUT_MODE_HELP, DeliveryMode)] = "link",
        fontFamily: Annotated[Optional[str], Field(description="Font family")] = None,  # noqa: N803
        fontSize: Annotated[Optional[float], Field(description="Font size in pixels")] = None,  # noqa: N803
        darkMode: Annotated[Optional[bool], Field(description="Mermaid dark mode")] = None,  # noqa: N803
        htmlLabels: Annotated[Optional[bool], Field(description="Use HTML labels")] = None,  # noqa: N803
        maxTextSize: Annotated[Optional[int], Field(description="Maximum diagram text size")] = None,  # noqa: N803
        flowchart: Annotated[
            Optional[dict[str, Any]],
            Field(
                description=(
                    "Flowchart options: useMaxWidth, htmlLabels, curve ("
                    + ", ".join(choices(FlowchartCurve))
                    + ")"
                )
            ),
        ] = None,
        sequence: Annotated[
            Optional[dict[str, Any]],
            Field(description="Sequence options: showSequenceNumbers, mirrorActors, rightAngles, wrap"),
        ] = None,
    ) -> str:
        """Render a Mermaid diagram."""
        return await _dispatch(
            tools.render_mermaid,
            _compact(
                mermaidCode=mermaidCode,
                format=format,
                theme=theme,
                backgroundColor=backgroundColor,
                filePath=filePath,
                width=width,
                height=height,
                quality=quality,
                output=output,
                fontFamily=fontFamily,
                fontSize=fontSize,
                darkMode=darkMode,
                htmlLabels=htmlLabels,
                maxTextSize=maxTextSize,
                flowchart=flowchart,
                sequence=sequence,
            ),
        )

    # ========================================================================
    # Plotly
    # ========================================================================

    @mcp.tool(name="render_plotly", description=RENDER_PLOTLY_DESCRIPTION)
    async def render_plotly(
        plotlyCode: Annotated[str, Field(description="Plotly.js code drawing into 'plotly-chart'")],  # noqa: N803
        format: Annotated[str, _enum_field(FORMAT_HELP, RenderFormat)] = "svg",  # noqa: A002
        backgroundColor: Annotated[Optional[str], Field(description="CSS background color")] = None,  # noqa: N803
        filePath: Annotated[Optional[str], Field(description="Also save a copy to this path")] = None,  # noqa: N803
        width: Annotated[Optional[float], Field(description="Output width in pixels")] = None,
        height: Annotated[Optional[float], Field(description="Output height in pixels")] = None,
        quality: Annotated[int, Field(description="JPEG quality 1-100")] = 90,
        output: Annotated[str, _enum_field(OUTPUT_MODE_HELP, DeliveryMode)] = "link",
        responsive: Annotated[bool, Field(description="Responsive chart")] = True,
        displayModeBar: Annotated[bool, Field(description="Show the mode bar")] = False,  # noqa: N803
        modeBarButtonsToRemove: Annotated[  # noqa: N803
            Optional[list[str]], Field(description="Mode bar buttons to remove")
        ] = None,
        displaylogo: Annotated[bool, Field(description="Show the Plotly logo")] = False,
    ) -> str:
        """Render a Plotly chart."""
        return await _dispatch(
            tools.render_plotly,
            _compact(
                plotlyCode=plotlyCode,
                format=format,
                backgroundColor=backgroundColor,
                filePath=filePath,
                width=width,
                height=height,
                quality=quality,
                output=output,
                responsive=responsive,
                displayModeBar=displayModeBar,
                modeBarButtonsToRemove=modeBarButtonsToRemove,
                displaylogo=displaylogo,
            ),
        )

    return mcp


# ============================================================================
# HTTP app
# ============================================================================

def status_document(settings: Settings) -> dict:
    return {
        "name": SERVER_NAME,
        "version": __version__,
        "description": SERVER_DESCRIPTION,
        "tools": list(TOOL_NAMES),
        "staticDir": str(settings.static_root),
        "allowedDirs": list(settings.allowed_dirs),
        "serverPort": settings.port,
        "transportType": settings.transport_type,
    }


def create_http_app(
    mcp: FastMCP,
    settings: Settings,
    include_mcp: bool = True,
    on_shutdown: Iterable[Callable[[], Awaitable[None]]] = (),
) -> Starlette:
    """Build the Starlette app serving the status document and static files.

    With ``include_mcp`` the streamable HTTP endpoint is mounted at /mcp.
    ``on_shutdown`` callbacks run when the app's lifespan ends, which uvicorn
    drives during graceful shutdown before re-raising SIGTERM/SIGINT.
    """
    app = mcp.streamable_http_app() if include_mcp else Starlette()
    callbacks = list(on_shutdown)
    inner_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def lifespan(app_):
        async with inner_lifespan(app_):
            try:
                yield
            finally:
                for callback in callbacks:
                    try:
                        await callback()
                    except Exception:
                        logger.exception("event=shutdown_callback_failed")

    app.router.lifespan_context = lifespan

    async def status(request: Request) -> JSONResponse:
        return JSONResponse(status_document(settings))

    static_root = settings.static_root
    static_root.mkdir(parents=True, exist_ok=True)

    app.router.routes.extend([
        Route("/", endpoint=status, methods=["GET"]),
        Mount("/static", app=StaticFiles(directory=str(static_root), check_dir=False), name="static"),
    ])
    return app
