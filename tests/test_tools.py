"""Tests for the tool adapters."""

import base64
from pathlib import Path

import pytest
from conftest import (
    MERMAID_CODE,
    PLOTLY_CODE,
    PNG_BYTES,
    StubRenderer,
    make_settings,
    png_result,
    svg_result,
)

from diagram_mcp.errors import RequestError
from diagram_mcp.models import MermaidRenderRequest, RenderFormat, RenderResult
from diagram_mcp.tools import RenderTools, parse_request


def make_tools(settings, mermaid_result=None, plotly_result=None, **kwargs) -> RenderTools:
    return RenderTools(
        settings,
        mermaid=StubRenderer(mermaid_result or svg_result(), label="Mermaid"),
        plotly=StubRenderer(plotly_result or svg_result(), label="Plotly"),
        **kwargs,
    )


class TestValidation:
    @pytest.mark.parametrize(
        "arguments",
        [
            {"mermaidCode": MERMAID_CODE, "quality": 0},
            {"mermaidCode": MERMAID_CODE, "quality": 101},
            {"mermaidCode": MERMAID_CODE, "format": "gif"},
            {"mermaidCode": MERMAID_CODE, "theme": "solarized"},
            {"mermaidCode": MERMAID_CODE, "output": "email"},
            {"mermaidCode": MERMAID_CODE, "width": -5},
            {"mermaidCode": MERMAID_CODE, "flowchart": {"curve": "zigzag"}},
            {"mermaidCode": "   "},
            {},
        ],
    )
    async def test_rejected_before_rendering(self, settings, arguments) -> None:
        tools = make_tools(settings)
        result = await tools.render_mermaid(arguments)
        assert result["success"] is False
        assert result["error"].startswith("Failed to render diagram: Invalid request:")
        assert tools.mermaid.requests == []

    def test_parse_request_raises_request_error(self) -> None:
        with pytest.raises(RequestError, match="Invalid request: quality"):
            parse_request(MermaidRenderRequest, {"mermaidCode": MERMAID_CODE, "quality": 0})

    def test_request_error_is_a_value_error(self) -> None:
        assert issubclass(RequestError, ValueError)

    async def test_failure_echoes_requested_format(self, settings) -> None:
        tools = make_tools(settings)
        result = await tools.render_mermaid({"mermaidCode": MERMAID_CODE, "format": "gif"})
        assert result["format"] == "gif"

    async def test_plotly_requires_container_id(self, settings) -> None:
        tools = make_tools(settings)
        result = await tools.render_plotly({"plotlyCode": "Plotly.newPlot('x', [])"})
        assert result["success"] is False
        assert "must contain id 'plotly-chart'" in result["error"]
        assert tools.plotly.requests == []

    async def test_defaults_applied(self, settings) -> None:
        tools = make_tools(settings)
        await tools.render_mermaid({"mermaidCode": MERMAID_CODE})
        (request,) = tools.mermaid.requests
        assert request.format is RenderFormat.SVG
        assert request.theme.value == "default"
        assert request.quality == 90
        assert request.output.value == "link"


class TestRendering:
    async def test_svg_link_by_default(self, settings) -> None:
        tools = make_tools(settings)
        result = await tools.render_mermaid({"mermaidCode": MERMAID_CODE})
        assert result["success"] is True
        assert result["output_type"] == "link"
        assert result["data"].startswith("http://localhost:8099/static/")
        filename = result["data"].rsplit("/", 1)[-1]
        assert (settings.static_root / filename).exists()

    async def test_png_filepath(self, settings) -> None:
        tools = make_tools(settings, mermaid_result=png_result())
        result = await tools.render_mermaid(
            {"mermaidCode": MERMAID_CODE, "format": "png", "output": "filepath"}
        )
        assert result["success"] is True
        path = Path(result["data"])
        assert path.suffix == ".png"
        assert path.read_bytes() == PNG_BYTES
        assert result["size"] == {"width": 320.0, "height": 180.0}

    async def test_raw_plotly(self, settings) -> None:
        tools = make_tools(settings, plotly_result=png_result())
        result = await tools.render_plotly(
            {"plotlyCode": PLOTLY_CODE, "format": "png", "output": "raw"}
        )
        assert result["output_type"] == "raw"
        assert base64.b64decode(result["data"]) == PNG_BYTES

    async def test_renderer_failure_is_prefixed(self, settings) -> None:
        failure = RenderResult.failure("Mermaid syntax error: Parse error", RenderFormat.SVG)
        tools = make_tools(settings, mermaid_result=failure)
        result = await tools.render_mermaid({"mermaidCode": "invalid mermaid syntax"})
        assert result == {
            "success": False,
            "format": "svg",
            "error": "Failed to render diagram: Mermaid syntax error: Parse error",
        }

    async def test_plotly_failure_prefix(self, settings) -> None:
        failure = RenderResult.failure("Render timed out after 15000 ms", RenderFormat.PNG)
        tools = make_tools(settings, plotly_result=failure)
        result = await tools.render_plotly({"plotlyCode": PLOTLY_CODE, "format": "png"})
        assert result["error"] == "Failed to render Plotly chart: Render timed out after 15000 ms"

    async def test_file_path_copy(self, settings, tmp_path) -> None:
        tools = make_tools(settings, mermaid_result=png_result())
        target = tmp_path / "exports" / "flow"
        result = await tools.render_mermaid(
            {"mermaidCode": MERMAID_CODE, "format": "png", "output": "raw", "filePath": str(target)}
        )
        assert result["success"] is True
        assert (tmp_path / "exports" / "flow.png").read_bytes() == PNG_BYTES

    async def test_file_path_outside_allow_list(self, tmp_path) -> None:
        settings = make_settings(tmp_path, allowed_dirs=[str(tmp_path / "static")])
        tools = make_tools(settings)
        result = await tools.render_mermaid(
            {"mermaidCode": MERMAID_CODE, "filePath": str(tmp_path / "elsewhere.svg")}
        )
        assert result["success"] is False
        assert "not in allowed directories" in result["error"]

    async def test_unexpected_delivery_exception_is_normalized(self, settings) -> None:
        class ExplodingRouter:
            async def deliver(self, result, mode):
                raise RuntimeError("disk on fire")

        tools = make_tools(settings, router=ExplodingRouter())
        result = await tools.render_mermaid({"mermaidCode": MERMAID_CODE})
        assert result == {
            "success": False,
            "format": "svg",
            "error": "Failed to render diagram: disk on fire",
        }

    async def test_repeat_renders_are_structurally_identical(self, settings) -> None:
        tools = make_tools(settings)
        first = await tools.render_mermaid({"mermaidCode": MERMAID_CODE})
        second = await tools.render_mermaid({"mermaidCode": MERMAID_CODE})
        assert first.keys() == second.keys()
        assert first["success"] == second["success"]
        assert first["data"] != second["data"]

    async def test_aclose_closes_both_renderers(self, settings) -> None:
        tools = make_tools(settings)
        await tools.aclose()
        assert tools.mermaid.closed and tools.plotly.closed
