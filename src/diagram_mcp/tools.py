"""Tool adapters: validate arguments, render, deliver, normalize.

Every public coroutine returns a plain dict in the protocol result shape
``{success, data?, format, size?, output_type?, error?}`` and never raises.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import ValidationError

from .config import Settings
from .errors import DiagramError, RequestError
from .file_manager import FileManager
from .models import (
    DeliveryResult,
    MermaidRenderRequest,
    PlotlyRenderRequest,
    RenderFormat,
    RenderRequest,
)
from .output import OutputRouter, materialize
from .renderers import BaseRenderer, MermaidRenderer, PlotlyRenderer

logger = logging.getLogger(__name__)

MERMAID_FAILURE = "Failed to render diagram"
PLOTLY_FAILURE = "Failed to render Plotly chart"


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or str(exc)


def format_hint(arguments: Mapping[str, Any]) -> str:
    value = arguments.get("format") if isinstance(arguments, Mapping) else None
    return value if isinstance(value, str) and value else RenderFormat.SVG.value


def parse_request(model: type[RenderRequest], arguments: Mapping[str, Any]) -> RenderRequest:
    """Validate raw tool arguments, raising ``RequestError`` on any problem."""
    try:
        return model.model_validate(dict(arguments))
    except ValidationError as e:
        raise RequestError(f"Invalid request: {describe_validation_error(e)}") from e


class RenderTools:
    """Owns both renderers plus the file manager and output router."""

    def __init__(
        self,
        settings: Settings,
        mermaid: Optional[BaseRenderer] = None,
        plotly: Optional[BaseRenderer] = None,
        file_manager: Optional[FileManager] = None,
        router: Optional[OutputRouter] = None,
    ):
        self.settings = settings
        self.file_manager = file_manager or FileManager(
            settings.static_dir, settings.allowed_dirs
        )
        self.router = router or OutputRouter(
            self.file_manager, settings.port, settings.public_host
        )
        self.mermaid = mermaid or MermaidRenderer(
            settings.mermaid_script_url, timeout_ms=settings.mermaid_timeout_ms
        )
        self.plotly = plotly or PlotlyRenderer(
            settings.plotly_script_url, timeout_ms=settings.plotly_timeout_ms
        )

    async def render_mermaid(self, arguments: Mapping[str, Any]) -> dict:
        return await self._run(MERMAID_FAILURE, MermaidRenderRequest, self.mermaid, arguments)

    async def render_plotly(self, arguments: Mapping[str, Any]) -> dict:
        return await self._run(PLOTLY_FAILURE, PlotlyRenderRequest, self.plotly, arguments)

    async def aclose(self) -> None:
        for renderer in (self.mermaid, self.plotly):
            try:
                await renderer.close()
            except Exception:
                logger.exception("event=renderer_close_failed renderer=%s", renderer.label)
        logger.info("event=renderers_closed")

    async def _run(
        self,
        prefix: str,
        model: type[RenderRequest],
        renderer: BaseRenderer,
        arguments: Mapping[str, Any],
    ) -> dict:
        fmt = format_hint(arguments)
        try:
            request = parse_request(model, arguments)
        except RequestError as e:
            logger.info("event=invalid_request tool=%s error=%s", renderer.label, e)
            return DeliveryResult.failure(f"{prefix}: {e}", fmt).to_dict()

        fmt = request.format.value
        try:
            result = await renderer.render(request)
            if not result.success:
                logger.info(
                    "event=render_failed tool=%s format=%s error=%s",
                    renderer.label, result.format, result.error,
                )
                return DeliveryResult.failure(f"{prefix}: {result.error}", result.format).to_dict()

            if request.file_path:
                await self.file_manager.save_to_path(
                    request.file_path, materialize(result.data, request.format), fmt
                )

            delivered = await self.router.deliver(result, request.output)
        except DiagramError as e:
            logger.warning(
                "event=delivery_failed tool=%s format=%s error=%s", renderer.label, fmt, e
            )
            return DeliveryResult.failure(f"{prefix}: {e}", fmt).to_dict()
        except Exception as e:
            logger.exception("event=delivery_exception tool=%s format=%s", renderer.label, fmt)
            return DeliveryResult.failure(f"{prefix}: {e}", fmt).to_dict()

        if not delivered.success:
            return DeliveryResult.failure(f"{prefix}: {delivered.error}", fmt).to_dict()
        return delivered.to_dict()
