"""Exceptions raised inside the render pipeline.

They never cross the protocol boundary: renderers, the output router and the
tool adapters turn them into ``{"success": false, ...}`` results.
"""


class DiagramError(Exception):
    """Base class for all diagram-mcp errors."""


class RequestError(DiagramError, ValueError):
    """Malformed or out-of-range tool arguments."""


class DeliveryError(DiagramError):
    """Rendered output could not be written or handed back."""


class PathNotAllowedError(DeliveryError):
    """Target path falls outside every configured allowed directory."""

    def __init__(self, path, allowed_dirs):
        self.path = path
        self.allowed_dirs = list(allowed_dirs)
        super().__init__(
            f"File path {path} is not in allowed directories: "
            f"{', '.join(str(d) for d in self.allowed_dirs)}"
        )


class EngineClosedError(DiagramError):
    """The rendering engine was shut down and cannot serve new pages."""
