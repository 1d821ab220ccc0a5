"""One-time logging configuration.

Logs always go to ``<log_dir>/diagram-mcp-server.log``. A stderr console
handler is added only for the HTTP transport: under stdio the protocol owns
stdout and the client usually hides stderr.

Idempotent: the second call is a no-op.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
LOG_FILENAME = "diagram-mcp-server.log"

# Third-party loggers to suppress to WARNING
_SUPPRESSED_LOGGERS = (
    "asyncio",
    "httpx",
    "mcp.server.lowlevel.server",
    "mcp.server.streamable_http",
    "sse_starlette",
    "uvicorn.access",
)

_configured = False


def setup_logging(
    level: str = "INFO",
    log_dir: Path = Path("logs"),
    console: bool = False,
) -> None:
    """Configure the root logger with a file handler and optional console."""
    global _configured  # noqa: PLW0603
    if _configured:
        return
    _configured = True

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / LOG_FILENAME, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
