"""Environment-based configuration."""

import logging
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8099
DEFAULT_TRANSPORT = "stdio"
TRANSPORTS = ("stdio", "http")

MERMAID_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js"
PLOTLY_SCRIPT_URL = "https://cdn.plot.ly/plotly-3.0.1.min.js"


def _default_static_dir() -> Path:
    return Path.cwd() / "temp-images"


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Output storage
    static_dir: Path = Field(default_factory=_default_static_dir)
    allowed_dirs: Annotated[list[str], NoDecode] = []

    # Server
    transport_type: Literal["stdio", "http"] = DEFAULT_TRANSPORT
    port: int = DEFAULT_PORT
    host: str = "0.0.0.0"
    public_host: str = "localhost"
    shutdown_grace_seconds: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    # Rendering
    mermaid_script_url: str = MERMAID_SCRIPT_URL
    plotly_script_url: str = PLOTLY_SCRIPT_URL
    mermaid_timeout_ms: int = Field(default=10_000, gt=0)
    plotly_timeout_ms: int = Field(default=15_000, gt=0)

    @field_validator("allowed_dirs", mode="before")
    @classmethod
    def _parse_allowed_dirs(cls, v: Any) -> Any:
        """Accept comma-separated string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [d.strip() for d in v.split(",") if d.strip()]
        return v

    @field_validator("port", mode="before")
    @classmethod
    def _parse_port(cls, v: Any) -> int:
        if v is None or v == "":
            return DEFAULT_PORT
        try:
            port = int(v)
        except (TypeError, ValueError):
            port = 0
        if not 1 <= port <= 65535:
            logger.warning("Invalid PORT: %s, using default: %s", v, DEFAULT_PORT)
            return DEFAULT_PORT
        return port

    @field_validator("transport_type", mode="before")
    @classmethod
    def _parse_transport(cls, v: Any) -> str:
        if v is None or v == "":
            return DEFAULT_TRANSPORT
        normalized = str(v).strip().lower()
        if normalized not in TRANSPORTS:
            logger.warning(
                "Invalid TRANSPORT_TYPE: %s, using default: %s", v, DEFAULT_TRANSPORT
            )
            return DEFAULT_TRANSPORT
        return normalized

    @property
    def static_root(self) -> Path:
        return self.static_dir.expanduser().resolve()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
        "frozen": True,
    }
