"""Request and result types shared by the renderers, output router and tools."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PLOTLY_CONTAINER_ID = "plotly-chart"
DEFAULT_QUALITY = 90


# ============================================================================
# Closed enumerations
# ============================================================================

class RenderFormat(str, Enum):
    SVG = "svg"
    PNG = "png"
    JPG = "jpg"
    PDF = "pdf"

    @property
    def is_vector(self) -> bool:
        return self is RenderFormat.SVG

    @property
    def screenshot_type(self) -> str:
        return "jpeg" if self is RenderFormat.JPG else "png"

    @property
    def extension(self) -> str:
        return self.value


class DeliveryMode(str, Enum):
    LINK = "link"
    FILEPATH = "filepath"
    RAW = "raw"


class MermaidTheme(str, Enum):
    DEFAULT = "default"
    BASE = "base"
    DARK = "dark"
    FOREST = "forest"
    NEUTRAL = "neutral"
    NULL = "null"


class FlowchartCurve(str, Enum):
    BASIS = "basis"
    BUMP_X = "bumpX"
    BUMP_Y = "bumpY"
    CARDINAL = "cardinal"
    CATMULL_ROM = "catmullRom"
    LINEAR = "linear"
    MONOTONE_X = "monotoneX"
    MONOTONE_Y = "monotoneY"
    NATURAL = "natural"
    STEP = "step"
    STEP_AFTER = "stepAfter"
    STEP_BEFORE = "stepBefore"


def choices(enum_cls) -> list:
    return [member.value for member in enum_cls]


# ============================================================================
# Requests
# ============================================================================

class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class FlowchartOptions(_WireModel):
    use_max_width: Optional[bool] = None
    html_labels: Optional[bool] = None
    curve: Optional[FlowchartCurve] = None


class SequenceOptions(_WireModel):
    show_sequence_numbers: Optional[bool] = None
    mirror_actors: Optional[bool] = None
    right_angles: Optional[bool] = None
    wrap: Optional[bool] = None


class RenderRequest(_WireModel, ABC):
    """Options common to both renderers."""

    format: RenderFormat = RenderFormat.SVG
    background_color: Optional[str] = None
    file_path: Optional[str] = None
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    quality: Optional[int] = Field(default=DEFAULT_QUALITY, ge=1, le=100)
    output: DeliveryMode = DeliveryMode.LINK

    @property
    @abstractmethod
    def source(self) -> str:
        """The diagram or chart code handed to the page."""


class MermaidRenderRequest(RenderRequest):
    mermaid_code: str = Field(min_length=1)
    theme: MermaidTheme = MermaidTheme.DEFAULT
    font_family: Optional[str] = None
    font_size: Optional[float] = Field(default=None, gt=0)
    dark_mode: Optional[bool] = None
    html_labels: Optional[bool] = None
    max_text_size: Optional[int] = Field(default=None, gt=0)
    flowchart: Optional[FlowchartOptions] = None
    sequence: Optional[SequenceOptions] = None

    @field_validator("mermaid_code")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Mermaid code cannot be empty")
        return v

    @property
    def source(self) -> str:
        return self.mermaid_code


class PlotlyRenderRequest(RenderRequest):
    plotly_code: str = Field(min_length=1)
    responsive: bool = True
    display_mode_bar: bool = False
    mode_bar_buttons_to_remove: list[str] = Field(default_factory=list)
    displaylogo: bool = False

    @field_validator("plotly_code")
    @classmethod
    def _references_container(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Plotly code cannot be empty")
        if PLOTLY_CONTAINER_ID not in v:
            raise ValueError(f"Plotly must contain id '{PLOTLY_CONTAINER_ID}'")
        return v

    @property
    def source(self) -> str:
        return self.plotly_code


# ============================================================================
# Results
# ============================================================================

@dataclass(frozen=True)
class Size:
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class RenderResult:
    """Output of a renderer. Exactly one of ``data`` / ``error`` is set."""

    success: bool
    format: str
    data: Optional[str] = None
    error: Optional[str] = None
    size: Optional[Size] = None

    @classmethod
    def ok(cls, data: str, fmt: RenderFormat, size: Optional[Size] = None) -> "RenderResult":
        if not data:
            raise ValueError("Successful render must carry a payload")
        return cls(success=True, format=fmt.value, data=data, size=size)

    @classmethod
    def failure(cls, error: str, fmt) -> "RenderResult":
        return cls(success=False, format=_format_value(fmt), error=error or "Unknown error")


@dataclass(frozen=True)
class DeliveryResult:
    """What a tool call hands back over the protocol."""

    success: bool
    format: str
    data: Optional[str] = None
    output_type: Optional[DeliveryMode] = None
    size: Optional[Size] = None
    error: Optional[str] = None

    @classmethod
    def delivered(
        cls,
        data: str,
        fmt: str,
        output_type: DeliveryMode,
        size: Optional[Size] = None,
    ) -> "DeliveryResult":
        return cls(success=True, format=fmt, data=data, output_type=output_type, size=size)

    @classmethod
    def failure(cls, error: str, fmt) -> "DeliveryResult":
        return cls(success=False, format=_format_value(fmt), error=error or "Unknown error")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        result["format"] = self.format
        if self.size is not None:
            result["size"] = self.size.to_dict()
        if self.output_type is not None:
            result["output_type"] = self.output_type.value
        if self.error is not None:
            result["error"] = self.error
        return result


def _format_value(fmt) -> str:
    if isinstance(fmt, RenderFormat):
        return fmt.value
    return str(fmt) if fmt else RenderFormat.SVG.value
