"""Data structures for StudioShot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from PIL import Image as PILImage

from .config import Config
from .constants import (
    DEFAULT_REFLECTION_STOPS,
    REFLECTION_BRIGHTNESS,
    REFLECTION_CONTRAST,
    REFLECTION_SATURATION,
    TERMINAL_STATES,
)
from .enums import AspectRatioMode, JobState
from .exceptions import WorkflowCancelledError

T = TypeVar("T")


@dataclass(frozen=True)
class ImageDescriptor:
    """One image as submitted by the caller.

    ``reference`` is a blob id or URL; ``inline_data`` is base64 content,
    optionally prefixed with a ``data:`` header.
    """
    name: str
    size_bytes: int | None = None
    reference: str | None = None
    inline_data: str | None = None

    @property
    def image_ref(self) -> str:
        """The value handed to the effect service."""
        return self.reference or self.inline_data or ""


@dataclass
class Batch:
    """Ordered group of images dispatched together."""
    items: list[ImageDescriptor] = field(default_factory=list)
    known_bytes: int = 0
    forced_singleton: bool = False

    def __len__(self) -> int:
        return len(self.items)

    @property
    def names(self) -> list[str]:
        return [d.name for d in self.items]


@dataclass
class Job:
    """Tracked lifecycle of one image's remote effect request."""
    id: str
    image_name: str
    state: JobState = JobState.PENDING
    result_ref: str | None = None
    error_message: str | None = None
    consecutive_transient_errors: int = 0
    reconnecting: bool = False
    cached: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class ShadowParams:
    """Drop-shadow effect parameters shared by a batch."""
    azimuth: float = 0
    elevation: float = 90
    spread: float = 5
    opacity: float = 75

    def as_dict(self) -> dict[str, float]:
        return {
            "azimuth": self.azimuth,
            "elevation": self.elevation,
            "spread": self.spread,
            "opacity": self.opacity,
        }


@dataclass(frozen=True)
class PlacementConfig:
    """Normalized anchor of the subject on the canvas.

    ``x`` is the horizontal centre and ``y`` the foot line, both in [0, 1].
    """
    x: float = 0.5
    y: float = 0.9
    scale: float = 1.0


@dataclass(frozen=True)
class ReflectionSpec:
    """Parameters for the generated floor reflection."""
    height_fraction: float = 0.6
    blur_radius: float = 4.0
    gradient_stops: tuple[tuple[float, float], ...] = DEFAULT_REFLECTION_STOPS
    brightness: float = REFLECTION_BRIGHTNESS
    contrast: float = REFLECTION_CONTRAST
    saturation: float = REFLECTION_SATURATION
    opacity: float = 1.0


@dataclass(frozen=True)
class LayoutRect:
    """Axis-aligned rectangle in canvas pixels."""
    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        return self.x + self.width

    @property
    def y2(self) -> int:
        return self.y + self.height

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def contains(self, other: LayoutRect) -> bool:
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.x2 <= self.x2
            and other.y2 <= self.y2
        )


@dataclass(frozen=True)
class CompositeLayout:
    """Canvas geometry and layer rectangles for one composite."""
    width: int
    height: int
    padding_fraction: float
    aspect_ratio_mode: AspectRatioMode
    inner_box: LayoutRect
    subject_rect: LayoutRect
    product_rect: LayoutRect
    reflection_rect: LayoutRect
    scale: float


@dataclass(frozen=True)
class RenderRules:
    """Placement and effect settings applied to every image of a run."""
    placement: PlacementConfig = field(default_factory=PlacementConfig)
    aspect_ratio_mode: AspectRatioMode = AspectRatioMode.SQUARE
    numeric_aspect_ratio: float | None = None
    padding_fraction: float = Config.DEFAULT_PADDING
    blur_background: bool = False
    shadow: ShadowParams = field(default_factory=ShadowParams)
    reflection: ReflectionSpec | None = field(default_factory=ReflectionSpec)


@dataclass(frozen=True)
class RawSubject:
    """Subject supplied as raw encoded image bytes."""
    name: str
    data: bytes
    mime_type: str = "image/png"


@dataclass(frozen=True)
class PreProcessedSubject:
    """Subject already stored, optionally with a shadow rendered earlier."""
    descriptor: ImageDescriptor
    shadow_ref: str | None = None
    shadow_params: ShadowParams | None = None


Subject = Union[RawSubject, PreProcessedSubject]


@dataclass(frozen=True)
class IngestedSubject:
    """A subject resolved once at ingestion."""
    descriptor: ImageDescriptor
    cached_shadow_ref: str | None = None


@dataclass
class Outcome(Generic[T]):
    """Result slot of one dispatched item."""
    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CompositionResult:
    """Final composition result for one image."""
    name: str
    image: PILImage.Image
    layout: CompositeLayout
    warnings: list[str] = field(default_factory=list)


@dataclass
class FailedImage:
    """An image that did not make it to the end of the pipeline."""
    name: str
    error: str


@dataclass
class PipelineResult:
    """Everything a pipeline run produced."""
    composited: list[CompositionResult] = field(default_factory=list)
    encoded: dict[str, bytes] = field(default_factory=dict)
    failed: list[FailedImage] = field(default_factory=list)
    cancelled: bool = False


class CancellationToken:
    """Workflow-level cancellation flag checked between stages.

    Setting it stops new work from starting; calls already in flight end
    through their own deadline.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Workflow cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise WorkflowCancelledError(self.reason or "Workflow cancelled")
