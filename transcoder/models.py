"""
Core data structures for Equation Transcoder.

These dataclasses define the contract between layers.
"""

import base64
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, List, Union


class ExportMode(Enum):
    """Where an exported equation goes."""

    DOWNLOAD = auto()
    CLIPBOARD = auto()


class ExportFormat(Enum):
    """Artifact format. Only meaningful in clipboard mode."""

    RASTER = auto()
    VECTOR = auto()


class ExportStep(Enum):
    """Which step of the export fallback chain produced the artifact."""

    FILE = auto()  # download + vector
    IMAGE_CLIPBOARD = auto()
    TEXT_CLIPBOARD = auto()
    VIEWER = auto()
    IMAGE_FILE = auto()


@dataclass(frozen=True)
class SourceImage:
    """
    An acquired image, normalized from any entry point.

    `data` holds the encoded bytes exactly as read; `preview_path` is a
    locally resolvable reference for display (may be None for pasted images).
    """

    data: bytes
    mime_type: str
    name: str = "image"
    preview_path: Optional[str] = None

    def base64(self) -> str:
        """Base64 payload for the inference service."""
        return base64.b64encode(self.data).decode("ascii")


# === Recognition results ===


@dataclass(frozen=True)
class RecognitionOk:
    """Service returned markup (already fence-stripped)."""

    markup: str


@dataclass(frozen=True)
class EmptyRecognition:
    """Service answered but produced no candidate text."""


@dataclass(frozen=True)
class ServiceError:
    """Service or transport failure."""

    kind: str  # e.g. "TransportError"
    message: str


RecognitionResult = Union[RecognitionOk, EmptyRecognition, ServiceError]


# === Explanation segments ===


@dataclass(frozen=True)
class PlainText:
    """Prose between inline math spans."""

    text: str

    @property
    def source(self) -> str:
        return self.text


@dataclass(frozen=True)
class MathSpan:
    """
    Inline math, kept with its delimiters.

    `rendered` is the typeset SVG, or None when rendering failed; in that
    case the span displays as its literal delimited source.
    """

    source: str  # e.g. "$x^2$"
    rendered: Optional[str] = None

    @property
    def body(self) -> str:
        return self.source[1:-1]

    @property
    def degraded(self) -> bool:
        return self.rendered is None


ExplanationSegment = Union[PlainText, MathSpan]


# === Export ===


@dataclass(frozen=True)
class ContentBoundingBox:
    """Tight bounds of rendered glyphs, in staging-canvas pixels (top-left origin)."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def union(self, other: "ContentBoundingBox") -> "ContentBoundingBox":
        return ContentBoundingBox(
            min_x=min(self.min_x, other.min_x),
            max_x=max(self.max_x, other.max_x),
            min_y=min(self.min_y, other.min_y),
            max_y=max(self.max_y, other.max_y),
        )

    def to_pixels(self) -> tuple:
        """Integer crop box (left, top, right, bottom) covering the bound."""
        return (
            int(math.floor(self.min_x)),
            int(math.floor(self.min_y)),
            int(math.ceil(self.max_x)),
            int(math.ceil(self.max_y)),
        )


@dataclass(frozen=True)
class VectorDocument:
    """Self-contained SVG document."""

    svg: str

    def to_bytes(self) -> bytes:
        return self.svg.encode("utf-8")


@dataclass(frozen=True)
class RasterImage:
    """PNG-encoded bitmap."""

    png: bytes
    width: int
    height: int


ExportArtifact = Union[VectorDocument, RasterImage]


@dataclass(frozen=True)
class ExportOutcome:
    """
    Result of an export.

    `transient` outcomes are reported with a short-lived notification;
    the others are degraded paths that need an explicit message.
    """

    step: ExportStep
    message: str
    artifact: ExportArtifact
    transient: bool = True


# === Session ===


@dataclass
class Notification:
    """Transient notification (the "snackbar")."""

    visible: bool = False
    message: str = ""
    seq: int = 0


@dataclass
class EquationSession:
    """
    Root aggregate for one window.

    Mutated in place by SessionController; never persisted.
    """

    source_image: Optional[SourceImage] = None
    recognized_markup: str = ""
    typeset_preview: Optional[str] = None
    explanation_segments: Optional[List[ExplanationSegment]] = None
    progress: int = 0
    notification: Notification = field(default_factory=Notification)
    export_mode: ExportMode = ExportMode.DOWNLOAD
    export_format: ExportFormat = ExportFormat.RASTER
    # Staleness tickets: a continuation only applies if its ticket is current
    request_seq: int = 0
    explain_seq: int = 0
    # True once recognized_markup holds real service output (not a placeholder)
    has_markup: bool = False
