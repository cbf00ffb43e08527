"""
Export of the typeset equation as an SVG file or a clipboard image.

Every export re-stages the equation in an off-screen figure with no
margins, measures the union of its glyph boxes, and crops to exactly that
bound before serializing or rasterizing. Clipboard delivery walks a
fallback chain of attempts until one works.
"""

import html
import io
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import matplotlib
from matplotlib.figure import Figure
from matplotlib.transforms import Bbox
from PIL import Image

from ..models import (
    ContentBoundingBox,
    ExportFormat,
    ExportMode,
    ExportOutcome,
    ExportStep,
    RasterImage,
    VectorDocument,
)
from ..utils.constants import (
    NO_EQUATION_TEXT,
    SVG_FILENAME,
    PNG_FILENAME,
    SVG_SAVED_TEXT,
    IMAGE_COPIED_TEXT,
    SVG_TEXT_COPIED_TEXT,
    VIEWER_TEXT,
    IMAGE_DOWNLOADED_TEXT,
)
from ..utils.errors import CaptureFailureError, ClipboardUnavailableError, ExportError
from .sinks import ClipboardSink, ViewerSink, FileSink
from .typesetter import Typesetter, ENGINE_RC, svg_fragment

logger = logging.getLogger(__name__)


BASE_DPI = 96  # One CSS pixel per dot at scale 1
VECTOR_DPI = 72  # SVG user units are points

VECTOR_STYLE = """
    .equation { color: #000000; font-family: "cmr10", "Computer Modern", serif; }
    .equation path { fill-rule: nonzero; }
    .latex-source { display: none; }
"""

VECTOR_TEMPLATE = """<?xml version="1.0" encoding="utf-8" standalone="no"?>
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" version="1.1" width="{width}pt" height="{height}pt" viewBox="0 0 {width} {height}">
  <desc class="latex-source">{source}</desc>
  <defs>
    <style type="text/css">{style}</style>
  </defs>
  <g class="equation">
{content}
  </g>
</svg>
"""

SVG_ROOT_SIZE_RE = re.compile(r'\s(width|height)="([\d.]+)pt"')


def measure_content_bounds(fig: Figure, renderer) -> ContentBoundingBox:
    """
    Union of the boxes of every visible text leaf in a figure.

    Leaves with no text or zero area are skipped. Coordinates are pixels
    with the origin at the top-left of the canvas.

    Raises:
        CaptureFailureError: If no leaf has visible content.
    """
    canvas_height = fig.bbox.height
    bounds = None

    for text in fig.texts:
        if not text.get_visible() or not text.get_text().strip("$ "):
            continue
        extent = text.get_window_extent(renderer)
        if extent.width <= 0 or extent.height <= 0:
            continue
        leaf = ContentBoundingBox(
            min_x=extent.x0,
            max_x=extent.x1,
            min_y=canvas_height - extent.y1,
            max_y=canvas_height - extent.y0,
        )
        bounds = leaf if bounds is None else bounds.union(leaf)

    if bounds is None or bounds.is_empty:
        raise CaptureFailureError("The equation has no visible content to capture.")
    return bounds


@dataclass
class AttemptResult:
    """Outcome of one delivery attempt in the fallback chain."""

    success: bool
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "AttemptResult":
        return cls(success=False, error_message=message)

    @classmethod
    def ok(cls) -> "AttemptResult":
        return cls(success=True)


def _attempt(step: ExportStep, action: Callable[[], None]) -> AttemptResult:
    """Run one host capability; any failure just means "try the next one"."""
    try:
        action()
    except Exception as e:  # host capabilities may raise anything
        logger.info("Export step %s failed: %s", step.name, e)
        return AttemptResult.failure(str(e) or type(e).__name__)
    return AttemptResult.ok()


def run_fallback_chain(
    attempts: List[Tuple[ExportStep, Callable[[], AttemptResult]]]
) -> ExportStep:
    """
    Try each attempt in order and return the first step that succeeds.

    Raises:
        ExportError: If every attempt failed.
    """
    failures = []
    for step, attempt in attempts:
        result = attempt()
        if result.success:
            return step
        failures.append(f"{step.name}: {result.error_message}")

    raise ExportError(
        "The image could not be copied, shown or saved.",
        technical_details="\n".join(failures),
    )


class ExportEngine:
    """
    Turn recognized LaTeX into a delivered artifact.

    Usage:
        engine = ExportEngine(Typesetter(), clipboard=CommandClipboard())
        outcome = engine.export(latex, ExportMode.CLIPBOARD, ExportFormat.RASTER)
        print(outcome.message)
    """

    def __init__(
        self,
        typesetter: Typesetter,
        clipboard: Optional[ClipboardSink] = None,
        viewer: Optional[ViewerSink] = None,
        files: Optional[FileSink] = None,
        scale: int = 2,
    ):
        self.typesetter = typesetter
        self.clipboard = clipboard
        self.viewer = viewer
        self.files = files
        self.scale = max(2, scale)

    # === Capture ===

    def stage(self, markup: str, dpi: float) -> Figure:
        """
        Lay out a fresh off-screen copy of the preview.

        Raises:
            CaptureFailureError: If the markup cannot be typeset.
        """
        lines = self.typesetter.prepare_lines(markup, error_tolerant=True)
        if lines is None:
            raise CaptureFailureError(
                "The equation could not be rendered, so there is nothing to capture.",
                technical_details=markup,
            )
        return self.typesetter.build_figure(lines, display_mode=True, dpi=dpi)

    def rasterize(self, markup: str) -> RasterImage:
        """
        Supersampled PNG with a transparent background, cropped to the content.

        Raises:
            CaptureFailureError: On any measurement or rendering failure.
        """
        try:
            fig = self.stage(markup, dpi=BASE_DPI * self.scale)
            with matplotlib.rc_context(ENGINE_RC):
                fig.canvas.draw()
            renderer = fig.canvas.get_renderer()
            bounds = measure_content_bounds(fig, renderer)

            width, height = int(renderer.width), int(renderer.height)
            image = Image.frombuffer(
                "RGBA", (width, height), bytes(fig.canvas.buffer_rgba()), "raw", "RGBA", 0, 1
            )
            left, top, right, bottom = bounds.to_pixels()
            cropped = image.crop(
                (max(left, 0), max(top, 0), min(right, width), min(bottom, height))
            )

            buf = io.BytesIO()
            cropped.save(buf, format="PNG")
        except CaptureFailureError:
            raise
        except (ValueError, RuntimeError, OSError) as e:
            raise CaptureFailureError(
                "Failed to generate the equation image.", technical_details=str(e)
            )

        logger.debug("Rasterized %dx%d at %dx", cropped.width, cropped.height, self.scale)
        return RasterImage(png=buf.getvalue(), width=cropped.width, height=cropped.height)

    def vectorize(self, markup: str) -> VectorDocument:
        """
        Self-contained SVG sized to the measured content bound.

        The output depends only on the markup: no dates, fixed element ids.

        Raises:
            CaptureFailureError: On any measurement or rendering failure.
        """
        try:
            fig = self.stage(markup, dpi=VECTOR_DPI)
            renderer = fig.canvas.get_renderer()
            bounds = measure_content_bounds(fig, renderer)

            canvas_height = fig.bbox.height
            crop = Bbox.from_extents(
                bounds.min_x / VECTOR_DPI,
                (canvas_height - bounds.max_y) / VECTOR_DPI,
                bounds.max_x / VECTOR_DPI,
                (canvas_height - bounds.min_y) / VECTOR_DPI,
            )

            buf = io.StringIO()
            with matplotlib.rc_context(ENGINE_RC):
                fig.savefig(
                    buf,
                    format="svg",
                    bbox_inches=crop,
                    pad_inches=0,
                    transparent=True,
                    metadata={"Date": None},
                )
        except CaptureFailureError:
            raise
        except (ValueError, RuntimeError) as e:
            raise CaptureFailureError(
                "Failed to generate the SVG document.", technical_details=str(e)
            )

        width = f"{bounds.width:.3f}"
        height = f"{bounds.height:.3f}"
        inner = svg_fragment(buf.getvalue())
        # The wrapper fills the outer canvas, whose user unit is one point
        inner = SVG_ROOT_SIZE_RE.sub(r' \1="\2"', inner, count=2)

        document = VECTOR_TEMPLATE.format(
            width=width,
            height=height,
            source=html.escape(markup),
            style=VECTOR_STYLE,
            content=inner,
        )
        return VectorDocument(svg=document)

    # === Delivery ===

    def _copy_image(self, raster: RasterImage) -> AttemptResult:
        if self.clipboard is None:
            return AttemptResult.failure("no clipboard")
        return _attempt(ExportStep.IMAGE_CLIPBOARD, lambda: self.clipboard.set_image(raster.png))

    def _copy_text(self, text: Optional[str]) -> AttemptResult:
        if self.clipboard is None:
            return AttemptResult.failure("no clipboard")
        if text is None:
            return AttemptResult.failure("no text payload")
        return _attempt(ExportStep.TEXT_CLIPBOARD, lambda: self.clipboard.set_text(text))

    def _show_image(self, raster: RasterImage) -> AttemptResult:
        if self.viewer is None:
            return AttemptResult.failure("no viewer")
        return _attempt(
            ExportStep.VIEWER, lambda: self.viewer.show_image(raster.png, VIEWER_TEXT)
        )

    def _save_image(self, raster: RasterImage) -> AttemptResult:
        if self.files is None:
            return AttemptResult.failure("no file sink")
        return _attempt(ExportStep.IMAGE_FILE, lambda: self.files.save(raster.png, PNG_FILENAME))

    def export(self, markup: str, mode: ExportMode, fmt: ExportFormat) -> ExportOutcome:
        """
        Export the equation.

        Args:
            markup: Recognized LaTeX
            mode: DOWNLOAD saves an SVG; CLIPBOARD copies an image
            fmt: RASTER or VECTOR (clipboard mode only); VECTOR keeps the
                SVG document as a plain-text fallback payload

        Raises:
            ExportError: If there is no markup, nothing can be delivered, or
                (as CaptureFailureError) the equation cannot be captured.
        """
        if not markup or not markup.strip():
            raise ExportError(NO_EQUATION_TEXT)

        if mode is ExportMode.DOWNLOAD:
            document = self.vectorize(markup)
            if self.files is None:
                raise ExportError("Saving files is not supported here.")
            path = self.files.save(document.to_bytes(), SVG_FILENAME)
            logger.info("Saved SVG to %s", path)
            return ExportOutcome(
                step=ExportStep.FILE,
                message=SVG_SAVED_TEXT.format(name=path.name),
                artifact=document,
            )

        raster = self.rasterize(markup)
        document = self.vectorize(markup) if fmt is ExportFormat.VECTOR else None
        text_payload = document.svg if document is not None else None

        step = run_fallback_chain(
            [
                (ExportStep.IMAGE_CLIPBOARD, lambda: self._copy_image(raster)),
                (ExportStep.TEXT_CLIPBOARD, lambda: self._copy_text(text_payload)),
                (ExportStep.VIEWER, lambda: self._show_image(raster)),
                (ExportStep.IMAGE_FILE, lambda: self._save_image(raster)),
            ]
        )
        logger.info("Clipboard export delivered via %s", step.name)

        if step is ExportStep.IMAGE_CLIPBOARD:
            return ExportOutcome(step, IMAGE_COPIED_TEXT, raster)
        if step is ExportStep.TEXT_CLIPBOARD:
            return ExportOutcome(step, SVG_TEXT_COPIED_TEXT, document)
        if step is ExportStep.VIEWER:
            return ExportOutcome(step, VIEWER_TEXT, raster, transient=False)
        return ExportOutcome(
            step, IMAGE_DOWNLOADED_TEXT.format(name=PNG_FILENAME), raster, transient=False
        )

    def copy_markup(self, markup: str, display: bool = True) -> None:
        """
        Copy the LaTeX source as text, wrapped in $$ ... $$ for display math.

        Raises:
            ClipboardUnavailableError: If there is no clipboard.
        """
        if self.clipboard is None:
            raise ClipboardUnavailableError("No clipboard is available.")
        text = f"$$ \n {markup} \n $$" if display else markup
        self.clipboard.set_text(text)
