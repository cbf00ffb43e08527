"""
Natural-language explanations with inline math.

The service answers in prose with TeX between single dollar signs. The
answer is split into plain-text and math segments, and every math segment
is typeset on its own so one bad span cannot spoil the rest.
"""

import html
import logging
import re
from typing import List, Optional

from ..input.recognition import remove_fence_markers
from ..input.service import InferenceService, text_part
from ..models import (
    ExplanationSegment,
    PlainText,
    MathSpan,
    RecognitionOk,
    EmptyRecognition,
    RecognitionResult,
)
from ..utils.config import TranscoderConfig
from ..utils.constants import (
    EXPLANATION_PROMPT,
    EMPTY_EXPLANATION_TEXT,
    EXPLANATION_ERROR_TEXT,
)
from .typesetter import Typesetter, svg_fragment

logger = logging.getLogger(__name__)

# Leftmost-first, non-overlapping $...$ pairs (may span lines)
MATH_SPAN_RE = re.compile(r"\$(.*?)\$", re.DOTALL)


def segment_explanation(text: str) -> List[ExplanationSegment]:
    """
    Partition text into PlainText and MathSpan segments.

    A PlainText segment is emitted before every math span and after the
    last one, even when empty, so joining every segment's `source` gives
    back the input exactly. An unpaired `$` stays inside plain text.
    """
    segments: List[ExplanationSegment] = []
    last_index = 0

    for match in MATH_SPAN_RE.finditer(text):
        segments.append(PlainText(text[last_index : match.start()]))
        segments.append(MathSpan(match.group(0)))
        last_index = match.end()

    segments.append(PlainText(text[last_index:]))
    return segments


def render_segments(
    segments: List[ExplanationSegment], typesetter: Typesetter
) -> List[ExplanationSegment]:
    """Typeset every MathSpan inline; failures leave that span unrendered."""
    rendered: List[ExplanationSegment] = []
    for segment in segments:
        if isinstance(segment, MathSpan):
            svg = typesetter.render(segment.body, display_mode=False)
            if svg is None:
                logger.info("Inline math %r left as source", segment.source)
            segment = MathSpan(segment.source, rendered=svg)
        rendered.append(segment)
    return rendered


def segments_to_text(segments: List[ExplanationSegment]) -> str:
    """Reassemble the original explanation text."""
    return "".join(segment.source for segment in segments)


def segments_to_html(segments: List[ExplanationSegment]) -> str:
    """HTML with escaped prose and inline SVG for rendered math."""
    parts = []
    for segment in segments:
        if isinstance(segment, MathSpan) and segment.rendered is not None:
            parts.append(
                f'<span class="inline-math">{svg_fragment(segment.rendered)}</span>'
            )
        else:
            parts.append(html.escape(segment.source).replace("\n", "<br>"))
    return "".join(parts)


class ExplanationComposer:
    """
    Ask the service to explain an equation and compose the answer.

    `request` does the network round trip and may run off the GUI thread;
    `compose` turns its result into segments.

    Usage:
        composer = ExplanationComposer(config, Typesetter())
        segments = composer.explain(r"E = mc^2")
    """

    def __init__(
        self,
        config: TranscoderConfig,
        typesetter: Typesetter,
        service: Optional[InferenceService] = None,
    ):
        self.config = config
        self.typesetter = typesetter
        self._service = service

    @property
    def service(self) -> InferenceService:
        if self._service is None:
            self._service = InferenceService(self.config)
        return self._service

    @property
    def has_credential(self) -> bool:
        return self.service.has_credential

    def build_prompt(self, markup: str) -> str:
        return EXPLANATION_PROMPT.format(
            language=self.config.explanation_language, markup=markup
        )

    def request(self, markup: str) -> RecognitionResult:
        """
        Fetch the raw explanation.

        Raises:
            MissingCredentialError: If no API key is configured.
        """
        return self.service.generate(
            self.config.explanation_model, [text_part(self.build_prompt(markup))]
        )

    def compose(self, result: RecognitionResult) -> List[ExplanationSegment]:
        """Segment and typeset a service result."""
        if isinstance(result, RecognitionOk):
            # Keep the prose around any fenced formula
            text = remove_fence_markers(result.markup).strip()
            return render_segments(segment_explanation(text), self.typesetter)
        if isinstance(result, EmptyRecognition):
            return [PlainText(EMPTY_EXPLANATION_TEXT)]
        return [PlainText(EXPLANATION_ERROR_TEXT.format(message=result.message))]

    def explain(self, markup: str) -> List[ExplanationSegment]:
        """Request and compose in one call."""
        return self.compose(self.request(markup))
