"""
Tests for explanation segmentation and composition.
"""

import pytest


@pytest.fixture(scope="module")
def typesetter():
    from transcoder.output.typesetter import Typesetter

    return Typesetter()


class FakeService:
    """Stands in for InferenceService; answers every request the same way."""

    def __init__(self, result, has_credential=True):
        self.result = result
        self.has_credential = has_credential
        self.requests = []

    def generate(self, model, parts):
        self.requests.append((model, parts))
        return self.result


class TestSegmentExplanation:
    """Tests for splitting prose and inline math."""

    def test_alternating_segments(self):
        """Test the plain/math/plain structure."""
        from transcoder.output.explanation import segment_explanation
        from transcoder.models import PlainText, MathSpan

        segments = segment_explanation("Energy $E$ equals $mc^2$.")

        assert segments == [
            PlainText("Energy "),
            MathSpan("$E$"),
            PlainText(" equals "),
            MathSpan("$mc^2$"),
            PlainText("."),
        ]

    def test_empty_plain_segments_kept(self):
        """Test that math at the edges still gets empty plain segments around it."""
        from transcoder.output.explanation import segment_explanation
        from transcoder.models import PlainText, MathSpan

        segments = segment_explanation("$a$$b$")

        assert segments == [
            PlainText(""),
            MathSpan("$a$"),
            PlainText(""),
            MathSpan("$b$"),
            PlainText(""),
        ]

    def test_no_math(self):
        """Test that prose without dollars is a single segment."""
        from transcoder.output.explanation import segment_explanation
        from transcoder.models import PlainText

        assert segment_explanation("Just words.") == [PlainText("Just words.")]

    def test_unterminated_dollar_stays_plain(self):
        """Test that a lone $ is treated as text."""
        from transcoder.output.explanation import segment_explanation
        from transcoder.models import PlainText, MathSpan

        segments = segment_explanation("Cost is $5 and $x$ is $")

        assert segments == [
            PlainText("Cost is "),
            MathSpan("$5 and $"),
            PlainText("x"),
            MathSpan("$ is $"),
            PlainText(""),
        ]

        segments = segment_explanation("Only one $ here")
        assert segments == [PlainText("Only one $ here")]

    def test_math_may_span_lines(self):
        """Test that inline math can contain a newline."""
        from transcoder.output.explanation import segment_explanation
        from transcoder.models import MathSpan

        segments = segment_explanation("see $a +\nb$ here")

        assert segments[1] == MathSpan("$a +\nb$")

    @pytest.mark.parametrize(
        "text",
        ["", "$", "$$", "a $b$ c", "$x$ and $y", "no math", "$\\frac{a}{b}$!\n$c$"],
    )
    def test_concatenation_restores_text(self, text):
        """Test that joining all segment sources gives back the input."""
        from transcoder.output.explanation import segment_explanation, segments_to_text

        assert segments_to_text(segment_explanation(text)) == text

    def test_math_body(self):
        """Test that the body drops the delimiters."""
        from transcoder.models import MathSpan

        assert MathSpan("$x^2$").body == "x^2"


class TestRenderSegments:
    """Tests for inline typesetting of math segments."""

    def test_math_rendered(self, typesetter):
        """Test that valid math gets SVG."""
        from transcoder.output.explanation import segment_explanation, render_segments

        segments = render_segments(segment_explanation("Here $x^2$ grows."), typesetter)

        assert segments[1].rendered is not None
        assert "<svg" in segments[1].rendered
        assert not segments[1].degraded

    def test_bad_span_degrades_alone(self, typesetter):
        """Test that one malformed span does not affect its neighbours."""
        from transcoder.output.explanation import segment_explanation, render_segments
        from transcoder.models import PlainText, MathSpan

        segments = render_segments(
            segment_explanation("Good $a+b$, bad $x^2^3$, good $c$."), typesetter
        )
        math = [s for s in segments if isinstance(s, MathSpan)]

        assert [s.degraded for s in math] == [False, True, False]
        assert math[1].source == "$x^2^3$"
        assert all(isinstance(s, PlainText) for s in segments[::2])

    def test_html_shows_degraded_source(self, typesetter):
        """Test that degraded math appears as its literal text in HTML."""
        from transcoder.output.explanation import (
            segment_explanation,
            render_segments,
            segments_to_html,
        )

        html = segments_to_html(
            render_segments(segment_explanation("x < y and $x^2^3$"), typesetter)
        )

        assert "x &lt; y" in html
        assert "$x^2^3$" in html
        assert "<svg" not in html

    def test_html_inlines_svg(self, typesetter):
        """Test that rendered math is inlined without the XML prolog."""
        from transcoder.output.explanation import (
            segment_explanation,
            render_segments,
            segments_to_html,
        )

        html = segments_to_html(render_segments(segment_explanation("$x$"), typesetter))

        assert '<span class="inline-math"><svg' in html
        assert "<?xml" not in html


class TestExplanationComposer:
    """Tests for the explanation round trip."""

    def test_prompt_contains_language_and_markup(self, typesetter):
        """Test prompt construction."""
        from transcoder.output.explanation import ExplanationComposer
        from transcoder.utils.config import TranscoderConfig

        config = TranscoderConfig(api_key="k", explanation_language="Japanese")
        prompt = ExplanationComposer(config, typesetter).build_prompt(r"E = mc^2")

        assert "Japanese" in prompt
        assert prompt.endswith(r"E = mc^2")

    def test_request_uses_explanation_model(self, typesetter):
        """Test that the explanation model is used for the request."""
        from transcoder.output.explanation import ExplanationComposer
        from transcoder.utils.config import TranscoderConfig
        from transcoder.models import RecognitionOk

        service = FakeService(RecognitionOk("ok"))
        config = TranscoderConfig(api_key="k", explanation_model="explainer")
        ExplanationComposer(config, typesetter, service=service).request("x")

        model, parts = service.requests[0]
        assert model == "explainer"
        assert len(parts) == 1 and "text" in parts[0]

    def test_explain_segments_answer(self, typesetter):
        """Test that fence markers are dropped and the answer segmented."""
        from transcoder.output.explanation import ExplanationComposer, segments_to_text
        from transcoder.utils.config import TranscoderConfig
        from transcoder.models import RecognitionOk

        service = FakeService(RecognitionOk("```\nThe mass $m$ times $c^2$.\n```"))
        composer = ExplanationComposer(TranscoderConfig(api_key="k"), typesetter, service=service)
        segments = composer.explain(r"E = mc^2")

        assert segments_to_text(segments) == "The mass $m$ times $c^2$."
        assert len(segments) == 5

    def test_empty_answer(self, typesetter):
        """Test the empty placeholder."""
        from transcoder.output.explanation import ExplanationComposer
        from transcoder.utils.config import TranscoderConfig
        from transcoder.utils.constants import EMPTY_EXPLANATION_TEXT
        from transcoder.models import EmptyRecognition, PlainText

        composer = ExplanationComposer(TranscoderConfig(api_key="k"), typesetter)

        assert composer.compose(EmptyRecognition()) == [PlainText(EMPTY_EXPLANATION_TEXT)]

    def test_error_answer(self, typesetter):
        """Test that a service error is shown as text."""
        from transcoder.output.explanation import ExplanationComposer, segments_to_text
        from transcoder.utils.config import TranscoderConfig
        from transcoder.models import ServiceError

        composer = ExplanationComposer(TranscoderConfig(api_key="k"), typesetter)
        segments = composer.compose(ServiceError("TransportError", "quota exceeded"))

        assert "quota exceeded" in segments_to_text(segments)

    def test_prose_around_fenced_formula_kept(self, typesetter):
        """Test that a fenced formula inside the answer does not swallow the prose."""
        from transcoder.output.explanation import ExplanationComposer, segments_to_text
        from transcoder.utils.config import TranscoderConfig
        from transcoder.models import RecognitionOk

        composer = ExplanationComposer(TranscoderConfig(api_key="k"), typesetter)
        segments = composer.compose(
            RecognitionOk(
                "This is the mass-energy relation.\n```latex\nE=mc^2\n```\n"
                "Here $E$ is energy and $m$ is mass. It links the two."
            )
        )
        text = segments_to_text(segments)

        assert "mass-energy relation" in text
        assert "E=mc^2" in text
        assert "It links the two." in text
        assert "```" not in text
