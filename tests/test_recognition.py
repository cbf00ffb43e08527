"""
Tests for the inference service client and equation recognition.

The service is replaced with httpx.MockTransport; no test touches the network.
"""

import json

import httpx
import pytest


def make_config(api_key="test-key"):
    from transcoder.utils.config import TranscoderConfig

    return TranscoderConfig(api_key=api_key)


def candidate(text):
    """A generateContent response body with one text candidate."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def recorded():
    """Requests seen by the mock transport."""
    return []


@pytest.fixture
def make_service(recorded):
    """Build an InferenceService whose transport answers with a fixed response."""
    from transcoder.input.service import InferenceService

    def factory(status=200, body=None, raises=None, api_key="test-key"):
        def handler(request):
            recorded.append(request)
            if raises is not None:
                raise raises
            return httpx.Response(status, json=body if body is not None else {})

        return InferenceService(make_config(api_key), transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def image():
    from transcoder.models import SourceImage

    return SourceImage(data=b"\x89PNG fake", mime_type="image/png", name="eq.png")


class TestStripCodeFence:
    """Tests for markdown fence removal."""

    def test_fenced_with_language(self):
        """Test that a ```latex fence is removed."""
        from transcoder.input.recognition import strip_code_fence

        assert strip_code_fence("```latex\nE = mc^2\n```") == "E = mc^2"

    def test_fenced_without_language(self):
        """Test a bare fence."""
        from transcoder.input.recognition import strip_code_fence

        assert strip_code_fence("```\na^2 + b^2 = c^2\n```") == "a^2 + b^2 = c^2"

    def test_fence_on_one_line(self):
        """Test that content right after the fence is not taken for a language tag."""
        from transcoder.input.recognition import strip_code_fence

        assert strip_code_fence("```E=mc^2```") == "E=mc^2"

    def test_fence_inside_prose_is_left_alone(self):
        """Test that only a fence around the whole answer is stripped."""
        from transcoder.input.recognition import strip_code_fence

        text = "Here is the LaTeX:\n```latex\nx = 1\n```\nHope this helps!"
        assert strip_code_fence(text) == text

    def test_surrounding_whitespace_ignored(self):
        """Test that blank lines around the fence do not stop stripping."""
        from transcoder.input.recognition import strip_code_fence

        assert strip_code_fence("\n  ```latex\nx = 1\n```\n\n") == "x = 1"

    def test_unfenced_text_unchanged(self):
        """Test that text without a fence comes back untouched."""
        from transcoder.input.recognition import strip_code_fence

        text = "  \\int_0^1 x\\,dx  \n"
        assert strip_code_fence(text) == text

    def test_multiline_content_preserved(self):
        """Test that inner newlines survive."""
        from transcoder.input.recognition import strip_code_fence

        inner = "\\begin{align*}\na &= b \\\\\nc &= d\n\\end{align*}"
        assert strip_code_fence(f"```latex\n{inner}\n```") == inner

    def test_idempotent(self):
        """Test that stripping twice equals stripping once."""
        from transcoder.input.recognition import strip_code_fence

        for text in [
            "```latex\nx\n```",
            "x",
            "```\n```",
            "a ``` b",
            "```\n```x```\n```",
            "```\nfirst\n```\n```\nsecond\n```",
        ]:
            once = strip_code_fence(text)
            assert strip_code_fence(once) == once


class TestRemoveFenceMarkers:
    """Tests for fence-marker removal in prose answers."""

    def test_prose_around_fence_kept(self):
        """Test that sentences before and after a fenced formula survive."""
        from transcoder.input.recognition import remove_fence_markers

        text = "The relation.\n```latex\nE=mc^2\n```\nHere $E$ is energy."

        assert remove_fence_markers(text) == "The relation.\nE=mc^2\nHere $E$ is energy."

    def test_text_without_markers_unchanged(self):
        """Test that plain prose is untouched."""
        from transcoder.input.recognition import remove_fence_markers

        assert remove_fence_markers("Mass $m$ times $c^2$.") == "Mass $m$ times $c^2$."


class TestParseResponse:
    """Tests for response validation."""

    def test_first_candidate_text(self):
        """Test that the first text part of the first candidate is used."""
        from transcoder.input.service import parse_response
        from transcoder.models import RecognitionOk

        body = {
            "candidates": [
                {"content": {"parts": [{"text": "x^2"}, {"text": "ignored"}]}},
                {"content": {"parts": [{"text": "also ignored"}]}},
            ]
        }
        assert parse_response(body) == RecognitionOk("x^2")

    def test_no_candidates(self):
        """Test that a body without candidates is an empty recognition."""
        from transcoder.input.service import parse_response
        from transcoder.models import EmptyRecognition

        assert parse_response({}) == EmptyRecognition()
        assert parse_response({"candidates": []}) == EmptyRecognition()

    def test_candidate_without_text(self):
        """Test that a candidate with no text part is an empty recognition."""
        from transcoder.input.service import parse_response
        from transcoder.models import EmptyRecognition

        assert parse_response({"candidates": [{"finishReason": "SAFETY"}]}) == EmptyRecognition()
        assert parse_response(candidate("")) == EmptyRecognition()

    def test_error_body(self):
        """Test that an error object becomes a ServiceError."""
        from transcoder.input.service import parse_response
        from transcoder.models import ServiceError

        result = parse_response({"error": {"code": 400, "message": "API key not valid"}})

        assert isinstance(result, ServiceError)
        assert result.kind == "TransportError"
        assert result.message == "API key not valid"

    def test_not_a_dict(self):
        """Test that a non-object body is reported, not raised."""
        from transcoder.input.service import parse_response
        from transcoder.models import ServiceError

        assert isinstance(parse_response(None), ServiceError)
        assert isinstance(parse_response(["x"]), ServiceError)


class TestInferenceService:
    """Tests for the HTTP round trip."""

    def test_request_shape(self, make_service, recorded):
        """Test endpoint, auth header and request body."""
        from transcoder.input.service import text_part, image_part

        service = make_service(body=candidate("ok"))
        service.generate("gemini-2.0-flash", [text_part("hello"), image_part("image/png", "QUJD")])

        assert len(recorded) == 1
        request = recorded[0]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "test-key"

        body = json.loads(request.content)
        parts = body["contents"][0]["parts"]
        assert parts[0] == {"text": "hello"}
        assert parts[1] == {"inlineData": {"mimeType": "image/png", "data": "QUJD"}}

    def test_missing_credential_raises_before_network(self, make_service, recorded):
        """Test that no request is sent without an API key."""
        from transcoder.input.service import text_part
        from transcoder.utils.errors import MissingCredentialError

        service = make_service(api_key=None)

        with pytest.raises(MissingCredentialError):
            service.generate("gemini-2.0-flash", [text_part("hello")])
        assert recorded == []

    def test_http_error_with_error_body(self, make_service):
        """Test that the service's own error message is surfaced."""
        from transcoder.input.service import text_part
        from transcoder.models import ServiceError

        service = make_service(status=403, body={"error": {"message": "Permission denied"}})
        result = service.generate("m", [text_part("x")])

        assert isinstance(result, ServiceError)
        assert result.message == "Permission denied"

    def test_http_error_without_error_body(self, make_service):
        """Test that a bare HTTP failure still carries the status code."""
        from transcoder.input.service import text_part
        from transcoder.models import ServiceError

        service = make_service(status=500, body={"candidates": []})
        result = service.generate("m", [text_part("x")])

        assert isinstance(result, ServiceError)
        assert "500" in result.message

    def test_connection_failure(self, make_service):
        """Test that transport exceptions become ServiceError values."""
        from transcoder.input.service import text_part
        from transcoder.models import ServiceError

        service = make_service(raises=httpx.ConnectError("connection refused"))
        result = service.generate("m", [text_part("x")])

        assert isinstance(result, ServiceError)
        assert result.kind == "TransportError"
        assert "refused" in result.message

    def test_close_is_idempotent(self, make_service):
        """Test that closing twice is harmless."""
        service = make_service(body=candidate("x"))
        service.close()
        service.close()


class TestRecognitionClient:
    """Tests for image-to-LaTeX recognition."""

    def test_sends_prompt_and_image(self, make_service, recorded, image):
        """Test that the request carries the prompt and the base64 image."""
        from transcoder.input.recognition import RecognitionClient
        from transcoder.utils.constants import RECOGNITION_PROMPT

        client = RecognitionClient(make_config(), service=make_service(body=candidate("x")))
        client.recognize(image)

        parts = json.loads(recorded[0].content)["contents"][0]["parts"]
        assert parts[0]["text"] == RECOGNITION_PROMPT
        assert parts[1]["inlineData"]["mimeType"] == "image/png"
        assert parts[1]["inlineData"]["data"] == image.base64()
        assert "gemini-2.0-flash" in recorded[0].url.path

    def test_fenced_vector_equation(self, make_service, image):
        """Test that a fenced answer is returned exactly, without the fence."""
        from transcoder.input.recognition import RecognitionClient
        from transcoder.models import RecognitionOk

        markup = r"\mathbf{v}=\mathbf{u}+\mathbf{w}"
        service = make_service(body=candidate(f"```latex\n{markup}\n```"))
        result = RecognitionClient(make_config(), service=service).recognize(image)

        assert result == RecognitionOk(markup)

    def test_empty_answer(self, make_service, image):
        """Test that no candidates means an empty recognition."""
        from transcoder.input.recognition import RecognitionClient
        from transcoder.models import EmptyRecognition

        service = make_service(body={"candidates": []})
        result = RecognitionClient(make_config(), service=service).recognize(image)

        assert result == EmptyRecognition()

    def test_records_elapsed_time(self, make_service, image):
        """Test that timing is recorded for the status bar."""
        from transcoder.input.recognition import RecognitionClient

        client = RecognitionClient(make_config(), service=make_service(body=candidate("x")))
        client.recognize(image)

        assert client.last_elapsed_ms >= 0

    def test_has_credential(self):
        """Test that credential presence comes from the config."""
        from transcoder.input.recognition import RecognitionClient

        assert RecognitionClient(make_config("k")).has_credential is True
        assert RecognitionClient(make_config(None)).has_credential is False

