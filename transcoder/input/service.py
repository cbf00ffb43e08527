"""
Client for the multimodal inference service (Gemini generateContent REST API).

Responses are validated here, at the boundary, and turned into explicit
result values before any caller looks at them.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..models import RecognitionOk, EmptyRecognition, ServiceError, RecognitionResult
from ..utils.config import TranscoderConfig
from ..utils.errors import MissingCredentialError

logger = logging.getLogger(__name__)

TRANSPORT_ERROR = "TransportError"


def text_part(text: str) -> Dict[str, Any]:
    """Build a text request part."""
    return {"text": text}


def image_part(mime_type: str, base64_data: str) -> Dict[str, Any]:
    """Build an inline image request part."""
    return {"inlineData": {"mimeType": mime_type, "data": base64_data}}


def parse_response(payload: Any) -> RecognitionResult:
    """
    Validate a generateContent response body.

    Returns the first candidate's first text part (unsanitized), an
    EmptyRecognition when there is no usable candidate, or a ServiceError
    when the body reports one.
    """
    if not isinstance(payload, dict):
        return ServiceError(TRANSPORT_ERROR, "Malformed response from the service")

    error = payload.get("error")
    if error is not None:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return ServiceError(TRANSPORT_ERROR, message or "Unknown service error")

    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return EmptyRecognition()

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return EmptyRecognition()

    text = parts[0].get("text")
    if not isinstance(text, str) or not text:
        return EmptyRecognition()

    return RecognitionOk(text)


class InferenceService:
    """
    Thin wrapper around the generateContent endpoint.

    The HTTP client is created on first use. Pass `transport` to route
    requests elsewhere (httpx.MockTransport in tests).

    Usage:
        service = InferenceService(config)
        result = service.generate("gemini-2.0-flash", [text_part("hi")])
    """

    def __init__(
        self,
        config: TranscoderConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def has_credential(self) -> bool:
        return self.config.has_credential

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.api_base,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport,
            )
        return self._client

    def generate(self, model: str, parts: List[Dict[str, Any]]) -> RecognitionResult:
        """
        Send one request and return the validated result.

        Raises:
            MissingCredentialError: If no API key is configured. Checked
                before any network activity.
        """
        if not self.has_credential:
            raise MissingCredentialError()

        payload = {"contents": [{"parts": parts}]}
        logger.debug("POST models/%s:generateContent (%d parts)", model, len(parts))

        try:
            response = self._get_client().post(
                f"/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.config.api_key},
            )
        except httpx.HTTPError as e:
            logger.warning("Request to %s failed: %s", model, e)
            return ServiceError(TRANSPORT_ERROR, str(e) or type(e).__name__)

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            result = parse_response(body)
            if isinstance(result, ServiceError):
                message = result.message
            else:
                message = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning("Service returned HTTP %s: %s", response.status_code, message)
            return ServiceError(TRANSPORT_ERROR, message)

        return parse_response(body)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None
