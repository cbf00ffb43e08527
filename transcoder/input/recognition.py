"""
Equation recognition through the inference service.

Provides a clean interface for image-to-LaTeX conversion: prompt
construction, the service round trip and output sanitization.
"""

import re
import time
from typing import Optional

from ..models import SourceImage, RecognitionOk, RecognitionResult
from ..utils.config import TranscoderConfig
from ..utils.constants import RECOGNITION_PROMPT
from .service import InferenceService, text_part, image_part


# A ```lang ... ``` block wrapping the whole (trimmed) answer
CODE_FENCE_RE = re.compile(
    r"\A\s*```(?:[A-Za-z0-9_+-]*[ \t]*\r?\n)?(.*?)\r?\n?```\s*\Z", re.DOTALL
)

# Opening and closing fence lines anywhere in the text
FENCE_MARKER_RE = re.compile(r"```[A-Za-z]*\n?")


def strip_code_fence(text: str) -> str:
    """
    Remove a markdown code-fence wrapper from recognition output.

    Only a fence around the whole answer counts; text with prose outside
    the fence, or with no fence at all, is returned unchanged. The inner
    content is kept byte-for-byte. Nested wrappers are peeled until none
    is left, so applying this twice is the same as once.

        >>> strip_code_fence("```latex\\nE=mc^2\\n```")
        'E=mc^2'
    """
    while True:
        match = CODE_FENCE_RE.match(text)
        if match is None:
            return text
        text = match.group(1)


def remove_fence_markers(text: str) -> str:
    """
    Drop every ``` marker (and its language tag) but keep all other text.

    Used for prose answers, where a fenced formula sits between sentences.
    """
    return FENCE_MARKER_RE.sub("", text)


class RecognitionClient:
    """
    Image-to-LaTeX via a multimodal model.

    The service is created lazily so constructing the client is free.

    Usage:
        client = RecognitionClient(config)
        result = client.recognize(image)
        if isinstance(result, RecognitionOk):
            print(result.markup)
    """

    def __init__(
        self,
        config: TranscoderConfig,
        service: Optional[InferenceService] = None,
    ):
        self.config = config
        self._service = service
        self.last_elapsed_ms = 0

    @property
    def service(self) -> InferenceService:
        if self._service is None:
            self._service = InferenceService(self.config)
        return self._service

    @property
    def has_credential(self) -> bool:
        return self.service.has_credential

    def recognize(self, image: SourceImage) -> RecognitionResult:
        """
        Convert an image to LaTeX.

        Returns:
            RecognitionOk with fence-stripped markup, EmptyRecognition, or
            ServiceError. Transport problems never raise.

        Raises:
            MissingCredentialError: If no API key is configured.
        """
        start_time = time.perf_counter()

        result = self.service.generate(
            self.config.recognition_model,
            [
                text_part(RECOGNITION_PROMPT),
                image_part(image.mime_type, image.base64()),
            ],
        )

        self.last_elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        if isinstance(result, RecognitionOk):
            return RecognitionOk(strip_code_fence(result.markup))
        return result

