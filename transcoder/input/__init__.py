"""Input layer: image acquisition, screen capture and recognition."""

from .acquisition import acquire_file, acquire_first_image
from .recognition import RecognitionClient, strip_code_fence
from .screenshot import ScreenshotCapture
from .service import InferenceService

__all__ = [
    "acquire_file",
    "acquire_first_image",
    "RecognitionClient",
    "strip_code_fence",
    "ScreenshotCapture",
    "InferenceService",
]
