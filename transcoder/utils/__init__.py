"""Utilities: configuration, prompts, error handling."""

from .config import TranscoderConfig, load_config
from .errors import TranscoderError

__all__ = ["TranscoderConfig", "load_config", "TranscoderError"]
