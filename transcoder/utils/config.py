"""
Runtime configuration.

Values come from the environment; `.env.local` and `.env` in the working
directory are loaded first without overriding variables that are already set.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_RECOGNITION_MODEL = "gemini-2.0-flash"
DEFAULT_EXPLANATION_MODEL = "gemini-2.5-flash"
DEFAULT_EXPORT_SCALE = 2

API_KEY_VARS = ("GEMINI_API_KEY", "VITE_GEMINI_API_KEY")
DOTENV_FILES = (".env.local", ".env")


@dataclass(frozen=True)
class TranscoderConfig:
    """Settings shared by the service client, the GUI and the CLI."""

    api_key: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    recognition_model: str = DEFAULT_RECOGNITION_MODEL
    explanation_model: str = DEFAULT_EXPLANATION_MODEL
    explanation_language: str = "English"
    timeout: Optional[float] = None  # None: wait indefinitely
    export_scale: int = DEFAULT_EXPORT_SCALE

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key)


def _read_first_env(*names: str) -> str:
    for name in names:
        value = (os.environ.get(name) or "").strip()
        if value:
            return value
    return ""


def load_config(base_dir: Optional[Path] = None, use_dotenv: bool = True) -> TranscoderConfig:
    """
    Build a TranscoderConfig from the environment.

    Args:
        base_dir: Directory searched for dotenv files. Defaults to the CWD.
        use_dotenv: Set False to ignore dotenv files (tests).
    """
    if use_dotenv:
        base_dir = base_dir or Path.cwd()
        for name in DOTENV_FILES:
            path = base_dir / name
            if path.is_file():
                load_dotenv(path, override=False)

    timeout_raw = _read_first_env("TRANSCODER_TIMEOUT")
    scale_raw = _read_first_env("TRANSCODER_EXPORT_SCALE")

    return TranscoderConfig(
        api_key=_read_first_env(*API_KEY_VARS) or None,
        api_base=(_read_first_env("TRANSCODER_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
        recognition_model=_read_first_env("TRANSCODER_RECOGNITION_MODEL")
        or DEFAULT_RECOGNITION_MODEL,
        explanation_model=_read_first_env("TRANSCODER_EXPLANATION_MODEL")
        or DEFAULT_EXPLANATION_MODEL,
        explanation_language=_read_first_env("TRANSCODER_EXPLANATION_LANGUAGE")
        or "English",
        timeout=float(timeout_raw) if timeout_raw else None,
        # Supersampling below 2x gives blurry clipboard images
        export_scale=max(2, int(scale_raw)) if scale_raw else DEFAULT_EXPORT_SCALE,
    )
