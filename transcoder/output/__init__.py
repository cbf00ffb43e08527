"""Output layer: typesetting, explanations, and export."""

from .typesetter import Typesetter
from .explanation import ExplanationComposer, segment_explanation
from .export import ExportEngine

__all__ = ["Typesetter", "ExplanationComposer", "segment_explanation", "ExportEngine"]
