"""
Equation and explanation preview for PyQt6.

Shows typeset SVG (from the Typesetter) inside a QWebEngineView. Falls
back to a plain label showing the LaTeX source if WebEngine is not
available.
"""

import html
from typing import List, Optional

# Try to import PyQt6 WebEngine
try:
    from PyQt6.QtWebEngineWidgets import QWebEngineView

    WEBENGINE_AVAILABLE = True
except ImportError:
    WEBENGINE_AVAILABLE = False
    QWebEngineView = None

from PyQt6.QtWidgets import QWidget, QVBoxLayout, QLabel, QScrollArea, QFrame
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QFont

from ..models import ExplanationSegment
from ..output.explanation import segments_to_html, segments_to_text
from ..output.typesetter import svg_fragment


PREVIEW_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{
            font-family: 'Segoe UI', Arial, sans-serif;
            font-size: 14px;
            line-height: 1.6;
            margin: 10px;
            padding: 0;
            background: {bg_color};
            color: {text_color};
        }}
        .equation-box {{
            border: 1px solid {border_color};
            border-radius: 4px;
            padding: 15px;
            margin: 10px 0;
            background: {eq_bg};
            text-align: center;
            overflow-x: auto;
        }}
        .equation-box svg {{
            max-width: 100%;
            height: auto;
        }}
        .raw-source {{
            font-family: monospace;
            white-space: pre-wrap;
            color: {muted_color};
        }}
        .explanation {{
            padding: 5px;
        }}
        .inline-math svg {{
            vertical-align: middle;
        }}
    </style>
</head>
<body>
    {content}
</body>
</html>
"""

# Page colors
THEME = {
    "bg_color": "#ffffff",
    "text_color": "#333333",
    "muted_color": "#6c757d",
    "border_color": "#dee2e6",
    "eq_bg": "#ffffff",
}


class PreviewRenderer:
    """
    Builds preview HTML pages from typeset SVG.
    """

    def __init__(self):
        self.theme = THEME

    def render_equation(self, svg: Optional[str], source: str) -> str:
        """
        Page with the typeset equation.

        Args:
            svg: Typeset SVG document, or None if the source could not be typeset
            source: LaTeX shown verbatim when there is no SVG

        Returns:
            Complete HTML document
        """
        if svg is not None:
            inner = svg_fragment(svg)
        else:
            inner = f'<div class="raw-source">{html.escape(source)}</div>'
        content = f'<div class="equation-box">{inner}</div>'
        return PREVIEW_TEMPLATE.format(content=content, **self.theme)

    def render_explanation(self, segments: List[ExplanationSegment]) -> str:
        """Page with prose and inline math."""
        content = f'<div class="explanation">{segments_to_html(segments)}</div>'
        return PREVIEW_TEMPLATE.format(content=content, **self.theme)


class PreviewWidget(QWidget):
    """
    Widget for displaying typeset content.

    Uses QWebEngineView if available, falls back to plain text.
    """

    def __init__(self, parent=None):
        super().__init__(parent)

        self.renderer = PreviewRenderer()
        self._use_webengine = WEBENGINE_AVAILABLE

        self._init_ui()

    def _init_ui(self):
        """Initialize the UI."""
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        if self._use_webengine:
            self.web_view = QWebEngineView()
            layout.addWidget(self.web_view)
        else:
            # Fallback to scrollable label
            scroll = QScrollArea()
            scroll.setWidgetResizable(True)
            scroll.setFrameShape(QFrame.Shape.NoFrame)

            self.fallback_label = QLabel()
            self.fallback_label.setWordWrap(True)
            self.fallback_label.setTextFormat(Qt.TextFormat.PlainText)
            self.fallback_label.setFont(QFont("Monospace", 11))
            self.fallback_label.setAlignment(Qt.AlignmentFlag.AlignTop)

            scroll.setWidget(self.fallback_label)
            layout.addWidget(scroll)

    def display_equation(self, svg: Optional[str], source: str):
        """Display a typeset equation, or its source if it has no SVG."""
        if self._use_webengine:
            self.web_view.setHtml(self.renderer.render_equation(svg, source))
        else:
            self.fallback_label.setText(source)

    def display_explanation(self, segments: List[ExplanationSegment]):
        """Display an explanation with inline math."""
        if self._use_webengine:
            self.web_view.setHtml(self.renderer.render_explanation(segments))
        else:
            self.fallback_label.setText(segments_to_text(segments))

    def clear(self):
        """Clear the display."""
        if self._use_webengine:
            self.web_view.setHtml("")
        else:
            self.fallback_label.clear()

