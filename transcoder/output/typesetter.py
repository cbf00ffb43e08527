"""
LaTeX typesetting via matplotlib's mathtext engine.

The Typesetter never lets a malformed expression raise: callers get SVG
markup or None and fall back to showing the raw source.
"""

import io
import logging
import re
from typing import Dict, List, Optional

import matplotlib
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from matplotlib.mathtext import MathTextParser

from ..utils.errors import MalformedMarkupError, UnbalancedBracesError

logger = logging.getLogger(__name__)


DISPLAY_FONTSIZE = 20
INLINE_FONTSIZE = 14
LINE_GAP_PT = 6  # Vertical space between stacked lines

# Style rules of the engine; also embedded in exported SVG documents
ENGINE_RC = {
    "mathtext.fontset": "cm",
    "text.color": "black",
    "svg.fonttype": "path",
    "svg.hashsalt": "equation-transcoder",
}

DEFAULT_MACROS = {r"\bm": r"\boldsymbol"}

# Commands mathtext lacks, mapped to the closest thing it has
COMMAND_SUBSTITUTIONS = {
    r"\boldsymbol": r"\mathbf",
    r"\textbf": r"\mathbf",
    r"\textit": r"\mathit",
    r"\text": r"\mathrm",
    r"\operatorname": r"\mathrm",
    r"\dfrac": r"\frac",
    r"\tfrac": r"\frac",
    r"\displaystyle": "",
    r"\textstyle": "",
    r"\limits": "",
    r"\nolimits": "",
}

ENVIRONMENT_RE = re.compile(
    r"\\begin\{(align|aligned|alignat|gather|gathered|equation|split|multline|eqnarray)\*?\}"
    r"(?:\{\d+\})?(.*?)\\end\{\1\*?\}",
    re.DOTALL,
)
LINE_BREAK_RE = re.compile(r"\\\\(?:\[[^\]]*\])?")
NUMBERING_RE = re.compile(r"\\(?:nonumber|notag)(?![A-Za-z])|\\(?:label|tag)\{[^{}]*\}")
UNKNOWN_SYMBOL_RE = re.compile(r"Unknown symbol: (\\[A-Za-z]+)")

MAX_REPAIRS = 8


def _command_re(command: str) -> "re.Pattern":
    return re.compile(re.escape(command) + r"(?![A-Za-z])")


def expand_macros(source: str, macros: Dict[str, str]) -> str:
    """Apply a macro table (\\name -> replacement)."""
    for name, replacement in macros.items():
        source = _command_re(name).sub(lambda _m, r=replacement: r, source)
    return source


def strip_math_delimiters(source: str) -> str:
    """Drop $$..$$, $..$, \\[..\\] or \\(..\\) wrapped around the whole source."""
    source = source.strip()
    for opener, closer in (("$$", "$$"), ("\\[", "\\]"), ("\\(", "\\)"), ("$", "$")):
        if (
            len(source) >= len(opener) + len(closer)
            and source.startswith(opener)
            and source.endswith(closer)
        ):
            return source[len(opener) : len(source) - len(closer)].strip()
    return source


def split_lines(source: str) -> List[str]:
    """
    Unwrap multi-line environments into one mathtext line per row.

    Alignment markers are dropped; mathtext has no tabular layout.
    """
    source = strip_math_delimiters(source)
    source = ENVIRONMENT_RE.sub(lambda m: m.group(2), source)
    source = NUMBERING_RE.sub("", source)
    lines = []
    for row in LINE_BREAK_RE.split(source):
        row = row.replace("&", " ").strip()
        if row:
            lines.append(" ".join(row.split()))
    return lines


def substitute_commands(line: str) -> str:
    for command, replacement in COMMAND_SUBSTITUTIONS.items():
        line = _command_re(command).sub(lambda _m, r=replacement: r, line)
    return line


def balance_braces(line: str) -> str:
    """Add the missing braces at whichever end they are missing."""
    unescaped = re.sub(r"\\[{}]", "", line)
    depth = 0
    missing_open = 0
    for char in unescaped:
        if char == "{":
            depth += 1
        elif char == "}":
            if depth == 0:
                missing_open += 1
            else:
                depth -= 1
    return "{" * missing_open + line + "}" * depth


def upright_command(line: str, command: str) -> str:
    """Show an unknown control sequence as upright text instead."""
    name = command.lstrip("\\")
    return _command_re(command).sub(lambda _m: r"\mathrm{" + name + "}", line)


class Typesetter:
    """
    Render LaTeX with matplotlib mathtext.

    Supports a small macro table, multi-line environments (rendered as
    stacked lines) and, in error-tolerant mode, a handful of repairs for
    recoverable problems.

    Usage:
        typesetter = Typesetter()
        svg = typesetter.render(r"E = mc^2")  # None if it cannot be rendered
    """

    def __init__(self, macros: Optional[Dict[str, str]] = None):
        self.macros = dict(DEFAULT_MACROS if macros is None else macros)
        self._parser = MathTextParser("path")

    # === Validation ===

    def _check(self, line: str) -> Optional[str]:
        """Return the engine's error message, or None if the line parses."""
        try:
            self._parser.parse(f"${line}$")
        except ValueError as e:
            return str(e)
        return None

    def _repair(self, line: str, error: str) -> Optional[str]:
        """Try progressively stronger repairs. Returns None if all fail."""
        for fix in (substitute_commands, balance_braces):
            line = fix(line)
            error = self._check(line)
            if error is None:
                return line

        for _ in range(MAX_REPAIRS):
            match = UNKNOWN_SYMBOL_RE.search(error)
            if match is None:
                break
            line = upright_command(line, match.group(1))
            error = self._check(line)
            if error is None:
                return line

        return None

    def prepare_lines(self, source: str, error_tolerant: bool = True) -> Optional[List[str]]:
        """
        Turn LaTeX source into validated mathtext lines.

        Returns None when the source is blank or cannot be typeset.
        """
        lines = split_lines(expand_macros(source, self.macros))
        if not lines:
            return None

        prepared = []
        for line in lines:
            error = self._check(line)
            if error is not None:
                fixed = self._repair(line, error) if error_tolerant else None
                if fixed is None:
                    logger.info(
                        "Cannot typeset %r: %s", line, error.strip().splitlines()[-1]
                    )
                    return None
                logger.debug("Repaired %r -> %r", line, fixed)
                line = fixed
            prepared.append(line)
        return prepared

    def diagnose(self, source: str) -> Optional[MalformedMarkupError]:
        """
        Explain why source cannot be typeset strictly.

        Returns:
            None if every line parses as-is, otherwise an error describing
            the first problem (not raised).
        """
        unescaped = re.sub(r"\\[{}]", "", source)
        open_count, close_count = unescaped.count("{"), unescaped.count("}")
        if open_count != close_count:
            return UnbalancedBracesError(source, open_count, close_count)

        for line in split_lines(expand_macros(source, self.macros)):
            error = self._check(line)
            if error is not None:
                return MalformedMarkupError(
                    "The equation cannot be typeset.",
                    latex=source,
                    technical_details=error.strip(),
                )
        return None

    # === Layout ===

    def build_figure(
        self, lines: List[str], display_mode: bool = True, dpi: float = 72
    ) -> Figure:
        """
        Lay out prepared lines in an off-screen figure.

        Lines are centered and stacked top to bottom with no margins around
        them; each line is its own text artist.
        """
        fontsize = DISPLAY_FONTSIZE if display_mode else INLINE_FONTSIZE
        with matplotlib.rc_context(ENGINE_RC):
            fig = Figure(figsize=(1, 1), dpi=dpi)
            FigureCanvasAgg(fig)
            fig.patch.set_alpha(0)
            texts = [
                fig.text(0.5, 1.0, f"${line}$", fontsize=fontsize, ha="center", va="top")
                for line in lines
            ]

            # Measure natural sizes, then size the canvas to fit them exactly
            renderer = fig.canvas.get_renderer()
            extents = [t.get_window_extent(renderer) for t in texts]
            gap = LINE_GAP_PT * dpi / 72
            width = max(e.width for e in extents)
            height = sum(e.height for e in extents) + gap * (len(extents) - 1)
            fig.set_size_inches(max(width, 1) / dpi, max(height, 1) / dpi)

            top = fig.bbox.height
            for text, extent in zip(texts, extents):
                text.set_y(top / fig.bbox.height)
                top -= extent.height + gap
        return fig

    # === Rendering ===

    def render(
        self, source: str, display_mode: bool = True, error_tolerant: bool = True
    ) -> Optional[str]:
        """
        Render LaTeX to an SVG document string.

        Args:
            source: LaTeX without math delimiters
            display_mode: Display (larger) or inline size
            error_tolerant: Attempt repairs before giving up

        Returns:
            SVG markup, or None if the source cannot be typeset.
        """
        lines = self.prepare_lines(source, error_tolerant)
        if lines is None:
            return None

        try:
            fig = self.build_figure(lines, display_mode)
            buf = io.StringIO()
            with matplotlib.rc_context(ENGINE_RC):
                fig.savefig(
                    buf,
                    format="svg",
                    transparent=True,
                    bbox_inches="tight",
                    pad_inches=0.02,
                    metadata={"Date": None},
                )
        except (ValueError, RuntimeError) as e:
            logger.warning("Rendering %r failed: %s", source, e)
            return None
        return buf.getvalue()

def svg_fragment(svg: str) -> str:
    """Strip the XML prolog and doctype so an SVG can be inlined in HTML."""
    start = svg.find("<svg")
    return svg[start:].strip() if start >= 0 else svg
