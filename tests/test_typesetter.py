"""
Tests for LaTeX typesetting.
"""

import pytest


@pytest.fixture(scope="module")
def typesetter():
    from transcoder.output.typesetter import Typesetter

    return Typesetter()


class TestSourceHelpers:
    """Tests for source normalization helpers."""

    def test_strip_display_delimiters(self):
        """Test that wrapping delimiters are removed."""
        from transcoder.output.typesetter import strip_math_delimiters

        assert strip_math_delimiters("$$ x $$") == "x"
        assert strip_math_delimiters(r"\[x\]") == "x"
        assert strip_math_delimiters("$x$") == "x"
        assert strip_math_delimiters("x") == "x"

    def test_split_align_environment(self):
        """Test that align* rows become separate lines."""
        from transcoder.output.typesetter import split_lines

        source = "\\begin{align*}\na &= b + c \\\\\nd &= e \\nonumber\n\\end{align*}"

        assert split_lines(source) == ["a = b + c", "d = e"]

    def test_single_line(self):
        """Test that ordinary markup is one line."""
        from transcoder.output.typesetter import split_lines

        assert split_lines("  E = mc^2 ") == ["E = mc^2"]

    def test_expand_bm_macro(self):
        """Test the \\bm macro."""
        from transcoder.output.typesetter import expand_macros, DEFAULT_MACROS

        assert expand_macros(r"\bm{v} + \bmod", DEFAULT_MACROS) == r"\boldsymbol{v} + \bmod"

    def test_balance_braces(self):
        """Test that missing braces are added at the right end."""
        from transcoder.output.typesetter import balance_braces

        assert balance_braces(r"\frac{a}{b") == r"\frac{a}{b}"
        assert balance_braces(r"a}") == r"{a}"
        assert balance_braces(r"\{x") == r"\{x"

    def test_upright_command(self):
        """Test that an unknown command is shown as upright text."""
        from transcoder.output.typesetter import upright_command

        assert upright_command(r"\foo + \foobar", r"\foo") == r"\mathrm{foo} + \foobar"


class TestPrepareLines:
    """Tests for validation and repair."""

    def test_valid_source(self, typesetter):
        """Test that valid markup passes unchanged."""
        assert typesetter.prepare_lines(r"\frac{a}{b} = c") == [r"\frac{a}{b} = c"]

    def test_blank_source(self, typesetter):
        """Test that blank markup cannot be typeset."""
        assert typesetter.prepare_lines("") is None
        assert typesetter.prepare_lines("   ") is None

    def test_repairs_missing_brace(self, typesetter):
        """Test that a missing closing brace is repaired in tolerant mode."""
        assert typesetter.prepare_lines(r"\frac{a}{b") == [r"\frac{a}{b}"]

    def test_strict_mode_rejects(self, typesetter):
        """Test that strict mode does not repair."""
        assert typesetter.prepare_lines(r"\frac{a}{b", error_tolerant=False) is None

    def test_unknown_command_shown_upright(self, typesetter):
        """Test that an unknown command does not sink the whole equation."""
        lines = typesetter.prepare_lines(r"\qwertyuiop + 1")

        assert lines == [r"\mathrm{qwertyuiop} + 1"]

    def test_unrepairable(self, typesetter):
        """Test that hopeless markup gives None."""
        assert typesetter.prepare_lines(r"x^2^3") is None

    def test_bold_vector_macro(self, typesetter):
        """Test that \\bm renders one way or another."""
        assert typesetter.prepare_lines(r"\bm{v} = \mathbf{u}") is not None


class TestRender:
    """Tests for SVG and PNG rendering."""

    def test_render_svg(self, typesetter):
        """Test that a simple equation renders to SVG."""
        svg = typesetter.render(r"E = mc^2")

        assert svg is not None
        assert "<svg" in svg

    def test_render_is_deterministic(self, typesetter):
        """Test that rendering twice gives identical output."""
        assert typesetter.render(r"\sqrt{x}") == typesetter.render(r"\sqrt{x}")

    def test_render_failure_returns_none(self, typesetter):
        """Test that malformed markup never raises."""
        assert typesetter.render(r"x^2^3") is None
        assert typesetter.render(r"\frac{a}{b", error_tolerant=False) is None

    def test_render_multiline(self, typesetter):
        """Test that multi-line environments render."""
        svg = typesetter.render("\\begin{align*}a &= b \\\\ c &= d\\end{align*}")

        assert svg is not None

    def test_build_figure_stacks_lines(self, typesetter):
        """Test that each line is its own text artist, top to bottom."""
        fig = typesetter.build_figure(["a", "b", "c"])

        ys = [t.get_position()[1] for t in fig.texts]
        assert len(ys) == 3
        assert ys == sorted(ys, reverse=True)

    def test_svg_fragment(self):
        """Test that the XML prolog is dropped for inlining."""
        from transcoder.output.typesetter import svg_fragment

        assert svg_fragment('<?xml version="1.0"?>\n<!DOCTYPE svg>\n<svg></svg>') == "<svg></svg>"
