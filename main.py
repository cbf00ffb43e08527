#!/usr/bin/env python3
"""
Equation Transcoder - Turn pictures of equations into LaTeX.

Entry point for the application with CLI support.

Usage:
    equation-transcoder                          # Launch GUI
    equation-transcoder photo.png                # Recognize and print LaTeX
    equation-transcoder photo.png --explain      # ...and explain it
    equation-transcoder --from-clipboard         # Recognize the clipboard image
    equation-transcoder photo.png --export-svg eq.svg
"""

import os
import sys
import json
import logging
import argparse

from transcoder.models import EquationSession, ExportFormat, ExportMode


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="equation-transcoder",
        description="Recognize equations in images, explain them and export them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  equation-transcoder                               Launch the GUI
  equation-transcoder scan.png                      Print the recognized LaTeX
  equation-transcoder scan.png --explain            Also explain the equation
  equation-transcoder scan.png --copy-image         Copy the typeset equation as PNG
  equation-transcoder --latex "E = mc^2" --export-svg formula.svg
  equation-transcoder --from-clipboard -f json      Recognize the clipboard image

The API key is read from GEMINI_API_KEY (or a .env.local file).
        """,
    )

    # Positional: image to recognize
    parser.add_argument(
        "image",
        nargs="?",
        help="Image file containing an equation",
    )

    # Input alternatives
    parser.add_argument(
        "--from-clipboard",
        action="store_true",
        help="Read the image from the clipboard",
    )
    parser.add_argument(
        "--latex",
        metavar="TEX",
        help="Use this LaTeX instead of recognizing an image",
    )

    # Output format
    parser.add_argument(
        "-f",
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    # Explanation
    parser.add_argument(
        "-e",
        "--explain",
        action="store_true",
        help="Ask for a short explanation of the equation",
    )
    parser.add_argument(
        "--language",
        help="Language of the explanation (default: English)",
    )

    # Export
    export = parser.add_mutually_exclusive_group()
    export.add_argument(
        "--export-svg",
        metavar="PATH",
        help="Save the typeset equation as an SVG file",
    )
    export.add_argument(
        "--copy-image",
        action="store_true",
        help="Copy the typeset equation to the clipboard as a PNG image",
    )
    export.add_argument(
        "--copy-svg",
        action="store_true",
        help="Copy the typeset equation as an image, falling back to SVG text",
    )
    export.add_argument(
        "--copy-tex",
        action="store_true",
        help="Copy the LaTeX source to the clipboard",
    )

    # GUI mode (explicit)
    parser.add_argument(
        "--gui",
        action="store_true",
        help="Launch GUI mode (default if no image given)",
    )

    # Version
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    # Verbose
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show detailed output",
    )

    return parser


def setup_logging(verbose: bool) -> None:
    """Log to stderr; debug output only with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Keep third-party chatter out of --verbose output
    for name in ("httpx", "httpcore", "matplotlib", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)


def qt_clipboard_image():
    """Clipboard image through PyQt6, or None if it holds no image."""
    # QApplication aborts the process when there is no display to connect to
    if sys.platform.startswith("linux") and not (
        os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")
    ):
        raise RuntimeError("no display available")

    from PyQt6.QtWidgets import QApplication
    from transcoder.gui.main_window import image_from_mime

    app = QApplication.instance() or QApplication([])
    return image_from_mime(app.clipboard().mimeData())


def get_clipboard_image():
    """Get an image from the system clipboard as a SourceImage."""
    from transcoder.input.acquisition import acquire_bytes

    try:
        # Try PyQt6 first (most reliable)
        image = qt_clipboard_image()
        if image is not None:
            return image
    except (ImportError, RuntimeError) as e:
        logging.getLogger(__name__).debug("Qt clipboard not available: %s", e)

    import subprocess

    for cmd in (
        ["wl-paste", "--type", "image/png"],
        ["xclip", "-selection", "clipboard", "-t", "image/png", "-o"],
    ):
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=10)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
        if result.returncode == 0 and result.stdout:
            return acquire_bytes(result.stdout, "image/png", name="clipboard.png")

    return None


def print_alert(title: str, message: str) -> None:
    """Alerts become error output on the terminal."""
    print(f"{title}: {message}", file=sys.stderr)


def build_controller(config, args, session: EquationSession):
    """Wire the pipeline with terminal-friendly sinks."""
    from transcoder.input.recognition import RecognitionClient
    from transcoder.input.service import InferenceService
    from transcoder.output.typesetter import Typesetter
    from transcoder.output.explanation import ExplanationComposer
    from transcoder.output.export import ExportEngine
    from transcoder.output.sinks import (
        BrowserViewer,
        CommandClipboard,
        DirectoryFileSink,
        PathFileSink,
    )
    from transcoder.session import SessionController

    service = InferenceService(config)
    typesetter = Typesetter()
    files = PathFileSink(args.export_svg) if args.export_svg else DirectoryFileSink()
    exporter = ExportEngine(
        typesetter,
        clipboard=CommandClipboard(),
        viewer=BrowserViewer(),
        files=files,
        scale=config.export_scale,
    )
    return SessionController(
        session,
        RecognitionClient(config, service=service),
        ExplanationComposer(config, typesetter, service=service),
        typesetter,
        exporter,
        alert=print_alert,
    )


def transcribe_cli(args, image) -> int:
    """Run recognition, explanation and export; print the result."""
    from dataclasses import replace

    from transcoder.utils.config import load_config

    config = load_config()
    if args.language:
        config = replace(config, explanation_language=args.language)

    session = EquationSession()
    controller = build_controller(config, args, session)
    try:
        return run_pipeline(args, image, controller, session)
    finally:
        controller.recognizer.service.close()


def run_pipeline(args, image, controller, session: EquationSession) -> int:
    """Recognize (or take --latex), then explain and export as asked."""
    from transcoder.output.explanation import segments_to_text

    # Recognize (or take the given LaTeX)
    if args.latex is not None:
        controller.set_markup(args.latex)
    else:
        controller.set_source_image(image)
        if not controller.run_recognition():
            return 1
        if args.verbose:
            elapsed = controller.recognizer.last_elapsed_ms
            print(f"Recognized in {elapsed}ms", file=sys.stderr)

    if not session.has_markup:
        print(f"Error: {session.recognized_markup or 'No equation'}", file=sys.stderr)
        return 1

    explanation = None
    if args.explain:
        if not controller.run_explanation():
            return 1
        explanation = segments_to_text(session.explanation_segments)

    # Export
    exported = None
    exit_code = 0
    if args.export_svg or args.copy_image or args.copy_svg:
        if args.export_svg:
            controller.set_export_mode(ExportMode.DOWNLOAD)
        else:
            controller.set_export_mode(ExportMode.CLIPBOARD)
            controller.set_export_format(
                ExportFormat.VECTOR if args.copy_svg else ExportFormat.RASTER
            )
        outcome = controller.export()
        if outcome is None:
            exit_code = 1
        else:
            exported = outcome.message
    elif args.copy_tex:
        if controller.copy_markup():
            exported = session.notification.message
        else:
            exit_code = 1

    # Output result
    if args.format == "json":
        output = {
            "latex": session.recognized_markup,
            "typeset": session.typeset_preview is not None,
        }
        if image is not None:
            output["image"] = image.name
        if explanation is not None:
            output["explanation"] = explanation
        if exported is not None:
            output["export"] = exported
        print(json.dumps(output, indent=2))

    else:  # text
        print(session.recognized_markup)

        if session.typeset_preview is None:
            problem = controller.typesetter.diagnose(session.recognized_markup)
            detail = f": {problem}" if problem is not None else ""
            print(f"(could not be typeset{detail}; showing source)", file=sys.stderr)

        if explanation is not None:
            print()
            print(explanation)

        if exported is not None:
            print(exported, file=sys.stderr)

    return exit_code


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(args.verbose)

    # Get image from file or clipboard
    image = None
    if args.image:
        from transcoder.input.acquisition import acquire_file
        from transcoder.utils.errors import ImageInputError

        try:
            image = acquire_file(args.image)
        except ImageInputError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    elif args.from_clipboard:
        image = get_clipboard_image()
        if image is None:
            print("Error: The clipboard holds no image", file=sys.stderr)
            return 1

    has_input = image is not None or args.latex is not None

    # GUI mode
    if args.gui or not has_input:
        from transcoder.gui.main_window import run_app

        return run_app()

    return transcribe_cli(args, image)


if __name__ == "__main__":
    sys.exit(main() or 0)
