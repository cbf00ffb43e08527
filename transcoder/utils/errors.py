"""
Centralized error handling for Equation Transcoder.

Provides a hierarchy of custom exceptions with user-friendly messages,
suggestions for fixes, and error recovery hints.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, List


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    INFO = auto()  # Informational, operation may have partially succeeded
    WARNING = auto()  # Non-fatal, can continue with degraded functionality
    ERROR = auto()  # Operation failed, but can retry
    CRITICAL = auto()  # Unrecoverable error


@dataclass
class ErrorContext:
    """
    Rich context for error reporting.

    Provides user-friendly information beyond the raw exception.
    """

    title: str  # Short title for dialog/toast
    message: str  # User-friendly message
    technical_details: Optional[str]  # Debug info (shown on expand)
    suggestions: List[str]  # Actionable suggestions
    severity: ErrorSeverity
    recoverable: bool = True  # Can user retry?

    @classmethod
    def from_exception(cls, exc: Exception, context: str = "") -> "ErrorContext":
        """Create ErrorContext from any exception using smart detection."""
        exc_type = type(exc).__name__
        exc_msg = str(exc)

        if isinstance(exc, TranscoderError):
            return exc.to_context()

        # Network errors raised outside the service wrapper
        if "connect" in exc_msg.lower() or "timeout" in exc_msg.lower():
            return cls(
                title="Network Error",
                message="Could not reach the recognition service.",
                technical_details=f"{exc_type}: {exc_msg}",
                suggestions=[
                    "Check your internet connection",
                    "Try again in a moment",
                ],
                severity=ErrorSeverity.ERROR,
            )

        if isinstance(exc, ImportError):
            return cls(
                title="Missing Dependency",
                message="A required component is not installed.",
                technical_details=f"{exc_type}: {exc_msg}",
                suggestions=[
                    "Check that all dependencies are installed",
                    "Run: pip install -e .[test]",
                    "Restart the application",
                ],
                severity=ErrorSeverity.CRITICAL,
                recoverable=False,
            )

        # Generic fallback
        return cls(
            title="Error",
            message=f"An unexpected error occurred: {exc_msg}",
            technical_details=f"{exc_type}: {exc_msg}\nContext: {context}",
            suggestions=["Try again", "Restart the application"],
            severity=ErrorSeverity.ERROR,
        )


class TranscoderError(Exception):
    """
    Base exception for all Equation Transcoder errors.

    Subclasses provide rich error context for user-friendly reporting.
    """

    default_title = "Error"
    default_suggestions: List[str] = []
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        *,
        suggestions: Optional[List[str]] = None,
        technical_details: Optional[str] = None,
        severity: Optional[ErrorSeverity] = None,
    ):
        super().__init__(message)
        self.user_message = message
        self.suggestions = suggestions or self.default_suggestions.copy()
        self.technical_details = technical_details
        self.severity = severity or self.default_severity

    def to_context(self) -> ErrorContext:
        """Convert to ErrorContext for display."""
        return ErrorContext(
            title=self.default_title,
            message=self.user_message,
            technical_details=self.technical_details,
            suggestions=self.suggestions,
            severity=self.severity,
            recoverable=self.severity != ErrorSeverity.CRITICAL,
        )


# === Configuration Errors ===


class MissingCredentialError(TranscoderError):
    """Raised before any network attempt when no API key is configured."""

    default_title = "Missing API Key"
    default_severity = ErrorSeverity.CRITICAL
    default_suggestions = [
        "Set GEMINI_API_KEY in your environment",
        "Or add GEMINI_API_KEY=... to a .env.local file",
    ]

    def __init__(self):
        super().__init__(
            "Gemini API key is missing. Please provide it in the .env.local file."
        )


# === Input Errors ===


class ImageInputError(TranscoderError):
    """Raised when an acquired item is not a decodable image."""

    default_title = "Not an Image"
    default_suggestions = [
        "Select a PNG, JPEG, GIF or WebP file",
        "Copy the equation as an image before pasting",
    ]


class ScreenshotError(TranscoderError):
    """Raised when screenshot capture fails."""

    default_title = "Screenshot Error"
    default_suggestions = [
        "Ensure the application has screen capture permissions",
        "Try capturing the equation again",
        "Copy the equation image and use Paste instead",
    ]


class ScreenshotCancelledError(ScreenshotError):
    """Raised when user cancels screenshot selection."""

    default_title = "Cancelled"
    default_severity = ErrorSeverity.INFO
    default_suggestions = []

    def __init__(self):
        super().__init__("Screenshot capture was cancelled.")


# === Rendering Errors ===


class MalformedMarkupError(TranscoderError):
    """Raised when the typesetting engine rejects a LaTeX string."""

    default_title = "Rendering Error"
    default_severity = ErrorSeverity.WARNING
    default_suggestions = [
        "Check for missing or extra braces { }",
        "Edit the LaTeX source and render again",
    ]

    def __init__(self, message: str, *, latex: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.latex = latex


class UnbalancedBracesError(MalformedMarkupError):
    """Raised when braces are unbalanced."""

    default_title = "Unbalanced Braces"

    def __init__(self, latex: str, open_count: int, close_count: int):
        diff = open_count - close_count
        if diff > 0:
            msg = f"Missing {diff} closing brace(s) '}}'"
        else:
            msg = f"Missing {-diff} opening brace(s) '{{'"

        super().__init__(
            msg,
            latex=latex,
            suggestions=[
                f"Current count: {open_count} opening, {close_count} closing",
                "Add the missing braces to balance the expression",
            ],
        )


# === Export Errors ===


class ExportError(TranscoderError):
    """Raised when export fails."""

    default_title = "Export Error"
    default_suggestions = [
        "Check that you have write permission to the location",
        "Try exporting to a different location",
        "Switch between clipboard and download mode",
    ]


class CaptureFailureError(ExportError):
    """Raised when content bounds cannot be measured or rasterized."""

    default_title = "Capture Failed"
    default_suggestions = [
        "Make sure the equation renders in the preview",
        "Fix the LaTeX source and try again",
    ]


class ClipboardUnavailableError(ExportError):
    """Raised when the host offers no clipboard capability for a payload type."""

    default_title = "Clipboard Unavailable"
    default_severity = ErrorSeverity.WARNING


class ClipboardWriteError(ExportError):
    """Raised when a clipboard write was attempted and failed."""

    default_title = "Clipboard Error"
    default_severity = ErrorSeverity.WARNING


# === Utility functions ===


def format_error_for_user(exc: Exception, context: str = "") -> str:
    """
    Format an exception into a user-friendly string.

    Returns a single string suitable for status bar or simple display.
    """
    ctx = ErrorContext.from_exception(exc, context)

    result = ctx.message
    if ctx.suggestions:
        result += f" Try: {ctx.suggestions[0]}"

    return result


def format_error_for_dialog(exc: Exception, context: str = "") -> dict:
    """
    Format an exception into a dict suitable for QMessageBox.

    Returns dict with 'title', 'text', 'detailed_text', 'icon' keys.
    """
    from PyQt6.QtWidgets import QMessageBox

    ctx = ErrorContext.from_exception(exc, context)

    # Build detailed text with suggestions
    detailed_parts = []
    if ctx.suggestions:
        detailed_parts.append("Suggestions:")
        for i, sugg in enumerate(ctx.suggestions, 1):
            detailed_parts.append(f"  {i}. {sugg}")
    if ctx.technical_details:
        detailed_parts.append("")
        detailed_parts.append("Technical details:")
        detailed_parts.append(ctx.technical_details)

    # Map severity to icon
    icon_map = {
        ErrorSeverity.INFO: QMessageBox.Icon.Information,
        ErrorSeverity.WARNING: QMessageBox.Icon.Warning,
        ErrorSeverity.ERROR: QMessageBox.Icon.Critical,
        ErrorSeverity.CRITICAL: QMessageBox.Icon.Critical,
    }

    return {
        "title": ctx.title,
        "text": ctx.message,
        "detailed_text": "\n".join(detailed_parts) if detailed_parts else None,
        "icon": icon_map.get(ctx.severity, QMessageBox.Icon.Warning),
    }
