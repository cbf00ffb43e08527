"""
Session orchestration.

SessionController owns every transition of an EquationSession: image
changes, the recognition and explanation round trips, exports, progress and
notifications. It never touches widgets; alerts and timers are injected so
the same code drives the GUI, the CLI and the tests.

Long-running calls are split into begin_* (runs before the network call),
the call itself (may run on a worker thread) and complete_* (applies the
result). Each begin_* hands out a ticket; complete_* ignores results whose
ticket is no longer current, so a superseded request can finish without
overwriting newer state.
"""

import logging
from typing import Callable, List, Optional

from .models import (
    EquationSession,
    ExplanationSegment,
    ExportFormat,
    ExportMode,
    ExportOutcome,
    PlainText,
    RecognitionOk,
    EmptyRecognition,
    RecognitionResult,
    ServiceError,
    SourceImage,
)
from .output.explanation import ExplanationComposer
from .output.export import ExportEngine
from .output.typesetter import Typesetter
from .utils.constants import (
    RECOGNIZING_TEXT,
    EMPTY_RECOGNITION_TEXT,
    RECOGNITION_ERROR_TEXT,
    EXPLAINING_TEXT,
    LATEX_COPIED_TEXT,
    NO_EQUATION_TEXT,
    PROGRESS_RESET_DELAY_MS,
    NOTIFICATION_DURATION_MS,
)
from .utils.errors import ErrorContext, ExportError, MissingCredentialError, TranscoderError

logger = logging.getLogger(__name__)

# alert(title, message): blocking, user-facing
AlertFn = Callable[[str, str], None]
# schedule(delay_ms, callback): run callback later on the same thread
ScheduleFn = Callable[[int, Callable[[], None]], None]


def run_immediately(delay_ms: int, callback: Callable[[], None]) -> None:
    """Scheduler for synchronous callers: fire timers right away."""
    callback()


class SessionController:
    """
    Drive one EquationSession through the pipeline.

    Usage:
        controller = SessionController(session, recognizer, composer,
                                       typesetter, exporter, alert=print_alert)
        controller.set_source_image(image)
        controller.run_recognition()
    """

    def __init__(
        self,
        session: EquationSession,
        recognizer,
        composer: ExplanationComposer,
        typesetter: Typesetter,
        exporter: ExportEngine,
        alert: AlertFn,
        schedule: ScheduleFn = run_immediately,
        on_change: Optional[Callable[[EquationSession], None]] = None,
    ):
        self.session = session
        self.recognizer = recognizer
        self.composer = composer
        self.typesetter = typesetter
        self.exporter = exporter
        self.alert = alert
        self.schedule = schedule
        self.on_change = on_change

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.session)

    def _alert_error(self, exc: TranscoderError) -> None:
        ctx: ErrorContext = exc.to_context()
        self.alert(ctx.title, ctx.message)

    # === Input ===

    def set_source_image(self, image: SourceImage) -> None:
        """
        Replace the source image.

        The previous recognition result is cleared to show the pipeline must
        be re-run; the explanation stays until it is overwritten.
        """
        self.session.source_image = image
        self.session.recognized_markup = ""
        self.session.typeset_preview = None
        self.session.has_markup = False
        self.session.progress = 0
        # Any request still in flight now belongs to the old image
        self.session.request_seq += 1
        self._changed()

    def set_markup(self, markup: str) -> None:
        """Use typed or edited LaTeX instead of a recognition result."""
        self.session.recognized_markup = markup
        self.session.has_markup = bool(markup.strip())
        self.session.typeset_preview = (
            self.typesetter.render(markup, display_mode=True) if markup.strip() else None
        )
        self.session.progress = 0
        # Typed LaTeX wins over a recognition still in flight
        self.session.request_seq += 1
        self._changed()

    # === Recognition ===

    def begin_recognition(self) -> Optional[int]:
        """
        Prepare the session for a recognition request.

        Returns:
            The request ticket, or None if the request must not be sent
            (no image, or no credential; the latter alerts once and leaves
            the session untouched).
        """
        if self.session.source_image is None:
            return None
        if not self.recognizer.has_credential:
            self._alert_error(MissingCredentialError())
            return None

        self.session.request_seq += 1
        self.session.recognized_markup = RECOGNIZING_TEXT
        self.session.has_markup = False
        self.session.typeset_preview = None
        self.session.explanation_segments = None
        self.session.progress = 1
        self._changed()
        return self.session.request_seq

    def complete_recognition(self, ticket: int, result: RecognitionResult) -> bool:
        """
        Apply a recognition result if its ticket is still current.

        Returns:
            True if applied, False if the result was stale and discarded.
        """
        if ticket != self.session.request_seq:
            logger.debug("Discarding stale recognition result (ticket %d)", ticket)
            return False

        try:
            if isinstance(result, RecognitionOk) and result.markup.strip():
                self.session.progress = 50
                self.session.recognized_markup = result.markup
                self.session.has_markup = True
                # Never raises; None means "show the raw source"
                self.session.typeset_preview = self.typesetter.render(
                    result.markup, display_mode=True, error_tolerant=True
                )
            elif isinstance(result, (RecognitionOk, EmptyRecognition)):
                self.session.recognized_markup = EMPTY_RECOGNITION_TEXT
            else:
                self.session.recognized_markup = RECOGNITION_ERROR_TEXT.format(
                    message=result.message
                )
        finally:
            self.session.progress = 100
            self._changed()
            self.schedule(PROGRESS_RESET_DELAY_MS, lambda: self._reset_progress(ticket))
        return True

    def _reset_progress(self, ticket: int) -> None:
        # A newer request owns the progress bar now
        if ticket != self.session.request_seq:
            return
        self.session.progress = 0
        self._changed()

    def fail_recognition(self, ticket: int, exc: Exception) -> bool:
        """Apply an unexpected worker exception as a service error."""
        return self.complete_recognition(
            ticket, ServiceError(type(exc).__name__, str(exc) or type(exc).__name__)
        )

    def run_recognition(self) -> bool:
        """Recognize synchronously (CLI, tests). Returns True if a request ran."""
        ticket = self.begin_recognition()
        if ticket is None:
            return False
        result = self.recognizer.recognize(self.session.source_image)
        self.complete_recognition(ticket, result)
        return True

    # === Explanation ===

    def begin_explanation(self) -> Optional[int]:
        """Prepare an explanation request. Returns the ticket or None."""
        if not self.session.has_markup:
            return None
        if not self.composer.has_credential:
            self._alert_error(MissingCredentialError())
            return None

        self.session.explain_seq += 1
        self.session.explanation_segments = [PlainText(EXPLAINING_TEXT)]
        self._changed()
        return self.session.explain_seq

    def complete_explanation(self, ticket: int, result: RecognitionResult) -> bool:
        """Compose and apply an explanation if its ticket is still current."""
        if ticket != self.session.explain_seq:
            logger.debug("Discarding stale explanation (ticket %d)", ticket)
            return False
        segments: List[ExplanationSegment] = self.composer.compose(result)
        self.session.explanation_segments = segments
        self._changed()
        return True

    def run_explanation(self) -> bool:
        """Explain synchronously. Returns True if a request ran."""
        ticket = self.begin_explanation()
        if ticket is None:
            return False
        result = self.composer.request(self.session.recognized_markup)
        return self.complete_explanation(ticket, result)

    # === Export ===

    def set_export_mode(self, mode: ExportMode) -> None:
        self.session.export_mode = mode
        self._changed()

    def set_export_format(self, fmt: ExportFormat) -> None:
        self.session.export_format = fmt
        self._changed()

    def export(self) -> Optional[ExportOutcome]:
        """
        Export with the session's current mode and format.

        Successful clipboard/file writes raise a transient notification;
        degraded paths and failures are reported through alert().
        """
        if not self.session.has_markup:
            self.alert("Export Error", NO_EQUATION_TEXT)
            return None

        try:
            outcome = self.exporter.export(
                self.session.recognized_markup,
                self.session.export_mode,
                self.session.export_format,
            )
        except ExportError as e:
            logger.warning("Export failed: %s", e)
            self._alert_error(e)
            return None

        if outcome.transient:
            self.notify(outcome.message)
        else:
            self.alert("Export", outcome.message)
        return outcome

    def copy_markup(self) -> bool:
        """Copy the LaTeX source to the clipboard."""
        if not self.session.has_markup:
            return False
        try:
            self.exporter.copy_markup(self.session.recognized_markup)
        except ExportError as e:
            self._alert_error(e)
            return False
        self.notify(LATEX_COPIED_TEXT)
        return True

    # === Notifications ===

    def notify(self, message: str) -> None:
        """Show a transient notification that hides itself after a while."""
        notification = self.session.notification
        notification.seq += 1
        notification.visible = True
        notification.message = message
        self._changed()

        seq = notification.seq
        self.schedule(NOTIFICATION_DURATION_MS, lambda: self._expire_notification(seq))

    def _expire_notification(self, seq: int) -> None:
        notification = self.session.notification
        # A later notification restarted the timer
        if seq != notification.seq:
            return
        notification.visible = False
        self._changed()
