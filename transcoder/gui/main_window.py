"""
Main application window for Equation Transcoder.

PyQt6-based GUI with image input, recognition, explanation and export panels.
"""

import logging
import sys
from typing import Optional

from PyQt6.QtWidgets import (
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QPushButton,
    QLabel,
    QLineEdit,
    QComboBox,
    QGroupBox,
    QToolBar,
    QMessageBox,
    QApplication,
    QProgressBar,
    QSplitter,
    QFileDialog,
)
from PyQt6.QtCore import Qt, QThread, pyqtSignal, QTimer, QBuffer, QIODevice, QMimeData
from PyQt6.QtGui import QAction, QFont, QKeySequence, QPixmap

from ..models import EquationSession, ExportFormat, ExportMode, SourceImage
from ..session import SessionController
from ..utils.config import load_config
from ..utils.errors import (
    format_error_for_dialog,
    format_error_for_user,
    TranscoderError,
    ImageInputError,
    ScreenshotCancelledError,
)
from .preview_widget import PreviewWidget

logger = logging.getLogger(__name__)


class RecognitionWorker(QThread):
    """Background thread for the recognition round trip."""

    finished = pyqtSignal(int, object)  # ticket, RecognitionResult
    error = pyqtSignal(int, object)  # ticket, exception

    def __init__(self, recognizer, image: SourceImage, ticket: int, parent=None):
        super().__init__(parent)
        self.recognizer = recognizer
        self.image = image
        self.ticket = ticket

    def run(self):
        try:
            result = self.recognizer.recognize(self.image)
            self.finished.emit(self.ticket, result)
        except Exception as e:
            self.error.emit(self.ticket, e)


class ExplanationWorker(QThread):
    """Background thread for the explanation round trip."""

    finished = pyqtSignal(int, object)  # ticket, RecognitionResult
    error = pyqtSignal(int, object)

    def __init__(self, composer, markup: str, ticket: int, parent=None):
        super().__init__(parent)
        self.composer = composer
        self.markup = markup
        self.ticket = ticket

    def run(self):
        try:
            result = self.composer.request(self.markup)
            self.finished.emit(self.ticket, result)
        except Exception as e:
            self.error.emit(self.ticket, e)


class CaptureWorker(QThread):
    """Background thread for screen-region capture."""

    finished = pyqtSignal(object)  # SourceImage
    error = pyqtSignal(object)

    def __init__(self, screenshot_capture, parent=None):
        super().__init__(parent)
        self.screenshot_capture = screenshot_capture

    def run(self):
        try:
            self.finished.emit(self.screenshot_capture.capture_area())
        except Exception as e:
            self.error.emit(e)


def image_from_mime(mime: QMimeData) -> Optional[SourceImage]:
    """
    First image in a drop or paste payload.

    Local files are read from disk; raw image data is taken as offered;
    a decoded bitmap is re-encoded as PNG. Returns None if there is no image.
    """
    from ..input.acquisition import acquire_file, acquire_first_image, acquire_bytes

    if mime.hasUrls():
        for url in mime.urls():
            if url.isLocalFile():
                try:
                    return acquire_file(url.toLocalFile())
                except ImageInputError:
                    continue

    image = acquire_first_image(
        (fmt, lambda fmt=fmt: bytes(mime.data(fmt))) for fmt in mime.formats()
    )
    if image is not None:
        return image

    if mime.hasImage():
        buffer = QBuffer()
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        mime.imageData().save(buffer, "PNG")
        return acquire_bytes(bytes(buffer.data()), "image/png", name="pasted.png")
    return None


class MainWindow(QMainWindow):
    """
    Main application window for Equation Transcoder.

    Layout:
    - Toolbar: Open, Paste, Screenshot buttons
    - Image Panel: Source image preview (also a drop target)
    - Equation Panel: Recognize, progress, typeset preview, LaTeX editor
    - Explanation Panel: Explain button and rendered explanation
    - Export bar: Copy TeX, mode/format toggles, Export
    - Status Bar: Notifications and timing
    """

    def __init__(self, config=None):
        super().__init__()

        self.setWindowTitle("Equation Transcoder")
        self.setGeometry(100, 100, 900, 750)
        self.setMinimumSize(600, 500)
        self.setAcceptDrops(True)

        self.config = config or load_config()

        # Initialize components (lazy-loaded)
        self._screenshot_capture = None
        self._recognizer = None
        self._composer = None
        self._service = None

        # Background workers, one per kind
        self.capture_worker = None
        self.recognition_worker = None
        self.explanation_worker = None

        self.session = EquationSession()
        self.controller = self._create_controller()

        # Setup UI
        self._init_ui()
        self._init_toolbar()
        self._init_statusbar()
        self._refresh(self.session)

        # Show ready status
        self.statusBar().showMessage("Ready. Open, paste or drop an image of an equation.")

    def _create_controller(self) -> SessionController:
        from ..output.typesetter import Typesetter
        from ..output.explanation import ExplanationComposer
        from ..output.export import ExportEngine
        from .qt_sinks import QtClipboard, QtViewer, QtFileSink

        typesetter = Typesetter()
        self._composer = ExplanationComposer(
            self.config, typesetter, service=self._get_service()
        )
        exporter = ExportEngine(
            typesetter,
            clipboard=QtClipboard(),
            viewer=QtViewer(self),
            files=QtFileSink(self),
            scale=self.config.export_scale,
        )
        return SessionController(
            self.session,
            self._get_recognizer(),
            self._composer,
            typesetter,
            exporter,
            alert=self._show_alert,
            schedule=lambda delay, callback: QTimer.singleShot(delay, callback),
            on_change=self._refresh,
        )

    def _init_ui(self):
        """Initialize the main UI layout."""
        central_widget = QWidget()
        self.setCentralWidget(central_widget)

        main_layout = QVBoxLayout(central_widget)
        main_layout.setSpacing(10)
        main_layout.setContentsMargins(10, 10, 10, 10)

        # Create splitter for resizable panels
        splitter = QSplitter(Qt.Orientation.Vertical)
        splitter.addWidget(self._create_image_panel())
        splitter.addWidget(self._create_equation_panel())
        splitter.addWidget(self._create_explanation_panel())
        splitter.setSizes([180, 250, 250])

        main_layout.addWidget(splitter)
        main_layout.addLayout(self._create_export_bar())

    def _create_image_panel(self) -> QGroupBox:
        """Create the source image panel."""
        group = QGroupBox("Image")
        layout = QVBoxLayout(group)

        self.image_label = QLabel("Drop an image here")
        self.image_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.image_label.setMinimumHeight(120)
        self.image_label.setStyleSheet("color: gray; border: 1px dashed #aaa;")
        layout.addWidget(self.image_label)

        return group

    def _create_equation_panel(self) -> QGroupBox:
        """Create the recognition panel."""
        group = QGroupBox("Equation")
        layout = QVBoxLayout(group)

        button_layout = QHBoxLayout()
        self.recognize_btn = QPushButton("Recognize")
        self.recognize_btn.clicked.connect(self._on_recognize_clicked)
        self.recognize_btn.setStyleSheet("font-weight: bold; padding: 5px 20px;")
        button_layout.addWidget(self.recognize_btn)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        self.progress_bar.setTextVisible(False)
        button_layout.addWidget(self.progress_bar)
        layout.addLayout(button_layout)

        self.equation_preview = PreviewWidget()
        layout.addWidget(self.equation_preview)

        # Editable LaTeX source
        input_layout = QHBoxLayout()
        input_layout.addWidget(QLabel("LaTeX:"))
        self.latex_input = QLineEdit()
        self.latex_input.setPlaceholderText(r"Recognized LaTeX appears here (or type, e.g. E = mc^2)")
        self.latex_input.setFont(QFont("Monospace", 11))
        self.latex_input.returnPressed.connect(self._on_latex_edited)
        input_layout.addWidget(self.latex_input)
        layout.addLayout(input_layout)

        return group

    def _create_explanation_panel(self) -> QGroupBox:
        """Create the explanation panel."""
        group = QGroupBox("Explanation")
        layout = QVBoxLayout(group)

        button_layout = QHBoxLayout()
        self.explain_btn = QPushButton("Explain")
        self.explain_btn.clicked.connect(self._on_explain_clicked)
        button_layout.addWidget(self.explain_btn)
        button_layout.addStretch()
        layout.addLayout(button_layout)

        self.explanation_view = PreviewWidget()
        layout.addWidget(self.explanation_view)

        return group

    def _create_export_bar(self) -> QHBoxLayout:
        """Create export controls."""
        layout = QHBoxLayout()

        self.copy_btn = QPushButton("Copy TeX")
        self.copy_btn.clicked.connect(self.controller.copy_markup)
        layout.addWidget(self.copy_btn)

        layout.addStretch()

        self.mode_selector = QComboBox()
        self.mode_selector.addItem("Download", ExportMode.DOWNLOAD)
        self.mode_selector.addItem("Copy to clipboard", ExportMode.CLIPBOARD)
        layout.addWidget(self.mode_selector)

        self.format_selector = QComboBox()
        self.format_selector.addItem("PNG", ExportFormat.RASTER)
        self.format_selector.addItem("SVG", ExportFormat.VECTOR)
        layout.addWidget(self.format_selector)

        self.export_btn = QPushButton("Export")
        self.export_btn.clicked.connect(self.controller.export)
        layout.addWidget(self.export_btn)

        # Connect after every widget exists; addItem emits currentIndexChanged
        self.mode_selector.currentIndexChanged.connect(self._on_mode_changed)
        self.format_selector.currentIndexChanged.connect(self._on_format_changed)

        return layout

    def _init_toolbar(self):
        """Initialize the toolbar."""
        toolbar = QToolBar("Main Toolbar")
        toolbar.setMovable(False)
        self.addToolBar(toolbar)

        open_action = QAction("Open", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.setStatusTip("Open an image file")
        open_action.triggered.connect(self._on_open_clicked)
        toolbar.addAction(open_action)

        toolbar.addSeparator()

        paste_action = QAction("Paste", self)
        paste_action.setShortcut(QKeySequence.StandardKey.Paste)
        paste_action.setStatusTip("Paste an image from the clipboard")
        paste_action.triggered.connect(self._on_paste_clicked)
        toolbar.addAction(paste_action)

        toolbar.addSeparator()

        screenshot_action = QAction("Screenshot", self)
        screenshot_action.setStatusTip("Capture an equation from the screen")
        screenshot_action.triggered.connect(self._on_screenshot_clicked)
        toolbar.addAction(screenshot_action)

    def _init_statusbar(self):
        """Initialize the status bar."""
        self.statusBar().showMessage("Ready")

    # === Component Lazy Loading ===

    def _get_screenshot_capture(self):
        """Lazy-load screenshot capture."""
        if self._screenshot_capture is None:
            from ..input.screenshot import ScreenshotCapture

            self._screenshot_capture = ScreenshotCapture()
        return self._screenshot_capture

    def _get_service(self):
        """One HTTP client shared by recognition and explanation."""
        if self._service is None:
            from ..input.service import InferenceService

            self._service = InferenceService(self.config)
        return self._service

    def _get_recognizer(self):
        """Lazy-load the recognition client."""
        if self._recognizer is None:
            from ..input.recognition import RecognitionClient

            self._recognizer = RecognitionClient(self.config, service=self._get_service())
        return self._recognizer

    def _start_worker(self, name: str, worker: QThread):
        """
        Start `worker` as the current worker of its kind.

        Workers are children of the window, so a superseded one that is
        still running stays alive until it returns; a finished one is freed.
        """
        previous = getattr(self, name)
        if previous is not None and previous.isFinished():
            previous.deleteLater()
        setattr(self, name, worker)
        worker.start()

    # === Error Handling ===

    def _show_error(self, exc: Exception, context: str = "") -> None:
        """
        Show a rich error dialog with suggestions.

        Uses the centralized error handling system to provide
        user-friendly error messages with actionable suggestions.
        """
        error_info = format_error_for_dialog(exc, context)

        msg_box = QMessageBox(self)
        msg_box.setWindowTitle(error_info["title"])
        msg_box.setText(error_info["text"])
        msg_box.setIcon(error_info["icon"])

        if error_info["detailed_text"]:
            msg_box.setDetailedText(error_info["detailed_text"])

        msg_box.exec()

        # Update status bar with brief message
        self.statusBar().showMessage(format_error_for_user(exc, context))

    def _show_alert(self, title: str, message: str) -> None:
        """Blocking alert requested by the session controller."""
        QMessageBox.information(self, title, message)

    # === Session → widgets ===

    def _refresh(self, session: EquationSession) -> None:
        """Mirror the session into the widgets."""
        self.progress_bar.setValue(session.progress)
        self.progress_bar.setVisible(session.progress > 0)

        if session.recognized_markup:
            self.equation_preview.display_equation(
                session.typeset_preview, session.recognized_markup
            )
        else:
            self.equation_preview.clear()
        if not self.latex_input.hasFocus():
            self.latex_input.setText(session.recognized_markup if session.has_markup else "")

        if session.explanation_segments is None:
            self.explanation_view.clear()
        else:
            self.explanation_view.display_explanation(session.explanation_segments)

        self.recognize_btn.setEnabled(session.source_image is not None)
        self.explain_btn.setEnabled(session.has_markup)
        self.copy_btn.setEnabled(session.has_markup)
        self.export_btn.setEnabled(session.has_markup)
        self.format_selector.setEnabled(session.export_mode is ExportMode.CLIPBOARD)

        notification = session.notification
        if notification.visible:
            self.statusBar().showMessage(notification.message)
        elif self.statusBar().currentMessage() == notification.message:
            self.statusBar().clearMessage()

    def _set_image(self, image: SourceImage) -> None:
        pixmap = QPixmap()
        pixmap.loadFromData(image.data)
        if pixmap.isNull():
            self.image_label.setText(image.name)
        else:
            self.image_label.setPixmap(
                pixmap.scaled(
                    self.image_label.size(),
                    Qt.AspectRatioMode.KeepAspectRatio,
                    Qt.TransformationMode.SmoothTransformation,
                )
            )
        self.controller.set_source_image(image)
        self.statusBar().showMessage(f"Loaded {image.name}")

    # === Event Handlers ===

    def dragEnterEvent(self, event):
        mime = event.mimeData()
        if mime.hasUrls() or mime.hasImage():
            event.acceptProposedAction()

    def dropEvent(self, event):
        try:
            image = image_from_mime(event.mimeData())
        except TranscoderError as e:
            self._show_error(e, "reading the dropped file")
            return
        if image is None:
            self.statusBar().showMessage("The dropped item is not an image")
            return
        self._set_image(image)
        event.acceptProposedAction()

    def closeEvent(self, event):
        if self._service is not None:
            self._service.close()
        super().closeEvent(event)

    def _on_open_clicked(self):
        """Handle open button click."""
        from ..input.acquisition import acquire_file

        path, _ = QFileDialog.getOpenFileName(
            self, "Open Image", "", "Images (*.png *.jpg *.jpeg *.gif *.bmp *.webp);;All files (*)"
        )
        if not path:
            return
        try:
            self._set_image(acquire_file(path))
        except TranscoderError as e:
            self._show_error(e, "opening the image")

    def _on_paste_clicked(self):
        """Handle paste button click."""
        # Let the LaTeX field keep its own paste
        if self.latex_input.hasFocus():
            self.latex_input.paste()
            return
        try:
            image = image_from_mime(QApplication.clipboard().mimeData())
        except TranscoderError as e:
            self._show_error(e, "pasting")
            return
        if image is None:
            self.statusBar().showMessage("The clipboard holds no image")
            return
        self._set_image(image)

    def _on_screenshot_clicked(self):
        """Handle screenshot button click."""
        self.statusBar().showMessage("Select area to capture...")

        try:
            screenshot = self._get_screenshot_capture()
        except TranscoderError as e:
            self._show_error(e, "initializing screenshot capture")
            return

        worker = CaptureWorker(screenshot, parent=self)
        worker.finished.connect(self._set_image)
        worker.error.connect(self._on_capture_error)
        self._start_worker("capture_worker", worker)

    def _on_capture_error(self, exc: Exception):
        """Handle screenshot error."""
        # Cancellation is not a real error
        if isinstance(exc, ScreenshotCancelledError):
            logger.debug("Screenshot cancelled by the user")
            self.statusBar().showMessage("Screenshot cancelled")
            return
        self._show_error(exc, "capturing the screen")

    def _on_recognize_clicked(self):
        """Handle recognize button click."""
        ticket = self.controller.begin_recognition()
        if ticket is None:
            return

        self.statusBar().showMessage("Recognizing...")
        worker = RecognitionWorker(
            self._get_recognizer(), self.session.source_image, ticket, parent=self
        )
        worker.finished.connect(self._on_recognition_finished)
        worker.error.connect(self.controller.fail_recognition)
        self._start_worker("recognition_worker", worker)

    def _on_recognition_finished(self, ticket: int, result):
        """Handle recognition completion."""
        if not self.controller.complete_recognition(ticket, result):
            return
        elapsed = self._get_recognizer().last_elapsed_ms
        if self.session.has_markup and elapsed is not None:
            self.statusBar().showMessage(f"Recognized in {elapsed}ms")

    def _on_latex_edited(self):
        """Use the typed LaTeX as the current equation."""
        self.controller.set_markup(self.latex_input.text().strip())
        if self.session.has_markup and self.session.typeset_preview is None:
            problem = self.controller.typesetter.diagnose(self.session.recognized_markup)
            if problem is not None:
                self.statusBar().showMessage(format_error_for_user(problem))

    def _on_explain_clicked(self):
        """Handle explain button click."""
        ticket = self.controller.begin_explanation()
        if ticket is None:
            return

        worker = ExplanationWorker(
            self._composer, self.session.recognized_markup, ticket, parent=self
        )
        worker.finished.connect(self.controller.complete_explanation)
        worker.error.connect(self._on_explanation_error)
        self._start_worker("explanation_worker", worker)

    def _on_explanation_error(self, ticket: int, exc: Exception):
        """Show an unexpected worker failure in the explanation pane."""
        from ..models import ServiceError

        self.controller.complete_explanation(
            ticket, ServiceError(type(exc).__name__, str(exc) or type(exc).__name__)
        )

    def _on_mode_changed(self, index: int):
        self.controller.set_export_mode(self.mode_selector.itemData(index))

    def _on_format_changed(self, index: int):
        self.controller.set_export_format(self.format_selector.itemData(index))


def run_app(config=None):
    """Run the Equation Transcoder application."""
    app = QApplication(sys.argv)
    app.setApplicationName("Equation Transcoder")

    window = MainWindow(config)
    window.show()

    return app.exec()
