"""
Tests for the GUI pieces that run without a window: workers, payload
reading and the preview pages.
"""

import io
import os
from types import SimpleNamespace

import pytest
from PIL import Image

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pytest.importorskip("PyQt6.QtWidgets")


@pytest.fixture
def image():
    from transcoder.models import SourceImage

    return SourceImage(data=b"\x89PNG fake", mime_type="image/png", name="eq.png")


class FakeWorker:
    """Stands in for a QThread; records lifecycle calls."""

    def __init__(self, finished=False):
        self.finished = finished
        self.started = False
        self.deleted = False

    def isFinished(self):
        return self.finished

    def start(self):
        self.started = True

    def deleteLater(self):
        self.deleted = True


class TestWorkers:
    """Tests for the background workers."""

    def test_recognition_worker_emits_ticket_and_result(self, image):
        """Test that run() reports the result with its ticket."""
        from transcoder.gui.main_window import RecognitionWorker
        from transcoder.models import RecognitionOk

        recognizer = SimpleNamespace(recognize=lambda img: RecognitionOk("x"))
        worker = RecognitionWorker(recognizer, image, 7)
        results = []
        worker.finished.connect(lambda ticket, result: results.append((ticket, result)))

        worker.run()

        assert results == [(7, RecognitionOk("x"))]

    def test_recognition_worker_reports_exception(self, image):
        """Test that an exception in the recognizer goes to the error signal."""
        from transcoder.gui.main_window import RecognitionWorker
        from transcoder.utils.errors import MissingCredentialError

        def recognize(img):
            raise MissingCredentialError()

        worker = RecognitionWorker(SimpleNamespace(recognize=recognize), image, 3)
        errors = []
        worker.error.connect(lambda ticket, exc: errors.append((ticket, type(exc))))

        worker.run()

        assert errors == [(3, MissingCredentialError)]

    def test_worker_owned_by_parent(self, image):
        """Test that a worker created for the window is a Qt child of it."""
        from PyQt6.QtCore import QObject

        from transcoder.gui.main_window import ExplanationWorker

        parent = QObject()
        worker = ExplanationWorker(SimpleNamespace(), "x", 1, parent=parent)

        assert worker.parent() is parent

    def test_finished_worker_released_on_replace(self):
        """Test that starting a new worker frees the finished previous one."""
        from transcoder.gui.main_window import MainWindow

        old, new = FakeWorker(finished=True), FakeWorker()
        window = SimpleNamespace(recognition_worker=old)

        MainWindow._start_worker(window, "recognition_worker", new)

        assert old.deleted
        assert new.started
        assert window.recognition_worker is new

    def test_running_worker_not_deleted(self):
        """Test that a superseded worker still running is left to finish."""
        from transcoder.gui.main_window import MainWindow

        old, new = FakeWorker(finished=False), FakeWorker()
        window = SimpleNamespace(explanation_worker=old)

        MainWindow._start_worker(window, "explanation_worker", new)

        assert not old.deleted
        assert window.explanation_worker is new


class TestImageFromMime:
    """Tests for reading drop and paste payloads."""

    def test_raw_image_data(self):
        """Test that image bytes offered under an image type are taken as is."""
        from PyQt6.QtCore import QMimeData

        from transcoder.gui.main_window import image_from_mime

        buf = io.BytesIO()
        Image.new("RGB", (2, 2)).save(buf, format="PNG")
        mime = QMimeData()
        mime.setData("image/png", buf.getvalue())

        image = image_from_mime(mime)

        assert image is not None
        assert image.mime_type == "image/png"
        assert image.data == buf.getvalue()

    def test_text_only_payload(self):
        """Test that a text payload has no image."""
        from PyQt6.QtCore import QMimeData

        from transcoder.gui.main_window import image_from_mime

        mime = QMimeData()
        mime.setText("E = mc^2")

        assert image_from_mime(mime) is None


class TestPreviewRenderer:
    """Tests for the preview pages."""

    def test_equation_page_inlines_svg(self):
        """Test that the SVG is inlined without its XML prolog."""
        from transcoder.gui.preview_widget import PreviewRenderer

        page = PreviewRenderer().render_equation('<?xml version="1.0"?>\n<svg></svg>', "x")

        assert '<div class="equation-box"><svg></svg></div>' in page
        assert "<?xml" not in page

    def test_equation_page_shows_source_without_svg(self):
        """Test that untypesettable markup is shown escaped."""
        from transcoder.gui.preview_widget import PreviewRenderer

        page = PreviewRenderer().render_equation(None, "a < b")

        assert "a &lt; b" in page
        assert "raw-source" in page
