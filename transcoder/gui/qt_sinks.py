"""
Qt implementations of the export sinks.

Must be used from the GUI thread.
"""

from pathlib import Path

from PyQt6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QLabel,
    QVBoxLayout,
    QWidget,
)
from PyQt6.QtCore import QStandardPaths, Qt
from PyQt6.QtGui import QImage, QPixmap

from ..output.sinks import ClipboardSink, ViewerSink, FileSink, DirectoryFileSink
from ..utils.errors import ClipboardUnavailableError, ClipboardWriteError, ExportError


class QtClipboard(ClipboardSink):
    """The application clipboard."""

    def _clipboard(self):
        clipboard = QApplication.clipboard()
        if clipboard is None:
            raise ClipboardUnavailableError("The clipboard is not available.")
        return clipboard

    def set_image(self, png: bytes) -> None:
        image = QImage.fromData(png, "PNG")
        if image.isNull():
            raise ClipboardWriteError("Could not decode the equation image.")
        self._clipboard().setImage(image)

    def set_text(self, text: str) -> None:
        self._clipboard().setText(text)


class ImageViewerDialog(QDialog):
    """Modal dialog showing an image with instructions for copying it."""

    def __init__(self, png: bytes, instructions: str, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Equation Image")

        layout = QVBoxLayout(self)

        pixmap = QPixmap()
        pixmap.loadFromData(png, "PNG")
        image_label = QLabel()
        image_label.setPixmap(pixmap)
        image_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        image_label.setStyleSheet("background: white; border: 1px solid #ccc; padding: 10px;")
        # Allows right-click copy on platforms that offer it
        image_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        layout.addWidget(image_label)

        text_label = QLabel(instructions)
        text_label.setWordWrap(True)
        layout.addWidget(text_label)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)


class QtViewer(ViewerSink):
    """Show the image in a dialog."""

    def __init__(self, parent: QWidget = None):
        self.parent = parent

    def show_image(self, png: bytes, instructions: str) -> None:
        dialog = ImageViewerDialog(png, instructions, self.parent)
        dialog.exec()


class QtFileSink(FileSink):
    """
    Ask where to save, starting in the Downloads folder.

    Raises ExportError if the user cancels the dialog.
    """

    def __init__(self, parent: QWidget = None):
        self.parent = parent

    def save(self, data: bytes, filename: str) -> Path:
        downloads = QStandardPaths.writableLocation(
            QStandardPaths.StandardLocation.DownloadLocation
        )
        start = Path(downloads or Path.home()) / filename
        suffix = Path(filename).suffix.lstrip(".").upper() or "All"
        path, _ = QFileDialog.getSaveFileName(
            self.parent,
            "Save Equation",
            str(start),
            f"{suffix} files (*{Path(filename).suffix});;All files (*)",
        )
        if not path:
            raise ExportError("Saving was cancelled.")

        target = Path(path)
        return DirectoryFileSink(target.parent).save(data, target.name)
