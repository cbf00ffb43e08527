"""
Host capabilities that exported artifacts are delivered to.

Each capability is optional: the export engine treats a missing sink the
same as one that raises ClipboardUnavailableError. The GUI provides Qt
implementations (see gui/qt_sinks.py); the command-line implementations
below shell out to the usual desktop tools.
"""

import base64
import html
import shutil
import subprocess
import tempfile
import webbrowser
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from ..utils.errors import ClipboardUnavailableError, ClipboardWriteError, ExportError


class ClipboardSink(ABC):
    """System clipboard."""

    @abstractmethod
    def set_image(self, png: bytes) -> None:
        """Place a PNG on the clipboard as an image entry."""

    @abstractmethod
    def set_text(self, text: str) -> None:
        """Place plain text on the clipboard."""


class ViewerSink(ABC):
    """Somewhere a bitmap can be shown for manual copying."""

    @abstractmethod
    def show_image(self, png: bytes, instructions: str) -> None:
        pass


class FileSink(ABC):
    """Save-as-file target (the "download")."""

    @abstractmethod
    def save(self, data: bytes, filename: str) -> Path:
        """Write data and return where it went."""


# === Command-line implementations ===


class CommandClipboard(ClipboardSink):
    """
    Clipboard access through wl-copy, xclip or xsel.

    The first tool found in PATH is used for each payload type.
    """

    # Tool name -> command; image commands are fed PNG bytes on stdin
    IMAGE_TOOLS = {
        "wl-copy": ["wl-copy", "--type", "image/png"],
        "xclip": ["xclip", "-selection", "clipboard", "-t", "image/png", "-i"],
    }
    TEXT_TOOLS = {
        "wl-copy": ["wl-copy"],
        "xclip": ["xclip", "-selection", "clipboard", "-i"],
        "xsel": ["xsel", "--clipboard", "--input"],
    }

    def _find(self, tools: dict) -> Optional[List[str]]:
        for name, cmd in tools.items():
            if shutil.which(name):
                return cmd
        return None

    def _run(self, cmd: List[str], data: bytes) -> None:
        try:
            # The tools fork to keep owning the selection, so don't capture output
            result = subprocess.run(
                cmd,
                input=data,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ClipboardWriteError(
                f"{cmd[0]} failed", technical_details=str(e)
            )
        if result.returncode != 0:
            raise ClipboardWriteError(f"{cmd[0]} exited with code {result.returncode}")

    def set_image(self, png: bytes) -> None:
        cmd = self._find(self.IMAGE_TOOLS)
        if cmd is None:
            raise ClipboardUnavailableError("No image clipboard tool (wl-copy, xclip) found")
        self._run(cmd, png)

    def set_text(self, text: str) -> None:
        cmd = self._find(self.TEXT_TOOLS)
        if cmd is None:
            raise ClipboardUnavailableError("No clipboard tool (wl-copy, xclip, xsel) found")
        self._run(cmd, text.encode("utf-8"))


VIEWER_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Equation image</title></head>
<body style="margin:0; padding:20px; text-align:center;">
    <h3>Generated equation image</h3>
    <img src="data:image/png;base64,{data}" style="max-width:100%; border:1px solid #ccc;" />
    <p>{instructions}</p>
</body>
</html>
"""


class BrowserViewer(ViewerSink):
    """Open the bitmap in the default web browser with instructions."""

    def show_image(self, png: bytes, instructions: str) -> None:
        page = VIEWER_PAGE.format(
            data=base64.b64encode(png).decode("ascii"),
            instructions=html.escape(instructions),
        )
        fd, path = tempfile.mkstemp(prefix="transcoder_view_", suffix=".html")
        with open(fd, "w", encoding="utf-8") as f:
            f.write(page)
        if not webbrowser.open(Path(path).as_uri()):
            raise ClipboardUnavailableError("No web browser available to show the image")


class DirectoryFileSink(FileSink):
    """Write files into a directory (default: the current directory)."""

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory) if directory is not None else Path.cwd()

    def save(self, data: bytes, filename: str) -> Path:
        path = self.directory / filename
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise ExportError(f"Could not write {path}", technical_details=str(e))
        return path


class PathFileSink(FileSink):
    """Write to one fixed path regardless of the suggested filename."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save(self, data: bytes, filename: str) -> Path:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(data)
        except OSError as e:
            raise ExportError(f"Could not write {self.path}", technical_details=str(e))
        return self.path
