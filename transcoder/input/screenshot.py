"""
Screen-region capture for Linux desktop environments.

Detects available screenshot tools and provides a unified interface.
Supports: flameshot, gnome-screenshot, spectacle (KDE), maim, scrot.
"""

import os
import shutil
import subprocess
import tempfile
from typing import Optional, List

from ..models import SourceImage
from ..utils.errors import ScreenshotError, ScreenshotCancelledError


class ScreenshotCapture:
    """
    Cross-desktop region capture.

    Automatically detects and uses the first available screenshot tool.
    Priority order: flameshot → gnome-screenshot → spectacle → maim → scrot

    Usage:
        capture = ScreenshotCapture()
        image = capture.capture_area()  # Launches area selection
    """

    # Tool name -> command template
    # {output} will be replaced with the output path
    TOOLS: dict[str, List[str]] = {
        "flameshot": ["flameshot", "gui", "--raw", "-p", "{output}"],
        "gnome-screenshot": ["gnome-screenshot", "-a", "-f", "{output}"],
        "spectacle": ["spectacle", "-r", "-b", "-n", "-o", "{output}"],
        "maim": ["maim", "-s", "{output}"],
        "scrot": ["scrot", "-s", "{output}"],
    }

    TIMEOUT_SECONDS = 60

    def __init__(self, preferred_tool: Optional[str] = None):
        """
        Initialize screenshot capture.

        Args:
            preferred_tool: Override auto-detection with specific tool name.
        """
        if preferred_tool:
            if preferred_tool not in self.TOOLS:
                raise ValueError(
                    f"Unknown tool: {preferred_tool}. "
                    f"Available: {list(self.TOOLS.keys())}"
                )
            if not self._tool_available(preferred_tool):
                raise ScreenshotError(
                    f"Requested tool '{preferred_tool}' not found in PATH"
                )
            self.tool = preferred_tool
        else:
            detected = self._detect_available_tool()
            if detected is None:
                available = list(self.TOOLS.keys())
                raise ScreenshotError(
                    f"No screenshot tool found. Install one of: {available}",
                    suggestions=[
                        "Debian/Ubuntu: sudo apt install gnome-screenshot",
                        "Arch: sudo pacman -S gnome-screenshot",
                        "Fedora: sudo dnf install gnome-screenshot",
                    ],
                )
            self.tool = detected

    @staticmethod
    def _tool_available(tool_name: str) -> bool:
        """Check if a tool is available in PATH."""
        return shutil.which(tool_name) is not None

    def _detect_available_tool(self) -> Optional[str]:
        """Detect first available screenshot tool."""
        for tool_name in self.TOOLS:
            if self._tool_available(tool_name):
                return tool_name
        return None

    def build_command(self, output_path: str) -> List[str]:
        """Command line for the selected tool."""
        return [arg.replace("{output}", output_path) for arg in self.TOOLS[self.tool]]

    def capture_area(self) -> SourceImage:
        """
        Launch area selection and capture the region.

        Returns:
            SourceImage holding the PNG written by the tool.

        Raises:
            ScreenshotCancelledError: If user cancels the selection.
            ScreenshotError: If capture fails for other reasons.
        """
        fd, output_path = tempfile.mkstemp(prefix="transcoder_capture_", suffix=".png")
        os.close(fd)
        # Some tools refuse to overwrite an existing file
        os.remove(output_path)

        try:
            try:
                result = subprocess.run(
                    self.build_command(output_path),
                    capture_output=True,
                    text=True,
                    timeout=self.TIMEOUT_SECONDS,
                )
            except subprocess.TimeoutExpired:
                raise ScreenshotError(
                    f"Screenshot tool timed out after {self.TIMEOUT_SECONDS} seconds",
                    suggestions=["Try again and select an area more quickly"],
                )

            if result.returncode != 0:
                # User cancelled is usually returncode 1 with no stderr
                stderr_lower = result.stderr.lower() if result.stderr else ""

                if result.returncode == 1 and not result.stderr:
                    raise ScreenshotCancelledError()
                if "cancel" in stderr_lower or "aborted" in stderr_lower:
                    raise ScreenshotCancelledError()

                raise ScreenshotError(
                    f"Screenshot failed (exit code {result.returncode})",
                    technical_details=result.stderr or None,
                )

            # Some tools exit 0 on cancel and write nothing
            if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
                raise ScreenshotCancelledError()

            with open(output_path, "rb") as f:
                data = f.read()
        finally:
            if os.path.exists(output_path):
                os.remove(output_path)

        return SourceImage(data=data, mime_type="image/png", name="screenshot.png")

    @property
    def tool_name(self) -> str:
        """Return the name of the screenshot tool being used."""
        return self.tool


def get_available_tools() -> List[str]:
    """Return list of screenshot tools available on this system."""
    return [
        tool for tool in ScreenshotCapture.TOOLS if ScreenshotCapture._tool_available(tool)
    ]
