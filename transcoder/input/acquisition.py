"""
Image acquisition from the file picker, drag-and-drop and the clipboard.

Every entry point produces the same SourceImage so the rest of the
pipeline does not care where an image came from.
"""

import io
import mimetypes
from pathlib import Path
from typing import Callable, Iterable, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from ..models import SourceImage
from ..utils.errors import ImageInputError


IMAGE_MIME_PREFIX = "image/"

# (mime type, loader) pairs as offered by a drop or paste payload
MimeItem = Tuple[str, Callable[[], bytes]]


def is_image_type(mime_type: Optional[str]) -> bool:
    """True for any image/* MIME type."""
    return bool(mime_type) and mime_type.lower().startswith(IMAGE_MIME_PREFIX)


def _sniff_mime_type(data: bytes) -> Optional[str]:
    """Ask Pillow what the bytes are when the file name gives no hint."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def acquire_bytes(data: bytes, mime_type: str, name: str = "image") -> SourceImage:
    """
    Wrap already-encoded image bytes.

    Raises:
        ImageInputError: If the MIME type is not an image type.
    """
    if not is_image_type(mime_type):
        raise ImageInputError(
            f"'{name}' is not an image ({mime_type or 'unknown type'})"
        )
    return SourceImage(data=data, mime_type=mime_type.lower(), name=name)


def acquire_file(path: Union[str, Path]) -> SourceImage:
    """
    Load an image file chosen in the file picker or dropped on the window.

    Raises:
        ImageInputError: If the file cannot be read or is not an image.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageInputError(
            f"Could not read '{path.name}'",
            technical_details=str(e),
        )

    mime_type, _ = mimetypes.guess_type(path.name)
    if not is_image_type(mime_type):
        mime_type = _sniff_mime_type(data)

    image = acquire_bytes(data, mime_type or "", name=path.name)
    return SourceImage(
        data=image.data,
        mime_type=image.mime_type,
        name=image.name,
        preview_path=str(path),
    )


def acquire_first_image(items: Iterable[MimeItem]) -> Optional[SourceImage]:
    """
    Pick the first image-typed item from a drop or paste payload.

    Non-image items are skipped; only the chosen item's loader is called.
    Returns None when the payload holds no image.
    """
    for mime_type, loader in items:
        if is_image_type(mime_type):
            subtype = mime_type.split("/", 1)[1].split(";")[0] or "png"
            return acquire_bytes(loader(), mime_type, name=f"pasted.{subtype}")
    return None
