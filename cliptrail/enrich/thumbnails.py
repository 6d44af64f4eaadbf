# Purpose: render square PNG thumbnails with Pillow
# thumbnails are stretched to size x size (no aspect fit) so equal pixels always give equal bytes
# fingerprint() is what the image dedup compares

import io
import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from cliptrail.core.config import settings
from cliptrail.core.errors import EnrichmentError

log = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, (bytes, bytearray)):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def render_thumbnail(source: ImageSource, size: int = None) -> bytes:
    """
    Draw the image into a size x size RGBA canvas and return PNG bytes

    args:
        source: encoded image bytes or a path to an image file
        size: edge length in pixels (defaults to settings.thumbnail_size)
    raises:
        EnrichmentError if the image cannot be decoded
    """
    size = size or settings.thumbnail_size
    try:
        with _open(source) as image:
            thumb = image.convert("RGBA").resize((size, size), Image.LANCZOS)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise EnrichmentError(f"Could not render thumbnail: {e}") from e

    output = io.BytesIO()
    thumb.save(output, format="PNG")
    return output.getvalue()


def fingerprint_from_thumbnail(thumbnail: bytes) -> bytes:
    """36x36 rendering of an existing thumbnail"""
    return render_thumbnail(thumbnail, settings.fingerprint_size)


def fingerprint(source: ImageSource) -> bytes:
    """
    36x36 rendering of a full image, taken through the same thumbnail step a screenshot goes through
    so a clipboard copy of a screenshot matches the screenshot's stored thumbnail
    """
    return fingerprint_from_thumbnail(render_thumbnail(source, settings.thumbnail_size))


def try_fingerprint(source: ImageSource) -> Optional[bytes]:
    try:
        return fingerprint(source)
    except EnrichmentError as e:
        log.debug("[SKIP] No fingerprint: %s", e)
        return None
