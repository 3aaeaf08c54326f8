# backend/app/utils.py
import io
import base64
import mimetypes
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .models import MediaPayload

SUPPORTED_PREFIXES = ("image/", "video/")


def guess_mime_type(filename: Optional[str], declared: Optional[str]) -> str:
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


def validate_image(data: bytes) -> None:
    """
    Raise ValueError if the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Invalid image uploaded: {e}") from e


def media_from_upload(data: bytes, mime_type: str) -> MediaPayload:
    """
    Wrap uploaded bytes as an inline media payload. Images are checked with PIL;
    videos are passed through as-is.
    """
    if not mime_type.startswith(SUPPORTED_PREFIXES):
        raise ValueError(f"Unsupported media type: {mime_type}")
    if mime_type.startswith("image/"):
        validate_image(data)
    b64 = base64.b64encode(data).decode("utf-8")
    return MediaPayload(data=b64, mime_type=mime_type)
