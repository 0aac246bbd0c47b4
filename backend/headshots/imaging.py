import base64
import binascii
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from . import config
from .errors import UploadError
from .models import UploadedImage

logger = logging.getLogger("headshot_studio.imaging")

_PIL_FORMATS = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def normalize_mime(mime_type: Optional[str]) -> Optional[str]:
    if mime_type in {"image/jpeg", "image/jpg", "image/pjpeg"}:
        return "image/jpeg"
    if mime_type in {"image/png", "image/webp", "image/gif"}:
        return mime_type
    return None


def decode_image_b64(b64: str) -> Tuple[bytes, Optional[str]]:
    """Accept raw base64 or a ``data:<mime>;base64,<payload>`` URL."""
    data = b64
    mime = None
    if data.startswith("data:"):
        header, _, payload = data.partition(",")
        mime = header[5:].split(";", 1)[0] or None
        data = payload
    try:
        return base64.b64decode(data, validate=True), mime
    except (binascii.Error, ValueError):
        raise UploadError("Invalid image base64. Expect raw base64 (or data URL) of PNG/JPEG.")


def sniff_mime(img_bytes: bytes) -> str:
    try:
        with Image.open(BytesIO(img_bytes)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise UploadError(f"Could not read uploaded image: {e}")
    mime = _PIL_FORMATS.get(fmt or "")
    if mime is None:
        raise UploadError(f"Unsupported image format: {fmt}")
    return mime


def preprocess_input(img_bytes: bytes, mime: str, max_side: int = 1600) -> Tuple[bytes, str]:
    """Shrink an oversized upload to a JPEG the endpoint will accept."""
    try:
        img = Image.open(BytesIO(img_bytes)).convert("RGB")
        w, h = img.size
        if max(w, h) > max_side:
            scale = max_side / float(max(w, h))
            img = img.resize((int(w * scale), int(h * scale)), Image.LANCZOS)
        buf = BytesIO()
        img.save(buf, format="JPEG", quality=90)
        return buf.getvalue(), "image/jpeg"
    except (OSError, ValueError) as e:
        logger.warning("preprocess_input failed: %s", e)
        return img_bytes, mime


def encode_upload(upload: UploadedImage, max_bytes: int = config.MAX_INPUT_BYTES) -> Tuple[str, str]:
    """Return ``(base64, mime_type)`` for one upload.

    Bytes are sent as-is unless they exceed ``max_bytes``, in which case they
    are re-encoded first.
    """
    name = upload.filename or "image"
    if not upload.data:
        raise UploadError(f"Uploaded image '{name}' is empty")
    mime = sniff_mime(upload.data)
    declared = normalize_mime(upload.mime_type)
    if declared and declared != mime:
        logger.info("declared mime %s for %s, content is %s", upload.mime_type, name, mime)
    data = upload.data
    if len(data) > max_bytes:
        before = len(data)
        data, mime = preprocess_input(data, mime)
        logger.info("compressed input %s -> %s bytes, mime=%s", before, len(data), mime)
    return base64.b64encode(data).decode("utf-8"), mime


def to_data_uri(b64: str, mime_type: Optional[str] = None) -> str:
    return f"data:{mime_type or 'image/png'};base64,{b64}"
