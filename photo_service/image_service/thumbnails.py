from io import BytesIO
from pathlib import PurePosixPath
from typing import NamedTuple
import logging
from PIL import Image, ImageOps

from photo_service.exceptions import ValidationError, PROCESSING_ERROR, INVALID_TYPE

log = logging.getLogger(__name__)

THUMBNAIL_CONTENT_TYPE = "image/jpeg"

MIME_MAP = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

class Thumbnail(NamedTuple):
    data: bytes
    # content type of the source image as decoded, not as declared
    source_content_type: str

def thumbnail_filename(filename: str) -> str:
    """photo.png -> photo.jpg"""
    return f"{PurePosixPath(filename).stem or 'thumbnail'}.jpg"

def derive_thumbnail(data: bytes, size: int = 400, quality: int = 85) -> Thumbnail:
    """
        Cover-fits the image onto a size x size canvas, cropping from the centre,
        and encodes it as JPEG. Animated images contribute their first frame.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            source_format = (img.format or "").upper()
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")
            thumb = ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    except Exception as e:
        # Pillow plugins raise a wide range of errors on corrupt input (OSError, SyntaxError, ...)
        log.warning("Thumbnail derivation failed: %s", e)
        raise ValidationError(PROCESSING_ERROR, "The uploaded image could not be processed.") from e

    source_content_type = MIME_MAP.get(source_format)
    if source_content_type is None:
        raise ValidationError(INVALID_TYPE, "Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed.")

    buf = BytesIO()
    thumb.save(buf, format="JPEG", quality=quality)
    return Thumbnail(data=buf.getvalue(), source_content_type=source_content_type)
