"""
Image intake.
Validates an uploaded leaf photo, downsamples it when it is larger than the
configured pixel bounds and re-encodes it as a data URL ready to be sent in
a JSON body.
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError, InputError, InvalidFormat, SizeExceeded
from ..models import ImageDimensions, ImageMetadata, ImageUploadResult

logger = logging.getLogger(__name__)

ACCEPTED_FORMATS = ("image/jpeg", "image/jpg", "image/png", "image/webp")

# MIME type -> Pillow encoder name
_PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


@dataclass
class ImageUploadOptions:
    max_size_mb: float = 10
    max_width: int = 2048
    max_height: int = 2048
    quality: float = 0.9  # 0.1 to 1.0 for JPEG/WebP
    accepted_formats: Tuple[str, ...] = field(default_factory=lambda: ACCEPTED_FORMATS)


def process_image_upload(content: bytes, filename: str, mime_type: str, options: Optional[ImageUploadOptions] = None) -> ImageUploadResult:
    """Validate and normalize an uploaded image.

    Raises InvalidFormat, SizeExceeded or DecodeError; each is an InputError.
    """
    opts = options or ImageUploadOptions()

    if mime_type not in opts.accepted_formats:
        raise InvalidFormat(f"Invalid file type. Accepted formats: {', '.join(opts.accepted_formats)}")

    size_mb = len(content) / (1024 * 1024)
    if size_mb > opts.max_size_mb:
        raise SizeExceeded(f"File size ({size_mb:.2f}MB) exceeds maximum allowed size ({opts.max_size_mb}MB)")

    try:
        img = Image.open(BytesIO(content))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError("Failed to process image", details=str(e))

    width, height = img.size
    if width > opts.max_width or height > opts.max_height:
        ratio = min(opts.max_width / width, opts.max_height / height)
        width = max(int(width * ratio), 1)
        height = max(int(height * ratio), 1)
        img = img.resize((width, height), Image.Resampling.LANCZOS)
        logger.debug("Downsampled %s to %dx%d", filename, width, height)

    out_mime = "image/jpeg" if mime_type == "image/jpg" else mime_type
    pil_format = _PIL_FORMATS[mime_type]
    if pil_format == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    buf = BytesIO()
    save_kwargs = {}
    if pil_format in ("JPEG", "WEBP"):
        save_kwargs["quality"] = int(round(opts.quality * 100))
    try:
        img.save(buf, format=pil_format, **save_kwargs)
    except (OSError, ValueError) as e:
        raise DecodeError("Failed to process image", details=str(e))

    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return ImageUploadResult(
        data=f"data:{out_mime};base64,{encoded}",
        metadata=ImageMetadata(
            fileName=filename,
            fileSize=len(content),
            mimeType=mime_type,
            dimensions=ImageDimensions(width=width, height=height),
        ),
    )


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split a `data:<mime>;base64,<payload>` string into (mime, raw bytes)."""
    if not data_url or not data_url.startswith("data:image/"):
        raise InputError("Invalid image format. Must be a base64 data URL.")
    header, sep, payload = data_url.partition(",")
    if not sep or not header.endswith(";base64"):
        raise InputError("Invalid image format. Must be a base64 data URL.")
    mime = header[len("data:"):-len(";base64")]
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputError("Invalid image format. Must be a base64 data URL.", details=str(e))
    if not raw:
        raise InputError("Image data is required")
    return mime, raw
