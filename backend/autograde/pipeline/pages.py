"""Page image normalization for evidence payloads."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from autograde.codec import EncodingError, decode
from autograde.schemas import AttachedFile

logger = logging.getLogger(__name__)

_JPEG_QUALITY = 80


@dataclass
class NormalizedImage:
    """Normalized image blob ready for a vision payload."""

    image_bytes: bytes
    mime_type: str
    width: int
    height: int
    original_size_bytes: int
    final_size_bytes: int


def normalize_image_bytes(content: bytes, max_width: int, jpeg_quality: int = _JPEG_QUALITY) -> NormalizedImage:
    """Apply EXIF orientation, cap the width and re-encode as JPEG."""

    with Image.open(io.BytesIO(content)) as source:
        image = ImageOps.exif_transpose(source).convert("RGB")
        if image.width > max_width:
            scale = max_width / float(image.width)
            image = image.resize((max_width, int(image.height * scale)), Image.Resampling.LANCZOS)

        output = io.BytesIO()
        image.save(output, format="JPEG", quality=jpeg_quality, optimize=True)

    payload = output.getvalue()
    return NormalizedImage(
        image_bytes=payload,
        mime_type="image/jpeg",
        width=image.width,
        height=image.height,
        original_size_bytes=len(content),
        final_size_bytes=len(payload),
    )


def normalize_page_image(file: AttachedFile, max_width: int) -> AttachedFile:
    """Return a shrunk JPEG copy of an image attachment; other files pass through."""
    if not file.data or not file.mime_type.startswith("image/"):
        return file
    try:
        normalized = normalize_image_bytes(decode(file), max_width=max_width)
    except (EncodingError, UnidentifiedImageError, OSError) as exc:
        logger.warning(
            "page image left as uploaded",
            extra={"stage": "normalize_page", "file_id": file.id, "file_name": file.name, "error": str(exc)},
        )
        return file

    logger.info(
        "page image normalized",
        extra={
            "stage": "normalize_page",
            "file_id": file.id,
            "original_size_bytes": normalized.original_size_bytes,
            "final_size_bytes": normalized.final_size_bytes,
            "width": normalized.width,
            "height": normalized.height,
        },
    )
    return file.model_copy(
        update={"mime_type": normalized.mime_type, "data": base64.b64encode(normalized.image_bytes).decode("ascii")}
    )
