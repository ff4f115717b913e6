"""Submission checks run before any network call."""

import io
from typing import Optional

from PIL import Image, UnidentifiedImageError

from nutrivision.domain.shared.errors import ValidationError

# Maximum image size: 5MB
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def detect_image_type(data: bytes) -> Optional[str]:
    """MIME type sniffed from the image header, None if Pillow cannot read it.

    Raises:
        ValidationError: header declares more pixels than Pillow will decode
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except Image.DecompressionBombError as e:
        raise ValidationError("Image dimensions too large") from e
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())


def validate_submission(
    user_id: str,
    data: bytes,
    content_type: Optional[str] = None,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> str:
    """Check a submission and return the image MIME type to store it with.

    A caller-declared type that is not image/* is rejected before the bytes
    are even looked at.

    Raises:
        ValidationError: empty user, empty or oversized payload, non-image content
    """
    if not user_id or not user_id.strip():
        raise ValidationError("User ID cannot be empty")

    if not data:
        raise ValidationError("Image is empty")

    if len(data) > max_bytes:
        raise ValidationError(
            f"Image too large: {len(data)} bytes (max {max_bytes})"
        )

    if content_type:
        declared = content_type.split(";", 1)[0].strip().lower()
        if not declared.startswith("image/"):
            raise ValidationError(f"Content type '{declared}' is not an image")

    detected = detect_image_type(data)
    if detected is None:
        raise ValidationError("Content is not a recognizable image")
    return detected
