from __future__ import annotations

import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

FACES_DIRNAME = "student-faces"


def decode_face_image(value: str) -> bytes:
    """Decode a base64 string or ``data:image/...;base64,`` URL."""

    text = (value or "").strip()
    if text.startswith("data:"):
        _, _, text = text.partition(",")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid face image")


def save_face_image(uploads_dir: str, student_id: str, value: str) -> Optional[str]:
    """Store the student's face as JPEG and return its path, or None when empty."""

    if not value:
        return None
    raw = decode_face_image(value)
    try:
        image = Image.open(io.BytesIO(raw))
        image = image.convert("RGB")
    except (UnidentifiedImageError, OSError):
        raise ValidationError("Invalid face image")

    target_dir = Path(uploads_dir) / FACES_DIRNAME
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"{student_id}.jpg"
    image.save(path, format="JPEG", quality=90)
    logger.info("Face image saved for student=%s", student_id)
    return path.as_posix()
