"""
Validation and ingestion of uploaded medical images.
"""

import base64
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from radiodx.core.config import settings
from radiodx.core.errors import InputValidationError
from radiodx.diagnostics.models import UploadedImage, utcnow

VALID_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".dcm")

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class IncomingFile:
    """An uploaded file before validation"""
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def generate_id() -> str:
    """Unique id for images and sessions: '<epoch ms>-<random base36>'."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"{int(time.time() * 1000)}-{suffix}"


def is_valid_image_extension(filename: str) -> bool:
    return Path(filename).suffix.lower() in VALID_EXTENSIONS


def format_file_size(num_bytes: int) -> str:
    """Human readable size, e.g. '0 B', '1.5 KB', '12 MB'."""
    if num_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(num_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    text = f"{value:.1f}".rstrip("0").rstrip(".")
    return f"{text} {units[exponent]}"


def validate_files(files: Sequence[IncomingFile]) -> List[str]:
    """
    Check an upload against the configured limits.

    Returns every problem found; an empty list means the upload is acceptable.
    """
    errors: List[str] = []
    if not files:
        return ["No files selected"]

    if len(files) > settings.MAX_FILES:
        errors.append(f"Maximum {settings.MAX_FILES} images allowed")

    total_size = 0
    for index, file in enumerate(files, start=1):
        if (file.content_type or "").lower() not in settings.SUPPORTED_MEDIA_TYPES:
            errors.append(
                f"File {index} ({file.filename}): Unsupported format. "
                "Supported: JPEG, PNG, BMP, TIFF, WebP, DICOM"
            )
        if file.size > settings.max_file_size_bytes:
            errors.append(f"File {index} ({file.filename}): Size exceeds {settings.MAX_FILE_SIZE_MB}MB limit")
        total_size += file.size

    if total_size > settings.max_total_size_bytes:
        errors.append(f"Total upload size exceeds {format_file_size(settings.max_total_size_bytes)} limit")

    return errors


def ingest_files(files: Sequence[IncomingFile], uploaded_at=None) -> List[UploadedImage]:
    """Validate files and turn them into images with base64 payloads, keeping order."""
    errors = validate_files(files)
    if errors:
        raise InputValidationError(errors)

    return [
        UploadedImage(
            id=generate_id(),
            filename=file.filename,
            size=file.size,
            media_type=file.content_type.lower(),
            data=base64.b64encode(file.content).decode("ascii"),
            uploaded_at=uploaded_at or utcnow(),
        )
        for file in files
    ]


def resolve_session_id(session_id: Optional[str]) -> str:
    return session_id.strip() if session_id and session_id.strip() else generate_id()
