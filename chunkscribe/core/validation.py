"""
Input validation for uploads and transcript text.
Every check raises ValidationError with a caller-facing description.
"""

import re
from pathlib import Path

from chunkscribe.core.constants import (
    MAX_FILE_SIZE, MAX_TRANSCRIPTION_LENGTH,
    ALLOWED_MEDIA_TYPES, ALLOWED_MEDIA_EXTENSIONS, SUSPICIOUS_TEXT_PATTERNS,
)
from chunkscribe.core.error_codes import ValidationError


def _format_gb(size: int) -> str:
    return f"{size / 1024 / 1024 / 1024:.2f}GB"


def validate_media_file(filename: str | None, size: int | None,
                        content_type: str | None = None):
    """Check name, size, extension and (optional) MIME type of an upload."""
    if not filename or size is None:
        raise ValidationError("Invalid file: missing filename or data")

    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"File too large: {_format_gb(size)}. Maximum allowed: {_format_gb(MAX_FILE_SIZE)}"
        )

    if size == 0:
        raise ValidationError("File is empty")

    extension = Path(filename).suffix.lower()
    if extension not in ALLOWED_MEDIA_EXTENSIONS:
        raise ValidationError(
            f"Invalid file type: {extension or '(none)'}. "
            f"Allowed: {', '.join(ALLOWED_MEDIA_EXTENSIONS)}"
        )

    if content_type and content_type.lower() not in ALLOWED_MEDIA_TYPES:
        raise ValidationError(
            f"Invalid MIME type: {content_type}. "
            f"Allowed: {', '.join(sorted(ALLOWED_MEDIA_TYPES))}"
        )


def validate_media_path(path: Path, filename: str | None = None,
                        content_type: str | None = None):
    """validate_media_file for a file already on disk."""
    if not path.is_file():
        raise ValidationError(f"No such file: {path}")
    validate_media_file(filename or path.name, path.stat().st_size, content_type)


def validate_transcription(transcription) -> str:
    if not transcription or not isinstance(transcription, str):
        raise ValidationError("Transcription must be a non-empty string")

    if len(transcription) > MAX_TRANSCRIPTION_LENGTH:
        raise ValidationError(
            f"Transcription too long: {len(transcription)} characters. "
            f"Maximum: {MAX_TRANSCRIPTION_LENGTH}"
        )

    for pattern in SUSPICIOUS_TEXT_PATTERNS:
        if re.search(pattern, transcription, re.IGNORECASE):
            raise ValidationError("Transcription contains potentially unsafe content")

    return transcription
