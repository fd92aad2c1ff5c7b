"""
Audio extraction and probing using ffmpeg / ffprobe.
Target: mono, 16kHz, MP3 64kbps.
"""

import math
import logging
from pathlib import Path

from chunkscribe.core.security_utils import run_subprocess_capture
from chunkscribe.core.error_codes import JobError
from chunkscribe.core.constants import (
    ErrorCode, NORM_CHANNELS, NORM_SAMPLE_RATE, NORM_BITRATE,
    FFMPEG_EXTRACT_TIMEOUT, FFMPEG_CHUNK_TIMEOUT, FFPROBE_TIMEOUT,
)

logger = logging.getLogger(__name__)


def _normalize_args() -> list[str]:
    return [
        "-vn",                          # drop video
        "-ac", str(NORM_CHANNELS),      # mono
        "-ar", str(NORM_SAMPLE_RATE),   # 16kHz
        "-b:a", NORM_BITRATE,           # 64k
    ]


def _stderr_tail(stderr: str | None, limit: int = 300) -> str:
    stderr = (stderr or "").strip()
    return stderr[-limit:] if stderr else "unknown error"


def extract_audio(input_path: Path, output_path: Path) -> Path:
    """
    Extract the full audio track from a media file, normalized for
    transcription. Overwrites output_path if it exists.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    args = [
        "ffmpeg",
        "-y",
        "-i", str(input_path),
        *_normalize_args(),
        str(output_path),
    ]

    try:
        result = run_subprocess_capture(args, timeout=FFMPEG_EXTRACT_TIMEOUT)
    except Exception as e:
        raise JobError(ErrorCode.FFMPEG_EXTRACT, f"ffmpeg audio extraction failed: {e}") from e

    if result.returncode != 0:
        raise JobError(ErrorCode.FFMPEG_EXTRACT,
                       f"ffmpeg failed (rc={result.returncode}): {_stderr_tail(result.stderr)}")

    if not output_path.exists():
        raise JobError(ErrorCode.FFMPEG_EXTRACT, "Extracted audio file not created")

    logger.info("Extracted audio: %s", output_path)
    return output_path


def extract_audio_slice(input_path: Path, output_path: Path,
                        start_sec: float, duration_sec: float) -> Path:
    """Cut [start, start + duration) out of input_path as a standalone normalized file."""
    args = [
        "ffmpeg",
        "-y",
        "-ss", str(start_sec),
        "-t", str(duration_sec),
        "-i", str(input_path),
        *_normalize_args(),
        str(output_path),
    ]

    try:
        result = run_subprocess_capture(args, timeout=FFMPEG_CHUNK_TIMEOUT)
    except Exception as e:
        raise JobError(ErrorCode.CHUNKING, f"Chunk extraction failed: {e}") from e

    if result.returncode != 0:
        raise JobError(ErrorCode.CHUNKING,
                       f"ffmpeg chunk failed (rc={result.returncode}): {_stderr_tail(result.stderr, 200)}")

    if not output_path.exists():
        raise JobError(ErrorCode.CHUNKING, f"Chunk file not created: {output_path.name}")

    return output_path


def get_audio_duration(audio_path: Path) -> float:
    """Get audio duration in seconds using ffprobe. 0.0 when unavailable."""
    args = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(audio_path),
    ]

    try:
        result = run_subprocess_capture(args, timeout=FFPROBE_TIMEOUT)
    except Exception as e:
        logger.warning("ffprobe failed on %s: %s", audio_path, e)
        return 0.0

    if result.returncode != 0:
        logger.warning("ffprobe rc=%d on %s: %s", result.returncode, audio_path,
                       _stderr_tail(result.stderr, 200))
        return 0.0

    try:
        duration = float(result.stdout.strip())
    except ValueError:
        return 0.0
    return duration if math.isfinite(duration) else 0.0
