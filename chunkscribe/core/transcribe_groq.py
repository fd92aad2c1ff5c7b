"""
Speech-to-text over an OpenAI-compatible audio transcription API (Groq by default).
Requests verbose JSON so the response carries segment-level timestamps.
No retries here: any failure is surfaced to the caller as a JobError.
"""

import json
import logging
import requests
from pathlib import Path

from chunkscribe.core.error_codes import JobError, ConfigurationError
from chunkscribe.core.constants import (
    ErrorCode, GROQ_API_BASE, TRANSCRIPTION_MODEL, TRANSCRIBE_MIN_TIMEOUT,
)
from chunkscribe.core.models import Segment

logger = logging.getLogger(__name__)


def _auth_headers(api_key: str) -> dict:
    return {"Authorization": f"Bearer {api_key}"}


def verify_api_key(api_key: str, api_base: str = GROQ_API_BASE) -> tuple[bool, str]:
    """
    Verify an API key with a lightweight models-list request.
    Returns (success: bool, message: str).
    """
    try:
        resp = requests.get(
            f"{api_base}/models",
            headers=_auth_headers(api_key),
            timeout=10,
        )
        if resp.status_code == 200:
            return True, "available"
        elif resp.status_code in (401, 403):
            return False, "Key invalid or rejected"
        else:
            return False, f"Unexpected response: {resp.status_code}"
    except requests.exceptions.ConnectionError:
        return False, "Network error — could not reach transcription service"
    except requests.exceptions.Timeout:
        return False, "Network error — request timed out"
    except requests.exceptions.RequestException as e:
        return False, f"Network error: {e}"


def transcribe_audio(audio_path: Path, api_key: str,
                     model: str = TRANSCRIPTION_MODEL,
                     api_base: str = GROQ_API_BASE,
                     transcript_output_path: Path | None = None) -> dict:
    """
    Transcribe one audio file and return the service's verbose JSON response
    ({text, segments: [{start, end, text, ...}], ...}).
    """
    if not api_key:
        raise ConfigurationError("Transcription API key not configured")

    data = {
        "model": model,
        "response_format": "verbose_json",
        "timestamp_granularities[]": "segment",
    }

    file_size = audio_path.stat().st_size
    # ~1 min per 10MB, minimum 120s
    timeout_sec = max(TRANSCRIBE_MIN_TIMEOUT, int(file_size / (10 * 1024 * 1024) * 60) + 60)

    try:
        with open(audio_path, 'rb') as f:
            resp = requests.post(
                f"{api_base}/audio/transcriptions",
                headers=_auth_headers(api_key),
                data=data,
                files={"file": (audio_path.name, f, "audio/mpeg")},
                timeout=timeout_sec,
            )
    except requests.exceptions.Timeout:
        raise JobError(ErrorCode.TRANSCRIBE_TIMEOUT, "Transcription request timed out")
    except requests.exceptions.ConnectionError:
        raise JobError(ErrorCode.NETWORK_TRANSIENT, "Network error connecting to transcription service")
    except requests.exceptions.RequestException as e:
        raise JobError(ErrorCode.TRANSCRIBE_FAILED, f"Transcription request failed: {e}")

    if resp.status_code == 429:
        raise JobError(ErrorCode.NETWORK_TRANSIENT, "Transcription service rate limited (429)")

    if resp.status_code in (502, 503, 504):
        raise JobError(ErrorCode.NETWORK_TRANSIENT,
                       f"Transcription service unavailable ({resp.status_code})")

    if resp.status_code != 200:
        # never include request headers; the body is safe to surface
        error_body = resp.text[:300] if resp.text else "No response body"
        raise JobError(ErrorCode.TRANSCRIBE_FAILED,
                       f"Transcription service returned {resp.status_code}: {error_body}")

    try:
        result = resp.json()
    except ValueError:
        raise JobError(ErrorCode.TRANSCRIBE_FAILED, "Failed to parse transcription response JSON")

    if transcript_output_path:
        transcript_output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(transcript_output_path, 'w') as f:
            json.dump(result, f, indent=2)

    return result


def extract_transcript_text(response: dict) -> str:
    """Whole-text result of a transcription response."""
    text = response.get('text') if isinstance(response, dict) else None
    return str(text).strip() if text else ""


def extract_segments(response: dict) -> list[Segment]:
    """
    Timestamped segments of a transcription response, in the submitted
    audio's own time base. Empty or zero-length segments are skipped.
    """
    raw_segments = response.get('segments') if isinstance(response, dict) else None
    if not isinstance(raw_segments, list):
        return []

    segments = []
    for item in raw_segments:
        if not isinstance(item, dict):
            continue
        text = str(item.get('text') or '').strip()
        try:
            start = float(item.get('start'))
            end = float(item.get('end'))
        except (TypeError, ValueError):
            logger.warning("Skipping segment with bad timestamps: %r", item)
            continue
        if not text or end <= start:
            continue
        segments.append(Segment(start=start, end=end, text=text))
    return segments
