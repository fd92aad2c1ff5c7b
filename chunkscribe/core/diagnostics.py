"""
Diagnostics: tool version detection and system checks.
"""

import logging

from chunkscribe.core.security_utils import run_subprocess_capture
from chunkscribe.core.config import AppConfig

logger = logging.getLogger(__name__)


def get_tool_version(tool: str) -> str:
    """Return the first line of `<tool> -version`, or an error message."""
    try:
        result = run_subprocess_capture([tool, "-version"], timeout=10)
        if result.returncode == 0:
            lines = result.stdout.strip().splitlines()
            return lines[0] if lines else "Unknown"
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"


def get_diagnostics(config: AppConfig) -> dict:
    """Gather all diagnostic information."""
    chunk_duration, overlap = config.chunk_settings
    return {
        "ffmpeg_version": get_tool_version("ffmpeg"),
        "ffprobe_version": get_tool_version("ffprobe"),
        "api_key_configured": bool(config.api_key),
        "api_base": config.api_base,
        "data_dir": str(config.data_dir),
        "chunk_duration_sec": chunk_duration,
        "chunk_overlap_sec": overlap,
        "rate_limit": {
            "max_requests": config.rate_limit_max_requests,
            "window_sec": config.rate_limit_window_sec,
        },
    }
