"""
Security utilities for chunkscribe.
- Upload filename sanitization
- Safe output folder names
- Safe subprocess execution (argument arrays only)
"""

import re
import subprocess
import pathlib
import logging

from chunkscribe.core.constants import (
    UNSAFE_UPLOAD_CHARS,
    UNSAFE_FILENAME_CHARS,
    MAX_FOLDER_NAME_LEN,
)

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_upload_name(filename: str) -> str:
    """Collapse anything outside [A-Za-z0-9_.-] so the name is safe on disk."""
    safe = re.sub(UNSAFE_UPLOAD_CHARS, '_', filename or '')
    # No hidden files and no traversal components
    safe = safe.lstrip('.').replace('..', '_')
    return safe or "upload"


def sanitize_title(title: str) -> str:
    """Sanitize a job name for use as a folder name."""
    if not title:
        return ""
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', title)
    safe = safe.replace('..', '')
    safe = safe.replace('/', '_').replace('\\', '_')
    safe = re.sub(r'[_\s]+', ' ', safe).strip()
    if len(safe) > MAX_FOLDER_NAME_LEN:
        safe = safe[:MAX_FOLDER_NAME_LEN].rstrip()
    safe = safe.strip('.')
    return safe if safe else ""


def safe_output_path(output_root: pathlib.Path, title: str, job_id: str) -> pathlib.Path:
    """
    Build a safe output folder path.  Enforces that realpath(result) starts
    with realpath(output_root).  Falls back to 'job_<job_id>' on failure.
    """
    sanitized = sanitize_title(pathlib.Path(title).stem if title else "")
    if not sanitized:
        sanitized = f"job_{job_id}"

    candidate = output_root / sanitized
    try:
        real_root = output_root.resolve(strict=False)
        real_candidate = candidate.resolve(strict=False)
        if not str(real_candidate).startswith(str(real_root)):
            raise ValueError("Path traversal detected")
    except ValueError:
        candidate = output_root / f"job_{job_id}"

    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )
