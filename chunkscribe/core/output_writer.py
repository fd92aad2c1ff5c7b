"""
Output writer: writes a finished job's transcript and segments to disk.
"""

import json
import logging
from pathlib import Path

from chunkscribe.core.constants import JobStatus
from chunkscribe.core.error_codes import ValidationError
from chunkscribe.core.merge import segments_to_text
from chunkscribe.core.models import Job
from chunkscribe.core.security_utils import safe_output_path

logger = logging.getLogger(__name__)


def write_transcript(job: Job, output_root: Path) -> Path:
    """
    Write into <OutputRoot>/<SanitizedName>/:
      transcript.txt         per-chunk text as returned by the service
      transcript_merged.txt  text of the deduplicated segments
      segments.json          the deduplicated segments
    Returns the folder written to.
    """
    if job.status != JobStatus.COMPLETED:
        raise ValidationError(f"Job {job.id} is {job.status}, not completed")

    folder = safe_output_path(output_root, job.original_name, job.id)
    folder.mkdir(parents=True, exist_ok=True)
    segments = job.segments or []

    (folder / "transcript.txt").write_text(job.transcription_text or "", encoding='utf-8')
    (folder / "transcript_merged.txt").write_text(segments_to_text(segments), encoding='utf-8')
    with open(folder / "segments.json", 'w', encoding='utf-8') as f:
        json.dump([s.to_dict() for s in segments], f, indent=2, ensure_ascii=False)

    logger.info("Wrote transcript: %s", folder)
    return folder
