"""
Job store for chunkscribe.
One human-readable JSON file per job under <data_dir>/jobs/.
Every create/update is a full read-modify-write of that file.
"""

import json
import os
import uuid
import logging
from datetime import datetime, timezone
from pathlib import Path

from chunkscribe.core.constants import (
    DEFAULT_DATA_DIR, JOBS_DIRNAME, UPLOADS_DIRNAME, WORK_DIRNAME, JobStatus,
)
from chunkscribe.core.error_codes import JobNotFound
from chunkscribe.core.models import Job, Chunk, Segment
from chunkscribe.core.security_utils import sanitize_upload_name

logger = logging.getLogger(__name__)


class JobStore:
    """
    CRUD over Job records keyed by id.

    The store does not enforce the status state machine and does not
    serialize concurrent updates to the same job; the run that owns a job
    is its only writer.
    """

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir or DEFAULT_DATA_DIR)
        self.jobs_dir = self.data_dir / JOBS_DIRNAME
        self.uploads_dir = self.data_dir / UPLOADS_DIRNAME
        self.work_dir = self.data_dir / WORK_DIRNAME
        self._ensure_dirs()

    def _ensure_dirs(self):
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def _job_path(self, job_id: str) -> Path:
        # ids are uuid4 strings; reject anything that could escape jobs_dir
        if not job_id or Path(job_id).name != job_id or job_id.startswith('.'):
            raise JobNotFound(job_id)
        return self.jobs_dir / f"{job_id}.json"

    def _write(self, job: Job):
        path = self._job_path(job.id)
        tmp_path = path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(job.to_dict(), f, indent=2)
        os.replace(tmp_path, path)

    # ── Job CRUD ──────────────────────────────────────────────────────

    def create(self, original_name: str, video_path: str | Path,
               job_id: str | None = None) -> Job:
        now = self._now()
        job = Job(
            id=job_id or self.new_id(),
            original_name=original_name,
            video_path=str(video_path),
            status=JobStatus.UPLOADED,
            progress=0,
            created_at=now,
            updated_at=now,
        )
        self._write(job)
        logger.info("Created job %s for %s", job.id, original_name)
        return job

    def get(self, job_id: str) -> Job:
        path = self._job_path(job_id)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise JobNotFound(job_id) from None
        return Job.from_dict(data)

    def update(self, job_id: str, **fields) -> Job:
        unknown = set(fields) - Job.field_names()
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        if 'id' in fields or 'created_at' in fields:
            raise ValueError("id and created_at are immutable")

        job = self.get(job_id)
        for name, value in fields.items():
            if name == 'chunks' and value is not None:
                value = [c if isinstance(c, Chunk) else Chunk.from_dict(c) for c in value]
            elif name == 'segments' and value is not None:
                value = [s if isinstance(s, Segment) else Segment.from_dict(s) for s in value]
            setattr(job, name, value)
        job.updated_at = self._now()
        self._write(job)
        return job

    def list_jobs(self) -> list[Job]:
        jobs = []
        for path in self.jobs_dir.glob("*.json"):
            try:
                jobs.append(self.get(path.stem))
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning("Skipping unreadable job record %s: %s", path, e)
        jobs.sort(key=lambda j: j.created_at or '', reverse=True)
        return jobs

    # ── Filesystem layout ─────────────────────────────────────────────

    def uploads_path_for_job(self, job_id: str, filename: str) -> Path:
        self._ensure_dirs()
        return self.uploads_dir / f"{job_id}_{sanitize_upload_name(filename)}"

    def workspace_for_job(self, job_id: str) -> Path:
        workspace = self.work_dir / job_id
        workspace.mkdir(parents=True, exist_ok=True)
        return workspace
