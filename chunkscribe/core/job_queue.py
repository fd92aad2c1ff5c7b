"""
Job Queue Manager.
Accepts uploads, starts runs on a worker pool and answers status queries.
"""

import shutil
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future
from pathlib import Path
from typing import BinaryIO

from chunkscribe.core.constants import JobStatus, ACTIVE_OR_DONE_STATUSES, PROGRESS_START
from chunkscribe.core.config import AppConfig
from chunkscribe.core.job_store import JobStore
from chunkscribe.core.models import Job
from chunkscribe.core.pipeline import JobPipeline
from chunkscribe.core.error_codes import ValidationError, ConfigurationError
from chunkscribe.core.validation import validate_media_file, validate_media_path

logger = logging.getLogger(__name__)


class JobQueueManager:
    """
    Owns the worker pool that executes job runs.

    start_processing() is idempotent: a job that is already processing or
    completed is never started a second time, even if the request arrives
    twice at once.
    """

    def __init__(self, store: JobStore, config: AppConfig, pipeline: JobPipeline,
                 max_workers: int | None = None):
        self.store = store
        self.config = config
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or config.max_concurrent_jobs,
            thread_name_prefix="chunkscribe-job",
        )
        self._start_lock = threading.Lock()
        self._futures: dict[str, Future] = {}

    # ── Uploads ───────────────────────────────────────────────────────

    def upload_file(self, source_path: Path, original_name: str | None = None,
                    content_type: str | None = None) -> Job:
        """Validate a media file on disk, copy it into storage and create its job."""
        source_path = Path(source_path)
        original_name = original_name or source_path.name
        validate_media_path(source_path, original_name, content_type)

        job_id = self.store.new_id()
        upload_path = self.store.uploads_path_for_job(job_id, original_name)
        shutil.copyfile(source_path, upload_path)
        return self.store.create(original_name, upload_path, job_id=job_id)

    def upload_stream(self, stream: BinaryIO, original_name: str, size: int,
                      content_type: str | None = None) -> Job:
        """Same as upload_file for an already-open binary stream of known size."""
        validate_media_file(original_name, size, content_type)

        job_id = self.store.new_id()
        upload_path = self.store.uploads_path_for_job(job_id, original_name)
        try:
            with open(upload_path, 'wb') as f:
                shutil.copyfileobj(stream, f)
                written = f.tell()
            if written != size:
                raise ValidationError(
                    f"Upload size mismatch: declared {size} bytes, received {written}"
                )
        except Exception:
            upload_path.unlink(missing_ok=True)
            raise
        return self.store.create(original_name, upload_path, job_id=job_id)

    # ── Runs ──────────────────────────────────────────────────────────

    def start_processing(self, job_id: str) -> str:
        """
        Start a run and return immediately with the job's status.
        Raises JobNotFound, ValidationError or ConfigurationError.
        """
        with self._start_lock:
            job = self.store.get(job_id)

            if not job.video_path:
                raise ValidationError("Job has no video file")

            if job.status in ACTIVE_OR_DONE_STATUSES:
                logger.info("Job %s already %s, not starting", job_id, job.status)
                return job.status

            if not self.config.api_key:
                raise ConfigurationError(
                    "Transcription API key not configured. Set GROQ_API_KEY."
                )

            if job.status == JobStatus.ERROR:
                logger.info("Starting a fresh run for failed job %s", job_id)

            self.store.update(job_id, status=JobStatus.PROCESSING, progress=PROGRESS_START, error=None)
            future = self._executor.submit(self.pipeline.run, job_id)
            self._futures[job_id] = future
            future.add_done_callback(lambda f, job_id=job_id: self._forget(job_id, f))

        return JobStatus.PROCESSING

    def _forget(self, job_id: str, future: Future):
        # a newer run of the same job may already have replaced the entry
        if self._futures.get(job_id) is future:
            self._futures.pop(job_id, None)

    def get_status(self, job_id: str) -> dict:
        return self.store.get(job_id).status_view()

    def wait(self, job_id: str, timeout: float | None = None) -> dict:
        """Block until the job's current run finishes (used by the CLI and tests)."""
        future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_status(job_id)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
