"""
Job pipeline: one run of extract → plan → transcribe → merge for a job.
"""

import logging
from pathlib import Path
from typing import Callable

from chunkscribe.core.constants import (
    JobStatus, ErrorCode, NORM_FORMAT, PROGRESS_START,
    PROGRESS_AUDIO_EXTRACTED, PROGRESS_CHUNKS_PLANNED,
    PROGRESS_TRANSCRIBE_END, PROGRESS_COMPLETE,
)
from chunkscribe.core.config import AppConfig
from chunkscribe.core.job_store import JobStore
from chunkscribe.core.models import Job, Chunk, ChunkResult
from chunkscribe.core.error_codes import JobError, RateLimitExceeded, error_message
from chunkscribe.core.audio_extract import extract_audio
from chunkscribe.core.chunking import plan_chunks
from chunkscribe.core.rate_limiter import RateLimiter
from chunkscribe.core.transcribe_groq import (
    transcribe_audio, extract_transcript_text, extract_segments,
)
from chunkscribe.core.merge import merge_segments, join_chunk_texts

logger = logging.getLogger(__name__)

TranscribeFn = Callable[..., dict]


def transcribe_progress(done: int, total: int) -> int:
    """Linear progress between chunk planning and the pre-completion ceiling."""
    span = PROGRESS_TRANSCRIBE_END - PROGRESS_CHUNKS_PLANNED
    return PROGRESS_CHUNKS_PLANNED + int((done / total) * span)


def raw_response_path(chunk_path: Path) -> Path:
    """Where a chunk's raw service response is kept: <chunks>/raw/<chunk>.json"""
    return chunk_path.parent / "raw" / f"{chunk_path.stem}.json"


class JobPipeline:
    """
    Runs a single job to completion or failure.

    Chunks are transcribed strictly one at a time, each call admitted by the
    shared rate limiter. Every failure ends the run with status=error; no
    step is retried.
    """

    def __init__(self, store: JobStore, config: AppConfig, rate_limiter: RateLimiter,
                 transcribe_fn: TranscribeFn = transcribe_audio):
        self.store = store
        self.config = config
        self.rate_limiter = rate_limiter
        self.transcribe_fn = transcribe_fn

    def run(self, job_id: str):
        """Execute one run. Failures are recorded on the job, never raised."""
        try:
            job = self.store.get(job_id)
            self._run(job)
            logger.info("Completed job %s", job_id)
        except JobError as e:
            logger.error("Job %s failed [%s]: %s", job_id, e.code, e.message)
            self._mark_failed(job_id, e)
        except Exception as e:
            logger.error("Unexpected error processing job %s: %s", job_id, e, exc_info=True)
            self._mark_failed(job_id, e)

    def _mark_failed(self, job_id: str, exc: Exception):
        try:
            self.store.update(job_id,
                              status=JobStatus.ERROR,
                              progress=PROGRESS_START,
                              error=error_message(exc)[:2000] or "Processing failed")
        except Exception as e:
            logger.error("Could not record failure for job %s: %s", job_id, e, exc_info=True)

    def _run(self, job: Job):
        if not job.video_path:
            raise JobError(ErrorCode.UNEXPECTED, "Job has no video file")

        api_key = self.config.api_key
        chunks, overlap = self._prepare_chunks(job)

        results: list[ChunkResult] = []
        texts: list[str] = []
        total = len(chunks)

        for i, chunk in enumerate(chunks):
            decision = self.rate_limiter.check()
            if not decision.allowed:
                raise RateLimitExceeded(
                    f"Rate limit exceeded before chunk {i + 1}/{total}. "
                    f"Try again after {decision.reset_at_iso}",
                    reset_at=decision.reset_at,
                )

            logger.info("Job %s: transcribing chunk %d/%d (start=%.1fs)",
                        job.id, i + 1, total, chunk.start)
            chunk_path = Path(chunk.path)
            response = self.transcribe_fn(
                chunk_path, api_key,
                model=self.config.transcription_model,
                api_base=self.config.api_base,
                transcript_output_path=raw_response_path(chunk_path),
            )

            results.append(ChunkResult(offset=chunk.start, segments=extract_segments(response)))
            texts.append(extract_transcript_text(response))

            self.store.update(job.id, progress=transcribe_progress(i + 1, total))

        merged = merge_segments(results, overlap)
        self.store.update(job.id,
                          status=JobStatus.COMPLETED,
                          progress=PROGRESS_COMPLETE,
                          transcription_text=join_chunk_texts(texts),
                          segments=merged,
                          error=None)

    def _prepare_chunks(self, job: Job) -> tuple[list[Chunk], float]:
        """
        Extract and plan, or reuse the chunk list recorded by an earlier run.
        A job's chunk list is never re-planned once set.
        """
        if job.chunks and all(Path(c.path).exists() for c in job.chunks):
            logger.info("Job %s: reusing %d planned chunks", job.id, len(job.chunks))
            overlap = job.chunk_overlap
            if overlap is None:
                overlap = self.config.chunk_settings[1]
            self.store.update(job.id, progress=PROGRESS_CHUNKS_PLANNED)
            return job.chunks, overlap

        if job.chunks:
            raise JobError(ErrorCode.CHUNKING,
                           "Planned chunk files are missing; upload the file again")

        workspace = self.store.workspace_for_job(job.id)
        audio_path = extract_audio(Path(job.video_path), workspace / f"audio.{NORM_FORMAT}")
        self.store.update(job.id, audio_path=str(audio_path), progress=PROGRESS_AUDIO_EXTRACTED)

        chunk_duration, overlap = self.config.chunk_settings
        duration, chunks = plan_chunks(audio_path, workspace / "chunks", chunk_duration, overlap)
        if not chunks:
            raise JobError(ErrorCode.NO_CHUNKS, "No audio chunks were produced")

        logger.info("Job %s: %.1fs of audio in %d chunks", job.id, duration, len(chunks))
        self.store.update(job.id, chunks=chunks, chunk_overlap=overlap,
                          progress=PROGRESS_CHUNKS_PLANNED)
        return chunks, overlap
