"""
Service facade: the entry points exposed to callers (CLI or an HTTP layer).

Jobs:            upload_file / upload_stream, start_processing, get_status
Direct calls:    transcribe_file, analyze_themes, health_check
"""

import logging
from pathlib import Path
from typing import BinaryIO

from chunkscribe.core.config import AppConfig
from chunkscribe.core.job_store import JobStore
from chunkscribe.core.job_queue import JobQueueManager
from chunkscribe.core.pipeline import JobPipeline, TranscribeFn
from chunkscribe.core.rate_limiter import RateLimiter, client_identifier
from chunkscribe.core.models import Job, Segment
from chunkscribe.core.error_codes import (
    ConfigurationError, RateLimitExceeded, ValidationError,
)
from chunkscribe.core.validation import validate_media_path, validate_transcription
from chunkscribe.core.transcribe_groq import (
    transcribe_audio, extract_transcript_text, extract_segments, verify_api_key,
)
from chunkscribe.core.analysis import analyze_themes

logger = logging.getLogger(__name__)


class TranscriberService:
    """Wires the store, rate limiters, pipeline and worker pool together once per process."""

    def __init__(self, config: AppConfig | None = None,
                 store: JobStore | None = None,
                 transcribe_fn: TranscribeFn = transcribe_audio,
                 analyze_fn=analyze_themes,
                 clock=None):
        self.config = config or AppConfig()
        self.store = store or JobStore(self.config.data_dir)

        limiter_kwargs = {'clock': clock} if clock is not None else {}
        # Shared by every job run and by direct transcription
        self.rate_limiter = RateLimiter(self.config.rate_limit_max_requests,
                                        self.config.rate_limit_window_sec,
                                        **limiter_kwargs)
        # Keyed by client identifier
        self.client_rate_limiter = RateLimiter(self.config.rate_limit_max_requests,
                                               self.config.rate_limit_window_sec,
                                               **limiter_kwargs)

        self.transcribe_fn = transcribe_fn
        self.analyze_fn = analyze_fn
        self.pipeline = JobPipeline(self.store, self.config, self.rate_limiter, transcribe_fn)
        self.queue = JobQueueManager(self.store, self.config, self.pipeline)

    # ── Jobs ──────────────────────────────────────────────────────────

    def upload_file(self, source_path: Path, original_name: str | None = None,
                    content_type: str | None = None) -> str:
        return self.queue.upload_file(source_path, original_name, content_type).id

    def upload_stream(self, stream: BinaryIO, original_name: str, size: int,
                      content_type: str | None = None) -> str:
        return self.queue.upload_stream(stream, original_name, size, content_type).id

    def start_processing(self, job_id: str) -> dict:
        return {'status': self.queue.start_processing(job_id)}

    def get_status(self, job_id: str) -> dict:
        return self.queue.get_status(job_id)

    def get_job(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def list_jobs(self) -> list[Job]:
        return self.store.list_jobs()

    def wait(self, job_id: str, timeout: float | None = None) -> dict:
        return self.queue.wait(job_id, timeout)

    def shutdown(self, wait: bool = True):
        self.queue.shutdown(wait=wait)

    # ── Direct calls ──────────────────────────────────────────────────

    def _require_api_key(self) -> str:
        api_key = self.config.api_key
        if not api_key:
            raise ConfigurationError("Transcription API key not configured. Set GROQ_API_KEY.")
        return api_key

    def transcribe_file(self, audio_path: Path, original_name: str | None = None,
                        content_type: str | None = None) -> dict:
        """Transcribe one small file synchronously, without creating a job."""
        api_key = self._require_api_key()
        audio_path = Path(audio_path)
        validate_media_path(audio_path, original_name, content_type)

        decision = self.rate_limiter.check()
        if not decision.allowed:
            raise RateLimitExceeded(
                f"Rate limit exceeded. Maximum {self.rate_limiter.max_requests} requests per "
                f"{self.rate_limiter.window_sec / 60:g} minutes. "
                f"Try again after {decision.reset_at_iso}",
                reset_at=decision.reset_at,
            )

        response = self.transcribe_fn(audio_path, api_key,
                                      model=self.config.transcription_model,
                                      api_base=self.config.api_base)
        return {
            'text': extract_transcript_text(response),
            'segments': [s.to_dict() for s in extract_segments(response)],
            'rateLimit': decision.as_dict(),
        }

    def analyze_themes(self, transcription: str,
                       remote_addr: str | None = None,
                       forwarded_for: str | list[str] | None = None,
                       segments: list[Segment] | None = None,
                       duration_sec: float = 0) -> dict:
        """
        Split a transcript into themes. Limited per caller, keyed by the
        request origin (remote address, else first forwarded hop).
        """
        client_id = client_identifier(remote_addr, forwarded_for)
        api_key = self._require_api_key()
        if not transcription:
            raise ValidationError("No transcription provided")
        validate_transcription(transcription)

        decision = self.client_rate_limiter.check(client_id)
        if not decision.allowed:
            raise RateLimitExceeded(
                f"Rate limit exceeded for {client_id}. Try again after {decision.reset_at_iso}",
                reset_at=decision.reset_at,
            )

        themes = self.analyze_fn(transcription, api_key,
                                 segments=segments,
                                 duration_sec=duration_sec,
                                 model=self.config.analysis_model,
                                 api_base=self.config.api_base)
        return {
            'themes': [t.to_dict() for t in themes],
            'rateLimit': decision.as_dict(),
        }

    def health_check(self) -> dict:
        api_key = self.config.api_key
        if not api_key:
            return {'healthy': False, 'service': 'groq', 'error': 'API key not configured'}

        ok, message = verify_api_key(api_key, self.config.api_base)
        if ok:
            return {'healthy': True, 'service': 'groq', 'status': message}
        return {'healthy': False, 'service': 'groq', 'error': message}
