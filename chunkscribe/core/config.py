"""
Application configuration manager.
Stores settings in a JSON file under the data directory; environment
variables override the file. The service API key is only ever read from
the environment.
"""

import os
import json
import logging
from pathlib import Path
from typing import Mapping

from chunkscribe.core.constants import (
    DEFAULT_DATA_DIR, CONFIG_FILENAME, API_KEY_ENV_VARS,
    CHUNK_DURATION_SEC, CHUNK_OVERLAP_SEC,
    RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SEC, MAX_CONCURRENT_JOBS,
    GROQ_API_BASE, TRANSCRIPTION_MODEL, ANALYSIS_MODEL,
)
from chunkscribe.core.chunking import resolve_chunk_settings

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'chunk_duration_sec': CHUNK_DURATION_SEC,
    'chunk_overlap_sec': CHUNK_OVERLAP_SEC,
    'rate_limit_max_requests': RATE_LIMIT_MAX_REQUESTS,
    'rate_limit_window_sec': RATE_LIMIT_WINDOW_SEC,
    'max_concurrent_jobs': MAX_CONCURRENT_JOBS,
    'api_base': GROQ_API_BASE,
    'transcription_model': TRANSCRIPTION_MODEL,
    'analysis_model': ANALYSIS_MODEL,
}

# env var -> config key
_ENV_OVERRIDES = {
    'CHUNK_DURATION_SEC': 'chunk_duration_sec',
    'CHUNK_OVERLAP_SEC': 'chunk_overlap_sec',
    'RATE_LIMIT_MAX_REQUESTS': 'rate_limit_max_requests',
    'RATE_LIMIT_WINDOW_SEC': 'rate_limit_window_sec',
    'MAX_CONCURRENT_JOBS': 'max_concurrent_jobs',
    'CHUNKSCRIBE_API_BASE': 'api_base',
    'CHUNKSCRIBE_TRANSCRIPTION_MODEL': 'transcription_model',
    'CHUNKSCRIBE_ANALYSIS_MODEL': 'analysis_model',
}

_POSITIVE_INTS = {
    'rate_limit_max_requests': RATE_LIMIT_MAX_REQUESTS,
    'max_concurrent_jobs': MAX_CONCURRENT_JOBS,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, data_dir: Path | None = None,
                 config_path: Path | None = None,
                 env: Mapping[str, str] | None = None):
        self.data_dir = Path(data_dir or DEFAULT_DATA_DIR)
        self.path = config_path or (self.data_dir / CONFIG_FILENAME)
        self._env = os.environ if env is None else env
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk and environment, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load config: %s", e)

        for env_name, key in _ENV_OVERRIDES.items():
            raw = self._env.get(env_name)
            if raw is not None and raw.strip():
                self._data[key] = self._validate(key, raw.strip())

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in ('chunk_duration_sec', 'chunk_overlap_sec', 'rate_limit_window_sec'):
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            if key == 'rate_limit_window_sec' and value <= 0:
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            return value

        if key in _POSITIVE_INTS:
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _POSITIVE_INTS[key]
            return max(1, value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    # ── Derived settings ──────────────────────────────────────────────

    @property
    def chunk_settings(self) -> tuple[float, float]:
        """(chunk_duration_sec, chunk_overlap_sec), always a valid pair."""
        return resolve_chunk_settings(self._data.get('chunk_duration_sec'),
                                      self._data.get('chunk_overlap_sec'))

    @property
    def api_key(self) -> str | None:
        for name in API_KEY_ENV_VARS:
            value = (self._env.get(name) or '').strip()
            if value:
                return value
        return None

    @property
    def api_base(self) -> str:
        return str(self._data.get('api_base') or GROQ_API_BASE).rstrip('/')

    @property
    def transcription_model(self) -> str:
        return self._data.get('transcription_model', TRANSCRIPTION_MODEL)

    @property
    def analysis_model(self) -> str:
        return self._data.get('analysis_model', ANALYSIS_MODEL)

    @property
    def rate_limit_max_requests(self) -> int:
        return self._data.get('rate_limit_max_requests', RATE_LIMIT_MAX_REQUESTS)

    @property
    def rate_limit_window_sec(self) -> float:
        return self._data.get('rate_limit_window_sec', RATE_LIMIT_WINDOW_SEC)

    @property
    def max_concurrent_jobs(self) -> int:
        return self._data.get('max_concurrent_jobs', MAX_CONCURRENT_JOBS)
