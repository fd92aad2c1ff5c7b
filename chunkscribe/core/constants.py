"""
Shared constants for chunkscribe.
Single source of truth — imported by every other module.
"""

import os
import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "chunkscribe"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
DEFAULT_DATA_DIR = pathlib.Path(os.environ.get("CHUNKSCRIBE_DATA_DIR", ".data"))
JOBS_DIRNAME = "jobs"
UPLOADS_DIRNAME = "uploads"
WORK_DIRNAME = "work"
LOGS_DIRNAME = "logs"
CONFIG_FILENAME = "config.json"

# ── Job status values ─────────────────────────────────────────────────
class JobStatus:
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

# Start requests against these are answered with the current status.
ACTIVE_OR_DONE_STATUSES = {JobStatus.PROCESSING, JobStatus.COMPLETED}

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Synchronous, caller-facing
    VALIDATION = "ERR_VALIDATION"
    CONFIGURATION = "ERR_CONFIGURATION"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    JOB_NOT_FOUND = "ERR_JOB_NOT_FOUND"

    # Pipeline (recorded on the job)
    FFMPEG_EXTRACT = "ERR_FFMPEG_EXTRACT"
    CHUNKING = "ERR_CHUNKING"
    NO_CHUNKS = "ERR_NO_CHUNKS"
    TRANSCRIBE_FAILED = "ERR_TRANSCRIBE_FAILED"
    TRANSCRIBE_TIMEOUT = "ERR_TRANSCRIBE_TIMEOUT"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    ANALYSIS_FAILED = "ERR_ANALYSIS_FAILED"

    UNEXPECTED = "ERR_UNEXPECTED"

# ── Audio pipeline defaults ───────────────────────────────────────────
CHUNK_DURATION_SEC = 480       # 8 minutes
CHUNK_OVERLAP_SEC = 10

# Normalization target for extracted audio and chunks
NORM_CHANNELS = 1
NORM_SAMPLE_RATE = 16000
NORM_BITRATE = "64k"
NORM_FORMAT = "mp3"

FFMPEG_EXTRACT_TIMEOUT = 3600
FFMPEG_CHUNK_TIMEOUT = 300
FFPROBE_TIMEOUT = 30

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_START = 0
PROGRESS_AUDIO_EXTRACTED = 5
PROGRESS_CHUNKS_PLANNED = 15
PROGRESS_TRANSCRIBE_END = 85
PROGRESS_COMPLETE = 100

# ── Rate limiting ─────────────────────────────────────────────────────
RATE_LIMIT_MAX_REQUESTS = 10
RATE_LIMIT_WINDOW_SEC = 3600   # 1 hour
RATE_LIMIT_CLEANUP_INTERVAL_SEC = 60
GLOBAL_RATE_KEY = "global"

# ── Worker pool ───────────────────────────────────────────────────────
MAX_CONCURRENT_JOBS = 2

# ── Speech-to-text / LLM service (OpenAI-compatible API) ─────────────
API_KEY_ENV_VARS = ("GROQ_API_KEY", "CHUNKSCRIBE_GROQ_API_KEY")
GROQ_API_BASE = "https://api.groq.com/openai/v1"
TRANSCRIPTION_MODEL = "whisper-large-v3"
ANALYSIS_MODEL = "openai/gpt-oss-120b"
TRANSCRIBE_MIN_TIMEOUT = 120
ANALYSIS_TIMEOUT = 300

# ── Input validation ──────────────────────────────────────────────────
MAX_FILE_SIZE = 3 * 1024 * 1024 * 1024   # 3 GiB
MAX_TRANSCRIPTION_LENGTH = 500_000

ALLOWED_MEDIA_TYPES = {
    # Audio
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/m4a",
    "audio/flac", "audio/ogg", "audio/webm",
    # Video
    "video/mp4", "video/mpeg", "video/quicktime", "video/x-msvideo",
    "video/webm", "video/x-matroska", "video/avi",
    # Some clients send this for any media file
    "application/octet-stream",
}

ALLOWED_MEDIA_EXTENSIONS = (
    ".mp3", ".wav", ".m4a", ".flac", ".ogg", ".webm",
    ".mp4", ".mpeg", ".mov", ".avi", ".mkv", ".m4v",
)

SUSPICIOUS_TEXT_PATTERNS = [
    r"<script",
    r"javascript:",
    r"on\w+\s*=",
]

# Characters replaced in stored upload names
UNSAFE_UPLOAD_CHARS = r"[^\w.-]+"
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FOLDER_NAME_LEN = 200
