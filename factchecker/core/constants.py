"""
Shared constants for Video Fact-Checker.
Single source of truth — imported by every other module.
"""

import os
import pathlib
import tempfile

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "Video Fact-Checker API"
APP_SLUG = "video-fact-checker"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

CONFIG_DIR = HOME / ".config" / APP_SLUG
CONFIG_PATH = pathlib.Path(os.environ.get("FACTCHECKER_CONFIG", CONFIG_DIR / "config.json"))
LOG_DIR = HOME / ".local" / "state" / APP_SLUG
DEFAULT_TEMP_DIR = pathlib.Path(tempfile.gettempdir()) / APP_SLUG

# ── Job status values ─────────────────────────────────────────────────
class JobStatus:
    PENDING = "pending"
    DOWNLOADING = "downloading"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"

# A background task owns the job while it is in one of these states
ACTIVE_STATUSES = {
    JobStatus.PENDING,
    JobStatus.DOWNLOADING,
    JobStatus.TRANSCRIBING,
    JobStatus.ANALYZING,
}

# ── Claim verdicts ────────────────────────────────────────────────────
class ClaimStatus:
    TRUE = "true"
    FALSE = "false"
    PARTIALLY_TRUE = "partially_true"
    UNVERIFIABLE = "unverifiable"

CLAIM_STATUSES = (
    ClaimStatus.TRUE,
    ClaimStatus.FALSE,
    ClaimStatus.PARTIALLY_TRUE,
    ClaimStatus.UNVERIFIABLE,
)

# Credit per verdict, out of 100
CLAIM_STATUS_CREDIT = {
    ClaimStatus.TRUE: 100,
    ClaimStatus.PARTIALLY_TRUE: 50,
    ClaimStatus.UNVERIFIABLE: 50,
    ClaimStatus.FALSE: 0,
}

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Request-level
    INVALID_INPUT = "ERR_INVALID_INPUT"
    NOT_FOUND = "ERR_NOT_FOUND"
    NOT_READY = "ERR_NOT_READY"
    ALREADY_IN_PROGRESS = "ERR_ALREADY_IN_PROGRESS"
    ANALYSIS_INCOMPLETE = "ERR_ANALYSIS_INCOMPLETE"

    # Job-level
    DOWNLOAD_FAILED = "ERR_DOWNLOAD_FAILED"
    TRANSCRIPTION_FAILED = "ERR_TRANSCRIPTION_FAILED"
    ANALYSIS_FAILED = "ERR_ANALYSIS_FAILED"
    UNCONFIGURED = "ERR_UNCONFIGURED"
    CHUNKING = "ERR_CHUNKING"
    TOOL_MISSING = "ERR_TOOL_MISSING"

    # Per-call, retryable
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    INFERENCE_TIMEOUT = "ERR_INFERENCE_TIMEOUT"
    INFERENCE_FAILED = "ERR_INFERENCE_FAILED"
    EMPTY_RESPONSE = "ERR_EMPTY_RESPONSE"

RETRYABLE_ERRORS = {
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.RATE_LIMITED,
    ErrorCode.INFERENCE_TIMEOUT,
    ErrorCode.INFERENCE_FAILED,
    ErrorCode.EMPTY_RESPONSE,
}

# ── Audio pipeline defaults ───────────────────────────────────────────
CHUNK_THRESHOLD_SEC = 10 * 60     # chunk only audio longer than this
CHUNK_DURATION_SEC = 5 * 60       # window length, no overlap

# Base64 inflates payloads by ~33%, so stay well under the inline request limit
INLINE_SIZE_THRESHOLD = 4 * 1024 * 1024

AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".webm": "audio/webm",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
}
DEFAULT_AUDIO_MIME = "audio/mpeg"

# ── Retry / polling ───────────────────────────────────────────────────
MAX_ATTEMPTS = 3
UPLOAD_BACKOFF_SEC = 2.0          # exponential: 2s, 4s
INLINE_BACKOFF_SEC = 2.0          # fixed
FILE_GENERATE_BACKOFF_SEC = 3.0   # fixed
PROBE_ATTEMPTS = 2
PROBE_BACKOFF_SEC = 1.0

POLL_INTERVAL_SEC = 2.0
POLL_MAX_TRIES_FILE = 120
POLL_MAX_TRIES_CHUNK = 60

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_DOWNLOAD_START = 5
PROGRESS_DOWNLOAD_INFO = 15
PROGRESS_DOWNLOAD_AUDIO = 25
PROGRESS_DOWNLOAD_DONE = 40
PROGRESS_TRANSCRIBE_START = 45
PROGRESS_TRANSCRIBE_PREPARE = 48
PROGRESS_CHUNKS_START = 50
PROGRESS_CHUNKS_END = 68
PROGRESS_TRANSCRIBE_DONE = 70
PROGRESS_ANALYSIS_START = 75
PROGRESS_VERIFY = 80
PROGRESS_SCORING = 90
PROGRESS_ANALYSIS_DONE = 100

# ── Gemini ────────────────────────────────────────────────────────────
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_UPLOAD_URL = "https://generativelanguage.googleapis.com/upload/v1beta/files"
GEMINI_TRANSCRIPTION_MODEL = "gemini-2.5-flash"
GEMINI_ANALYSIS_MODEL = "gemini-3-flash-preview"
GEMINI_KEY_PLACEHOLDER = "your_gemini_api_key_here"

class FileState:
    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"

# ── Job store ─────────────────────────────────────────────────────────
MAX_JOBS = 200
MAX_WORKERS = 4

# ── Supported inputs ──────────────────────────────────────────────────
SUPPORTED_LANGUAGES = [
    {"code": "en", "name": "English", "nativeName": "English"},
    {"code": "ar", "name": "Arabic", "nativeName": "العربية"},
    {"code": "fr", "name": "French", "nativeName": "Français"},
    {"code": "es", "name": "Spanish", "nativeName": "Español"},
    {"code": "de", "name": "German", "nativeName": "Deutsch"},
    {"code": "it", "name": "Italian", "nativeName": "Italiano"},
    {"code": "pt", "name": "Portuguese", "nativeName": "Português"},
    {"code": "ru", "name": "Russian", "nativeName": "Русский"},
    {"code": "zh", "name": "Chinese", "nativeName": "中文"},
    {"code": "ja", "name": "Japanese", "nativeName": "日本語"},
    {"code": "ko", "name": "Korean", "nativeName": "한국어"},
    {"code": "hi", "name": "Hindi", "nativeName": "हिन्दी"},
    {"code": "tr", "name": "Turkish", "nativeName": "Türkçe"},
]

SUPPORTED_PLATFORMS = [
    {"name": "YouTube", "domains": ["youtube.com", "youtu.be"]},
    {"name": "Facebook", "domains": ["facebook.com", "fb.watch"]},
    {"name": "Instagram", "domains": ["instagram.com"]},
    {"name": "Twitter/X", "domains": ["twitter.com", "x.com"]},
    {"name": "TikTok", "domains": ["tiktok.com"]},
]

UNKNOWN_PLATFORM = "Unknown"
