"""
Application configuration manager.
Stores settings in a JSON file; selected keys can be overridden from the environment,
which may itself be seeded from a .env file.
"""

import json
import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from factchecker.core.constants import (
    CONFIG_PATH, DEFAULT_TEMP_DIR, GEMINI_KEY_PLACEHOLDER,
    CHUNK_THRESHOLD_SEC, CHUNK_DURATION_SEC, INLINE_SIZE_THRESHOLD,
    GEMINI_TRANSCRIPTION_MODEL, GEMINI_ANALYSIS_MODEL,
    MAX_JOBS, MAX_WORKERS,
)

# Validation bounds
_CHUNK_THRESHOLD_MIN = 60
_CHUNK_THRESHOLD_MAX = 7200
_CHUNK_DURATION_MIN = 60
_CHUNK_DURATION_MAX = 3600
_INLINE_SIZE_MAX = 20 * 1024 * 1024   # Gemini rejects inline requests above 20MB
_MAX_JOBS_MIN = 1
_MAX_WORKERS_MAX = 32

logger = logging.getLogger(__name__)


def load_env_file(path: Path | None = None) -> bool:
    """
    Load KEY=value pairs from a .env file into os.environ.
    Without a path, the nearest .env at or above the working directory is used.
    Variables already set in the environment win.
    """
    env_file = str(path) if path else find_dotenv(usecwd=True)
    if not env_file:
        return False
    loaded = load_dotenv(env_file, override=False)
    if loaded:
        logger.info("Loaded environment from %s", env_file)
    return loaded


_DEFAULTS = {
    'temp_dir': str(DEFAULT_TEMP_DIR),
    'host': '0.0.0.0',
    'port': 3000,
    'max_workers': MAX_WORKERS,
    'max_jobs': MAX_JOBS,
    'chunk_threshold_sec': CHUNK_THRESHOLD_SEC,
    'chunk_duration_sec': CHUNK_DURATION_SEC,
    'inline_size_threshold': INLINE_SIZE_THRESHOLD,
    'transcription_model': GEMINI_TRANSCRIPTION_MODEL,
    'analysis_model': GEMINI_ANALYSIS_MODEL,
    'ffmpeg_path': '',
    'gemini_api_key': '',
}

# Environment variable → config key
_ENV_OVERRIDES = {
    'PORT': 'port',
    'TEMP_DIR': 'temp_dir',
    'FFMPEG_PATH': 'ffmpeg_path',
    'GEMINI_TRANSCRIPTION_MODEL': 'transcription_model',
    'GEMINI_ANALYSIS_MODEL': 'analysis_model',
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None, environ: dict | None = None):
        self.path = config_path or CONFIG_PATH
        self._environ = os.environ if environ is None else environ
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk and the environment, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except Exception as e:
                logger.warning("Failed to load config: %s", e)

        for env_name, key in _ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value:
                self._data[key] = self._validate(key, value)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'chunk_threshold_sec':
            return self._clamp_int(key, value, CHUNK_THRESHOLD_SEC,
                                   _CHUNK_THRESHOLD_MIN, _CHUNK_THRESHOLD_MAX)

        if key == 'chunk_duration_sec':
            return self._clamp_int(key, value, CHUNK_DURATION_SEC,
                                   _CHUNK_DURATION_MIN, _CHUNK_DURATION_MAX)

        if key == 'inline_size_threshold':
            return self._clamp_int(key, value, INLINE_SIZE_THRESHOLD, 0, _INLINE_SIZE_MAX)

        if key == 'max_jobs':
            return self._clamp_int(key, value, MAX_JOBS, _MAX_JOBS_MIN, 100000)

        if key == 'max_workers':
            return self._clamp_int(key, value, MAX_WORKERS, 1, _MAX_WORKERS_MAX)

        if key == 'port':
            return self._clamp_int(key, value, 3000, 1, 65535)

        return value

    @staticmethod
    def _clamp_int(key: str, value, default: int, low: int, high: int) -> int:
        try:
            value = int(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s %r — using default", key, value)
            return default
        return max(low, min(high, value))

    def as_dict(self) -> dict:
        """Effective settings without the API key, for logging."""
        data = dict(self._data)
        data.pop('gemini_api_key', None)
        return data

    @property
    def temp_dir(self) -> Path:
        return Path(self._data.get('temp_dir', str(DEFAULT_TEMP_DIR)))

    @property
    def chunk_threshold_sec(self) -> int:
        return self._data.get('chunk_threshold_sec', CHUNK_THRESHOLD_SEC)

    @property
    def chunk_duration_sec(self) -> int:
        return self._data.get('chunk_duration_sec', CHUNK_DURATION_SEC)

    @property
    def inline_size_threshold(self) -> int:
        return self._data.get('inline_size_threshold', INLINE_SIZE_THRESHOLD)

    @property
    def ffmpeg_dir(self) -> Path | None:
        path = self._data.get('ffmpeg_path') or ''
        return Path(path) if path else None

    @property
    def gemini_api_key(self) -> str | None:
        """API key from GEMINI_API_KEY, falling back to the config file."""
        key = self._environ.get('GEMINI_API_KEY') or self._data.get('gemini_api_key') or ''
        key = key.strip()
        if not key or key == GEMINI_KEY_PLACEHOLDER:
            return None
        return key
