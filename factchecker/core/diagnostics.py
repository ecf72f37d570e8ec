"""
Diagnostics: tool version detection and system readiness.
"""

import logging
from pathlib import Path
from typing import Callable

from factchecker.core.config import AppConfig
from factchecker.core.error_codes import JobError
from factchecker.core.gemini_client import GeminiClient
from factchecker.core.security_utils import run_subprocess_capture, resolve_tool, mask_secret

logger = logging.getLogger(__name__)


def get_ytdlp_version() -> str | None:
    """Return yt-dlp version string, or None if it cannot be run."""
    try:
        result = run_subprocess_capture(["yt-dlp", "--version"], timeout=10)
    except JobError:
        return None
    except Exception as e:
        logger.warning("yt-dlp version check failed: %s", e)
        return None
    if result.returncode == 0:
        return result.stdout.strip()
    return None


def get_ffmpeg_version(tool_dir: Path | None = None) -> str | None:
    """Return the first line of `ffmpeg -version`, or None."""
    try:
        result = run_subprocess_capture([resolve_tool("ffmpeg", tool_dir), "-version"], timeout=10)
    except JobError:
        return None
    except Exception as e:
        logger.warning("ffmpeg version check failed: %s", e)
        return None
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip().splitlines()[0]
    return None


def check_gemini(config: AppConfig,
                 client_factory: Callable[[str, str], GeminiClient] = GeminiClient) -> tuple[bool, str]:
    api_key = config.gemini_api_key
    if not api_key:
        return False, "Gemini API key not configured"
    client = client_factory(api_key, config.get('transcription_model'))
    ok, message = client.verify_api_key()
    logger.info("Gemini key %s check: %s", mask_secret(api_key), message)
    return ok, message


def get_system_status(config: AppConfig,
                      client_factory: Callable[[str, str], GeminiClient] = GeminiClient) -> dict:
    """Report whether the download tool and the inference credential are usable."""
    ytdlp_version = get_ytdlp_version()
    ffmpeg_version = get_ffmpeg_version(config.ffmpeg_dir)
    gemini_ok, gemini_message = check_gemini(config, client_factory)

    ytdlp_ok = ytdlp_version is not None
    if not ytdlp_ok:
        message = "yt-dlp is not installed. Please install it: pip install yt-dlp"
    elif not gemini_ok:
        message = f"Gemini API key not usable ({gemini_message}). Please set GEMINI_API_KEY in the environment or .env"
    else:
        message = "System ready"

    return {
        'status': {
            'ytdlp': ytdlp_ok,
            'gemini': gemini_ok,
            'ffmpeg': ffmpeg_version is not None,
            'ready': ytdlp_ok and gemini_ok,
        },
        'versions': {
            'ytdlp': ytdlp_version,
            'ffmpeg': ffmpeg_version,
        },
        'message': message,
    }
