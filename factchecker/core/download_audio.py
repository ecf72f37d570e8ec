"""
Video metadata and audio download via yt-dlp.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from factchecker.core.security_utils import run_subprocess_capture
from factchecker.core.error_codes import JobError
from factchecker.core.models import DownloadResult
from factchecker.core.constants import (
    ErrorCode,
    PROGRESS_DOWNLOAD_INFO, PROGRESS_DOWNLOAD_AUDIO, PROGRESS_DOWNLOAD_DONE,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

_AUDIO_EXTENSIONS = ('.mp3', '.m4a', '.webm', '.opus', '.ogg', '.wav')


def fetch_metadata(video_url: str) -> dict:
    """
    Fetch video metadata using yt-dlp --dump-single-json.
    Returns dict with at least 'title' and 'duration' when available.
    """
    args = [
        "yt-dlp",
        "--dump-single-json",
        "--no-playlist",
        "--no-warnings",
        "--no-check-certificate",
        video_url,
    ]

    try:
        result = run_subprocess_capture(args, timeout=60)
    except JobError:
        raise
    except Exception as e:
        raise JobError(ErrorCode.DOWNLOAD_FAILED, f"yt-dlp metadata fetch failed: {e}")

    if result.returncode != 0:
        stderr = result.stderr or ""
        raise JobError(ErrorCode.DOWNLOAD_FAILED,
                       f"yt-dlp failed (rc={result.returncode}): {stderr[:300]}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise JobError(ErrorCode.DOWNLOAD_FAILED, f"Failed to parse yt-dlp JSON: {e}")


def _download_low_bitrate_mp3(video_url: str, output_dir: Path,
                              ffmpeg_dir: Path | None) -> Path | None:
    """Smallest audio stream re-encoded to MP3 (needs ffmpeg). None on failure."""
    args = [
        "yt-dlp",
        "--no-playlist",
        "--no-warnings",
        "--no-check-certificate",
        "-f", "worstaudio",
        "--extract-audio",
        "--audio-format", "mp3",
        "--audio-quality", "9",
        "-o", str(output_dir / "audio.%(ext)s"),
    ]
    if ffmpeg_dir:
        args.extend(["--ffmpeg-location", str(ffmpeg_dir)])
    args.append(video_url)

    try:
        result = run_subprocess_capture(args, timeout=600)
    except Exception as e:
        logger.info("Low-bitrate conversion failed (%s), trying fallback...", e)
        return None

    mp3_path = output_dir / "audio.mp3"
    if result.returncode != 0 or not mp3_path.exists():
        logger.info("Low-bitrate conversion failed (ffmpeg may be unavailable), trying fallback...")
        return None

    size_mb = mp3_path.stat().st_size / (1024 * 1024)
    logger.info("Audio extracted as low-bitrate MP3: %.2f MB", size_mb)
    return mp3_path


def _download_original_format(video_url: str, output_dir: Path) -> Path | None:
    """Best audio stream in its original container (no ffmpeg needed)."""
    args = [
        "yt-dlp",
        "--no-playlist",
        "--no-warnings",
        "--no-check-certificate",
        "-f", "bestaudio",
        "-o", str(output_dir / "audio.%(ext)s"),
        video_url,
    ]

    result = run_subprocess_capture(args, timeout=600)
    if result.returncode != 0:
        stderr = result.stderr or ""
        raise JobError(ErrorCode.DOWNLOAD_FAILED,
                       f"yt-dlp download failed (rc={result.returncode}): {stderr[:300]}")

    for path in sorted(output_dir.glob("audio.*")):
        if path.suffix.lower() in _AUDIO_EXTENSIONS:
            return path
    return None


def download_audio(video_url: str, output_dir: Path,
                   on_progress: Optional[ProgressCallback] = None,
                   ffmpeg_dir: Path | None = None) -> DownloadResult:
    """
    Fetch metadata, then download the audio track into ``output_dir``.
    Returns a DownloadResult with the local path, title and duration.
    """
    def report(progress: int, message: str):
        if on_progress:
            on_progress(progress, message)

    output_dir.mkdir(parents=True, exist_ok=True)

    report(PROGRESS_DOWNLOAD_INFO, "Fetching video information...")
    metadata = fetch_metadata(video_url)
    title = metadata.get('title') or 'Unknown Title'
    duration = float(metadata.get('duration') or 0)

    report(PROGRESS_DOWNLOAD_AUDIO, f"Downloading: {title}")
    audio_path = _download_low_bitrate_mp3(video_url, output_dir, ffmpeg_dir)
    if audio_path is None:
        audio_path = _download_original_format(video_url, output_dir)

    if audio_path is None:
        raise JobError(ErrorCode.DOWNLOAD_FAILED, "Audio file not found after download")

    report(PROGRESS_DOWNLOAD_DONE, "Download complete!")
    logger.info("Downloaded audio: %s", audio_path)
    return DownloadResult(audio_path=audio_path, title=title, duration=duration)
