"""
Time-based audio chunking using ffprobe/ffmpeg.
Chunks only when duration exceeds the threshold (10 minutes by default).
"""

import logging
from pathlib import Path

from factchecker.core.security_utils import run_subprocess_capture, resolve_tool
from factchecker.core.error_codes import JobError
from factchecker.core.models import ChunkInfo
from factchecker.core.retry import RetryPolicy, Backoff
from factchecker.core.constants import (
    ErrorCode, CHUNK_DURATION_SEC, CHUNK_THRESHOLD_SEC,
    PROBE_ATTEMPTS, PROBE_BACKOFF_SEC,
)

logger = logging.getLogger(__name__)

_PROBE_POLICY = RetryPolicy(PROBE_ATTEMPTS, PROBE_BACKOFF_SEC, Backoff.FIXED)


def _probe_once(args: list[str]) -> float:
    result = run_subprocess_capture(args, timeout=30)
    if result.returncode != 0:
        raise JobError(ErrorCode.CHUNKING,
                       f"ffprobe failed (rc={result.returncode})", retryable=True)
    try:
        return float(result.stdout.strip())
    except ValueError:
        raise JobError(ErrorCode.CHUNKING,
                       f"ffprobe returned no duration: {result.stdout[:50]!r}", retryable=True)


def get_audio_duration(audio_path: Path, tool_dir: Path | None = None,
                       policy: RetryPolicy = _PROBE_POLICY) -> float:
    """
    Get audio duration in seconds using ffprobe.
    Returns 0.0 when the duration cannot be determined.
    """
    args = [
        resolve_tool("ffprobe", tool_dir),
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(audio_path),
    ]

    try:
        duration = policy.call(_probe_once, args, description="ffprobe")
    except Exception as e:
        logger.warning("Could not get audio duration for %s: %s", audio_path, e)
        return 0.0

    logger.info("Audio duration: %.1f seconds (%.1f minutes)", duration, duration / 60)
    return duration


def needs_chunking(duration_sec: float, threshold_sec: float = CHUNK_THRESHOLD_SEC) -> bool:
    """Check if audio needs chunking based on duration."""
    return duration_sec > threshold_sec


def create_chunk_manifest(duration_sec: float,
                          chunk_duration_sec: float = CHUNK_DURATION_SEC,
                          threshold_sec: float = CHUNK_THRESHOLD_SEC) -> list[dict]:
    """
    Plan consecutive, non-overlapping windows covering the whole duration.
    The last window is truncated to what remains.
    Returns [] when the audio is short enough to be sent whole.
    """
    if not needs_chunking(duration_sec, threshold_sec):
        return []
    if chunk_duration_sec <= 0:
        raise ValueError("chunk_duration_sec must be positive")

    chunks = []
    idx = 0
    start = 0.0

    while start < duration_sec:
        length = min(chunk_duration_sec, duration_sec - start)
        chunks.append({
            'idx': idx,
            'start_sec': start,
            'duration_sec': length,
        })
        idx += 1
        start += chunk_duration_sec

    return chunks


def split_audio_into_chunks(audio_path: Path, chunks_dir: Path,
                            manifest_entries: list[dict],
                            tool_dir: Path | None = None) -> list[ChunkInfo]:
    """
    Cut the audio into the planned windows with ffmpeg (stream copy).
    A window that fails to extract is skipped with a warning.
    """
    chunks_dir.mkdir(parents=True, exist_ok=True)
    ffmpeg = resolve_tool("ffmpeg", tool_dir)
    ext = audio_path.suffix
    chunks = []

    for entry in manifest_entries:
        idx = entry['idx']
        start = entry['start_sec']
        duration = entry['duration_sec']

        chunk_file = chunks_dir / f"{audio_path.stem}_chunk{idx:03d}{ext}"

        args = [
            ffmpeg,
            "-y",
            "-i", str(audio_path),
            "-ss", str(start),
            "-t", str(duration),
            "-c", "copy",
            str(chunk_file),
        ]

        try:
            result = run_subprocess_capture(args, timeout=120)
        except Exception as e:
            logger.warning("Failed to create chunk %d: %s", idx, e)
            continue

        if result.returncode != 0 or not chunk_file.exists():
            stderr = result.stderr[:200] if result.stderr else 'unknown error'
            logger.warning("ffmpeg chunk %d failed: %s", idx, stderr)
            continue

        chunks.append(ChunkInfo(idx=idx, path=chunk_file,
                                start_sec=start, duration_sec=duration))
        logger.debug("Created chunk %d: %.0fs - %.0fs", idx, start, start + duration)

    logger.info("Split audio into %d/%d chunks in %s",
                len(chunks), len(manifest_entries), chunks_dir)
    return chunks
