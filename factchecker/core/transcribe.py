"""
Transcription driver.

Sends audio to Gemini one unit at a time (the whole file, or one chunk of a
long recording). Small units go inline as base64; larger ones are uploaded
through the Files API, polled until processed, referenced from the
generation call, then deleted. Long audio is split into fixed windows whose
transcripts are merged with rebased [MM:SS] headers.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from factchecker.core.chunking import (
    get_audio_duration, create_chunk_manifest, split_audio_into_chunks,
)
from factchecker.core.cleanup import remove_file
from factchecker.core.error_codes import JobError
from factchecker.core.gemini_client import GeminiClient
from factchecker.core.merge import (
    format_timestamp, with_chunk_header, merge_chunk_transcripts,
)
from factchecker.core.models import ChunkInfo, TranscriptionResult, UploadedFile
from factchecker.core.retry import RetryPolicy, Backoff
from factchecker.core.url_parse import language_name
from factchecker.core.constants import (
    ErrorCode, FileState, AUDIO_MIME_TYPES, DEFAULT_AUDIO_MIME,
    CHUNK_THRESHOLD_SEC, CHUNK_DURATION_SEC, INLINE_SIZE_THRESHOLD,
    MAX_ATTEMPTS, UPLOAD_BACKOFF_SEC, INLINE_BACKOFF_SEC, FILE_GENERATE_BACKOFF_SEC,
    POLL_INTERVAL_SEC, POLL_MAX_TRIES_FILE, POLL_MAX_TRIES_CHUNK,
    PROGRESS_TRANSCRIBE_PREPARE, PROGRESS_CHUNKS_START, PROGRESS_CHUNKS_END,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
AbortCheck = Callable[[], None]


def guess_mime_type(audio_path: Path) -> str:
    return AUDIO_MIME_TYPES.get(audio_path.suffix.lower(), DEFAULT_AUDIO_MIME)


def build_prompt(language: str) -> str:
    return (f"Transcribe this audio accurately in {language}. "
            f"Include timestamps every 30 seconds [MM:SS]. "
            f"Return only the transcription text.")


def build_chunk_prompt(language: str, part: int, total: int, start_sec: float) -> str:
    return (f"Transcribe this audio segment accurately in {language}. "
            f"This is part {part} of {total} of a longer audio starting at "
            f"{format_timestamp(start_sec)}. "
            f"Include timestamps relative to this segment start [MM:SS]. "
            f"Return only the transcription text.")


def _require_text(text: str) -> str:
    """Treat an empty model response as a failed (retryable) attempt."""
    if not text or not text.strip():
        raise JobError(ErrorCode.EMPTY_RESPONSE, "Gemini returned an empty transcription")
    return text.strip()


class Transcriber:
    """Drives one audio file through Gemini, chunking long recordings."""

    def __init__(self, client: GeminiClient,
                 chunk_threshold_sec: float = CHUNK_THRESHOLD_SEC,
                 chunk_duration_sec: float = CHUNK_DURATION_SEC,
                 inline_size_threshold: int = INLINE_SIZE_THRESHOLD,
                 tool_dir: Path | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.chunk_threshold_sec = chunk_threshold_sec
        self.chunk_duration_sec = chunk_duration_sec
        self.inline_size_threshold = inline_size_threshold
        self.tool_dir = tool_dir
        self._sleep = sleep

        self.upload_policy = RetryPolicy(MAX_ATTEMPTS, UPLOAD_BACKOFF_SEC, Backoff.EXPONENTIAL, sleep)
        self.inline_policy = RetryPolicy(MAX_ATTEMPTS, INLINE_BACKOFF_SEC, Backoff.FIXED, sleep)
        self.file_policy = RetryPolicy(MAX_ATTEMPTS, FILE_GENERATE_BACKOFF_SEC, Backoff.FIXED, sleep)

    # ── Entry point ───────────────────────────────────────────────────

    def transcribe(self, audio_path: Path, language: str,
                   fallback_duration: float = 0.0,
                   on_progress: Optional[ProgressCallback] = None,
                   should_abort: Optional[AbortCheck] = None) -> TranscriptionResult:
        """
        Transcribe ``audio_path`` in the language with code ``language``.
        ``fallback_duration`` (from download metadata) is used when ffprobe
        cannot read the file.
        """
        report = on_progress or (lambda progress, message: None)
        lang = language_name(language)

        size_mb = audio_path.stat().st_size / (1024 * 1024)
        logger.info("Audio file size: %.2f MB, using model: %s", size_mb, self.client.model)

        duration = get_audio_duration(audio_path, self.tool_dir)
        if duration <= 0:
            duration = fallback_duration

        manifest = create_chunk_manifest(duration, self.chunk_duration_sec,
                                         self.chunk_threshold_sec)
        if manifest:
            logger.info("Audio is %.1f min - using chunked transcription", duration / 60)
            report(PROGRESS_TRANSCRIBE_PREPARE,
                   f"Long audio detected ({duration / 60:.0f} min), splitting into chunks...")
            return self._transcribe_chunked(audio_path, manifest, lang, report, should_abort)

        report(PROGRESS_TRANSCRIBE_PREPARE, "Preparing audio for transcription...")
        text = self.transcribe_unit(audio_path, build_prompt(lang),
                                    POLL_MAX_TRIES_FILE, report, should_abort)
        return TranscriptionResult(transcription=text, language=lang,
                                   chunks_total=1, chunks_transcribed=1)

    # ── Single unit ───────────────────────────────────────────────────

    def transcribe_unit(self, audio_path: Path, prompt: str, poll_max_tries: int,
                        on_progress: Optional[ProgressCallback] = None,
                        should_abort: Optional[AbortCheck] = None) -> str:
        """Transcribe one file, choosing the inline or upload path by size."""
        if audio_path.stat().st_size > self.inline_size_threshold:
            logger.info("Using Gemini File API for %s", audio_path.name)
            return self._transcribe_uploaded(audio_path, prompt, poll_max_tries,
                                             on_progress, should_abort)
        logger.info("Using inline data for %s", audio_path.name)
        return self._transcribe_inline(audio_path, prompt, on_progress, should_abort)

    def _transcribe_inline(self, audio_path: Path, prompt: str,
                           on_progress: Optional[ProgressCallback],
                           should_abort: Optional[AbortCheck]) -> str:
        report = on_progress or (lambda progress, message: None)
        report(50, "Reading audio file...")
        audio_bytes = audio_path.read_bytes()
        mime_type = guess_mime_type(audio_path)

        def attempt():
            return _require_text(
                self.client.generate_with_inline_audio(prompt, audio_bytes, mime_type))

        return self.inline_policy.call(
            attempt,
            description="Inline transcription",
            should_abort=should_abort,
            on_attempt=lambda n, total: report(55 + n * 3, f"Transcribing (attempt {n}/{total})..."),
        )

    def _transcribe_uploaded(self, audio_path: Path, prompt: str, poll_max_tries: int,
                             on_progress: Optional[ProgressCallback],
                             should_abort: Optional[AbortCheck]) -> str:
        report = on_progress or (lambda progress, message: None)
        mime_type = guess_mime_type(audio_path)

        uploaded = self.upload_policy.call(
            self.client.upload_file, audio_path, mime_type, audio_path.name,
            description="Upload",
            should_abort=should_abort,
            on_attempt=lambda n, total: report(50 + n, f"Uploading audio (attempt {n}/{total})..."),
        )

        try:
            report(55, "Audio uploaded, waiting for processing...")
            uploaded = self._wait_for_processing(uploaded, poll_max_tries, report, should_abort)

            def attempt():
                return _require_text(self.client.generate_with_file(prompt, uploaded))

            return self.file_policy.call(
                attempt,
                description="File transcription",
                should_abort=should_abort,
                on_attempt=lambda n, total: report(65 + n, f"Transcribing (attempt {n}/{total})..."),
            )
        finally:
            self._delete_uploaded(uploaded)

    def _wait_for_processing(self, uploaded: UploadedFile, max_tries: int,
                             report: ProgressCallback,
                             should_abort: Optional[AbortCheck]) -> UploadedFile:
        """
        Poll until the file leaves PROCESSING. A file still processing at the
        ceiling is used anyway; a FAILED file raises.
        """
        tries = 0
        while uploaded.state == FileState.PROCESSING and tries < max_tries:
            self._sleep(POLL_INTERVAL_SEC)
            if should_abort:
                should_abort()
            try:
                uploaded = self.client.get_file(uploaded.name)
            except (JobError, requests.RequestException) as e:
                logger.debug("Waiting for file to process... (%s)", e)
            tries += 1
            report(55 + min(tries, 10), f"Processing audio... ({tries * POLL_INTERVAL_SEC:.0f}s)")

        if uploaded.state == FileState.FAILED:
            raise JobError(ErrorCode.TRANSCRIPTION_FAILED,
                           "Gemini file processing failed. Try a shorter video.")

        if uploaded.state != FileState.ACTIVE:
            logger.warning("File %s state: %s, proceeding anyway...", uploaded.name, uploaded.state)

        return uploaded

    def _delete_uploaded(self, uploaded: UploadedFile):
        try:
            self.client.delete_file(uploaded.name)
            logger.debug("Cleaned up uploaded file %s", uploaded.name)
        except (JobError, requests.RequestException) as e:
            logger.info("Could not delete uploaded file %s (non-critical): %s", uploaded.name, e)

    # ── Chunked ───────────────────────────────────────────────────────

    def _transcribe_chunked(self, audio_path: Path, manifest: list[dict], lang: str,
                            report: ProgressCallback,
                            should_abort: Optional[AbortCheck]) -> TranscriptionResult:
        report(PROGRESS_CHUNKS_START, "Splitting audio into chunks...")
        chunks_dir = audio_path.parent / "chunks"
        chunks = split_audio_into_chunks(audio_path, chunks_dir, manifest, self.tool_dir)

        if not chunks:
            raise JobError(ErrorCode.CHUNKING, "Failed to split audio into chunks")

        total = len(chunks)
        progress_range = PROGRESS_CHUNKS_END - PROGRESS_CHUNKS_START
        parts = []

        try:
            for i, chunk in enumerate(chunks):
                if should_abort:
                    should_abort()

                progress = PROGRESS_CHUNKS_START + int((i / total) * progress_range)
                report(progress, f"Transcribing chunk {i + 1}/{total} "
                                 f"(from {format_timestamp(chunk.start_sec)})...")

                text = self._transcribe_chunk(chunk, i, total, lang, should_abort)
                if text:
                    parts.append(with_chunk_header(text, chunk.start_sec))
        finally:
            for chunk in chunks:
                remove_file(chunk.path)

        merged = merge_chunk_transcripts(parts)
        logger.info("Successfully transcribed %d/%d chunks", len(parts), total)
        report(PROGRESS_CHUNKS_END, "Merging transcriptions...")

        return TranscriptionResult(transcription=merged, language=lang,
                                   chunks_total=total, chunks_transcribed=len(parts))

    def _transcribe_chunk(self, chunk: ChunkInfo, i: int, total: int, lang: str,
                          should_abort: Optional[AbortCheck]) -> str | None:
        """One chunk; returns None when it fails after its retries."""
        prompt = build_chunk_prompt(lang, i + 1, total, chunk.start_sec)
        try:
            # same size rule as whole files: inline below the threshold, upload above
            return self.transcribe_unit(chunk.path, prompt, POLL_MAX_TRIES_CHUNK,
                                        None, should_abort)
        except JobError as e:
            if e.code == ErrorCode.UNCONFIGURED:
                raise
            logger.error("Failed to transcribe chunk %d/%d: %s", i + 1, total, e)
        except requests.RequestException as e:
            logger.error("Failed to transcribe chunk %d/%d: %s", i + 1, total, e)
        finally:
            remove_file(chunk.path)
        return None
