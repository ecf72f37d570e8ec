"""
Job manager and worker pool.
Owns the job lifecycle: submission, the download+transcribe phase, the
analysis phase, status snapshots, results and deletion.
"""

import logging
import threading
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from factchecker.core.config import AppConfig
from factchecker.core.constants import (
    JobStatus, ErrorCode,
    PROGRESS_DOWNLOAD_START, PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_DONE,
    PROGRESS_ANALYSIS_START, PROGRESS_ANALYSIS_DONE,
)
from factchecker.core.cleanup import cleanup_job_workspace
from factchecker.core.download_audio import download_audio
from factchecker.core.error_codes import JobError, JobCancelled
from factchecker.core.fact_check import FactChecker
from factchecker.core.gemini_client import GeminiClient
from factchecker.core.job_store import JobStore, utc_now
from factchecker.core.models import Job
from factchecker.core.scoring import summarize_claims
from factchecker.core.security_utils import job_workspace
from factchecker.core.transcribe import Transcriber
from factchecker.core.url_parse import validate_submission

logger = logging.getLogger(__name__)


class JobManager:
    """
    Runs jobs on a shared worker pool, one task per job phase.
    Each task gets a cancellation event that delete_job sets; tasks check
    it between external calls and stop quietly.
    """

    def __init__(self, config: AppConfig,
                 store: JobStore | None = None,
                 executor: Executor | None = None,
                 downloader: Callable = download_audio,
                 client_factory: Callable[[str, str], GeminiClient] | None = None,
                 transcriber_factory: Callable[[GeminiClient], Transcriber] | None = None,
                 fact_checker_factory: Callable[[GeminiClient], FactChecker] | None = None):
        self.config = config
        self.store = store if store is not None else JobStore(config.get('max_jobs'))
        if self.store.on_evict is None:
            self.store.on_evict = self._on_evict
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.get('max_workers'),
            thread_name_prefix="job-worker",
        )
        self._downloader = downloader
        self._client_factory = client_factory or GeminiClient
        self._transcriber_factory = transcriber_factory or self._default_transcriber
        self._fact_checker_factory = fact_checker_factory or self._default_fact_checker

        self._lock = threading.Lock()
        self._cancel_events: dict[str, threading.Event] = {}

    # ── Collaborator factories ────────────────────────────────────────

    def _default_transcriber(self, client: GeminiClient) -> Transcriber:
        return Transcriber(
            client,
            chunk_threshold_sec=self.config.chunk_threshold_sec,
            chunk_duration_sec=self.config.chunk_duration_sec,
            inline_size_threshold=self.config.inline_size_threshold,
            tool_dir=self.config.ffmpeg_dir,
        )

    def _default_fact_checker(self, client: GeminiClient) -> FactChecker:
        return FactChecker(client, model=self.config.get('analysis_model'))

    def _make_client(self, model: str) -> GeminiClient:
        api_key = self.config.gemini_api_key
        if not api_key:
            raise JobError(ErrorCode.UNCONFIGURED,
                           "Gemini API key not configured. Please set GEMINI_API_KEY in the environment or .env")
        return self._client_factory(api_key, model)

    def workspace_for(self, job_id: str) -> Path:
        return job_workspace(self.config.temp_dir, job_id)

    # ── Public operations ─────────────────────────────────────────────

    def submit(self, url: str, language: str) -> str:
        """Validate, create a pending job, schedule download+transcribe."""
        platform = validate_submission(url, language)
        job = Job(
            id=str(uuid.uuid4()),
            url=url.strip(),
            platform=platform,
            language=language,
        )
        self.store.put(job)
        logger.info("Job %s created for %s (%s, %s)", job.id, job.url, platform, language)

        self._schedule(job.id, self._process_video)
        return job.id

    def get_job(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobError(ErrorCode.NOT_FOUND, "Video not found")
        return job

    def get_status(self, job_id: str) -> dict:
        job = self.get_job(job_id)
        return self._status_snapshot(job)

    def list_jobs(self) -> list[dict]:
        jobs = sorted(self.store.jobs(), key=lambda j: j.created_at or '', reverse=True)
        return [self._status_snapshot(j, include_transcription=False) for j in jobs]

    def request_analysis(self, job_id: str, use_internet: bool = False):
        """Move a transcribed job to ANALYZING and schedule the fact-check."""
        def transition(job: Job) -> dict:
            if not job.transcription:
                raise JobError(ErrorCode.NOT_READY, "Video not yet transcribed")
            if job.status == JobStatus.ANALYZING:
                raise JobError(ErrorCode.ALREADY_IN_PROGRESS, "Analysis already in progress")
            return {
                'status': JobStatus.ANALYZING,
                'progress': PROGRESS_ANALYSIS_START,
                'status_message': "Starting fact-check analysis...",
                'claims': None,
                'overall_score': None,
                'analyzed_at': None,
                'error': None,
            }

        if self.store.modify(job_id, transition) is None:
            raise JobError(ErrorCode.NOT_FOUND, "Video not found")

        logger.info("Analysis requested for job %s (use_internet=%s)", job_id, use_internet)
        self._schedule(job_id, self._analyze_video)

    def get_results(self, job_id: str) -> dict:
        job = self.get_job(job_id)
        if not job.is_analyzed:
            raise JobError(ErrorCode.ANALYSIS_INCOMPLETE, "Analysis not yet complete",
                           details={'status': job.status, 'progress': job.progress})

        return {
            'id': job.id,
            'url': job.url,
            'title': job.title,
            'platform': job.platform,
            'language': job.language,
            'transcription': job.transcription,
            'overallScore': job.overall_score,
            'claims': [c.to_dict() for c in job.claims],
            'summary': summarize_claims(job.claims),
            'analyzedAt': job.analyzed_at,
        }

    def delete_job(self, job_id: str):
        """Cancel any running task, drop the record and its working files."""
        job = self.store.delete(job_id)
        if job is None:
            raise JobError(ErrorCode.NOT_FOUND, "Video not found")

        with self._lock:
            event = self._cancel_events.get(job_id)
        if event:
            event.set()
            logger.info("Cancellation requested for running task of job %s", job_id)

        cleanup_job_workspace(self.workspace_for(job_id))
        logger.info("Job %s deleted", job_id)

    def shutdown(self, wait: bool = True):
        with self._lock:
            for event in self._cancel_events.values():
                event.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)

    # ── Snapshots ─────────────────────────────────────────────────────

    @staticmethod
    def _status_snapshot(job: Job, include_transcription: bool = True) -> dict:
        snapshot = {
            'id': job.id,
            'status': job.status,
            'progress': job.progress,
            'statusMessage': job.status_message,
            'title': job.title,
            'platform': job.platform,
            'transcription': None,
            'error': job.error,
        }
        if include_transcription and job.status in (JobStatus.COMPLETED, JobStatus.ANALYZING):
            snapshot['transcription'] = job.transcription
        return snapshot

    # ── Task plumbing ─────────────────────────────────────────────────

    def _schedule(self, job_id: str, task: Callable[[str], None]):
        event = threading.Event()
        with self._lock:
            self._cancel_events[job_id] = event
        self._executor.submit(self._run_task, job_id, task, event)

    def _run_task(self, job_id: str, task: Callable[[str], None], event: threading.Event):
        phase = "Analysis error" if task == self._analyze_video else "Error"
        try:
            task(job_id)
        except JobCancelled:
            logger.info("Task for job %s stopped after cancellation", job_id)
            cleanup_job_workspace(self.workspace_for(job_id))
        except JobError as e:
            logger.error("Job %s failed: %s", job_id, e)
            self._fail(job_id, e.message, phase)
        except Exception as e:
            logger.error("Unexpected error processing job %s: %s", job_id, e, exc_info=True)
            self._fail(job_id, str(e)[:2000] or type(e).__name__, phase)
        finally:
            with self._lock:
                if self._cancel_events.get(job_id) is event:
                    del self._cancel_events[job_id]

    def _check_cancelled(self, job_id: str):
        with self._lock:
            event = self._cancel_events.get(job_id)
        if (event is not None and event.is_set()) or job_id not in self.store:
            raise JobCancelled(job_id)

    def _fail(self, job_id: str, message: str, phase: str):
        self.store.update(job_id,
                          status=JobStatus.ERROR,
                          error=message,
                          status_message=f"{phase}: {message}")

    def _update_progress(self, job_id: str, status: str, progress: int, message: str):
        """Progress never moves backwards within a phase."""
        def changes(job: Job) -> dict:
            value = progress if job.status != status else max(job.progress, progress)
            return {'status': status, 'progress': value, 'status_message': message}

        self.store.modify(job_id, changes)

    def _progress_callback(self, job_id: str, status: str) -> Callable[[int, str], None]:
        return lambda progress, message: self._update_progress(job_id, status, progress, message)

    # ── Phase 1: download + transcribe ────────────────────────────────

    def _process_video(self, job_id: str):
        self._check_cancelled(job_id)
        job = self.get_job(job_id)
        workspace = self.workspace_for(job_id)

        self._update_progress(job_id, JobStatus.DOWNLOADING, PROGRESS_DOWNLOAD_START,
                              "Starting download...")
        client = self._make_client(self.config.get('transcription_model'))

        try:
            download = self._downloader(
                job.url, workspace,
                on_progress=self._progress_callback(job_id, JobStatus.DOWNLOADING),
                ffmpeg_dir=self.config.ffmpeg_dir,
            )
        except JobError:
            raise
        except Exception as e:
            raise JobError(ErrorCode.DOWNLOAD_FAILED, f"Failed to download video: {e}")

        self._check_cancelled(job_id)
        self.store.update(job_id, audio_path=str(download.audio_path),
                          title=download.title, duration=download.duration)

        self._update_progress(job_id, JobStatus.TRANSCRIBING, PROGRESS_TRANSCRIBE_START,
                              "Starting transcription...")
        transcriber = self._transcriber_factory(client)
        result = transcriber.transcribe(
            download.audio_path, job.language,
            fallback_duration=download.duration,
            on_progress=self._progress_callback(job_id, JobStatus.TRANSCRIBING),
            should_abort=lambda: self._check_cancelled(job_id),
        )

        self._check_cancelled(job_id)
        self.store.update(job_id,
                          transcription=result.transcription,
                          status=JobStatus.COMPLETED,
                          progress=PROGRESS_TRANSCRIBE_DONE,
                          status_message="Transcription complete. Ready for analysis.")
        logger.info("Job %s transcribed (%d characters, %d/%d chunks)", job_id,
                    len(result.transcription), result.chunks_transcribed, result.chunks_total)

    # ── Phase 2: extract + verify + score ─────────────────────────────

    def _analyze_video(self, job_id: str):
        self._check_cancelled(job_id)
        job = self.get_job(job_id)

        client = self._make_client(self.config.get('analysis_model'))
        checker = self._fact_checker_factory(client)
        result = checker.check(
            job.transcription, job.language,
            on_progress=self._progress_callback(job_id, JobStatus.ANALYZING),
            should_abort=lambda: self._check_cancelled(job_id),
        )

        self._check_cancelled(job_id)
        self.store.update(job_id,
                          claims=result.claims,
                          overall_score=result.overall_score,
                          analyzed_at=utc_now(),
                          status=JobStatus.COMPLETED,
                          progress=PROGRESS_ANALYSIS_DONE,
                          status_message="Analysis complete!")
        logger.info("Job %s analyzed: %d claims, score %d",
                    job_id, len(result.claims), result.overall_score)

    def _on_evict(self, job: Job):
        cleanup_job_workspace(self.workspace_for(job.id))
