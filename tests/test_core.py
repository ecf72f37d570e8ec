#!/usr/bin/env python3
"""
Unit tests for Video Fact-Checker core modules.
Tests cover: URL validation, errors, config, chunk planning and splitting, merging,
scoring, claim parsing, retry policy, job store.
"""

import os
import sys
import subprocess
import tempfile
import json
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from factchecker.core.constants import (
    JobStatus, ClaimStatus, ErrorCode, RETRYABLE_ERRORS,
    CHUNK_THRESHOLD_SEC, CHUNK_DURATION_SEC,
)
from factchecker.core.config import AppConfig, load_env_file
from factchecker.core.url_parse import (
    extract_platform, validate_submission, language_name,
)
from factchecker.core.security_utils import job_workspace, mask_secret, resolve_tool, tool_available
from factchecker.core.error_codes import JobError, is_retryable, http_status_for
from factchecker.core.chunking import needs_chunking, create_chunk_manifest, split_audio_into_chunks
from factchecker.core.merge import (
    format_timestamp, with_chunk_header, merge_chunk_transcripts,
)
from factchecker.core.models import Claim, Job
from factchecker.core.scoring import summarize_claims, compute_overall_score
from factchecker.core.fact_check import (
    strip_code_fences, parse_extracted_claims, parse_verdicts, build_claim,
    default_verdict, PLACEHOLDER_CLAIM_TEXT,
)
from factchecker.core.retry import RetryPolicy, Backoff
from factchecker.core.job_store import JobStore


def make_claim(status: str, idx: int = 0) -> Claim:
    return Claim(id=str(idx), text=f"claim {idx}", status=status, score=50,
                 explanation="test")


class TestURLParsing(unittest.TestCase):
    """Test platform detection and submission validation."""

    def test_youtube_urls(self):
        self.assertEqual(extract_platform("https://www.youtube.com/watch?v=dQw4w9WgXcQ"), "YouTube")
        self.assertEqual(extract_platform("https://youtu.be/dQw4w9WgXcQ"), "YouTube")
        self.assertEqual(extract_platform("https://m.youtube.com/watch?v=dQw4w9WgXcQ"), "YouTube")

    def test_other_platforms(self):
        self.assertEqual(extract_platform("https://www.tiktok.com/@user/video/123"), "TikTok")
        self.assertEqual(extract_platform("https://x.com/user/status/1"), "Twitter/X")
        self.assertEqual(extract_platform("https://fb.watch/abc/"), "Facebook")
        self.assertEqual(extract_platform("https://www.instagram.com/reel/abc/"), "Instagram")

    def test_lookalike_host_rejected(self):
        self.assertEqual(extract_platform("https://notyoutube.com/watch?v=1"), "Unknown")
        self.assertEqual(extract_platform("https://youtube.com.evil.net/watch"), "Unknown")

    def test_invalid_url(self):
        self.assertEqual(extract_platform("not a url"), "Unknown")
        self.assertEqual(extract_platform(""), "Unknown")
        self.assertEqual(extract_platform("ftp://youtube.com/video"), "Unknown")

    def test_validate_rejects_non_string_fields(self):
        with self.assertRaises(JobError) as ctx:
            validate_submission(12345, "en")
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_INPUT)
        self.assertEqual(ctx.exception.message, "Video URL must be a string")

        with self.assertRaises(JobError) as ctx:
            validate_submission("https://youtu.be/dQw4w9WgXcQ", ["en"])
        self.assertEqual(ctx.exception.message, "Language must be a string")

    def test_validate_returns_platform(self):
        self.assertEqual(
            validate_submission("https://youtu.be/dQw4w9WgXcQ", "en"), "YouTube")

    def test_validate_missing_url(self):
        with self.assertRaises(JobError) as ctx:
            validate_submission("", "en")
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_INPUT)
        self.assertEqual(ctx.exception.message, "Video URL is required")

    def test_validate_missing_language(self):
        with self.assertRaises(JobError) as ctx:
            validate_submission("https://youtu.be/x", "")
        self.assertEqual(ctx.exception.message, "Language is required")

    def test_validate_unsupported_platform(self):
        with self.assertRaises(JobError) as ctx:
            validate_submission("https://vimeo.com/123", "en")
        self.assertTrue(ctx.exception.message.startswith("Unsupported platform"))
        self.assertIn("YouTube", ctx.exception.message)

    def test_validate_unsupported_language(self):
        with self.assertRaises(JobError) as ctx:
            validate_submission("https://youtu.be/x", "xx")
        self.assertEqual(ctx.exception.message, "Unsupported language")

    def test_language_name(self):
        self.assertEqual(language_name("fr"), "French")
        self.assertEqual(language_name("zz"), "English")


class TestSecurityUtils(unittest.TestCase):

    def test_job_workspace_normal(self):
        root = Path("/tmp/test_workspace")
        result = job_workspace(root, "3f2c9a1e-0000-4000-8000-000000000000")
        self.assertEqual(result.parent, root)

    def test_job_workspace_traversal(self):
        with self.assertRaises(ValueError):
            job_workspace(Path("/tmp/test_workspace"), "../etc")
        with self.assertRaises(ValueError):
            job_workspace(Path("/tmp/test_workspace"), "")

    def test_mask_secret(self):
        masked = mask_secret("AIzaSyVerySecretValue1234")
        self.assertNotIn("VerySecret", masked)

    def test_tool_in_configured_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tool_dir = Path(tmpdir)
            (tool_dir / "ffmpeg").write_bytes(b"")
            self.assertEqual(resolve_tool("ffmpeg", tool_dir), str(tool_dir / "ffmpeg"))
            self.assertTrue(tool_available("ffmpeg", tool_dir))

    def test_tool_missing_from_dir_and_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch("factchecker.core.security_utils.shutil.which", return_value=None):
                self.assertFalse(tool_available("ffmpeg", Path(tmpdir)))
                self.assertFalse(tool_available("ffmpeg"))

    def test_tool_falls_back_to_path(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch("factchecker.core.security_utils.shutil.which",
                            return_value="/usr/bin/ffmpeg"):
                self.assertEqual(resolve_tool("ffmpeg", Path(tmpdir)), "ffmpeg")
                self.assertTrue(tool_available("ffmpeg", Path(tmpdir)))


class TestErrorCodes(unittest.TestCase):

    def test_retryable_codes(self):
        for code in RETRYABLE_ERRORS:
            self.assertTrue(is_retryable(code))
        self.assertFalse(is_retryable(ErrorCode.INVALID_INPUT))
        self.assertFalse(is_retryable(ErrorCode.UNCONFIGURED))

    def test_job_error_auto_retryable(self):
        self.assertTrue(JobError(ErrorCode.RATE_LIMITED, "slow down").retryable)
        self.assertFalse(JobError(ErrorCode.NOT_FOUND, "gone").retryable)
        self.assertFalse(JobError(ErrorCode.RATE_LIMITED, "x", retryable=False).retryable)

    def test_http_status_mapping(self):
        self.assertEqual(http_status_for(ErrorCode.INVALID_INPUT), 400)
        self.assertEqual(http_status_for(ErrorCode.NOT_READY), 400)
        self.assertEqual(http_status_for(ErrorCode.ANALYSIS_INCOMPLETE), 400)
        self.assertEqual(http_status_for(ErrorCode.NOT_FOUND), 404)
        self.assertEqual(http_status_for(ErrorCode.UNCONFIGURED), 500)


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.get('port'), 3000)
        self.assertEqual(config.chunk_threshold_sec, CHUNK_THRESHOLD_SEC)
        self.assertEqual(config.chunk_duration_sec, CHUNK_DURATION_SEC)
        self.assertIsNone(config.gemini_api_key)
        self.assertIsNone(config.ffmpeg_dir)

    def test_env_overrides(self):
        config = AppConfig(self.path, environ={
            'PORT': '8080',
            'GEMINI_API_KEY': 'abc123',
            'FFMPEG_PATH': '/opt/ffmpeg/bin',
        })
        self.assertEqual(config.get('port'), 8080)
        self.assertEqual(config.gemini_api_key, 'abc123')
        self.assertEqual(config.ffmpeg_dir, Path('/opt/ffmpeg/bin'))

    def test_placeholder_key_is_unconfigured(self):
        config = AppConfig(self.path, environ={'GEMINI_API_KEY': 'your_gemini_api_key_here'})
        self.assertIsNone(config.gemini_api_key)

    def test_file_values_clamped(self):
        self.path.write_text(json.dumps({'chunk_duration_sec': 5, 'max_workers': 'lots'}))
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.chunk_duration_sec, 60)
        self.assertEqual(config.get('max_workers'), 4)

    def test_as_dict_omits_key(self):
        self.path.write_text(json.dumps({'gemini_api_key': 'from-file', 'port': 4000}))
        config = AppConfig(self.path, environ={})
        self.assertEqual(config.gemini_api_key, 'from-file')
        settings = config.as_dict()
        self.assertEqual(settings['port'], 4000)
        self.assertNotIn('gemini_api_key', settings)

    def test_env_file_supplies_key(self):
        env_file = Path(self.tmpdir.name) / ".env"
        env_file.write_text("GEMINI_API_KEY=from-dotenv\nPORT=5050\n")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertTrue(load_env_file(env_file))
            config = AppConfig(self.path)
            self.assertEqual(config.gemini_api_key, 'from-dotenv')
            self.assertEqual(config.get('port'), 5050)

    def test_env_file_does_not_override_environment(self):
        env_file = Path(self.tmpdir.name) / ".env"
        env_file.write_text("GEMINI_API_KEY=from-dotenv\n")
        with mock.patch.dict(os.environ, {'GEMINI_API_KEY': 'from-shell'}, clear=True):
            load_env_file(env_file)
            self.assertEqual(AppConfig(self.path).gemini_api_key, 'from-shell')

    def test_missing_env_file(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertFalse(load_env_file(Path(self.tmpdir.name) / "absent.env"))
            self.assertIsNone(AppConfig(self.path).gemini_api_key)


class TestChunking(unittest.TestCase):

    def test_needs_chunking(self):
        self.assertFalse(needs_chunking(300))
        self.assertFalse(needs_chunking(600))
        self.assertTrue(needs_chunking(601))

    def test_manifest_short_audio(self):
        self.assertEqual(create_chunk_manifest(500), [])
        self.assertEqual(create_chunk_manifest(600), [])

    def test_manifest_twenty_minutes(self):
        manifest = create_chunk_manifest(1200)
        self.assertEqual(len(manifest), 4)
        self.assertEqual([c['start_sec'] for c in manifest], [0, 300, 600, 900])
        self.assertTrue(all(c['duration_sec'] == 300 for c in manifest))

    def test_manifest_last_chunk_truncated(self):
        manifest = create_chunk_manifest(1000)
        self.assertEqual(len(manifest), 4)
        self.assertEqual(manifest[-1]['start_sec'], 900)
        self.assertEqual(manifest[-1]['duration_sec'], 100)
        self.assertEqual(sum(c['duration_sec'] for c in manifest), 1000)

    def test_manifest_indexes_sequential(self):
        manifest = create_chunk_manifest(3600, chunk_duration_sec=600, threshold_sec=600)
        self.assertEqual([c['idx'] for c in manifest], list(range(6)))


class TestSplitAudio(unittest.TestCase):
    """ffmpeg slicing with one window failing."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.audio = self.root / "audio.mp3"
        self.audio.write_bytes(b"\x00" * 64)

    def tearDown(self):
        self.tmpdir.cleanup()

    @staticmethod
    def fake_ffmpeg(args, timeout=300, **kwargs):
        start = args[args.index("-ss") + 1]
        if start == "300.0":
            return subprocess.CompletedProcess(args, 1, "", "Invalid data found")
        Path(args[-1]).write_bytes(b"\x00")
        return subprocess.CompletedProcess(args, 0, "", "")

    def test_failed_window_skipped_offsets_kept(self):
        manifest = create_chunk_manifest(900)
        with mock.patch("factchecker.core.chunking.run_subprocess_capture",
                        side_effect=self.fake_ffmpeg) as ffmpeg:
            chunks = split_audio_into_chunks(self.audio, self.root / "chunks", manifest)

        self.assertEqual(ffmpeg.call_count, 3)
        self.assertEqual([c.idx for c in chunks], [0, 2])
        self.assertEqual([c.start_sec for c in chunks], [0.0, 600.0])
        self.assertEqual([c.path.name for c in chunks],
                         ["audio_chunk000.mp3", "audio_chunk002.mp3"])
        self.assertTrue(all(c.path.exists() for c in chunks))

    def test_subprocess_error_skips_window(self):
        manifest = create_chunk_manifest(700)
        with mock.patch("factchecker.core.chunking.run_subprocess_capture",
                        side_effect=[subprocess.TimeoutExpired("ffmpeg", 120),
                                     subprocess.CompletedProcess([], 0, "", ""),
                                     subprocess.CompletedProcess([], 1, "", "")]):
            chunks = split_audio_into_chunks(self.audio, self.root / "chunks", manifest)
        # the second window exits 0 without writing a file
        self.assertEqual(chunks, [])


class TestMerge(unittest.TestCase):

    def test_format_timestamp(self):
        self.assertEqual(format_timestamp(0), "00:00")
        self.assertEqual(format_timestamp(305), "05:05")
        self.assertEqual(format_timestamp(3900), "65:00")

    def test_chunk_headers_and_join(self):
        parts = [with_chunk_header("hello", 0), with_chunk_header(" world ", 300)]
        merged = merge_chunk_transcripts(parts)
        self.assertEqual(merged, "[00:00]\nhello\n\n[05:00]\nworld")

    def test_empty_parts_skipped(self):
        merged = merge_chunk_transcripts(["", with_chunk_header("only", 600), "  "])
        self.assertEqual(merged, "[10:00]\nonly")

    def test_no_parts_raises(self):
        with self.assertRaises(JobError) as ctx:
            merge_chunk_transcripts([])
        self.assertEqual(ctx.exception.code, ErrorCode.TRANSCRIPTION_FAILED)
        self.assertEqual(ctx.exception.message, "Failed to transcribe any chunks")


class TestScoring(unittest.TestCase):

    def test_no_claims_scores_100(self):
        self.assertEqual(compute_overall_score([]), 100)

    def test_weighted_mean_rounds_half_up(self):
        claims = [make_claim(ClaimStatus.TRUE, 0), make_claim(ClaimStatus.TRUE, 1),
                  make_claim(ClaimStatus.PARTIALLY_TRUE, 2), make_claim(ClaimStatus.FALSE, 3)]
        # (100 + 100 + 50 + 0) / 4 = 62.5
        self.assertEqual(compute_overall_score(claims), 63)

    def test_unverifiable_counts_half(self):
        self.assertEqual(compute_overall_score([make_claim(ClaimStatus.UNVERIFIABLE)]), 50)

    def test_summary_counts(self):
        claims = [make_claim(ClaimStatus.TRUE, 0), make_claim(ClaimStatus.FALSE, 1),
                  make_claim(ClaimStatus.FALSE, 2), make_claim(ClaimStatus.UNVERIFIABLE, 3)]
        summary = summarize_claims(claims)
        self.assertEqual(summary['totalClaims'], 4)
        self.assertEqual(summary['trueClaims'], 1)
        self.assertEqual(summary['falseClaims'], 2)
        self.assertEqual(summary['partiallyTrueClaims'], 0)
        self.assertEqual(summary['unverifiableClaims'], 1)


class TestClaimParsing(unittest.TestCase):
    """Test parsing of extraction and verification output."""

    def test_strip_code_fences(self):
        self.assertEqual(strip_code_fences('```json\n[1, 2]\n```'), '[1, 2]')
        self.assertEqual(strip_code_fences('```\n[]\n```'), '[]')
        self.assertEqual(strip_code_fences('[3]'), '[3]')

    def test_extracted_claims_fenced(self):
        text = '```json\n[{"text": "The sky is green", "timestamp": "01:30"}]\n```'
        claims = parse_extracted_claims(text)
        self.assertEqual(claims, [{'text': "The sky is green", 'timestamp': "01:30"}])

    def test_extracted_claims_empty_array(self):
        self.assertEqual(parse_extracted_claims("[]"), [])

    def test_extracted_claims_malformed(self):
        claims = parse_extracted_claims("I found several claims:")
        self.assertEqual(len(claims), 1)
        self.assertEqual(claims[0]['text'], PLACEHOLDER_CLAIM_TEXT)

    def test_verdicts_malformed_marks_all_unverifiable(self):
        verdicts = parse_verdicts("not json at all", 3)
        self.assertEqual(len(verdicts), 3)
        for verdict in verdicts.values():
            self.assertEqual(verdict['status'], ClaimStatus.UNVERIFIABLE)
            self.assertEqual(verdict['score'], 50)
            self.assertEqual(verdict['explanation'], "Unable to verify this claim")

    def test_verdicts_matched_by_claim_index(self):
        text = json.dumps([
            {"claimIndex": 1, "status": "false", "score": 5},
            {"claimIndex": 0, "status": "true", "score": 95},
        ])
        verdicts = parse_verdicts(text, 2)
        self.assertEqual(verdicts[0]['status'], "true")
        self.assertEqual(verdicts[1]['status'], "false")

    def test_verdicts_short_array_leaves_gap(self):
        text = json.dumps([{"status": "true", "score": 90}])
        verdicts = parse_verdicts(text, 3)
        self.assertEqual(list(verdicts), [0])

    def test_build_claim_true_drops_corrections(self):
        claim = build_claim(
            {'text': "Water boils at 100C", 'timestamp': "00:10"},
            {'status': "TRUE", 'score': 98, 'explanation': "Correct at sea level",
             'wrongPart': "nothing", 'correction': "none", 'sources': ["a", "b"]},
        )
        self.assertEqual(claim.status, ClaimStatus.TRUE)
        self.assertIsNone(claim.wrong_part)
        self.assertIsNone(claim.correction)
        self.assertEqual(claim.sources, [])

    def test_build_claim_false_keeps_details(self):
        claim = build_claim(
            {'text': "The moon is cheese", 'timestamp': None},
            {'status': "false", 'score': 250, 'explanation': "It is rock",
             'wrongPart': "cheese", 'correction': "rock",
             'sources': ["s1", "s2", "s3", "s4"]},
        )
        self.assertEqual(claim.status, ClaimStatus.FALSE)
        self.assertEqual(claim.score, 100)
        self.assertEqual(claim.wrong_part, "cheese")
        self.assertEqual(claim.correction, "rock")
        self.assertEqual(claim.sources, ["s1", "s2", "s3"])
        self.assertEqual(claim.to_dict()['wrongPart'], "cheese")

    def test_build_claim_unknown_status(self):
        claim = build_claim({'text': "x"}, {'status': "mostly", 'score': "abc"})
        self.assertEqual(claim.status, ClaimStatus.UNVERIFIABLE)
        self.assertEqual(claim.score, 50)

    def test_default_verdict(self):
        claim = build_claim({'text': "x"}, default_verdict())
        self.assertEqual(claim.explanation, "Unable to verify")


class TestRetryPolicy(unittest.TestCase):

    def setUp(self):
        self.sleeps = []

    def policy(self, **kwargs) -> RetryPolicy:
        return RetryPolicy(sleep=self.sleeps.append, **kwargs)

    def test_succeeds_after_retryable_failures(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise JobError(ErrorCode.RATE_LIMITED, "busy")
            return "ok"

        self.assertEqual(self.policy(base_delay=2.0).call(flaky), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(self.sleeps, [2.0, 4.0])

    def test_fixed_backoff(self):
        policy = self.policy(base_delay=3.0, backoff=Backoff.FIXED)
        self.assertEqual([policy.delay_for(n) for n in (1, 2, 3)], [3.0, 3.0, 3.0])

    def test_non_retryable_propagates_immediately(self):
        calls = []

        def broken():
            calls.append(1)
            raise JobError(ErrorCode.UNCONFIGURED, "no key")

        with self.assertRaises(JobError):
            self.policy().call(broken)
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.sleeps, [])

    def test_exhausted_reraises_last_error(self):
        def offline():
            raise requests.ConnectionError("down")

        with self.assertRaises(requests.ConnectionError):
            self.policy(max_attempts=2).call(offline)
        self.assertEqual(len(self.sleeps), 1)

    def test_abort_stops_retrying(self):
        class Stop(Exception):
            pass

        def abort():
            raise Stop()

        with self.assertRaises(Stop):
            self.policy().call(lambda: "never", should_abort=abort)


class TestJobStore(unittest.TestCase):

    def make_job(self, job_id: str, status: str = JobStatus.COMPLETED) -> Job:
        return Job(id=job_id, url="https://youtu.be/x", platform="YouTube",
                   language="en", status=status)

    def test_put_get_update(self):
        store = JobStore()
        store.put(self.make_job("a", JobStatus.PENDING))
        updated = store.update("a", progress=40)
        self.assertEqual(updated.progress, 40)
        self.assertEqual(store.get("a").progress, 40)
        self.assertIsNotNone(store.get("a").created_at)

    def test_snapshots_are_not_mutated(self):
        store = JobStore()
        store.put(self.make_job("a", JobStatus.PENDING))
        before = store.get("a")
        store.update("a", progress=15)
        self.assertEqual(before.progress, 0)

    def test_update_missing_returns_none(self):
        store = JobStore()
        self.assertIsNone(store.update("nope", progress=1))
        self.assertIsNone(store.modify("nope", lambda job: {}))

    def test_modify_can_reject(self):
        store = JobStore()
        store.put(self.make_job("a"))

        def reject(job):
            raise JobError(ErrorCode.NOT_READY, "no")

        with self.assertRaises(JobError):
            store.modify("a", reject)

    def test_evicts_least_recent_inactive(self):
        evicted = []
        store = JobStore(max_jobs=2, on_evict=evicted.append)
        store.put(self.make_job("old"))
        store.put(self.make_job("mid"))
        store.update("old", progress=100)
        store.put(self.make_job("new"))
        self.assertEqual([j.id for j in evicted], ["mid"])
        self.assertIn("old", store)
        self.assertEqual(len(store), 2)

    def test_active_jobs_never_evicted(self):
        store = JobStore(max_jobs=1)
        store.put(self.make_job("a", JobStatus.TRANSCRIBING))
        store.put(self.make_job("b", JobStatus.DOWNLOADING))
        self.assertEqual(len(store), 2)

    def test_delete(self):
        store = JobStore()
        store.put(self.make_job("a"))
        self.assertIsNotNone(store.delete("a"))
        self.assertIsNone(store.delete("a"))
        self.assertNotIn("a", store)


if __name__ == "__main__":
    unittest.main()
