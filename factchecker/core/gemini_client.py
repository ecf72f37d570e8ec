"""
Google Gemini REST API client.
Covers the calls the pipeline needs: generateContent (inline or file
reference), the Files API upload/get/delete, and a key check.
Single attempts only; retries are applied by the caller's RetryPolicy.
"""

import base64
import json
import logging
from pathlib import Path

import requests

from factchecker.core.error_codes import JobError
from factchecker.core.models import UploadedFile
from factchecker.core.constants import (
    ErrorCode, GEMINI_API_BASE, GEMINI_UPLOAD_URL,
    GEMINI_TRANSCRIPTION_MODEL, FileState,
)

logger = logging.getLogger(__name__)

_GENERATE_TIMEOUT_SEC = 300
_FILE_OP_TIMEOUT_SEC = 30


def _raise_for_response(resp: requests.Response, what: str):
    """Translate an HTTP error status into a JobError."""
    if resp.status_code < 400:
        return

    # Sanitize error message (never log API key)
    body = resp.text[:300] if resp.text else "No response body"

    if resp.status_code == 429:
        raise JobError(ErrorCode.RATE_LIMITED, f"Gemini rate limited during {what}")
    if resp.status_code in (500, 502, 503):
        raise JobError(ErrorCode.INFERENCE_FAILED,
                       f"Gemini returned {resp.status_code} during {what}: {body}",
                       retryable=True)
    if resp.status_code == 504:
        raise JobError(ErrorCode.INFERENCE_TIMEOUT,
                       f"Gemini returned 504 Gateway Timeout during {what}")
    if resp.status_code in (401, 403):
        raise JobError(ErrorCode.UNCONFIGURED,
                       f"Gemini rejected the API key ({resp.status_code})")
    raise JobError(ErrorCode.INFERENCE_FAILED,
                   f"Gemini returned {resp.status_code} during {what}: {body}",
                   retryable=False)


def _file_from_json(data: dict) -> UploadedFile:
    return UploadedFile(
        name=data.get('name', ''),
        uri=data.get('uri', ''),
        mime_type=data.get('mimeType', ''),
        state=data.get('state', FileState.PROCESSING),
    )


def extract_response_text(response: dict) -> str:
    """
    Extract plain text from a generateContent response.
    Concatenates the text parts of the first candidate.
    """
    try:
        candidates = response.get('candidates') or []
        if not candidates:
            return ""
        parts = (candidates[0].get('content') or {}).get('parts') or []
        return ''.join(p.get('text', '') for p in parts if isinstance(p, dict))
    except (AttributeError, TypeError) as e:
        logger.warning("Error extracting response text: %s", e)
        return ""


class GeminiClient:
    """Thin wrapper over the Gemini v1beta REST endpoints."""

    def __init__(self, api_key: str, model: str = GEMINI_TRANSCRIPTION_MODEL,
                 session: requests.Session | None = None,
                 api_base: str = GEMINI_API_BASE,
                 upload_url: str = GEMINI_UPLOAD_URL):
        if not api_key:
            raise JobError(ErrorCode.UNCONFIGURED,
                           "Gemini API key not configured. Please set GEMINI_API_KEY in the environment or .env")
        self.model = model
        self.api_base = api_base.rstrip('/')
        self.upload_url = upload_url
        self._session = session or requests.Session()
        self._session.headers.update({"x-goog-api-key": api_key})

    # ── Generation ────────────────────────────────────────────────────

    def _post_generate(self, parts: list[dict], model: str | None) -> str:
        url = f"{self.api_base}/models/{model or self.model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": parts}]}

        try:
            resp = self._session.post(url, json=payload, timeout=_GENERATE_TIMEOUT_SEC)
        except requests.exceptions.Timeout:
            raise JobError(ErrorCode.INFERENCE_TIMEOUT, "Gemini request timed out")
        except requests.exceptions.ConnectionError:
            raise JobError(ErrorCode.NETWORK_TRANSIENT, "Network error connecting to Gemini")

        _raise_for_response(resp, "generation")

        try:
            data = resp.json()
        except json.JSONDecodeError:
            raise JobError(ErrorCode.INFERENCE_FAILED,
                           "Failed to parse Gemini response JSON", retryable=True)

        return extract_response_text(data)

    def generate(self, prompt: str, model: str | None = None) -> str:
        """Text-only generation (used by claim extraction and verification)."""
        return self._post_generate([{"text": prompt}], model)

    def generate_with_inline_audio(self, prompt: str, audio_bytes: bytes,
                                   mime_type: str, model: str | None = None) -> str:
        encoded = base64.b64encode(audio_bytes).decode('ascii')
        parts = [
            {"text": prompt},
            {"inline_data": {"mime_type": mime_type, "data": encoded}},
        ]
        return self._post_generate(parts, model)

    def generate_with_file(self, prompt: str, uploaded: UploadedFile,
                           model: str | None = None) -> str:
        parts = [
            {"text": prompt},
            {"file_data": {"mime_type": uploaded.mime_type, "file_uri": uploaded.uri}},
        ]
        return self._post_generate(parts, model)

    # ── Files API ─────────────────────────────────────────────────────

    def upload_file(self, path: Path, mime_type: str,
                    display_name: str | None = None) -> UploadedFile:
        """Resumable upload (start + single upload/finalize request)."""
        size = path.stat().st_size
        start_headers = {
            "X-Goog-Upload-Protocol": "resumable",
            "X-Goog-Upload-Command": "start",
            "X-Goog-Upload-Header-Content-Length": str(size),
            "X-Goog-Upload-Header-Content-Type": mime_type,
        }
        metadata = {"file": {"display_name": display_name or path.name}}

        try:
            start = self._session.post(self.upload_url, headers=start_headers,
                                       json=metadata, timeout=_FILE_OP_TIMEOUT_SEC)
            _raise_for_response(start, "upload start")
            session_url = start.headers.get("x-goog-upload-url")
            if not session_url:
                raise JobError(ErrorCode.INFERENCE_FAILED,
                               "Gemini upload did not return a session URL", retryable=True)

            upload_headers = {
                "Content-Length": str(size),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            }
            # Adaptive timeout: ~1 min per 10MB, minimum 120s
            timeout_sec = max(120, int(size / (10 * 1024 * 1024) * 60) + 60)
            with open(path, 'rb') as f:
                resp = self._session.post(session_url, headers=upload_headers,
                                          data=f, timeout=timeout_sec)
        except requests.exceptions.Timeout:
            raise JobError(ErrorCode.INFERENCE_TIMEOUT, "Gemini upload timed out")
        except requests.exceptions.ConnectionError:
            raise JobError(ErrorCode.NETWORK_TRANSIENT, "Network error uploading to Gemini")

        _raise_for_response(resp, "upload")

        try:
            data = resp.json()
        except json.JSONDecodeError:
            raise JobError(ErrorCode.INFERENCE_FAILED,
                           "Failed to parse Gemini upload response", retryable=True)

        uploaded = _file_from_json(data.get('file') or {})
        if not uploaded.mime_type:
            uploaded.mime_type = mime_type
        logger.info("File uploaded: %s, state: %s", uploaded.uri, uploaded.state)
        return uploaded

    def get_file(self, name: str) -> UploadedFile:
        resp = self._session.get(f"{self.api_base}/{name}", timeout=_FILE_OP_TIMEOUT_SEC)
        _raise_for_response(resp, "file status")
        return _file_from_json(resp.json())

    def delete_file(self, name: str):
        resp = self._session.delete(f"{self.api_base}/{name}", timeout=_FILE_OP_TIMEOUT_SEC)
        _raise_for_response(resp, "file delete")

    # ── Diagnostics ───────────────────────────────────────────────────

    def verify_api_key(self) -> tuple[bool, str]:
        """
        Verify the API key with a lightweight request.
        Returns (success: bool, message: str).
        """
        try:
            resp = self._session.get(f"{self.api_base}/models",
                                     params={"pageSize": 1}, timeout=10)
            if resp.status_code == 200:
                return True, "Key verified"
            elif resp.status_code in (400, 401, 403):
                return False, "Key invalid or rejected"
            else:
                return False, f"Unexpected response: {resp.status_code}"
        except requests.exceptions.ConnectionError:
            return False, "Network error — could not reach Gemini"
        except requests.exceptions.Timeout:
            return False, "Network error — request timed out"
        except requests.RequestException as e:
            return False, f"Network error: {e}"
