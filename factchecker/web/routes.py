"""
HTTP API blueprint for video submission, status, analysis and results.
Every response body carries `success`; known job errors map to 4xx/5xx via
http_status_for.
"""

import logging
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from factchecker.core.constants import ErrorCode, SUPPORTED_LANGUAGES, SUPPORTED_PLATFORMS
from factchecker.core.diagnostics import get_system_status
from factchecker.core.error_codes import JobError, http_status_for
from factchecker.core.job_manager import JobManager

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)


def _manager() -> JobManager:
    return current_app.config["JOB_MANAGER"]


def _json_body() -> dict:
    """Request JSON object; a missing or unparseable body counts as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise JobError(ErrorCode.INVALID_INPUT, "Request body must be a JSON object")
    return data


@api.errorhandler(JobError)
def handle_job_error(error: JobError) -> Any:
    body = {"success": False, "error": error.message, "code": error.code}
    body.update(error.details)
    status = http_status_for(error.code)
    if status >= 500:
        logger.error("Request failed: %s", error)
    return jsonify(body), status


# ── System ────────────────────────────────────────────────────────────

@api.route("/languages", methods=["GET"])
def get_languages() -> Any:
    return jsonify({"success": True, "languages": SUPPORTED_LANGUAGES})


@api.route("/platforms", methods=["GET"])
def get_platforms() -> Any:
    return jsonify({"success": True, "platforms": SUPPORTED_PLATFORMS})


@api.route("/status", methods=["GET"])
def get_status() -> Any:
    manager = _manager()
    report = get_system_status(manager.config, current_app.config["CLIENT_FACTORY"])
    return jsonify({"success": True, **report})


# ── Videos ────────────────────────────────────────────────────────────

@api.route("/video", methods=["GET"])
def list_videos() -> Any:
    return jsonify({"success": True, "videos": _manager().list_jobs()})


@api.route("/video/process", methods=["POST"])
def process_video() -> Any:
    """Create a job and start download + transcription in the background."""
    data = _json_body()
    job_id = _manager().submit(data.get("url"), data.get("language"))
    return jsonify({"success": True, "id": job_id, "message": "Video processing started"})


@api.route("/video/<job_id>/status", methods=["GET"])
def video_status(job_id: str) -> Any:
    return jsonify({"success": True, **_manager().get_status(job_id)})


@api.route("/video/<job_id>/analyze", methods=["POST"])
def analyze_video(job_id: str) -> Any:
    data = _json_body()
    _manager().request_analysis(job_id, use_internet=bool(data.get("useInternet", False)))
    return jsonify({"success": True, "id": job_id, "message": "Analysis started"})


@api.route("/video/<job_id>/results", methods=["GET"])
def video_results(job_id: str) -> Any:
    return jsonify({"success": True, **_manager().get_results(job_id)})


@api.route("/video/<job_id>", methods=["DELETE"])
def delete_video(job_id: str) -> Any:
    _manager().delete_job(job_id)
    return jsonify({"success": True, "message": "Video deleted successfully"})
