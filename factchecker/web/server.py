"""
Flask application factory.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from factchecker.core.config import AppConfig
from factchecker.core.constants import APP_NAME, APP_VERSION
from factchecker.core.gemini_client import GeminiClient
from factchecker.core.job_manager import JobManager
from factchecker.web.routes import api

logger = logging.getLogger(__name__)

ENDPOINTS = {
    'health': 'GET /health',
    'languages': 'GET /api/languages',
    'platforms': 'GET /api/platforms',
    'systemStatus': 'GET /api/status',
    'listVideos': 'GET /api/video',
    'processVideo': 'POST /api/video/process',
    'videoStatus': 'GET /api/video/:id/status',
    'analyzeVideo': 'POST /api/video/:id/analyze',
    'videoResults': 'GET /api/video/:id/results',
    'deleteVideo': 'DELETE /api/video/:id',
}


def create_app(config: AppConfig | None = None,
               manager: JobManager | None = None,
               client_factory=GeminiClient) -> Flask:
    """Build the API app around a JobManager (created from config if not given)."""
    config = config or (manager.config if manager else AppConfig())
    manager = manager or JobManager(config, client_factory=client_factory)
    config.temp_dir.mkdir(parents=True, exist_ok=True)

    app = Flask(__name__)
    app.config["JOB_MANAGER"] = manager
    app.config["CLIENT_FACTORY"] = client_factory
    app.register_blueprint(api, url_prefix="/api")

    @app.route("/", methods=["GET"])
    def index() -> Any:
        return jsonify({"name": APP_NAME, "version": APP_VERSION, "endpoints": ENDPOINTS})

    @app.route("/health", methods=["GET"])
    def health() -> Any:
        return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception) -> Any:
        if isinstance(error, HTTPException):
            return jsonify({"success": False, "error": error.description}), error.code
        logger.error("Unhandled API error: %s", error, exc_info=True)
        return jsonify({"success": False, "error": str(error) or "Unknown error"}), 500

    return app
