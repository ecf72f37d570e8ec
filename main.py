#!/usr/bin/env python3
"""
Video Fact-Checker API v1.0.0 — Main entry point.
Starts the HTTP service on the configured host and port.
"""

import sys
import os
import logging
import shutil
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from factchecker.core.config import AppConfig, load_env_file
from factchecker.core.constants import APP_NAME, APP_SLUG, APP_VERSION, LOG_DIR
from factchecker.core.security_utils import resolve_tool, tool_available

# ── Logging setup (writes to ~/.local/state/video-fact-checker/) ─────
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "app.log"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(APP_SLUG)


def check_prerequisites(config: AppConfig):
    """Warn about missing tools and credentials; the service still starts."""
    if not shutil.which("yt-dlp"):
        logger.warning("yt-dlp not found on PATH (install with: pip install yt-dlp)")
    else:
        logger.info("yt-dlp found at: %s", shutil.which("yt-dlp"))

    if not tool_available("ffmpeg", config.ffmpeg_dir):
        logger.warning("ffmpeg not found; long videos cannot be split into chunks")
    else:
        logger.info("ffmpeg found at: %s", resolve_tool("ffmpeg", config.ffmpeg_dir))

    if not config.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set (environment or .env); transcription and analysis will fail")


def main():
    load_env_file()
    config = AppConfig()
    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Config: %s", config.path)
    logger.info("Temp dir: %s", config.temp_dir)
    logger.info("Settings: %s", config.as_dict())
    logger.info("PATH: %s", os.environ.get("PATH", ""))
    logger.info("=" * 60)

    try:
        check_prerequisites(config)
        from factchecker.web.server import create_app
        app = create_app(config)
        host, port = config.get('host'), config.get('port')
        logger.info("Listening on http://%s:%s", host, port)
        app.run(host=host, port=port, threaded=True)
    except Exception as e:
        logger.critical("Fatal error: %s: %s\n%s", type(e).__name__, e, traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
