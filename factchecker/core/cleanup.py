"""
Cleanup: delete downloaded audio and chunk files.
"""

import shutil
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def cleanup_job_workspace(job_workspace: Path) -> bool:
    """
    Delete a job's working directory (downloaded audio, chunks).
    Best-effort: failures are logged, never raised. Returns True if removed.
    """
    if not job_workspace.exists():
        return False

    try:
        shutil.rmtree(job_workspace)
        logger.debug("Deleted workspace: %s", job_workspace)
        return True
    except OSError as e:
        logger.warning("Failed to delete %s: %s", job_workspace, e)
        return False


def remove_file(path: Path):
    """Remove a single working file (e.g. a transcribed chunk), ignoring absence."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to delete %s: %s", path, e)
