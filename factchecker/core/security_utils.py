"""
Security utilities for Video Fact-Checker.
- Per-job workspace paths confined to the temp root
- Safe subprocess execution (argument arrays only)
- Tool path resolution (system PATH or a configured ffmpeg directory)
- Secret masking for log output
"""

import re
import shutil
import subprocess
import pathlib
import logging

from factchecker.core.constants import ErrorCode
from factchecker.core.error_codes import JobError

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


# ── Workspace safety ──────────────────────────────────────────────────

def job_workspace(temp_root: pathlib.Path, job_id: str) -> pathlib.Path:
    """
    Build the working directory for a job.  Enforces that realpath(result)
    starts with realpath(temp_root), so a crafted id cannot escape it.
    """
    if not _JOB_ID_RE.match(job_id or ''):
        raise ValueError(f"Unsafe job id: {job_id!r}")

    candidate = temp_root / job_id
    real_root = temp_root.resolve(strict=False)
    real_candidate = candidate.resolve(strict=False)
    if real_candidate.parent != real_root:
        raise ValueError("Path traversal detected")
    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    try:
        return subprocess.run(args, shell=False, **kwargs)
    except FileNotFoundError:
        raise JobError(ErrorCode.TOOL_MISSING, f"Required tool not found: {args[0]}")


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr as text."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )


def resolve_tool(name: str, tool_dir: pathlib.Path | None = None) -> str:
    """
    Return the executable to invoke for ffmpeg/ffprobe/yt-dlp.
    A configured directory wins when it holds the binary; else rely on PATH.
    """
    if tool_dir:
        for candidate in (tool_dir / name, tool_dir / f"{name}.exe"):
            if candidate.exists():
                return str(candidate)
    return name


def tool_available(name: str, tool_dir: pathlib.Path | None = None) -> bool:
    resolved = resolve_tool(name, tool_dir)
    if resolved != name:
        return True
    return shutil.which(name) is not None


# ── Secrets ───────────────────────────────────────────────────────────

def mask_secret(value: str | None) -> str:
    """Mask an API key for display: keep the last four characters only."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return "****" + value[-4:]
