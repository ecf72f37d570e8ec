"""
Merge per-chunk transcripts into a single text.
Each chunk is prefixed with its absolute start offset so the inline
[MM:SS] markers the model emits (relative to the chunk) can be rebased.
"""

from factchecker.core.error_codes import JobError
from factchecker.core.constants import ErrorCode


def format_timestamp(seconds: float) -> str:
    """Format seconds as MM:SS. Minutes are not wrapped into hours."""
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"


def chunk_header(start_sec: float) -> str:
    return f"[{format_timestamp(start_sec)}]"


def with_chunk_header(text: str, start_sec: float) -> str:
    return f"{chunk_header(start_sec)}\n{text.strip()}"


def merge_chunk_transcripts(parts: list[str]) -> str:
    """
    Join headed chunk transcripts, in chunk order, with a blank line.
    Raises JobError when no chunk produced any text.
    """
    parts = [p for p in parts if p and p.strip()]
    if not parts:
        raise JobError(ErrorCode.TRANSCRIPTION_FAILED, "Failed to transcribe any chunks")
    return "\n\n".join(parts)
