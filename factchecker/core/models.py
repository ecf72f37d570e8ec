"""
In-memory data models (plain dataclasses) for Video Fact-Checker.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from factchecker.core.constants import JobStatus


@dataclass
class Claim:
    id: str
    text: str
    status: str
    score: int
    explanation: str
    timestamp: Optional[str] = None
    wrong_part: Optional[str] = None
    correction: Optional[str] = None
    sources: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'text': self.text,
            'timestamp': self.timestamp,
            'status': self.status,
            'score': self.score,
            'explanation': self.explanation,
            'wrongPart': self.wrong_part,
            'correction': self.correction,
            'sources': list(self.sources),
        }


@dataclass
class Job:
    id: str                          # UUID
    url: str
    platform: str
    language: str
    status: str = JobStatus.PENDING
    progress: int = 0
    status_message: str = "Initializing..."
    title: Optional[str] = None
    duration: Optional[float] = None
    audio_path: Optional[str] = None
    transcription: Optional[str] = None
    claims: Optional[list[Claim]] = None
    overall_score: Optional[int] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    analyzed_at: Optional[str] = None

    @property
    def is_analyzed(self) -> bool:
        return self.claims is not None and self.overall_score is not None


@dataclass
class ChunkInfo:
    idx: int
    path: Path
    start_sec: float
    duration_sec: float


@dataclass
class DownloadResult:
    audio_path: Path
    title: str
    duration: float


@dataclass
class TranscriptionResult:
    transcription: str
    language: str
    chunks_total: int = 0
    chunks_transcribed: int = 0


@dataclass
class UploadedFile:
    name: str                        # "files/<id>"
    uri: str
    mime_type: str
    state: str


@dataclass
class FactCheckResult:
    claims: list[Claim]
    overall_score: int
