"""Lecture transcript models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sprintnotes.models.common import SyncStatus, utcnow
from sprintnotes.models.note import new_id


@dataclass
class GlossaryTerm:
    """A difficult term pulled out of a lecture."""

    term: str
    definition: str
    context: str = ""


@dataclass
class LectureNote:
    """A transcribed lecture with translation and comprehension aids."""

    title: str
    original_language: str
    target_language: str
    original_transcript: str = ""
    course_id: Optional[str] = None

    # Audio
    audio_url: Optional[str] = None
    audio_file_name: Optional[str] = None

    # Comprehension aids
    simplified_english: Optional[str] = None
    translated_version: Optional[str] = None
    glossary: list[GlossaryTerm] = field(default_factory=list)
    key_points: list[str] = field(default_factory=list)

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    sync_status: SyncStatus = SyncStatus.PENDING

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.sync_status, str):
            self.sync_status = SyncStatus(self.sync_status)
        self.glossary = [
            GlossaryTerm(**g) if isinstance(g, dict) else g for g in self.glossary
        ]
