"""Note and folder models for SprintNotes."""

import base64
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from sprintnotes.models.common import SyncStatus, utcnow


class NoteType(str, Enum):
    """Kind of content a note holds."""

    NOTE = "note"  # Rich text (HTML)
    WHITEBOARD = "whiteboard"  # Raster image of a whiteboard
    FLASHCARD_SET = "flashcard-set"  # Placeholder owning a set of flashcards


@dataclass(frozen=True)
class RichText:
    """HTML produced by the rich-text editor."""

    html: str = ""


@dataclass(frozen=True)
class WhiteboardRaster:
    """PNG bytes exported from the whiteboard canvas."""

    data: bytes = b""


@dataclass(frozen=True)
class FlashcardSetRef:
    """Marker content for a flashcard-set note; the cards live in their own table."""


NoteContent = Union[RichText, WhiteboardRaster, FlashcardSetRef]

CONTENT_TYPES: dict[NoteType, type] = {
    NoteType.NOTE: RichText,
    NoteType.WHITEBOARD: WhiteboardRaster,
    NoteType.FLASHCARD_SET: FlashcardSetRef,
}


def content_type_of(content: NoteContent) -> NoteType:
    """Return the note type tag matching a content variant."""
    for note_type, variant in CONTENT_TYPES.items():
        if isinstance(content, variant):
            return note_type
    raise TypeError(f"Unsupported note content: {type(content).__name__}")


def empty_content(note_type: NoteType) -> NoteContent:
    """Default content for a freshly created note of the given type."""
    return CONTENT_TYPES[NoteType(note_type)]()


def encode_content(content: NoteContent) -> str:
    """Serialize note content for storage and sync payloads."""
    if isinstance(content, RichText):
        return content.html
    if isinstance(content, WhiteboardRaster):
        return base64.b64encode(content.data).decode("ascii")
    if isinstance(content, FlashcardSetRef):
        return ""
    raise TypeError(f"Unsupported note content: {type(content).__name__}")


def decode_content(note_type: NoteType, raw: Optional[str]) -> NoteContent:
    """Rebuild note content from its stored form.

    Whiteboard rasters may be stored either as bare base64 or as a
    ``data:image/png;base64,...`` URL.
    """
    note_type = NoteType(note_type)
    raw = raw or ""
    if note_type == NoteType.NOTE:
        return RichText(raw)
    if note_type == NoteType.WHITEBOARD:
        if raw.startswith("data:"):
            raw = raw.split(",", 1)[1] if "," in raw else ""
        return WhiteboardRaster(base64.b64decode(raw))
    return FlashcardSetRef()


def new_id() -> str:
    """Generate an entity id."""
    return str(uuid.uuid4())


@dataclass
class Note:
    """A note: rich text, whiteboard or flashcard set."""

    title: str
    content: NoteContent = field(default_factory=RichText)
    type: NoteType = NoteType.NOTE
    description: Optional[str] = None
    folder_id: Optional[str] = None  # None = root group

    tags: list[str] = field(default_factory=list)
    shared_with: list[str] = field(default_factory=list)

    # Position among siblings with the same folder_id (1-based)
    order: int = 0

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    sync_status: SyncStatus = SyncStatus.PENDING

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.type, str):
            self.type = NoteType(self.type)
        if isinstance(self.sync_status, str):
            self.sync_status = SyncStatus(self.sync_status)
        if content_type_of(self.content) != self.type:
            raise ValueError(
                f"Note type {self.type.value!r} does not match "
                f"{type(self.content).__name__} content"
            )

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe snapshot used as a sync payload."""
        return {
            "id": self.id,
            "title": self.title,
            "content": encode_content(self.content),
            "description": self.description,
            "folderId": self.folder_id,
            "type": self.type.value,
            "tags": list(self.tags),
            "sharedWith": list(self.shared_with),
            "order": self.order,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class Folder:
    """A named, colored node in the folder tree."""

    name: str
    color: str = "#3b82f6"
    parent_id: Optional[str] = None  # None = root folder

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe snapshot used as a sync payload."""
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "parentId": self.parent_id,
            "createdAt": self.created_at.isoformat(),
        }
