"""Data models for SprintNotes."""

from sprintnotes.models.collab import Match, MatchStatus, Message, Role, User
from sprintnotes.models.common import SyncStatus
from sprintnotes.models.flashcard import Flashcard, FlashcardSet
from sprintnotes.models.lecture import GlossaryTerm, LectureNote
from sprintnotes.models.note import (
    FlashcardSetRef,
    Folder,
    Note,
    NoteContent,
    NoteType,
    RichText,
    WhiteboardRaster,
)
from sprintnotes.models.sync_operation import EntityType, OperationKind, SyncOperation

__all__ = [
    "EntityType",
    "Flashcard",
    "FlashcardSet",
    "FlashcardSetRef",
    "Folder",
    "GlossaryTerm",
    "LectureNote",
    "Match",
    "MatchStatus",
    "Message",
    "Note",
    "NoteContent",
    "NoteType",
    "OperationKind",
    "RichText",
    "Role",
    "SyncOperation",
    "SyncStatus",
    "User",
    "WhiteboardRaster",
]
