"""Flashcard models for SprintNotes."""

from dataclasses import dataclass, field
from typing import Any

from sprintnotes.models.common import SyncStatus
from sprintnotes.models.note import new_id


@dataclass
class Flashcard:
    """A front/back card belonging to a flashcard-set note."""

    front: str
    back: str
    note_id: str = ""
    mastered: bool = False

    id: str = field(default_factory=new_id)
    sync_status: SyncStatus = SyncStatus.PENDING

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.sync_status, str):
            self.sync_status = SyncStatus(self.sync_status)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe snapshot used as a sync payload."""
        return {
            "id": self.id,
            "noteId": self.note_id,
            "front": self.front,
            "back": self.back,
            "mastered": self.mastered,
        }


@dataclass
class FlashcardSet:
    """The cards owned by one flashcard-set note."""

    note_id: str
    cards: list[Flashcard] = field(default_factory=list)

    @property
    def mastered_count(self) -> int:
        """Number of cards marked as mastered."""
        return sum(1 for card in self.cards if card.mastered)
