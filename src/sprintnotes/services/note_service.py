"""User-facing note, folder and flashcard actions.

Each action writes the local store first and then records a sync intent,
so edits never wait on the network.
"""

import logging
import re
from typing import Any, Optional

from sprintnotes.database.repository import Repository
from sprintnotes.models.common import SyncStatus, utcnow
from sprintnotes.models.flashcard import Flashcard, FlashcardSet
from sprintnotes.models.note import (
    Folder,
    Note,
    NoteContent,
    NoteType,
    content_type_of,
    empty_content,
)
from sprintnotes.models.sync_operation import EntityType, OperationKind
from sprintnotes.services.ordering import FolderDeletion, OrderingEngine, Relocation
from sprintnotes.services.sync_queue import SyncQueue

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Note fields a caller may change through update_note()
EDITABLE_NOTE_FIELDS = {"title", "content", "description", "tags", "shared_with"}

FOLDER_COLORS = ["#3b82f6", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#ec4899"]


class NoteNotFoundError(LookupError):
    """No note, folder or flashcard with the given ID."""

    pass


class NoteService:
    """Applies note, folder and flashcard edits and queues them for sync."""

    def __init__(
        self,
        repository: Repository,
        ordering: Optional[OrderingEngine] = None,
        sync_queue: Optional[SyncQueue] = None,
    ):
        """Initialize the service.

        Args:
            repository: Local store
            ordering: Ordering engine (default: one over the same repository)
            sync_queue: Queue receiving sync intents; None keeps edits local
        """
        self.repository = repository
        self.ordering = ordering or OrderingEngine(repository)
        self.sync_queue = sync_queue

    def _queue(
        self, kind: OperationKind, entity_type: EntityType, entity_id: str, payload: Any
    ) -> None:
        if self.sync_queue is not None:
            self.sync_queue.enqueue(kind, entity_type, entity_id, payload)

    # ==================== Notes ====================

    def create_note(
        self,
        title: str,
        note_type: NoteType = NoteType.NOTE,
        content: Optional[NoteContent] = None,
        folder_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> Note:
        """Create a note at the end of its folder."""
        note_type = NoteType(note_type)
        if folder_id is not None and self.repository.get_folder(folder_id) is None:
            raise NoteNotFoundError(f"No folder with id {folder_id!r}")

        note = Note(
            title=title,
            type=note_type,
            content=content if content is not None else empty_content(note_type),
            folder_id=folder_id,
            description=description,
            tags=list(tags or []),
            order=self.ordering.next_order(folder_id),
        )
        self.repository.add_note(note)
        self._queue(OperationKind.CREATE, EntityType.NOTE, note.id, note.to_payload())
        return note

    def get_note(self, note_id: str) -> Note:
        """Get a note or raise NoteNotFoundError."""
        note = self.repository.get_note(note_id)
        if note is None:
            raise NoteNotFoundError(f"No note with id {note_id!r}")
        return note

    def list_notes(self, folder_id: Optional[str] = None) -> list[Note]:
        """Notes directly inside a folder (None = root), in order."""
        return self.repository.get_notes_in_folder(folder_id)

    def update_note(self, note_id: str, **changes: Any) -> Note:
        """Edit note fields; stamps updated_at and queues an update.

        Raises:
            ValueError: For unknown fields or content of the wrong type
        """
        unknown = set(changes) - EDITABLE_NOTE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update note field(s): {', '.join(sorted(unknown))}")

        note = self.get_note(note_id)
        if "content" in changes and content_type_of(changes["content"]) != note.type:
            raise ValueError(f"Content does not match note type {note.type.value!r}")

        for name, value in changes.items():
            setattr(note, name, list(value) if name in ("tags", "shared_with") else value)
        note.updated_at = utcnow()
        note.sync_status = SyncStatus.PENDING

        self.repository.update_note(note)
        self._queue(OperationKind.UPDATE, EntityType.NOTE, note.id, note.to_payload())
        return note

    def delete_note(self, note_id: str) -> None:
        """Delete a note together with its flashcards."""
        cards = self.repository.get_flashcards_for_note(note_id)
        if not self.repository.delete_note(note_id):
            raise NoteNotFoundError(f"No note with id {note_id!r}")
        for card in cards:
            self._queue(OperationKind.DELETE, EntityType.FLASHCARD, card.id, {"id": card.id})
        self._queue(OperationKind.DELETE, EntityType.NOTE, note_id, {"id": note_id})

    def move(self, entity_id: str, new_parent_id: Optional[str], new_index: int = 0) -> Relocation:
        """Drag-and-drop move of a note or folder."""
        relocation = self.ordering.relocate(entity_id, new_parent_id, new_index)
        for note in relocation.changed_notes:
            self._queue(OperationKind.UPDATE, EntityType.NOTE, note.id, note.to_payload())
        if relocation.folder is not None:
            folder = relocation.folder
            self._queue(OperationKind.UPDATE, EntityType.FOLDER, folder.id, folder.to_payload())
        return relocation

    def share_note(self, note_id: str, emails: list[str]) -> Note:
        """Add recipients to a note's share list.

        Raises:
            ValueError: If no address is given or any address is malformed
        """
        cleaned = [e.strip().lower() for e in emails if e and e.strip()]
        if not cleaned:
            raise ValueError("Provide at least one email address")
        invalid = [e for e in cleaned if not EMAIL_RE.match(e)]
        if invalid:
            raise ValueError(f"Invalid email addresses: {', '.join(invalid)}")

        note = self.get_note(note_id)
        recipients = list(note.shared_with)
        for email in cleaned:
            if email not in recipients:
                recipients.append(email)
        return self.update_note(note_id, shared_with=recipients)

    # ==================== Folders ====================

    def create_folder(
        self, name: str, color: Optional[str] = None, parent_id: Optional[str] = None
    ) -> Folder:
        """Create a folder, optionally nested."""
        if not name or not name.strip():
            raise ValueError("Folder name is required")
        if parent_id is not None and self.repository.get_folder(parent_id) is None:
            raise NoteNotFoundError(f"No folder with id {parent_id!r}")

        if color is None:
            color = FOLDER_COLORS[len(self.repository.get_all_folders()) % len(FOLDER_COLORS)]
        folder = Folder(name=name.strip(), color=color, parent_id=parent_id)
        self.repository.add_folder(folder)
        self._queue(OperationKind.CREATE, EntityType.FOLDER, folder.id, folder.to_payload())
        return folder

    def update_folder(
        self, folder_id: str, name: Optional[str] = None, color: Optional[str] = None
    ) -> Folder:
        """Rename or recolor a folder. Re-parenting goes through move()."""
        folder = self.repository.get_folder(folder_id)
        if folder is None:
            raise NoteNotFoundError(f"No folder with id {folder_id!r}")
        if name is not None:
            if not name.strip():
                raise ValueError("Folder name is required")
            folder.name = name.strip()
        if color is not None:
            folder.color = color
        self.repository.update_folder(folder)
        self._queue(OperationKind.UPDATE, EntityType.FOLDER, folder.id, folder.to_payload())
        return folder

    def delete_folder(self, folder_id: str) -> FolderDeletion:
        """Delete a folder subtree; its notes move up to the folder's parent."""
        deletion = self.ordering.delete_folder(folder_id)
        for note in deletion.moved_notes:
            self._queue(OperationKind.UPDATE, EntityType.NOTE, note.id, note.to_payload())
        for deleted_id in deletion.deleted_folder_ids:
            self._queue(OperationKind.DELETE, EntityType.FOLDER, deleted_id, {"id": deleted_id})
        return deletion

    # ==================== Flashcards ====================

    def open_flashcard_set(self, note_id: str) -> FlashcardSet:
        """Load the cards of a flashcard-set note (empty on first open)."""
        note = self.get_note(note_id)
        if note.type != NoteType.FLASHCARD_SET:
            raise ValueError(f"Note {note_id!r} is not a flashcard set")
        return FlashcardSet(note_id=note.id, cards=self.repository.get_flashcards_for_note(note.id))

    def add_card(self, note_id: str, front: str, back: str) -> Flashcard:
        """Append a card to a flashcard-set note."""
        self.open_flashcard_set(note_id)
        card = Flashcard(front=front, back=back, note_id=note_id)
        self.repository.add_flashcard(card)
        self._queue(OperationKind.CREATE, EntityType.FLASHCARD, card.id, card.to_payload())
        return card

    def update_card(
        self,
        card_id: str,
        front: Optional[str] = None,
        back: Optional[str] = None,
        mastered: Optional[bool] = None,
    ) -> Flashcard:
        """Edit a card's text or mastery flag."""
        card = self.repository.get_flashcard(card_id)
        if card is None:
            raise NoteNotFoundError(f"No flashcard with id {card_id!r}")
        if front is not None:
            card.front = front
        if back is not None:
            card.back = back
        if mastered is not None:
            card.mastered = mastered
        card.sync_status = SyncStatus.PENDING
        self.repository.update_flashcard(card)
        self._queue(OperationKind.UPDATE, EntityType.FLASHCARD, card.id, card.to_payload())
        return card

    def toggle_mastered(self, card_id: str) -> Flashcard:
        """Flip a card's mastery flag."""
        card = self.repository.get_flashcard(card_id)
        if card is None:
            raise NoteNotFoundError(f"No flashcard with id {card_id!r}")
        return self.update_card(card_id, mastered=not card.mastered)

    def delete_card(self, card_id: str) -> None:
        """Remove a single card."""
        if not self.repository.delete_flashcard(card_id):
            raise NoteNotFoundError(f"No flashcard with id {card_id!r}")
        self._queue(OperationKind.DELETE, EntityType.FLASHCARD, card_id, {"id": card_id})
