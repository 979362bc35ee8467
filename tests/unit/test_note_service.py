"""Unit tests for NoteService."""

import pytest

from sprintnotes.database.repository import Repository
from sprintnotes.models.common import SyncStatus
from sprintnotes.models.note import NoteType, RichText, WhiteboardRaster
from sprintnotes.models.sync_operation import EntityType, OperationKind
from sprintnotes.services.note_service import NoteNotFoundError, NoteService
from sprintnotes.services.ordering import CycleError
from sprintnotes.services.sync_queue import SyncQueue


@pytest.fixture
def sync_queue(repository: Repository):
    """Provide a queue without a remote so intents only accumulate."""
    return SyncQueue(repository)


@pytest.fixture
def service(repository: Repository, sync_queue: SyncQueue):
    """Provide a note service recording sync intents."""
    return NoteService(repository, sync_queue=sync_queue)


def logged(repository: Repository) -> list[tuple[str, str, str]]:
    """The sync log as (kind, entity type, entity id) tuples."""
    return [
        (op.kind.value, op.entity_type.value, op.entity_id)
        for op in repository.get_sync_operations()
    ]


class TestNotes:
    """Tests for note actions."""

    def test_create_appends_and_queues(self, service: NoteService, repository: Repository):
        """Test that new notes go last and are queued as creates."""
        first = service.create_note("First")
        second = service.create_note("Second", content=RichText("<p>x</p>"))

        assert (first.order, second.order) == (1, 2)
        assert logged(repository) == [
            ("create", "note", first.id),
            ("create", "note", second.id),
        ]
        op = repository.get_sync_operations()[1]
        assert op.payload["content"] == "<p>x</p>"

    def test_create_typed_notes_get_matching_content(self, service: NoteService):
        """Test default content per note type."""
        board = service.create_note("Board", note_type=NoteType.WHITEBOARD)
        cards = service.create_note("Cards", note_type="flashcard-set")

        assert isinstance(board.content, WhiteboardRaster)
        assert cards.type == NoteType.FLASHCARD_SET

    def test_create_in_unknown_folder(self, service: NoteService, repository: Repository):
        """Test that nothing is written for a missing folder."""
        with pytest.raises(NoteNotFoundError):
            service.create_note("Lost", folder_id="nope")

        assert repository.get_all_notes() == []
        assert repository.get_sync_operations() == []

    def test_update_note(self, service: NoteService, repository: Repository):
        """Test editing fields and queueing an update."""
        note = service.create_note("Draft")
        repository.set_sync_status(EntityType.NOTE, note.id, SyncStatus.SYNCED)

        updated = service.update_note(note.id, title="Final", tags=["exam"])

        stored = repository.get_note(note.id)
        assert stored.title == "Final"
        assert stored.tags == ["exam"]
        assert stored.sync_status == SyncStatus.PENDING
        assert updated.updated_at >= note.updated_at
        assert logged(repository)[-1] == ("update", "note", note.id)

    def test_update_rejects_unknown_field(self, service: NoteService):
        """Test that structural fields cannot be edited directly."""
        note = service.create_note("Draft")

        with pytest.raises(ValueError, match="order"):
            service.update_note(note.id, order=5)

    def test_update_rejects_mismatched_content(self, service: NoteService):
        """Test that content must match the note type."""
        note = service.create_note("Draft")

        with pytest.raises(ValueError, match="does not match"):
            service.update_note(note.id, content=WhiteboardRaster(b"png"))

    def test_delete_note(self, service: NoteService, repository: Repository):
        """Test deleting and queueing a delete."""
        note = service.create_note("Bye")

        service.delete_note(note.id)

        assert repository.get_note(note.id) is None
        assert logged(repository)[-1] == ("delete", "note", note.id)
        with pytest.raises(NoteNotFoundError):
            service.delete_note(note.id)

    def test_delete_flashcard_set_queues_card_deletes(
        self, service: NoteService, repository: Repository
    ):
        """Test that the cards removed with their set are deleted remotely too."""
        deck = service.create_note("Deck", note_type=NoteType.FLASHCARD_SET)
        first = service.add_card(deck.id, "Q1", "A1")
        second = service.add_card(deck.id, "Q2", "A2")
        before = len(repository.get_sync_operations())

        service.delete_note(deck.id)

        entries = logged(repository)[before:]
        assert set(entries[:2]) == {
            ("delete", "flashcard", first.id),
            ("delete", "flashcard", second.id),
        }
        assert entries[2:] == [("delete", "note", deck.id)]
        assert repository.get_flashcards_for_note(deck.id) == []

    def test_move_queues_every_renumbered_note(
        self, service: NoteService, repository: Repository
    ):
        """Test that reordering syncs all notes whose order changed."""
        x = service.create_note("X")
        y = service.create_note("Y")
        z = service.create_note("Z")
        before = len(repository.get_sync_operations())

        service.move(z.id, None, 0)

        updates = logged(repository)[before:]
        assert sorted(updates) == sorted(
            [("update", "note", x.id), ("update", "note", y.id), ("update", "note", z.id)]
        )

    def test_share_note(self, service: NoteService, repository: Repository):
        """Test adding share recipients without duplicates."""
        note = service.create_note("Shared")

        service.share_note(note.id, ["A@Example.com", " b@example.com "])
        service.share_note(note.id, ["a@example.com"])

        assert repository.get_note(note.id).shared_with == ["a@example.com", "b@example.com"]

    def test_share_rejects_bad_email(self, service: NoteService):
        """Test e-mail validation."""
        note = service.create_note("Shared")

        with pytest.raises(ValueError, match="Invalid email"):
            service.share_note(note.id, ["not-an-email"])
        with pytest.raises(ValueError):
            service.share_note(note.id, ["  "])


class TestFolders:
    """Tests for folder actions."""

    def test_create_folder_picks_color(self, service: NoteService, repository: Repository):
        """Test default colors and the queued create."""
        folder = service.create_folder("  Biology ")

        assert folder.name == "Biology"
        assert folder.color.startswith("#")
        assert logged(repository) == [("create", "folder", folder.id)]

    def test_create_folder_requires_name(self, service: NoteService):
        """Test the empty name guard."""
        with pytest.raises(ValueError):
            service.create_folder("   ")

    def test_rename_folder(self, service: NoteService, repository: Repository):
        """Test renaming."""
        folder = service.create_folder("Old")

        service.update_folder(folder.id, name="New")

        assert repository.get_folder(folder.id).name == "New"

    def test_move_folder_into_child_fails_without_logging(
        self, service: NoteService, repository: Repository
    ):
        """Test that a rejected move leaves no sync intent."""
        parent = service.create_folder("Parent")
        child = service.create_folder("Child", parent_id=parent.id)
        before = len(repository.get_sync_operations())

        with pytest.raises(CycleError):
            service.move(parent.id, child.id)

        assert len(repository.get_sync_operations()) == before

    def test_delete_folder_queues_note_updates_and_folder_deletes(
        self, service: NoteService, repository: Repository
    ):
        """Test the sync intents of a cascading delete."""
        top = service.create_folder("Top")
        sub = service.create_folder("Sub", parent_id=top.id)
        note = service.create_note("Inside", folder_id=sub.id)
        before = len(repository.get_sync_operations())

        service.delete_folder(top.id)

        entries = logged(repository)[before:]
        assert entries[0] == ("update", "note", note.id)
        assert set(entries[1:]) == {("delete", "folder", top.id), ("delete", "folder", sub.id)}
        assert repository.get_note(note.id).folder_id is None


class TestFlashcards:
    """Tests for flashcard actions."""

    def test_open_set_on_first_use_is_empty(self, service: NoteService):
        """Test that a new set has no cards."""
        note = service.create_note("Deck", note_type=NoteType.FLASHCARD_SET)

        card_set = service.open_flashcard_set(note.id)

        assert card_set.cards == []
        assert card_set.mastered_count == 0

    def test_open_set_rejects_text_note(self, service: NoteService):
        """Test that only flashcard-set notes own cards."""
        note = service.create_note("Text")

        with pytest.raises(ValueError, match="not a flashcard set"):
            service.open_flashcard_set(note.id)

    def test_card_lifecycle(self, service: NoteService, repository: Repository):
        """Test add, toggle and delete with their sync intents."""
        deck = service.create_note("Deck", note_type=NoteType.FLASHCARD_SET)

        card = service.add_card(deck.id, "2+2?", "4")
        toggled = service.toggle_mastered(card.id)
        assert toggled.mastered is True
        assert service.open_flashcard_set(deck.id).mastered_count == 1

        service.delete_card(card.id)

        assert service.open_flashcard_set(deck.id).cards == []
        assert logged(repository)[-3:] == [
            ("create", "flashcard", card.id),
            ("update", "flashcard", card.id),
            ("delete", "flashcard", card.id),
        ]

    def test_update_missing_card(self, service: NoteService):
        """Test editing a card that does not exist."""
        with pytest.raises(NoteNotFoundError):
            service.update_card("ghost", front="?")


class TestQueueing:
    """Tests for how edits reach the sync queue."""

    def test_no_queue_no_log(self, repository: Repository):
        """Test that a service without a queue logs nothing."""
        service = NoteService(repository)

        service.create_note("Local")

        assert repository.get_sync_operations() == []

    def test_pending_count_tracks_intents(
        self, service: NoteService, sync_queue: SyncQueue
    ):
        """Test that the queue counter follows service edits."""
        note = service.create_note("A")
        service.update_note(note.id, title="B")

        assert sync_queue.pending_count == 2
        assert sync_queue.repository.get_unsettled_operations()[0].kind == OperationKind.CREATE
