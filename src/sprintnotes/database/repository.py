"""Repository for local store CRUD operations."""

import json
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from sprintnotes.database.schema import (
    FlashcardRecord,
    FolderRecord,
    LectureNoteRecord,
    NoteRecord,
    SyncOperationRecord,
    init_database,
)
from sprintnotes.models.common import SyncStatus
from sprintnotes.models.flashcard import Flashcard
from sprintnotes.models.lecture import GlossaryTerm, LectureNote
from sprintnotes.models.note import Folder, Note, NoteType, decode_content, encode_content
from sprintnotes.models.sync_operation import EntityType, OperationKind, SyncOperation


class Repository:
    """Repository for notes, folders, flashcards, lectures and the sync log."""

    def __init__(self, database_url: str):
        """Initialize repository with database connection."""
        self.session_factory = init_database(database_url)

    def _get_session(self) -> Session:
        """Get a new database session."""
        return self.session_factory()

    # ==================== Note Operations ====================

    def add_note(self, note: Note) -> Note:
        """Add a new note to the database."""
        with self._get_session() as session:
            record = NoteRecord(id=note.id)
            self._apply_note(record, note)
            record.created_at = note.created_at
            session.add(record)
            session.commit()
            return note

    def get_note(self, note_id: str) -> Optional[Note]:
        """Get a note by its ID."""
        with self._get_session() as session:
            record = session.get(NoteRecord, note_id)
            if record:
                return self._record_to_note(record)
            return None

    def get_all_notes(self) -> list[Note]:
        """Get every note, grouped by folder and sorted by sibling order."""
        with self._get_session() as session:
            stmt = select(NoteRecord).order_by(
                NoteRecord.folder_id, NoteRecord.order, NoteRecord.created_at
            )
            return [self._record_to_note(r) for r in session.scalars(stmt).all()]

    def get_notes_in_folder(self, folder_id: Optional[str]) -> list[Note]:
        """Get the direct note children of a folder (None = root), in sibling order."""
        with self._get_session() as session:
            stmt = (
                select(NoteRecord)
                .where(NoteRecord.folder_id.is_(None) if folder_id is None
                       else NoteRecord.folder_id == folder_id)
                .order_by(NoteRecord.order, NoteRecord.created_at)
            )
            return [self._record_to_note(r) for r in session.scalars(stmt).all()]

    def get_notes_in_folders(self, folder_ids: Iterable[str]) -> list[Note]:
        """Get notes living in any of the given folders."""
        ids = list(folder_ids)
        if not ids:
            return []
        with self._get_session() as session:
            stmt = (
                select(NoteRecord)
                .where(NoteRecord.folder_id.in_(ids))
                .order_by(NoteRecord.order, NoteRecord.created_at)
            )
            return [self._record_to_note(r) for r in session.scalars(stmt).all()]

    def get_notes_by_type(self, note_type: NoteType) -> list[Note]:
        """Get all notes of one type."""
        with self._get_session() as session:
            stmt = select(NoteRecord).where(NoteRecord.type == note_type)
            return [self._record_to_note(r) for r in session.scalars(stmt).all()]

    def get_notes_by_sync_status(self, status: SyncStatus) -> list[Note]:
        """Get all notes with a specific sync status."""
        with self._get_session() as session:
            stmt = select(NoteRecord).where(NoteRecord.sync_status == status)
            return [self._record_to_note(r) for r in session.scalars(stmt).all()]

    def update_note(self, note: Note) -> Optional[Note]:
        """Update an existing note. Returns None if it does not exist."""
        with self._get_session() as session:
            record = session.get(NoteRecord, note.id)
            if record is None:
                return None
            self._apply_note(record, note)
            session.commit()
            return note

    def save_notes(self, notes: list[Note]) -> None:
        """Write several existing notes in a single transaction."""
        with self._get_session() as session:
            for note in notes:
                record = session.get(NoteRecord, note.id)
                if record is not None:
                    self._apply_note(record, note)
            session.commit()

    def delete_note(self, note_id: str) -> bool:
        """Delete a note and its flashcards."""
        with self._get_session() as session:
            record = session.get(NoteRecord, note_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    # ==================== Folder Operations ====================

    def add_folder(self, folder: Folder) -> Folder:
        """Add a new folder to the database."""
        with self._get_session() as session:
            session.add(
                FolderRecord(
                    id=folder.id,
                    name=folder.name,
                    color=folder.color,
                    parent_id=folder.parent_id,
                    created_at=folder.created_at,
                )
            )
            session.commit()
            return folder

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        """Get a folder by its ID."""
        with self._get_session() as session:
            record = session.get(FolderRecord, folder_id)
            if record:
                return self._record_to_folder(record)
            return None

    def get_all_folders(self) -> list[Folder]:
        """Get every folder in creation order."""
        with self._get_session() as session:
            stmt = select(FolderRecord).order_by(FolderRecord.created_at)
            return [self._record_to_folder(r) for r in session.scalars(stmt).all()]

    def get_child_folders(self, parent_id: Optional[str]) -> list[Folder]:
        """Get the direct sub-folders of a folder (None = root folders)."""
        with self._get_session() as session:
            stmt = (
                select(FolderRecord)
                .where(FolderRecord.parent_id.is_(None) if parent_id is None
                       else FolderRecord.parent_id == parent_id)
                .order_by(FolderRecord.created_at)
            )
            return [self._record_to_folder(r) for r in session.scalars(stmt).all()]

    def update_folder(self, folder: Folder) -> Optional[Folder]:
        """Update name, color and parent of an existing folder."""
        with self._get_session() as session:
            record = session.get(FolderRecord, folder.id)
            if record is None:
                return None
            record.name = folder.name
            record.color = folder.color
            record.parent_id = folder.parent_id
            session.commit()
            return folder

    def delete_folders(self, folder_ids: list[str], reparented_notes: list[Note]) -> None:
        """Remove folders and rewrite the notes they held, atomically."""
        with self._get_session() as session:
            for note in reparented_notes:
                record = session.get(NoteRecord, note.id)
                if record is not None:
                    self._apply_note(record, note)
            for folder_id in folder_ids:
                record = session.get(FolderRecord, folder_id)
                if record is not None:
                    session.delete(record)
            session.commit()

    # ==================== Flashcard Operations ====================

    def add_flashcard(self, flashcard: Flashcard) -> Flashcard:
        """Add a new flashcard to the database."""
        with self._get_session() as session:
            session.add(
                FlashcardRecord(
                    id=flashcard.id,
                    note_id=flashcard.note_id,
                    front=flashcard.front,
                    back=flashcard.back,
                    mastered=flashcard.mastered,
                    sync_status=flashcard.sync_status,
                )
            )
            session.commit()
            return flashcard

    def get_flashcard(self, flashcard_id: str) -> Optional[Flashcard]:
        """Get a flashcard by its ID."""
        with self._get_session() as session:
            record = session.get(FlashcardRecord, flashcard_id)
            if record:
                return self._record_to_flashcard(record)
            return None

    def get_flashcards_for_note(self, note_id: str) -> list[Flashcard]:
        """Get all flashcards of a flashcard-set note, oldest first."""
        with self._get_session() as session:
            stmt = (
                select(FlashcardRecord)
                .where(FlashcardRecord.note_id == note_id)
                .order_by(FlashcardRecord.created_at)
            )
            return [self._record_to_flashcard(r) for r in session.scalars(stmt).all()]

    def update_flashcard(self, flashcard: Flashcard) -> Optional[Flashcard]:
        """Update an existing flashcard."""
        with self._get_session() as session:
            record = session.get(FlashcardRecord, flashcard.id)
            if record is None:
                return None
            record.front = flashcard.front
            record.back = flashcard.back
            record.mastered = flashcard.mastered
            record.sync_status = flashcard.sync_status
            session.commit()
            return flashcard

    def delete_flashcard(self, flashcard_id: str) -> bool:
        """Delete a single flashcard."""
        with self._get_session() as session:
            record = session.get(FlashcardRecord, flashcard_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    # ==================== Lecture Operations ====================

    def add_lecture_note(self, lecture: LectureNote) -> LectureNote:
        """Add a new lecture transcript."""
        with self._get_session() as session:
            record = LectureNoteRecord(id=lecture.id, created_at=lecture.created_at)
            self._apply_lecture(record, lecture)
            session.add(record)
            session.commit()
            return lecture

    def get_lecture_note(self, lecture_id: str) -> Optional[LectureNote]:
        """Get a lecture transcript by ID."""
        with self._get_session() as session:
            record = session.get(LectureNoteRecord, lecture_id)
            if record:
                return self._record_to_lecture(record)
            return None

    def get_lecture_notes(self, course_id: Optional[str] = None) -> list[LectureNote]:
        """Get lecture transcripts, newest first, optionally for one course."""
        with self._get_session() as session:
            stmt = select(LectureNoteRecord).order_by(LectureNoteRecord.updated_at.desc())
            if course_id is not None:
                stmt = stmt.where(LectureNoteRecord.course_id == course_id)
            return [self._record_to_lecture(r) for r in session.scalars(stmt).all()]

    def update_lecture_note(self, lecture: LectureNote) -> Optional[LectureNote]:
        """Update an existing lecture transcript."""
        with self._get_session() as session:
            record = session.get(LectureNoteRecord, lecture.id)
            if record is None:
                return None
            self._apply_lecture(record, lecture)
            session.commit()
            return lecture

    def delete_lecture_note(self, lecture_id: str) -> bool:
        """Delete a lecture transcript."""
        with self._get_session() as session:
            record = session.get(LectureNoteRecord, lecture_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    # ==================== Sync Log Operations ====================

    def add_sync_operation(self, operation: SyncOperation) -> SyncOperation:
        """Append an operation to the sync log."""
        with self._get_session() as session:
            record = SyncOperationRecord(
                kind=operation.kind,
                entity_type=operation.entity_type,
                entity_id=operation.entity_id,
                payload=json.dumps(operation.payload),
                timestamp=operation.timestamp,
                settled=operation.settled,
                error=operation.error,
                attempts=operation.attempts,
                next_attempt_at=operation.next_attempt_at,
                dead_lettered=operation.dead_lettered,
            )
            session.add(record)
            session.commit()
            operation.id = record.id
            return operation

    def get_sync_operation(self, operation_id: int) -> Optional[SyncOperation]:
        """Get a sync log entry by ID."""
        with self._get_session() as session:
            record = session.get(SyncOperationRecord, operation_id)
            if record:
                return self._record_to_operation(record)
            return None

    def get_sync_operations(self) -> list[SyncOperation]:
        """Get the whole sync log, oldest first."""
        with self._get_session() as session:
            stmt = select(SyncOperationRecord).order_by(SyncOperationRecord.id)
            return [self._record_to_operation(r) for r in session.scalars(stmt).all()]

    def get_unsettled_operations(self, include_dead: bool = False) -> list[SyncOperation]:
        """Get operations not yet delivered, in enqueue order."""
        with self._get_session() as session:
            stmt = select(SyncOperationRecord).where(SyncOperationRecord.settled.is_(False))
            if not include_dead:
                stmt = stmt.where(SyncOperationRecord.dead_lettered.is_(False))
            stmt = stmt.order_by(SyncOperationRecord.id)
            return [self._record_to_operation(r) for r in session.scalars(stmt).all()]

    def count_pending_operations(self) -> int:
        """Count operations still eligible for delivery."""
        with self._get_session() as session:
            stmt = select(func.count(SyncOperationRecord.id)).where(
                SyncOperationRecord.settled.is_(False),
                SyncOperationRecord.dead_lettered.is_(False),
            )
            return session.scalar(stmt) or 0

    def count_dead_lettered_operations(self) -> int:
        """Count operations that gave up after too many failures."""
        with self._get_session() as session:
            stmt = select(func.count(SyncOperationRecord.id)).where(
                SyncOperationRecord.settled.is_(False),
                SyncOperationRecord.dead_lettered.is_(True),
            )
            return session.scalar(stmt) or 0

    def has_unsettled_operations(self, entity_type: EntityType, entity_id: str) -> bool:
        """Whether any operation on the entity has not been delivered yet."""
        with self._get_session() as session:
            stmt = select(func.count(SyncOperationRecord.id)).where(
                SyncOperationRecord.entity_type == entity_type,
                SyncOperationRecord.entity_id == entity_id,
                SyncOperationRecord.settled.is_(False),
            )
            return bool(session.scalar(stmt))

    def mark_operation_settled(self, operation_id: int) -> bool:
        """Flip an operation to settled. Returns False if it already was."""
        with self._get_session() as session:
            result = session.execute(
                update(SyncOperationRecord)
                .where(
                    SyncOperationRecord.id == operation_id,
                    SyncOperationRecord.settled.is_(False),
                )
                .values(settled=True, error=None, next_attempt_at=None)
            )
            session.commit()
            return result.rowcount == 1

    def record_operation_failure(
        self,
        operation_id: int,
        error: str,
        attempts: int,
        next_attempt_at: Optional[datetime],
        dead_lettered: bool = False,
    ) -> bool:
        """Attach a delivery error to an unsettled operation."""
        with self._get_session() as session:
            result = session.execute(
                update(SyncOperationRecord)
                .where(
                    SyncOperationRecord.id == operation_id,
                    SyncOperationRecord.settled.is_(False),
                )
                .values(
                    error=error,
                    attempts=attempts,
                    next_attempt_at=next_attempt_at,
                    dead_lettered=dead_lettered,
                )
            )
            session.commit()
            return result.rowcount == 1

    def requeue_dead_letters(self) -> list[SyncOperation]:
        """Make dead-lettered operations eligible for delivery again."""
        with self._get_session() as session:
            stmt = select(SyncOperationRecord).where(
                SyncOperationRecord.settled.is_(False),
                SyncOperationRecord.dead_lettered.is_(True),
            )
            records = session.scalars(stmt).all()
            for record in records:
                record.dead_lettered = False
                record.attempts = 0
                record.next_attempt_at = None
            session.commit()
            return [self._record_to_operation(r) for r in records]

    def set_sync_status(
        self, entity_type: EntityType, entity_id: str, status: SyncStatus
    ) -> bool:
        """Set the sync status of a note or flashcard.

        Folders carry no sync status and deleted entities no longer exist,
        so both return False.
        """
        model: Any
        if entity_type == EntityType.NOTE:
            model = NoteRecord
        elif entity_type == EntityType.FLASHCARD:
            model = FlashcardRecord
        else:
            return False

        with self._get_session() as session:
            record = session.get(model, entity_id)
            if record is None:
                return False
            record.sync_status = status
            session.commit()
            return True

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get database statistics."""
        with self._get_session() as session:
            total_notes = session.query(NoteRecord).count()
            pending_notes = (
                session.query(NoteRecord)
                .filter(NoteRecord.sync_status == SyncStatus.PENDING)
                .count()
            )
            conflict_notes = (
                session.query(NoteRecord)
                .filter(NoteRecord.sync_status == SyncStatus.CONFLICT)
                .count()
            )
            total_folders = session.query(FolderRecord).count()
            total_flashcards = session.query(FlashcardRecord).count()
            total_lectures = session.query(LectureNoteRecord).count()
            settled_operations = (
                session.query(SyncOperationRecord)
                .filter(SyncOperationRecord.settled.is_(True))
                .count()
            )

        return {
            "total_notes": total_notes,
            "pending_notes": pending_notes,
            "conflict_notes": conflict_notes,
            "total_folders": total_folders,
            "total_flashcards": total_flashcards,
            "total_lectures": total_lectures,
            "pending_operations": self.count_pending_operations(),
            "dead_lettered_operations": self.count_dead_lettered_operations(),
            "settled_operations": settled_operations,
        }

    # ==================== Helper Methods ====================

    @staticmethod
    def _apply_note(record: NoteRecord, note: Note) -> None:
        """Copy mutable note fields onto a record."""
        record.title = note.title
        record.content = encode_content(note.content)
        record.description = note.description
        record.folder_id = note.folder_id
        record.type = note.type
        record.tags = json.dumps(note.tags)
        record.shared_with = json.dumps(note.shared_with)
        record.order = note.order
        record.updated_at = note.updated_at
        record.sync_status = note.sync_status

    @staticmethod
    def _apply_lecture(record: LectureNoteRecord, lecture: LectureNote) -> None:
        """Copy mutable lecture fields onto a record."""
        record.course_id = lecture.course_id
        record.title = lecture.title
        record.original_language = lecture.original_language
        record.target_language = lecture.target_language
        record.audio_url = lecture.audio_url
        record.audio_file_name = lecture.audio_file_name
        record.original_transcript = lecture.original_transcript
        record.simplified_english = lecture.simplified_english
        record.translated_version = lecture.translated_version
        record.glossary = json.dumps(
            [{"term": g.term, "definition": g.definition, "context": g.context}
             for g in lecture.glossary]
        )
        record.key_points = json.dumps(lecture.key_points)
        record.updated_at = lecture.updated_at
        record.sync_status = lecture.sync_status

    @staticmethod
    def _enum_value(value: Any) -> Any:
        """Unwrap an Enum coming back from SQLAlchemy."""
        return value.value if hasattr(value, "value") else value

    def _record_to_note(self, record: NoteRecord) -> Note:
        """Convert database record to Note model."""
        note_type = NoteType(self._enum_value(record.type))
        return Note(
            id=record.id,
            title=record.title,
            content=decode_content(note_type, record.content),
            type=note_type,
            description=record.description,
            folder_id=record.folder_id,
            tags=json.loads(record.tags) if record.tags else [],
            shared_with=json.loads(record.shared_with) if record.shared_with else [],
            order=record.order,
            created_at=record.created_at,
            updated_at=record.updated_at,
            sync_status=SyncStatus(self._enum_value(record.sync_status)),
        )

    @staticmethod
    def _record_to_folder(record: FolderRecord) -> Folder:
        """Convert database record to Folder model."""
        return Folder(
            id=record.id,
            name=record.name,
            color=record.color,
            parent_id=record.parent_id,
            created_at=record.created_at,
        )

    def _record_to_flashcard(self, record: FlashcardRecord) -> Flashcard:
        """Convert database record to Flashcard model."""
        return Flashcard(
            id=record.id,
            note_id=record.note_id,
            front=record.front,
            back=record.back,
            mastered=record.mastered,
            sync_status=SyncStatus(self._enum_value(record.sync_status)),
        )

    def _record_to_lecture(self, record: LectureNoteRecord) -> LectureNote:
        """Convert database record to LectureNote model."""
        glossary = json.loads(record.glossary) if record.glossary else []
        return LectureNote(
            id=record.id,
            course_id=record.course_id,
            title=record.title,
            original_language=record.original_language,
            target_language=record.target_language,
            audio_url=record.audio_url,
            audio_file_name=record.audio_file_name,
            original_transcript=record.original_transcript,
            simplified_english=record.simplified_english,
            translated_version=record.translated_version,
            glossary=[GlossaryTerm(**g) for g in glossary],
            key_points=json.loads(record.key_points) if record.key_points else [],
            created_at=record.created_at,
            updated_at=record.updated_at,
            sync_status=SyncStatus(self._enum_value(record.sync_status)),
        )

    def _record_to_operation(self, record: SyncOperationRecord) -> SyncOperation:
        """Convert database record to SyncOperation model."""
        return SyncOperation(
            id=record.id,
            kind=OperationKind(self._enum_value(record.kind)),
            entity_type=EntityType(self._enum_value(record.entity_type)),
            entity_id=record.entity_id,
            payload=json.loads(record.payload) if record.payload is not None else None,
            timestamp=record.timestamp,
            settled=record.settled,
            error=record.error,
            attempts=record.attempts,
            next_attempt_at=record.next_attempt_at,
            dead_lettered=record.dead_lettered,
        )
