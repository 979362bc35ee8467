"""SQLAlchemy database schema for SprintNotes."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from sprintnotes.models.collab import MatchStatus, Role
from sprintnotes.models.common import SyncStatus, utcnow
from sprintnotes.models.note import NoteType
from sprintnotes.models.sync_operation import EntityType, OperationKind


class Base(DeclarativeBase):
    """Base class for the local (on-device) store."""

    pass


class CollabBase(DeclarativeBase):
    """Base class for the hosted collaboration store."""

    pass


# ==================== Local store ====================


class FolderRecord(Base):
    """Database record for a folder."""

    __tablename__ = "folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    # Plain column: cycles are prevented by the ordering engine, and a
    # cascading delete reparents notes before removing folders.
    parent_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_folders_parent_id", "parent_id"),)


class NoteRecord(Base):
    """Database record for a note."""

    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    folder_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    type: Mapped[str] = mapped_column(Enum(NoteType), default=NoteType.NOTE, nullable=False)
    tags: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    shared_with: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    order: Mapped[int] = mapped_column("sort_order", Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    sync_status: Mapped[str] = mapped_column(
        Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False
    )

    # Relationships
    flashcards: Mapped[list["FlashcardRecord"]] = relationship(
        "FlashcardRecord", back_populates="note", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_notes_folder_id", "folder_id"),
        Index("idx_notes_type", "type"),
        Index("idx_notes_sync_status", "sync_status"),
        Index("idx_notes_updated_at", "updated_at"),
    )


class FlashcardRecord(Base):
    """Database record for a flashcard."""

    __tablename__ = "flashcards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    note_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    front: Mapped[str] = mapped_column(Text, nullable=False)
    back: Mapped[str] = mapped_column(Text, nullable=False)
    mastered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    sync_status: Mapped[str] = mapped_column(
        Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False
    )

    # Relationships
    note: Mapped["NoteRecord"] = relationship("NoteRecord", back_populates="flashcards")

    __table_args__ = (
        Index("idx_flashcards_note_id", "note_id"),
        Index("idx_flashcards_sync_status", "sync_status"),
    )


class SyncOperationRecord(Base):
    """Append-only log of mutations waiting for the remote store."""

    __tablename__ = "sync_operations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(Enum(OperationKind), nullable=False)
    entity_type: Mapped[str] = mapped_column(Enum(EntityType), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    dead_lettered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_sync_operations_entity_type", "entity_type"),
        Index("idx_sync_operations_entity_id", "entity_id"),
        Index("idx_sync_operations_timestamp", "timestamp"),
        Index("idx_sync_operations_settled", "settled"),
    )


class LectureNoteRecord(Base):
    """Database record for a lecture transcript."""

    __tablename__ = "lecture_notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    original_language: Mapped[str] = mapped_column(String(64), nullable=False)
    target_language: Mapped[str] = mapped_column(String(64), nullable=False)

    audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    audio_file_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    original_transcript: Mapped[str] = mapped_column(Text, nullable=False, default="")
    simplified_english: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    translated_version: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    glossary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    key_points: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    sync_status: Mapped[str] = mapped_column(
        Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False
    )

    __table_args__ = (
        Index("idx_lecture_notes_course_id", "course_id"),
        Index("idx_lecture_notes_sync_status", "sync_status"),
        Index("idx_lecture_notes_updated_at", "updated_at"),
    )


# ==================== Collaboration store ====================


class UserRecord(CollabBase):
    """Database record for a user."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    birthday: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    role: Mapped[str] = mapped_column(Enum(Role), nullable=False)
    subjects: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_users_role", "role"),)


class MatchRecord(CollabBase):
    """Database record for a mentor/mentee match."""

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    mentee_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    requested_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(MatchStatus), default=MatchStatus.PENDING, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("mentor_id", "mentee_id", name="uq_matches_pair"),
        Index("idx_matches_mentor_id", "mentor_id"),
        Index("idx_matches_mentee_id", "mentee_id"),
    )


class MessageRecord(CollabBase):
    """Database record for a chat message."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(Integer, ForeignKey("matches.id"), nullable=False)
    sender_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("idx_messages_match_id", "match_id"),)


def get_engine(database_url: str):
    """Create database engine."""
    return create_engine(database_url, echo=False)


def get_session_factory(engine) -> sessionmaker[Session]:
    """Create session factory."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_database(database_url: str) -> sessionmaker[Session]:
    """Initialize the local store and return session factory."""
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)
    return get_session_factory(engine)


def init_collab_database(database_url: str) -> sessionmaker[Session]:
    """Initialize the collaboration store and return session factory."""
    engine = get_engine(database_url)
    CollabBase.metadata.create_all(engine)
    return get_session_factory(engine)
