"""Repository for the collaboration store: users, matches and messages."""

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from sprintnotes.database.schema import (
    MatchRecord,
    MessageRecord,
    UserRecord,
    init_collab_database,
)
from sprintnotes.models.collab import Match, MatchStatus, Message, Role, User
from sprintnotes.models.common import utcnow


class CollabRepository:
    """Row access for the hosted store shared between users."""

    def __init__(self, database_url: str):
        """Initialize repository with database connection."""
        self.session_factory = init_collab_database(database_url)

    def _get_session(self) -> Session:
        """Get a new database session."""
        return self.session_factory()

    # ==================== User Operations ====================

    def add_user(self, user: User, password_hash: str) -> User:
        """Insert a user with an already hashed password."""
        with self._get_session() as session:
            record = UserRecord(
                email=user.email,
                password_hash=password_hash,
                birthday=user.birthday,
                role=user.role,
                subjects=json.dumps(user.subjects),
                created_at=user.created_at,
            )
            session.add(record)
            session.commit()
            user.id = record.id
            return user

    def get_user(self, user_id: int) -> Optional[User]:
        """Get a user by ID."""
        with self._get_session() as session:
            record = session.get(UserRecord, user_id)
            if record:
                return self._record_to_user(record)
            return None

    def get_user_credentials(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user and their password hash by (lower-cased) e-mail."""
        with self._get_session() as session:
            stmt = select(UserRecord).where(UserRecord.email == email.lower())
            record = session.scalars(stmt).first()
            if record:
                return self._record_to_user(record), record.password_hash
            return None

    def get_users_by_role(self, role: Role) -> list[User]:
        """Get all users with one role."""
        with self._get_session() as session:
            stmt = select(UserRecord).where(UserRecord.role == role).order_by(UserRecord.id)
            return [self._record_to_user(r) for r in session.scalars(stmt).all()]

    # ==================== Match Operations ====================

    def add_match(self, match: Match) -> Match:
        """Insert a new match."""
        with self._get_session() as session:
            record = MatchRecord(
                mentor_id=match.mentor_id,
                mentee_id=match.mentee_id,
                requested_by=match.requested_by,
                status=match.status,
                created_at=match.created_at,
                updated_at=match.updated_at,
            )
            session.add(record)
            session.commit()
            match.id = record.id
            return match

    def get_match(self, match_id: int) -> Optional[Match]:
        """Get a match by ID."""
        with self._get_session() as session:
            record = session.get(MatchRecord, match_id)
            if record:
                return self._record_to_match(record)
            return None

    def get_match_between(self, mentor_id: int, mentee_id: int) -> Optional[Match]:
        """Get the match pairing a mentor and a mentee, if any."""
        with self._get_session() as session:
            stmt = select(MatchRecord).where(
                MatchRecord.mentor_id == mentor_id, MatchRecord.mentee_id == mentee_id
            )
            record = session.scalars(stmt).first()
            if record:
                return self._record_to_match(record)
            return None

    def get_matches_for_user(self, user_id: int) -> list[Match]:
        """Get every match a user takes part in, most recently updated first."""
        with self._get_session() as session:
            stmt = (
                select(MatchRecord)
                .where(or_(MatchRecord.mentor_id == user_id, MatchRecord.mentee_id == user_id))
                .order_by(MatchRecord.updated_at.desc(), MatchRecord.id.desc())
            )
            return [self._record_to_match(r) for r in session.scalars(stmt).all()]

    def update_match_status(self, match_id: int, status: MatchStatus) -> Optional[Match]:
        """Set the status of a match and stamp updated_at."""
        with self._get_session() as session:
            record = session.get(MatchRecord, match_id)
            if record is None:
                return None
            record.status = status
            record.updated_at = utcnow()
            session.commit()
            return self._record_to_match(record)

    # ==================== Message Operations ====================

    def add_message(self, message: Message) -> Message:
        """Insert a message."""
        with self._get_session() as session:
            record = MessageRecord(
                match_id=message.match_id,
                sender_id=message.sender_id,
                content=message.content,
                created_at=message.created_at,
            )
            session.add(record)
            session.commit()
            message.id = record.id
            return message

    def get_messages(self, match_id: int) -> list[Message]:
        """Get the messages of a match, oldest first."""
        with self._get_session() as session:
            stmt = (
                select(MessageRecord)
                .where(MessageRecord.match_id == match_id)
                .order_by(MessageRecord.created_at, MessageRecord.id)
            )
            return [self._record_to_message(r) for r in session.scalars(stmt).all()]

    def mark_messages_read(self, message_ids: list[int], read_at: datetime) -> int:
        """Stamp read_at on the given messages."""
        if not message_ids:
            return 0
        with self._get_session() as session:
            result = session.execute(
                update(MessageRecord)
                .where(MessageRecord.id.in_(message_ids))
                .values(read_at=read_at)
            )
            session.commit()
            return result.rowcount

    # ==================== Helper Methods ====================

    @staticmethod
    def _enum_value(value: Any) -> Any:
        """Unwrap an Enum coming back from SQLAlchemy."""
        return value.value if hasattr(value, "value") else value

    def _record_to_user(self, record: UserRecord) -> User:
        """Convert database record to User model."""
        return User(
            id=record.id,
            email=record.email,
            role=Role(self._enum_value(record.role)),
            subjects=json.loads(record.subjects) if record.subjects else [],
            birthday=record.birthday,
            created_at=record.created_at,
        )

    def _record_to_match(self, record: MatchRecord) -> Match:
        """Convert database record to Match model."""
        return Match(
            id=record.id,
            mentor_id=record.mentor_id,
            mentee_id=record.mentee_id,
            requested_by=record.requested_by,
            status=MatchStatus(self._enum_value(record.status)),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _record_to_message(record: MessageRecord) -> Message:
        """Convert database record to Message model."""
        return Message(
            id=record.id,
            match_id=record.match_id,
            sender_id=record.sender_id,
            content=record.content,
            created_at=record.created_at,
            read_at=record.read_at,
        )
