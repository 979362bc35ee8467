"""Users, matches and messages owned by the collaboration store."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sprintnotes.models.common import utcnow


class Role(str, Enum):
    """Role a user signs up with."""

    MENTOR = "mentor"
    MENTEE = "mentee"

    @property
    def opposite(self) -> "Role":
        """The role this one gets matched with."""
        return Role.MENTEE if self is Role.MENTOR else Role.MENTOR


class MatchStatus(str, Enum):
    """Lifecycle of a mentor/mentee pairing."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ENDED = "ended"


@dataclass
class User:
    """A registered user. The password hash never leaves the repository layer."""

    email: str
    role: Role
    subjects: list[str] = field(default_factory=list)
    birthday: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.role, str):
            self.role = Role(self.role)


@dataclass
class Match:
    """A pairing of one mentor and one mentee."""

    mentor_id: int
    mentee_id: int
    requested_by: int
    status: MatchStatus = MatchStatus.PENDING
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.status, str):
            self.status = MatchStatus(self.status)

    def involves(self, user_id: int) -> bool:
        """Whether the user is one of the two participants."""
        return user_id in (self.mentor_id, self.mentee_id)

    def other_party(self, user_id: int) -> int:
        """Id of the participant that is not ``user_id``."""
        return self.mentee_id if user_id == self.mentor_id else self.mentor_id


@dataclass
class Message:
    """A chat message inside an accepted match."""

    match_id: int
    sender_id: int
    content: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    read_at: Optional[datetime] = None
