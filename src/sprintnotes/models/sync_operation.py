"""Sync log record model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sprintnotes.models.common import utcnow


class OperationKind(str, Enum):
    """Mutation carried by a sync operation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    """Entity a sync operation targets."""

    NOTE = "note"
    FLASHCARD = "flashcard"
    FOLDER = "folder"


@dataclass
class SyncOperation:
    """One pending mutation waiting to reach the remote store."""

    kind: OperationKind
    entity_type: EntityType
    entity_id: str
    payload: Any = None

    # Local log metadata
    id: Optional[int] = None  # Assigned by the database, increases monotonically
    timestamp: datetime = field(default_factory=utcnow)

    # Delivery tracking
    settled: bool = False
    error: Optional[str] = None
    attempts: int = 0
    next_attempt_at: Optional[datetime] = None
    dead_lettered: bool = False

    def __post_init__(self) -> None:
        """Validate and convert fields after initialization."""
        if isinstance(self.kind, str):
            self.kind = OperationKind(self.kind)
        if isinstance(self.entity_type, str):
            self.entity_type = EntityType(self.entity_type)

    @property
    def entity_key(self) -> tuple[EntityType, str]:
        """Key identifying the targeted entity."""
        return (self.entity_type, self.entity_id)

    def to_wire(self) -> dict[str, Any]:
        """Body sent to the remote store."""
        return {
            "kind": self.kind.value,
            "entityType": self.entity_type.value,
            "entityId": self.entity_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }
