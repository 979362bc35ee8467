"""Shared model helpers."""

from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncStatus(str, Enum):
    """Synchronization state of a locally stored entity."""

    SYNCED = "synced"  # Remote has every local change
    PENDING = "pending"  # Local changes waiting in the sync queue
    CONFLICT = "conflict"  # Delivery gave up, needs attention
