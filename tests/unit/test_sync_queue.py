"""Unit tests for SyncQueue."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytest

from sprintnotes.database.repository import Repository
from sprintnotes.models.common import SyncStatus
from sprintnotes.models.note import Note
from sprintnotes.models.sync_operation import EntityType, OperationKind
from sprintnotes.services.connectivity import ConnectivityMonitor
from sprintnotes.services.remote_client import RemoteDeliveryError
from sprintnotes.services.sync_queue import SyncQueue

NOW = datetime(2025, 1, 1, 12, 0, 0)


class FakeRemote:
    """In-memory remote that records deliveries and can fail or stall."""

    def __init__(self):
        self.attempts = []
        self.delivered = []
        self.failing: set[str] = set()
        self.crashing: dict[str, Exception] = {}
        self.gate: Optional[asyncio.Event] = None

    async def deliver(self, operation):
        self.attempts.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        if operation.entity_id in self.failing:
            raise RemoteDeliveryError("remote store unavailable")
        if operation.entity_id in self.crashing:
            raise self.crashing[operation.entity_id]
        self.delivered.append(operation)


class Clock:
    """Settable clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def remote():
    """Provide a fake remote."""
    return FakeRemote()


@pytest.fixture
def clock():
    """Provide a settable clock."""
    return Clock()


@pytest.fixture
def queue(repository, remote, clock):
    """Provide a queue without a connectivity monitor."""
    return SyncQueue(repository, remote, clock=clock, max_attempts=3)


def stored_note(repository: Repository, title: str = "n") -> Note:
    """Helper to store a note the queue can mark as synced."""
    return repository.add_note(Note(title=title, order=1))


def titles(operations) -> list[str]:
    """Payload titles of delivered operations."""
    return [op.payload["title"] for op in operations]


class TestEnqueue:
    """Tests for recording intents."""

    def test_enqueue_persists_operation(self, queue: SyncQueue, repository: Repository):
        """Test that enqueue writes to the sync log and bumps the counter."""
        op = queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        assert op.id is not None
        assert op.timestamp == NOW
        assert queue.pending_count == 1
        assert repository.get_sync_operation(op.id).payload == {"title": "a"}

    def test_enqueue_accepts_plain_strings(self, queue: SyncQueue):
        """Test that string kinds are coerced to enums."""
        op = queue.enqueue("delete", "flashcard", "c1")

        assert op.kind == OperationKind.DELETE
        assert op.entity_type == EntityType.FLASHCARD

    def test_empty_entity_id_rejected(self, queue: SyncQueue, repository: Repository):
        """Test that nothing is logged for an empty ID."""
        with pytest.raises(ValueError):
            queue.enqueue(OperationKind.CREATE, EntityType.NOTE, "", {})

        assert repository.get_sync_operations() == []

    def test_pending_count_restored_from_log(self, repository: Repository, remote):
        """Test that a new queue picks up operations from a previous session."""
        SyncQueue(repository, remote).enqueue(OperationKind.CREATE, EntityType.NOTE, "n1", {})

        assert SyncQueue(repository, remote).pending_count == 1

    def test_invalid_max_attempts(self, repository: Repository, remote):
        """Test the max_attempts guard."""
        with pytest.raises(ValueError):
            SyncQueue(repository, remote, max_attempts=0)


class TestFlush:
    """Tests for delivering the log."""

    @pytest.mark.asyncio
    async def test_same_entity_delivered_in_order_and_synced(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that two offline edits reach the remote in order once online."""
        note = stored_note(repository)
        monitor = ConnectivityMonitor(online=False)
        queue = SyncQueue(repository, remote, connectivity=monitor)

        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "b"})
        assert queue.flush_task is None

        monitor.set_online(True)
        result = await queue.flush_task

        assert titles(remote.delivered) == ["a", "b"]
        assert result.delivered == 2
        assert repository.get_note(note.id).sync_status == SyncStatus.SYNCED
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_flush_is_single_flight(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote
    ):
        """Test that a second flush during the first is a no-op."""
        note = stored_note(repository)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})
        remote.gate = asyncio.Event()

        first = asyncio.create_task(queue.flush())
        await asyncio.sleep(0)
        assert queue.is_syncing is True

        second = await queue.flush()
        remote.gate.set()
        result = await first

        assert second is None
        assert len(remote.attempts) == 1
        assert result.delivered == 1
        assert queue.is_syncing is False

    @pytest.mark.asyncio
    async def test_settled_operations_are_not_redelivered(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote
    ):
        """Test that a later flush does not resend settled operations."""
        note = stored_note(repository)
        op = queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})

        await queue.flush()
        again = await queue.flush()

        assert len(remote.delivered) == 1
        assert again.attempted == 0
        assert repository.get_sync_operation(op.id).settled is True

    @pytest.mark.asyncio
    async def test_failure_blocks_later_operations_on_same_entity(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote
    ):
        """Test that a failed edit is never overtaken by a newer one."""
        note = stored_note(repository)
        other = stored_note(repository, "other")
        remote.failing.add(note.id)

        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, other.id, {"title": "x"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "b"})

        result = await queue.flush()

        assert titles(remote.attempts) == ["a", "x"]
        assert result.failed == 1
        assert result.skipped == 1
        assert result.delivered == 1
        assert repository.get_note(other.id).sync_status == SyncStatus.SYNCED
        assert repository.get_note(note.id).sync_status == SyncStatus.PENDING
        assert queue.pending_count == 2

    @pytest.mark.asyncio
    async def test_failed_operation_records_error_and_backoff(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote, monkeypatch
    ):
        """Test the failure bookkeeping on the operation."""
        monkeypatch.setattr(queue, "backoff_delay", lambda attempt: 30.0)
        remote.failing.add("n1")
        op = queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        await queue.flush()

        stored = repository.get_sync_operation(op.id)
        assert stored.attempts == 1
        assert stored.error == "remote store unavailable"
        assert stored.next_attempt_at == NOW + timedelta(seconds=30)
        assert stored.settled is False

    @pytest.mark.asyncio
    async def test_backoff_defers_until_due(
        self, queue: SyncQueue, remote: FakeRemote, clock: Clock, monkeypatch
    ):
        """Test that a failed operation waits for its backoff to expire."""
        monkeypatch.setattr(queue, "backoff_delay", lambda attempt: 30.0)
        remote.failing.add("n1")
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})
        await queue.flush()
        remote.failing.clear()

        early = await queue.flush()
        assert early.deferred == 1
        assert len(remote.attempts) == 1

        clock.now = NOW + timedelta(seconds=31)
        late = await queue.flush()
        assert late.delivered == 1

    @pytest.mark.asyncio
    async def test_ignore_backoff_retries_now(
        self, queue: SyncQueue, remote: FakeRemote, monkeypatch
    ):
        """Test the manual retry path."""
        monkeypatch.setattr(queue, "backoff_delay", lambda attempt: 30.0)
        remote.failing.add("n1")
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})
        await queue.flush()
        remote.failing.clear()

        result = await queue.flush(ignore_backoff=True)

        assert result.delivered == 1

    @pytest.mark.asyncio
    async def test_dead_letter_after_max_attempts(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote
    ):
        """Test that an operation gives up and flags the entity."""
        note = stored_note(repository)
        remote.failing.add(note.id)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})

        results = [await queue.flush(ignore_backoff=True) for _ in range(3)]

        assert results[-1].dead_lettered == 1
        assert queue.dead_letter_count == 1
        assert queue.pending_count == 0
        assert repository.get_note(note.id).sync_status == SyncStatus.CONFLICT

        fourth = await queue.flush(ignore_backoff=True)
        assert fourth.attempted == 0
        assert len(remote.attempts) == 3

    @pytest.mark.asyncio
    async def test_retry_dead_letters(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote
    ):
        """Test requeueing a dead-lettered operation until it is delivered."""
        note = stored_note(repository)
        remote.failing.add(note.id)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})
        for _ in range(3):
            await queue.flush(ignore_backoff=True)
        remote.failing.clear()

        assert queue.retry_dead_letters() == 1
        assert repository.get_note(note.id).sync_status == SyncStatus.PENDING
        assert queue.pending_count == 1

        result = await queue.flush()
        assert result.delivered == 1
        assert repository.get_note(note.id).sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_dead_letter_holds_back_later_operations_on_same_entity(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that a requeued dead letter still reaches the remote before newer edits."""
        note = stored_note(repository)
        other = stored_note(repository, "other")
        queue = SyncQueue(repository, remote, max_attempts=1)
        remote.failing.add(note.id)

        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "a"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, note.id, {"title": "b"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, other.id, {"title": "x"})

        first = await queue.flush()
        second = await queue.flush()

        assert first.dead_lettered == 1
        assert first.skipped == 1
        assert second.attempted == 0
        assert second.skipped == 1
        assert titles(remote.attempts) == ["a", "x"]
        assert queue.pending_count == 1
        assert repository.get_note(note.id).sync_status == SyncStatus.CONFLICT

        remote.failing.clear()
        assert queue.retry_dead_letters() == 1
        result = await queue.flush()

        assert result.delivered == 2
        assert titles(remote.delivered) == ["x", "a", "b"]
        assert repository.get_note(note.id).sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_unexpected_remote_error_counts_as_failure(
        self, queue: SyncQueue, repository: Repository, remote: FakeRemote, monkeypatch
    ):
        """Test that a builtin connection error is recorded and the pass carries on."""
        monkeypatch.setattr(queue, "backoff_delay", lambda attempt: 30.0)
        remote.crashing["x"] = ConnectionResetError("peer reset")
        crashed = queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "x", {"title": "x1"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "y", {"title": "y1"})
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "x", {"title": "x2"})

        result = await queue.flush()

        assert result.failed == 1
        assert result.delivered == 1
        assert result.skipped == 1
        assert titles(remote.delivered) == ["y1"]
        stored = repository.get_sync_operation(crashed.id)
        assert stored.attempts == 1
        assert stored.error == "ConnectionResetError: peer reset"
        assert stored.next_attempt_at == NOW + timedelta(seconds=30)
        assert queue.is_syncing is False

    @pytest.mark.asyncio
    async def test_unexpected_error_in_automatic_flush(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that a scheduled flush finishes cleanly when the remote raises."""
        remote.crashing["n1"] = OSError("network is unreachable")
        queue = SyncQueue(repository, remote, connectivity=ConnectivityMonitor(online=True))

        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})
        result = await queue.flush_task

        assert result.failed == 1
        assert queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_delete_of_missing_entity_settles(self, queue: SyncQueue, remote: FakeRemote):
        """Test that deletes settle even though the entity is gone locally."""
        queue.enqueue(OperationKind.DELETE, EntityType.NOTE, "gone", {"id": "gone"})

        result = await queue.flush()

        assert result.delivered == 1
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_flush_skipped_while_offline(self, repository: Repository, remote: FakeRemote):
        """Test that an offline monitor suppresses flushing."""
        queue = SyncQueue(repository, remote, connectivity=ConnectivityMonitor(online=False))
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        assert await queue.flush() is None
        assert remote.attempts == []

    @pytest.mark.asyncio
    async def test_flush_without_remote_keeps_operations(self, repository: Repository):
        """Test that a queue without a remote only accumulates."""
        queue = SyncQueue(repository)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        assert await queue.flush() is None
        assert queue.pending_count == 1


class TestTriggers:
    """Tests for automatic flushing."""

    @pytest.mark.asyncio
    async def test_enqueue_while_online_flushes(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that edits made online are pushed right away."""
        queue = SyncQueue(repository, remote, connectivity=ConnectivityMonitor(online=True))

        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})
        await queue.flush_task

        assert titles(remote.delivered) == ["a"]

    @pytest.mark.asyncio
    async def test_repeated_offline_level_does_not_flush(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that only the offline -> online edge triggers."""
        monitor = ConnectivityMonitor(online=False)
        queue = SyncQueue(repository, remote, connectivity=monitor)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        monitor.set_online(False)

        assert queue.flush_task is None

    @pytest.mark.asyncio
    async def test_auto_flush_disabled(self, repository: Repository, remote: FakeRemote):
        """Test that auto_flush=False leaves flushing to the caller."""
        monitor = ConnectivityMonitor(online=False)
        queue = SyncQueue(repository, remote, connectivity=monitor, auto_flush=False)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        monitor.set_online(True)

        assert queue.flush_task is None
        assert remote.attempts == []

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, repository: Repository, remote: FakeRemote):
        """Test that a closed queue ignores reconnects."""
        monitor = ConnectivityMonitor(online=False)
        queue = SyncQueue(repository, remote, connectivity=monitor)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        queue.close()
        monitor.set_online(True)

        assert queue.flush_task is None

    def test_reconnect_without_event_loop_is_ignored(
        self, repository: Repository, remote: FakeRemote
    ):
        """Test that a reconnect outside an event loop leaves work for later."""
        monitor = ConnectivityMonitor(online=False)
        queue = SyncQueue(repository, remote, connectivity=monitor)
        queue.enqueue(OperationKind.UPDATE, EntityType.NOTE, "n1", {"title": "a"})

        monitor.set_online(True)

        assert queue.flush_task is None
        assert queue.pending_count == 1


class TestBackoffDelay:
    """Tests for the jittered exponential backoff."""

    def test_delay_bounded_by_exponential_ceiling(self, repository: Repository, remote):
        """Test that jitter stays under multiplier * 2**(n-1)."""
        queue = SyncQueue(repository, remote, backoff_multiplier=2.0, backoff_max=60.0)

        for attempt in range(1, 6):
            delay = queue.backoff_delay(attempt)
            assert 0 <= delay <= min(60.0, 2.0 * 2 ** (attempt - 1))

    def test_delay_capped_at_max(self, repository: Repository, remote):
        """Test the upper bound for late attempts."""
        queue = SyncQueue(repository, remote, backoff_multiplier=1.0, backoff_max=5.0)

        assert all(queue.backoff_delay(20) <= 5.0 for _ in range(20))
