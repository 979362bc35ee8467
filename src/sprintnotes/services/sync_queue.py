"""Offline sync queue: durable log of local mutations, flushed when online."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable, Optional

from tenacity import wait_random_exponential

from sprintnotes.database.repository import Repository
from sprintnotes.models.common import SyncStatus, utcnow
from sprintnotes.models.sync_operation import EntityType, OperationKind, SyncOperation
from sprintnotes.services.connectivity import ConnectivityMonitor
from sprintnotes.services.remote_client import Remote, RemoteDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class FlushResult:
    """Outcome of one flush pass."""

    delivered: int = 0
    failed: int = 0
    deferred: int = 0  # Still backing off from an earlier failure
    skipped: int = 0  # Held back behind an earlier operation on the same entity
    dead_lettered: int = 0

    @property
    def attempted(self) -> int:
        """Operations actually sent to the remote."""
        return self.delivered + self.failed + self.dead_lettered


class SyncQueue:
    """Delivers local mutations to the remote store at least once.

    Every mutation is appended to the sync log synchronously. ``flush()``
    walks the unsettled log oldest first and delivers each operation,
    holding back later operations on an entity whose earlier operation
    failed so that a stale edit never overtakes a newer one. Failed
    operations back off exponentially (with jitter) and are dead-lettered
    after ``max_attempts`` failures; a dead letter keeps holding back its
    entity until it is requeued. Only one flush runs at a time.
    """

    def __init__(
        self,
        repository: Repository,
        remote: Optional[Remote] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        max_attempts: int = 5,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 300.0,
        auto_flush: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the queue.

        Args:
            repository: Local store holding the sync log
            remote: Delivery target; without one, operations only accumulate
            connectivity: Monitor whose offline -> online edges trigger a flush
            max_attempts: Failures before an operation is dead-lettered
            backoff_multiplier: Base delay (seconds) of the exponential backoff
            backoff_max: Maximum delay (seconds) between attempts
            auto_flush: Flush on reconnect and on enqueue while online
            clock: Source of naive UTC timestamps
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.repository = repository
        self.remote = remote
        self.connectivity = connectivity
        self.max_attempts = max_attempts
        self.auto_flush = auto_flush
        self._clock = clock
        self._backoff = wait_random_exponential(multiplier=backoff_multiplier, max=backoff_max)

        self._flushing = False
        self._flush_task: Optional[asyncio.Task] = None
        self.pending_count = repository.count_pending_operations()

        self._unsubscribe: Optional[Callable[[], None]] = None
        if connectivity is not None:
            self._unsubscribe = connectivity.subscribe(self._on_connectivity_change)

    @property
    def is_syncing(self) -> bool:
        """Whether a flush is in flight."""
        return self._flushing

    @property
    def flush_task(self) -> Optional[asyncio.Task]:
        """The most recently scheduled automatic flush, if any."""
        return self._flush_task

    @property
    def dead_letter_count(self) -> int:
        """Operations that gave up and wait for a manual retry."""
        return self.repository.count_dead_lettered_operations()

    def close(self) -> None:
        """Stop listening to the connectivity monitor."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ==================== Enqueue ====================

    def enqueue(
        self,
        kind: OperationKind,
        entity_type: EntityType,
        entity_id: str,
        payload: Any = None,
    ) -> SyncOperation:
        """Record a mutation intent in the local log.

        Args:
            kind: create, update or delete
            entity_type: note, flashcard or folder
            entity_id: ID of the mutated entity
            payload: JSON-serializable snapshot, stored verbatim

        Returns:
            The logged operation with its local ID assigned

        Raises:
            ValueError: If entity_id is empty
        """
        if not entity_id:
            raise ValueError("entity_id is required")

        operation = SyncOperation(
            kind=OperationKind(kind),
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            payload=payload,
            timestamp=self._clock(),
        )
        self.repository.add_sync_operation(operation)
        self.pending_count += 1
        logger.debug(
            "Queued %s %s %s (op %s)",
            operation.kind.value,
            operation.entity_type.value,
            entity_id,
            operation.id,
        )

        if self.auto_flush and self.connectivity is not None and self.connectivity.is_online:
            self._schedule_flush()

        return operation

    # ==================== Flush ====================

    async def flush(self, ignore_backoff: bool = False) -> Optional[FlushResult]:
        """Deliver every unsettled operation, oldest first.

        Args:
            ignore_backoff: Retry failed operations now instead of waiting
                for their backoff to expire (manual retry)

        Returns:
            The pass outcome, or None when a flush is already running, no
            remote is configured or the monitor reports offline
        """
        if self._flushing:
            logger.debug("Flush already in flight, ignoring trigger")
            return None
        if self.remote is None:
            logger.warning(
                "No remote store configured, %d operation(s) left queued", self.pending_count
            )
            return None
        if self.connectivity is not None and not self.connectivity.is_online:
            logger.debug("Offline, flush skipped")
            return None

        self._flushing = True
        try:
            result = await self._deliver_pending(self.remote, ignore_backoff)
        finally:
            self._flushing = False
            self.pending_count = self.repository.count_pending_operations()

        logger.info(
            "Flush finished: %d delivered, %d failed, %d deferred, %d dead-lettered, %d pending",
            result.delivered,
            result.failed,
            result.deferred,
            result.dead_lettered,
            self.pending_count,
        )
        return result

    async def _deliver_pending(self, remote: Remote, ignore_backoff: bool) -> FlushResult:
        result = FlushResult()
        blocked: set[tuple[EntityType, str]] = set()

        for operation in self.repository.get_unsettled_operations(include_dead=True):
            if operation.id is None:
                raise ValueError("Sync log returned an operation without an ID")
            key = operation.entity_key

            if operation.dead_lettered:
                blocked.add(key)
                continue

            if key in blocked:
                result.skipped += 1
                continue

            if (
                not ignore_backoff
                and operation.next_attempt_at is not None
                and operation.next_attempt_at > self._clock()
            ):
                blocked.add(key)
                result.deferred += 1
                continue

            try:
                await remote.deliver(operation)
            except RemoteDeliveryError as e:
                blocked.add(key)
                self._record_failure(operation.id, operation, str(e), result)
                continue
            except Exception as e:
                logger.exception("Unexpected error delivering op %s", operation.id)
                blocked.add(key)
                self._record_failure(operation.id, operation, f"{type(e).__name__}: {e}", result)
                continue

            self.repository.mark_operation_settled(operation.id)
            result.delivered += 1
            if not self.repository.has_unsettled_operations(*key):
                self.repository.set_sync_status(
                    operation.entity_type, operation.entity_id, SyncStatus.SYNCED
                )

        return result

    def _record_failure(
        self, operation_id: int, operation: SyncOperation, error: str, result: FlushResult
    ) -> None:
        attempts = operation.attempts + 1

        if attempts >= self.max_attempts:
            self.repository.record_operation_failure(
                operation_id, error, attempts, None, dead_lettered=True
            )
            self.repository.set_sync_status(
                operation.entity_type, operation.entity_id, SyncStatus.CONFLICT
            )
            result.dead_lettered += 1
            logger.error(
                "Giving up on op %s (%s %s) after %d attempts: %s",
                operation_id,
                operation.entity_type.value,
                operation.entity_id,
                attempts,
                error,
            )
            return

        delay = self.backoff_delay(attempts)
        self.repository.record_operation_failure(
            operation_id, error, attempts, self._clock() + timedelta(seconds=delay)
        )
        result.failed += 1
        logger.warning(
            "Delivery of op %s failed (attempt %d/%d), retrying in %.1fs: %s",
            operation_id,
            attempts,
            self.max_attempts,
            delay,
            error,
        )

    def backoff_delay(self, attempt_number: int) -> float:
        """Jittered exponential delay (seconds) after the given failed attempt."""
        state = SimpleNamespace(attempt_number=attempt_number)
        return self._backoff(state)  # type: ignore[arg-type]

    # ==================== Triggers ====================

    def retry_dead_letters(self) -> int:
        """Make dead-lettered operations eligible for the next flush.

        Returns:
            Number of operations requeued
        """
        operations = self.repository.requeue_dead_letters()
        for operation in operations:
            self.repository.set_sync_status(
                operation.entity_type, operation.entity_id, SyncStatus.PENDING
            )
        self.pending_count = self.repository.count_pending_operations()
        if operations:
            logger.info("Requeued %d dead-lettered operation(s)", len(operations))
        return len(operations)

    def _on_connectivity_change(self, online: bool) -> None:
        if online and self.auto_flush and self.pending_count > 0:
            self._schedule_flush()

    def _schedule_flush(self) -> Optional[asyncio.Task]:
        if self._flushing:
            return None
        if self._flush_task is not None and not self._flush_task.done():
            return self._flush_task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, flush left for the next trigger")
            return None
        self._flush_task = loop.create_task(self.flush())
        return self._flush_task
