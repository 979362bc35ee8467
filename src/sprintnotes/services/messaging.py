"""Direct messages between matched users, with a polling chat view."""

import asyncio
import logging
from typing import Callable, Optional

from sprintnotes.database.collab_repository import CollabRepository
from sprintnotes.models.collab import MatchStatus, Message
from sprintnotes.models.common import utcnow
from sprintnotes.services.matching import MatchNotFoundError, MatchPermissionError

logger = logging.getLogger(__name__)


class MessageError(Exception):
    """A message could not be sent."""

    pass


class MessageService:
    """Sends and reads messages inside accepted matches."""

    def __init__(self, repository: CollabRepository):
        """Initialize the service."""
        self.repository = repository

    def send_message(self, match_id: int, sender_id: int, content: str) -> Message:
        """Post a message to an accepted match.

        Raises:
            MessageError: If the content is blank
            MatchNotFoundError: If the match does not exist or is not accepted
            MatchPermissionError: If the sender is not a participant
        """
        if not content or not content.strip():
            raise MessageError("Message content is required")

        match = self.repository.get_match(match_id)
        if match is None or match.status != MatchStatus.ACCEPTED:
            raise MatchNotFoundError("Match not found or not accepted")
        if not match.involves(sender_id):
            raise MatchPermissionError("Unauthorized")

        return self.repository.add_message(
            Message(match_id=match_id, sender_id=sender_id, content=content.strip())
        )

    def get_messages(self, match_id: int, user_id: int) -> list[Message]:
        """Messages of a match, oldest first; marks the other side's as read."""
        match = self.repository.get_match(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        if not match.involves(user_id):
            raise MatchPermissionError("Unauthorized")

        messages = self.repository.get_messages(match_id)
        unread = [m for m in messages if m.sender_id != user_id and m.read_at is None]
        if unread:
            read_at = utcnow()
            self.repository.mark_messages_read([m.id for m in unread if m.id is not None], read_at)
            for message in unread:
                message.read_at = read_at
        return messages


class MessagePoller:
    """Polls a match's messages while a chat view is open.

    The poll task lives between ``start()`` and ``stop()``; stopping only
    prevents future polls.
    """

    def __init__(
        self,
        service: MessageService,
        match_id: int,
        user_id: int,
        on_messages: Callable[[list[Message]], None],
        interval: float = 3.0,
    ):
        """Initialize the poller.

        Args:
            service: Message service to read from
            match_id: Match whose chat is open
            user_id: The viewing user
            on_messages: Called with the full message list after each poll
            interval: Seconds between polls
        """
        self.service = service
        self.match_id = match_id
        self.user_id = user_id
        self.on_messages = on_messages
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Whether the poll task is alive."""
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> list[Message]:
        """Fetch messages once and hand them to the callback."""
        messages = await asyncio.to_thread(
            self.service.get_messages, self.match_id, self.user_id
        )
        self.on_messages(messages)
        return messages

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except (MatchNotFoundError, MatchPermissionError) as e:
                logger.warning("Stopping chat poll for match %s: %s", self.match_id, e)
                return
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Begin polling on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self) -> None:
        """Stop polling."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
