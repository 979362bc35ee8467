"""Network reachability signal."""

import asyncio
import logging
from typing import Callable, Optional

import requests  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Tracks whether the remote side is reachable.

    Subscribers are called with the new state on every edge
    (offline -> online or online -> offline), never on a repeated level.
    """

    def __init__(
        self,
        probe_url: Optional[str] = None,
        online: bool = False,
        timeout: float = 5.0,
    ):
        """Initialize the monitor.

        Args:
            probe_url: URL probed by check(); without one, state only changes via set_online()
            online: Initial state
            timeout: Probe timeout in seconds
        """
        self.probe_url = probe_url
        self.timeout = timeout
        self._online = online
        self._listeners: list[ConnectivityListener] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        """Current reachability."""
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener for state edges.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> None:
        """Record the current state and notify listeners if it changed."""
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)

    def probe(self) -> bool:
        """Probe the remote once.

        Returns:
            True if the probe URL answered, False otherwise
        """
        if not self.probe_url:
            return self._online
        try:
            response = requests.head(self.probe_url, timeout=self.timeout, allow_redirects=True)
            return response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.debug("Connectivity probe failed: %s", e)
            return False

    def check(self) -> bool:
        """Probe the remote and update the state."""
        online = self.probe()
        self.set_online(online)
        return online

    async def _watch(self, interval: float) -> None:
        while True:
            online = await asyncio.to_thread(self.probe)
            self.set_online(online)
            await asyncio.sleep(interval)

    @property
    def is_watching(self) -> bool:
        """Whether the periodic probe task is running."""
        return self._task is not None and not self._task.done()

    def start(self, interval: float = 15.0) -> asyncio.Task:
        """Start probing periodically on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._watch(interval))
        return self._task

    async def stop(self) -> None:
        """Cancel the periodic probe task."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
