"""HTTP client delivering sync operations to the remote store."""

import asyncio
from typing import Any, Optional, Protocol

import requests  # type: ignore[import-untyped]

from sprintnotes.models.sync_operation import SyncOperation


class RemoteDeliveryError(Exception):
    """A sync operation could not be delivered."""

    pass


class Remote(Protocol):
    """Anything the sync queue can deliver operations to."""

    async def deliver(self, operation: SyncOperation) -> None:
        """Deliver one operation or raise RemoteDeliveryError."""
        ...


class HttpRemote:
    """Delivers sync operations as JSON over HTTP.

    The remote store exposes a single endpoint taking
    ``{kind, entityType, entityId, payload, timestamp}``.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 30):
        """Initialize the remote client.

        Args:
            base_url: Base URL of the remote store
            api_key: Optional bearer token
            timeout: Request timeout in seconds
        """
        if not base_url:
            raise ValueError("Remote base URL is required")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @property
    def sync_url(self) -> str:
        """Endpoint receiving operations."""
        return f"{self.base_url}/sync"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, body: dict[str, Any]) -> Any:
        """Post one operation body.

        Raises:
            RemoteDeliveryError: If the request fails or the remote rejects it
        """
        try:
            response = requests.post(
                self.sync_url, json=body, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise RemoteDeliveryError(f"Cannot connect to remote store at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            raise RemoteDeliveryError("Remote store request timed out") from e
        except requests.exceptions.RequestException as e:
            raise RemoteDeliveryError(f"Remote store rejected operation: {e}") from e

        if not response.content:
            return None

        try:
            result = response.json()
        except ValueError:
            return None

        if isinstance(result, dict) and result.get("error"):
            raise RemoteDeliveryError(str(result["error"]))

        return result

    async def deliver(self, operation: SyncOperation) -> None:
        """Deliver one operation without blocking the event loop."""
        await asyncio.to_thread(self._post, operation.to_wire())

    def check_connection(self) -> bool:
        """Check if the remote store answers.

        Returns:
            True if connected, False otherwise
        """
        try:
            response = requests.get(self.base_url, headers=self._headers(), timeout=self.timeout)
            return response.status_code < 500
        except requests.exceptions.RequestException:
            return False
