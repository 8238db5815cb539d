"""Device-side client for the /api/sync endpoint.

Retrying is the client's job: the server never retries a failed write.
Connection errors, timeouts and 5xx responses are retried with exponential
backoff; 4xx responses are returned immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from .identifiers import normalize_identifier
from .records import SyncRecord

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/sync"
NOT_FOUND = "not_found"


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    OFFLINE = "offline"  # Server unavailable


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    sync_id: str | None = None
    record: SyncRecord | None = None
    error: str | None = None
    timestamp: datetime | None = None


class SyncClient:
    """Client for creating, fetching and pushing shared records."""

    def __init__(
        self,
        server_url: str | None = None,
        max_retries: int = 3,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the sync client.

        Args:
            server_url: Base URL of the sync server (e.g., "https://koha.example").
            max_retries: Maximum attempts per request.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.server_url = server_url
        self.max_retries = max_retries
        self.timeout = timeout
        self._transport = transport
        self._last_sync: datetime | None = None
        self._consecutive_failures = 0

    def set_server_url(self, url: str) -> None:
        """Set or update the server URL."""
        self.server_url = url
        logger.info(f"Sync server URL set to {url}")

    async def _request_with_retry(
        self,
        method: str,
        params: dict[str, str] | None = None,
        json_data: Any = None,
    ) -> tuple[Any, str | None]:
        """Make HTTP request with exponential backoff retry.

        Args:
            method: HTTP method (GET, POST, PUT).
            params: Query parameters.
            json_data: Optional JSON body.

        Returns:
            Tuple of (response_data, error_message).
        """
        if not self.server_url:
            return None, "No server URL configured"

        url = f"{self.server_url.rstrip('/')}{SYNC_PATH}"
        backoff = 1.0
        server_error: str | None = None

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.request(
                        method, url, params=params, json=json_data
                    )

                    if response.status_code == 200:
                        self._consecutive_failures = 0
                        return response.json(), None

                    elif response.status_code == 404:
                        return None, NOT_FOUND

                    elif response.status_code >= 500:
                        # Server error, retry
                        server_error = f"HTTP {response.status_code}: {response.text}"
                        logger.warning(
                            f"Server error {response.status_code}, "
                            f"attempt {attempt + 1}/{self.max_retries}"
                        )
                    else:
                        # Client error, don't retry
                        return None, f"HTTP {response.status_code}: {response.text}"

                except httpx.ConnectError:
                    server_error = None
                    logger.warning(
                        f"Connection failed, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.TimeoutException:
                    server_error = None
                    logger.warning(
                        f"Request timeout, attempt {attempt + 1}/{self.max_retries}"
                    )
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(f"Request error: {e}")
                    return None, str(e)

                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2

        self._consecutive_failures += 1
        if server_error:
            return None, f"Max retries ({self.max_retries}) exceeded: {server_error}"
        return None, f"Connection failed after {self.max_retries} attempts"

    def _failure(self, error: str) -> SyncResult:
        if error == NOT_FOUND:
            return SyncResult(status=SyncStatus.NOT_FOUND, error=error)
        return SyncResult(
            status=(
                SyncStatus.OFFLINE
                if error.startswith("Connection failed")
                else SyncStatus.FAILED
            ),
            error=error,
        )

    def _unexpected(self, data: Any) -> SyncResult:
        logger.error(f"Unexpected sync response: {data!r}")
        return SyncResult(
            status=SyncStatus.FAILED, error=f"Unexpected response: {data!r}"
        )

    async def create_record(self, payload: dict[str, Any]) -> SyncResult:
        """Create a new shared record and get its sync code."""
        data, error = await self._request_with_retry("POST", json_data=payload)
        if error:
            return self._failure(error)

        try:
            sync_id = data["id"]
        except (KeyError, TypeError):
            return self._unexpected(data)

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS,
            sync_id=sync_id,
            timestamp=self._last_sync,
        )

    async def fetch_record(self, sync_id: str) -> SyncResult:
        """Fetch the current shared record."""
        code = normalize_identifier(sync_id)
        data, error = await self._request_with_retry("GET", params={"id": code})
        if error:
            return self._failure(error)

        try:
            record = SyncRecord.from_dict(data["data"])
        except (KeyError, TypeError, AttributeError):
            return self._unexpected(data)

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS,
            sync_id=code,
            record=record,
            timestamp=self._last_sync,
        )

    async def push_record(self, sync_id: str, payload: dict[str, Any]) -> SyncResult:
        """Submit local changes and get back the merged record."""
        code = normalize_identifier(sync_id)
        data, error = await self._request_with_retry(
            "PUT", params={"id": code}, json_data=payload
        )
        if error:
            return self._failure(error)

        try:
            record = SyncRecord.from_dict(data["data"])
        except (KeyError, TypeError, AttributeError):
            return self._unexpected(data)

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS,
            sync_id=code,
            record=record,
            timestamp=self._last_sync,
        )

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful request."""
        return self._last_sync

    def get_sync_status(self) -> dict[str, Any]:
        """Get current client status."""
        return {
            "server_url": self.server_url,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "consecutive_failures": self._consecutive_failures,
        }
