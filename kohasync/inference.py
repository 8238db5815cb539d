"""Client for remote inference endpoints.

The sync server does not proxy inference requests. This module only holds
the collaborator contract: call an endpoint and get back its JSON or an
error, and walk an ordered list of candidate endpoints until one answers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import InferenceConfig

logger = logging.getLogger(__name__)


@dataclass
class InferenceResult:
    """Outcome of an inference call."""

    data: Any = None
    error: str | None = None
    endpoint: str | None = None
    attempts: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class InferenceClient:
    """Calls inference endpoints with a bearer token."""

    def __init__(
        self,
        token: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            token: Bearer token sent with every request.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.token = token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: InferenceConfig) -> "InferenceClient":
        return cls(token=config.token, timeout=config.timeout_seconds)

    def _headers(self, content_type: str) -> dict[str, str]:
        headers = {"Content-Type": content_type}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def call(
        self,
        endpoint: str,
        payload: Any,
        content_type: str = "application/json",
    ) -> InferenceResult:
        """POST a payload to one endpoint.

        Args:
            endpoint: Full endpoint URL.
            payload: JSON-serializable body, or raw bytes (e.g. an image)
                sent as-is with ``content_type``.
            content_type: Content type for raw byte payloads.

        Returns:
            InferenceResult with the decoded JSON or an error. Transport and
            HTTP failures are reported in the result, never raised.
        """
        if isinstance(payload, bytes):
            request_kwargs: dict[str, Any] = {
                "content": payload,
                "headers": self._headers(content_type),
            }
        else:
            request_kwargs = {
                "json": payload,
                "headers": self._headers("application/json"),
            }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(endpoint, **request_kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"Inference call to {endpoint} failed: {e}")
            return InferenceResult(error=str(e) or type(e).__name__, endpoint=endpoint)

        if response.status_code != 200:
            logger.warning(f"Inference endpoint {endpoint} returned {response.status_code}")
            return InferenceResult(
                error=f"HTTP {response.status_code}: {response.text}",
                endpoint=endpoint,
            )

        try:
            data = response.json()
        except ValueError as e:
            return InferenceResult(error=f"Invalid JSON response: {e}", endpoint=endpoint)

        return InferenceResult(data=data, endpoint=endpoint)

    async def call_first_available(
        self,
        endpoints: list[str],
        payload: Any,
        content_type: str = "application/json",
    ) -> InferenceResult:
        """Try candidate endpoints in order until one succeeds.

        Each failure is recorded in ``attempts`` and does not stop the next
        candidate from being tried.
        """
        if not endpoints:
            return InferenceResult(error="No inference endpoints configured")

        attempts: list[dict[str, Any]] = []
        result = InferenceResult()
        for endpoint in endpoints:
            result = await self.call(endpoint, payload, content_type)
            attempts.append({"endpoint": endpoint, "error": result.error})
            if result.ok:
                break
            logger.info(f"Falling back from {endpoint}")

        result.attempts = attempts
        return result
