"""Transport layer for sending feed requests.

Defines the Transport protocol and its production implementation:
- HttpxTransport: sends requests with httpx over a certifi-backed SSL context

Transports only move bytes. Status handling and parsing belong to the
dispatcher, so a transport returns every HTTP response, error statuses
included, and raises only when no response was received.
"""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

import certifi
import httpx

from extrafeed.exceptions import TransportError

DEFAULT_TIMEOUT = 60


@dataclass(frozen=True)
class HttpResponse:
    """A received HTTP response."""

    status_code: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""


class Transport(ABC):
    """Abstract base class for HTTP transport."""

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> HttpResponse:
        """Send one request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            url: Fully composed URL, query string included
            headers: Request headers
            body: Request body for POST/PUT

        Returns:
            The response, whatever its status

        Raises:
            TransportError: If no response could be obtained
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


class HttpxTransport(Transport):
    """Production transport backed by httpx.AsyncClient."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the transport.

        Args:
            timeout: Request timeout in seconds
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.AsyncClient(timeout=timeout, verify=ssl_context)

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> HttpResponse:
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers),
                content=body.encode("utf-8") if body is not None else None,
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

        return HttpResponse(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
