"""
HTTP Transport - aiohttp client used for webhook delivery

Defines the request/response shapes the delivery queue works with and the
default aiohttp-backed transport.

Classes:
    - DeliveryRequest: method, headers, body and timeout for one request
    - DeliveryResponse: status, headers and body of a finished request
    - Transport: protocol for anything that can send a DeliveryRequest
    - AiohttpTransport: Transport backed by a shared aiohttp.ClientSession
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import aiohttp

log = logging.getLogger(__name__)


@dataclass
class DeliveryRequest:
    """Description of an outgoing HTTP request."""
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    timeout: Optional[float] = None

    @classmethod
    def json_post(cls, body: str, timeout: Optional[float] = None) -> 'DeliveryRequest':
        """POST request carrying an already serialised JSON body."""
        return cls(
            method="POST",
            headers={"Content-Type": "application/json"},
            body=body,
            timeout=timeout,
        )


@dataclass
class DeliveryResponse:
    """Result of a completed HTTP request."""
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def get_header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, header_value in self.headers.items():
            if key.lower() == lowered:
                return header_value
        return None


class Transport(Protocol):
    """Anything able to perform a single HTTP request."""

    async def send(self, url: str, request: DeliveryRequest) -> DeliveryResponse:
        ...

    async def close(self) -> None:
        ...


class AiohttpTransport:
    """
    Sends requests through one lazily created aiohttp.ClientSession.

    Network errors (aiohttp.ClientError, asyncio.TimeoutError) propagate to
    the caller; HTTP error statuses are returned as normal responses.
    """

    def __init__(self, timeout: float = 10.0, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the transport.

        Args:
            timeout: Default total timeout per request in seconds
            session: Existing session to reuse (not closed by this transport)
        """
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def send(self, url: str, request: DeliveryRequest) -> DeliveryResponse:
        session = self._get_session()
        kwargs: Dict[str, Any] = {"headers": request.headers}
        if request.body is not None:
            kwargs["data"] = request.body.encode("utf-8")
        if request.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=request.timeout)

        async with session.request(request.method, str(url), **kwargs) as response:
            body = await response.text(errors="replace")
            return DeliveryResponse(
                status=response.status,
                headers=dict(response.headers),
                body=body,
            )

    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            log.debug("Delivery HTTP session closed")
        self._session = None
