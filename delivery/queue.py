"""
Delivery Queue - Infrastructure Layer

Delivers webhook requests with retries. Every enqueued delivery runs as its
own asyncio task, so a slow or failing endpoint never holds up the others.

Retry policy per delivery:
    - 2xx: done, no further attempts
    - 429 with a usable Retry-After header: wait what the server asked
    - any other failure (network error, non-2xx): wait initial_delay * 2 ** attempt
    - after ``retries`` retries the task raises the last error

Classes:
    - DeliveryQueue: schedules deliveries and tracks the in-flight ones
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional, Set

from delivery.error_types import HTTPStatusError
from delivery.transport import AiohttpTransport, DeliveryRequest, DeliveryResponse, Transport

log = logging.getLogger(__name__)

DEFAULT_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0

# Delta-seconds; fractional values such as "1.5" are accepted too
_SECONDS = re.compile(r"\d+(\.\d+)?")


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header value into a delay in seconds.

    Args:
        value: Header value, either delta-seconds or an HTTP date
        now: Reference time for HTTP dates (defaults to the current UTC time)

    Returns:
        Optional[float]: Seconds to wait (never negative), or None if the
        value is missing or unparseable
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    if _SECONDS.fullmatch(value):
        return float(value)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class DeliveryQueue:
    """
    Runs webhook deliveries concurrently with retry and backoff.

    Example:
        queue = DeliveryQueue()
        task = queue.enqueue(url, DeliveryRequest.json_post('{"content":"hi"}'))
        response = await task  # or attach a done callback and move on
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        retries: int = DEFAULT_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the delivery queue.

        Args:
            transport: HTTP transport (defaults to an aiohttp-backed one)
            retries: Default number of retries after the first attempt
            initial_delay: Default first backoff delay in seconds
            sleep: Awaitable sleep used between attempts, injectable for tests
        """
        self.transport = transport or AiohttpTransport()
        self.retries = retries
        self.initial_delay = initial_delay
        self._sleep = sleep
        self._active: Set[asyncio.Task] = set()

    def enqueue(
        self,
        url: str,
        request: Optional[DeliveryRequest] = None,
        retries: Optional[int] = None,
        initial_delay: Optional[float] = None
    ) -> "asyncio.Task[DeliveryResponse]":
        """
        Schedule a delivery and return its task immediately.

        Must be called from a running event loop.

        Args:
            url: Target URL
            request: Request description (defaults to an empty POST)
            retries: Retries after the first attempt (defaults to the queue's setting)
            initial_delay: First backoff delay in seconds (defaults to the queue's setting)

        Returns:
            asyncio.Task: Resolves to the successful DeliveryResponse, or raises
            the last transport error / HTTPStatusError once retries run out
        """
        task = asyncio.get_running_loop().create_task(
            self._deliver(
                str(url),
                request or DeliveryRequest(),
                self.retries if retries is None else retries,
                self.initial_delay if initial_delay is None else initial_delay,
            )
        )
        self._active.add(task)
        task.add_done_callback(self._active.discard)
        return task

    async def _deliver(
        self,
        url: str,
        request: DeliveryRequest,
        retries: int,
        initial_delay: float
    ) -> DeliveryResponse:
        for attempt in range(retries + 1):
            last_attempt = attempt >= retries

            try:
                response = await self.transport.send(url, request)
            except Exception as e:
                if last_attempt:
                    raise
                delay = initial_delay * (2 ** attempt)
                log.warning(
                    "Delivery attempt %d/%d failed. Retrying in %ss. Error: %s",
                    attempt + 1, retries + 1, delay, e,
                    extra={"context": {"url": url, "attempt": attempt + 1}}
                )
                await self._sleep(delay)
                continue

            if response.ok:
                return response

            if last_attempt:
                raise HTTPStatusError(response.status, url, response.body)

            delay = None
            if response.status == 429:
                delay = parse_retry_after(response.get_header("Retry-After"))
            if delay is None:
                delay = initial_delay * (2 ** attempt)

            log.warning(
                "Delivery attempt %d/%d got HTTP %d. Retrying in %ss.",
                attempt + 1, retries + 1, response.status, delay,
                extra={"context": {"url": url, "status": response.status, "attempt": attempt + 1}}
            )
            await self._sleep(delay)

        # range() always yields at least once for retries >= 0
        raise ValueError(f"retries must be >= 0, got {retries}")

    @property
    def active_count(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._active)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight deliveries to settle.

        Args:
            timeout: Maximum seconds to wait (None = wait for all)

        Returns:
            bool: True if nothing is left in flight
        """
        pending = set(self._active)
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    async def close(self, timeout: Optional[float] = None) -> None:
        """
        Drain pending deliveries and close the transport.

        Deliveries still in flight after the timeout are cancelled so none of
        them can reach the transport once it is closed.
        """
        if not await self.drain(timeout):
            pending = list(self._active)
            log.warning("Cancelling %d deliveries still in flight", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        await self.transport.close()
