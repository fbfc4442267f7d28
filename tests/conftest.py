"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add the repository root to the path so imports work
sys.path.insert(0, str(Path(__file__).parent.parent))

# Never pick up a developer's config.yml during tests
os.environ["RELAY_CONFIG"] = str(Path(__file__).parent / "missing-config.yml")

from delivery import DeliveryQueue, DeliveryRequest, DeliveryResponse  # noqa: E402
from messaging.cache import TTLCache  # noqa: E402
from storage.models import PatternRule, ServerRecord, WebhookTarget  # noqa: E402


class FakeTransport:
    """
    Transport returning scripted outcomes.

    Each outcome is a status code, a DeliveryResponse or an exception
    instance. The last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes) or [200]
        self.calls: List[Tuple[str, DeliveryRequest]] = []
        self.closed = False

    async def send(self, url: str, request: DeliveryRequest) -> DeliveryResponse:
        index = min(len(self.calls), len(self.outcomes) - 1)
        self.calls.append((url, request))
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, DeliveryResponse):
            return outcome
        return DeliveryResponse(status=outcome)

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records requested delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def delivery_queue(fake_transport, recording_sleep):
    return DeliveryQueue(transport=fake_transport, retries=3, initial_delay=1.0, sleep=recording_sleep)


@pytest.fixture
def cache(fake_clock):
    return TTLCache(default_ttl=60, clock=fake_clock)


def make_storage(
    server: Optional[ServerRecord] = None,
    rules: Optional[List[PatternRule]] = None,
    webhooks: Optional[List[WebhookTarget]] = None
) -> MagicMock:
    """Storage mock whose read methods return the given records."""
    storage = MagicMock()
    storage.get_server = AsyncMock(return_value=server)
    storage.get_regexes_by_server = AsyncMock(return_value=rules or [])
    storage.get_all_webhooks_by_server_id = AsyncMock(return_value=webhooks or [])
    storage.get_all_servers = AsyncMock(return_value=[server] if server else [])
    return storage


def make_message(content: str = "say hello now", guild_id: Optional[int] = 111,
                 author_id: int = 42, bot: bool = False, webhook_id: Optional[int] = None) -> MagicMock:
    """discord.Message stand-in."""
    message = MagicMock()
    message.content = content
    if guild_id is None:
        message.guild = None
        message.guild_id = None
    else:
        message.guild.id = guild_id
        message.guild_id = guild_id
    message.author.id = author_id
    message.author.bot = bot
    message.webhook_id = webhook_id
    return message
