"""
Tests for the delivery queue retry policy.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import aiohttp
import pytest

from conftest import FakeTransport, RecordingSleep
from delivery import DeliveryQueue, DeliveryRequest, DeliveryResponse, HTTPStatusError, parse_retry_after

URL = "https://ex.com/hook"


def make_queue(*outcomes, retries=3, initial_delay=1.0):
    transport = FakeTransport(*outcomes)
    sleep = RecordingSleep()
    queue = DeliveryQueue(transport=transport, retries=retries, initial_delay=initial_delay, sleep=sleep)
    return queue, transport, sleep


class TestRetryPolicy:
    """Tests for attempts, backoff and exhaustion."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        queue, transport, sleep = make_queue(200)
        response = await queue.enqueue(URL)
        assert response.status == 200
        assert len(transport.calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("retries", [0, 1, 3, 5])
    async def test_exhaustion_makes_retries_plus_one_calls(self, retries):
        queue, transport, _ = make_queue(500, retries=retries)
        with pytest.raises(HTTPStatusError) as exc_info:
            await queue.enqueue(URL)
        assert len(transport.calls) == retries + 1
        assert exc_info.value.status == 500
        assert str(exc_info.value) == "HTTP error! status: 500"

    @pytest.mark.asyncio
    async def test_network_error_propagates_unchanged(self):
        error = aiohttp.ClientConnectionError("connection refused")
        queue, transport, _ = make_queue(error, retries=2)
        with pytest.raises(aiohttp.ClientConnectionError) as exc_info:
            await queue.enqueue(URL)
        assert exc_info.value is error
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_exponential_backoff(self):
        queue, _, sleep = make_queue(503, retries=4, initial_delay=0.5)
        with pytest.raises(HTTPStatusError):
            await queue.enqueue(URL)
        assert sleep.delays == [0.5, 1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_backoff_for_network_errors(self):
        queue, _, sleep = make_queue(asyncio.TimeoutError(), retries=3, initial_delay=1.0)
        with pytest.raises(asyncio.TimeoutError):
            await queue.enqueue(URL)
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self):
        queue, transport, sleep = make_queue(500, OSError("reset"), 204)
        response = await queue.enqueue(URL)
        assert response.status == 204
        assert len(transport.calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_per_call_overrides(self):
        queue, transport, sleep = make_queue(500)
        with pytest.raises(HTTPStatusError):
            await queue.enqueue(URL, retries=1, initial_delay=3.0)
        assert len(transport.calls) == 2
        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_request_passed_to_transport(self):
        queue, transport, _ = make_queue(200)
        request = DeliveryRequest.json_post('{"content":"hi"}')
        await queue.enqueue(URL, request)
        url, sent = transport.calls[0]
        assert url == URL
        assert sent.method == "POST"
        assert sent.headers == {"Content-Type": "application/json"}
        assert sent.body == '{"content":"hi"}'


class TestRetryAfter:
    """Tests for 429 handling."""

    @pytest.mark.asyncio
    async def test_retry_after_seconds_overrides_backoff(self):
        limited = DeliveryResponse(status=429, headers={"Retry-After": "7"})
        queue, transport, sleep = make_queue(limited, 200)
        response = await queue.enqueue(URL)
        assert response.status == 200
        assert sleep.delays == [7.0]

    @pytest.mark.asyncio
    async def test_retry_after_header_case_insensitive(self):
        limited = DeliveryResponse(status=429, headers={"retry-after": "2"})
        queue, _, sleep = make_queue(limited, 200)
        await queue.enqueue(URL)
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_429_without_header_uses_backoff(self):
        queue, _, sleep = make_queue(429, 429, 200, initial_delay=1.0)
        await queue.enqueue(URL)
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_after_ignored_for_other_statuses(self):
        unavailable = DeliveryResponse(status=503, headers={"Retry-After": "30"})
        queue, _, sleep = make_queue(unavailable, 200)
        await queue.enqueue(URL)
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_429_exhaustion_raises(self):
        limited = DeliveryResponse(status=429, headers={"Retry-After": "1"})
        queue, transport, _ = make_queue(limited, retries=2)
        with pytest.raises(HTTPStatusError) as exc_info:
            await queue.enqueue(URL)
        assert exc_info.value.status == 429
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_real_wait_honours_retry_after(self):
        """Test the next attempt happens no sooner than Retry-After seconds."""
        loop = asyncio.get_running_loop()
        times = []

        class TimedTransport(FakeTransport):
            async def send(self, url, request):
                times.append(loop.time())
                return await super().send(url, request)

        limited = DeliveryResponse(status=429, headers={"Retry-After": "0.2"})
        queue = DeliveryQueue(transport=TimedTransport(limited, 200), retries=1, initial_delay=5.0)
        await queue.enqueue(URL)
        assert times[1] - times[0] >= 0.19


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("0", 0.0),
        ("5", 5.0),
        (" 12 ", 12.0),
        ("1.5", 1.5),
    ])
    def test_seconds(self, value, expected):
        assert parse_retry_after(value) == expected

    @pytest.mark.parametrize("value", [None, "", "soon", "-3", "1e3"])
    def test_unusable(self, value):
        assert parse_retry_after(value) is None

    def test_http_date(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=30), usegmt=True)
        assert parse_retry_after(header, now=now) == pytest.approx(30.0)

    def test_http_date_in_the_past(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(seconds=30), usegmt=True)
        assert parse_retry_after(header, now=now) == 0.0


class TestConcurrency:
    """Tests for independent in-flight deliveries."""

    @pytest.mark.asyncio
    async def test_slow_delivery_does_not_block_others(self):
        release = asyncio.Event()
        order = []

        class GatedTransport(FakeTransport):
            async def send(self, url, request):
                if url == "https://slow":
                    await release.wait()
                order.append(url)
                return DeliveryResponse(status=200)

        queue = DeliveryQueue(transport=GatedTransport())
        slow = queue.enqueue("https://slow")
        fast = queue.enqueue("https://fast")

        await fast
        assert order == ["https://fast"]
        assert queue.active_count == 1

        release.set()
        await slow
        assert order == ["https://fast", "https://slow"]

    @pytest.mark.asyncio
    async def test_drain_and_close(self):
        queue, transport, _ = make_queue(200)
        for _ in range(5):
            queue.enqueue(URL)
        assert queue.active_count == 5

        await queue.close()
        assert queue.active_count == 0
        assert len(transport.calls) == 5
        assert transport.closed

    @pytest.mark.asyncio
    async def test_drain_timeout(self):
        never = asyncio.Event()

        class HangingTransport(FakeTransport):
            async def send(self, url, request):
                await never.wait()

        queue = DeliveryQueue(transport=HangingTransport())
        task = queue.enqueue(URL)
        assert await queue.drain(timeout=0.01) is False
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_close_cancels_deliveries_left_after_timeout(self):
        never = asyncio.Event()

        class HangingTransport(FakeTransport):
            async def send(self, url, request):
                self.calls.append((url, request))
                await never.wait()

        transport = HangingTransport()
        queue = DeliveryQueue(transport=transport, retries=3)
        task = queue.enqueue(URL)
        await asyncio.sleep(0)

        await queue.close(timeout=0.01)

        assert task.cancelled()
        assert queue.active_count == 0
        assert transport.closed
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_drain_when_idle(self):
        queue, _, _ = make_queue(200)
        assert await queue.drain() is True
