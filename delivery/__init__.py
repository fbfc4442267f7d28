"""
Delivery Module - Webhook HTTP Delivery

Usage:
    from delivery import DeliveryQueue, DeliveryRequest

    queue = DeliveryQueue(retries=3, initial_delay=1.0)
    task = queue.enqueue("https://example.com/hook", DeliveryRequest.json_post(body))
"""

from delivery.error_types import DeliveryError, HTTPStatusError
from delivery.queue import DeliveryQueue, parse_retry_after
from delivery.transport import AiohttpTransport, DeliveryRequest, DeliveryResponse, Transport

__all__ = [
    'AiohttpTransport',
    'DeliveryError',
    'DeliveryQueue',
    'DeliveryRequest',
    'DeliveryResponse',
    'HTTPStatusError',
    'Transport',
    'parse_retry_after',
]
