"""
Delivery Error Types

Errors raised by the delivery queue when a webhook could not be delivered
after all retries.
"""

from typing import Optional


class DeliveryError(Exception):
    """Base class for webhook delivery failures."""


class HTTPStatusError(DeliveryError):
    """
    The endpoint kept answering with a non-2xx status.

    Attributes:
        status: Status code of the last response
        url: Target URL
        body: Body of the last response (may be empty)
    """

    def __init__(self, status: int, url: Optional[str] = None, body: str = ""):
        super().__init__(f"HTTP error! status: {status}")
        self.status = status
        self.url = url
        self.body = body
