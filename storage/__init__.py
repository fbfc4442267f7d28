"""
Storage Module - Servers, Patterns and Webhooks

Usage:
    from storage import JsonStorage

    storage = JsonStorage("data/relay.json")
    server = await storage.get_server("123")
"""

from storage.base import AlreadyExistsError, NotFoundError, StorageBackend, StorageError, ValidationError
from storage.json_store import JsonStorage
from storage.models import ALL_USERS, PatternRule, ServerRecord, ServerStatus, WebhookTarget

__all__ = [
    'ALL_USERS',
    'AlreadyExistsError',
    'JsonStorage',
    'NotFoundError',
    'PatternRule',
    'ServerRecord',
    'ServerStatus',
    'StorageBackend',
    'StorageError',
    'ValidationError',
    'WebhookTarget',
]
