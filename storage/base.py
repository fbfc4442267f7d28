"""
Storage contract used by the bot.

The message pipeline only reads (get_server, get_regexes_by_server,
get_all_webhooks_by_server_id). Mutations are used by slash commands,
guild join handling and external tooling.
"""

from typing import List, Optional, Protocol

from storage.models import PatternRule, ServerRecord, WebhookTarget


class StorageError(Exception):
    """Base class for storage failures."""


class NotFoundError(StorageError):
    pass


class AlreadyExistsError(StorageError):
    pass


class ValidationError(StorageError, ValueError):
    """A value was rejected before being stored."""


class StorageBackend(Protocol):
    """Operations the bot needs from a storage backend."""

    # Servers
    async def get_server(self, server_id: str) -> Optional[ServerRecord]:
        ...

    async def get_all_servers(self) -> List[ServerRecord]:
        ...

    async def create_server(self, server_id: str, name: str, status: str = "active",
                            total_users: int = 0) -> ServerRecord:
        ...

    async def update_server(self, server_id: str, name: Optional[str] = None,
                            status: Optional[str] = None, total_users: Optional[int] = None,
                            email: Optional[str] = None) -> ServerRecord:
        ...

    async def delete_server(self, server_id: str) -> None:
        ...

    # Patterns
    async def get_regexes_by_server(self, server_id: str) -> List[PatternRule]:
        ...

    async def get_regex(self, server_id: str, regex_pattern: str) -> Optional[PatternRule]:
        ...

    async def add_regex(self, server_id: str, regex_pattern: str, webhook_name: str,
                        user_ids: Optional[List[str]] = None) -> PatternRule:
        ...

    async def update_regex(self, server_id: str, regex_pattern: str,
                           webhook_name: Optional[str] = None,
                           user_ids: Optional[List[str]] = None) -> PatternRule:
        ...

    async def delete_regex(self, server_id: str, regex_pattern: str) -> None:
        ...

    # Webhooks
    async def get_webhook(self, name: str) -> Optional[WebhookTarget]:
        ...

    async def get_all_webhooks(self) -> List[WebhookTarget]:
        ...

    async def get_all_webhooks_by_server_id(self, server_id: str) -> List[WebhookTarget]:
        ...

    async def create_webhook(self, name: str, url: str, server_id: str,
                             data_template: Optional[str] = None) -> WebhookTarget:
        ...

    async def update_webhook(self, name: str, url: Optional[str] = None,
                             server_id: Optional[str] = None,
                             data_template: Optional[str] = None) -> WebhookTarget:
        ...

    async def delete_webhook(self, name: str) -> None:
        ...
