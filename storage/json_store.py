"""
JSON Storage - file backed StorageBackend

Keeps servers, patterns and webhooks in one JSON document. Suitable for a
single bot process; every mutation rewrites the file.

File layout:
    {
        "servers":  {server_id: {...}},
        "regexes":  [{...}, ...],
        "webhooks": {name: {...}}
    }

Keys: servers by server_id, patterns by (server_id, regex_pattern),
webhooks by name (global across servers).
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from storage.base import AlreadyExistsError, NotFoundError, StorageError
from storage.models import PatternRule, ServerRecord, ServerStatus, WebhookTarget
from storage.validation import (
    validate_regex_pattern,
    validate_server_id,
    validate_server_status,
    validate_user_ids,
    validate_webhook_name,
    validate_webhook_url,
)
from utils.persistence import read_json_async, write_json_async
from utils.text_processor import clean_field

log = logging.getLogger(__name__)


class JsonStorage:
    """
    StorageBackend implementation on top of a JSON file.

    Example:
        storage = JsonStorage("data/relay.json")
        await storage.create_server("123", "My Guild")
        await storage.add_regex("123", "/deploy failed/i", "alerts")
    """

    def __init__(self, file_path: str, enforce_https: bool = False):
        """
        Initialize the storage.

        Args:
            file_path: Path of the JSON document (created on first use)
            enforce_https: Reject http:// webhook URLs
        """
        self.file_path = file_path
        self.enforce_https = enforce_https
        self._data: Optional[Dict[str, Any]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        if self._data is None:
            data = await read_json_async(self.file_path)
            if not isinstance(data, dict):
                raise StorageError(f"Could not read storage file {self.file_path}")
            data.setdefault("servers", {})
            data.setdefault("regexes", [])
            data.setdefault("webhooks", {})
            self._data = data
            log.debug("Loaded storage from %s", self.file_path)
        return self._data

    async def _save(self) -> None:
        if not await write_json_async(self.file_path, self._data):
            raise StorageError(f"Could not write storage file {self.file_path}")

    # ---- Servers -----------------------------------------------------------

    async def get_server(self, server_id: str) -> Optional[ServerRecord]:
        async with self._lock:
            data = await self._load()
            raw = data["servers"].get(str(server_id))
            return ServerRecord.from_dict(raw) if raw else None

    async def get_all_servers(self) -> List[ServerRecord]:
        async with self._lock:
            data = await self._load()
            return [ServerRecord.from_dict(raw) for raw in data["servers"].values()]

    async def create_server(self, server_id: str, name: str, status: str = ServerStatus.ACTIVE,
                            total_users: int = 0) -> ServerRecord:
        server_id = validate_server_id(server_id)
        record = ServerRecord(
            server_id=server_id,
            name=clean_field(name),
            status=validate_server_status(status),
            total_users=int(total_users or 0),
        )
        async with self._lock:
            data = await self._load()
            if server_id in data["servers"]:
                raise AlreadyExistsError(f"Server {server_id} already exists")
            data["servers"][server_id] = record.to_dict()
            await self._save()
        log.info("Server created", extra={"context": {"serverId": server_id, "status": record.status}})
        return record

    async def update_server(self, server_id: str, name: Optional[str] = None,
                            status: Optional[str] = None, total_users: Optional[int] = None,
                            email: Optional[str] = None) -> ServerRecord:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            raw = data["servers"].get(server_id)
            if raw is None:
                raise NotFoundError(f"Server {server_id} not found")
            record = ServerRecord.from_dict(raw)
            if name is not None:
                record.name = clean_field(name)
            if status is not None:
                record.status = validate_server_status(status)
            if total_users is not None:
                record.total_users = int(total_users)
            if email is not None:
                record.email = clean_field(email)
            data["servers"][server_id] = record.to_dict()
            await self._save()
        return record

    async def delete_server(self, server_id: str) -> None:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            data["servers"].pop(server_id, None)
            data["regexes"] = [raw for raw in data["regexes"] if str(raw.get("server_id")) != server_id]
            await self._save()
        log.info("Server deleted", extra={"context": {"serverId": server_id}})

    # ---- Patterns ----------------------------------------------------------

    @staticmethod
    def _find_regex(data: Dict[str, Any], server_id: str, regex_pattern: str) -> Optional[int]:
        for index, raw in enumerate(data["regexes"]):
            if str(raw.get("server_id")) == server_id and raw.get("regex_pattern") == regex_pattern:
                return index
        return None

    async def get_regexes_by_server(self, server_id: str) -> List[PatternRule]:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            return [PatternRule.from_dict(raw) for raw in data["regexes"]
                    if str(raw.get("server_id")) == server_id]

    async def get_regex(self, server_id: str, regex_pattern: str) -> Optional[PatternRule]:
        async with self._lock:
            data = await self._load()
            index = self._find_regex(data, str(server_id), regex_pattern)
            return None if index is None else PatternRule.from_dict(data["regexes"][index])

    async def add_regex(self, server_id: str, regex_pattern: str, webhook_name: str,
                        user_ids: Optional[List[str]] = None) -> PatternRule:
        server_id = validate_server_id(server_id)
        validate_regex_pattern(regex_pattern)
        rule = PatternRule(
            server_id=server_id,
            regex_pattern=regex_pattern,
            webhook_name=validate_webhook_name(webhook_name),
            user_ids=validate_user_ids(user_ids),
        )
        async with self._lock:
            data = await self._load()
            if self._find_regex(data, server_id, regex_pattern) is not None:
                raise AlreadyExistsError(f"Pattern {regex_pattern} already exists for this server")
            data["regexes"].append(rule.to_dict())
            await self._save()
        log.info("Pattern added", extra={"context": {
            "serverId": server_id, "patternId": regex_pattern, "webhookName": rule.webhook_name}})
        return rule

    async def update_regex(self, server_id: str, regex_pattern: str,
                           webhook_name: Optional[str] = None,
                           user_ids: Optional[List[str]] = None) -> PatternRule:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            index = self._find_regex(data, server_id, regex_pattern)
            if index is None:
                raise NotFoundError(f"Pattern {regex_pattern} not found")
            rule = PatternRule.from_dict(data["regexes"][index])
            if webhook_name is not None:
                rule.webhook_name = validate_webhook_name(webhook_name)
            if user_ids is not None:
                rule.user_ids = validate_user_ids(user_ids)
            data["regexes"][index] = rule.to_dict()
            await self._save()
        return rule

    async def delete_regex(self, server_id: str, regex_pattern: str) -> None:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            index = self._find_regex(data, server_id, regex_pattern)
            if index is None:
                raise NotFoundError(f"Pattern {regex_pattern} not found")
            del data["regexes"][index]
            await self._save()
        log.info("Pattern deleted", extra={"context": {"serverId": server_id, "patternId": regex_pattern}})

    # ---- Webhooks ----------------------------------------------------------

    async def get_webhook(self, name: str) -> Optional[WebhookTarget]:
        async with self._lock:
            data = await self._load()
            raw = data["webhooks"].get(name)
            return WebhookTarget.from_dict(raw) if raw else None

    async def get_all_webhooks(self) -> List[WebhookTarget]:
        async with self._lock:
            data = await self._load()
            return [WebhookTarget.from_dict(raw) for raw in data["webhooks"].values()]

    async def get_all_webhooks_by_server_id(self, server_id: str) -> List[WebhookTarget]:
        server_id = str(server_id)
        async with self._lock:
            data = await self._load()
            return [WebhookTarget.from_dict(raw) for raw in data["webhooks"].values()
                    if str(raw.get("server_id")) == server_id]

    async def create_webhook(self, name: str, url: str, server_id: str,
                             data_template: Optional[str] = None) -> WebhookTarget:
        webhook = WebhookTarget(
            name=validate_webhook_name(name),
            url=validate_webhook_url(url, self.enforce_https),
            server_id=validate_server_id(server_id),
            data_template=data_template or None,
        )
        async with self._lock:
            data = await self._load()
            if webhook.name in data["webhooks"]:
                raise AlreadyExistsError(f"Webhook {webhook.name} already exists")
            data["webhooks"][webhook.name] = webhook.to_dict()
            await self._save()
        log.info("Webhook created", extra={"context": {
            "serverId": webhook.server_id, "webhookName": webhook.name}})
        return webhook

    async def update_webhook(self, name: str, url: Optional[str] = None,
                             server_id: Optional[str] = None,
                             data_template: Optional[str] = None) -> WebhookTarget:
        async with self._lock:
            data = await self._load()
            raw = data["webhooks"].get(name)
            if raw is None:
                raise NotFoundError(f"Webhook {name} not found")
            webhook = WebhookTarget.from_dict(raw)
            if url is not None:
                webhook.url = validate_webhook_url(url, self.enforce_https)
            if server_id is not None:
                webhook.server_id = validate_server_id(server_id)
            if data_template is not None:
                webhook.data_template = data_template or None
            data["webhooks"][name] = webhook.to_dict()
            await self._save()
        return webhook

    async def delete_webhook(self, name: str) -> None:
        async with self._lock:
            data = await self._load()
            if data["webhooks"].pop(name, None) is None:
                raise NotFoundError(f"Webhook {name} not found")
            await self._save()
        log.info("Webhook deleted", extra={"context": {"webhookName": name}})
