"""
Message Pipeline - Main Orchestrator

Ties the messaging components together into one flow for every guild message:
Discord → Intake → Server lookup → Rules/Webhooks lookup → Regex → Delivery Queue

Lookups go through the TTL cache first; deliveries are fire-and-forget tasks
whose outcome is only reported through the log.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from delivery import DeliveryQueue, DeliveryRequest
from messaging.cache import UNSET, TTLCache
from messaging.intake import MessageEvent
from storage.base import StorageBackend
from storage.models import PatternRule, ServerRecord, WebhookTarget
from utils.regex_engine import PatternError, compile_pattern
from utils.text_processor import build_webhook_body

log = logging.getLogger(__name__)

# Sub-fields of a guild's cache entry
SERVER_KEY = "servers"
PATTERNS_KEY = "patterns"
WEBHOOKS_KEY = "webhooks"


def _as_server(value: Any) -> ServerRecord:
    return value if isinstance(value, ServerRecord) else ServerRecord.from_dict(value)


def _as_rule(value: Any) -> PatternRule:
    return value if isinstance(value, PatternRule) else PatternRule.from_dict(value)


def _as_webhook(value: Any) -> WebhookTarget:
    return value if isinstance(value, WebhookTarget) else WebhookTarget.from_dict(value)


class MessagePipeline:
    """
    Matches guild messages against stored patterns and triggers webhooks.

    Example:
        pipeline = MessagePipeline(storage, TTLCache(default_ttl=60), DeliveryQueue())
        await pipeline.process_message(event)  # number of deliveries enqueued
    """

    def __init__(
        self,
        storage: StorageBackend,
        cache: TTLCache,
        queue: DeliveryQueue,
        cache_ttl: Any = UNSET
    ):
        """
        Initialize the message pipeline.

        Args:
            storage: Read side of the storage backend
            cache: Cache shared by every guild
            queue: Delivery queue used for webhook POSTs
            cache_ttl: Seconds to cache lookups (None = forever, omitted = cache default)
        """
        self.storage = storage
        self.cache = cache
        self.queue = queue
        self.cache_ttl = cache_ttl

    async def process_message(self, message: Any) -> int:
        """
        Run one message through the pipeline.

        Never raises: lookup failures are logged and end processing of this
        message only.

        Args:
            message: MessageEvent, discord.Message or any object with
                content, guild_id (or guild.id) and author.id

        Returns:
            int: Number of deliveries enqueued
        """
        event = message if isinstance(message, MessageEvent) else MessageEvent.from_message(message)

        if len(event.content) == 0:
            return 0

        try:
            server = await self._resolve_server(event.guild_id)
            if server is None:
                log.debug("No server record for guild %s", event.guild_id)
                return 0
            if not server.is_active:
                log.debug("Server %s is disabled, skipping", event.guild_id)
                return 0

            rules, webhooks = await self._resolve_rules_and_webhooks(event.guild_id)
            return self._evaluate(event, rules, webhooks)
        except Exception as e:
            log.error(
                "Error processing message: %s", e,
                extra={"context": {"guild_id": event.guild_id, "error": str(e)}}
            )
            return 0

    def _cached(self, guild_id: str) -> Dict[str, Any]:
        entry = self.cache.get(guild_id)
        return entry if isinstance(entry, dict) else {}

    async def _resolve_server(self, guild_id: str) -> Optional[ServerRecord]:
        cached = self._cached(guild_id).get(SERVER_KEY)
        if cached is not None:
            return cached

        raw = await self.storage.get_server(guild_id)
        if raw is None:
            return None

        server = _as_server(raw)
        self.cache.update(guild_id, {SERVER_KEY: server}, self.cache_ttl)
        return server

    async def _resolve_patterns(self, guild_id: str) -> List[PatternRule]:
        cached = self._cached(guild_id).get(PATTERNS_KEY)
        if cached is not None:
            return cached

        rules = [_as_rule(raw) for raw in (await self.storage.get_regexes_by_server(guild_id) or [])]
        self.cache.update(guild_id, {PATTERNS_KEY: rules}, self.cache_ttl)
        return rules

    async def _resolve_webhooks(self, guild_id: str) -> List[WebhookTarget]:
        cached = self._cached(guild_id).get(WEBHOOKS_KEY)
        if cached is not None:
            return cached

        webhooks = [_as_webhook(raw) for raw in
                    (await self.storage.get_all_webhooks_by_server_id(guild_id) or [])]
        self.cache.update(guild_id, {WEBHOOKS_KEY: webhooks}, self.cache_ttl)
        return webhooks

    async def _resolve_rules_and_webhooks(self, guild_id: str):
        return await asyncio.gather(
            self._resolve_patterns(guild_id),
            self._resolve_webhooks(guild_id),
        )

    def _evaluate(self, event: MessageEvent, rules: List[PatternRule],
                  webhooks: List[WebhookTarget]) -> int:
        by_name = {}
        for webhook in webhooks:
            by_name.setdefault(webhook.name, webhook)

        enqueued = 0
        for rule in rules:
            try:
                pattern = compile_pattern(rule.regex_pattern)
            except PatternError as e:
                log.warning(
                    "Skipping invalid pattern: %s", e,
                    extra={"context": {"guild_id": event.guild_id, "pattern": rule.regex_pattern}}
                )
                continue

            if not pattern.test(event.content):
                continue

            if not rule.allows(event.author_id):
                continue

            webhook = by_name.get(rule.webhook_name)
            if webhook is None:
                log.warning(
                    "Webhook %s not found", rule.webhook_name,
                    extra={"context": {"guild_id": event.guild_id, "webhook": rule.webhook_name}}
                )
                continue

            body = build_webhook_body(event.content, webhook.data_template)
            task = self.queue.enqueue(webhook.url, DeliveryRequest.json_post(body))
            task.add_done_callback(
                lambda t, name=webhook.name, guild_id=event.guild_id:
                    self._on_delivery_done(t, name, guild_id)
            )
            enqueued += 1
            log.info(
                "Pattern matched, delivery queued",
                extra={"context": {"guild_id": event.guild_id, "webhook": webhook.name,
                                   "pattern": rule.regex_pattern}}
            )

        return enqueued

    @staticmethod
    def _on_delivery_done(task: asyncio.Task, webhook_name: str, guild_id: str) -> None:
        context = {"guild_id": guild_id, "webhook": webhook_name}
        if task.cancelled():
            log.warning("Webhook delivery cancelled", extra={"context": context})
            return

        error = task.exception()
        if error is not None:
            log.error(
                "Webhook delivery failed: %s", error,
                extra={"context": {**context, "error": str(error)}}
            )
            return

        log.info(
            "Webhook delivered",
            extra={"context": {**context, "status": task.result().status}}
        )

    def invalidate_guild(self, guild_id: str) -> None:
        """Drop a guild's cached lookups so the next message reads storage again."""
        self.cache.delete(str(guild_id))

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "cache_entries": self.cache.size,
            "active_deliveries": self.queue.active_count,
        }

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Shutdown the pipeline gracefully, letting queued deliveries finish."""
        await self.queue.close(timeout)
        log.debug("MessagePipeline shutdown complete")


# Global pipeline instance
_global_pipeline: Optional[MessagePipeline] = None


def get_pipeline() -> MessagePipeline:
    """
    Get the global message pipeline instance.

    Raises:
        RuntimeError: init_pipeline() has not been called
    """
    if _global_pipeline is None:
        raise RuntimeError("Message pipeline is not initialized")
    return _global_pipeline


async def init_pipeline(
    storage: StorageBackend,
    cache: Optional[TTLCache] = None,
    queue: Optional[DeliveryQueue] = None
) -> MessagePipeline:
    """
    Initialize the global message pipeline from config.yml settings.

    Args:
        storage: Storage backend to read from
        cache: Cache to use (defaults to one with the configured TTL)
        queue: Delivery queue to use (defaults to one with the configured retry policy)

    Returns:
        The initialized pipeline
    """
    global _global_pipeline
    import utils.func as func
    from delivery import AiohttpTransport

    if cache is None:
        cache = TTLCache(default_ttl=func.get_cache_ttl())

    if queue is None:
        settings = func.get_delivery_settings()
        queue = DeliveryQueue(
            transport=AiohttpTransport(timeout=settings["timeout"]),
            retries=settings["retries"],
            initial_delay=settings["initial_delay"],
        )

    _global_pipeline = MessagePipeline(storage, cache, queue)
    return _global_pipeline
