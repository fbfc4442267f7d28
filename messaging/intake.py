"""
Message Intake - Message Validation and Filtering

Handles initial validation and filtering of incoming Discord messages.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import discord

log = logging.getLogger(__name__)


@dataclass
class MessageEvent:
    """The parts of a guild message the pipeline works with."""
    content: str
    guild_id: str
    author_id: str
    author_is_bot: bool = False

    @classmethod
    def from_message(cls, message: Any) -> 'MessageEvent':
        """
        Build an event from a discord.Message or any object shaped like one.

        Accepts either ``guild_id`` or ``guild.id`` for the guild.
        """
        guild_id = getattr(message, "guild_id", None)
        if guild_id is None:
            guild = getattr(message, "guild", None)
            guild_id = getattr(guild, "id", None)

        author = getattr(message, "author", None)
        return cls(
            content=getattr(message, "content", None) or "",
            guild_id="" if guild_id is None else str(guild_id),
            author_id=str(getattr(author, "id", "")),
            author_is_bot=bool(getattr(author, "bot", False)),
        )


class MessageIntake:
    """
    Validates and filters incoming Discord messages.

    This is the entry point for all messages in the pipeline. Only guild
    messages written by humans get through.

    Example:
        intake = MessageIntake()
        event = intake.process(discord_message)
        if event:
            await pipeline.process_message(event)
    """

    def _is_bot_message(self, message: discord.Message) -> bool:
        """
        Check if message is from a bot or webhook.

        Args:
            message: Discord message

        Returns:
            True if message is from bot/webhook
        """
        return bool(message.author.bot) or message.webhook_id is not None

    def process(self, message: discord.Message) -> Optional[MessageEvent]:
        """
        Validate an incoming Discord message.

        Args:
            message: Discord message to process

        Returns:
            MessageEvent if valid, None if it should be ignored
        """
        if not message.guild:
            return None

        if self._is_bot_message(message):
            return None

        return MessageEvent.from_message(message)


# Global intake instance
_global_intake: Optional[MessageIntake] = None


def get_intake() -> MessageIntake:
    """Get the global message intake instance."""
    global _global_intake
    if _global_intake is None:
        _global_intake = MessageIntake()
    return _global_intake
