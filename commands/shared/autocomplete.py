"""
Shared autocomplete functions for Discord commands.

Storage is reached through ``interaction.client.storage`` (set up by the bot).
"""
from typing import List

import discord
from discord import app_commands

import utils.func as func

MAX_CHOICES = 25


class AutocompleteHelpers:
    """Shared autocomplete functions for all command cogs."""

    @staticmethod
    async def webhook_name(
        interaction: discord.Interaction,
        current: str
    ) -> List[app_commands.Choice[str]]:
        """
        Autocomplete for the webhooks registered to the current server.
        """
        try:
            server_id = str(interaction.guild.id)
            webhooks = await interaction.client.storage.get_all_webhooks_by_server_id(server_id)

            choices = []
            for webhook in webhooks:
                if current.lower() in webhook.name.lower():
                    choices.append(app_commands.Choice(name=webhook.name[:100], value=webhook.name))

            return choices[:MAX_CHOICES]
        except Exception as e:
            func.log.error(f"Error in webhook_name autocomplete: {e}")
            return []

    @staticmethod
    async def pattern(
        interaction: discord.Interaction,
        current: str
    ) -> List[app_commands.Choice[str]]:
        """
        Autocomplete for the patterns stored for the current server.
        """
        try:
            server_id = str(interaction.guild.id)
            rules = await interaction.client.storage.get_regexes_by_server(server_id)

            choices = []
            for rule in rules:
                # Choice values are capped at 100 characters by Discord
                if len(rule.regex_pattern) > 100:
                    continue
                if current.lower() in rule.regex_pattern.lower():
                    display_name = f"{rule.regex_pattern} → {rule.webhook_name}"
                    choices.append(app_commands.Choice(name=display_name[:100], value=rule.regex_pattern))

            return choices[:MAX_CHOICES]
        except Exception as e:
            func.log.error(f"Error in pattern autocomplete: {e}")
            return []
