"""
Pattern Commands - Slash commands for managing the patterns of a server.

This module provides commands for:
- Adding and removing regex patterns
- Listing the patterns and webhooks of the server
- Checking that the bot is alive
"""

from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

import utils.func as func
from commands.shared.autocomplete import AutocompleteHelpers
from storage import AlreadyExistsError, NotFoundError, ValidationError
from storage.validation import parse_user_ids

# Discord rejects embed field values above this length
MAX_FIELD_LENGTH = 1024


class PatternCommands(commands.Cog):
    """Cog for pattern and webhook management."""

    def __init__(self, bot):
        self.bot = bot

    async def webhook_name_autocomplete(
        self,
        interaction: discord.Interaction,
        current: str
    ) -> List[app_commands.Choice[str]]:
        """Autocomplete for webhook names."""
        return await AutocompleteHelpers.webhook_name(interaction, current)

    async def pattern_autocomplete(
        self,
        interaction: discord.Interaction,
        current: str
    ) -> List[app_commands.Choice[str]]:
        """Autocomplete for stored patterns."""
        return await AutocompleteHelpers.pattern(interaction, current)

    def _build_embed(self, title: str, description: str) -> discord.Embed:
        """Embed with the configured colour and thumbnail."""
        settings = func.get_embed_settings()
        embed = discord.Embed(title=title, description=description, color=settings["color"])
        if settings.get("thumbnail"):
            embed.set_thumbnail(url=settings["thumbnail"])
        return embed

    def _invalidate(self, server_id: str) -> None:
        pipeline = getattr(self.bot, "pipeline", None)
        if pipeline is not None:
            pipeline.invalidate_guild(server_id)

    @staticmethod
    def _clip(text: str) -> str:
        if len(text) <= MAX_FIELD_LENGTH:
            return text
        return text[:MAX_FIELD_LENGTH - 4] + "\n..."

    @app_commands.command(name="add_pattern", description="Add a regex pattern that triggers a webhook")
    @app_commands.default_permissions(administrator=True)
    @app_commands.describe(
        pattern="The regex pattern to add, e.g. deploy failed or /error \\d+/i",
        webhook="The webhook to send notifications to",
        user_ids="Only trigger for these user IDs (comma separated, default: All)"
    )
    @app_commands.autocomplete(webhook=webhook_name_autocomplete)
    async def add_pattern(
        self,
        interaction: discord.Interaction,
        pattern: str,
        webhook: str,
        user_ids: Optional[str] = None
    ):
        """Store a new pattern for this server."""
        server_id = str(interaction.guild.id)

        try:
            rule = await self.bot.storage.add_regex(
                server_id, pattern, webhook, parse_user_ids(user_ids))
        except ValidationError as e:
            await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            return
        except AlreadyExistsError:
            await interaction.response.send_message(
                f"❌ The pattern `{pattern}` already exists in this server.", ephemeral=True)
            return
        except Exception as e:
            func.log.error(f"Error adding pattern in server {server_id}: {e}")
            await interaction.response.send_message(
                "An error occurred while adding the regex pattern.", ephemeral=True)
            return

        self._invalidate(server_id)
        func.log.info(f"Pattern '{pattern}' added to server {server_id} by {interaction.user.id}")

        embed = self._build_embed("Pattern", "The following pattern was added successfully")
        embed.add_field(name="Pattern", value=self._clip(rule.regex_pattern), inline=False)
        embed.add_field(name="Webhook", value=rule.webhook_name, inline=False)
        embed.add_field(name="Users", value=self._clip(", ".join(rule.user_ids)), inline=False)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="list_patterns", description="List the regex patterns of this server")
    @app_commands.default_permissions(administrator=True)
    async def list_patterns(self, interaction: discord.Interaction):
        """Show every pattern and the webhook it triggers."""
        server_id = str(interaction.guild.id)

        try:
            rules = await self.bot.storage.get_regexes_by_server(server_id)
        except Exception as e:
            func.log.error(f"Error listing patterns in server {server_id}: {e}")
            await interaction.response.send_message(
                "An error occurred while listing the patterns.", ephemeral=True)
            return

        if not rules:
            await interaction.response.send_message("No patterns found.")
            return

        lines = "\n".join(f"{rule.regex_pattern} : {rule.webhook_name}" for rule in rules)
        embed = self._build_embed("Patterns", f"Total: {len(rules)} pattern(s)")
        embed.add_field(name="Patterns", value=self._clip(lines), inline=False)
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="remove_pattern", description="Remove a regex pattern")
    @app_commands.default_permissions(administrator=True)
    @app_commands.describe(pattern="The regex pattern to remove")
    @app_commands.autocomplete(pattern=pattern_autocomplete)
    async def remove_pattern(self, interaction: discord.Interaction, pattern: str):
        """Delete a pattern from this server."""
        server_id = str(interaction.guild.id)

        try:
            await self.bot.storage.delete_regex(server_id, pattern)
        except NotFoundError:
            await interaction.response.send_message(
                f"❌ Pattern `{pattern}` not found in this server.", ephemeral=True)
            return
        except Exception as e:
            func.log.error(f"Error removing pattern in server {server_id}: {e}")
            await interaction.response.send_message(
                "An error occurred while removing the pattern.", ephemeral=True)
            return

        self._invalidate(server_id)
        func.log.info(f"Pattern '{pattern}' removed from server {server_id} by {interaction.user.id}")
        await interaction.response.send_message("Removed regex pattern successfully")

    @app_commands.command(name="list_webhooks", description="List the webhooks of this server")
    @app_commands.default_permissions(administrator=True)
    async def list_webhooks(self, interaction: discord.Interaction):
        """Show the webhooks patterns can point to."""
        server_id = str(interaction.guild.id)

        try:
            webhooks = await self.bot.storage.get_all_webhooks_by_server_id(server_id)
        except Exception as e:
            func.log.error(f"Error retrieving webhooks in server {server_id}: {e}")
            await interaction.response.send_message(
                "An error occurred while retrieving webhooks.", ephemeral=True)
            return

        if not webhooks:
            await interaction.response.send_message("No webhooks found.")
            return

        embed = self._build_embed("Webhooks", "The following webhooks are available")
        embed.add_field(
            name="Webhooks",
            value=self._clip("\n".join(webhook.name for webhook in webhooks)),
            inline=False
        )
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="ping", description="Pong!")
    async def ping(self, interaction: discord.Interaction):
        await interaction.response.send_message("Pong!")


async def setup(bot):
    await bot.add_cog(PatternCommands(bot))
