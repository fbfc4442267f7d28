import asyncio
import os
import platform
from typing import Optional

import discord
from colorama import init
from discord.ext import commands

import utils.func as func
from messaging import MessagePipeline, get_intake, init_pipeline
from storage import JsonStorage, ServerStatus, StorageBackend
from utils.health import HealthServer

# Initialize colorama for colored logs
init(autoreset=True)

# For Windows compatibility with asyncio
if platform.system() == "Windows":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Set up Discord intents
intents = discord.Intents.default()
intents.guilds = True
intents.guild_messages = True
intents.message_content = True
intents.members = True


class RelayBot(commands.Bot):
    """Bot that forwards pattern-matching guild messages to webhooks"""

    def __init__(self, storage: Optional[StorageBackend] = None):
        super().__init__(
            command_prefix="/",
            intents=intents,
            help_command=None
        )
        self.synced = False  # Sync control flag
        self.storage = storage
        self.pipeline: Optional[MessagePipeline] = None
        self.health_server: Optional[HealthServer] = None

    async def setup_hook(self):
        """Initial async setup"""
        if self.storage is None:
            storage_file = func.get_storage_file()
            os.makedirs(os.path.dirname(storage_file) or ".", exist_ok=True)
            self.storage = JsonStorage(storage_file)

        func.log.debug("Initializing message pipeline")
        self.pipeline = await init_pipeline(self.storage)

        await self.load_extension('commands.pattern_commands')

        health = func.get_health_settings()
        if health["enabled"]:
            self.health_server = HealthServer(self, self.storage, health["host"], health["port"])
            await self.health_server.start()

    async def close(self):
        """Cleanup when bot is shutting down"""
        if self.pipeline is not None:
            await self.pipeline.shutdown(timeout=func.get_delivery_settings()["timeout"])
            func.log.debug("Message pipeline shutdown complete")

        if self.health_server is not None:
            await self.health_server.stop()

        await super().close()

    async def on_ready(self):
        """Bot ready event handler"""
        if not self.synced:
            await self.tree.sync()  # Sync slash commands
            self.synced = True
            func.log.info("Logged in as %s!", self.user)

    async def on_message(self, message: discord.Message):
        """Hand human guild messages to the pipeline"""
        if self.user is not None and message.author.id == self.user.id:
            return

        event = get_intake().process(message)
        if event is None or self.pipeline is None:
            return

        await self.pipeline.process_message(event)

    async def on_guild_join(self, guild: discord.Guild):
        """Register a newly joined guild as an active server"""
        server_id = str(guild.id)
        try:
            if await self.storage.get_server(server_id) is not None:
                func.log.info("Rejoined known server %s", server_id)
                return

            await self.storage.create_server(
                server_id,
                guild.name,
                status=ServerStatus.ACTIVE,
                total_users=guild.member_count or 0,
            )
            func.log.info("Registered new server %s (%s)", guild.name, server_id)
        except Exception as e:
            func.log.error("Failed to register server %s: %s", server_id, e)

    async def on_guild_remove(self, guild: discord.Guild):
        """Forget cached lookups for a guild the bot left"""
        if self.pipeline is not None:
            self.pipeline.invalidate_guild(str(guild.id))
        func.log.info("Removed from server %s", guild.id)

    async def on_command_error(self, ctx, error):
        """Handle command errors"""
        # Silently ignore CommandNotFound errors
        if isinstance(error, commands.CommandNotFound):
            return

        func.log.error("Command error in %s: %s", ctx.command, error)


# Start the bot
if __name__ == "__main__":
    token = func.get_discord_token()
    if not token:
        func.log.critical("No Discord token configured. Set DISCORD_TOKEN or Discord.token in config.yml")
        raise SystemExit(1)

    bot = RelayBot()
    try:
        bot.run(token, log_handler=None)
    except discord.LoginFailure:
        func.log.critical("Invalid authentication token!")
    except Exception as e:
        func.log.critical("Fatal runtime error: %s", e)
