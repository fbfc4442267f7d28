"""
Health Check Server

HTTP endpoint for container orchestration and uptime monitors.

GET /health:
    200 {"status": "healthy", "discord": "connected", "storage": "connected"}
    503 when Discord is not ready or storage cannot be read
Anything else:
    404 {"error": "Not found"}
"""

import logging
from typing import Any, Optional

from aiohttp import web

log = logging.getLogger(__name__)


@web.middleware
async def not_found_middleware(request: web.Request, handler):
    """Answer unknown routes and methods with a JSON 404."""
    try:
        return await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        return web.json_response({"error": "Not found"}, status=404)


class HealthServer:
    """
    Small aiohttp server reporting Discord and storage health.

    Example:
        health = HealthServer(bot, storage, port=8080)
        await health.start()
        ...
        await health.stop()
    """

    def __init__(self, bot: Any, storage: Any, host: str = "0.0.0.0", port: int = 8080):
        """
        Initialize the health server.

        Args:
            bot: Object with an is_ready() method (the Discord client)
            storage: Storage backend, probed with get_all_servers()
            host: Interface to bind
            port: Port to listen on
        """
        self.bot = bot
        self.storage = storage
        self.host = host
        self.port = port
        self.app = self.build_app()
        self.runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[not_found_middleware])
        app.router.add_get("/health", self.health_handler, allow_head=False)
        return app

    async def _storage_connected(self) -> bool:
        try:
            await self.storage.get_all_servers()
            return True
        except Exception as e:
            log.error("Storage health check failed: %s", e, extra={"context": {"error": str(e)}})
            return False

    async def health_handler(self, request: web.Request) -> web.Response:
        try:
            discord_connected = bool(self.bot.is_ready())
            storage_connected = await self._storage_connected()

            if discord_connected and storage_connected:
                return web.json_response({
                    "status": "healthy",
                    "discord": "connected",
                    "storage": "connected",
                })

            return web.json_response({
                "status": "unhealthy",
                "discord": "connected" if discord_connected else "disconnected",
                "storage": "connected" if storage_connected else "disconnected",
            }, status=503)
        except Exception as e:
            log.error("Health check error: %s", e, extra={"context": {"error": str(e)}})
            return web.json_response({"status": "unhealthy", "error": str(e)}, status=503)

    async def start(self) -> None:
        """Start listening; failures are logged, not raised."""
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()
            log.info("Health check server listening on port %d", self.port,
                     extra={"context": {"host": self.host, "port": self.port}})
        except Exception as e:
            log.error("Health check server failed to start: %s", e,
                      extra={"context": {"port": self.port, "error": str(e)}})

    async def stop(self) -> None:
        """Stop the server. Safe to call when it never started."""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            log.info("Health check server stopped")
