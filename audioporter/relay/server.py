"""
HTTP/WebSocket front end for the relay hub.

Clients open a WebSocket at ``/`` (or ``/ws``) and speak the JSON protocol
in :mod:`audioporter.relay.messages`. Plain HTTP requests get a short
service description, a health check and relay statistics.
"""

import logging
import time
from typing import Optional

import aiohttp
from aiohttp import web

from .. import __version__
from ..config import Config, get_config
from ..network.host_info import HostInfo
from ..network.keepalive import SelfPinger
from .hub import RelayHub

logger = logging.getLogger(__name__)


class RelayServer:
    """
    Signaling relay server.

    Usage:
        server = RelayServer(config)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, config: Optional[Config] = None, server_info: Optional[dict] = None):
        self.config = config or get_config()
        self.host = self.config.server.host
        self.port = self.config.server.port

        if server_info is None:
            server_info = HostInfo.detect(self.port).to_message()
        self.hub = RelayHub(self.config.relay, server_info=server_info)

        self.pinger: Optional[SelfPinger] = None
        if self.config.server.external_url:
            self.pinger = SelfPinger(
                self.config.server.external_url,
                interval=self.config.server.keepalive_interval,
            )

        self.app = web.Application()
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/ws", self.handle_websocket)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/stats", self.handle_stats)
        self.app.on_startup.append(self._on_startup)
        self.app.on_shutdown.append(self._on_shutdown)
        self.runner: Optional[web.AppRunner] = None

    async def _on_startup(self, app: web.Application) -> None:
        await self.hub.start()
        if self.pinger:
            await self.pinger.start()

    async def _on_shutdown(self, app: web.Application) -> None:
        if self.pinger:
            await self.pinger.stop()
        await self.hub.stop()

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()

        logger.info(f"Relay server started on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the server, closing every client connection."""
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        logger.info("Relay server stopped")

    # ============ HTTP ============

    async def handle_root(self, request: web.Request) -> web.StreamResponse:
        """WebSocket upgrade, or a service description for plain HTTP."""
        if web.WebSocketResponse().can_prepare(request):
            return await self.handle_websocket(request)
        return web.json_response({
            "service": "audioporter-relay",
            "version": __version__,
            "websocket": "/",
            "connections": len(self.hub.registry),
        })

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "ok",
            "connections": len(self.hub.registry),
            "timestamp": time.time(),
        })

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Stats endpoint."""
        return web.json_response(self.hub.get_stats())

    # ============ WebSocket ============

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Run one client connection until it closes."""
        # Pings are answered here so that liveness sees every pong.
        ws = web.WebSocketResponse(
            autoping=False,
            max_msg_size=self.config.relay.max_message_bytes,
        )
        await ws.prepare(request)

        conn = await self.hub.connect(
            ws,
            remote=request.remote,
            forwarded_for=request.headers.get("X-Forwarded-For"),
        )

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self.hub.handle_text(conn, msg.data)

                elif msg.type == aiohttp.WSMsgType.PING:
                    conn.touch()
                    await ws.pong(msg.data)

                elif msg.type == aiohttp.WSMsgType.PONG:
                    conn.touch()

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    logger.debug(f"Ignoring binary frame from {conn.id}")

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"WebSocket error on {conn.id}: {ws.exception()}")

        finally:
            await self.hub.disconnect(conn)

        return ws


def run_server(config: Optional[Config] = None) -> None:
    """Run the relay server until interrupted."""
    config = config or get_config()
    server = RelayServer(config)
    logger.info(f"Starting relay on {config.server.host}:{config.server.port}")
    web.run_app(
        server.app,
        host=config.server.host,
        port=config.server.port,
        print=None,
    )
