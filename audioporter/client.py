"""
Client for the signaling relay.

Used by the ``discover`` CLI command and handy for scripting against a
running relay. Frames are JSON objects; see :mod:`audioporter.relay.messages`.
"""

import asyncio
import json
import logging
from typing import List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class RelayClient:
    """
    Client for connecting to a relay server.

    Usage:
        client = RelayClient("ws://localhost:3000")
        await client.connect()
        pcs = await client.discover()
        await client.disconnect()
    """

    def __init__(self, relay_url: str):
        """
        Initialize relay client.

        Args:
            relay_url: WebSocket URL of the relay (ws:// or wss://)
        """
        self.relay_url = relay_url.rstrip("/")
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.server_info: Optional[dict] = None
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def connected(self) -> bool:
        return self.ws is not None and not self.ws.closed

    async def connect(self, timeout: float = 10.0) -> bool:
        """
        Connect to the relay server.

        Args:
            timeout: Connection timeout in seconds

        Returns:
            True if connected, False otherwise
        """
        try:
            self._session = aiohttp.ClientSession()
            self.ws = await asyncio.wait_for(
                self._session.ws_connect(self.relay_url),
                timeout=timeout
            )
            logger.info(f"Connected to relay: {self.relay_url}")
            return True

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Failed to connect to relay: {e}")
            if self._session:
                await self._session.close()
                self._session = None
            return False

    async def disconnect(self) -> None:
        """Disconnect from relay server."""
        if self.ws and not self.ws.closed:
            await self.ws.close()

        if self._session:
            await self._session.close()
            self._session = None

    async def send(self, message: dict) -> bool:
        """
        Send one JSON message.

        Returns:
            True if sent, False if not connected
        """
        if not self.connected:
            return False

        try:
            await self.ws.send_str(json.dumps(message))
            return True
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.error(f"Failed to send to relay: {e}")
            return False

    async def receive(self, timeout: Optional[float] = None) -> Optional[dict]:
        """
        Receive the next JSON message.

        ``server_info`` greetings are recorded on the client as they arrive
        and also returned.

        Args:
            timeout: Receive timeout in seconds (None = block forever)

        Returns:
            Decoded message, or None on close/timeout
        """
        if not self.connected:
            return None

        try:
            if timeout:
                msg = await asyncio.wait_for(self.ws.receive(), timeout=timeout)
            else:
                msg = await self.ws.receive()
        except asyncio.TimeoutError:
            return None

        if msg.type == aiohttp.WSMsgType.TEXT:
            try:
                data = json.loads(msg.data)
            except json.JSONDecodeError:
                logger.warning("Relay sent a non-JSON frame")
                return None
            if isinstance(data, dict) and data.get("type") == "server_info":
                self.server_info = data
            return data

        if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
            logger.warning("Relay connection closed")
        return None

    async def receive_type(self, msg_type: str, timeout: float = 5.0) -> Optional[dict]:
        """Receive until a message of ``msg_type`` arrives, discarding others."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            message = await self.receive(timeout=remaining)
            if message is None:
                return None
            if message.get("type") == msg_type:
                return message

    # ============ Protocol helpers ============

    async def register_pc(self, identity: str) -> bool:
        """Announce this client as a PC."""
        return await self.send({"type": "register_pc", "identity": identity})

    async def discover(self, timeout: float = 5.0) -> List[dict]:
        """Ask for the PCs on our network and wait for the list."""
        if not await self.send({"type": "request_discovery"}):
            return []
        update = await self.receive_type("discovery_update", timeout=timeout)
        if update is None:
            return []
        return update.get("pcs", [])

    async def connect_to(self, target_id: str) -> bool:
        return await self.send({"type": "connect_request", "targetId": target_id})

    async def accept(self, target_id: str) -> bool:
        return await self.send({"type": "connection_accepted", "targetId": target_id})

    async def decline(self, target_id: str) -> bool:
        return await self.send({"type": "connection_declined", "targetId": target_id})

    async def signal(self, data, target_id: Optional[str] = None) -> bool:
        message = {"type": "signal", "data": data}
        if target_id is not None:
            message["targetId"] = target_id
        return await self.send(message)

    async def unpair(self) -> bool:
        return await self.send({"type": "unpair"})

    async def heartbeat(self) -> bool:
        return await self.send({"type": "heartbeat"})
