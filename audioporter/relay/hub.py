"""
Relay hub.

Owns the registry and directory and is the only place that mutates them.
Each connection's frames are handled in arrival order by its own receive
loop; every handler runs under one process-wide lock so that "change the
directory" and "broadcast the result" can never interleave with another
connection's update. Handlers only queue outbound messages, so holding the
lock never waits on a peer.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Set

from ..config import RelayConfig
from ..errors import ProtocolError
from . import messages
from .directory import ROOM_ROLE_PC, PairingDirectory
from .discovery import DiscoveryBroadcaster
from .liveness import LivenessMonitor
from .messages import InboundMessage, MessageType, parse_message
from .registry import Connection, ConnectionRegistry, Transport
from .scope import NetworkScopeResolver
from .signaling import SignalRelay

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, InboundMessage], None]


class RelayHub:
    """
    The signaling relay.

    Usage:
        hub = RelayHub(RelayConfig())
        await hub.start()
        conn = await hub.connect(websocket, request.remote, forwarded_for)
        await hub.handle_text(conn, frame)
        await hub.disconnect(conn)
    """

    def __init__(self, config: Optional[RelayConfig] = None, server_info: Optional[dict] = None):
        self.config = config or RelayConfig()
        self.server_info = server_info
        self.close_timeout = 5.0

        self.registry = ConnectionRegistry()
        self.resolver = NetworkScopeResolver(self.config.trust_forwarded_for)
        self.directory = PairingDirectory(
            self.registry,
            default_identity=self.config.default_identity,
            room_code_pattern=self.config.room_code_pattern,
        )
        self.discovery = DiscoveryBroadcaster(self.registry, self.directory)
        self.signals = SignalRelay(self.registry, self.directory)
        self.liveness = LivenessMonitor(
            self.registry,
            self.terminate,
            interval=self.config.ping_interval,
            missed_probes_allowed=self.config.missed_probes_allowed,
            ping_timeout=self.config.ping_timeout,
        )

        # Directory first so the broadcaster sees the post-removal state
        self.registry.on_remove(self.directory.handle_disconnect)
        self.registry.on_remove(self.discovery.handle_disconnect)

        self._lock = asyncio.Lock()
        self._closing: Set[asyncio.Task] = set()
        self._handlers: Dict[str, Handler] = {
            MessageType.REGISTER_PC.value: self._on_register_pc,
            MessageType.REQUEST_DISCOVERY.value: self._on_request_discovery,
            MessageType.CONNECT_REQUEST.value: self._on_connect_request,
            MessageType.CONNECTION_ACCEPTED.value: self._on_connection_accepted,
            MessageType.CONNECTION_DECLINED.value: self._on_connection_declined,
            MessageType.UNPAIR.value: self._on_unpair,
            MessageType.SIGNAL.value: self._on_signal,
            MessageType.HEARTBEAT.value: self._on_heartbeat,
            MessageType.PING.value: self._on_ping,
            MessageType.JOIN.value: self._on_join,
            MessageType.LEAVE.value: self._on_leave,
        }

        self.started_at = time.time()
        self._counters: Dict[str, int] = {
            "total_connections": 0,
            "messages_in": 0,
            "malformed": 0,
            "handler_errors": 0,
        }

    # ============ Lifecycle ============

    async def start(self) -> None:
        self.liveness.start()
        logger.info("Relay hub started")

    async def stop(self) -> None:
        await self.liveness.stop()
        for conn in self.registry:
            await self.terminate(conn, code=1001, reason="Server shutting down")
        await self.wait_closed()
        logger.info("Relay hub stopped")

    async def connect(
        self,
        transport: Transport,
        remote: Optional[str],
        forwarded_for: Optional[str] = None,
    ) -> Connection:
        """Register a freshly opened transport and greet it with server_info."""
        conn = Connection(
            transport=transport,
            scope=self.resolver.resolve(remote, forwarded_for),
            remote=self.resolver.client_address(remote, forwarded_for),
            queue_size=self.config.send_queue_size,
        )
        async with self._lock:
            self.registry.register(conn)
        self._counters["total_connections"] += 1

        logger.info(f"New connection: {conn.id} from {conn.scope}")
        if self.server_info:
            conn.send(dict(self.server_info))
        return conn

    async def disconnect(self, conn: Connection) -> bool:
        """Remove a connection and run cleanup. Safe to call more than once."""
        async with self._lock:
            if self.registry.lookup(conn.id) is not conn:
                return False
            self.registry.remove(conn.id)
        await conn.stop()
        logger.info(f"Connection closed: {conn.id}")
        return True

    async def terminate(self, conn: Connection, code: int = 1000, reason: str = "Connection timeout") -> None:
        """
        Force a connection closed.

        Cleanup happens before returning; the close handshake runs in the
        background so a peer that never answers it holds up nobody.
        """
        await self.disconnect(conn)
        task = asyncio.create_task(self._close(conn, code, reason))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, conn: Connection, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(conn.close(code=code, reason=reason), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Close handshake with {conn.id} timed out")
        except Exception as e:
            logger.debug(f"Error closing {conn.id}: {e}")

    async def wait_closed(self) -> None:
        """Wait for every close handshake started by ``terminate``."""
        if self._closing:
            await asyncio.gather(*list(self._closing))

    # ============ Inbound ============

    async def handle_text(self, conn: Connection, raw: str) -> None:
        """Process one inbound text frame. Never raises."""
        conn.touch()
        self._counters["messages_in"] += 1

        try:
            message = parse_message(raw)
        except ProtocolError as e:
            self._counters["malformed"] += 1
            logger.debug(f"Dropping malformed message from {conn.id}: {e}")
            return

        handler = self._handlers.get(message.type)
        if handler is None:
            logger.debug(f"Ignoring unknown message type from {conn.id}: {message.type}")
            return

        try:
            async with self._lock:
                if self.registry.lookup(conn.id) is not conn:
                    return
                handler(conn, message)
        except Exception as e:
            self._counters["handler_errors"] += 1
            logger.error(f"Error handling {message.type} from {conn.id}: {e}", exc_info=True)

    def _on_register_pc(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.register_source(conn, getattr(message, "identity", None))
        self.discovery.notify(conn.scope)

    def _on_request_discovery(self, conn: Connection, message: InboundMessage) -> None:
        if self.directory.become_sink(conn):
            # Was a source: everyone in the scope, this connection included, needs the new list
            self.discovery.notify(conn.scope)
        else:
            self.discovery.send_snapshot(conn)

    def _on_connect_request(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.request_pairing(conn, message.target_id)

    def _on_connection_accepted(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.accept(conn, message.target_id)

    def _on_connection_declined(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.decline(conn, message.target_id)

    def _on_unpair(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.unlink(conn, notify_partner=True)

    def _on_signal(self, conn: Connection, message: InboundMessage) -> None:
        self.signals.relay(conn.id, message.target_id, message.data)

    def _on_heartbeat(self, conn: Connection, message: InboundMessage) -> None:
        conn.send(messages.heartbeat_ack())

    def _on_ping(self, conn: Connection, message: InboundMessage) -> None:
        conn.send(messages.pong())

    def _on_join(self, conn: Connection, message: InboundMessage) -> None:
        if message.room is None:
            if message.role == ROOM_ROLE_PC:
                self._on_register_pc(conn, message)
            else:
                conn.send(messages.error("Missing room code"))
            return

        was_source = self.directory.is_registered(conn.id, conn.scope)
        self.directory.join_room(conn, message.room, message.role or "")
        if was_source and not self.directory.is_registered(conn.id, conn.scope):
            self.discovery.notify(conn.scope)

    def _on_leave(self, conn: Connection, message: InboundMessage) -> None:
        self.directory.leave_room(conn)

    # ============ Status ============

    def get_stats(self) -> dict:
        return {
            "uptime_seconds": time.time() - self.started_at,
            **self._counters,
            **self.registry.get_stats(),
            **self.directory.get_stats(),
            "linked_connections": sum(1 for c in self.registry if c.partner_id is not None),
            "signals_relayed": self.signals.relayed,
            "signals_dropped": self.signals.dropped,
            "discovery_updates_sent": self.discovery.updates_sent,
            "connections_reaped": self.liveness.reaped,
        }
