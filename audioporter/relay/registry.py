"""
Connection registry for the signaling relay.

Tracks every live WebSocket session under an opaque identifier with O(1)
lookups, and gives each connection a bounded outbound queue drained by its
own writer task so that sending to one peer never waits on another.
"""

import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


class Transport(Protocol):
    """The slice of ``aiohttp.web.WebSocketResponse`` the relay relies on."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def ping(self, message: bytes = b"") -> None: ...

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool: ...


class Role(str, Enum):
    """Role a connection takes on after its first role-defining message."""
    SOURCE = "source"  # registers an identity, receives pairing requests
    SINK = "sink"      # discovers sources and requests pairing


@dataclass
class RoomMembership:
    """A connection's seat in a room-code pairing."""
    code: str
    role: str


@dataclass(eq=False)
class Connection:
    """One live transport session."""
    transport: Transport
    scope: str
    remote: str = ""
    id: str = ""
    role: Optional[Role] = None
    identity: str = ""
    partner_id: Optional[str] = None
    room: Optional[RoomMembership] = None
    is_alive: bool = True
    missed_probes: int = 0
    connected_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)
    queue_size: int = 256

    def __post_init__(self) -> None:
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._writer: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return not self.transport.closed

    def touch(self) -> None:
        """Record inbound activity (pong, heartbeat or any message)."""
        self.is_alive = True
        self.missed_probes = 0
        self.last_seen = time.time()

    def start(self) -> None:
        """Start the writer task. Requires a running event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    async def stop(self) -> None:
        """Stop the writer task, discarding anything still queued."""
        if self._writer is None:
            return
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

    def send(self, message: dict) -> bool:
        """Queue a message for delivery. Never blocks."""
        if not self.is_open:
            return False
        try:
            self._outbox.put_nowait(json.dumps(message))
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for {self.id}, dropping {message.get('type')}")
            return False
        return True

    async def flush(self) -> None:
        """Wait until everything queued so far has been written."""
        if self._writer is None or self._writer.done():
            return
        await self._outbox.join()

    async def ping(self) -> None:
        await self.transport.ping()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.is_open:
            await self.transport.close(code=code, message=reason.encode())

    async def _write_loop(self) -> None:
        while True:
            data = await self._outbox.get()
            try:
                if self.is_open:
                    await self.transport.send_str(data)
            except Exception as e:
                # Peer went away mid-send; the receive loop handles cleanup.
                logger.debug(f"Send to {self.id} failed: {e}")
            finally:
                self._outbox.task_done()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope": self.scope,
            "role": self.role.value if self.role else None,
            "identity": self.identity,
            "partner_id": self.partner_id,
            "room": self.room.code if self.room else None,
            "connected_at": self.connected_at,
            "last_seen": self.last_seen,
        }


RemoveCallback = Callable[[Connection], None]


class ConnectionRegistry:
    """Identifier-keyed registry of live connections."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._by_scope: Dict[str, Set[str]] = {}
        self._on_remove: List[RemoveCallback] = []
        self._next_id = 1

    def _generate_id(self) -> str:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
        conn_id = f"node_{self._next_id}_{suffix}"
        self._next_id += 1
        return conn_id

    def on_remove(self, callback: RemoveCallback) -> None:
        """Register a cleanup callback, run in registration order on removal."""
        self._on_remove.append(callback)

    def register(self, connection: Connection) -> str:
        """Assign an identifier, start the writer and track the connection."""
        if not connection.id:
            connection.id = self._generate_id()
        if connection.id in self._connections:
            raise ValueError(f"Connection {connection.id} already registered")

        self._connections[connection.id] = connection
        self._by_scope.setdefault(connection.scope, set()).add(connection.id)
        connection.start()
        return connection.id

    def lookup(self, conn_id: Optional[str]) -> Optional[Connection]:
        if conn_id is None:
            return None
        return self._connections.get(conn_id)

    def remove(self, conn_id: str) -> Optional[Connection]:
        """Forget a connection and run the cleanup callbacks for it."""
        connection = self._connections.pop(conn_id, None)
        if connection is None:
            return None

        members = self._by_scope.get(connection.scope)
        if members is not None:
            members.discard(conn_id)
            if not members:
                del self._by_scope[connection.scope]

        for callback in self._on_remove:
            try:
                callback(connection)
            except Exception as e:
                logger.error(f"Cleanup callback failed for {conn_id}: {e}", exc_info=True)
        return connection

    def in_scope(self, scope: str) -> List[Connection]:
        return [self._connections[cid] for cid in self._by_scope.get(scope, ())]

    def scopes(self) -> List[str]:
        return list(self._by_scope)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __len__(self) -> int:
        return len(self._connections)

    def get_stats(self) -> Dict[str, int]:
        roles = [c.role for c in self._connections.values()]
        return {
            "connections": len(self._connections),
            "scopes": len(self._by_scope),
            "sources": roles.count(Role.SOURCE),
            "sinks": roles.count(Role.SINK),
        }
