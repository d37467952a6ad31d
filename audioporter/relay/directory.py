"""
Pairing directory.

Per scope, tracks the discoverable sources (registrations), the pending
sink -> source pairing requests, the linked pairs allowed to exchange
signals, and the two-seat rooms used by room-code pairing.

Discovery pairing, per (scope, source):

    Unregistered --register_pc--> Registered
    Registered --connect_request(sink)--> RequestPending
    RequestPending --connection_accepted(sink)--> Linked
    RequestPending --connection_declined(sink)--> Registered
    Linked --either side disconnects / unpairs--> partner notified

A connection has at most one pending request and at most one linked
partner. A newer request to the same source replaces the older one, and
pending requests never expire on their own.

All methods are synchronous and must be called with the hub's lock held.
Notifications are queued on the affected connections and never block.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from . import messages
from .registry import Connection, ConnectionRegistry, Role, RoomMembership

logger = logging.getLogger(__name__)

ROOM_ROLE_PC = "pc"
ROOM_ROLE_PHONE = "phone"
ROOM_ROLES = (ROOM_ROLE_PC, ROOM_ROLE_PHONE)

RoomKey = Tuple[str, str]  # (scope, room code)


@dataclass
class Registration:
    """A discoverable source within a scope."""
    conn_id: str
    identity: str
    registered_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"id": self.conn_id, "identity": self.identity}


@dataclass
class Room:
    """A room-code pairing with one seat per fixed role."""
    scope: str
    code: str
    seats: Dict[str, str] = field(default_factory=dict)  # room role -> conn id
    created_at: float = field(default_factory=time.time)

    @property
    def is_complete(self) -> bool:
        return all(role in self.seats for role in ROOM_ROLES)

    @property
    def is_empty(self) -> bool:
        return not self.seats

    def other(self, role: str) -> Optional[str]:
        for seat_role, conn_id in self.seats.items():
            if seat_role != role:
                return conn_id
        return None


class PairingDirectory:
    """Registrations, pending requests, links and rooms for every scope."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        default_identity: str = "Unknown PC",
        room_code_pattern: str = r"^[0-9]{4,8}$",
    ):
        self.registry = registry
        self.default_identity = default_identity
        self._room_code_re = re.compile(room_code_pattern)

        self._sources: Dict[str, Dict[str, Registration]] = {}  # scope -> conn id -> registration
        self._pending: Dict[str, str] = {}    # source id -> requesting sink id
        self._requested: Dict[str, str] = {}  # sink id -> source id it asked for
        self._rooms: Dict[RoomKey, Room] = {}

    # ============ Discovery Registrations ============

    def register_source(self, conn: Connection, identity: Optional[str]) -> Registration:
        """
        Make ``conn`` a discoverable source, replacing any earlier registration.

        A room ``phone`` gives up its seat.
        """
        if conn.room is not None and conn.room.role != ROOM_ROLE_PC:
            self.leave_room(conn)
        if conn.role is Role.SINK:
            self._clear_request(conn.id)
        conn.role = Role.SOURCE
        conn.identity = (identity or "").strip() or self.default_identity

        registration = Registration(conn_id=conn.id, identity=conn.identity)
        self._sources.setdefault(conn.scope, {})[conn.id] = registration
        logger.info(f"Source registered: {conn.id} ({conn.identity}) on {conn.scope}")
        return registration

    def unregister_source(self, conn: Connection) -> bool:
        """Withdraw a source. Returns True if the scope's discoverable set changed."""
        scope_sources = self._sources.get(conn.scope)
        if not scope_sources or conn.id not in scope_sources:
            return False

        del scope_sources[conn.id]
        if not scope_sources:
            del self._sources[conn.scope]

        sink_id = self._pending.pop(conn.id, None)
        if sink_id is not None:
            self._requested.pop(sink_id, None)
        return True

    def become_sink(self, conn: Connection) -> bool:
        """
        Mark ``conn`` as a sink.

        Returns True if it was a registered source, in which case its
        registration is withdrawn and the scope's discovery must be refreshed.
        A room ``pc`` gives up its seat.
        """
        if conn.room is not None and conn.room.role != ROOM_ROLE_PHONE:
            self.leave_room(conn)
        was_source = False
        if conn.role is Role.SOURCE:
            was_source = self.unregister_source(conn)
        conn.role = Role.SINK
        return was_source

    def sources(self, scope: str) -> List[Registration]:
        return list(self._sources.get(scope, {}).values())

    def is_registered(self, conn_id: str, scope: str) -> bool:
        return conn_id in self._sources.get(scope, {})

    # ============ Request / Accept ============

    def request_pairing(self, sink: Connection, source_id: str) -> bool:
        """Record a sink's request and forward it to the source."""
        if sink.id == source_id:
            return False
        if sink.role is Role.SOURCE:
            logger.debug(f"Ignoring connect_request from source {sink.id}")
            return False
        if not self.is_registered(source_id, sink.scope):
            logger.debug(f"connect_request from {sink.id} to unknown source {source_id}")
            return False
        source = self.registry.lookup(source_id)
        if source is None or not source.is_open:
            return False

        sink.role = Role.SINK
        self._clear_request(sink.id)

        replaced = self._pending.get(source_id)
        if replaced is not None and replaced != sink.id:
            self._requested.pop(replaced, None)
            logger.debug(f"Request from {sink.id} replaces pending request from {replaced}")

        self._pending[source_id] = sink.id
        self._requested[sink.id] = source_id
        source.send(messages.connection_request(sink.id))
        logger.info(f"Pairing requested: {sink.id} -> {source_id}")
        return True

    def accept(self, source: Connection, sink_id: str) -> bool:
        """Link a source with the sink whose request is pending on it."""
        if self._pending.get(source.id) != sink_id:
            logger.debug(f"{source.id} accepted {sink_id} without a pending request")
            return False
        sink = self.registry.lookup(sink_id)
        if sink is None or not sink.is_open or sink.scope != source.scope:
            self._clear_request(sink_id)
            return False

        self._clear_request(sink_id)
        self._link(source, sink)
        logger.info(f"Pairing accepted: {source.id} <-> {sink_id}")
        return True

    def decline(self, source: Connection, sink_id: str) -> bool:
        """Clear a pending request and tell the sink it was declined."""
        if self._pending.get(source.id) != sink_id:
            return False
        self._clear_request(sink_id)
        sink = self.registry.lookup(sink_id)
        if sink is not None:
            sink.send(messages.connection_declined(source.id))
        logger.info(f"Pairing declined: {source.id} x {sink_id}")
        return True

    def pending_request(self, source_id: str) -> Optional[str]:
        return self._pending.get(source_id)

    def _clear_request(self, sink_id: str) -> None:
        source_id = self._requested.pop(sink_id, None)
        if source_id is not None and self._pending.get(source_id) == sink_id:
            del self._pending[source_id]

    # ============ Links ============

    def partner_of(self, conn_id: str) -> Optional[str]:
        conn = self.registry.lookup(conn_id)
        return conn.partner_id if conn else None

    def are_linked(self, a: Connection, b: Connection) -> bool:
        return a.partner_id == b.id and b.partner_id == a.id and a.scope == b.scope

    def _link(self, a: Connection, b: Connection) -> None:
        for conn in (a, b):
            if conn.partner_id is not None and conn.partner_id not in (a.id, b.id):
                self.unlink(conn, notify_partner=True)
        a.partner_id = b.id
        b.partner_id = a.id

    def unlink(self, conn: Connection, notify_partner: bool = True) -> Optional[str]:
        """Break ``conn``'s link. The surviving partner gets one partner_disconnected."""
        partner_id = conn.partner_id
        if partner_id is None:
            return None
        conn.partner_id = None

        partner = self.registry.lookup(partner_id)
        if partner is not None and partner.partner_id == conn.id:
            partner.partner_id = None
            if notify_partner:
                partner.send(messages.partner_disconnected())
        logger.info(f"Unlinked {conn.id} from {partner_id}")
        return partner_id

    # ============ Room-Code Mode ============

    def join_room(self, conn: Connection, code: str, role: str) -> bool:
        """
        Seat ``conn`` in room ``code`` as ``role``.

        A connection already holding that seat is displaced. When both
        seats are filled the occupants are linked and each gets ``ready``.
        """
        if role not in ROOM_ROLES:
            conn.send(messages.error(f"Invalid role: {role}"))
            return False
        if not code or not self._room_code_re.match(code):
            conn.send(messages.error("Invalid room code"))
            return False

        if conn.room is not None:
            if conn.room.code == code and conn.room.role == role:
                return True
            self.leave_room(conn)

        key = (conn.scope, code)
        room = self._rooms.get(key)
        if room is None:
            room = Room(scope=conn.scope, code=code)
            self._rooms[key] = room
            logger.info(f"Created room {code} on {conn.scope}")

        occupant_id = room.seats.get(role)
        if occupant_id is not None and occupant_id != conn.id:
            occupant = self.registry.lookup(occupant_id)
            if occupant is not None:
                self.leave_room(occupant)
                occupant.send(messages.error("Replaced by another device in this room"))
            else:
                room.seats.pop(role, None)
            # leave_room may have dropped an emptied room
            room = self._rooms.setdefault(key, room)

        room.seats[role] = conn.id
        conn.room = RoomMembership(code=code, role=role)

        new_role = Role.SOURCE if role == ROOM_ROLE_PC else Role.SINK
        if conn.role is Role.SOURCE and new_role is Role.SINK:
            self.unregister_source(conn)
        elif conn.role is Role.SINK and new_role is Role.SOURCE:
            self._clear_request(conn.id)
        conn.role = new_role
        logger.info(f"{conn.id} joined room {code} as {role}")

        if room.is_complete:
            other = self.registry.lookup(room.other(role))
            if other is not None:
                self._link(conn, other)
                conn.send(messages.ready())
                other.send(messages.ready())
                logger.info(f"Room {code} ready: {conn.id} <-> {other.id}")
        return True

    def leave_room(self, conn: Connection) -> bool:
        """Give up ``conn``'s seat; its room partner is unlinked and notified."""
        membership = conn.room
        if membership is None:
            return False
        conn.room = None

        key = (conn.scope, membership.code)
        room = self._rooms.get(key)
        if room is None:
            return False
        if room.seats.get(membership.role) == conn.id:
            del room.seats[membership.role]

        partner_id = room.other(membership.role)
        if partner_id is not None and conn.partner_id == partner_id:
            self.unlink(conn, notify_partner=True)

        if room.is_empty:
            del self._rooms[key]
            logger.info(f"Removed empty room {membership.code} on {conn.scope}")
        return True

    def room(self, scope: str, code: str) -> Optional[Room]:
        return self._rooms.get((scope, code))

    # ============ Disconnect ============

    def handle_disconnect(self, conn: Connection) -> None:
        """Registry removal callback: drop every trace of ``conn``."""
        self.unregister_source(conn)
        self._clear_request(conn.id)
        self.leave_room(conn)
        self.unlink(conn, notify_partner=True)

    def get_stats(self) -> Dict[str, int]:
        return {
            "registered_sources": sum(len(s) for s in self._sources.values()),
            "pending_requests": len(self._pending),
            "rooms": len(self._rooms),
            "complete_rooms": sum(1 for r in self._rooms.values() if r.is_complete),
        }
