"""
Discovery broadcaster.

Pushes the full list of discoverable sources in a scope to every sink in
that scope. There is no diffing: each update carries the complete current
set, so calling ``notify`` redundantly is harmless.
"""

import logging
from typing import List

from . import messages
from .directory import PairingDirectory
from .registry import Connection, ConnectionRegistry, Role

logger = logging.getLogger(__name__)


class DiscoveryBroadcaster:
    """Keeps every sink's view of its scope's sources current."""

    def __init__(self, registry: ConnectionRegistry, directory: PairingDirectory):
        self.registry = registry
        self.directory = directory
        self.updates_sent = 0

    def snapshot(self, scope: str) -> List[dict]:
        """Current ``[{id, identity}]`` list of sources in ``scope``."""
        return [
            registration.to_dict()
            for registration in self.directory.sources(scope)
            if registration.conn_id in self.registry
        ]

    def send_snapshot(self, conn: Connection) -> None:
        conn.send(messages.discovery_update(self.snapshot(conn.scope)))
        self.updates_sent += 1

    def notify(self, scope: str) -> int:
        """Send the scope's list to all of its sinks. Returns how many were sent."""
        update = messages.discovery_update(self.snapshot(scope))
        sent = 0
        for conn in self.registry.in_scope(scope):
            if conn.role is Role.SINK and conn.send(update):
                sent += 1

        self.updates_sent += sent
        logger.debug(f"Discovery update for {scope}: {len(update['pcs'])} sources, {sent} sinks")
        return sent

    def handle_disconnect(self, conn: Connection) -> None:
        """Registry removal callback: a departing source changes its scope's list."""
        if conn.role is Role.SOURCE:
            self.notify(conn.scope)
