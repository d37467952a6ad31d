"""
Signal relay.

Forwards opaque negotiation payloads (session descriptions, candidates)
between linked connections. Fire-and-forget: anything that cannot be
delivered is dropped without telling the sender, since the negotiation
protocol on top tolerates lost messages.
"""

import logging
from typing import Any, Optional

from . import messages
from .directory import PairingDirectory
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SignalRelay:
    """Routes signal payloads to a linked counterpart by identifier."""

    def __init__(self, registry: ConnectionRegistry, directory: PairingDirectory):
        self.registry = registry
        self.directory = directory
        self.relayed = 0
        self.dropped = 0

    def relay(self, from_id: str, to_id: Optional[str], payload: Any) -> bool:
        """
        Deliver ``payload`` to ``to_id`` annotated with ``from_id``.

        Without ``to_id`` the payload goes to the sender's linked partner.
        Returns False (and drops the payload) when the target is unknown,
        closed, in another scope or not linked with the sender.
        """
        sender = self.registry.lookup(from_id)
        if sender is None:
            return self._drop(from_id, to_id, "sender not registered")

        if to_id is None:
            to_id = sender.partner_id
            if to_id is None:
                return self._drop(from_id, to_id, "no linked partner")

        target = self.registry.lookup(to_id)
        if target is None or not target.is_open:
            return self._drop(from_id, to_id, "target not connected")
        if target.scope != sender.scope:
            return self._drop(from_id, to_id, "target in another scope")
        if not self.directory.are_linked(sender, target):
            return self._drop(from_id, to_id, "not linked")

        if not target.send(messages.signal(payload, from_id)):
            return self._drop(from_id, to_id, "target outbox unavailable")

        self.relayed += 1
        return True

    def _drop(self, from_id: str, to_id: Optional[str], reason: str) -> bool:
        self.dropped += 1
        logger.debug(f"Dropped signal {from_id} -> {to_id}: {reason}")
        return False
