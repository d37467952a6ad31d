"""
Signaling relay core.

This module provides:
- Connection registry and network scope resolution
- PC directory, pairing state and room-code mode
- Discovery broadcasts, signal forwarding and liveness probing
- The aiohttp WebSocket server
"""

from .registry import Connection, ConnectionRegistry, Role
from .scope import LOCAL_SCOPE, NetworkScopeResolver
from .directory import PairingDirectory, Registration, Room
from .discovery import DiscoveryBroadcaster
from .signaling import SignalRelay
from .liveness import LivenessMonitor
from .hub import RelayHub

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Role",
    "LOCAL_SCOPE",
    "NetworkScopeResolver",
    "PairingDirectory",
    "Registration",
    "Room",
    "DiscoveryBroadcaster",
    "SignalRelay",
    "LivenessMonitor",
    "RelayHub",
]
