"""
Host address detection for the ``server_info`` greeting.

Clients on the LAN use the advertised address and hostname to reach the
relay directly next time, so the best candidate is the outbound-route
IPv4 address of a private interface.
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import List, Optional

from ..relay import messages
from ..relay.scope import is_private_address

logger = logging.getLogger(__name__)


@dataclass
class NetworkInterface:
    """An address this host answers on."""
    ip: str
    source: str
    is_private: bool
    priority: int  # Lower is better (1=outbound route, 2=hostname lookup)


def get_local_ips() -> List[NetworkInterface]:
    """
    Get local IPv4 addresses, best first.
    Loopback addresses are never returned.
    """
    interfaces: List[NetworkInterface] = []

    # Method 1: Connect a UDP socket towards a public address to find the route IP
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.settimeout(0.1)
            # Nothing is sent; connect() only selects the outbound interface
            s.connect(("8.8.8.8", 80))
            route_ip = s.getsockname()[0]
        finally:
            s.close()
        if not route_ip.startswith("127."):
            interfaces.append(NetworkInterface(
                ip=route_ip,
                source="route",
                is_private=is_private_address(route_ip),
                priority=1,
            ))
    except OSError as e:
        logger.debug(f"Route IP detection failed: {e}")

    # Method 2: Addresses registered for our hostname
    try:
        for ip in socket.gethostbyname_ex(socket.gethostname())[2]:
            if ip.startswith("127.") or any(i.ip == ip for i in interfaces):
                continue
            interfaces.append(NetworkInterface(
                ip=ip,
                source="hostname",
                is_private=is_private_address(ip),
                priority=2,
            ))
    except OSError as e:
        logger.debug(f"Hostname lookup failed: {e}")

    interfaces.sort(key=lambda i: (not i.is_private, i.priority))
    return interfaces


def get_best_local_ip() -> Optional[str]:
    """Get the best local IP to advertise, or None if only loopback exists."""
    interfaces = get_local_ips()
    if interfaces:
        return interfaces[0].ip
    return None


@dataclass
class HostInfo:
    """Address hints sent to every client in ``server_info``."""
    port: int
    ip: str = "localhost"
    hostname: str = field(default_factory=socket.gethostname)

    @classmethod
    def detect(cls, port: int) -> "HostInfo":
        ip = get_best_local_ip() or "localhost"
        info = cls(port=port, ip=ip)
        logger.debug(f"Advertising {info.ip} ({info.hostname}) port {port}")
        return info

    def to_message(self) -> dict:
        return messages.server_info(self.ip, self.hostname, self.port)
