"""
Network scope resolution.

Groups connections into coarse discovery scopes. Every private, loopback
or link-local address collapses into one shared scope so that devices on
the same LAN find each other no matter which subnet each reports; any
other address is a scope of its own.

This is a heuristic, not a security boundary: when forwarding headers are
trusted, a client can claim any address and land in any scope.
"""

import ipaddress
import logging
from typing import Optional

logger = logging.getLogger(__name__)

LOCAL_SCOPE = "local-network"

_PRIVATE_V4 = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
]

_PRIVATE_V6 = [
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("fc00::/7"),
]


def normalize_address(address: str) -> str:
    """
    Canonicalize a remote address string.

    ``::1`` becomes ``127.0.0.1`` and IPv4-mapped IPv6 addresses become
    plain IPv4. Unparseable input is returned stripped but otherwise as-is.
    """
    address = address.strip()
    # Bracketed IPv6 or an IPv6 zone id ("fe80::1%eth0")
    if address.startswith("[") and address.endswith("]"):
        address = address[1:-1]
    address = address.split("%", 1)[0]

    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return address

    if ip.version == 6:
        if ip == ipaddress.IPv6Address("::1"):
            return "127.0.0.1"
        if ip.ipv4_mapped is not None:
            return str(ip.ipv4_mapped)
    return str(ip)


def is_private_address(address: str) -> bool:
    """Check if a (normalized) address belongs to the shared local scope."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False

    networks = _PRIVATE_V4 if ip.version == 4 else _PRIVATE_V6
    return any(ip in network for network in networks)


class NetworkScopeResolver:
    """Derives a discovery scope from connection metadata."""

    def __init__(self, trust_forwarded_for: bool = True):
        self.trust_forwarded_for = trust_forwarded_for

    def client_address(self, remote: Optional[str], forwarded_for: Optional[str] = None) -> str:
        """Pick the client's address, preferring the first forwarded hop."""
        if self.trust_forwarded_for and forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return normalize_address(first)
        return normalize_address(remote or "")

    def resolve(self, remote: Optional[str], forwarded_for: Optional[str] = None) -> str:
        """Return the scope key for a connection."""
        address = self.client_address(remote, forwarded_for)
        if is_private_address(address):
            return LOCAL_SCOPE
        if not address:
            logger.debug("Connection without a remote address, using unknown scope")
            return "unknown"
        return address
