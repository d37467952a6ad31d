"""
Host networking helpers.

This module provides:
- Local address detection for the server_info greeting
- Self-ping keep-alive for hosted deployments
"""

from .host_info import HostInfo, get_best_local_ip, get_local_ips
from .keepalive import SelfPinger

__all__ = [
    "HostInfo",
    "get_best_local_ip",
    "get_local_ips",
    "SelfPinger",
]
