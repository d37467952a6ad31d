"""
Audioporter - Signaling relay for phone-to-PC audio streaming

Phones discover the PCs on their local network, ask one to pair, and then
exchange the opaque WebRTC negotiation messages needed to stream audio
directly. The relay only brokers discovery and signaling.

Example:
    >>> from audioporter import RelayServer, get_config
    >>> server = RelayServer(get_config())
    >>> await server.start()
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .relay.hub import RelayHub
from .relay.server import RelayServer, run_server

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "RelayHub",
    "RelayServer",
    "run_server",
]
