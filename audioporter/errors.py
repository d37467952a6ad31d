"""
Exceptions raised by the relay components.
"""


class RelayError(Exception):
    """Base exception for relay errors."""
    pass


class ProtocolError(RelayError):
    """Inbound message could not be parsed or validated."""
    pass


class ConfigError(RelayError):
    """Configuration value is missing or invalid."""
    pass
