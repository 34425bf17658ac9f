"""
Client configuration module.

This module handles client-side configuration settings.
"""

from common.constants import DEFAULT_HOST, DEFAULT_PORT, STDIN_POLL_INTERVAL
from common.protocol_definitions import clamp_identity


class ClientConfig:
    """Client configuration class."""

    def __init__(self, identity: str, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        self.host = host
        self.port = port
        # Only the first 14 bytes fit in a packet
        self.identity = clamp_identity(identity)

        # Connection settings
        self.connect_timeout = 10  # seconds
        self.poll_interval = STDIN_POLL_INTERVAL

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'identity': self.identity
        }
