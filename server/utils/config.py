"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, MIN_PORT, MAX_PORT, LISTEN_BACKLOG,
    DEFAULT_CAPACITY, DEFAULT_EXPAND_SIZE
)


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 logs_dir: Optional[str] = None):
        self.host = host
        self.port = port

        # Listening socket
        self.backlog = LISTEN_BACKLOG
        self.reuse_addr = True

        # Connection registry
        self.initial_capacity = DEFAULT_CAPACITY
        self.expand_size = DEFAULT_EXPAND_SIZE
        self.max_capacity: Optional[int] = None  # unbounded

        # Event loop; None blocks until a socket is ready
        self.poll_timeout: Optional[float] = None

        # Logging configuration
        self.logs_dir = logs_dir

    def validate(self):
        """Reject settings the server cannot run with."""
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"port must be in the range {MIN_PORT} - {MAX_PORT}, got {self.port}")
        if self.initial_capacity < 1 or self.expand_size < 1:
            raise ValueError("registry capacity and expand size must be positive")
        if self.max_capacity is not None and self.max_capacity < self.initial_capacity:
            raise ValueError("max capacity is smaller than the initial capacity")

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'backlog': self.backlog
        }

    def get_registry_settings(self):
        """Get connection registry settings."""
        return {
            'capacity': self.initial_capacity,
            'expand_size': self.expand_size,
            'max_capacity': self.max_capacity
        }
