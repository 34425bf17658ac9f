"""
Client logging module.

This module handles client-side logging functionality.
"""

import logging
import sys

from common.protocol_definitions import printable


class ClientLogger:
    """Client logging class."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger('chat_relay_client')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Diagnostics go to stderr so they never interleave with chat lines on stdout
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(console_handler)

    def info(self, message: str):
        """Log info message."""
        self.logger.info(printable(message))

    def error(self, message: str):
        """Log error message."""
        self.logger.error(printable(message))

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(printable(message))

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(printable(message))

    def log_connection(self, host: str, port: int, success: bool):
        """Log connection attempt."""
        status = "Connected" if success else "Failed to connect"
        self.info(f"{status} to {host}:{port}")

    def log_identified(self, identity: str, success: bool):
        """Log identification attempt."""
        status = "Identified" if success else "Identification failed"
        self.info(f"{status} as '{identity}'")

    def show_interactive_mode_info(self):
        """Show interactive mode information."""
        self.info("Type messages to chat (Ctrl+C or Ctrl+D to exit)")
        self.info("Commands: /pm <user> <message>")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ClientLogger()
