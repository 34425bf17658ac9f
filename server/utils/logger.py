"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from common.constants import CHAT_LOG_FILE
from common.protocol_definitions import printable


class ServerLogger:
    """Server logging class."""

    def __init__(self, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger('chat_relay_server')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(console_handler)

        # Chat transcript is off until a logs directory is configured
        self.chat_log_path: Optional[Path] = None

    def enable_chat_log(self, logs_dir: str):
        """Start appending relayed messages to a transcript under `logs_dir`."""
        path = Path(logs_dir)
        path.mkdir(parents=True, exist_ok=True)
        self.chat_log_path = path / CHAT_LOG_FILE
        self.info(f"Chat transcript: {self.chat_log_path}")

    def set_level(self, log_level: int):
        """Change the level of the logger and its handlers."""
        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            handler.setLevel(log_level)

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

    def log_connection(self, addr: tuple, index: int):
        """Log client connection."""
        self.info(f"New connection from {addr}, assigned slot {index}")

    def log_identified(self, identity: str, addr: tuple):
        """Log successful identification."""
        self.info(f"User '{identity}' identified from {addr}")

    def log_rejected(self, addr: tuple, reason: str):
        """Log a connection terminated for a protocol violation."""
        self.warning(f"Rejected {addr}: {reason}")

    def log_disconnect(self, label: str):
        """Log client disconnect."""
        self.info(f"Connection {label} closed")

    def log_chat(self, identity: str, message: str):
        """Log chat message."""
        self.info(f"Chat from {identity}: {message}")
        self._write_to_file(f"{datetime.now().isoformat()} | {identity} | {message}")

    def log_private(self, from_identity: str, to_identity: str, message: str):
        """Log private message."""
        self.info(f"PM from {from_identity} to {to_identity}")
        self._write_to_file(f"{datetime.now().isoformat()} | [PM {from_identity}->{to_identity}] | {message}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")

    def _write_to_file(self, content: str):
        """Write content to the chat transcript."""
        if self.chat_log_path is None:
            return
        try:
            with open(self.chat_log_path, 'a', encoding='utf-8') as f:
                f.write(printable(content) + '\n')
        except OSError as e:
            self.error(f"Failed to write to log file {self.chat_log_path}: {e}")


# Global logger instance
logger = ServerLogger()
