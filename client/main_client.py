#!/usr/bin/env python3
"""
LAN Chat Relay Client

Terminal session that multiplexes the server connection and standard input
with a selector, so incoming chat is shown while the user is typing.
"""

import os
import selectors
import sys
from typing import Callable, List, Optional

from client.chat.chat_client import ChatClient
from client.utils.config import ClientConfig
from client.utils.logger import logger
from common.constants import STDIN_READ_SIZE
from common.protocol_definitions import decode_text, printable


class LineBuffer:
    """Collects raw input bytes and hands back complete lines."""

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> List[str]:
        """Add bytes and return every line they complete, without line endings."""
        self._buffer.extend(data)
        lines = []
        while True:
            nl = self._buffer.find(b'\n')
            if nl < 0:
                break
            raw = bytes(self._buffer[:nl]).rstrip(b'\r')
            del self._buffer[:nl + 1]
            lines.append(decode_text(raw))
        return lines

    def flush(self) -> List[str]:
        """Return the unterminated tail, if any, and empty the buffer."""
        if not self._buffer:
            return []
        tail = decode_text(bytes(self._buffer).rstrip(b'\r'))
        self._buffer.clear()
        return [tail]


class ChatSession:
    """Main client class tying the chat connection to a terminal."""

    def __init__(self, config: ClientConfig, stdin_fd: Optional[int] = None,
                 display: Callable[[str], None] = print):
        self.config = config
        self.display = display
        self.chat_client = ChatClient(config, display=display)
        self.stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self.input_buffer = LineBuffer()
        self.running = False

    def handle_input_line(self, line: str):
        """Turn one line of user input into a packet."""
        if not line:
            return
        if line.startswith('/'):
            self.handle_command(line)
            return
        self.chat_client.send_chat(line)

    def handle_command(self, line: str):
        """Handle slash commands."""
        parts = line.split(' ', 2)
        command = parts[0]

        if command == '/pm':
            if len(parts) < 2 or not parts[1]:
                self.display("misformatted pm command, must have recipient")
                return
            message = parts[2] if len(parts) > 2 else ''
            self.chat_client.send_private(parts[1], message)
        else:
            self.display(f"Unknown command: {printable(command)}")

    def on_server_readable(self):
        """Read from the server and show what arrived."""
        try:
            packet = self.chat_client.receive_packet()
        except ConnectionError as e:
            self.display(str(e))
            self.running = False
            return
        if packet is not None and not self.chat_client.process_server_packet(packet):
            self.running = False

    def on_stdin_readable(self):
        """Read what the user typed."""
        data = os.read(self.stdin_fd, STDIN_READ_SIZE)
        if data:
            lines = self.input_buffer.feed(data)
        else:
            lines = self.input_buffer.flush()
            self.running = False
        for line in lines:
            self.handle_input_line(line)

    def run(self):
        """Connect, identify and chat until either side hangs up."""
        self.chat_client.connect()
        selector = selectors.DefaultSelector()
        try:
            self.chat_client.identify()
            selector.register(self.chat_client.sock, selectors.EVENT_READ, data=self.on_server_readable)
            selector.register(self.stdin_fd, selectors.EVENT_READ, data=self.on_stdin_readable)
            logger.show_interactive_mode_info()

            self.running = True
            while self.running:
                for key, _ in selector.select(self.config.poll_interval):
                    key.data()
                    if not self.running:
                        break
        finally:
            selector.close()
            logger.info("Disconnecting...")
            self.chat_client.close()
