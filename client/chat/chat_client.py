"""
Chat client module.

This module handles client-side packet exchange with the relay server.
"""

import socket
from typing import Callable, Optional

from common.constants import Opcode, MESSAGE_MAX_LENGTH
from common.protocol_definitions import (
    Packet, PacketReader, encode_text, printable, create_ident_packet, create_chat_packet,
    create_private_request_packet
)
from client.utils.config import ClientConfig
from client.utils.logger import logger


class IdentificationError(ConnectionError):
    """Raised when the server refuses the requested identity."""


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, config: ClientConfig, display: Callable[[str], None] = print):
        self.config = config
        self.display = display
        self.sock: Optional[socket.socket] = None
        self.reader = PacketReader()

    @property
    def identity(self) -> str:
        return self.config.identity

    def connect(self):
        """Open the TCP connection to the server."""
        try:
            self.sock = socket.create_connection(
                (self.config.host, self.config.port),
                timeout=self.config.connect_timeout
            )
        except OSError:
            logger.log_connection(self.config.host, self.config.port, False)
            raise
        self.sock.settimeout(None)
        logger.log_connection(self.config.host, self.config.port, True)

    def identify(self):
        """
        Claim the configured identity and wait for the server's verdict.

        Chat relayed to us before the verdict arrives is shown as usual. The
        socket is switched to non-blocking mode once the server accepts.

        Raises:
            IdentificationError: the server answered INVALID_IDENT or GENERAL_ERROR.
        """
        logger.info(f"Identifying as '{self.identity}'...")
        self.send_packet(create_ident_packet(self.identity))
        while True:
            reply = self._receive_blocking()
            if reply.opcode == Opcode.CONNECT_ACK:
                break
            if reply.opcode in (Opcode.INVALID_IDENT, Opcode.GENERAL_ERROR):
                logger.log_identified(self.identity, False)
                raise IdentificationError(printable(reply.message) or f"refused with opcode {int(reply.opcode)}")
            self.process_server_packet(reply)

        logger.log_identified(self.identity, True)
        self.display(f"|| {printable(reply.identity)}: {printable(reply.message)}")
        self.sock.setblocking(False)

    def send_packet(self, packet: Packet):
        """Send one packet to the server."""
        if self.sock is None:
            raise ConnectionError("Not connected to server")
        self.sock.sendall(packet.encode())

    def send_chat(self, text: str):
        """Send a chat message to everyone."""
        self._warn_if_truncated(text)
        self.send_packet(create_chat_packet(self.identity, text))

    def send_private(self, recipient: str, text: str):
        """Send a private message to one user."""
        self._warn_if_truncated(text)
        self.send_packet(create_private_request_packet(recipient, text))

    def receive_packet(self) -> Optional[Packet]:
        """
        Read what is available without blocking.

        Returns a packet once a whole one has arrived, otherwise None.

        Raises:
            ConnectionError: the server closed the connection.
        """
        try:
            data = self.sock.recv(self.reader.needed)
        except BlockingIOError:
            return None
        if not data:
            raise ConnectionError("Server closed the connection")
        return self.reader.feed(data)

    def _receive_blocking(self) -> Packet:
        while True:
            data = self.sock.recv(self.reader.needed)
            if not data:
                raise ConnectionError("Server closed the connection")
            packet = self.reader.feed(data)
            if packet is not None:
                return packet

    def process_server_packet(self, packet: Packet) -> bool:
        """Show a packet from the server. Returns False when the session is over."""
        opcode = packet.opcode
        identity, message = printable(packet.identity), printable(packet.message)

        if opcode == Opcode.GENERAL_ERROR:
            self.display(f"Disconnected by server: {message}")
            return False
        elif opcode == Opcode.INVALID_IDENT:
            self.display(f"Disconnected by server, identity refused: {message}")
            return False
        elif opcode == Opcode.INVALID_PM_IDENT:
            self.display(f"Private message not delivered: {message}")
        elif opcode == Opcode.PRIVATE_MESSAGE:
            self.display(f"PM from {identity}: {message}")
        elif opcode in (Opcode.CLIENT_CONNECT, Opcode.CLIENT_DISCONNECT, Opcode.CONNECT_ACK):
            self.display(f"|| {identity}: {message}")
        elif opcode == Opcode.MESSAGE_TRANS:
            self.display(f"{identity}: {message}")
        else:
            logger.warning(f"Unexpected opcode {int(opcode)} from server: {message}")
        return True

    def close(self):
        """Close the connection."""
        if self.sock is not None:
            self.sock.close()
            self.sock = None
        self.reader.clear()

    def _warn_if_truncated(self, text: str):
        if len(encode_text(text)) > MESSAGE_MAX_LENGTH:
            logger.warning(f"Message longer than {MESSAGE_MAX_LENGTH} bytes, the rest is cut off")
