"""
Protocol definitions for the LAN chat relay.

This module defines the fixed-size packet exchanged between client and server
and the helpers used to build the packets each side emits.

Wire layout (144 bytes, no framing):
    identity  15 bytes, at most 14 significant, zero padded
    opcode     1 byte
    message  128 bytes, at most 127 significant, zero padded

Both text fields are bounded-length fields, not C strings: decoding reads at
most the significant length and stops early at the first zero byte, so a
payload that fills all 127 bytes is read correctly without a terminator.

Field bytes are decoded as UTF-8 with `surrogateescape`, so bytes that are not
valid UTF-8 survive a decode/encode round trip unchanged and a relayed packet
carries exactly the bytes its sender wrote. Use `printable()` before showing
such text to a user or a log.
"""

import struct
from dataclasses import dataclass, replace
from typing import Optional, Union

from common.constants import (
    Opcode, PACKET_FORMAT, IDENT_FIELD_SIZE, IDENT_MAX_LENGTH,
    MESSAGE_FIELD_SIZE, MESSAGE_MAX_LENGTH, SERVER_IDENT, ServerMessages
)

PACKET_STRUCT = struct.Struct(PACKET_FORMAT)
PACKET_SIZE = PACKET_STRUCT.size

TEXT_ENCODING = 'utf-8'
TEXT_ERRORS = 'surrogateescape'


class PacketError(ValueError):
    """Raised when bytes cannot be decoded as a packet."""


def encode_text(text: str) -> bytes:
    """Wire bytes of a text field value."""
    return text.encode(TEXT_ENCODING, TEXT_ERRORS)


def decode_text(raw: bytes) -> str:
    """Text field value of wire bytes; lossless for any input."""
    return raw.decode(TEXT_ENCODING, TEXT_ERRORS)


def truncate_text(text: str, limit: int) -> bytes:
    """Encode `text` and cut it to at most `limit` bytes on a character boundary."""
    raw = encode_text(text)
    if len(raw) <= limit:
        return raw
    out = bytearray()
    for char in text:
        piece = encode_text(char)
        if len(out) + len(piece) > limit:
            break
        out.extend(piece)
    return bytes(out)


def printable(text: str) -> str:
    """Text safe to print or log; undecodable bytes become U+FFFD."""
    return encode_text(text).decode(TEXT_ENCODING, errors='replace')


def _encode_field(text: str, limit: int, size: int) -> bytes:
    return truncate_text(text, limit).ljust(size, b'\0')


def _decode_field(raw: bytes, limit: int) -> str:
    return decode_text(raw[:limit].split(b'\0', 1)[0])


def clamp_identity(identity: str) -> str:
    """Trim an identity to what fits in the identity field."""
    return decode_text(truncate_text(identity, IDENT_MAX_LENGTH).split(b'\0', 1)[0])


@dataclass(frozen=True)
class Packet:
    """One decoded packet. Unknown opcodes are kept as plain ints."""
    identity: str
    opcode: Union[Opcode, int]
    message: str = ''

    def encode(self) -> bytes:
        """Serialize to exactly PACKET_SIZE bytes."""
        return PACKET_STRUCT.pack(
            _encode_field(self.identity, IDENT_MAX_LENGTH, IDENT_FIELD_SIZE),
            int(self.opcode),
            _encode_field(self.message, MESSAGE_MAX_LENGTH, MESSAGE_FIELD_SIZE),
        )

    @classmethod
    def decode(cls, data: bytes) -> 'Packet':
        """Parse exactly PACKET_SIZE bytes."""
        if len(data) != PACKET_SIZE:
            raise PacketError(f"Packet must be {PACKET_SIZE} bytes, got {len(data)}")
        raw_ident, code, raw_message = PACKET_STRUCT.unpack(data)
        try:
            opcode = Opcode(code)
        except ValueError:
            opcode = code
        return cls(
            identity=_decode_field(raw_ident, IDENT_MAX_LENGTH),
            opcode=opcode,
            message=_decode_field(raw_message, MESSAGE_MAX_LENGTH),
        )

    def with_identity(self, identity: str) -> 'Packet':
        """Copy of this packet carrying another identity."""
        return replace(self, identity=identity)

    @property
    def is_known(self) -> bool:
        return isinstance(self.opcode, Opcode)


class PacketReader:
    """
    Accumulates bytes from a stream socket until a full packet is available.

    TCP may hand over a packet in pieces; `needed` tells the caller how many
    bytes to ask for so that a single read never crosses a packet boundary.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def needed(self) -> int:
        return PACKET_SIZE - len(self._buffer)

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> Optional[Packet]:
        """Append received bytes; return a packet once one is complete."""
        if len(data) > self.needed:
            raise PacketError(f"Read of {len(data)} bytes overruns packet boundary")
        self._buffer.extend(data)
        if len(self._buffer) < PACKET_SIZE:
            return None
        packet = Packet.decode(bytes(self._buffer))
        self._buffer.clear()
        return packet

    def clear(self):
        self._buffer.clear()


# Server-originated packets

def create_server_packet(opcode: Opcode, message: str = '') -> Packet:
    """Create a packet signed with the reserved server identity."""
    return Packet(SERVER_IDENT, opcode, message)


def create_connect_ack_packet() -> Packet:
    """Create the identification acknowledgment."""
    return create_server_packet(Opcode.CONNECT_ACK, ServerMessages.WELCOME)


def create_invalid_ident_packet(reason: str) -> Packet:
    """Create an identity rejection."""
    return create_server_packet(Opcode.INVALID_IDENT, reason)


def create_general_error_packet(reason: str) -> Packet:
    """Create a general protocol error."""
    return create_server_packet(Opcode.GENERAL_ERROR, reason)


def create_invalid_pm_ident_packet() -> Packet:
    """Create a private message delivery failure."""
    return create_server_packet(Opcode.INVALID_PM_IDENT, ServerMessages.PM_UNKNOWN_USER)


def create_client_connect_packet(identity: str) -> Packet:
    """Create a user joined announcement."""
    return Packet(identity, Opcode.CLIENT_CONNECT, ServerMessages.USER_CONNECTED)


def create_client_disconnect_packet(identity: str) -> Packet:
    """Create a user left announcement."""
    return Packet(identity, Opcode.CLIENT_DISCONNECT, ServerMessages.USER_DISCONNECTED)


def create_private_message_packet(sender: str, text: str) -> Packet:
    """Create a private message as delivered to its recipient."""
    return Packet(sender, Opcode.PRIVATE_MESSAGE, text)


# Client-originated packets

def create_ident_packet(identity: str) -> Packet:
    """Create an identification request."""
    return Packet(identity, Opcode.CLIENT_IDENT)


def create_chat_packet(identity: str, text: str) -> Packet:
    """Create a chat message for everyone."""
    return Packet(identity, Opcode.MESSAGE_TRANS, text)


def create_private_request_packet(recipient: str, text: str) -> Packet:
    """Create a private message request; the identity field names the recipient."""
    return Packet(recipient, Opcode.PRIVATE_MESSAGE, text)
