"""
Shared constants for the LAN chat relay.

This module contains all constants used across client and server components.
"""

import errno
from enum import IntEnum

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 30000
MIN_PORT = 30000
MAX_PORT = 65535
LISTEN_BACKLOG = 10

# Packet Layout
IDENT_FIELD_SIZE = 15
IDENT_MAX_LENGTH = 14  # significant bytes, the rest is zero padding
MESSAGE_FIELD_SIZE = 128
MESSAGE_MAX_LENGTH = 127
PACKET_FORMAT = f'{IDENT_FIELD_SIZE}sB{MESSAGE_FIELD_SIZE}s'

# Connection Registry
DEFAULT_CAPACITY = 64
DEFAULT_EXPAND_SIZE = 16
SERVER_IDENT = 'SERVER'

# recv() errors that mean the peer is gone
HARD_RECV_ERRNOS = frozenset({errno.EBADF, errno.ECONNRESET, errno.ENOTCONN, errno.EPIPE})

# Client
STDIN_POLL_INTERVAL = 0.5  # seconds
STDIN_READ_SIZE = 1024

# Logging
CHAT_LOG_FILE = 'chat_history.log'


class Opcode(IntEnum):
    """Packet opcodes. Value 0 is reserved so an all-zero packet is never valid."""
    CLIENT_IDENT = 1
    CLIENT_CONNECT = 2
    CLIENT_DISCONNECT = 3
    MESSAGE_TRANS = 4
    PRIVATE_MESSAGE = 5
    GENERAL_ERROR = 6
    CONNECT_ACK = 7
    INVALID_IDENT = 8
    INVALID_PM_IDENT = 9


# Opcodes a client may send to the server
CLIENT_OPCODES = frozenset({Opcode.CLIENT_IDENT, Opcode.MESSAGE_TRANS, Opcode.PRIVATE_MESSAGE})


# Server Messages
class ServerMessages:
    WELCOME = 'Welcome to the chatserver'
    EMPTY_IDENT = 'Empty identity disallowed'
    IDENT_EXISTS = 'Identity already exists'
    CHAT_UNIDENTIFIED = 'Must be identified to chat'
    PM_UNIDENTIFIED = 'Must be identified to PM'
    PM_UNKNOWN_USER = "User doesn't exist"
    USER_CONNECTED = 'User connected'
    USER_DISCONNECTED = 'User disconnected'
