"""
Chat server module.

This module implements the per-connection protocol: identification, public
chat relay, private message routing and disconnect announcements.
"""

import socket
from typing import Callable, Dict, List, Optional

from common.constants import Opcode, ServerMessages
from common.protocol_definitions import (
    Packet, create_connect_ack_packet, create_invalid_ident_packet,
    create_general_error_packet, create_invalid_pm_ident_packet,
    create_client_connect_packet, create_client_disconnect_packet,
    create_private_message_packet
)
from server.chat.registry import ConnectionRecord, ConnectionRegistry
from server.utils.logger import logger


class ChatServer:
    """Server-side chat protocol handling."""

    def __init__(self, registry: ConnectionRegistry,
                 on_close: Optional[Callable[[socket.socket], None]] = None):
        self.registry = registry
        # Called with the socket just before it is closed
        self.on_close = on_close
        # Peers to drop once the current loop iteration is done
        self.stalled: List[ConnectionRecord] = []
        self.handlers: Dict[Opcode, Callable[[ConnectionRecord, Packet], None]] = {
            Opcode.CLIENT_IDENT: self.handle_ident,
            Opcode.MESSAGE_TRANS: self.handle_chat,
            Opcode.PRIVATE_MESSAGE: self.handle_private_message,
        }

    def send_packet(self, record: ConnectionRecord, packet: Packet) -> bool:
        """Send one packet to a single connection."""
        if record in self.stalled:
            return False
        try:
            record.sock.sendall(packet.encode())
            return True
        except BlockingIOError:
            # Part of the packet may already be out; the peer's framing is lost
            logger.warning(f"Send buffer of {record.describe()} is full, dropping it")
            self.stalled.append(record)
            return False
        except OSError as e:
            logger.error(f"Failed to send to {record.describe()}: {e}")
            return False

    def drop_stalled(self) -> int:
        """Disconnect every peer whose send could not complete. Returns how many."""
        dropped = 0
        while self.stalled:
            record = self.stalled.pop(0)
            if record.handle is None or self.registry.get(record.handle) is not record:
                continue
            self.disconnect_client(record)
            dropped += 1
        return dropped

    def broadcast(self, packet: Packet, exclude: Optional[ConnectionRecord] = None) -> int:
        """
        Send a packet to every occupied slot.
        Optionally exclude a specific connection. Returns the number of
        connections the packet was handed to.
        """
        sent = 0
        for _, record in self.registry:
            if record is exclude:
                continue
            if self.send_packet(record, packet):
                sent += 1
        return sent

    def handle_packet(self, sender: ConnectionRecord, packet: Packet):
        """Dispatch one received packet."""
        handler = self.handlers.get(packet.opcode)
        if handler is None:
            logger.warning(f"Unrecognized opcode {int(packet.opcode)} from {sender.describe()}, ignoring")
            return
        handler(sender, packet)

    def handle_ident(self, sender: ConnectionRecord, packet: Packet):
        """Process an identification request."""
        if sender.identified:
            logger.info(f"{sender.describe()} tried to reidentify, ignoring")
            return

        identity = packet.identity
        if not identity:
            self.reject(sender, create_invalid_ident_packet(ServerMessages.EMPTY_IDENT))
            return

        found, _ = self.registry.find_by_identity(identity)
        if found:
            self.reject(sender, create_invalid_ident_packet(ServerMessages.IDENT_EXISTS))
            return

        sender.identity = identity
        sender.identified = True
        logger.log_identified(identity, sender.address)

        self.send_packet(sender, create_connect_ack_packet())
        self.broadcast(create_client_connect_packet(identity), exclude=sender)

    def handle_chat(self, sender: ConnectionRecord, packet: Packet):
        """Relay a chat message to everyone but the sender."""
        if not sender.identified:
            self.reject(sender, create_general_error_packet(ServerMessages.CHAT_UNIDENTIFIED))
            return

        # Never trust the identity the client put in the packet
        relayed = packet.with_identity(sender.identity)
        logger.log_chat(sender.identity, relayed.message)
        self.broadcast(relayed, exclude=sender)

    def handle_private_message(self, sender: ConnectionRecord, packet: Packet):
        """Route a private message to the connection named in the identity field."""
        if not sender.identified:
            self.reject(sender, create_general_error_packet(ServerMessages.PM_UNIDENTIFIED))
            return

        target = packet.identity
        _, receiver = self.registry.find_by_identity(target)
        if receiver is None:
            logger.warning(f"User '{sender.identity}' tried to PM non-existent user '{target}'")
            self.send_packet(sender, create_invalid_pm_ident_packet())
            return

        logger.log_private(sender.identity, receiver.identity, packet.message)
        self.send_packet(receiver, create_private_message_packet(sender.identity, packet.message))

    def reject(self, sender: ConnectionRecord, packet: Packet):
        """Tell the sender why it is being dropped, then drop it."""
        logger.log_rejected(sender.address, packet.message)
        self.send_packet(sender, packet)
        self.close_connection(sender)

    def disconnect_client(self, record: ConnectionRecord):
        """Announce a departed peer to the others and release its slot."""
        if record.identified:
            self.broadcast(create_client_disconnect_packet(record.identity), exclude=record)
        self.close_connection(record)

    def close_connection(self, record: ConnectionRecord):
        """Free the record's slot and close its socket."""
        label = record.describe()
        try:
            self.registry.remove_by_record(record)
        except KeyError:
            logger.warning(f"Connection {label} was not registered")
        if self.on_close is not None:
            self.on_close(record.sock)
        try:
            record.sock.close()
        except OSError as e:
            logger.log_error(f"closing {label}", e)
        logger.log_disconnect(label)
