#!/usr/bin/env python3
"""
Unit tests for the terminal client in client/chat/chat_client.py and
client/main_client.py

Covers:
- Identification handshake over a socket pair
- Display and session outcome of every server packet
- Line buffering of raw terminal input
- /pm command parsing
"""

import os
import socket
import unittest
from unittest.mock import Mock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from client.chat.chat_client import ChatClient, IdentificationError
from client.main_client import ChatSession, LineBuffer
from client.utils.config import ClientConfig
from common.constants import Opcode
from common.protocol_definitions import (
    Packet, PACKET_SIZE, PACKET_STRUCT, create_connect_ack_packet, create_invalid_ident_packet
)


class TestChatClient(unittest.TestCase):
    """Test cases for ChatClient."""

    def setUp(self):
        self.lines = []
        self.client = ChatClient(ClientConfig('alice'), display=self.lines.append)
        self.client.sock, self.server_end = socket.socketpair()
        self.server_end.settimeout(2)

    def tearDown(self):
        self.client.close()
        self.server_end.close()

    def read_sent(self) -> Packet:
        data = b''
        while len(data) < PACKET_SIZE:
            data += self.server_end.recv(PACKET_SIZE - len(data))
        return Packet.decode(data)

    def test_identify_accepted(self):
        """CONNECT_ACK completes identification and makes the socket non-blocking."""
        self.server_end.sendall(create_connect_ack_packet().encode())
        self.client.identify()

        sent = self.read_sent()
        self.assertEqual(sent.opcode, Opcode.CLIENT_IDENT)
        self.assertEqual(sent.identity, 'alice')
        self.assertFalse(self.client.sock.getblocking())
        self.assertEqual(self.lines, ['|| SERVER: Welcome to the chatserver'])

    def test_identify_refused(self):
        """INVALID_IDENT is an identification failure."""
        self.server_end.sendall(create_invalid_ident_packet('Identity already exists').encode())
        with self.assertRaises(IdentificationError) as ctx:
            self.client.identify()
        self.assertIn('Identity already exists', str(ctx.exception))

    def test_identify_shows_chat_before_the_verdict(self):
        """Chat relayed before CONNECT_ACK is displayed, not taken as the answer."""
        self.server_end.sendall(Packet('bob', Opcode.MESSAGE_TRANS, 'hello room').encode())
        self.server_end.sendall(Packet('carol', Opcode.CLIENT_CONNECT, 'User connected').encode())
        self.server_end.sendall(create_connect_ack_packet().encode())
        self.client.identify()

        self.assertEqual(self.lines, ['bob: hello room', '|| carol: User connected',
                                      '|| SERVER: Welcome to the chatserver'])
        self.assertFalse(self.client.sock.getblocking())

    def test_identify_refused_after_chat(self):
        """A refusal still ends identification when chat came first."""
        self.server_end.sendall(Packet('bob', Opcode.MESSAGE_TRANS, 'hello room').encode())
        self.server_end.sendall(create_invalid_ident_packet('Identity already exists').encode())
        with self.assertRaises(IdentificationError) as ctx:
            self.client.identify()
        self.assertEqual(str(ctx.exception), 'Identity already exists')
        self.assertEqual(self.lines, ['bob: hello room'])

    def test_identify_server_hangs_up(self):
        """A close during the handshake is a connection error."""
        self.server_end.close()
        with self.assertRaises(ConnectionError):
            self.client.identify()

    def test_send_chat_and_private(self):
        """Chat carries our name; private messages carry the recipient's."""
        self.client.send_chat('hello all')
        self.client.send_private('bob', 'hello bob')

        chat = self.read_sent()
        self.assertEqual((chat.identity, chat.opcode, chat.message),
                         ('alice', Opcode.MESSAGE_TRANS, 'hello all'))
        private = self.read_sent()
        self.assertEqual((private.identity, private.opcode, private.message),
                         ('bob', Opcode.PRIVATE_MESSAGE, 'hello bob'))

    def test_receive_packet_non_blocking(self):
        """Nothing waiting yields None; a partial packet is held back."""
        self.client.sock.setblocking(False)
        self.assertIsNone(self.client.receive_packet())

        raw = Packet('bob', Opcode.MESSAGE_TRANS, 'hey').encode()
        self.server_end.sendall(raw[:30])
        self.assertIsNone(self.client.receive_packet())
        self.server_end.sendall(raw[30:])
        packet = self.client.receive_packet()
        self.assertEqual(packet.message, 'hey')

    def test_receive_packet_after_close(self):
        """End of stream raises."""
        self.client.sock.setblocking(False)
        self.server_end.close()
        with self.assertRaises(ConnectionError):
            self.client.receive_packet()

    def test_send_without_connection(self):
        """Sending before connect fails loudly."""
        client = ChatClient(ClientConfig('carol'))
        with self.assertRaises(ConnectionError):
            client.send_chat('hi')


class TestProcessServerPacket(unittest.TestCase):
    """Test cases for ChatClient.process_server_packet."""

    def setUp(self):
        self.lines = []
        self.client = ChatClient(ClientConfig('alice'), display=self.lines.append)

    def check(self, packet: Packet, keep: bool, line: str = None):
        self.assertEqual(self.client.process_server_packet(packet), keep)
        if line is not None:
            self.assertEqual(self.lines[-1], line)

    def test_terminal_packets_end_the_session(self):
        """GENERAL_ERROR and INVALID_IDENT mean the server is dropping us."""
        self.check(Packet('SERVER', Opcode.GENERAL_ERROR, 'Must be identified to chat'), False)
        self.check(Packet('SERVER', Opcode.INVALID_IDENT, 'Identity already exists'), False)

    def test_chat_packets_are_displayed(self):
        """Chat, private and presence packets are shown and the session goes on."""
        self.check(Packet('bob', Opcode.MESSAGE_TRANS, 'hi'), True, 'bob: hi')
        self.check(Packet('bob', Opcode.PRIVATE_MESSAGE, 'psst'), True, 'PM from bob: psst')
        self.check(Packet('bob', Opcode.CLIENT_CONNECT, 'User connected'), True, '|| bob: User connected')
        self.check(Packet('bob', Opcode.CLIENT_DISCONNECT, 'User disconnected'), True,
                   '|| bob: User disconnected')
        self.check(Packet('SERVER', Opcode.INVALID_PM_IDENT, "User doesn't exist"), True,
                   "Private message not delivered: User doesn't exist")

    def test_undecodable_text_is_displayed_safely(self):
        """Bytes that are not UTF-8 are shown as replacement characters."""
        packet = Packet.decode(PACKET_STRUCT.pack(b'b\xffb', 4, b'caf\xe9'))
        self.check(packet, True, 'b\ufffdb: caf\ufffd')

    def test_unknown_opcode(self):
        """Unexpected opcodes are logged, not fatal."""
        self.check(Packet('SERVER', 42, 'what'), True)
        self.assertEqual(self.lines, [])


class TestLineBuffer(unittest.TestCase):
    """Test cases for LineBuffer."""

    def test_lines_across_reads(self):
        """Lines may arrive in pieces and several at once."""
        buffer = LineBuffer()
        self.assertEqual(buffer.feed(b'hel'), [])
        self.assertEqual(buffer.feed(b'lo\r\nsecond\nthi'), ['hello', 'second'])
        self.assertEqual(buffer.pending, 3)
        self.assertEqual(buffer.flush(), ['thi'])
        self.assertEqual(buffer.flush(), [])

    def test_buffers_are_independent(self):
        """Each session owns its buffer."""
        first, second = LineBuffer(), LineBuffer()
        first.feed(b'abc')
        self.assertEqual(second.pending, 0)

    def test_input_bytes_are_kept(self):
        """Typed bytes that are not UTF-8 reach the wire unchanged."""
        [line] = LineBuffer().feed(b'caf\xe9\n')
        self.assertEqual(Packet('a', Opcode.MESSAGE_TRANS, line).encode()[16:20], b'caf\xe9')


class TestChatSession(unittest.TestCase):
    """Test cases for ChatSession input handling."""

    def setUp(self):
        self.lines = []
        self.session = ChatSession(ClientConfig('alice'), stdin_fd=0, display=self.lines.append)
        self.session.chat_client = Mock()

    def test_plain_line_is_chat(self):
        self.session.handle_input_line('hello world')
        self.session.chat_client.send_chat.assert_called_once_with('hello world')

    def test_empty_line_is_ignored(self):
        self.session.handle_input_line('')
        self.session.chat_client.send_chat.assert_not_called()

    def test_pm_command(self):
        """/pm splits off the recipient and keeps the rest of the line intact."""
        self.session.handle_input_line('/pm bob see you  at noon')
        self.session.chat_client.send_private.assert_called_once_with('bob', 'see you  at noon')

    def test_pm_without_recipient(self):
        self.session.handle_input_line('/pm')
        self.session.chat_client.send_private.assert_not_called()
        self.assertEqual(self.lines, ['misformatted pm command, must have recipient'])

    def test_unknown_command(self):
        self.session.handle_input_line('/dance')
        self.session.chat_client.send_chat.assert_not_called()
        self.assertEqual(self.lines, ['Unknown command: /dance'])

    def test_stdin_lines_and_eof(self):
        """Typed lines are sent; end of input sends the tail and ends the session."""
        read_fd, write_fd = os.pipe()
        try:
            self.session.stdin_fd = read_fd
            self.session.running = True
            os.write(write_fd, b'one\ntw')
            self.session.on_stdin_readable()
            self.session.chat_client.send_chat.assert_called_once_with('one')
            self.assertTrue(self.session.running)

            os.close(write_fd)
            write_fd = None
            self.session.on_stdin_readable()
            self.session.chat_client.send_chat.assert_called_with('tw')
            self.assertFalse(self.session.running)
        finally:
            os.close(read_fd)
            if write_fd is not None:
                os.close(write_fd)

    def test_server_close_ends_session(self):
        self.session.running = True
        self.session.chat_client.receive_packet.side_effect = ConnectionError("Server closed the connection")
        self.session.on_server_readable()
        self.assertFalse(self.session.running)
        self.assertEqual(self.lines, ['Server closed the connection'])

    def test_terminal_packet_ends_session(self):
        self.session.running = True
        self.session.chat_client.receive_packet.return_value = Packet('SERVER', Opcode.GENERAL_ERROR, 'bye')
        self.session.chat_client.process_server_packet.return_value = False
        self.session.on_server_readable()
        self.assertFalse(self.session.running)


class TestClientConfig(unittest.TestCase):

    def test_identity_is_clamped(self):
        config = ClientConfig('a_very_long_identity', '127.0.0.1', 30001)
        self.assertEqual(config.identity, 'a_very_long_id')
        self.assertEqual(config.get_connection_info()['port'], 30001)


if __name__ == '__main__':
    unittest.main()
