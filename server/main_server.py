"""
LAN Chat Relay Server

The relay runs a single-threaded event loop: one selector watches the
listening socket and every accepted connection, and each wake-up accepts
pending connections and reads at most one packet's worth of bytes from each
ready connection, in registry slot order.
"""

import selectors
import socket
from typing import Optional

from common.constants import HARD_RECV_ERRNOS
from server.chat.chat_server import ChatServer
from server.chat.registry import ConnectionRecord, ConnectionRegistry, RegistryError
from server.utils.config import ServerConfig
from server.utils.logger import logger


class RelayServer:
    """Main server class that owns the sockets, the registry and the event loop."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.registry = ConnectionRegistry(
            self.config.initial_capacity,
            self.config.expand_size,
            self.config.max_capacity
        )
        self.chat_server = ChatServer(self.registry, on_close=self._unregister)
        self.selector = selectors.DefaultSelector()
        self.listen_sock: Optional[socket.socket] = None

    @property
    def address(self):
        """Address the listening socket is bound to."""
        return self.listen_sock.getsockname() if self.listen_sock else None

    def start(self):
        """Create, bind and register the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if self.config.reuse_addr:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise

        self.listen_sock = sock
        self.selector.register(sock, selectors.EVENT_READ, data=None)
        logger.info(f"Server listening on {self.address}")

    def serve_forever(self):
        """Run the event loop. Only a signal ends it."""
        if self.listen_sock is None:
            self.start()
        logger.info("Entering polling loop...")
        while True:
            self.poll_once(self.config.poll_timeout)

    def poll_once(self, timeout: Optional[float] = None) -> int:
        """
        Run one loop iteration.

        Waits until at least one socket is ready (or `timeout` expires), then
        accepts a pending connection and services every ready connection in
        slot index order. Returns the number of ready sockets.

        Raises:
            RegistryError: a new connection could not be admitted.
        """
        events = self.selector.select(timeout)

        ready = []
        for key, _ in events:
            if key.data is None:
                self.accept_connection()
            else:
                ready.append(key.data)

        ready = [record for record in ready if record.handle is not None]
        ready.sort(key=lambda record: record.handle.index)
        for record in ready:
            # An earlier handler in this pass may have dropped it
            if record.handle is None or self.registry.get(record.handle) is not record:
                continue
            self.service_connection(record)

        self.chat_server.drop_stalled()
        return len(events)

    def accept_connection(self) -> Optional[ConnectionRecord]:
        """Accept one pending connection and register it as unidentified."""
        try:
            conn, addr = self.listen_sock.accept()
        except BlockingIOError:
            return None
        except OSError as e:
            logger.log_error("accept", e)
            return None

        conn.setblocking(False)
        record = ConnectionRecord(sock=conn, address=addr)
        try:
            handle = self.registry.add(record)
        except RegistryError:
            logger.error(f"Failed to admit connection from {addr}")
            conn.close()
            raise

        self.selector.register(conn, selectors.EVENT_READ, data=record)
        logger.log_connection(addr, handle.index)
        return record

    def service_connection(self, record: ConnectionRecord):
        """Read from one ready connection and act on the outcome."""
        try:
            data = record.sock.recv(record.reader.needed)
        except BlockingIOError:
            return
        except OSError as e:
            if e.errno in HARD_RECV_ERRNOS:
                logger.info(f"Connection {record.describe()} failed: {e}")
                self.chat_server.disconnect_client(record)
            else:
                logger.log_error(f"recv from {record.describe()}", e)
            return

        if not data:
            self.chat_server.disconnect_client(record)
            return

        packet = record.reader.feed(data)
        if packet is not None:
            logger.debug(f"Received opcode {int(packet.opcode)} from {record.describe()}")
            self.chat_server.handle_packet(record, packet)

    def _unregister(self, sock: socket.socket):
        try:
            self.selector.unregister(sock)
        except (KeyError, ValueError):
            logger.debug(f"Socket {sock!r} was not registered with the selector")

    def close(self):
        """Close every connection and the listening socket."""
        for record in self.registry.records():
            self.chat_server.close_connection(record)
        if self.listen_sock is not None:
            self._unregister(self.listen_sock)
            self.listen_sock.close()
            self.listen_sock = None
        self.selector.close()
