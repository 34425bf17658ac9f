#!/usr/bin/env python3
"""
LAN Chat Relay Server - Main Entry Point

Accepts TCP connections, lets each one claim a unique identity and relays
public and private chat messages between identified connections.

Usage:
    python main_server.py <bind-address> <port>

Optional arguments:
    --log-dir DIR         Append a chat transcript to DIR/chat_history.log
    --max-clients N       Refuse to grow the connection registry past N slots
    --debug               Log every received packet
"""

import argparse
import logging
import sys

from server.main_server import RelayServer
from server.utils.config import ServerConfig
from server.utils.logger import logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='LAN Chat Relay Server')
    parser.add_argument('address', type=str,
                        help='IPv4 address to bind to')
    parser.add_argument('port', type=int,
                        help='TCP port (30000 - 65535)')
    parser.add_argument('--log-dir', type=str, default=None,
                        help='Directory for the chat transcript (default: disabled)')
    parser.add_argument('--max-clients', type=int, default=None,
                        help='Upper bound on registry slots (default: unbounded)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ServerConfig(host=args.address, port=args.port, logs_dir=args.log_dir)
    if args.max_clients is not None:
        config.max_capacity = args.max_clients
        config.initial_capacity = min(config.initial_capacity, args.max_clients)
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    if args.debug:
        logger.set_level(logging.DEBUG)
    if config.logs_dir:
        logger.enable_chat_log(config.logs_dir)

    server = RelayServer(config)
    try:
        server.start()
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
        return 0
    except Exception as e:
        logger.error(f"Server stopped: {e}")
        return 1
    finally:
        server.close()


if __name__ == "__main__":
    sys.exit(main())
