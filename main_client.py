#!/usr/bin/env python3
"""
LAN Chat Relay Client - Main Entry Point

Usage:
    python main_client.py <identity> <server-address> <port>

Type a line to send it to everyone, or `/pm <user> <message>` to send it to
one user only. Ctrl+D or Ctrl+C leaves the chat.
"""

import argparse
import sys

from client.chat.chat_client import IdentificationError
from client.main_client import ChatSession
from client.utils.config import ClientConfig
from client.utils.logger import logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='LAN Chat Relay Client')
    parser.add_argument('identity', type=str,
                        help='Name to chat as (up to 14 characters)')
    parser.add_argument('address', type=str,
                        help='Server IPv4 address')
    parser.add_argument('port', type=int,
                        help='Server port')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = ClientConfig(args.identity, args.address, args.port)
    session = ChatSession(config)

    try:
        session.run()
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")
    except IdentificationError as e:
        logger.error(f"Server refused identity '{config.identity}': {e}")
        return 1
    except OSError as e:
        logger.log_error("client", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
