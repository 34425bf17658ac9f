"""
Server package for the LAN chat relay.

This package contains all server-side functionality including:
- Connection registry
- Chat protocol handling
- The single-threaded event loop
- Configuration and utilities
"""
