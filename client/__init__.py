"""
Client package for the LAN chat relay.

This package contains all client-side functionality including:
- Chat messaging
- Terminal session handling
- Configuration and utilities
"""
