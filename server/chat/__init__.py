"""
Chat module for server-side messaging functionality.

Handles:
- Identity claims and uniqueness
- Public message relay
- Private message routing
- Join and leave announcements
"""
