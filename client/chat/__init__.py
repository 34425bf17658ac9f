"""
Chat module for client-side messaging functionality.

Handles:
- Identification with the server
- Sending public and private messages
- Displaying incoming packets
"""
