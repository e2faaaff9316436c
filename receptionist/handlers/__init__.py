"""
Handlers module for the telephony media stream WebSocket.

Key components:
- media_handlers: Validates connected, start, media, mark and stop events and
  turns them into call session events.
"""
