"""
Transport Package
=================

Leaf I/O components driven by the event loop:
- tcp_pool.py: Listening socket and bounded pool of TCP clients
- rtu_link.py: Serial Modbus RTU link with auto-reconnect

Neither component knows about the other, the register map or the
JSON command language; frames are handed to callbacks.

Date: October 2026
License: MIT
"""

from .tcp_pool import ClientConnection, ConnectionPool, FrameKind, MAX_TCP_CLIENTS
from .rtu_link import RtuLink

__all__ = [
    "ClientConnection",
    "ConnectionPool",
    "FrameKind",
    "MAX_TCP_CLIENTS",
    "RtuLink",
]
