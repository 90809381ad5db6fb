"""
TCP Connection Pool
===================

Bounded pool of accepted TCP clients, indexed by slot.

A TCP client may speak two languages on the same socket:
- Modbus TCP: MBAP-framed binary requests (protocol ID bytes are 00 00)
- JSON commands: newline-delimited JSON text (never contains NUL bytes)

The pool only splits the byte stream into frames and classifies them;
what a frame means is decided by the handler passed to service().

Capacity contract:
- At most `capacity` occupied slots
- When full, a pending connection is still accepted and closed at once

Date: October 2026
License: MIT
"""

import logging
import socket
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..modbus.engine import MAX_ADU_SIZE, MBAP_HEADER_SIZE, tcp_frame_length

logger = logging.getLogger(__name__)

MAX_TCP_CLIENTS = 10
LISTEN_BACKLOG = 16
RECV_SIZE = 4096


class FrameKind(Enum):
    """What a frame received on a TCP client contains."""

    MODBUS = "modbus"
    JSON = "json"


@dataclass
class ClientConnection:
    """One accepted TCP client occupying a pool slot."""

    slot: int
    sock: socket.socket
    peer: Tuple = ()
    buffer: bytearray = field(default_factory=bytearray)


FrameHandler = Callable[[ClientConnection, FrameKind, bytes], Optional[bytes]]


def next_frame(buffer: bytearray) -> Optional[Tuple[FrameKind, bytes]]:
    """
    Remove and return the next complete frame from a client buffer.

    Returns:
        (kind, frame) or None if more data is needed
    """
    while buffer:
        if len(buffer) >= 4 and buffer[2:4] == b"\x00\x00":
            length = tcp_frame_length(buffer)
            if length is None:
                return None
            if not MBAP_HEADER_SIZE + 1 <= length <= MAX_ADU_SIZE:
                logger.debug(f"Discarding {len(buffer)} bytes with bad MBAP length {length}")
                buffer.clear()
                return None
            if len(buffer) < length:
                return None
            frame = bytes(buffer[:length])
            del buffer[:length]
            return FrameKind.MODBUS, frame

        newline = buffer.find(b"\n")
        if newline >= 0:
            frame = bytes(buffer[:newline])
            del buffer[: newline + 1]
            if frame.strip():
                return FrameKind.JSON, frame
            continue

        # Too short to tell an MBAP header from text
        if len(buffer) < 4:
            return None

        # Unterminated text: the received chunk is one datagram
        frame = bytes(buffer)
        buffer.clear()
        return FrameKind.JSON, frame

    return None


class ConnectionPool:
    """
    Fixed-capacity arena of TCP client connections plus the listening socket.

    Slots are reused: a freed slot is handed to the next accepted client.
    """

    def __init__(self, capacity: int = MAX_TCP_CLIENTS):
        if capacity < 1:
            raise ValueError("Pool capacity must be at least 1")

        self.capacity = capacity
        self.slots: List[Optional[ClientConnection]] = [None] * capacity
        self.listen_sock: Optional[socket.socket] = None

        self.stats = {
            "connections_total": 0,
            "connections_rejected": 0,
            "bytes_received": 0,
            "bytes_sent": 0,
        }

    # ------------------------------------------------------------------
    # Listening socket
    # ------------------------------------------------------------------

    def open(self, host: str, port: int) -> socket.socket:
        """
        Create the non-blocking listening socket.

        Raises:
            OSError: If the socket cannot be bound or put in listen mode
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(LISTEN_BACKLOG)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise

        self.listen_sock = sock
        logger.info(f"TCP server listening on {sock.getsockname()}")
        return sock

    @property
    def is_listening(self) -> bool:
        return self.listen_sock is not None

    @property
    def address(self) -> Optional[Tuple]:
        """Bound (host, port) of the listening socket."""
        return self.listen_sock.getsockname() if self.listen_sock else None

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def occupied(self) -> List[ClientConnection]:
        """Occupied slots in slot order."""
        return [conn for conn in self.slots if conn is not None]

    def __len__(self) -> int:
        return sum(1 for conn in self.slots if conn is not None)

    @property
    def is_full(self) -> bool:
        return len(self) >= self.capacity

    def _free_slot(self) -> Optional[int]:
        for index, conn in enumerate(self.slots):
            if conn is None:
                return index
        return None

    def accept(self) -> Optional[int]:
        """
        Accept one pending connection.

        Returns:
            Slot index of the new client, or None if nothing was accepted
            or the pool is full (the connection is then closed at once)
        """
        if self.listen_sock is None:
            return None

        try:
            sock, peer = self.listen_sock.accept()
        except (BlockingIOError, InterruptedError, ConnectionAbortedError):
            return None
        except OSError as e:
            logger.warning(f"TCP accept failed: {e}")
            return None

        slot = self._free_slot()
        if slot is None:
            sock.close()
            self.stats["connections_rejected"] += 1
            logger.warning(
                f"Max TCP clients reached ({self.capacity}), rejected {peer}"
            )
            return None

        sock.setblocking(False)
        self.slots[slot] = ClientConnection(slot=slot, sock=sock, peer=peer)
        self.stats["connections_total"] += 1
        logger.debug(
            f"TCP client {peer} connected (slot {slot}), total clients: {len(self)}"
        )
        return slot

    def service(self, slot: int, handler: FrameHandler) -> bool:
        """
        Receive from one client and answer every complete frame.

        Args:
            slot: Slot index to service
            handler: Produces the reply bytes for a frame (None = no reply)

        Returns:
            True if the client is still connected afterwards
        """
        conn = self.slots[slot]
        if conn is None:
            return False

        try:
            data = conn.sock.recv(RECV_SIZE)
        except (BlockingIOError, InterruptedError):
            return True
        except OSError as e:
            self.close_slot(slot, f"receive error: {e}")
            return False

        if not data:
            self.close_slot(slot, "peer closed connection")
            return False

        self.stats["bytes_received"] += len(data)
        conn.buffer.extend(data)

        while True:
            frame = next_frame(conn.buffer)
            if frame is None:
                return True

            kind, payload = frame
            reply = handler(conn, kind, payload)
            if not reply:
                continue

            try:
                conn.sock.sendall(reply)
            except OSError as e:
                self.close_slot(slot, f"reply failed: {e}")
                return False
            self.stats["bytes_sent"] += len(reply)

    def close_slot(self, slot: int, reason: str = "closed"):
        """Close a client socket and free its slot."""
        conn = self.slots[slot]
        if conn is None:
            return

        self.slots[slot] = None
        with suppress(OSError):
            conn.sock.close()
        logger.debug(f"TCP client {conn.peer} disconnected (slot {slot}): {reason}")

    def shutdown(self):
        """Close every client and the listening socket."""
        for slot in range(self.capacity):
            self.close_slot(slot, "server stopping")

        if self.listen_sock is not None:
            with suppress(OSError):
                self.listen_sock.close()
            self.listen_sock = None
            logger.info("TCP server stopped")
