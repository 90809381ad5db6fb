"""
Control Channel
===============

Line-delimited JSON on the process's standard streams.

Input is read with os.read() on the raw descriptor rather than through a
buffered text stream: the event loop selects on the descriptor, and a
buffered reader could hold complete lines the selector never reports.
Lines already read but not yet processed are kept here, and the loop
skips its wait while one is pending.

Output is one compact JSON object per line, flushed immediately.

Date: October 2026
License: MIT
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional, TextIO

logger = logging.getLogger(__name__)

READ_SIZE = 4096


class ControlChannel:
    """
    Operator channel: newline-delimited commands in, JSON lines out.

    Attributes:
        input_fd: Descriptor commands are read from
        output: Text stream responses are written to
    """

    def __init__(self, input_fd: Optional[int] = None, output: Optional[TextIO] = None):
        self.input_fd = sys.stdin.fileno() if input_fd is None else input_fd
        self.output = sys.stdout if output is None else output
        self._buffer = bytearray()
        self._eof = False

    def fileno(self) -> int:
        return self.input_fd

    @property
    def eof(self) -> bool:
        """True once the input reached end of file and no line is left."""
        return self._eof and not self.has_pending_line

    @property
    def has_pending_line(self) -> bool:
        if b"\n" in self._buffer:
            return True
        # A final unterminated line still counts once input has ended
        return self._eof and bool(self._buffer.strip())

    def fill(self) -> int:
        """
        Read whatever is available on the input descriptor.

        Call only when the descriptor is readable.

        Returns:
            Number of bytes read (0 on end of file)
        """
        try:
            data = os.read(self.input_fd, READ_SIZE)
        except (BlockingIOError, InterruptedError):
            return 0

        if not data:
            if not self._eof:
                logger.info("Control channel reached end of input")
            self._eof = True
            return 0

        self._buffer.extend(data)
        return len(data)

    def next_line(self) -> Optional[str]:
        """Remove and return the next non-empty command line, if any."""
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                raw = bytes(self._buffer[:newline])
                del self._buffer[: newline + 1]
            elif self._eof and self._buffer:
                raw = bytes(self._buffer)
                self._buffer.clear()
            else:
                return None

            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                return line

    def send(self, payload: Dict[str, Any]):
        """Write one JSON object as a single line."""
        self.output.write(json.dumps(payload, separators=(",", ":")) + "\n")
        self.output.flush()
