"""
RTU Link Manager
================

Owns the single serial descriptor used for Modbus RTU.

Link states:
    DOWN -> connect()/reconnect() -> UP
    UP   -> I/O error             -> DOWN

While DOWN the event loop calls reconnect() once per iteration, with no
backoff and no retry ceiling.

Serial reads use a bounded timeout so one I/O attempt never blocks the
event loop longer than its polling granularity. RTU frames are delimited
by their function code layout, or by line silence (an empty read) when
the layout is unknown.

Date: October 2026
License: MIT
"""

import logging
from contextlib import suppress
from typing import Callable, Optional

import serial

from ..config import SerialConfig
from ..modbus.engine import MAX_ADU_SIZE, rtu_request_length

logger = logging.getLogger(__name__)

RtuFrameHandler = Callable[[bytes], Optional[bytes]]


class RtuLink:
    """
    Serial Modbus RTU link with auto-reconnect.

    Attributes:
        config: Serial line settings
        port: Open pyserial port, or None while the link is down
    """

    def __init__(self, config: SerialConfig, serial_factory=serial.Serial):
        """
        Initialize the link (does not open the port).

        Args:
            config: Serial line settings
            serial_factory: Callable building an open serial port; tests
                substitute a fake here
        """
        self.config = config
        self._serial_factory = serial_factory
        self.port: Optional[serial.Serial] = None
        self._buffer = bytearray()

        self.stats = {
            "frames_received": 0,
            "frames_answered": 0,
            "link_failures": 0,
            "reconnects": 0,
        }

    @property
    def is_up(self) -> bool:
        return self.port is not None

    def fileno(self) -> int:
        if self.port is None:
            raise ValueError("RTU link is down")
        return self.port.fileno()

    def _open(self) -> serial.Serial:
        return self._serial_factory(
            port=self.config.device,
            baudrate=self.config.baudrate,
            bytesize=self.config.data_bits,
            parity=self.config.parity,
            stopbits=self.config.stop_bits,
            timeout=self.config.timeout_sec,
            write_timeout=self.config.timeout_sec,
        )

    def connect(self) -> bool:
        """
        Open the serial device.

        Returns:
            True if the link is up
        """
        if self.port is not None:
            return True

        try:
            self.port = self._open()
        except (serial.SerialException, OSError, ValueError) as e:
            logger.error(f"RTU connect failed on {self.config.device}: {e}")
            self.port = None
            return False

        self._buffer.clear()
        logger.info(
            f"RTU connected on {self.config.device} "
            f"({self.config.baudrate} {self.config.data_bits}"
            f"{self.config.parity}{self.config.stop_bits})"
        )
        return True

    def reconnect(self) -> bool:
        """
        Make one reconnection attempt.

        Failure is logged only; the caller simply tries again next iteration.

        Returns:
            True if the link is up afterwards
        """
        if self.port is not None:
            return True

        logger.debug(f"Attempting to reconnect RTU on {self.config.device}")
        try:
            self.port = self._open()
        except (serial.SerialException, OSError, ValueError) as e:
            logger.debug(f"RTU reconnect failed: {e}")
            self.port = None
            return False

        self._buffer.clear()
        self.stats["reconnects"] += 1
        logger.info(f"RTU reconnected on {self.config.device}")
        return True

    def _take_frame(self, complete_only: bool) -> Optional[bytes]:
        """Split the next frame off the receive buffer."""
        expected = rtu_request_length(self._buffer)
        if expected is not None and len(self._buffer) >= expected:
            frame = bytes(self._buffer[:expected])
            del self._buffer[:expected]
            return frame

        if complete_only or not self._buffer:
            return None

        frame = bytes(self._buffer)
        self._buffer.clear()
        return frame

    def _read_frame(self) -> Optional[bytes]:
        """Read one request frame; None if the line was idle."""
        chunk = self.port.read(self.port.in_waiting or 1)
        if not chunk:
            # Silence: flush a leftover partial frame, if any
            return self._take_frame(complete_only=False)
        self._buffer.extend(chunk)

        while len(self._buffer) < MAX_ADU_SIZE:
            expected = rtu_request_length(self._buffer)
            if expected is not None and len(self._buffer) >= expected:
                break

            wanted = expected - len(self._buffer) if expected else 1
            more = self.port.read(max(wanted, self.port.in_waiting))
            if not more:
                # Line silence ends the frame
                break
            self._buffer.extend(more)

        return self._take_frame(complete_only=False)

    def service(self, handler: RtuFrameHandler) -> bool:
        """
        Receive requests and write the replies, if any.

        Every complete frame already buffered is answered in the same call.

        Args:
            handler: Produces the reply ADU for a request ADU

        Returns:
            True if the link is still up afterwards
        """
        if self.port is None:
            return False

        try:
            frame = self._read_frame()
            while frame is not None:
                self.stats["frames_received"] += 1
                reply = handler(frame)
                if reply:
                    self.port.write(reply)
                    self.stats["frames_answered"] += 1
                frame = self._take_frame(complete_only=True)
        except (serial.SerialException, OSError) as e:
            self.teardown(f"I/O error: {e}")
            return False

        return True

    def teardown(self, reason: str = "closed"):
        """Close the port and mark the link down."""
        if self.port is None:
            return

        port, self.port = self.port, None
        self._buffer.clear()
        with suppress(serial.SerialException, OSError):
            port.close()

        self.stats["link_failures"] += 1
        logger.warning(f"RTU link down: {reason}")

    def shutdown(self):
        """Close the port if open (normal server stop)."""
        if self.port is None:
            return

        port, self.port = self.port, None
        self._buffer.clear()
        with suppress(serial.SerialException, OSError):
            port.close()
        logger.info(f"RTU link on {self.config.device} closed")
