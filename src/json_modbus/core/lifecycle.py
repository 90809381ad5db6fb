"""
Server Lifecycle
================

STOPPED/RUNNING state machine gating allocation and teardown of every
runtime resource.

    STOPPED -> start() -> RUNNING
        allocate the register map, open the TCP listener (if enabled),
        connect the RTU link (if enabled; failure is not fatal)

    RUNNING -> stop() -> STOPPED
        close all TCP clients and the listener, close the RTU link,
        free the register map

The register map and the transports exist only while RUNNING.

Commands do not transition directly: they record a pending transition
which the event loop applies at a fixed point of its iteration, so a
command's effect is visible before the same iteration services I/O.

Date: October 2026
License: MIT
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import serial

from ..config import ServerConfig
from ..errors import AlreadyInStateError, ServerStartError
from ..modbus.engine import ModbusEngine
from ..modbus.register_map import ModbusRegisterMap
from ..transport.rtu_link import RtuLink
from ..transport.tcp_pool import ConnectionPool

logger = logging.getLogger(__name__)

Notifier = Callable[[Dict[str, Any]], None]


class ServerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ServerController:
    """
    Owner of the register map and of both transports.

    Attributes:
        state: Current lifecycle state
        pending: Transition requested but not applied yet (None if none)
        register_map: Live register map, None while STOPPED
        engine: Modbus engine bound to register_map, None while STOPPED
        tcp_pool: TCP listener and client slots
        rtu_link: Serial RTU link
    """

    def __init__(
        self,
        config: ServerConfig,
        notify: Optional[Notifier] = None,
        serial_factory=serial.Serial,
    ):
        """
        Initialize in the STOPPED state (nothing is allocated).

        Args:
            config: Server configuration
            notify: Receives lifecycle notifications (server_ready, ...)
            serial_factory: Passed through to the RTU link
        """
        self.config = config
        self._notify = notify or (lambda payload: None)

        self.state = ServerState.STOPPED
        self.pending: Optional[ServerState] = None

        self.register_map: Optional[ModbusRegisterMap] = None
        self.engine: Optional[ModbusEngine] = None
        self.tcp_pool = ConnectionPool(config.max_tcp_clients)
        self.rtu_link = RtuLink(config.serial, serial_factory=serial_factory)

    @property
    def is_running(self) -> bool:
        return self.state is ServerState.RUNNING

    @property
    def effective_state(self) -> ServerState:
        """State the server will be in once the pending transition is applied."""
        return self.pending or self.state

    # ------------------------------------------------------------------
    # Requests (recorded, applied later by the event loop)
    # ------------------------------------------------------------------

    def _request(self, target: ServerState):
        if self.effective_state is target:
            raise AlreadyInStateError(target.value)
        self.pending = None if target is self.state else target

    def request_start(self):
        """
        Request STOPPED -> RUNNING.

        Raises:
            AlreadyInStateError: If the server is (or will be) running
        """
        self._request(ServerState.RUNNING)

    def request_stop(self):
        """
        Request RUNNING -> STOPPED.

        Raises:
            AlreadyInStateError: If the server is (or will be) stopped
        """
        self._request(ServerState.STOPPED)

    def apply_pending(self) -> bool:
        """
        Perform the pending transition, if any.

        Returns:
            True if a transition was attempted
        """
        target, self.pending = self.pending, None
        if target is None or target is self.state:
            return False

        if target is ServerState.RUNNING:
            self.start()
        else:
            self.stop()
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Allocate resources and enter RUNNING.

        A failure releases whatever was already allocated, stays STOPPED
        and reports start_failed through the notifier.

        Returns:
            True if the server is now running
        """
        if self.is_running:
            raise AlreadyInStateError(ServerState.RUNNING.value)

        try:
            self._allocate()
        except ServerStartError as e:
            logger.error(f"Server start failed: {e}")
            self._release()
            self._notify({"error": "start_failed", "reason": str(e)})
            return False

        self.state = ServerState.RUNNING
        logger.info(
            f"Server running (tcp={self.config.enable_tcp}, "
            f"rtu={self.config.enable_rtu}, unit_id={self.config.unit_id})"
        )
        self._notify(
            {
                "status": "server_ready",
                "tcp": self.config.enable_tcp,
                "rtu": self.config.enable_rtu,
                "unit_id": self.config.unit_id,
            }
        )
        return True

    def _allocate(self):
        try:
            self.register_map = ModbusRegisterMap.from_config(self.config)
        except (ValueError, MemoryError) as e:
            raise ServerStartError(f"register map allocation failed: {e}") from e
        logger.debug(f"Register map: {self.register_map.describe()}")

        self.engine = ModbusEngine(self.register_map, self.config.unit_id)

        if self.config.enable_tcp:
            try:
                self.tcp_pool.open(self.config.host, self.config.tcp_port)
            except OSError as e:
                raise ServerStartError(
                    f"cannot listen on {self.config.host}:{self.config.tcp_port}: {e}"
                ) from e

        if self.config.enable_rtu and not self.rtu_link.connect():
            logger.warning("RTU link down at start, will keep trying to reconnect")

    def _release(self):
        if self.engine is not None:
            logger.debug(f"Modbus engine stats: {self.engine.get_stats()}")
            self.engine.close()
        self.tcp_pool.shutdown()
        self.rtu_link.shutdown()
        self.engine = None
        self.register_map = None

    def stop(self):
        """Tear down every resource and enter STOPPED."""
        if not self.is_running:
            raise AlreadyInStateError(ServerState.STOPPED.value)

        self._release()
        self.state = ServerState.STOPPED
        logger.info("Server stopped")
        self._notify({"status": "server_stopped"})

    def force_stop(self):
        """Unconditionally end in STOPPED (process shutdown path)."""
        self.pending = None
        if self.is_running:
            self.stop()
