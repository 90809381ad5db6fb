"""
JSON Command Interpreter
========================

Executes parsed commands against the server controller and produces
exactly one JSON response object per command.

Responses:
    start   -> {"status": "starting"}  | {"error": "already_running"}
    stop    -> {"status": "stopping"}  | {"error": "already_stopped"}
    status  -> {"status": "running"}   | {"status": "stopped"}
    update  -> {"status": "updated", "address": <int>, "datatype": "<dt>"}
    errors  -> {"error": "<code>"[, "address": <int>]}

The source of a command matters only for 'stop': on the control channel
it also ends the process (and is accepted even if the server is already
stopped), while a TCP client can only stop the server.

Date: October 2026
License: MIT
"""

import json
import logging
from enum import Enum
from typing import Any, Callable, Dict

from ..errors import CommandError, IndexOutOfBoundsError, ServerNotRunningError
from ..modbus.protocols import ModbusEncoder
from .commands import ControlAction, ControlCommand, DataUpdateCommand, parse_command
from .lifecycle import ServerController, ServerState

logger = logging.getLogger(__name__)

Response = Dict[str, Any]


class CommandSource(Enum):
    """Channel a command arrived on (its response goes back there)."""

    CONTROL = "control"
    TCP = "tcp"


def encode_response(response: Response) -> bytes:
    """Serialize a response for a TCP client (newline-terminated)."""
    return (json.dumps(response, separators=(",", ":")) + "\n").encode("utf-8")


class CommandInterpreter:
    """Dispatches JSON commands to the lifecycle controller and register map."""

    def __init__(
        self,
        controller: ServerController,
        request_exit: Callable[[], None] = lambda: None,
    ):
        """
        Args:
            controller: Server lifecycle owner
            request_exit: Called when a control-channel 'stop' ends the process
        """
        self.controller = controller
        self.request_exit = request_exit

        self._control_handlers: Dict[
            ControlAction, Callable[[CommandSource], Response]
        ] = {
            ControlAction.START: self._handle_start,
            ControlAction.STOP: self._handle_stop,
            ControlAction.STATUS: self._handle_status,
        }

        self.stats = {"commands_total": 0, "commands_failed": 0}

    def handle_text(self, text: str, source: CommandSource = CommandSource.CONTROL) -> Response:
        """Parse and execute one command; never raises for bad input."""
        self.stats["commands_total"] += 1
        try:
            command = parse_command(text)
            if isinstance(command, ControlCommand):
                return self._control_handlers[command.action](source)
            return self._handle_update(command)
        except CommandError as e:
            self.stats["commands_failed"] += 1
            logger.debug(f"Command from {source.value} rejected: {e}")
            return e.to_response()

    def handle_bytes(self, data: bytes, source: CommandSource = CommandSource.TCP) -> Response:
        """Same as handle_text for raw bytes received on a socket."""
        return self.handle_text(data.decode("utf-8", errors="replace"), source)

    def _handle_start(self, source: CommandSource) -> Response:
        self.controller.request_start()
        logger.info(f"Start requested ({source.value})")
        return {"status": "starting"}

    def _handle_stop(self, source: CommandSource) -> Response:
        if source is CommandSource.CONTROL:
            if self.controller.effective_state is ServerState.RUNNING:
                self.controller.request_stop()
            logger.info("Stop requested on control channel, exiting")
            self.request_exit()
        else:
            self.controller.request_stop()
            logger.info(f"Stop requested ({source.value})")
        return {"status": "stopping"}

    def _handle_status(self, source: CommandSource) -> Response:
        return {"status": self.controller.state.value}

    def _handle_update(self, command: DataUpdateCommand) -> Response:
        register_map = self.controller.register_map
        if register_map is None:
            raise ServerNotRunningError()

        table = register_map.holding_registers
        if not table.contains(command.address):
            raise IndexOutOfBoundsError(address=command.address)

        words = ModbusEncoder.write_value(
            table,
            table.index_of(command.address),
            command.value,
            command.datatype,
            command.byte_order,
        )
        logger.debug(
            f"HR[{command.address}] <- {command.value} "
            f"({command.datatype.value}, {command.byte_order.value}): {words}"
        )
        return {
            "status": "updated",
            "address": command.address,
            "datatype": command.datatype.value,
        }
