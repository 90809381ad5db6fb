"""
Exception Taxonomy
==================

Errors raised by the JSON Modbus server.

Command errors carry the wire code reported back to the operator and know
how to render themselves as the JSON error object of the control protocol.
Transport errors are never surfaced to the operator and have no class here:
they are handled where they occur (slot freed, RTU link marked down).

Date: October 2026
License: MIT
"""

from typing import Any, Dict, Optional


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or invalid."""


class ServerStartError(Exception):
    """Raised when STOPPED -> RUNNING cannot allocate its resources."""


class CommandError(Exception):
    """
    Base class for errors reported through the JSON control protocol.

    Attributes:
        code: Wire error code, e.g. 'index_out_of_bounds'
        address: Offending register address, echoed when set
    """

    code = "invalid_command"

    def __init__(self, message: str = "", address: Optional[int] = None):
        super().__init__(message or self.code)
        self.address = address

    def to_response(self) -> Dict[str, Any]:
        """Render as a control-protocol error object."""
        response: Dict[str, Any] = {"error": self.code}
        if self.address is not None:
            response["address"] = self.address
        return response


class InvalidJsonError(CommandError):
    code = "invalid_json"


class InvalidCommandError(CommandError):
    code = "invalid_command"


class UnsupportedDatatypeError(CommandError):
    code = "unsupported_datatype"


class ServerNotRunningError(CommandError):
    code = "server_not_running"


class IndexOutOfBoundsError(CommandError):
    code = "index_out_of_bounds"


class InsufficientSpaceError(CommandError):
    code = "insufficient_space"


class AlreadyInStateError(CommandError):
    """Requested lifecycle state equals the current one."""

    def __init__(self, state_name: str):
        super().__init__(f"Server already {state_name}")
        self.code = f"already_{state_name}"
