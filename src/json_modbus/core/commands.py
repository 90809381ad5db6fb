"""
JSON Command Parsing
====================

Turns one line of JSON text into a typed command.

Control commands:
    {"cmd": "start"} | {"cmd": "stop"} | {"cmd": "status"}

Data-update commands (no "cmd" key):
    {"type": "holding_register", "address": 10, "datatype": "float",
     "value": 1.5, "byte_order": "BE"}

'type' must be present and a string but is otherwise ignored: every data
update targets the holding register table. 'byte_order' is optional
(default LE) and case-insensitive.

Every string in a command is resolved to an enum here; nothing downstream
compares strings again.

Date: October 2026
License: MIT
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Union

from ..errors import InvalidCommandError, InvalidJsonError, UnsupportedDatatypeError
from ..modbus.protocols import ByteOrder, DataType, Number


class ControlAction(Enum):
    START = "start"
    STOP = "stop"
    STATUS = "status"


@dataclass(frozen=True)
class ControlCommand:
    action: ControlAction


@dataclass(frozen=True)
class DataUpdateCommand:
    """Write one value into the holding registers."""

    address: int
    datatype: DataType
    value: Number
    byte_order: ByteOrder = ByteOrder.LE


Command = Union[ControlCommand, DataUpdateCommand]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_control(raw_cmd: Any) -> ControlCommand:
    if not isinstance(raw_cmd, str):
        raise InvalidCommandError(f"'cmd' must be a string, got {raw_cmd!r}")
    try:
        return ControlCommand(ControlAction(raw_cmd))
    except ValueError:
        raise InvalidCommandError(f"Unknown command: {raw_cmd!r}") from None


def _parse_data_update(obj: Dict[str, Any]) -> DataUpdateCommand:
    if not isinstance(obj.get("type"), str):
        raise InvalidCommandError("'type' must be a string")
    if not _is_int(obj.get("address")):
        raise InvalidCommandError("'address' must be an integer")
    if not isinstance(obj.get("datatype"), str):
        raise InvalidCommandError("'datatype' must be a string")
    if not _is_number(obj.get("value")):
        raise InvalidCommandError("'value' must be a number")

    byte_order = ByteOrder.LE
    if "byte_order" in obj:
        try:
            byte_order = ByteOrder.parse(obj["byte_order"])
        except ValueError as e:
            raise InvalidCommandError(str(e)) from None

    try:
        datatype = DataType(obj["datatype"])
    except ValueError:
        raise UnsupportedDatatypeError(
            f"Unsupported datatype: {obj['datatype']!r}"
        ) from None

    value = obj["value"]
    if datatype.is_integer and isinstance(value, float) and not math.isfinite(value):
        raise InvalidCommandError(f"{datatype.value} value must be finite")

    return DataUpdateCommand(
        address=obj["address"],
        datatype=datatype,
        value=value,
        byte_order=byte_order,
    )


def parse_command(text: str) -> Command:
    """
    Parse one JSON command.

    Raises:
        InvalidJsonError: Text is not valid JSON
        InvalidCommandError: Not an object, unknown cmd, missing or mistyped field
        UnsupportedDatatypeError: Unknown datatype name
    """
    try:
        obj = json.loads(text)
    except (ValueError, RecursionError):
        raise InvalidJsonError("Malformed JSON") from None

    if not isinstance(obj, dict):
        raise InvalidCommandError("Command must be a JSON object")

    if "cmd" in obj:
        return _parse_control(obj["cmd"])
    return _parse_data_update(obj)
