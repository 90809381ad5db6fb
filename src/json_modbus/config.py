"""
Server Configuration
====================

Dataclass configuration for the JSON Modbus server and the JSON
configuration file loader.

Configuration file format:

    {
        "mode": "tcp+rtu",
        "host": "0.0.0.0",
        "tcp_port": 1502,
        "unit_id": 1,
        "serial": {"device": "/dev/ttyUSB0", "baudrate": 9600,
                   "parity": "N", "data_bits": 8, "stop_bits": 1},
        "coils": {"start_address": 0, "count": 100},
        "input_bits": [0, 100],
        "holding_registers": {"start_address": 0, "count": 100},
        "input_registers": {"start_address": 0, "count": 100}
    }

Every key is optional. Register blocks accept either an object with
'start_address'/'count' or a [start, count] pair.

Date: October 2026
License: MIT
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

from .errors import ConfigError

logger = logging.getLogger(__name__)

MODBUS_ADDRESS_SPACE = 65536

DEFAULT_CONFIG_FILE = "modbus_config.json"


@dataclass(frozen=True)
class RegisterBlock:
    """Absolute start address and size of one register table."""

    start_address: int = 0
    count: int = 0

    def validate(self, name: str):
        """Validate block bounds against the 16-bit Modbus address space."""
        if not 0 <= self.start_address < MODBUS_ADDRESS_SPACE:
            raise ConfigError(
                f"{name}: start_address {self.start_address} out of range [0, 65535]"
            )
        if not 0 <= self.count <= MODBUS_ADDRESS_SPACE:
            raise ConfigError(f"{name}: count {self.count} out of range [0, 65536]")
        if self.start_address + self.count > MODBUS_ADDRESS_SPACE:
            raise ConfigError(f"{name}: block exceeds the Modbus address space")


@dataclass
class SerialConfig:
    """Serial line settings for the RTU link."""

    device: str = "/dev/ttyUSB0"
    baudrate: int = 9600
    parity: str = "N"
    data_bits: int = 8
    stop_bits: int = 1

    # Bounded so one serial I/O attempt cannot stall the event loop
    timeout_sec: float = 0.1

    def validate(self):
        """Validate serial line parameters."""
        if self.baudrate <= 0:
            raise ConfigError(f"Invalid baudrate: {self.baudrate}")
        if self.parity not in ("N", "E", "O"):
            raise ConfigError(f"Invalid parity: {self.parity!r} (expected N, E or O)")
        if self.data_bits not in (5, 6, 7, 8):
            raise ConfigError(f"Invalid data_bits: {self.data_bits}")
        if self.stop_bits not in (1, 2):
            raise ConfigError(f"Invalid stop_bits: {self.stop_bits}")


@dataclass
class ServerConfig:
    """Configuration for the JSON Modbus server."""

    enable_tcp: bool = True
    enable_rtu: bool = False

    host: str = "0.0.0.0"
    tcp_port: int = 1502
    unit_id: int = 1

    serial: SerialConfig = field(default_factory=SerialConfig)

    coils: RegisterBlock = field(default_factory=RegisterBlock)
    discrete_inputs: RegisterBlock = field(default_factory=RegisterBlock)
    holding_registers: RegisterBlock = field(default_factory=RegisterBlock)
    input_registers: RegisterBlock = field(default_factory=RegisterBlock)

    # Event loop tuning
    poll_timeout_sec: float = 0.1
    max_tcp_clients: int = 10

    def validate(self):
        """Validate the complete configuration."""
        if not 1 <= self.tcp_port <= 65535:
            raise ConfigError(f"Invalid tcp_port: {self.tcp_port}")
        if not 0 <= self.unit_id <= 247:
            raise ConfigError(f"Invalid unit_id: {self.unit_id}")
        if self.max_tcp_clients < 1:
            raise ConfigError("max_tcp_clients must be at least 1")

        self.serial.validate()
        for name, block in self.register_blocks().items():
            block.validate(name)

    def register_blocks(self) -> Dict[str, RegisterBlock]:
        """Register blocks keyed by their configuration name."""
        return {
            "coils": self.coils,
            "input_bits": self.discrete_inputs,
            "holding_registers": self.holding_registers,
            "input_registers": self.input_registers,
        }


def _require_int(raw: Dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    return value


def _parse_block(raw: Any, name: str) -> RegisterBlock:
    """Parse a register block from object or [start, count] form."""
    if isinstance(raw, dict):
        start = _require_int(raw, "start_address", 0)
        count = _require_int(raw, "count", 0)
    elif isinstance(raw, list) and len(raw) >= 2:
        start, count = raw[0], raw[1]
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (start, count)):
            raise ConfigError(f"{name}: [start, count] must be integers")
    else:
        raise ConfigError(f"{name}: expected object or [start, count] pair")

    return RegisterBlock(start_address=start, count=count)


def _parse_mode(mode: Any) -> Tuple[bool, bool]:
    if not isinstance(mode, str):
        raise ConfigError(f"'mode' must be a string, got {mode!r}")
    mode = mode.lower()
    return "tcp" in mode, "rtu" in mode


def config_from_dict(raw: Dict[str, Any]) -> ServerConfig:
    """Build and validate a ServerConfig from parsed JSON."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a JSON object")

    config = ServerConfig()

    if "mode" in raw:
        config.enable_tcp, config.enable_rtu = _parse_mode(raw["mode"])

    if "host" in raw:
        if not isinstance(raw["host"], str):
            raise ConfigError("'host' must be a string")
        config.host = raw["host"]

    config.tcp_port = _require_int(raw, "tcp_port", config.tcp_port)
    config.unit_id = _require_int(raw, "unit_id", config.unit_id)

    serial_raw = raw.get("serial")
    if serial_raw is not None:
        if not isinstance(serial_raw, dict):
            raise ConfigError("'serial' must be an object")
        defaults = SerialConfig()
        parity = serial_raw.get("parity", defaults.parity)
        if not isinstance(parity, str) or not parity:
            raise ConfigError("'serial.parity' must be a non-empty string")
        device = serial_raw.get("device", defaults.device)
        if not isinstance(device, str):
            raise ConfigError("'serial.device' must be a string")
        config.serial = SerialConfig(
            device=device,
            baudrate=_require_int(serial_raw, "baudrate", defaults.baudrate),
            parity=parity[0].upper(),
            data_bits=_require_int(serial_raw, "data_bits", defaults.data_bits),
            stop_bits=_require_int(serial_raw, "stop_bits", defaults.stop_bits),
        )

    if "coils" in raw:
        config.coils = _parse_block(raw["coils"], "coils")
    for key in ("input_bits", "discrete_inputs"):
        if key in raw:
            config.discrete_inputs = _parse_block(raw[key], key)
    if "holding_registers" in raw:
        config.holding_registers = _parse_block(
            raw["holding_registers"], "holding_registers"
        )
    if "input_registers" in raw:
        config.input_registers = _parse_block(raw["input_registers"], "input_registers")

    config.validate()
    return config


def load_config(path: str = DEFAULT_CONFIG_FILE) -> ServerConfig:
    """
    Load server configuration from a JSON file.

    A missing file is not an error: defaults are used, as the server is
    usually driven entirely through the control channel.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return ServerConfig()

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc

    config = config_from_dict(raw)
    logger.debug(f"Config loaded from {config_path}")
    return config
