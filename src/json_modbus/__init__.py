"""
JSON Modbus Server
==================

Modbus TCP/RTU slave whose register map is driven by operators through a
line-oriented JSON control protocol on stdin/stdout.

Packages:
- modbus: Register map, value encoding, Modbus protocol engine
- transport: TCP connection pool and RTU serial link
- core: Lifecycle, command interpreter and event loop

Date: October 2026
License: MIT
"""

__version__ = "1.0.0"

from .config import ServerConfig, SerialConfig, RegisterBlock, load_config
from .errors import CommandError, ConfigError, ServerStartError

__all__ = [
    "ServerConfig",
    "SerialConfig",
    "RegisterBlock",
    "load_config",
    "CommandError",
    "ConfigError",
    "ServerStartError",
]
