"""
Core Runtime Package
====================

Everything that decides what happens, and when:
- lifecycle.py: STOPPED/RUNNING state machine owning all resources
- commands.py: JSON command parsing into typed commands
- interpreter.py: Command execution and JSON responses
- control_channel.py: stdin/stdout line protocol
- event_loop.py: Single-threaded readiness loop

Date: October 2026
License: MIT
"""

from .commands import (
    ControlAction,
    ControlCommand,
    DataUpdateCommand,
    parse_command,
)
from .control_channel import ControlChannel
from .event_loop import EventLoop, ServerContext
from .interpreter import CommandInterpreter, CommandSource
from .lifecycle import ServerController, ServerState

__all__ = [
    # Commands
    "ControlAction",
    "ControlCommand",
    "DataUpdateCommand",
    "parse_command",
    "CommandInterpreter",
    "CommandSource",
    # Lifecycle
    "ServerController",
    "ServerState",
    # Runtime
    "ControlChannel",
    "EventLoop",
    "ServerContext",
]
