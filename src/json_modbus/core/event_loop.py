"""
Event Loop
==========

Single-threaded readiness loop driving every I/O source of the server.

Each iteration:
    1. Build the readiness set: control channel, plus (only while RUNNING)
       the TCP listener, every occupied client slot and the RTU port
    2. Wait at most poll_timeout_sec (0 if a control line is already buffered)
    3. In order:
       (a) process at most one control-channel command
       (b) apply a pending lifecycle transition
       (c) accept at most one TCP connection
       (d) service every ready TCP client
       (e) service the RTU link if ready, or try one reconnect if down
    4. Apply transitions requested by TCP clients during (d)

Order (a)-(e) matters: a command's effect is visible to the transport I/O
of the same iteration.

The bounded wait keeps RTU reconnection and signal handling going even
without any I/O activity. Signal handlers only set
ServerContext.shutdown_requested; the loop does the rest.

Date: October 2026
License: MIT
"""

import logging
import selectors
import time
from dataclasses import dataclass
from typing import Hashable, List, Optional, Set, Tuple

from ..config import ServerConfig
from ..transport.tcp_pool import ClientConnection, FrameKind
from .control_channel import ControlChannel
from .interpreter import CommandInterpreter, CommandSource, encode_response
from .lifecycle import ServerController

logger = logging.getLogger(__name__)

CONTROL = "control"
LISTENER = "listener"
RTU = "rtu"


def _descriptor(fileobj) -> int:
    if isinstance(fileobj, int):
        return fileobj
    try:
        return fileobj.fileno()
    except (ValueError, OSError):
        return -1


@dataclass
class ServerContext:
    """
    Process-wide runtime state shared by the loop and the signal handlers.

    Attributes:
        running: Loop keeps iterating while True
        shutdown_requested: Set from signal handlers only
        ignore_eof: Keep running after the control channel reaches EOF
    """

    config: ServerConfig
    controller: ServerController
    channel: ControlChannel
    running: bool = True
    shutdown_requested: bool = False
    ignore_eof: bool = False

    def request_exit(self):
        self.running = False


class EventLoop:
    """Cooperative loop multiplexing the control channel and both transports."""

    def __init__(self, context: ServerContext, selector_factory=selectors.DefaultSelector):
        self.context = context
        self.interpreter = CommandInterpreter(context.controller, context.request_exit)
        self._selector = selector_factory()
        self.iterations = 0

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def _sources(self) -> List[Tuple[object, Hashable]]:
        """(file object, tag) pairs to wait on this iteration."""
        context = self.context
        controller = context.controller
        sources: List[Tuple[object, Hashable]] = []

        if not context.channel.eof:
            sources.append((context.channel.fileno(), CONTROL))

        if controller.is_running:
            pool = controller.tcp_pool
            if pool.is_listening:
                sources.append((pool.listen_sock, LISTENER))
            for conn in pool.occupied():
                sources.append((conn.sock, ("client", conn.slot)))
            if controller.rtu_link.is_up:
                sources.append((controller.rtu_link, RTU))

        return sources

    def _sync_selector(self, sources: List[Tuple[object, Hashable]]) -> Set[Hashable]:
        """
        Bring the selector registrations in line with this iteration's sources.

        Returns:
            Tags of sources that cannot be selected on
        """
        wanted = {tag: fileobj for fileobj, tag in sources}

        # Unregister by descriptor: a closed socket or reopened port no longer
        # reports the descriptor it was registered under
        for key in list(self._selector.get_map().values()):
            fileobj = wanted.get(key.data)
            if fileobj != key.fileobj or _descriptor(fileobj) != key.fd:
                self._selector.unregister(key.fd)

        registered = {key.data for key in self._selector.get_map().values()}
        unselectable: Set[Hashable] = set()
        for tag, fileobj in wanted.items():
            if tag in registered:
                continue
            try:
                self._selector.register(fileobj, selectors.EVENT_READ, tag)
            except (ValueError, OSError) as e:
                # Not selectable (e.g. serial port without a descriptor):
                # poll it every iteration instead
                logger.debug(f"Cannot select on {tag}: {e}")
                unselectable.add(tag)
        return unselectable

    def _wait(self) -> Set[Hashable]:
        """Block until a source is readable or the poll timeout elapses."""
        context = self.context
        timeout = 0 if context.channel.has_pending_line else context.config.poll_timeout_sec
        ready = self._sync_selector(self._sources())

        if not self._selector.get_map():
            time.sleep(timeout)
            return ready

        events = self._selector.select(timeout)
        ready.update(key.data for key, _ in events)
        return ready

    def close(self):
        """Release the selector."""
        self._selector.close()

    # ------------------------------------------------------------------
    # Frame routing
    # ------------------------------------------------------------------

    def _handle_tcp_frame(
        self, conn: ClientConnection, kind: FrameKind, payload: bytes
    ) -> Optional[bytes]:
        if kind is FrameKind.MODBUS:
            engine = self.context.controller.engine
            if engine is None:
                return None
            return engine.handle_tcp_frame(payload)

        response = self.interpreter.handle_bytes(payload, CommandSource.TCP)
        return encode_response(response)

    def _handle_rtu_frame(self, adu: bytes) -> Optional[bytes]:
        engine = self.context.controller.engine
        if engine is None:
            return None
        return engine.handle_rtu_frame(adu)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def _process_control(self, readable: bool):
        context = self.context
        channel = context.channel

        if readable:
            channel.fill()

        line = channel.next_line()
        if line is not None:
            channel.send(self.interpreter.handle_text(line, CommandSource.CONTROL))
        elif channel.eof and not context.ignore_eof and context.running:
            logger.info("Control channel closed, shutting down")
            context.request_exit()

    def _service_transports(self, ready: Set[Hashable]):
        controller = self.context.controller
        pool = controller.tcp_pool

        # (c) at most one accept per iteration
        if LISTENER in ready:
            pool.accept()

        # (d)
        for tag in ready:
            if isinstance(tag, tuple) and tag[0] == "client":
                pool.service(tag[1], self._handle_tcp_frame)

        # (e)
        if not self.context.config.enable_rtu:
            return
        link = controller.rtu_link
        if link.is_up:
            if RTU in ready:
                link.service(self._handle_rtu_frame)
        else:
            link.reconnect()

    def run_once(self):
        """Execute one loop iteration."""
        context = self.context
        controller = context.controller

        ready = self._wait()
        self.iterations += 1

        if context.shutdown_requested:
            logger.info("Shutdown signal received, stopping server")
            controller.force_stop()
            context.request_exit()
            return

        # (a)
        self._process_control(CONTROL in ready)

        # (b)
        controller.apply_pending()

        if controller.is_running:
            self._service_transports(ready)

        controller.apply_pending()

    def run(self):
        """Announce readiness and iterate until the running flag clears."""
        context = self.context
        context.channel.send({"ready": True})
        logger.info("Event loop started")

        try:
            while context.running:
                self.run_once()
        finally:
            context.controller.force_stop()
            self.close()
            logger.info(f"Event loop exited after {self.iterations} iterations")
