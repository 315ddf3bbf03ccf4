"""
Ordered, deadline-bounded teardown of the HTTP server process.

Container runtimes send SIGTERM, wait a grace period, then SIGKILL. SIGKILL
cannot be intercepted, so the coordinator arms its own deadline and exits on
its own before the supervisor escalates.
"""

from enum import Enum
from typing import Any, Callable, Optional
import asyncio
import logging
import os

from server_template.services.connection_tracker import ConnectionTracker

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 30.0


class ShutdownState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


def terminate_process(code: int) -> None:
    """Flush logs and leave immediately; pending tasks cannot hold the process open"""
    logging.shutdown()
    os._exit(code)


class ShutdownCoordinator:
    """
    Runs the shutdown sequence exactly once per process.

    Collaborators:
        listener: object with close() that stops accepting connections and
            an awaitable wait_closed() that completes once the listener is down
        connections: ConnectionTracker for the listening socket
        resource: external handle with an awaitable disconnect() (database)
        exit_process: called with the final exit code
    """

    def __init__(
        self,
        listener: Any,
        connections: ConnectionTracker,
        resource: Any,
        timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        exit_process: Callable[[int], None] = terminate_process,
    ):
        self.listener = listener
        self.connections = connections
        self.resource = resource
        self.timeout = timeout
        self.exit_process = exit_process

        self._state = ShutdownState.RUNNING
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._exit_code: Optional[int] = None
        self._terminated = asyncio.Event()
        self._sequence: Optional[asyncio.Task] = None
        self._listener_closed: Optional[asyncio.Task] = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def deadline_armed(self) -> bool:
        return self._deadline is not None

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    async def wait_terminated(self) -> int:
        await self._terminated.wait()
        return self._exit_code

    def trigger(self, label: str) -> Optional[asyncio.Task]:
        """
        Start the shutdown sequence.

        Must be called from the event loop thread. The state check and the
        deadline arming both happen before anything is awaited, so a second
        signal landing between suspension points is always rejected here.

        Args:
            label: what caused the shutdown (SIGTERM, uncaughtException, ...),
                used for logging only

        Returns:
            The task running the sequence, or None if shutdown already started
        """
        if self._state is not ShutdownState.RUNNING:
            logger.warning(f"{label} received while {self._state.value}, ignoring")
            return None

        self._state = ShutdownState.SHUTTING_DOWN
        logger.info(f"{label} received, starting graceful shutdown (pid {os.getpid()})")

        loop = asyncio.get_running_loop()
        self._deadline = loop.call_later(self.timeout, self._on_deadline)
        self._sequence = loop.create_task(self._run())
        return self._sequence

    async def _run(self) -> None:
        try:
            self._stop_listener()

            closed = self.connections.force_close_all()
            logger.info(f"Closed {closed} open connection(s)")

            await self.resource.disconnect()
        except Exception as e:
            if self._state is ShutdownState.TERMINATED:
                return
            logger.error(f"Error during graceful shutdown: {e}", exc_info=True)
            self._finish(1)
            return

        if self._state is ShutdownState.TERMINATED:
            return
        logger.info("Graceful shutdown completed")
        self._finish(0)

    def _stop_listener(self) -> None:
        self.listener.close()
        logger.info("Listener closed, no longer accepting connections")

        self._listener_closed = asyncio.ensure_future(self.listener.wait_closed())
        self._listener_closed.add_done_callback(self._on_listener_closed)

    def _on_listener_closed(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Error while closing listener: {exc}")
            self._finish(1)

    def _on_deadline(self) -> None:
        self._deadline = None
        logger.error(f"Shutdown did not complete within {self.timeout} seconds, forcing exit")
        self._finish(1)

    def _finish(self, code: int) -> None:
        if self._state is ShutdownState.TERMINATED:
            return

        self._state = ShutdownState.TERMINATED
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

        self._exit_code = code
        self._terminated.set()
        self.exit_process(code)
