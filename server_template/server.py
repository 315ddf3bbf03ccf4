"""
Start the HTTP server with Docker-friendly shutdown handling
Usage: python -m server_template.server
"""
from contextlib import contextmanager
from typing import Callable
import asyncio
import logging
import os
import sys

import uvicorn

from server_template.main import create_app
from server_template.services.connection_tracker import ConnectionTracker, tracking_protocol_class
from server_template.services.shutdown_coordinator import ShutdownCoordinator, terminate_process
from server_template.services.signal_dispatcher import SignalDispatcher
from server_template.utils.config import Settings
from server_template.utils.db import DatabaseClient
from server_template.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


class ManagedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the signal dispatcher"""

    @contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class ServerListener:
    """Listening sockets of a started uvicorn server"""

    def __init__(self, server: uvicorn.Server):
        self.server = server

    def close(self) -> None:
        for listener in self.server.servers:
            listener.close()

    async def wait_closed(self) -> None:
        for listener in self.server.servers:
            await listener.wait_closed()


async def _run_server(server: uvicorn.Server) -> None:
    try:
        await server.serve()
    except SystemExit as e:
        # uvicorn exits with its own status when binding or lifespan startup fails
        logger.error(f"uvicorn stopped during startup (status {e.code})")


async def serve(settings: Settings, exit_process: Callable[[int], None] = terminate_process) -> int:
    database = DatabaseClient(settings.database_url, settings.database_name)
    tracker = ConnectionTracker()
    app = create_app(settings, database=database)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        http=tracking_protocol_class(tracker),
        log_level=settings.log_level.lower(),
    )
    server = ManagedServer(config)
    serving = asyncio.create_task(_run_server(server))

    while not server.started:
        if serving.done():
            await serving
            logger.error("Server failed to start")
            return 1
        await asyncio.sleep(0.05)

    coordinator = ShutdownCoordinator(
        listener=ServerListener(server),
        connections=tracker,
        resource=database,
        timeout=settings.shutdown_timeout,
        exit_process=exit_process,
    )
    dispatcher = SignalDispatcher(coordinator)
    dispatcher.register_default_triggers()
    dispatcher.install()

    logger.info(f"Server is running on port {settings.port} (pid {os.getpid()})")
    try:
        return await coordinator.wait_terminated()
    finally:
        # Only reached when exit_process returns instead of ending the process
        dispatcher.uninstall()
        server.should_exit = True
        await serving


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(serve(settings)))


if __name__ == "__main__":
    main()
