from typing import Any, Set, Type
import asyncio
import logging

from uvicorn.protocols.http.h11_impl import H11Protocol

logger = logging.getLogger(__name__)


class ConnectionTracker:
    """
    Keeps the set of transports currently open on the listening socket.

    Handles are anything with an abort() method (asyncio transports). They are
    keyed by identity, so two transports never collide.
    """

    def __init__(self):
        self._connections: Set[Any] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: Any) -> bool:
        return connection in self._connections

    def on_accept(self, connection: Any) -> None:
        self._connections.add(connection)

    def on_close(self, connection: Any) -> None:
        self._connections.discard(connection)

    def force_close_all(self) -> int:
        """
        Abort every tracked transport without waiting for in-flight responses.

        The set is swapped out before aborting, so accept/close callbacks that
        fire while draining never mutate the collection being walked.

        Returns:
            Number of connections that were tracked when draining started
        """
        snapshot = list(self._connections)
        self._connections.clear()

        for connection in snapshot:
            try:
                connection.abort()
            except Exception as e:
                logger.error(f"Failed to abort connection {connection!r}: {e}")

        return len(snapshot)


def tracking_protocol_class(
    tracker: ConnectionTracker, base: Type[asyncio.Protocol] = H11Protocol
) -> Type[asyncio.Protocol]:
    """Build an HTTP protocol class that reports its transport to the tracker"""

    class TrackingProtocol(base):
        def connection_made(self, transport):
            self._tracked_transport = transport
            tracker.on_accept(transport)
            super().connection_made(transport)

        def connection_lost(self, exc):
            tracker.on_close(getattr(self, "_tracked_transport", None))
            super().connection_lost(exc)

    TrackingProtocol.__name__ = f"Tracking{base.__name__}"
    return TrackingProtocol
