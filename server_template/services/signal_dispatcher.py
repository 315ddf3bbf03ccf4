from enum import Enum
from typing import Any, Callable, Dict, Optional
import asyncio
import logging
import signal
import threading

from server_template.services.shutdown_coordinator import ShutdownCoordinator

logger = logging.getLogger(__name__)


class TriggerSource(str, Enum):
    SIGTERM = "SIGTERM"
    SIGINT = "SIGINT"
    UNCAUGHT_EXCEPTION = "uncaughtException"
    UNHANDLED_REJECTION = "unhandledRejection"


SIGNAL_SOURCES = {
    TriggerSource.SIGTERM: signal.SIGTERM,
    TriggerSource.SIGINT: signal.SIGINT,
}


class SignalDispatcher:
    """
    Maps OS signals and fatal runtime faults onto the shutdown coordinator.

    Bindings are registered explicitly and can be inspected or fired without
    touching real signal delivery. Deduplication of overlapping triggers is
    left to the coordinator's state guard.
    """

    def __init__(
        self,
        coordinator: ShutdownCoordinator,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.coordinator = coordinator
        self.loop = loop
        self._bindings: Dict[TriggerSource, Callable[[], Any]] = {}
        self._installed = False
        self._previous_thread_hook = None
        self._previous_loop_handler = None

    @property
    def bindings(self) -> Dict[TriggerSource, Callable[[], Any]]:
        return dict(self._bindings)

    def on_shutdown_trigger(self, source: TriggerSource, handler: Callable[[], Any]) -> None:
        """Register the single handler for a trigger source"""
        source = TriggerSource(source)
        if source in self._bindings:
            raise ValueError(f"A handler is already registered for {source.value}")
        self._bindings[source] = handler

    def register_default_triggers(self) -> None:
        """Bind every trigger source to the coordinator, labelled with its name"""
        for source in TriggerSource:
            self.on_shutdown_trigger(source, self._make_trigger(source))

    def _make_trigger(self, source: TriggerSource) -> Callable[[], Any]:
        def handler():
            return self.coordinator.trigger(source.value)

        return handler

    def fire(self, source: TriggerSource) -> Any:
        handler = self._bindings.get(TriggerSource(source))
        if handler is None:
            logger.warning(f"No shutdown handler registered for {TriggerSource(source).value}")
            return None
        return handler()

    def install(self) -> None:
        """Attach the registered bindings to the running process"""
        if self._installed:
            return
        loop = self.loop or asyncio.get_running_loop()
        self.loop = loop

        for source, signum in SIGNAL_SOURCES.items():
            if source in self._bindings:
                loop.add_signal_handler(signum, self.fire, source)

        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._handle_thread_exception

        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)

        self._installed = True
        logger.info("Shutdown triggers registered: " + ", ".join(s.value for s in self._bindings))

    def uninstall(self) -> None:
        if not self._installed:
            return

        for source, signum in SIGNAL_SOURCES.items():
            if source in self._bindings:
                self.loop.remove_signal_handler(signum)

        threading.excepthook = self._previous_thread_hook
        self.loop.set_exception_handler(self._previous_loop_handler)
        self._installed = False

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        thread_name = args.thread.name if args.thread else "unknown"
        logger.critical(
            f"Uncaught exception in thread {thread_name}",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.fire, TriggerSource.UNCAUGHT_EXCEPTION)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            loop.default_exception_handler(context)
            return

        if "future" in context or "task" in context:
            source = TriggerSource.UNHANDLED_REJECTION
        else:
            source = TriggerSource.UNCAUGHT_EXCEPTION

        logger.critical(
            f"{source.value}: {context.get('message', 'unhandled error')}",
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        self.fire(source)
