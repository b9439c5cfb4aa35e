"""Signal handling for graceful shutdown of the launcher."""

import asyncio
import signal
import threading
from collections.abc import Callable

from .logging import get_logger

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGINT", "SIGTERM", "SIGHUP")
    if hasattr(signal, name)
)


class ShutdownSignalHandler:
    """Routes termination signals to a single shutdown callback.

    The callback runs on the event loop, at most once; later signals are
    logged and ignored.
    """

    def __init__(self, on_shutdown: Callable[[int], object]):
        self.logger = get_logger("cli.signal_handler")
        self.on_shutdown = on_shutdown
        self.shutdown_in_progress = False
        self.lock = threading.Lock()
        self.received_signal: int | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[int] = []
        self._previous: dict[int, object] = {}
        self._uses_loop_handlers = False

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Install handlers for SIGINT, SIGTERM and SIGHUP."""
        self._loop = loop or asyncio.get_running_loop()

        for signum in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(signum, self._handle_signal, signum)
                self._uses_loop_handlers = True
            except (NotImplementedError, RuntimeError):
                # Loops without add_signal_handler (e.g. Windows proactor)
                self._previous[signum] = signal.signal(signum, self._handle_raw_signal)
                self._uses_loop_handlers = False
            self._installed.append(signum)

        self.logger.debug("Signal handlers installed successfully")

    def uninstall(self) -> None:
        """Restore the handlers that were active before ``install``."""
        for signum in self._installed:
            if signum in self._previous:
                signal.signal(signum, self._previous.pop(signum))
            elif self._loop is not None and not self._loop.is_closed():
                self._loop.remove_signal_handler(signum)
        self._installed.clear()
        self.logger.debug("Signal handlers removed")

    def _handle_raw_signal(self, signum: int, frame) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._handle_signal, signum)

    def _handle_signal(self, signum: int) -> None:
        with self.lock:
            if self.shutdown_in_progress:
                self.logger.warning("Shutdown already in progress, ignoring signal")
                return
            self.shutdown_in_progress = True
            self.received_signal = signum

        name = signal.Signals(signum).name
        self.logger.info(f"Received {name}, initiating graceful shutdown")
        self.on_shutdown(signum)

    def is_shutdown_in_progress(self) -> bool:
        return self.shutdown_in_progress


__all__ = [
    "SHUTDOWN_SIGNALS",
    "ShutdownSignalHandler",
]
