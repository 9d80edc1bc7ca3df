"""
Graceful shutdown - turns SIGINT/SIGTERM into a drain of the listener.
"""
from __future__ import annotations

import asyncio
import signal
from enum import Enum
from typing import Optional

from gateway.logging import get_logger

logger = get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """
    Drives the listener through RUNNING -> DRAINING -> STOPPED.

    The server awaits `wait_for_drain` as its shutdown trigger. Once it
    returns the listening sockets close right away while connections that
    are already serving a request run to completion.
    """

    def __init__(self):
        self.state = ShutdownState.RUNNING
        self.received_signal: Optional[signal.Signals] = None
        self._drain_requested = asyncio.Event()

    def begin_drain(self) -> None:
        """Stop accepting connections. Only the first call has an effect."""
        if self.state is not ShutdownState.RUNNING:
            return
        self.state = ShutdownState.DRAINING
        self._drain_requested.set()
        logger.info("Draining: no new connections, waiting for in-flight requests")

    async def wait_for_drain(self) -> None:
        """Return once draining has begun."""
        await self._drain_requested.wait()

    def mark_stopped(self) -> None:
        """Record that the listener has finished serving."""
        if self.state is ShutdownState.STOPPED:
            return
        self.state = ShutdownState.STOPPED
        logger.info("Server stopped")

    async def watch(self) -> None:
        """
        Wait for the first termination signal, then begin draining.

        Runs as its own task next to the server. Signal handlers are removed
        again when the task ends or is cancelled.
        """
        loop = asyncio.get_running_loop()
        received = asyncio.Event()

        def _on_signal(sig: signal.Signals) -> None:
            if self.received_signal is None:
                self.received_signal = sig
            received.set()

        installed = []
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, _on_signal, sig)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(_on_signal, signal.Signals(signum))
                )
            except (RuntimeError, ValueError) as e:
                # Signals can only be handled from the main thread
                logger.warning(f"Cannot handle {sig.name}: {e}")
            else:
                installed.append(sig)

        try:
            await received.wait()
            logger.info(f"Received {self.received_signal.name}, shutting down gracefully")
            self.begin_drain()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
