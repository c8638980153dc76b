# duplex_chat/appstatus.py
import logging
import signal
import threading
from typing import Callable, Iterable, Optional

import anyio

logger = logging.getLogger(__name__)

DEFAULT_EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class AppStatus:
    """Process-wide shutdown flag that turns SIGINT/SIGTERM into a clean exit."""

    should_exit = False
    should_exit_event: Optional[anyio.Event] = None
    _shutdown_callbacks: list[Callable[[], None]] = []
    _lock = threading.RLock()

    @classmethod
    def handle_exit(cls, signum: Optional[int] = None) -> None:
        """
        Set shutdown flags, wake the exit listener and run shutdown callbacks.

        Must be called from the event loop thread.

        Args:
            signum: Signal number that triggered the exit, if any
        """
        logger.debug("AppStatus.handle_exit called for signal %s", signum)
        cls.should_exit = True

        if cls.should_exit_event is not None:
            cls.should_exit_event.set()

        with cls._lock:
            callbacks = list(cls._shutdown_callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in shutdown callback: {e}")

    @classmethod
    def add_shutdown_callback(cls, callback: Callable[[], None]) -> None:
        """Add a callback to be executed on shutdown."""
        with cls._lock:
            cls._shutdown_callbacks.append(callback)

    @classmethod
    def remove_shutdown_callback(cls, callback: Callable[[], None]) -> None:
        with cls._lock:
            if callback in cls._shutdown_callbacks:
                cls._shutdown_callbacks.remove(callback)

    @classmethod
    def reset(cls) -> None:
        """Reset AppStatus state (useful for testing)."""
        cls.should_exit = False
        cls.should_exit_event = None
        cls._shutdown_callbacks.clear()

    @staticmethod
    async def listen_for_exit_signal(
        signals: Iterable[int] = DEFAULT_EXIT_SIGNALS,
    ) -> None:
        """Return once an exit signal arrives or ``handle_exit`` is called."""
        # Check if should_exit was set before anybody started waiting
        if AppStatus.should_exit:
            return

        if AppStatus.should_exit_event is None:
            AppStatus.should_exit_event = anyio.Event()
        exit_event = AppStatus.should_exit_event

        with anyio.open_signal_receiver(*signals) as received:
            async with anyio.create_task_group() as task_group:

                async def watch_signals() -> None:
                    async for signum in received:
                        logger.debug(
                            "Received signal %s, initiating graceful shutdown", signum
                        )
                        AppStatus.handle_exit(signum)
                        return

                task_group.start_soon(watch_signals)
                await exit_event.wait()
                task_group.cancel_scope.cancel()
