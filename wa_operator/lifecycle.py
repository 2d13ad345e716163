"""Process lifecycle: signal handling and ordered shutdown hooks."""

import asyncio
import inspect
import signal
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

ShutdownHook = Callable[[], Awaitable[Any] | Any]


class Lifecycle:
    """
    Collects cleanup hooks and runs them once, newest first.

    Hooks registered later usually depend on earlier ones (the channel
    needs the bus, the snapshot needs the store), so they stop first.
    """

    def __init__(self) -> None:
        self._hooks: list[tuple[str, ShutdownHook]] = []
        self._stopping = False
        self._stop_event = asyncio.Event()

    def on_shutdown(self, name: str, hook: ShutdownHook) -> None:
        self._hooks.append((name, hook))

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    def request_stop(self, reason: str = "signal") -> None:
        if not self._stop_event.is_set():
            logger.info(f"Stop requested ({reason})")
            self._stop_event.set()

    async def wait(self) -> None:
        await self._stop_event.wait()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop, sig.name)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform/loop; KeyboardInterrupt still works.
                pass

    async def shutdown(self, reason: str = "shutdown") -> None:
        if self._stopping:
            return
        self._stopping = True
        self._stop_event.set()
        logger.info(f"Shutting down ({reason}), {len(self._hooks)} hooks")

        for name, hook in reversed(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
                logger.debug(f"Shutdown hook '{name}' done")
            except Exception as e:
                logger.error(f"Shutdown hook '{name}' failed: {e}")
