"""In-process named publish/subscribe bus."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """
    Named event channel decoupling transport, router and command handling.

    Handlers run in subscription order for every emission. Synchronous
    handlers run inline; coroutine handlers are scheduled as tasks that the
    bus keeps track of until they finish. A failing handler is logged and
    never affects the others.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def subscribe(self, name: str, handler: Handler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))

    def emit(self, name: str, payload: Any = None) -> list[asyncio.Task[None]]:
        """Fire-and-forget emission. Requires a running loop for async handlers."""
        scheduled: list[asyncio.Task[None]] = []
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(payload)
            except Exception as e:
                logger.error(f"Error in handler for '{name}': {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._guard(name, result))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                scheduled.append(task)
        return scheduled

    async def dispatch(self, name: str, payload: Any = None) -> None:
        """Invoke handlers one after another, awaiting each of them."""
        for handler in list(self._handlers.get(name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in handler for '{name}': {e}")

    async def drain(self) -> None:
        """Wait for every task scheduled by emit() so far (and their children)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _guard(self, name: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in handler for '{name}': {e}")
