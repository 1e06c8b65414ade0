from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, Dict, List, Protocol, Set, Union

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]

GIFT_EVENT = "gift"


class EventSink(Protocol):
    """Anything a room connection can report domain events to."""

    def emit(self, event: str, payload: Any) -> None: ...


class EventBus:
    """
    Fan-in pub/sub shared by many room connections.

    `emit` never blocks and never raises into the emitting connection: plain
    handlers run inline, coroutine handlers are scheduled as tasks, and every
    subscriber queue receives each payload in emission order.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._queues: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribe(self, event: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[event].append(queue)
        return queue

    def unsubscribe(self, event: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(event, [])
        if queue in queues:
            queues.remove(queue)

    def emit(self, event: str, payload: Any) -> None:
        for queue in list(self._queues.get(event, ())):
            queue.put_nowait(payload)
        for handler in list(self._handlers.get(event, ())):
            result = None
            try:
                result = handler(payload)
                if not inspect.isawaitable(result):
                    continue
                task = asyncio.ensure_future(result)
            except Exception as exc:
                if inspect.iscoroutine(result):
                    result.close()
                logger.exception("Handler error for %s: %s", event, exc)
                continue
            self._tasks.add(task)
            task.add_done_callback(self._forget)

    async def drain(self) -> None:
        """Wait for coroutine handlers scheduled so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async event handler failed: %s", task.exception())


__all__ = ["EventBus", "EventHandler", "EventSink", "GIFT_EVENT"]
