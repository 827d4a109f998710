"""
Process-wide publish/subscribe mediator.

Handlers are invoked with the emitted :class:`Event`. Every handler runs inside
its own isolation boundary: a failure is logged and never reaches the publisher
or sibling handlers.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .events import Event, make_event

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], Union[None, Awaitable[None]]]


class Subscription:
    """Owned handle for one handler registration.

    Calling the handle (or ``unsubscribe()``) removes exactly that registration.
    Releasing twice is a no-op.
    """

    def __init__(self, bus: "EventBus", event_type: str, handler: EventHandler):
        self.bus = bus
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.bus._remove(self.event_type, self.handler)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False


class EventBus:
    def __init__(self):
        self.handlers: Dict[str, List[EventHandler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event_type: str, handler: EventHandler) -> Subscription:
        """Register ``handler`` for ``event_type`` and return its handle."""
        self.handlers.setdefault(event_type, []).append(handler)
        return Subscription(self, event_type, handler)

    def _remove(self, event_type: str, handler: EventHandler) -> None:
        handlers = self.handlers.get(event_type)
        if not handlers:
            return
        for i, registered in enumerate(handlers):
            if registered is handler:
                del handlers[i]
                break
        if not handlers:
            del self.handlers[event_type]

    def emit(self, event: Event) -> None:
        """Dispatch ``event`` to every handler currently registered for its type.

        Does not wait for handlers. Coroutine handlers are scheduled as tasks on
        the running loop.
        """
        logger.debug(f"[EventBus] {event.type}")

        # Snapshot so handlers may unsubscribe while we iterate
        for handler in list(self.handlers.get(event.type, ())):
            try:
                result = handler(event)
            except Exception:
                logger.exception(f"Error in event handler for {event.type}")
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def publish(self, event_type: str, payload: Any = None) -> Event:
        """Build an event with the current timestamp, emit it and return it."""
        event = make_event(event_type, payload)
        self.emit(event)
        return event

    def _schedule(self, event: Event, awaitable: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(f"Dropped async handler for {event.type}: no running event loop")
            return

        task = asyncio.ensure_future(awaitable, loop=loop)

        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    f"Error in event handler for {event.type}: {exc}",
                    exc_info=(type(exc), exc, exc.__traceback__),
                )

        task.add_done_callback(_done)

    async def join(self) -> None:
        """Wait until every in-flight handler task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def subscriber_count(self, event_type: str) -> int:
        return len(self.handlers.get(event_type, ()))


_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Return the process-wide bus, creating it on first use."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus
