"""
Event bus: one ordered queue, one consumer.

Trade ticks, order-status pushes and exchange call completions come from
independent tasks. Producers only enqueue; run() takes one event at a time
and calls its handlers to completion before looking at the next, so
PositionState is only ever written from here.

A handler that raises ends run() with that exception: every error the bot
can raise is fatal to the position.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

log = logging.getLogger("ocobot")


class EventType(Enum):
    POSITION_START = auto()   # place the entry (or the exits of a held position)
    PRICE_QUOTED = auto()     # current price, for the entry trigger decision
    PRICE_TICK = auto()       # trade stream
    ORDER_UPDATE = auto()     # user data stream
    ORDER_PLACED = auto()     # place call completed
    ORDER_CANCELLED = auto()  # cancel call completed
    GATEWAY_ERROR = auto()    # an exchange call or stream failed


@dataclass
class Event:
    type: EventType
    data: Dict[str, Any]
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    source: Optional[str] = None

    def __str__(self) -> str:
        return f"Event({self.type.name}, ts={self.timestamp_ms}, source={self.source})"


Handler = Callable[[Event], Union[None, Awaitable[None]]]


@dataclass
class Subscription:
    handler: Handler
    priority: int = 0  # higher runs first
    name: Optional[str] = None


class EventBus:
    """
    Usage:
        bus = EventBus()
        bus.subscribe(EventType.PRICE_TICK, lambda e: monitor.on_tick(e.data["tick"]))
        bus.emit(EventType.PRICE_TICK, source="trade_stream", tick=tick)
        await bus.run(until=lambda: state.is_terminal)
    """

    DEFAULT_HISTORY_SIZE = 200

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._handlers: Dict[EventType, List[Subscription]] = {}
        # None is the wake-up sentinel pushed by stop()
        self._queue: asyncio.Queue[Optional[Event]] = asyncio.Queue()
        self._running = False
        self._history: Deque[Event] = deque(maxlen=max(history_size, 0))
        self._published = 0
        self._processed = 0
        self._high_water = 0

    # ----- handlers -----

    def subscribe(
        self,
        event_type: EventType,
        handler: Handler,
        priority: int = 0,
        name: Optional[str] = None,
    ) -> Subscription:
        """Register a sync or async handler; equal priorities keep subscription order."""
        sub = Subscription(handler=handler, priority=priority, name=name)
        subs = self._handlers.setdefault(event_type, [])
        position = next((i for i, s in enumerate(subs) if s.priority < priority), len(subs))
        subs.insert(position, sub)
        log.debug("event_bus_subscribe type=%s handler=%s", event_type.name, name or handler)
        return sub

    def unsubscribe(self, event_type: EventType, subscription: Subscription) -> bool:
        subs = self._handlers.get(event_type, [])
        if subscription not in subs:
            return False
        subs.remove(subscription)
        return True

    # ----- producers -----

    def publish(self, event: Event) -> None:
        """Enqueue without blocking; callable from any task on the loop."""
        self._queue.put_nowait(event)
        self._published += 1
        self._high_water = max(self._high_water, self._queue.qsize())

    def emit(self, event_type: EventType, source: Optional[str] = None, **data: Any) -> None:
        self.publish(Event(type=event_type, data=data, source=source))

    # ----- consumer -----

    async def run(self, until: Optional[Callable[[], bool]] = None) -> None:
        """Handle events until `until()` holds between events or stop() is called."""
        self._running = True
        try:
            while self._running and not (until is not None and until()):
                event = await self._queue.get()
                if event is None:
                    break
                await self._dispatch(event)
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False
        self._queue.put_nowait(None)

    async def drain(self) -> int:
        """Handle whatever is queued right now and return how many events ran (tests)."""
        handled = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                await self._dispatch(event)
                handled += 1
        return handled

    async def _dispatch(self, event: Event) -> None:
        if self._history.maxlen:
            self._history.append(event)
        for sub in list(self._handlers.get(event.type, ())):
            result = sub.handler(event)
            if asyncio.iscoroutine(result):
                await result
        self._processed += 1

    # ----- introspection -----

    @property
    def running(self) -> bool:
        return self._running

    def get_history(self, event_type: Optional[EventType] = None, limit: int = 100) -> List[Event]:
        events = [e for e in self._history if event_type is None or e.type == event_type]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "events_published": self._published,
            "events_processed": self._processed,
            "queue_high_water": self._high_water,
            "queue_size": self._queue.qsize(),
            "history_size": len(self._history),
            "subscriber_count": sum(len(s) for s in self._handlers.values()),
            "running": self._running,
        }
