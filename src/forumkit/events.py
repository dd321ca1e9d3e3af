"""Domain events published by thread mutations.

Dispatch is fire-and-forget: subscribers run in-process, a failing subscriber
is logged and skipped, and nothing is retried.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable

import structlog
from pydantic import BaseModel


class ThreadEvent(BaseModel):
    thread_id: int
    actor_id: int | None = None


class ThreadCreated(ThreadEvent):
    pass


class ThreadUpdated(ThreadEvent):
    pass


class ThreadDeleted(ThreadEvent):
    pass


Subscriber = Callable[[ThreadEvent], None]


class EventDispatcher:
    def __init__(self, log: structlog.stdlib.BoundLogger) -> None:
        self.log = log
        self._subscribers: dict[type[ThreadEvent], list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: type[ThreadEvent], subscriber: Subscriber) -> None:
        """Register *subscriber* for *event_type* and its subclasses."""
        self._subscribers[event_type].append(subscriber)

    def dispatch(self, event: ThreadEvent) -> None:
        name = type(event).__name__
        self.log.info("events.dispatched", event=name, thread_id=event.thread_id, actor_id=event.actor_id)
        for event_type, subscribers in list(self._subscribers.items()):
            if not isinstance(event, event_type):
                continue
            for subscriber in subscribers:
                try:
                    subscriber(event)
                except Exception:
                    log = self.log.bind(event=name, thread_id=event.thread_id)
                    log.exception("events.subscriber_failed")
