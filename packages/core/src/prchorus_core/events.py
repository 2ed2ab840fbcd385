"""Broadcast channel between dispatchers and their observers.

Every subscriber to an event name receives every published payload; there
is no per-observer filtering. A failing callback is logged and does not
stop delivery to the others or break the publishing job.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class Event:
    name: str
    data: dict[str, Any] = field(default_factory=dict)


class EventBus:
    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Callable[[Event], Any]]] = defaultdict(list)

    def subscribe(self, event_name: str, callback: Callable[[Event], Any]) -> Callable[[], None]:
        """Register callback (plain or async) and return a function that removes it."""
        self._subscriptions[event_name].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscriptions[event_name]:
                self._subscriptions[event_name].remove(callback)

        return unsubscribe

    async def publish(self, event_name: str, data: dict[str, Any] | None = None) -> None:
        event = Event(name=event_name, data=data or {})
        for callback in list(self._subscriptions[event_name]):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("Error in event callback for %s: %s", event_name, e)

    def clear_subscriptions(self, event_name: str | None = None) -> None:
        if event_name:
            self._subscriptions[event_name].clear()
        else:
            self._subscriptions.clear()


class ReviewEvents:
    PROGRESS = "review:progress"
    COMPLETE = "review:complete"
    ERROR = "review:error"
    QUEUE_UPDATE = "review:queue-update"


class ValidationEvents:
    PROGRESS = "validation:progress"
    COMPLETE = "validation:complete"
    ERROR = "validation:error"
    QUEUE_UPDATE = "validation:queue-update"
