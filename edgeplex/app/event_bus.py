from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List

from ..core.events import BaseEvent


class EventSubscription:
    def __init__(
        self,
        queue: asyncio.Queue[BaseEvent | None],
        bus: "EventBus",
        event_types: tuple[type[BaseEvent], ...],
    ) -> None:
        self._queue = queue
        self._bus = bus
        self._event_types = event_types

    def accepts(self, event: BaseEvent) -> bool:
        if not self._event_types:
            return True
        return isinstance(event, self._event_types)

    async def __aiter__(self) -> AsyncIterator[BaseEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
            self._queue.task_done()

    async def put(self, event: BaseEvent | None) -> None:
        await self._queue.put(event)

    async def close(self) -> None:
        await self._queue.put(None)
        self._bus._unsubscribe(self)


class EventBus:
    def __init__(self, maxsize: int = 256) -> None:
        self._subscribers: List[EventSubscription] = []
        self._maxsize = maxsize
        self._closed = False
        self._logger = logging.getLogger("edgeplex.event_bus")

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, *event_types: type[BaseEvent]) -> EventSubscription:
        queue: asyncio.Queue[BaseEvent | None] = asyncio.Queue(maxsize=self._maxsize)
        subscription = EventSubscription(queue, self, tuple(event_types))
        self._subscribers.append(subscription)
        return subscription

    async def publish(self, event: BaseEvent) -> None:
        if self._closed:
            # late browser callbacks may fire while the process is tearing down
            self._logger.debug("dropping event on stopped bus", extra={"event_type": event.event_type})
            return
        targets = [subscription for subscription in list(self._subscribers) if subscription.accepts(event)]
        await asyncio.gather(*(subscription.put(event) for subscription in targets))

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            await subscription.put(None)

    def _unsubscribe(self, subscription: EventSubscription) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            pass
