"""In-process implementation of the EventBus port.

Single-process only. Each (event, subscriber) pair is delivered in its own
background task so a slow or failing subscriber never reaches the caller.
"""
from __future__ import annotations

import asyncio
from typing import Any, Iterable, List, Set

from application.ports.events import EventBus, Subscriber
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryEventBus(EventBus):
    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._inflight: Set[asyncio.Task] = set()

    def subscribe(self, subscriber: Subscriber) -> None:  # type: ignore[override]
        self._subscribers.append(subscriber)

    async def publish(self, events: Iterable[Any]) -> None:  # type: ignore[override]
        subscribers = list(self._subscribers)
        for event in events:
            for subscriber in subscribers:
                task = asyncio.create_task(self._deliver(subscriber, event))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

    async def _deliver(self, subscriber: Subscriber, event: Any) -> None:
        try:
            await subscriber(event)
        except Exception as exc:
            # Delivery is best effort; the transaction has already committed
            logger.warning(
                "event_delivery_failed",
                event_type=type(event).__name__,
                event_id=getattr(event, "event_id", None),
                subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                error=str(exc),
                exc_info=True,
            )

    async def drain(self) -> None:  # type: ignore[override]
        """Wait for every in-flight delivery (shutdown, tests)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        self._subscribers.clear()
