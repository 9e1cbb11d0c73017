"""
Post-commit event bus and notification sink ports.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Protocol


Subscriber = Callable[[Any], Awaitable[None]]


class EventBus(Protocol):
    """Delivers committed domain events to subscribers.

    Publishing never raises because of a subscriber and never blocks on one.
    """

    def subscribe(self, subscriber: Subscriber) -> None: ...

    async def publish(self, events: Iterable[Any]) -> None: ...

    async def drain(self) -> None: ...


class NotificationSink(Protocol):
    """External collaborator that turns events into emails/SMS. Best effort."""

    async def notify(self, event: Any) -> None: ...


__all__ = ["EventBus", "NotificationSink", "Subscriber"]
