"""
Publish/Subscribe Channels

Push-based value streams used for the session list and readiness flag:
    Subject         → multicast, no memory of past values
    BehaviorSubject → holds the latest value and replays it to new observers

Delivery is synchronous on the publishing task (single event loop, no
locking). An observer that raises is logged and skipped; the remaining
observers still receive the value.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Observer = Callable[[T], None]


class Subscription:
    """Handle returned by subscribe(); idempotent unsubscribe."""

    __slots__ = ("_detach", "_closed")

    def __init__(self, detach: Callable[[], None]) -> None:
        self._detach = detach
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._detach()


class Subject(Generic[T]):
    """
    Multicast channel.

    Example:
        sessions: Subject[list[Session]] = Subject()
        sub = sessions.subscribe(render)
        sessions.publish([...])
        sub.unsubscribe()
    """

    __slots__ = ("_observers", "_next_key", "_closed")

    def __init__(self) -> None:
        self._observers: dict[int, Observer[T]] = {}
        self._next_key = 0
        self._closed = False

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, observer: Observer[T]) -> Subscription:
        key = self._next_key
        self._next_key += 1
        self._observers[key] = observer
        return Subscription(lambda: self._observers.pop(key, None))

    def publish(self, value: T) -> None:
        if self._closed:
            return
        # Snapshot: observers may unsubscribe while being notified.
        for observer in list(self._observers.values()):
            try:
                observer(value)
            except Exception:
                logger.exception("Channel observer raised; continuing delivery")

    def close(self) -> None:
        """Stop delivery and drop all observers."""
        self._closed = True
        self._observers.clear()

    def first(self, predicate: Optional[Callable[[T], bool]] = None) -> asyncio.Future:
        """
        Future resolved with the next value matching predicate.

        Must be called from a running event loop.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        subscription: Optional[Subscription] = None

        def _observe(value: T) -> None:
            if future.done():
                return
            if predicate is None or predicate(value):
                future.set_result(value)
                if subscription is not None:
                    subscription.unsubscribe()

        subscription = self.subscribe(_observe)
        if future.done():
            subscription.unsubscribe()
        return future


class BehaviorSubject(Subject[T]):
    """Subject that remembers its latest value."""

    __slots__ = ("_value",)

    def __init__(self, initial: T) -> None:
        super().__init__()
        self._value = initial

    @property
    def value(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        if self._closed:
            return
        self._value = value
        super().publish(value)

    def subscribe(self, observer: Observer[T]) -> Subscription:
        subscription = super().subscribe(observer)
        try:
            observer(self._value)
        except Exception:
            logger.exception("Channel observer raised on replay")
        return subscription
