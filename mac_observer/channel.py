"""Ordered multi-producer, single-consumer event channel.

Senders learn that the consumer has gone away when ``send`` raises
``ChannelClosed``: either the receiver was closed explicitly or it was
garbage collected.
"""

from __future__ import annotations

import queue
import threading
import weakref
from typing import Generic, TypeVar

from mac_observer.errors import ChannelClosed

T = TypeVar("T")


class _ChannelState(Generic[T]):
    def __init__(self) -> None:
        self.queue: queue.Queue[T] = queue.Queue()
        self.closed = threading.Event()


class EventSender(Generic[T]):
    def __init__(self, state: _ChannelState[T]) -> None:
        self._state = state

    def send(self, item: T) -> None:
        if self._state.closed.is_set():
            raise ChannelClosed("receiver is closed")
        self._state.queue.put(item)

    @property
    def closed(self) -> bool:
        return self._state.closed.is_set()


class EventReceiver(Generic[T]):
    def __init__(self, state: _ChannelState[T]) -> None:
        self._state = state
        self._finalizer = weakref.finalize(self, state.closed.set)

    def recv(self, timeout: float | None = None) -> T | None:
        """Return the next item, or ``None`` if nothing arrives within ``timeout``."""
        try:
            return self._state.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, limit: int | None = None) -> list[T]:
        items: list[T] = []
        while limit is None or len(items) < limit:
            try:
                items.append(self._state.queue.get_nowait())
            except queue.Empty:
                break
        return items

    def close(self) -> None:
        self._finalizer()

    @property
    def closed(self) -> bool:
        return self._state.closed.is_set()


def event_channel() -> tuple[EventSender[T], EventReceiver[T]]:
    state: _ChannelState[T] = _ChannelState()
    return EventSender(state), EventReceiver(state)
