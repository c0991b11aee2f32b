"""
Unbuffered handoff channel between the producer and the worker pool.

`send` does not return until a receiver has taken the item, so the producer can
never run ahead of the workers by more than the item currently in hand. Each
item is delivered to exactly one receiver.
"""

from __future__ import annotations

import threading
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

_EMPTY = object()


class ChannelClosed(Exception):
    """Raised by send/recv once the channel is closed."""


class HandoffChannel(Generic[T]):
    """
    Rendezvous channel: zero capacity, many senders, many receivers.

    Example
    -------
        channel = HandoffChannel()
        # producer thread
        channel.send(item)
        channel.close()
        # worker threads
        for item in channel:
            handle(item)
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._slot: object = _EMPTY
        self._closed = False
        self._offered = 0
        self._taken = 0

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, item: T) -> None:
        """
        Offer an item and block until a receiver takes it.

        Raises
        ------
        ChannelClosed
            If the channel is closed before the item was taken. The item is
            withdrawn and was not delivered.
        """
        with self._cond:
            while self._slot is not _EMPTY and not self._closed:
                self._cond.wait()
            if self._closed:
                raise ChannelClosed("send on closed channel")
            self._slot = item
            self._offered += 1
            ticket = self._offered
            self._cond.notify_all()
            while self._taken < ticket and not self._closed:
                self._cond.wait()
            if self._taken < ticket:
                self._slot = _EMPTY
                self._offered -= 1
                self._cond.notify_all()
                raise ChannelClosed("channel closed before the item was received")

    def recv(self) -> T:
        """
        Block until an item is available and take it.

        Raises
        ------
        ChannelClosed
            Once the channel is closed and no item is waiting.
        """
        with self._cond:
            while self._slot is _EMPTY and not self._closed:
                self._cond.wait()
            if self._slot is _EMPTY:
                raise ChannelClosed("recv on closed channel")
            item = self._slot
            self._slot = _EMPTY
            self._taken += 1
            self._cond.notify_all()
            return item  # type: ignore[return-value]

    def close(self) -> None:
        """Close the channel; idempotent. Blocked senders and receivers wake up."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.recv()
            except ChannelClosed:
                return


__all__ = ["ChannelClosed", "HandoffChannel"]
