"""Path channel between the crawler and the worker threads.

The channel has two ends. The crawler holds the sender and is the only one
allowed to push or close; workers hold the receiver. ``get`` blocks until an
entry arrives or the sender is closed, and returns None only once the
channel is both closed and drained, so a worker can never give up while the
crawler still has entries in flight.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass

from tagscope.exceptions import ChannelClosedError


@dataclass(frozen=True, slots=True)
class CrawlEntry:
    """A path found by the crawler.

    Attributes:
        path: The path as rendered during the walk (root as given, joined
            with child names, never normalized).
        is_dir: Whether the path was a directory when visited.
    """

    path: str
    is_dir: bool = False


class _PathChannel:
    def __init__(self) -> None:
        self._items: deque[CrawlEntry] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self.pushed = 0

    def put(self, entry: CrawlEntry) -> None:
        with self._cond:
            if self._closed:
                raise ChannelClosedError(f"Cannot queue {entry.path}: channel closed")
            self._items.append(entry)
            self.pushed += 1
            self._cond.notify()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def get(self) -> CrawlEntry | None:
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._items:
                return self._items.popleft()
            return None

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed


class PathSender:
    """Write end of a path channel."""

    def __init__(self, channel: _PathChannel) -> None:
        self._channel = channel

    def put(self, entry: CrawlEntry) -> None:
        self._channel.put(entry)

    def close(self) -> None:
        """Signal that no more entries will be pushed. Idempotent."""
        self._channel.close()

    @property
    def pushed(self) -> int:
        return self._channel.pushed


class PathReceiver:
    """Read end of a path channel."""

    def __init__(self, channel: _PathChannel) -> None:
        self._channel = channel

    def get(self) -> CrawlEntry | None:
        """Block for the next entry; None means no entry will ever arrive."""
        return self._channel.get()

    @property
    def closed(self) -> bool:
        return self._channel.closed

    def __iter__(self):
        while (entry := self.get()) is not None:
            yield entry


def open_path_channel() -> tuple[PathSender, PathReceiver]:
    """Create a channel and return its (sender, receiver) ends."""
    channel = _PathChannel()
    return PathSender(channel), PathReceiver(channel)
