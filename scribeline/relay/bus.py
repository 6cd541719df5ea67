from __future__ import annotations

"""
In-process publish/subscribe bus for relay and transcription events.

Design intent:
- Every subscriber owns its own queue; publishing never blocks the publisher.
- A full or closed queue drops the message and logs it instead of failing the publisher.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusMessage:
    topic: str
    data: Dict[str, Any]
    published_at: float = field(default_factory=time.time)

    def as_json(self) -> Dict[str, Any]:
        return {"topic": self.topic, "data": self.data}


class Subscription:
    def __init__(self, bus: "EventBus", topics: Optional[FrozenSet[str]], maxsize: int) -> None:
        self._bus = bus
        self._topics = topics
        self._queue: "queue.Queue[BusMessage]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def accepts(self, topic: str) -> bool:
        return self._topics is None or topic in self._topics

    def offer(self, message: BusMessage) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[BusMessage]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[BusMessage]:
        out: List[BusMessage] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._bus._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class EventBus:
    def __init__(self, default_maxsize: int = 1000) -> None:
        self._default_maxsize = max(0, int(default_maxsize))
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    def subscribe(
        self, topics: Optional[Iterable[str]] = None, *, maxsize: Optional[int] = None
    ) -> Subscription:
        topic_set = frozenset(t for t in (topics or []) if t) or None
        size = self._default_maxsize if maxsize is None else max(0, int(maxsize))
        subscription = Subscription(self, topic_set, size)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, topic: str, data: Dict[str, Any]) -> int:
        """Deliver to every matching subscriber; returns how many accepted it."""
        message = BusMessage(topic=topic, data=data)
        with self._lock:
            targets = [sub for sub in self._subscribers if sub.accepts(topic)]
        delivered = 0
        for sub in targets:
            if sub.offer(message):
                delivered += 1
            else:
                logger.warning("event dropped topic=%s dropped_total=%d", topic, sub.dropped)
        if not targets:
            logger.debug("event without subscribers topic=%s", topic)
        return delivered
