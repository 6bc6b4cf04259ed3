"""In-process fan-out of audit entries to live subscribers."""

import asyncio

import structlog

from keywarden.core.modules.audit.models import Log

logger = structlog.get_logger(__name__)


class LiveFeed:
    """Best-effort broadcast of stored log entries.

    Each subscriber gets its own bounded queue. A subscriber that falls behind misses
    new entries until it drains its queue; the writer never waits.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[Log]] = set()
        self.missed = 0  # Entries dropped for slow subscribers

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[Log]:
        queue: asyncio.Queue[Log] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Log]) -> None:
        self._subscribers.discard(queue)

    def publish(self, entry: Log) -> None:
        for queue in self._subscribers:
            try:
                queue.put_nowait(entry)
            except asyncio.QueueFull:
                self.missed += 1
                logger.debug("live_feed_entry_missed", log_id=str(entry.id))
