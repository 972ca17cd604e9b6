"""Durable queue of events awaiting delivery.

ALL access to the persisted queue goes through EventQueue. The list is
mirrored in memory and written back to storage after every mutation; no
method awaits, so each read-modify-write runs without interleaving on the
event loop.
"""

import logging
from collections.abc import Iterable
from uuid import uuid4

from pydantic import ValidationError

from gamify.core.config import DEFAULT_MAX_ATTEMPTS, DEFAULT_MAX_QUEUE_SIZE
from gamify.core.event import GamifyEvent, QueuedEvent
from gamify.storage.base import StorageAdapter

QUEUE_STORAGE_KEY = "queue"

logger = logging.getLogger("gamify.queue")


class EventQueue:
    """Ordered, capped, persisted list of QueuedEvent records.

    Args:
        storage: Adapter holding the queue under QUEUE_STORAGE_KEY.
        max_size: Storage cap. Oldest entries are evicted beyond it.
        max_attempts: Failed deliveries after which an entry is dropped.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        max_size: int = DEFAULT_MAX_QUEUE_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")
        self._storage = storage
        self._max_size = max_size
        self._max_attempts = max_attempts
        self._queue: list[QueuedEvent] = []
        self._evicted_count = 0
        self._load()

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def evicted_count(self) -> int:
        """Entries dropped by the storage cap since construction."""
        return self._evicted_count

    def _load(self) -> None:
        persisted = self._storage.get(QUEUE_STORAGE_KEY)
        if not isinstance(persisted, list):
            return

        seen: set[str] = set()
        for record in persisted:
            try:
                item = QueuedEvent.model_validate(record)
            except ValidationError as e:
                logger.warning(
                    f"Discarding unreadable queue entry: {e.error_count()} errors",
                    extra={"record": record},
                )
                continue
            if item.id in seen:
                continue
            seen.add(item.id)
            self._queue.append(item)

        self._queue.sort(key=lambda item: item.created_at)
        overflow = len(self._queue) - self._max_size
        if overflow > 0:
            del self._queue[:overflow]
            self._evicted_count += overflow
            self._save()

        if self._queue:
            logger.debug(f"Restored {len(self._queue)} queued events from storage")

    def _save(self) -> None:
        self._storage.set(QUEUE_STORAGE_KEY, [item.to_record() for item in self._queue])

    def _new_id(self) -> str:
        taken = {item.id for item in self._queue}
        while True:
            candidate = str(uuid4())
            if candidate not in taken:
                return candidate

    def enqueue(self, event: GamifyEvent) -> QueuedEvent:
        """Append an event and persist.

        Args:
            event: The event to queue.

        Returns:
            The wrapped record, with a fresh id and attempts=0.
        """
        queued = QueuedEvent(id=self._new_id(), event=event)
        self._queue.append(queued)

        # Trim queue if it exceeds max size (FIFO - remove oldest)
        while len(self._queue) > self._max_size:
            evicted = self._queue.pop(0)
            self._evicted_count += 1
            logger.warning(
                "Queue full, evicted oldest event",
                extra={"event_id": evicted.id, "event_type": evicted.event.type},
            )

        self._save()
        return queued

    def peek_batch(self, limit: int) -> list[QueuedEvent]:
        """Return up to limit oldest entries without removing them."""
        if limit <= 0:
            return []
        return list(self._queue[:limit])

    def remove_by_ids(self, ids: Iterable[str]) -> int:
        """Remove delivered (or rejected) entries.

        Returns:
            Number of entries removed. Unknown ids are ignored.
        """
        id_set = set(ids)
        before = len(self._queue)
        self._queue = [item for item in self._queue if item.id not in id_set]
        removed = before - len(self._queue)
        if removed:
            self._save()
        return removed

    def increment_attempts(self, ids: Iterable[str]) -> list[QueuedEvent]:
        """Record a failed delivery for the given entries.

        Entries whose attempt count reaches max_attempts are dropped.

        Returns:
            The dropped entries, with their final attempt count.
        """
        id_set = set(ids)
        kept: list[QueuedEvent] = []
        dropped: list[QueuedEvent] = []
        for item in self._queue:
            if item.id in id_set:
                item = item.with_attempt()
                if item.attempts >= self._max_attempts:
                    dropped.append(item)
                    continue
            kept.append(item)
        self._queue = kept
        if id_set:
            self._save()
        return dropped

    def get(self, event_id: str) -> QueuedEvent | None:
        for item in self._queue:
            if item.id == event_id:
                return item
        return None

    def size(self) -> int:
        return len(self._queue)

    def has_pending(self) -> bool:
        return bool(self._queue)

    def clear(self) -> None:
        """Drop every queued event."""
        self._queue = []
        self._save()

    def __len__(self) -> int:
        return len(self._queue)
