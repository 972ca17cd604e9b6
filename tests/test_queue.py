"""Tests for EventQueue."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gamify.core.event import GamifyEvent
from gamify.core.queue import QUEUE_STORAGE_KEY, EventQueue
from gamify.storage.file import FileStorageAdapter
from gamify.storage.memory import MemoryStorageAdapter


class TestEnqueue:
    def test_wraps_event(self, storage, make_event):
        queue = EventQueue(storage)
        event = make_event("page_view")

        queued = queue.enqueue(event)

        assert queued.event == event
        assert queued.attempts == 0
        assert queue.size() == 1

    def test_persists_every_enqueue(self, storage, make_event):
        queue = EventQueue(storage)
        queued = queue.enqueue(make_event())

        records = storage.get(QUEUE_STORAGE_KEY)

        assert [r["id"] for r in records] == [queued.id]

    def test_ids_are_unique(self, storage, make_event):
        queue = EventQueue(storage, max_size=500)

        ids = {queue.enqueue(make_event()).id for _ in range(200)}

        assert len(ids) == 200

    def test_evicts_oldest_beyond_cap(self, storage, make_event):
        queue = EventQueue(storage, max_size=3)

        for i in range(5):
            queue.enqueue(make_event(f"e{i}"))

        assert queue.size() == 3
        assert [q.event.type for q in queue.peek_batch(10)] == ["e2", "e3", "e4"]
        assert queue.evicted_count == 2

    @given(cap=st.integers(min_value=1, max_value=20), count=st.integers(min_value=0, max_value=60))
    @settings(max_examples=50)
    def test_size_never_exceeds_cap(self, cap, count):
        queue = EventQueue(MemoryStorageAdapter("p_"), max_size=cap)

        for i in range(count):
            queue.enqueue(GamifyEvent(type=f"e{i}", anonymous_id="a"))
            assert queue.size() <= cap

        kept = [q.event.type for q in queue.peek_batch(cap)]
        assert kept == [f"e{i}" for i in range(max(0, count - cap), count)]

    @pytest.mark.parametrize("bad", [0, -1])
    def test_rejects_non_positive_limits(self, storage, bad):
        with pytest.raises(ValueError):
            EventQueue(storage, max_size=bad)
        with pytest.raises(ValueError):
            EventQueue(storage, max_attempts=bad)


class TestPeekAndRemove:
    def test_peek_is_non_destructive(self, storage, make_event):
        queue = EventQueue(storage)
        for i in range(3):
            queue.enqueue(make_event(f"e{i}"))

        first = queue.peek_batch(2)
        second = queue.peek_batch(2)

        assert [q.id for q in first] == [q.id for q in second]
        assert queue.size() == 3

    def test_peek_returns_oldest_first(self, storage, make_event):
        queue = EventQueue(storage)
        for i in range(5):
            queue.enqueue(make_event(f"e{i}"))

        assert [q.event.type for q in queue.peek_batch(3)] == ["e0", "e1", "e2"]
        assert queue.peek_batch(0) == []

    def test_remove_by_ids(self, storage, make_event):
        queue = EventQueue(storage)
        items = [queue.enqueue(make_event(f"e{i}")) for i in range(4)]

        removed = queue.remove_by_ids([items[0].id, items[2].id, "unknown"])

        assert removed == 2
        assert [q.event.type for q in queue.peek_batch(10)] == ["e1", "e3"]
        assert len(storage.get(QUEUE_STORAGE_KEY)) == 2

    def test_clear(self, storage, make_event):
        queue = EventQueue(storage)
        queue.enqueue(make_event())

        queue.clear()

        assert queue.size() == 0
        assert not queue.has_pending()
        assert storage.get(QUEUE_STORAGE_KEY) == []


class TestIncrementAttempts:
    def test_bumps_only_given_ids(self, storage, make_event):
        queue = EventQueue(storage)
        a = queue.enqueue(make_event("a"))
        b = queue.enqueue(make_event("b"))

        dropped = queue.increment_attempts([a.id])

        assert dropped == []
        assert queue.get(a.id).attempts == 1
        assert queue.get(b.id).attempts == 0

    def test_attempts_persisted(self, storage, make_event):
        queue = EventQueue(storage)
        a = queue.enqueue(make_event("a"))

        queue.increment_attempts([a.id])

        assert EventQueue(storage).get(a.id).attempts == 1

    def test_drops_at_ceiling(self, storage, make_event):
        queue = EventQueue(storage, max_attempts=3)
        a = queue.enqueue(make_event("a"))

        queue.increment_attempts([a.id])
        queue.increment_attempts([a.id])
        assert queue.size() == 1

        dropped = queue.increment_attempts([a.id])

        assert [d.id for d in dropped] == [a.id]
        assert dropped[0].attempts == 3
        assert queue.size() == 0

    def test_keeps_order(self, storage, make_event):
        queue = EventQueue(storage)
        items = [queue.enqueue(make_event(f"e{i}")) for i in range(3)]

        queue.increment_attempts([items[1].id])

        assert [q.event.type for q in queue.peek_batch(3)] == ["e0", "e1", "e2"]


class TestDurability:
    def test_restores_after_restart(self, tmp_path, make_event):
        first = EventQueue(FileStorageAdapter("gamify_", tmp_path))
        items = [first.enqueue(make_event(f"e{i}")) for i in range(3)]
        first.increment_attempts([items[0].id])

        # New process: fresh adapter and queue over the same directory
        second = EventQueue(FileStorageAdapter("gamify_", tmp_path))

        restored = second.peek_batch(10)
        assert [q.id for q in restored] == [q.id for q in items]
        assert restored[0].attempts == 1
        assert restored[1].event == items[1].event

    def test_restore_sorts_by_created_at(self, storage, make_event):
        queue = EventQueue(storage)
        items = [queue.enqueue(make_event(f"e{i}")) for i in range(3)]
        records = storage.get(QUEUE_STORAGE_KEY)
        records[0]["createdAt"] = records[2]["createdAt"] + 10
        storage.set(QUEUE_STORAGE_KEY, records)

        restored = EventQueue(storage).peek_batch(3)

        assert restored[-1].id == items[0].id

    def test_restore_skips_bad_and_duplicate_records(self, storage, make_event):
        queue = EventQueue(storage)
        good = queue.enqueue(make_event("good"))
        records = storage.get(QUEUE_STORAGE_KEY)
        storage.set(QUEUE_STORAGE_KEY, records + [{"id": "broken"}, records[0], "junk"])

        restored = EventQueue(storage)

        assert [q.id for q in restored.peek_batch(10)] == [good.id]

    def test_restore_ignores_non_list_value(self, storage):
        storage.set(QUEUE_STORAGE_KEY, {"not": "a list"})

        assert EventQueue(storage).size() == 0

    def test_restore_applies_cap(self, storage, make_event):
        big = EventQueue(storage, max_size=10)
        for i in range(10):
            big.enqueue(make_event(f"e{i}"))

        small = EventQueue(storage, max_size=4)

        assert [q.event.type for q in small.peek_batch(10)] == ["e6", "e7", "e8", "e9"]
        assert len(storage.get(QUEUE_STORAGE_KEY)) == 4
