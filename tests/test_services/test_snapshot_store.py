"""Tests for SnapshotStore publish policy and atomicity."""

import threading

import pytest

from bridge_vaults_exporter.services.snapshot_store import SnapshotStore
from bridge_vaults_exporter.utils.metrics import SeriesValue, Snapshot


def make_snapshot(generation: float, size: int = 3) -> Snapshot:
    return Snapshot.build(generation, [
        SeriesValue.create("balance", {"vault": str(i), "cycle": str(generation)}, int(generation) * 1000 + i)
        for i in range(size)
    ])


@pytest.fixture
def store():
    return SnapshotStore()


class TestPublish:
    def test_initially_empty(self, store):
        assert store.current().is_empty()
        assert store.current().generated_at == 0.0

    def test_publish_replaces_current(self, store):
        first = make_snapshot(1)
        second = make_snapshot(2)

        assert store.publish(first)
        assert store.current() is first
        assert store.publish(second)
        assert store.current() is second
        assert store.published_count == 2

    def test_empty_candidate_retains_previous(self, store):
        good = make_snapshot(1)
        store.publish(good)

        assert store.publish(Snapshot.empty(2)) is False
        assert store.current() is good

    def test_empty_candidate_published_when_configured(self):
        store = SnapshotStore(publish_empty=True)
        store.publish(make_snapshot(1))

        empty = Snapshot.empty(2)
        assert store.publish(empty)
        assert store.current() is empty

    def test_first_empty_snapshot_is_published(self, store):
        """An empty first cycle is published so its generation time is visible."""
        empty = Snapshot.empty(5)
        assert store.publish(empty)
        assert store.current() is empty

    def test_older_snapshot_rejected(self, store):
        newer = make_snapshot(10)
        store.publish(newer)

        assert store.publish(make_snapshot(9)) is False
        assert store.current() is newer

    def test_equal_generation_time_accepted(self, store):
        store.publish(make_snapshot(10))
        again = make_snapshot(10, size=1)

        assert store.publish(again)
        assert store.current() is again

    def test_generation_times_non_decreasing(self, store):
        seen = []
        for generation in [1, 3, 2, 3, 7, 5, 8]:
            store.publish(make_snapshot(generation))
            seen.append(store.current().generated_at)

        assert seen == sorted(seen)


class TestAtomicity:
    def test_concurrent_publish_and_read(self, store):
        """Readers only ever observe a snapshot that was passed to publish, whole."""
        candidates = [make_snapshot(g, size=50) for g in range(1, 201)]
        published_ids = {id(s) for s in candidates}
        expected_series = {s.generated_at: s.series for s in candidates}
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                snapshot = store.current()
                if snapshot.is_empty():
                    continue
                if id(snapshot) not in published_ids:
                    errors.append("unknown snapshot")
                if snapshot.series != expected_series[snapshot.generated_at]:
                    errors.append("torn snapshot")
                cycles = {s.label("cycle") for s in snapshot.series}
                if len(cycles) != 1:
                    errors.append(f"mixed cycles {cycles}")

        def publisher(chunk):
            for snapshot in chunk:
                store.publish(snapshot)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        publishers = [threading.Thread(target=publisher, args=(candidates[i::2],)) for i in range(2)]

        for t in readers + publishers:
            t.start()
        for t in publishers:
            t.join()
        stop.set()
        for t in readers:
            t.join()

        assert errors == []
        assert id(store.current()) in published_ids
        assert store.current().generated_at == 200
