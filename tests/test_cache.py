"""
Segment Cache Tests
===================

Expiry, overwrite semantics and snapshot persistence.
"""

import asyncio
import json

import pytest

from tilestream.models.segment import CacheEntry, SegmentKey
from tilestream.tiles.cache import SegmentCache


KEY = SegmentKey(frame=2, offset_x=1, offset_y=1)


@pytest.fixture
def cache(clock):
    return SegmentCache(ttl=10, clock=clock)


class TestSegmentKey:
    """Tests for the composite key."""

    def test_no_concatenation_collisions(self):
        """Keys that concatenate to the same string stay distinct."""
        a = SegmentKey(frame=1, offset_x=2, offset_y=0)
        b = SegmentKey(frame=12, offset_x=0, offset_y=0)
        c = SegmentKey(frame=1, offset_x=20, offset_y=0)

        assert len({a, b, c}) == 3

    def test_equal_keys_hash_equal(self):
        assert SegmentKey(3, 4, 5) == SegmentKey(3, 4, 5)
        assert hash(SegmentKey("all", 1, 1)) == hash(SegmentKey("all", 1, 1))

    def test_list_form(self):
        assert SegmentKey.from_list(["all", 2, 3]) == SegmentKey("all", 2, 3)
        assert SegmentKey.from_list(["7", "2", "3"]) == SegmentKey(7, 2, 3)


class TestSegmentCache:
    """Tests for lookups and eviction."""

    def test_miss_then_hit(self, cache):
        assert cache.get(KEY) is None

        stored = cache.store(KEY, width=16, height=16, data="data:x", format="png")

        assert cache.get(KEY) is stored
        assert cache.hits == 1
        assert cache.misses == 1

    def test_expiry_is_in_the_future(self, cache, clock):
        entry = cache.store(KEY, width=16, height=16, data="d", format="png")
        assert entry.expires_at == clock.now + 10

    def test_expired_entry_is_a_miss(self, cache, clock):
        cache.store(KEY, width=16, height=16, data="d", format="png")
        clock.advance(10)

        assert cache.get(KEY) is None
        assert len(cache) == 0
        assert cache.evictions == 1

    def test_overwrite_replaces_expiry(self, cache, clock):
        """The latest write's TTL is the only one that counts."""
        cache.store(KEY, width=16, height=16, data="old", format="png")
        clock.advance(5)
        cache.store(KEY, width=16, height=16, data="new", format="png")

        clock.advance(7)  # 12s after the first write, 7s after the second
        entry = cache.get(KEY)
        assert entry is not None
        assert entry.data == "new"

        clock.advance(4)
        assert cache.get(KEY) is None

    def test_custom_ttl(self, cache, clock):
        cache.store(KEY, width=1, height=1, data="d", format="png", ttl=100)
        clock.advance(50)
        assert KEY in cache

    def test_sweep_removes_only_expired(self, cache, clock):
        short = SegmentKey(1, 1, 1)
        long = SegmentKey(1, 2, 1)
        cache.store(short, width=16, height=16, data="a", format="png", ttl=5)
        cache.store(long, width=16, height=16, data="b", format="png", ttl=50)

        clock.advance(6)

        assert cache.sweep() == 1
        assert short not in cache
        assert long in cache

    def test_background_sweeper_evicts_unread_entries(self, cache, clock):
        cache.store(KEY, width=16, height=16, data="d", format="png", ttl=5)
        clock.advance(6)

        async def scenario():
            task = asyncio.create_task(cache.run_sweeper(0.001))
            for _ in range(200):
                await asyncio.sleep(0.005)
                if cache.evictions:
                    break
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert len(cache) == 0
        assert cache.evictions == 1
        assert cache.misses == 0

    def test_rejects_expired_put(self, cache, clock):
        entry = CacheEntry(width=1, height=1, data="d", format="png", expires_at=clock.now)
        with pytest.raises(ValueError):
            cache.put(KEY, entry)

    def test_rejects_non_positive_ttl(self, clock):
        with pytest.raises(ValueError):
            SegmentCache(ttl=0, clock=clock)

    def test_metrics(self, cache):
        cache.store(KEY, width=16, height=16, data="d", format="png")
        cache.get(KEY)

        metrics = cache.metrics()
        assert metrics["size"] == 1
        assert metrics["hits"] == 1
        assert metrics["ttl_seconds"] == 10


class TestSnapshot:
    """Tests for save/restore across restarts."""

    def test_restore_discards_elapsed_entries(self, tmp_path, clock):
        """Only the entry whose expiry is still ahead survives a restart."""
        path = tmp_path / "cache.json"
        cache = SegmentCache(ttl=600, clock=clock)
        cache.store(SegmentKey(1, 1, 1), width=16, height=16, data="past", format="png", ttl=10)
        cache.store(SegmentKey(2, 1, 1), width=16, height=16, data="future", format="png", ttl=100)
        assert cache.save_snapshot(path) == 2

        clock.advance(50)
        restored = SegmentCache(ttl=600, clock=clock)

        assert restored.restore_snapshot(path) == 1
        assert SegmentKey(1, 1, 1) not in restored
        entry = restored.get(SegmentKey(2, 1, 1))
        assert entry.data == "future"

    def test_restore_keeps_original_expiry(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        cache = SegmentCache(ttl=100, clock=clock)
        original = cache.store(KEY, width=16, height=16, data="d", format="png")
        cache.save_snapshot(path)

        clock.advance(30)
        restored = SegmentCache(ttl=100, clock=clock)
        restored.restore_snapshot(path)

        assert restored.get(KEY).expires_at == original.expires_at

    def test_restore_skips_past_entries_in_file(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps([
            [[1, 1, 1], {"width": 16, "height": 16, "data": "a", "format": "png",
                         "expires_at": clock.now - 1}],
            [[1, 2, 1], {"width": 16, "height": 16, "data": "b", "format": "png",
                         "expires_at": clock.now + 60}],
        ]))

        cache = SegmentCache(ttl=10, clock=clock)

        assert cache.restore_snapshot(path) == 1
        assert len(cache) == 1
        assert SegmentKey(1, 2, 1) in cache

    def test_save_skips_expired_entries(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        cache = SegmentCache(ttl=10, clock=clock)
        cache.store(SegmentKey(1, 1, 1), width=16, height=16, data="a", format="png", ttl=5)
        cache.store(SegmentKey(1, 2, 1), width=16, height=16, data="b", format="png", ttl=50)
        clock.advance(6)

        assert cache.save_snapshot(path) == 1
        pairs = json.loads(path.read_text())
        assert pairs[0][0] == [1, 2, 1]

    def test_batch_entry_survives(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        key = SegmentKey("all", 3, 2)
        cache = SegmentCache(ttl=10, clock=clock)
        cache.store(key, width=16, height=16, data=["a", "b", "c"], format="png")
        cache.save_snapshot(path)

        restored = SegmentCache(ttl=10, clock=clock)
        restored.restore_snapshot(path)

        assert restored.get(key).data == ["a", "b", "c"]

    def test_missing_snapshot(self, tmp_path, cache):
        assert cache.restore_snapshot(tmp_path / "absent.json") == 0

    def test_corrupt_snapshot_is_ignored(self, tmp_path, cache):
        path = tmp_path / "cache.json"
        path.write_text("{not json")

        assert cache.restore_snapshot(path) == 0
        assert len(cache) == 0

    def test_invalid_pairs_are_skipped(self, tmp_path, cache, clock):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps([
            ["garbage"],
            [[1, 1, 1], {"width": 16}],
            [[1, 1, 2], {"width": 16, "height": 16, "data": "ok", "format": "png",
                         "expires_at": clock.now + 5}],
        ]))

        assert cache.restore_snapshot(path) == 1
