import json
import logging

import pytest

from advanced_cache.infrastructure.config import CacheConfig
from advanced_cache.infrastructure.memory_store import AdvancedCache
from advanced_cache.infrastructure.storage import MemoryStorage

STORE_LOGGER = "advanced_cache.infrastructure.memory_store"


class BrokenStorage:
    """Storage whose reads and writes fail like a disabled or full store."""

    def __init__(self, *, fail_reads: bool = True, fail_writes: bool = True):
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.items: dict[str, str] = {}

    def get_item(self, key):
        if self.fail_reads:
            raise OSError("storage unavailable")
        return self.items.get(key)

    def set_item(self, key, value):
        if self.fail_writes:
            raise OSError("quota exceeded")
        self.items[key] = value

    def remove_item(self, key):
        self.items.pop(key, None)


@pytest.mark.unit
class TestAdvancedCache:
    """Test cases for the AdvancedCache class."""

    def test_initialization_default_values(self):
        cache = AdvancedCache()

        assert cache.max_size == 100
        assert cache.default_ttl == 5 * 60 * 1000
        assert cache.enable_lru is True
        assert cache.enable_persistence is False
        assert cache.persistence_key == "app-cache"
        assert len(cache.entries) == 0

    def test_initialization_rejects_invalid_values(self):
        with pytest.raises(ValueError, match="max_size must be >= 1"):
            AdvancedCache(max_size=0)
        with pytest.raises(ValueError, match="default_ttl must be >= 0"):
            AdvancedCache(default_ttl=-1)

    def test_from_config(self, clock):
        storage = MemoryStorage()
        config = CacheConfig(max_size=3, default_ttl=1000, enable_lru=False, enable_persistence=True, persistence_key="ns")

        cache = AdvancedCache.from_config(config, storage=storage, clock=clock)
        cache.set("k", "v")

        assert cache.max_size == 3
        assert cache.default_ttl == 1000
        assert cache.enable_lru is False
        assert json.loads(storage.get_item("ns"))["k"]["ttl"] == 1000

    def test_set_and_get_basic_functionality(self, clock):
        cache = AdvancedCache(clock=clock)

        assert cache.set("test_key", "test_value") is None
        assert cache.get("test_key") == "test_value"
        assert cache.entries["test_key"].hits == 1

    def test_get_nonexistent_key(self, clock):
        cache = AdvancedCache(clock=clock)

        assert cache.get("missing") is None

    def test_set_uses_default_ttl_when_omitted(self, clock):
        cache = AdvancedCache(default_ttl=1000, clock=clock)

        cache.set("k", "v")

        assert cache.entries["k"].ttl == 1000
        assert cache.entries["k"].timestamp == clock.now

    def test_entry_expires_after_ttl(self, clock):
        cache = AdvancedCache(clock=clock)

        cache.set("k", "v", 100)
        clock.advance(150)

        assert cache.get("k") is None
        assert "k" not in cache.entries

    def test_entry_is_still_live_at_exact_ttl(self, clock):
        cache = AdvancedCache(clock=clock)

        cache.set("k", "v", 100)
        clock.advance(100)

        assert cache.get("k") == "v"

    def test_has_reports_expired_entries_as_absent(self, clock):
        cache = AdvancedCache(clock=clock)

        cache.set("k", "v", 100)
        assert cache.has("k") is True

        clock.advance(101)
        assert cache.has("k") is False

    def test_set_purges_every_expired_entry(self, clock):
        cache = AdvancedCache(clock=clock)

        cache.set("short", 1, 100)
        cache.set("long", 2, 10_000)
        clock.advance(200)
        cache.set("new", 3)

        assert set(cache.entries) == {"long", "new"}
        assert "short" not in cache.access_order

    def test_lru_evicts_oldest_key(self, clock):
        cache = AdvancedCache(max_size=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.has("a") is False
        assert cache.has("b") is True
        assert cache.has("c") is True
        assert list(cache.access_order) == ["b", "c"]

    def test_get_refreshes_recency(self, clock):
        cache = AdvancedCache(max_size=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.has("a") is True
        assert cache.has("b") is False

    def test_has_does_not_refresh_recency(self, clock):
        cache = AdvancedCache(max_size=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.has("a")
        cache.set("c", 3)

        assert cache.has("a") is False
        assert cache.entries["b"].hits == 0

    def test_overwrite_marks_key_most_recently_used(self, clock):
        cache = AdvancedCache(max_size=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)

        assert cache.get("a") == 10
        assert cache.has("b") is False

    def test_get_never_evicts(self, clock):
        cache = AdvancedCache(max_size=2, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        for _ in range(5):
            cache.get("a")
            cache.get("b")
            cache.get("missing")

        assert cache.get_stats()["size"] == 2

    def test_lru_disabled_grows_past_max_size(self, clock):
        cache = AdvancedCache(max_size=2, enable_lru=False, clock=clock)

        for i in range(5):
            cache.set(f"k{i}", i)
        cache.get("k0")

        assert cache.get_stats()["size"] == 5
        assert len(cache.access_order) == 0

    def test_hit_count_resets_on_overwrite(self, clock):
        cache = AdvancedCache(clock=clock)

        cache.set("k", "v1")
        cache.get("k")
        cache.get("k")
        assert cache.get_stats()["total_hits"] == 2

        cache.set("k", "v2")

        assert cache.get_stats()["total_hits"] == 0
        assert cache.get("k") == "v2"

    def test_remove(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("k", "v")

        assert cache.remove("k") is True
        assert cache.remove("k") is False
        assert cache.get("k") is None
        assert "k" not in cache.access_order

    def test_clear_is_idempotent(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()
        assert cache.get_stats()["size"] == 0
        cache.clear()
        assert cache.get_stats()["size"] == 0
        assert len(cache.access_order) == 0

    def test_keys_skips_expired_entries(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("a", 1, 100)
        cache.set("b", 2)
        clock.advance(101)

        assert cache.keys() == ["b"]

    def test_stats_on_empty_cache(self):
        cache = AdvancedCache(max_size=7)

        assert cache.get_stats() == {
            "size": 0,
            "max_size": 7,
            "total_hits": 0,
            "avg_hits": 0,
            "hit_rate": 0,
        }

    def test_stats_hit_rate_formula(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        for _ in range(3):
            cache.get("a")
        cache.get("missing")

        stats = cache.get_stats()

        assert stats["size"] == 2
        assert stats["total_hits"] == 3
        assert stats["avg_hits"] == 1.5
        assert stats["hit_rate"] == pytest.approx(3 / 5)

    def test_stats_avg_hits_is_rounded(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")

        assert cache.get_stats()["avg_hits"] == 0.33

    def test_stats_ignore_expired_entries(self, clock):
        cache = AdvancedCache(clock=clock)
        cache.set("a", 1, 100)
        cache.get("a")
        cache.set("b", 2, 10_000)
        clock.advance(200)

        stats = cache.get_stats()

        assert stats["size"] == 1
        assert stats["total_hits"] == 0


@pytest.mark.unit
class TestAdvancedCachePersistence:
    """Snapshotting into, and hydrating from, a durable key/value store."""

    def test_persistence_round_trip(self, clock):
        storage = MemoryStorage()
        cache_a = AdvancedCache(enable_persistence=True, persistence_key="ns1", storage=storage, clock=clock)
        cache_a.set("x", 42)

        cache_b = AdvancedCache(enable_persistence=True, persistence_key="ns1", storage=storage, clock=clock)

        assert cache_b.get("x") == 42

    def test_snapshot_format(self, clock):
        storage = MemoryStorage()
        cache = AdvancedCache(enable_persistence=True, persistence_key="ns1", storage=storage, clock=clock)

        cache.set("x", {"n": 42}, 1000)
        cache.get("x")

        cache.set("y", [1, 2])
        snapshot = json.loads(storage.get_item("ns1"))
        assert snapshot == {
            "x": {"data": {"n": 42}, "timestamp": clock.now, "ttl": 1000, "hits": 1},
            "y": {"data": [1, 2], "timestamp": clock.now, "ttl": 5 * 60 * 1000, "hits": 0},
        }

    def test_remove_and_clear_rewrite_snapshot(self, clock):
        storage = MemoryStorage()
        cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.remove("a")
        assert set(json.loads(storage.get_item("app-cache"))) == {"b"}

        cache.clear()
        assert json.loads(storage.get_item("app-cache")) == {}

    def test_persistence_disabled_never_writes(self, clock):
        storage = MemoryStorage()
        cache = AdvancedCache(storage=storage, clock=clock)

        cache.set("a", 1)
        cache.clear()

        assert len(storage) == 0

    def test_persistence_without_storage_is_a_no_op(self, clock):
        cache = AdvancedCache(enable_persistence=True, storage=None, clock=clock)

        cache.set("a", 1)

        assert cache.get("a") == 1

    def test_hydration_drops_expired_entries_without_rewriting(self, clock):
        storage = MemoryStorage()
        cache_a = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)
        cache_a.set("short", 1, 100)
        cache_a.set("long", 2, 10_000)
        clock.advance(150)

        cache_b = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)

        assert set(cache_b.entries) == {"long"}
        assert set(json.loads(storage.get_item("app-cache"))) == {"short", "long"}

    def test_hydration_preserves_hits_and_timestamps(self, clock):
        storage = MemoryStorage()
        cache_a = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)
        cache_a.set("k", "v", 1000)
        cache_a.get("k")
        # Reads do not persist; the next write carries the hit count along.
        cache_a.set("other", 0)
        written_at = clock.now
        clock.advance(500)

        cache_b = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)

        assert cache_b.entries["k"].hits == 1
        assert cache_b.entries["k"].timestamp == written_at
        clock.advance(501)
        assert cache_b.get("k") is None

    def test_hydrated_keys_take_part_in_lru(self, clock):
        storage = MemoryStorage()
        cache_a = AdvancedCache(max_size=2, enable_persistence=True, storage=storage, clock=clock)
        cache_a.set("a", 1)
        cache_a.set("b", 2)

        cache_b = AdvancedCache(max_size=2, enable_persistence=True, storage=storage, clock=clock)
        cache_b.set("c", 3)

        assert cache_b.has("a") is False
        assert cache_b.has("b") is True

    def test_corrupt_snapshot_hydrates_empty(self, clock, caplog):
        storage = MemoryStorage()
        storage.set_item("app-cache", "{not json")

        with caplog.at_level(logging.WARNING, logger=STORE_LOGGER):
            cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)

        assert len(cache.entries) == 0
        assert "Failed to load cache" in caplog.text

    def test_non_object_snapshot_hydrates_empty(self, clock):
        storage = MemoryStorage()
        storage.set_item("app-cache", "[1, 2, 3]")

        cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)

        assert len(cache.entries) == 0

    def test_malformed_records_are_skipped(self, clock):
        storage = MemoryStorage()
        storage.set_item(
            "app-cache",
            json.dumps(
                {
                    "good": {"data": 1, "timestamp": clock.now, "ttl": 1000},
                    "no_ttl": {"data": 2, "timestamp": clock.now},
                    "junk": "value",
                }
            ),
        )

        cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)

        assert set(cache.entries) == {"good"}
        assert cache.entries["good"].hits == 0

    def test_unserializable_value_does_not_break_cache(self, clock, caplog):
        storage = MemoryStorage()
        cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)
        cache.set("plain", 1)
        marker = object()

        with caplog.at_level(logging.WARNING, logger=STORE_LOGGER):
            cache.set("obj", marker)

        assert cache.get("obj") is marker
        assert "Failed to persist cache" in caplog.text
        assert set(json.loads(storage.get_item("app-cache"))) == {"plain"}

    def test_storage_failures_are_logged_not_raised(self, clock, caplog):
        with caplog.at_level(logging.WARNING, logger=STORE_LOGGER):
            cache = AdvancedCache(enable_persistence=True, storage=BrokenStorage(), clock=clock)
            cache.set("a", 1)
            assert cache.get("a") == 1
            assert cache.remove("a") is True
            cache.clear()

        assert "Failed to load cache" in caplog.text
        assert "Failed to persist cache" in caplog.text

    def test_write_failures_keep_memory_authoritative(self, clock):
        storage = BrokenStorage(fail_reads=False, fail_writes=True)
        cache = AdvancedCache(max_size=2, enable_persistence=True, storage=storage, clock=clock)

        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.keys() == ["b", "c"]
        assert storage.items == {}

    def test_namespaces_do_not_share_snapshots(self, clock):
        storage = MemoryStorage()
        AdvancedCache(enable_persistence=True, persistence_key="one", storage=storage, clock=clock).set("k", 1)

        other = AdvancedCache(enable_persistence=True, persistence_key="two", storage=storage, clock=clock)

        assert other.get("k") is None

    def test_persistence_status_tracks_last_write(self, clock):
        storage = BrokenStorage(fail_reads=False, fail_writes=True)
        cache = AdvancedCache(enable_persistence=True, storage=storage, clock=clock)
        assert cache.persistence_status() == {
            "enabled": True,
            "key": "app-cache",
            "healthy": True,
            "failures": 0,
            "last_error": None,
        }

        cache.set("a", 1)
        cache.set("b", 2)
        status = cache.persistence_status()
        assert status["healthy"] is False
        assert status["failures"] == 2
        assert status["last_error"] == "OSError: quota exceeded"

        storage.fail_writes = False
        cache.set("c", 3)
        status = cache.persistence_status()
        assert status["healthy"] is True
        assert status["failures"] == 2
        assert set(json.loads(storage.items["app-cache"])) == {"a", "b", "c"}

    def test_persistence_status_without_storage(self):
        status = AdvancedCache().persistence_status()

        assert status["enabled"] is False
        assert status["healthy"] is True
