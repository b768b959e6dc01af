import pytest

from quickcall import CacheStore


def _clock(monkeypatch, store, start=100.0):
    now = {"t": start}
    monkeypatch.setattr(store, "_now", lambda: now["t"])
    return now


def test_ttl_expiry(monkeypatch):
    store = CacheStore()
    now = _clock(monkeypatch, store)
    store.set("k", "v", ttl=10)
    now["t"] += 9
    assert store.get("k") == "v"
    now["t"] += 1
    # now - stored_at == ttl counts as expired and is evicted
    assert store.get("k") is None
    assert len(store) == 0


def test_clear_and_invalidate():
    store = CacheStore()
    store.set("a", 1, ttl=60)
    store.set("b", 2, ttl=60)
    store.invalidate("a")
    assert store.get("a") is None
    store.clear()
    assert store.get("b") is None


def test_non_positive_ttl_is_not_stored():
    store = CacheStore()
    store.set("k", "v", ttl=0)
    assert store.get("k") is None


def test_max_entries_drops_oldest():
    store = CacheStore(max_entries=2)
    store.set("a", 1, ttl=60)
    store.set("b", 2, ttl=60)
    store.set("a", 3, ttl=60)  # overwrite refreshes position
    store.set("c", 4, ttl=60)
    assert store.get("b") is None
    assert store.get("a") == 3  # noqa: PLR2004
    assert store.get("c") == 4  # noqa: PLR2004
    with pytest.raises(ValueError):
        CacheStore(max_entries=0)


def test_purge_and_stats(monkeypatch):
    store = CacheStore()
    now = _clock(monkeypatch, store)
    store.set("short", 1, ttl=1)
    store.set("long", 2, ttl=100)
    now["t"] += 5
    assert store.purge_expired() == 1
    assert store.get("long") == 2  # noqa: PLR2004
    assert store.get("missing") is None
    stats = store.stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
