"""Tests for the in-process edge cache."""

import json
import threading

from edge_cache import EdgeCache, parse_max_age


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_parse_max_age():
    assert parse_max_age({"Cache-Control": "public, max-age=60"}) == 60
    assert parse_max_age({"cache-control": "no-cache, no-store"}) == 0
    assert parse_max_age({}) is None


def test_match_returns_stored_body():
    cache = EdgeCache()
    cache.put("https://x/view/ABC", '{"image": null}', {"Cache-Control": "max-age=60"})
    cached = cache.match("https://x/view/ABC")
    assert json.loads(cached.body) == {"image": None}
    assert cache.match("https://x/view/OTHER") is None


def test_entries_expire_after_max_age():
    ticker = Ticker()
    cache = EdgeCache(clock=ticker)
    cache.put("k", "1", {"Cache-Control": "public, max-age=10"})
    ticker.now = 9.9
    assert cache.match("k") is not None
    ticker.now = 10
    assert cache.match("k") is None
    assert len(cache) == 0


def test_no_store_responses_are_not_cached():
    cache = EdgeCache()
    cache.put("k", "1", {"Cache-Control": "no-cache, no-store"})
    assert cache.match("k") is None


def test_least_recently_used_entry_is_evicted():
    cache = EdgeCache(max_entries=2)
    cache.put("a", "1")
    cache.put("b", "2")
    cache.match("a")
    cache.put("c", "3")
    assert cache.match("b") is None
    assert cache.match("a") is not None
    assert cache.match("c") is not None


def test_concurrent_puts_keep_the_size_bound():
    cache = EdgeCache(max_entries=50)
    sizes = []

    def fill(prefix):
        for i in range(200):
            cache.put(f"{prefix}{i}", "1")
            sizes.append(len(cache))

    threads = [threading.Thread(target=fill, args=(f"t{n}-",)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 50
    assert max(sizes) <= 50
