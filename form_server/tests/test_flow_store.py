"""Tests for the pending-login cache: single use, TTL, concurrent takers."""
import threading

from form_server.flow_store import AuthorizationSessionCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_take_and_remove_is_single_use():
    cache = AuthorizationSessionCache()
    cache.put("s1", "verifier-1")
    assert cache.take_and_remove("s1") == "verifier-1"
    assert cache.take_and_remove("s1") is None
    assert len(cache) == 0


def test_unknown_state_returns_none():
    cache = AuthorizationSessionCache()
    assert cache.take_and_remove("never-issued") is None


def test_expired_entry_not_served():
    clock = FakeClock()
    cache = AuthorizationSessionCache(ttl_seconds=600, clock=clock)
    cache.put("s1", "v")
    clock.now += 601
    assert cache.take_and_remove("s1") is None
    assert len(cache) == 0


def test_entry_within_ttl_served():
    clock = FakeClock()
    cache = AuthorizationSessionCache(ttl_seconds=600, clock=clock)
    cache.put("s1", "v")
    clock.now += 599
    assert cache.take_and_remove("s1") == "v"


def test_sweep_expired_removes_only_stale_entries():
    clock = FakeClock()
    cache = AuthorizationSessionCache(ttl_seconds=10, clock=clock)
    cache.put("old", "v1")
    clock.now += 8
    cache.put("new", "v2")
    clock.now += 5
    assert cache.sweep_expired() == 1
    assert cache.take_and_remove("old") is None
    assert cache.take_and_remove("new") == "v2"


def test_put_sweeps_lazily():
    clock = FakeClock()
    cache = AuthorizationSessionCache(ttl_seconds=10, clock=clock)
    cache.put("old", "v1")
    clock.now += 11
    cache.put("new", "v2")
    assert len(cache) == 1


def test_concurrent_takers_get_verifier_once():
    cache = AuthorizationSessionCache()
    cache.put("raced", "v")
    n = 16
    barrier = threading.Barrier(n)
    results = []
    results_lock = threading.Lock()

    def take():
        barrier.wait()
        value = cache.take_and_remove("raced")
        with results_lock:
            results.append(value)

    threads = [threading.Thread(target=take) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count("v") == 1
    assert results.count(None) == n - 1
