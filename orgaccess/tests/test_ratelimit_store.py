"""Fixed-window attempt counters."""
import os
import threading
from uuid import uuid4

import pytest

from orgaccess.core.config import Settings
from orgaccess.core.ratelimit import (
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    build_rate_limit_store,
)

WINDOW = 86400
T0 = 1_700_000_000.0


def test_counts_up_to_limit_then_blocks():
    store = InMemoryRateLimitStore()
    results = [store.increment("k", limit=3, window_seconds=WINDOW, now=T0 + i) for i in range(4)]
    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.count for r in results] == [1, 2, 3, 3]
    assert all(r.reset_at == T0 + WINDOW for r in results)


def test_blocked_attempts_do_not_extend_window():
    store = InMemoryRateLimitStore()
    for i in range(3):
        store.increment("k", limit=3, window_seconds=WINDOW, now=T0)
    for i in range(5):
        blocked = store.increment("k", limit=3, window_seconds=WINDOW, now=T0 + 1000 * i)
        assert blocked.allowed is False
    window = store.get("k")
    assert window.count == 3
    assert window.reset_at == T0 + WINDOW


def test_window_expiry_starts_fresh_at_one():
    store = InMemoryRateLimitStore()
    for _ in range(4):
        store.increment("k", limit=3, window_seconds=WINDOW, now=T0)
    fresh = store.increment("k", limit=3, window_seconds=WINDOW, now=T0 + WINDOW)
    assert fresh.allowed is True
    assert fresh.count == 1
    assert fresh.reset_at == T0 + 2 * WINDOW


def test_keys_are_independent_and_reset():
    store = InMemoryRateLimitStore()
    store.increment("a", limit=1, window_seconds=WINDOW, now=T0)
    assert store.increment("a", limit=1, window_seconds=WINDOW, now=T0).allowed is False
    assert store.increment("b", limit=1, window_seconds=WINDOW, now=T0).allowed is True
    store.reset("a")
    assert store.get("a") is None
    assert store.increment("a", limit=1, window_seconds=WINDOW, now=T0).allowed is True


def test_retry_after_rounds_up():
    store = InMemoryRateLimitStore()
    window = store.increment("k", limit=1, window_seconds=10, now=T0)
    assert window.retry_after(T0 + 0.5) == 10
    assert window.retry_after(T0 + 10) == 0


def test_concurrent_increments_never_exceed_limit():
    store = InMemoryRateLimitStore()
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(20)

    def attempt():
        barrier.wait()
        window = store.increment("shared", limit=3, window_seconds=WINDOW, now=T0)
        with lock:
            results.append(window.allowed)

    threads = [threading.Thread(target=attempt) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 3
    assert store.get("shared").count == 3


def test_build_store_selects_backend():
    assert isinstance(build_rate_limit_store(Settings(RATE_LIMIT_BACKEND="memory")), InMemoryRateLimitStore)
    with pytest.raises(RuntimeError):
        build_rate_limit_store(Settings(RATE_LIMIT_BACKEND="redis", REDIS_URL=None))
    with pytest.raises(RuntimeError):
        build_rate_limit_store(Settings(RATE_LIMIT_BACKEND="carrier-pigeon"))


@pytest.mark.skipif(not os.getenv("REDIS_URL"), reason="Redis required for redis store test")
def test_redis_store_matches_memory_semantics():
    store = RedisRateLimitStore.from_url(os.environ["REDIS_URL"], prefix=f"test:{uuid4()}:")
    try:
        results = [store.increment("k", limit=3, window_seconds=WINDOW, now=T0) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert store.get("k").count == 3
        fresh = store.increment("k", limit=3, window_seconds=WINDOW, now=T0 + WINDOW)
        assert fresh.count == 1
        assert fresh.reset_at == T0 + 2 * WINDOW
    finally:
        store.reset("k")


def test_expired_windows_are_evicted():
    store = InMemoryRateLimitStore()
    for i in range(1000):
        store.increment(f"actor_{i}", limit=3, window_seconds=WINDOW, now=T0)
    assert len(store) == 1000

    store.increment("late", limit=3, window_seconds=WINDOW, now=T0 + WINDOW)
    assert len(store) == 1
    assert store.get("actor_0") is None

    store.reset("late")
    assert len(store) == 0


def test_live_windows_survive_sweep():
    store = InMemoryRateLimitStore()
    store.increment("old", limit=3, window_seconds=WINDOW, now=T0)
    store.increment("recent", limit=3, window_seconds=WINDOW, now=T0 + WINDOW - 1)
    store.increment("late", limit=3, window_seconds=WINDOW, now=T0 + WINDOW)
    assert store.get("old") is None
    assert store.get("recent").count == 1
    assert len(store) == 2
