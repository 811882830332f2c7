import pytest

from cache import ResultCache


class FakeTimer:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_get_or_compute_returns_stored_object():
    cache = ResultCache()
    calls = []

    def compute():
        calls.append(1)
        return {"chart": "natal"}

    first = cache.get_or_compute("k", compute, 60)
    second = cache.get_or_compute("k", compute, 60)

    assert second is first
    assert len(calls) == 1


def test_entry_expires_after_ttl():
    timer = FakeTimer()
    cache = ResultCache(timer=timer)
    cache.set("k", "old", 60)

    timer.now += 30
    assert cache.get("k") == "old"

    timer.now += 60
    assert cache.get("k") is None
    assert cache.get_or_compute("k", lambda: "new", 60) == "new"


def test_entries_expire_independently():
    timer = FakeTimer()
    cache = ResultCache(timer=timer)
    cache.set("transit", 1, 10)
    cache.set("natal", 2, 1000)

    timer.now += 50

    assert "transit" not in cache
    assert cache.get("natal") == 2
    assert len(cache) == 1


def test_failed_computation_is_not_cached():
    cache = ResultCache()

    def boom():
        raise RuntimeError("solver failed")

    with pytest.raises(RuntimeError):
        cache.get_or_compute("k", boom, 60)

    assert "k" not in cache
    assert cache.get_or_compute("k", lambda: 42, 60) == 42


def test_force_refresh_recomputes():
    cache = ResultCache()
    cache.set("k", 1, 60)

    assert cache.get_or_compute("k", lambda: 2, 60) == 1
    assert cache.get_or_compute("k", lambda: 2, 60, force_refresh=True) == 2
    assert cache.get("k") == 2


def test_delete_and_clear():
    cache = ResultCache()
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.clear()
    assert len(cache) == 0


def test_namespaces_are_isolated():
    cache = ResultCache()
    natal = cache.namespace("natal")
    transit = cache.namespace("transit")

    natal.set("k", "n", 60)
    transit.set("k", "t", 60)

    assert natal.get("k") == "n"
    assert transit.get("k") == "t"
    assert cache.get("natal:k") == "n"

    assert natal.flush() == 1
    assert "k" not in natal
    assert transit.get("k") == "t"


def test_namespace_get_or_compute():
    cache = ResultCache()
    ns = cache.namespace("charts")

    value = ns.get_or_compute("natal:x", lambda: [1, 2], 60)

    assert ns.get_or_compute("natal:x", lambda: [3], 60) is value
    assert "charts:natal:x" in cache


def test_maxsize_evicts_least_recently_used():
    cache = ResultCache(maxsize=2)
    cache.set("a", 1, 60)
    cache.set("b", 2, 60)
    cache.get("a")
    cache.set("c", 3, 60)

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
