from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from windscribe_port_sync.infrastructure.adapters.cache.memory_cache import InMemoryCache
from windscribe_port_sync.infrastructure.adapters.cache.sqlite_cache import SQLiteCache
from tests.unit._fakes import NOW, FixedClock


@pytest.fixture(params=["memory", "sqlite"])
def cache_and_clock(request, tmp_path):
    clock = FixedClock()
    if request.param == "memory":
        yield InMemoryCache(clock=clock), clock
    else:
        cache = SQLiteCache(str(tmp_path / "cache.sqlite"), clock=clock)
        yield cache, clock
        cache.close()


def test_value_expires_after_ttl(cache_and_clock):
    cache, clock = cache_and_clock
    cache.set("sessionCookie", "abc", timedelta(minutes=10))
    assert cache.get_with_expiry("sessionCookie") == ("abc", NOW + timedelta(minutes=10))

    clock.advance(timedelta(minutes=10))
    assert cache.get("sessionCookie") is None


def test_overwrite_and_delete(cache_and_clock):
    cache, _ = cache_and_clock
    cache.set("port", "10583", timedelta(days=7))
    cache.set("port", "10011", timedelta(days=7))
    assert cache.get("port") == "10011"
    cache.delete("port")
    assert cache.get("port") is None
    cache.delete("port")


def test_namespaces_are_isolated():
    clock = FixedClock()
    a = InMemoryCache("a", clock=clock)
    a.set("port", "1", timedelta(hours=1))
    assert InMemoryCache("b", clock=clock).get("port") is None


def test_sqlite_survives_reopen(tmp_path):
    clock = FixedClock()
    path = str(tmp_path / "nested" / "cache.sqlite")
    first = SQLiteCache(path, clock=clock)
    first.set("port", "10583", timedelta(days=7))
    first.close()

    second = SQLiteCache(path, clock=clock)
    assert second.get_with_expiry("port") == ("10583", NOW + timedelta(days=7))
    second.close()


def test_concurrent_reads_of_expired_entry():
    clock = FixedClock()
    cache = InMemoryCache(clock=clock)
    cache.set("port", "10583", timedelta(minutes=1))
    clock.advance(timedelta(minutes=2))
    errors = []

    def read():
        try:
            for _ in range(200):
                assert cache.get("port") is None
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=read) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
