import threading

import pytest

from cachingproxy.cache import CacheElement, LRUCache


def _element_size(data, url):
    return CacheElement(data, url).size


def test_add_then_find_returns_data():
    cache = LRUCache()
    assert cache.add(b"response body", "GET /a") is True
    element = cache.find("GET /a")
    assert element.data == b"response body"
    assert element.url == "GET /a"


def test_find_missing_returns_none():
    cache = LRUCache()
    cache.add(b"data", "one")
    assert cache.find("two") is None


def test_len_and_size_track_contents():
    cache = LRUCache()
    cache.add(b"aaaa", "u1")
    cache.add(b"bbbbbb", "u2")
    assert len(cache) == 2
    assert cache.size == _element_size(b"aaaa", "u1") + _element_size(b"bbbbbb", "u2")


def test_oversized_element_rejected():
    size = _element_size(b"x" * 10, "u1")
    cache = LRUCache(max_size=size * 10, max_element_size=size - 1)
    assert cache.add(b"x" * 10, "u1") is False
    assert len(cache) == 0
    assert cache.find("u1") is None


def test_element_at_limit_accepted():
    size = _element_size(b"x" * 10, "u1")
    cache = LRUCache(max_size=size, max_element_size=size)
    assert cache.add(b"x" * 10, "u1") is True
    assert len(cache) == 1


def test_eviction_removes_oldest():
    size = _element_size(b"x" * 10, "u1")
    cache = LRUCache(max_size=2 * size, max_element_size=size)
    cache.add(b"a" * 10, "u1")
    cache.add(b"b" * 10, "u2")
    cache.add(b"c" * 10, "u3")
    assert cache.find("u1") is None
    assert cache.find("u2").data == b"b" * 10
    assert cache.find("u3").data == b"c" * 10
    assert cache.size <= cache.max_size


def test_find_refreshes_recency():
    size = _element_size(b"x" * 10, "u1")
    cache = LRUCache(max_size=2 * size, max_element_size=size)
    cache.add(b"a" * 10, "u1")
    cache.add(b"b" * 10, "u2")
    assert cache.find("u1") is not None
    cache.add(b"c" * 10, "u3")
    assert cache.find("u2") is None
    assert cache.find("u1").data == b"a" * 10


def test_last_used_increases_on_find():
    cache = LRUCache()
    cache.add(b"data", "u1")
    first = cache.find("u1").last_used
    second = cache.find("u1").last_used
    assert second > first


def test_re_adding_url_replaces_entry():
    cache = LRUCache()
    cache.add(b"old", "u1")
    cache.add(b"newer", "u1")
    assert len(cache) == 1
    assert cache.find("u1").data == b"newer"
    assert cache.size == _element_size(b"newer", "u1")


def test_remove_oldest_returns_least_recent():
    cache = LRUCache()
    cache.add(b"a", "u1")
    cache.add(b"b", "u2")
    removed = cache.remove_oldest()
    assert removed.url == "u1"
    assert len(cache) == 1
    assert cache.size == _element_size(b"b", "u2")


def test_remove_oldest_on_empty_cache():
    cache = LRUCache()
    assert cache.remove_oldest() is None
    assert cache.size == 0


@pytest.mark.parametrize("count", [1, 5, 20])
def test_concurrent_adds_keep_size_consistent(count):
    cache = LRUCache()

    def worker(index):
        cache.add(b"payload", f"url-{index}")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(cache) == count
    assert cache.size == sum(
        _element_size(b"payload", f"url-{i}") for i in range(count)
    )