from concurrent.futures import ThreadPoolExecutor

from orderkaro.cache import QueryCache


def test_key_ignores_parameter_order():
    assert QueryCache.generate_key("products", {"a": 1, "b": 2}) == QueryCache.generate_key("products", {"b": 2, "a": 1})


def test_key_without_params():
    assert QueryCache.generate_key("categories") == "categories:"


def test_get_returns_fresh_entry(clock):
    cache = QueryCache(max_age=60, clock=clock)
    cache.set("products", {"id": 1}, {"name": "Bananas"})
    clock.advance(59)
    assert cache.get("products", {"id": 1}) == {"name": "Bananas"}


def test_expired_entry_is_evicted_on_read(clock):
    cache = QueryCache(max_age=60, clock=clock)
    cache.set("products", {"id": 1}, {"name": "Bananas"})
    clock.advance(61)
    assert cache.get("products", {"id": 1}) is None
    assert len(cache) == 0


def test_clear_is_scoped_to_table(clock):
    cache = QueryCache(clock=clock)
    cache.set("products", {"id": 1}, "p")
    cache.set("products_archive", None, "x")
    cache.set("categories", None, "c")
    cache.clear("products")
    assert cache.get("products", {"id": 1}) is None
    assert cache.get("products_archive") == "x"
    assert cache.get("categories") == "c"

    cache.clear()
    assert len(cache) == 0


def test_stats_counts_expired_entries(clock):
    cache = QueryCache(max_age=10, clock=clock)
    cache.set("products", {"id": 1}, "old")
    clock.advance(11)
    cache.set("products", {"id": 2}, "new")
    assert cache.stats() == {"total": 2, "expired": 1, "active": 1}


def test_concurrent_writes_and_reads():
    cache = QueryCache(max_age=0)

    def write(n):
        for i in range(500):
            cache.set("products", {"i": i, "n": n}, i)
            if i % 50 == 0:
                cache.clear("products")

    def read():
        for _ in range(500):
            stats = cache.stats()
            assert stats["total"] == stats["expired"] + stats["active"]
            cache.get("products", {"i": 1, "n": 0})

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(write, n) for n in range(4)] + [pool.submit(read) for _ in range(4)]
    for future in futures:
        future.result()
