"""
Tests for the response cache
"""
import pytest

from resourcegraph.cache import RedisClient, ResponseCache, derive_cache_key, entry_key

from conftest import FakeRedis


class Clock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class Counter:
    """Compute callback that counts its calls."""

    def __init__(self, value=None):
        self.calls = 0
        self.value = value

    async def __call__(self):
        self.calls += 1
        return self.value if self.value is not None else {"call": self.calls}


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock=clock)


@pytest.fixture
def cache(fake_redis, clock) -> ResponseCache:
    return ResponseCache(RedisClient(redis=fake_redis), prefix="api_server:", ttl=300, enabled=True, clock=clock)


# === Key derivation ===


def test_cache_key_ignores_param_order():
    first = derive_cache_key("products", "list", {"page": 1, "filter": {"a": 1, "b": 2}})
    second = derive_cache_key("products", "list", {"filter": {"b": 2, "a": 1}, "page": 1})

    assert first == second
    assert first[0] == "products:collection"


def test_read_key_is_addressed_by_identifier():
    key, field = derive_cache_key("products", "read", {"id": 5, "fields": ["name"]}, prefix="api_server:")

    assert key == "api_server:products:item:5"
    assert field == derive_cache_key("products", "read", {"id": 9, "fields": ["name"]})[1]


def test_aliases_share_keys():
    assert derive_cache_key("products", "index", {"page": 2}) == derive_cache_key("products", "list", {"page": 2})
    assert derive_cache_key("products", "show", {"id": 1}) == derive_cache_key("products", "read", {"id": 1})


def test_different_params_give_different_fields():
    _, first = derive_cache_key("products", "list", {"page": 1})
    _, second = derive_cache_key("products", "list", {"page": 2})

    assert first != second


# === remember ===


async def test_list_is_computed_once(cache):
    compute = Counter()

    first = await cache.remember("products", "list", {"page": 1}, compute)
    second = await cache.remember("products", "list", {"page": 1}, compute)

    assert first == second == {"call": 1}
    assert compute.calls == 1


async def test_disabled_cache_always_computes(fake_redis):
    cache = ResponseCache(RedisClient(redis=fake_redis), enabled=False)
    compute = Counter()

    await cache.remember("products", "list", {}, compute)
    await cache.remember("products", "list", {}, compute)

    assert compute.calls == 2
    assert fake_redis.commands == []


async def test_cache_without_client_always_computes():
    cache = ResponseCache(None, enabled=True)
    compute = Counter()

    await cache.remember("products", "list", {}, compute)
    await cache.remember("products", "list", {}, compute)

    assert compute.calls == 2


@pytest.mark.parametrize("kind", ["create", "update", "delete"])
async def test_mutating_kinds_are_never_cached(cache, fake_redis, kind):
    compute = Counter()

    await cache.remember("products", kind, {"id": 1}, compute)
    await cache.remember("products", kind, {"id": 1}, compute)

    assert compute.calls == 2
    assert "set" not in fake_redis.commands


async def test_entries_expire_after_ttl(cache, clock):
    compute = Counter()

    await cache.remember("products", "read", {"id": 1}, compute)
    clock.now += 301
    value = await cache.remember("products", "read", {"id": 1}, compute)

    assert value == {"call": 2}
    assert compute.calls == 2


async def test_stale_entry_is_deleted_when_read(fake_redis, clock):
    cache = ResponseCache(RedisClient(redis=fake_redis), ttl=300, enabled=True, clock=clock)
    await cache.remember("products", "list", {"page": 1}, Counter())
    key = entry_key(*cache.key_for("products", "list", {"page": 1}))
    # the backend still holds the entry, but the cache now allows less
    cache.ttl = 60
    clock.now += 61

    async def failing():
        raise LookupError("missing")

    with pytest.raises(LookupError):
        await cache.remember("products", "list", {"page": 1}, failing)

    assert key not in fake_redis.data


async def test_indexes_stay_bounded_by_ttl(cache, fake_redis, clock):
    for page in range(200):
        await cache.remember("products", "list", {"page": page}, Counter())
        clock.now += 60

    live = 300 // 60 + 1
    assert len(_entries(fake_redis, "api_server:products:collection")) <= live
    assert len(fake_redis.data["api_server:products:collection"]) <= live
    assert len(fake_redis.data["api_server:products:keys"]) <= live + 1


async def test_item_indexes_stay_bounded_by_ttl(cache, fake_redis, clock):
    for fields in range(50):
        await cache.remember("products", "read", {"id": 1, "fields": [f"f{fields}"]}, Counter())
        clock.now += 100

    assert len(fake_redis.data["api_server:products:item:1"]) <= 4
    assert len(_entries(fake_redis, "api_server:products:item:1")) <= 4


async def test_written_keys_get_ttl(cache, fake_redis):
    await cache.remember("products", "read", {"id": 1}, Counter())

    key = entry_key(*cache.key_for("products", "read", {"id": 1}))

    assert key.startswith("api_server:products:item:1:")
    assert fake_redis.ttls[key] == 300
    assert fake_redis.ttls["api_server:products:item:1"] == 300
    assert fake_redis.ttls["api_server:products:keys"] == 300


async def test_compute_errors_are_not_cached(cache):
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        raise LookupError("missing")

    for _ in range(2):
        with pytest.raises(LookupError):
            await cache.remember("products", "read", {"id": 1}, failing)

    assert calls == 2


# === flush ===


def _entries(fake_redis, group):
    return [key for key in fake_redis.data if key.startswith(f"{group}:")]


async def _fill(cache):
    await cache.remember("products", "list", {"page": 1}, Counter({"list": 1}))
    await cache.remember("products", "read", {"id": 1}, Counter({"item": 1}))
    await cache.remember("products", "read", {"id": 2}, Counter({"item": 2}))
    await cache.remember("categories", "list", {}, Counter({"list": "c"}))


async def test_flush_item_invalidates_item_and_collection(cache, fake_redis):
    await _fill(cache)

    assert await cache.flush("products", 1) is True

    assert "api_server:products:item:1" not in fake_redis.data
    assert "api_server:products:collection" not in fake_redis.data
    assert _entries(fake_redis, "api_server:products:item:1") == []
    assert _entries(fake_redis, "api_server:products:collection") == []
    assert len(_entries(fake_redis, "api_server:products:item:2")) == 1
    assert "api_server:products:item:2" in fake_redis.data
    assert "api_server:categories:collection" in fake_redis.data


async def test_flush_item_matches_string_identifiers(cache, fake_redis):
    await cache.remember("products", "read", {"id": 7}, Counter())

    await cache.flush("products", "7")

    assert "api_server:products:item:7" not in fake_redis.data


async def test_flush_resource_invalidates_all_its_entries(cache, fake_redis):
    await _fill(cache)

    await cache.flush("products")

    assert not any(key.startswith("api_server:products:") for key in fake_redis.data)
    assert "api_server:categories:collection" in fake_redis.data


async def test_flush_everything(cache, fake_redis):
    await _fill(cache)

    await cache.flush()

    assert fake_redis.data == {}


async def test_flush_collection_keeps_items(cache, fake_redis):
    await _fill(cache)

    await cache.flush_collection("products")

    assert "api_server:products:collection" not in fake_redis.data
    assert _entries(fake_redis, "api_server:products:collection") == []
    assert "api_server:products:item:1" in fake_redis.data


async def test_flushed_entries_are_recomputed(cache):
    compute = Counter()
    await cache.remember("products", "read", {"id": 1}, compute)

    await cache.flush("products", 1)
    await cache.remember("products", "read", {"id": 1}, compute)

    assert compute.calls == 2


async def test_no_wildcard_key_scans(cache, fake_redis):
    await _fill(cache)
    await cache.flush("products")
    await cache.flush()

    assert not {"keys", "scan", "scan_iter"} & set(fake_redis.commands)


# === Backend failures ===


async def test_backend_failure_falls_back_to_compute(cache, fake_redis):
    fake_redis.fail = True
    compute = Counter()

    first = await cache.remember("products", "list", {}, compute)
    second = await cache.remember("products", "list", {}, compute)

    assert first == {"call": 1}
    assert second == {"call": 2}


async def test_backend_failure_on_flush_is_reported_not_raised(cache, fake_redis):
    fake_redis.fail = True

    assert await cache.flush("products", 1) is False
    assert await cache.flush_collection("products") is False


async def test_unreadable_entry_is_a_miss(cache, fake_redis):
    key = entry_key(*cache.key_for("products", "read", {"id": 1}))
    fake_redis.data[key] = "not json"
    compute = Counter()

    value = await cache.remember("products", "read", {"id": 1}, compute)

    assert value == {"call": 1}
    assert await cache.remember("products", "read", {"id": 1}, compute) == {"call": 1}


async def test_disconnected_client_is_recovered(clock):
    client = RedisClient("redis://localhost:6379/0")
    cache = ResponseCache(client, enabled=True, clock=clock)
    compute = Counter()

    value = await cache.remember("products", "list", {}, compute)

    assert value == {"call": 1}
    assert await cache.flush() is False
