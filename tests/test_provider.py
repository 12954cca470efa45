import pytest

from unicache.cache import (
    DEFAULT_EXPIRE_TIME,
    CacheError,
    CacheNotFoundError,
    get_value,
    set_default_client,
    set_value,
)
from unicache.encoding import JSONEncoding
from unicache.memory import MemoryCache
from unicache.provider import (
    CacheType,
    Config,
    Manager,
    MemoryConfig,
    Provider,
    RedisClusterConfig,
    RedisConfig,
    default_config,
    default_redis_cluster_config,
    default_redis_config,
    new_provider,
    setup_global_cache,
)
from unicache.redis_cache import RedisCache


class _FailingClient:
    def __init__(self):
        self.closed = 0

    def close(self):
        self.closed += 1
        raise RuntimeError("boom")


class _CountingClient:
    def __init__(self):
        self.closed = 0

    def close(self):
        self.closed += 1


@pytest.fixture
def memory_provider():
    provider = new_provider(default_config(), JSONEncoding(), dict)
    yield provider
    provider.close()


def test_cache_type_values():
    assert CacheType("memory") is CacheType.MEMORY
    assert CacheType("redis") is CacheType.REDIS
    assert CacheType("redis_cluster") is CacheType.REDIS_CLUSTER


def test_default_config():
    config = default_config()
    assert config.type is CacheType.MEMORY
    assert config.key_prefix == ""
    assert config.default_expire_time == DEFAULT_EXPIRE_TIME
    assert config.memory == MemoryConfig(10_000_000, 1 << 30, 64)


def test_default_redis_config():
    config = default_redis_config("localhost:6379")
    assert config.type is CacheType.REDIS
    assert config.redis.addr == "localhost:6379"
    assert config.redis.pool_size == 10
    assert config.redis.min_idle_conns == 2
    assert config.redis.dial_timeout == 5
    assert config.redis.read_timeout == 3


def test_default_redis_cluster_config_copies_addresses():
    addrs = ["localhost:7000", "localhost:7001"]
    config = default_redis_cluster_config(addrs)
    addrs.append("localhost:7002")
    assert config.type is CacheType.REDIS_CLUSTER
    assert config.redis_cluster.addrs == ["localhost:7000", "localhost:7001"]
    assert config.redis_cluster.conn_max_lifetime == 3600


def test_memory_provider_round_trip(memory_provider):
    cache = memory_provider.cache
    assert isinstance(cache, MemoryCache)
    cache.set("user", {"name": "alice"}, 60)
    assert cache.get("user", {}) == {"name": "alice"}


def test_memory_provider_uses_own_store_and_prefix():
    config = Config(type="memory", key_prefix="app", memory=MemoryConfig(100, 1000, 8))
    with new_provider(config, JSONEncoding()) as provider:
        provider.cache.set("k", [1, 2], 0)
        assert provider.client.get("app:k") == b"[1,2]"
        assert provider.client.options.max_cost == 1000


def test_memory_provider_fills_missing_memory_config():
    config = Config(type=CacheType.MEMORY)
    provider = new_provider(config, JSONEncoding())
    assert config.memory == MemoryConfig()
    provider.close()


def test_memory_provider_close_refuses_writes(memory_provider):
    memory_provider.close()
    with pytest.raises(CacheError):
        memory_provider.cache.set("k", {"a": 1}, 10)


def test_new_provider_rejects_none():
    with pytest.raises(CacheError):
        new_provider(None)


def test_new_provider_rejects_unknown_type():
    with pytest.raises(CacheError, match="unsupported"):
        new_provider(Config(type="memcached"))


def test_redis_provider_requires_config():
    with pytest.raises(CacheError):
        new_provider(Config(type=CacheType.REDIS))


def test_redis_provider_fills_defaults():
    config = Config(type=CacheType.REDIS, key_prefix="svc", redis=RedisConfig(addr="localhost:6380", db=2))
    provider = new_provider(config, JSONEncoding())
    try:
        assert isinstance(provider.cache, RedisCache)
        assert provider.cache.key_prefix == "svc"
        assert config.redis.pool_size == 10
        assert config.redis.min_idle_conns == 2
        assert config.redis.write_timeout == 3
        kwargs = provider.client.connection_pool.connection_kwargs
        assert kwargs["host"] == "localhost"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2
    finally:
        provider.close()


def test_redis_provider_keeps_explicit_values():
    config = Config(type=CacheType.REDIS, redis=RedisConfig(addr="localhost", pool_size=4, read_timeout=1.5))
    provider = new_provider(config)
    try:
        assert config.redis.pool_size == 4
        assert config.redis.read_timeout == 1.5
        assert provider.client.connection_pool.connection_kwargs["port"] == 6379
    finally:
        provider.close()


def test_redis_cluster_provider_requires_config():
    with pytest.raises(CacheError):
        new_provider(Config(type=CacheType.REDIS_CLUSTER))


def test_redis_cluster_provider_requires_addresses():
    config = Config(type=CacheType.REDIS_CLUSTER, redis_cluster=RedisClusterConfig())
    with pytest.raises(CacheError, match="address"):
        new_provider(config)


def test_setup_global_cache_sets_default_client():
    provider = setup_global_cache(default_config(), JSONEncoding())
    try:
        set_value("greeting", {"text": "hi"}, 30)
        assert get_value("greeting", {}) == {"text": "hi"}
        with pytest.raises(CacheNotFoundError):
            get_value("missing", {})
    finally:
        provider.close()
        set_default_client(None)


def test_setup_global_cache_wraps_errors():
    with pytest.raises(CacheError, match="failed to create cache provider"):
        setup_global_cache(Config(type="unknown"))


def test_manager_add_get_and_list(memory_provider):
    manager = Manager()
    manager.add_provider("main", memory_provider)
    assert manager.get_provider("main") is memory_provider
    assert manager.get_cache("main") is memory_provider.cache
    assert manager.get_provider("other") is None
    assert manager.get_cache("other") is None
    assert manager.list_providers() == ["main"]


def test_manager_remove_provider_closes_it(memory_provider):
    client = _CountingClient()
    manager = Manager()
    manager.add_provider("x", Provider(memory_provider.cache, client))
    manager.remove_provider("x")
    assert client.closed == 1
    assert manager.list_providers() == []


def test_manager_remove_unknown_provider():
    with pytest.raises(CacheError, match="does not exist"):
        Manager().remove_provider("nope")


def test_manager_remove_keeps_provider_when_close_fails(memory_provider):
    manager = Manager()
    manager.add_provider("bad", Provider(memory_provider.cache, _FailingClient()))
    with pytest.raises(CacheError, match="bad"):
        manager.remove_provider("bad")
    assert manager.list_providers() == ["bad"]


def test_manager_close_all_closes_every_provider(memory_provider):
    good = _CountingClient()
    bad = _FailingClient()
    manager = Manager()
    manager.add_provider("good", Provider(memory_provider.cache, good))
    manager.add_provider("bad", Provider(memory_provider.cache, bad))
    with pytest.raises(CacheError, match="bad") as info:
        manager.close_all()
    assert isinstance(info.value.__cause__, RuntimeError)
    assert good.closed == 1
    assert bad.closed == 1


def test_manager_close_all_without_failures(memory_provider):
    client = _CountingClient()
    manager = Manager()
    manager.add_provider("a", Provider(memory_provider.cache, client))
    manager.add_provider("b", Provider(memory_provider.cache, None))
    manager.close_all()
    assert client.closed == 1