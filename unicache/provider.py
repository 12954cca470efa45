"""Cache providers built from configuration, and a named provider manager."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable

import redis
from redis.cluster import ClusterNode, RedisCluster

from .cache import DEFAULT_EXPIRE_TIME, Cache, CacheError, set_default_client
from .encoding import Encoding
from .memory import MemoryCache, init_memory
from .redis_cache import RedisCache, RedisClusterCache

_DEFAULT_REDIS_PORT = 6379
_DEFAULT_POOL_SIZE = 10
_DEFAULT_MIN_IDLE_CONNS = 2
_DEFAULT_CONN_MAX_LIFETIME = 3600.0
_DEFAULT_DIAL_TIMEOUT = 5.0
_DEFAULT_READ_TIMEOUT = 3.0
_DEFAULT_WRITE_TIMEOUT = 3.0


class CacheType(str, enum.Enum):
    """Kind of cache backend."""

    MEMORY = "memory"
    REDIS = "redis"
    REDIS_CLUSTER = "redis_cluster"


@dataclass
class MemoryConfig:
    """Sizing of an in-process cache."""

    num_counters: int = 10_000_000
    max_cost: int = 1 << 30
    buffer_items: int = 64


@dataclass
class RedisConfig:
    """Connection settings of a single Redis server; durations in seconds.

    Zero values are replaced by defaults when a provider is created.
    """

    addr: str = ""
    password: str = ""
    db: int = 0
    pool_size: int = 0
    min_idle_conns: int = 0
    max_idle_conns: int = 0
    conn_max_lifetime: float = 0.0
    dial_timeout: float = 0.0
    read_timeout: float = 0.0
    write_timeout: float = 0.0


@dataclass
class RedisClusterConfig:
    """Connection settings of a Redis cluster; durations in seconds.

    Zero values are replaced by defaults when a provider is created.
    """

    addrs: list[str] = field(default_factory=list)
    password: str = ""
    pool_size: int = 0
    min_idle_conns: int = 0
    max_idle_conns: int = 0
    conn_max_lifetime: float = 0.0
    dial_timeout: float = 0.0
    read_timeout: float = 0.0
    write_timeout: float = 0.0


@dataclass
class Config:
    """Which cache to build and how."""

    type: CacheType | str
    key_prefix: str = ""
    default_expire_time: float = 0.0
    memory: MemoryConfig | None = None
    redis: RedisConfig | None = None
    redis_cluster: RedisClusterConfig | None = None


class Provider:
    """Owns a cache and the client behind it."""

    def __init__(self, cache: Cache, client: Any = None) -> None:
        self.cache = cache
        self.client = client

    def close(self) -> None:
        """Close the underlying client, if any."""
        if self.client is not None:
            self.client.close()

    def __enter__(self) -> "Provider":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _fill_connection_defaults(conf: RedisConfig | RedisClusterConfig) -> None:
    if conf.pool_size == 0:
        conf.pool_size = _DEFAULT_POOL_SIZE
    if conf.min_idle_conns == 0:
        conf.min_idle_conns = _DEFAULT_MIN_IDLE_CONNS
    if conf.conn_max_lifetime == 0:
        conf.conn_max_lifetime = _DEFAULT_CONN_MAX_LIFETIME
    if conf.dial_timeout == 0:
        conf.dial_timeout = _DEFAULT_DIAL_TIMEOUT
    if conf.read_timeout == 0:
        conf.read_timeout = _DEFAULT_READ_TIMEOUT
    if conf.write_timeout == 0:
        conf.write_timeout = _DEFAULT_WRITE_TIMEOUT


def _split_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port``; the port defaults to the standard Redis port."""
    host, sep, port = addr.rpartition(":")
    if not sep or (host.count(":") and not host.startswith("[")):
        host, port = addr, ""
    host = host.strip("[]") or "localhost"
    if not port:
        return host, _DEFAULT_REDIS_PORT
    try:
        return host, int(port)
    except ValueError:
        raise CacheError(f"invalid redis address: {addr}") from None


def _new_memory_provider(
    config: Config, encoding: Encoding | None, new_object: Callable[[], Any]
) -> Provider:
    if config.memory is None:
        config.memory = MemoryConfig()
    store = init_memory(
        config.memory.num_counters,
        config.memory.max_cost,
        config.memory.buffer_items,
    )
    cache = MemoryCache(
        config.key_prefix,
        encoding,
        new_object,
        client=store,
        default_expire_time=config.default_expire_time,
    )
    return Provider(cache, store)


def _new_redis_provider(
    config: Config, encoding: Encoding | None, new_object: Callable[[], Any]
) -> Provider:
    conf = config.redis
    if conf is None:
        raise CacheError("redis config must not be empty")
    _fill_connection_defaults(conf)
    host, port = _split_addr(conf.addr)
    client = redis.Redis(
        host=host,
        port=port,
        db=conf.db,
        password=conf.password or None,
        socket_timeout=conf.read_timeout,
        socket_connect_timeout=conf.dial_timeout,
        max_connections=conf.pool_size,
    )
    cache = RedisCache(
        client,
        config.key_prefix,
        encoding,
        new_object,
        default_expire_time=config.default_expire_time,
    )
    return Provider(cache, client)


def _new_redis_cluster_provider(
    config: Config, encoding: Encoding | None, new_object: Callable[[], Any]
) -> Provider:
    conf = config.redis_cluster
    if conf is None:
        raise CacheError("redis cluster config must not be empty")
    if not conf.addrs:
        raise CacheError("redis cluster address list must not be empty")
    _fill_connection_defaults(conf)
    nodes = [ClusterNode(*_split_addr(addr)) for addr in conf.addrs]
    try:
        client = RedisCluster(
            startup_nodes=nodes,
            password=conf.password or None,
            socket_timeout=conf.read_timeout,
            socket_connect_timeout=conf.dial_timeout,
            max_connections=conf.pool_size,
        )
    except redis.exceptions.RedisError as exc:
        raise CacheError(f"redis cluster connect error: {exc}") from exc
    cache = RedisClusterCache(
        client,
        config.key_prefix,
        encoding,
        new_object,
        default_expire_time=config.default_expire_time,
    )
    return Provider(cache, client)


_BUILDERS = {
    CacheType.MEMORY: _new_memory_provider,
    CacheType.REDIS: _new_redis_provider,
    CacheType.REDIS_CLUSTER: _new_redis_cluster_provider,
}


def new_provider(
    config: Config | None,
    encoding: Encoding | None = None,
    new_object: Callable[[], Any] = dict,
) -> Provider:
    """Build the provider that ``config`` describes."""
    if config is None:
        raise CacheError("cache config must not be empty")
    try:
        cache_type = CacheType(config.type)
    except ValueError:
        raise CacheError(f"unsupported cache type: {config.type}") from None
    return _BUILDERS[cache_type](config, encoding, new_object)


def default_config() -> Config:
    """Config for an in-process cache with default sizing."""
    return Config(
        type=CacheType.MEMORY,
        key_prefix="",
        default_expire_time=DEFAULT_EXPIRE_TIME,
        memory=MemoryConfig(),
    )


def default_redis_config(addr: str) -> Config:
    """Config for a single Redis server at ``addr``."""
    return Config(
        type=CacheType.REDIS,
        key_prefix="",
        default_expire_time=DEFAULT_EXPIRE_TIME,
        redis=RedisConfig(
            addr=addr,
            db=0,
            pool_size=_DEFAULT_POOL_SIZE,
            min_idle_conns=_DEFAULT_MIN_IDLE_CONNS,
            conn_max_lifetime=_DEFAULT_CONN_MAX_LIFETIME,
            dial_timeout=_DEFAULT_DIAL_TIMEOUT,
            read_timeout=_DEFAULT_READ_TIMEOUT,
            write_timeout=_DEFAULT_WRITE_TIMEOUT,
        ),
    )


def default_redis_cluster_config(addrs: list[str]) -> Config:
    """Config for a Redis cluster reachable through ``addrs``."""
    return Config(
        type=CacheType.REDIS_CLUSTER,
        key_prefix="",
        default_expire_time=DEFAULT_EXPIRE_TIME,
        redis_cluster=RedisClusterConfig(
            addrs=list(addrs),
            pool_size=_DEFAULT_POOL_SIZE,
            min_idle_conns=_DEFAULT_MIN_IDLE_CONNS,
            conn_max_lifetime=_DEFAULT_CONN_MAX_LIFETIME,
            dial_timeout=_DEFAULT_DIAL_TIMEOUT,
            read_timeout=_DEFAULT_READ_TIMEOUT,
            write_timeout=_DEFAULT_WRITE_TIMEOUT,
        ),
    )


def setup_global_cache(
    config: Config | None,
    encoding: Encoding | None = None,
    new_object: Callable[[], Any] = dict,
) -> Provider:
    """Build a provider and make its cache the process-wide default."""
    try:
        provider = new_provider(config, encoding, new_object)
    except CacheError as exc:
        raise CacheError(f"failed to create cache provider: {exc}") from exc
    set_default_client(provider.cache)
    return provider


class Manager:
    """Keeps providers by name."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    def add_provider(self, name: str, provider: Provider) -> None:
        """Register ``provider`` under ``name``, replacing any earlier one."""
        self._providers[name] = provider

    def get_provider(self, name: str) -> Provider | None:
        """Return the provider named ``name``, or None."""
        return self._providers.get(name)

    def get_cache(self, name: str) -> Cache | None:
        """Return the cache of the provider named ``name``, or None."""
        provider = self._providers.get(name)
        return None if provider is None else provider.cache

    def close_all(self) -> None:
        """Close every provider; raise for the last one that failed."""
        last_error: CacheError | None = None
        for name, provider in self._providers.items():
            try:
                provider.close()
            except Exception as exc:
                last_error = CacheError(f"failed to close cache provider {name}: {exc}")
                last_error.__cause__ = exc
        if last_error is not None:
            raise last_error

    def remove_provider(self, name: str) -> None:
        """Close the provider named ``name`` and forget it."""
        provider = self._providers.get(name)
        if provider is None:
            raise CacheError(f"cache provider {name} does not exist")
        try:
            provider.close()
        except Exception as exc:
            raise CacheError(f"failed to close cache provider {name}: {exc}") from exc
        del self._providers[name]

    def list_providers(self) -> list[str]:
        """Return the names of all providers."""
        return list(self._providers)