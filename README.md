# unicache

unicache gives you one cache interface (`unicache.cache.Cache`) with three
backends behind it:

- `unicache.memory.MemoryCache`, an in-process store
- `unicache.redis_cache.RedisCache`, for a single Redis server
- `unicache.redis_cache.RedisClusterCache`, for a Redis Cluster

Every backend treats keys and values the same way:

- When a key prefix is set, keys are stored as `prefix:key`
  (`build_cache_key`). An empty key raises `CacheError`.
- Values pass through an `Encoding` before they are stored. `JSONEncoding` is
  included.
- A "not found" placeholder (`*`) can be cached for ten minutes, so a lookup
  that keeps missing does not reach the backing database every time
  (`set_cache_with_not_found`).

Expirations are given in seconds.

## Installation

```
pip install unicache
```

To run the test suite, install the `test` extra and run pytest:

```
pip install "unicache[test]"
pytest
```

## Errors

All cache errors derive from `unicache.cache.CacheError`:

- `CacheNotFoundError` means the key is not in the cache.
- `PlaceholderError` means the key holds the not-found placeholder, or an
  empty value.
- Any other `CacheError` covers bad keys, values that fail to encode or
  decode, and client failures.

## Memory cache

```python
from unicache.encoding import JSONEncoding
from unicache.memory import MemoryCache
from unicache.cache import CacheNotFoundError, PlaceholderError

cache = MemoryCache("user", JSONEncoding(), dict)

cache.set("42", {"name": "alice"}, 60)       # stored under "user:42" for 60 s
profile = {}
cache.get("42", profile)                     # fills `profile` and returns it

cache.set_cache_with_not_found("43")         # remember that 43 does not exist
try:
    cache.get("43", {})
except PlaceholderError:
    ...                                      # known to be missing
except CacheNotFoundError:
    ...                                      # not cached at all
```

An expiration of `0` means the entry never expires.

`multi_get(keys)` returns a dict that holds only the keys that were found and
decoded, keyed by the keys you passed in. Each value is built with the factory
the cache was given (`dict` above). `multi_set(values, expiration)` stores each
item in turn. `delete(*keys)` on a memory cache removes only the first key it
is given.

If you do not pass `client=`, every `MemoryCache` shares a process-wide
`MemoryStore`, which `get_global_memory()` returns. `init_global_memory(...)`
replaces that store and `close_global_memory()` closes it.

`MemoryStore` can also be used on its own. Use `init_memory(num_counters,
max_cost, buffer_items)` or `MemoryStore(MemoryOptions(...))`. The store
offers these methods:

- `set_with_ttl(key, value, cost, ttl)`
- `get(key)`, which raises `KeyError` when the key is missing or expired
- `delete(key)`
- `wait()`
- `close()`

When the total cost would exceed `max_cost`, the least recently used entries
are evicted first. `MemoryCache` stores every entry with a cost of 0, so a
memory cache is never trimmed by cost. `num_counters` and `buffer_items` must
be positive, but they do not affect how the store behaves.

## Redis and Redis Cluster

```python
import redis
from unicache.redis_cache import RedisCache
from unicache.encoding import JSONEncoding

client = redis.Redis(host="localhost", port=6379)
cache = RedisCache(client, "orders", JSONEncoding(), dict)
cache.multi_set({"1": {"total": 10}, "2": {"total": 20}}, 300)
found = cache.multi_get(["1", "2", "3"])     # {"orders:1": {...}, "orders:2": {...}}
```

The Redis caches differ from the memory cache in a few ways:

- `multi_get` keys its result by the full cache key, prefix included. Missing
  keys, placeholders and values that do not decode are left out.
- `multi_set` writes all values in one pipeline and then sets an `EXPIRE` on
  each key, in whole seconds. An expiration below one second is rounded up to
  one second, so pass a positive expiration. Values that fail to encode and
  empty keys are logged and skipped. If nothing is left to write, it raises
  `CacheError`.
- `delete` removes every key it is given and skips empty ones.
- `set` with an expiration of `0` stores the value without expiry.

`RedisClusterCache` works the same way with a `redis.cluster.RedisCluster`
client. It writes each key with its own `SET` and reads with
`mget_nonatomic`, so keys may live in different slots.

## Configuration, providers and the default client

```python
from unicache.provider import (
    Manager,
    default_config,
    default_redis_config,
    new_provider,
    setup_global_cache,
)
from unicache.encoding import JSONEncoding
from unicache import cache

provider = new_provider(default_config(), JSONEncoding(), dict)
provider.cache.set("k", {"v": 1}, 60)

manager = Manager()
manager.add_provider("local", provider)
manager.add_provider(
    "shared", new_provider(default_redis_config("localhost:6379"), JSONEncoding(), dict)
)
print(sorted(manager.list_providers()))      # ['local', 'shared']
manager.close_all()

setup_global_cache(default_config(), JSONEncoding(), dict)
cache.set_value("greeting", {"text": "hello"}, 60)
```

### Configuration

`Config.type` is a `CacheType` (`memory`, `redis` or `redis_cluster`) or the
matching string. Any other value raises `CacheError`. The settings for each
backend are held in the `MemoryConfig`, `RedisConfig` and `RedisClusterConfig`
dataclasses. The helpers `default_config()`, `default_redis_config(addr)` and
`default_redis_cluster_config(addrs)` return ready-made configs. Addresses are
written as `host:port`, and the port defaults to 6379.

When a Redis setting is left at zero, it is given a default as the provider is
created:

| Setting | Default |
| --- | --- |
| Pool size | 10 |
| Idle connections | 2 |
| Connection lifetime | one hour |
| Dial timeout | 5 s |
| Read and write timeouts | 3 s |

A missing Redis or cluster section, or an empty cluster address list, raises
`CacheError`.

### Providers

A `Provider` holds its `cache` and the `client` behind it. `close()` closes
that client. A provider can also be used as a context manager.

`Manager` keeps providers by name:

- `get_provider` and `get_cache` return `None` for an unknown name.
- `remove_provider` closes the provider and forgets it. For an unknown name it
  raises `CacheError`.
- `close_all` closes every provider. If any close fails, it raises a
  `CacheError` for the last one that failed.

### The default client

`setup_global_cache` builds a provider, makes its cache the process-wide
default, and returns the provider. `set_default_client(cache)` does the same
for a cache you built yourself.

The module functions in `unicache.cache` all act on the default client:

- `set_value`
- `get_value`
- `multi_set`
- `multi_get`
- `delete`
- `set_cache_with_not_found`

They raise `CacheError` if no default client has been set.

## Encodings and codecs

`JSONEncoding.marshal` writes plain values and objects; objects are written
from their attributes. `unmarshal(data, target)` fills `target` in place:

- a dict is cleared and updated
- a list is replaced
- any other object has its attributes set

`unicache.encoding.marshal(encoding, value)` falls back to the value's
`marshal_binary()` method when the encoding fails or is `None`.
`unmarshal(encoding, data, target)` falls back in the same way to the target's
`unmarshal_binary(data)` method. An immutable target such as an `int` or a
`str` raises `NotAPointerError`.

`register_codec(codec)` stores a `Codec` under the lower-cased result of its
`name()`. `get_codec(name)` returns the codec stored under that name, or
`None`.

## What unicache does not do

- It has no command-line tool and runs no server.
- The memory store lives only in the current process. Nothing in it is written
  to disk or shared between processes.