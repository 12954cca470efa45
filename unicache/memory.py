"""In-process cache store with TTLs and cost-bounded eviction."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Mapping

from .cache import (
    DEFAULT_NOT_FOUND_EXPIRE_TIME,
    NOT_FOUND_PLACEHOLDER_BYTES,
    Cache,
    CacheError,
    CacheNotFoundError,
    PlaceholderError,
    build_cache_key,
)
from .encoding import Encoding, marshal, unmarshal


@dataclass(frozen=True)
class MemoryOptions:
    """Sizing of a memory store."""

    num_counters: int = 10_000_000
    max_cost: int = 1 << 30
    buffer_items: int = 64

    def __post_init__(self) -> None:
        for field in ("num_counters", "max_cost", "buffer_items"):
            if getattr(self, field) <= 0:
                raise ValueError(f"{field} must be positive")


@dataclass
class _Entry:
    value: Any
    cost: int
    expires_at: float | None


class MemoryStore:
    """Thread-safe key-value store; least recently used entries go first when full."""

    def __init__(
        self,
        options: MemoryOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or MemoryOptions()
        self._clock = clock
        self._items: OrderedDict[Hashable, _Entry] = OrderedDict()
        self._total_cost = 0
        self._closed = False
        self._lock = threading.Lock()

    def _expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    def _remove(self, key: Hashable) -> None:
        entry = self._items.pop(key, None)
        if entry is not None:
            self._total_cost -= entry.cost

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._items.items() if self._expired(e, now)]:
            self._remove(key)

    def set_with_ttl(self, key: Hashable, value: Any, cost: int, ttl: float) -> bool:
        """Store ``value``; ``ttl`` of 0 means no expiry. Returns False if refused."""
        if ttl < 0:
            return False
        with self._lock:
            if self._closed or cost > self.options.max_cost:
                return False
            self._remove(key)
            self._purge_expired()
            while self._items and self._total_cost + cost > self.options.max_cost:
                self._remove(next(iter(self._items)))
            expires_at = None if ttl == 0 else self._clock() + ttl
            self._items[key] = _Entry(value, cost, expires_at)
            self._total_cost += cost
            return True

    def get(self, key: Hashable) -> Any:
        """Return the live value under ``key``; raise KeyError if absent."""
        with self._lock:
            entry = None if self._closed else self._items.get(key)
            if entry is None:
                raise KeyError(key)
            if self._expired(entry, self._clock()):
                self._remove(key)
                raise KeyError(key)
            self._items.move_to_end(key)
            return entry.value

    def delete(self, key: Hashable) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            if not self._closed:
                self._remove(key)

    def wait(self) -> None:
        """Settle the store: writes are applied and expired entries dropped."""
        with self._lock:
            self._purge_expired()

    def close(self) -> None:
        """Drop all entries and refuse further writes."""
        with self._lock:
            self._closed = True
            self._items.clear()
            self._total_cost = 0

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for e in self._items.values() if not self._expired(e, now))

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def init_memory(
    num_counters: int = 10_000_000,
    max_cost: int = 1 << 30,
    buffer_items: int = 64,
) -> MemoryStore:
    """Create a memory store with the given sizing."""
    return MemoryStore(MemoryOptions(num_counters, max_cost, buffer_items))


_global_store: MemoryStore | None = None
_global_lock = threading.Lock()


def init_global_memory(
    num_counters: int = 10_000_000,
    max_cost: int = 1 << 30,
    buffer_items: int = 64,
) -> None:
    """Replace the process-wide memory store."""
    global _global_store
    _global_store = init_memory(num_counters, max_cost, buffer_items)


def get_global_memory() -> MemoryStore:
    """Return the process-wide memory store, creating it with defaults once."""
    global _global_store
    if _global_store is None:
        with _global_lock:
            if _global_store is None:
                _global_store = init_memory()
    return _global_store


def close_global_memory() -> None:
    """Close the process-wide memory store if one exists."""
    if _global_store is not None:
        _global_store.close()


class MemoryCache(Cache):
    """Cache backed by a memory store; values are kept encoded."""

    def __init__(
        self,
        key_prefix: str = "",
        encoding: Encoding | None = None,
        new_object: Callable[[], Any] = dict,
        *,
        client: MemoryStore | None = None,
        default_expire_time: float = 0.0,
    ) -> None:
        self.client = get_global_memory() if client is None else client
        self.key_prefix = key_prefix
        self.encoding = encoding
        self.new_object = new_object
        self.default_expire_time = default_expire_time

    def _cache_key(self, key: str) -> str:
        try:
            return build_cache_key(self.key_prefix, key)
        except CacheError as exc:
            raise CacheError(f"build cache key error: {exc}, key={key}") from exc

    def set(self, key: str, value: Any, expiration: float) -> None:
        try:
            buf = marshal(self.encoding, value)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"encode error: {exc}, key={key}, value={value!r}") from exc
        if not buf:
            buf = NOT_FOUND_PLACEHOLDER_BYTES
        cache_key = self._cache_key(key)
        if not self.client.set_with_ttl(cache_key, buf, 0, expiration):
            raise CacheError("set_with_ttl failed")
        self.client.wait()

    def get(self, key: str, target: Any) -> Any:
        cache_key = self._cache_key(key)
        try:
            data = self.client.get(cache_key)
        except KeyError:
            raise CacheNotFoundError(cache_key) from None
        if not isinstance(data, bytes):
            raise CacheError(
                f"unexpected data type, key={key}, type={type(data).__name__}"
            )
        if not data or data == NOT_FOUND_PLACEHOLDER_BYTES:
            raise PlaceholderError(cache_key)
        try:
            return unmarshal(self.encoding, data, target)
        except (TypeError, ValueError) as exc:
            raise CacheError(
                f"decode error: {exc}, key={key}, cache_key={cache_key}, "
                f"type={type(target).__name__}, data={data!r}"
            ) from exc

    def delete(self, *args: str) -> None:
        """Remove the first of the given keys."""
        if not args:
            return
        self.client.delete(self._cache_key(args[0]))

    def multi_set(self, values: Mapping[str, Any], expiration: float) -> None:
        for key, value in values.items():
            self.set(key, value, expiration)

    def multi_get(self, keys: Iterable[str]) -> dict[str, Any]:
        found: dict[str, Any] = {}
        for key in keys:
            try:
                found[key] = self.get(key, self.new_object())
            except CacheError:
                continue
        return found

    def set_cache_with_not_found(self, key: str) -> None:
        cache_key = self._cache_key(key)
        if not self.client.set_with_ttl(
            cache_key, NOT_FOUND_PLACEHOLDER_BYTES, 0, DEFAULT_NOT_FOUND_EXPIRE_TIME
        ):
            raise CacheError("set_with_ttl failed")