"""Redis-backed caches for a single server and for a cluster."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from redis.exceptions import RedisError

from .cache import (
    DEFAULT_NOT_FOUND_EXPIRE_TIME,
    NOT_FOUND_PLACEHOLDER,
    NOT_FOUND_PLACEHOLDER_BYTES,
    Cache,
    CacheError,
    CacheNotFoundError,
    PlaceholderError,
    build_cache_key,
)
from .encoding import Encoding, marshal, unmarshal

_log = logging.getLogger(__name__)


def _expire_seconds(expiration: float) -> int:
    """Whole seconds for EXPIRE; sub-second expirations round up to one second."""
    if 0 < expiration < 1:
        return 1
    return int(expiration)


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class RedisCache(Cache):
    """Cache stored in a Redis server; values are kept encoded.

    Expirations are in seconds; 0 means no expiry for ``set``.
    """

    def __init__(
        self,
        client: Any,
        key_prefix: str = "",
        encoding: Encoding | None = None,
        new_object: Callable[[], Any] = dict,
        *,
        default_expire_time: float = 0.0,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.encoding = encoding
        self.new_object = new_object
        self.default_expire_time = default_expire_time

    def _cache_key(self, key: str) -> str:
        try:
            return build_cache_key(self.key_prefix, key)
        except CacheError as exc:
            raise CacheError(f"build cache key error: {exc}, key={key}") from exc

    def _encode(self, key: str, value: Any) -> bytes:
        try:
            return marshal(self.encoding, value)
        except (TypeError, ValueError) as exc:
            raise CacheError(f"encode error: {exc}, key={key}, value={value!r}") from exc

    def _queue_writes(self, pipeline: Any, pairs: dict[str, bytes]) -> None:
        pipeline.mset(pairs)

    def _fetch_many(self, cache_keys: list[str]) -> list[Any]:
        return self.client.mget(cache_keys)

    def set(self, key: str, value: Any, expiration: float) -> None:
        buf = self._encode(key, value)
        cache_key = self._cache_key(key)
        if not buf:
            buf = NOT_FOUND_PLACEHOLDER_BYTES
        options = {"px": max(1, int(expiration * 1000))} if expiration > 0 else {}
        try:
            self.client.set(cache_key, buf, **options)
        except RedisError as exc:
            raise CacheError(f"client set error: {exc}, cache_key={cache_key}") from exc

    def get(self, key: str, target: Any) -> Any:
        cache_key = self._cache_key(key)
        try:
            raw = self.client.get(cache_key)
        except RedisError as exc:
            raise CacheError(f"client get error: {exc}, cache_key={cache_key}") from exc
        if raw is None:
            raise CacheNotFoundError(cache_key)
        data = _as_bytes(raw)
        if not data or data == NOT_FOUND_PLACEHOLDER_BYTES:
            raise PlaceholderError(cache_key)
        try:
            return unmarshal(self.encoding, data, target)
        except (TypeError, ValueError) as exc:
            raise CacheError(
                f"decode error: {exc}, key={key}, cache_key={cache_key}, "
                f"type={type(target).__name__}, data={data!r}"
            ) from exc

    def multi_set(self, values: Mapping[str, Any], expiration: float) -> None:
        """Store every item, then set each key's expiry in the same pipeline.

        Values that cannot be encoded and empty keys are logged and skipped.
        """
        if not values:
            return
        pairs: dict[str, bytes] = {}
        for key, value in values.items():
            try:
                buf = marshal(self.encoding, value)
            except (TypeError, ValueError) as exc:
                _log.warning("encode error, %s, value: %r", exc, value)
                continue
            try:
                cache_key = build_cache_key(self.key_prefix, key)
            except CacheError as exc:
                _log.warning("build cache key error, %s, key: %r", exc, key)
                continue
            pairs[cache_key] = buf
        if not pairs:
            raise CacheError("pipeline mset error: nothing to set")
        seconds = _expire_seconds(expiration)
        try:
            pipeline = self.client.pipeline(transaction=False)
            self._queue_writes(pipeline, pairs)
            for cache_key in pairs:
                pipeline.expire(cache_key, seconds)
            pipeline.execute()
        except RedisError as exc:
            raise CacheError(f"pipeline exec error: {exc}") from exc

    def multi_get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return found values keyed by their full cache keys.

        Missing keys, placeholders and undecodable values are left out.
        """
        cache_keys = [self._cache_key(key) for key in keys]
        if not cache_keys:
            return {}
        try:
            raw_values = self._fetch_many(cache_keys)
        except RedisError as exc:
            raise CacheError(f"client mget error: {exc}, keys={cache_keys}") from exc
        found: dict[str, Any] = {}
        for cache_key, raw in zip(cache_keys, raw_values):
            if raw is None:
                continue
            data = _as_bytes(raw)
            if not data or data == NOT_FOUND_PLACEHOLDER_BYTES:
                continue
            try:
                found[cache_key] = unmarshal(self.encoding, data, self.new_object())
            except (TypeError, ValueError) as exc:
                _log.warning("decode error: %s, cache_key=%s", exc, cache_key)
        return found

    def delete(self, *args: str) -> None:
        """Remove the given keys; empty keys are skipped."""
        cache_keys = []
        for key in args:
            try:
                cache_keys.append(build_cache_key(self.key_prefix, key))
            except CacheError:
                continue
        if not cache_keys:
            return
        try:
            self.client.delete(*cache_keys)
        except RedisError as exc:
            raise CacheError(f"client delete error: {exc}, keys={cache_keys}") from exc

    def set_cache_with_not_found(self, key: str) -> None:
        cache_key = self._cache_key(key)
        try:
            self.client.set(
                cache_key,
                NOT_FOUND_PLACEHOLDER,
                ex=int(DEFAULT_NOT_FOUND_EXPIRE_TIME),
            )
        except RedisError as exc:
            raise CacheError(f"client set error: {exc}, cache_key={cache_key}") from exc


class RedisClusterCache(RedisCache):
    """Cache stored in a Redis cluster; multi-key commands are split by slot."""

    def _queue_writes(self, pipeline: Any, pairs: dict[str, bytes]) -> None:
        for cache_key, buf in pairs.items():
            pipeline.set(cache_key, buf)

    def _fetch_many(self, cache_keys: list[str]) -> list[Any]:
        return self.client.mget_nonatomic(cache_keys)