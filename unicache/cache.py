"""The cache interface, key building and the process-wide default client."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

DEFAULT_EXPIRE_TIME = 24 * 60 * 60.0
"""Default expiration, in seconds."""

DEFAULT_NOT_FOUND_EXPIRE_TIME = 10 * 60.0
"""Expiration of not-found placeholders, in seconds (cache penetration guard)."""

NOT_FOUND_PLACEHOLDER = "*"
NOT_FOUND_PLACEHOLDER_BYTES = NOT_FOUND_PLACEHOLDER.encode()


class CacheError(Exception):
    """Base error of cache operations."""


class CacheNotFoundError(CacheError):
    """The key is not in the cache."""


class PlaceholderError(CacheError):
    """The key holds the not-found placeholder."""


class Cache(ABC):
    """A key-value cache. Expirations are in seconds; 0 means no expiry."""

    @abstractmethod
    def set(self, key: str, value: Any, expiration: float) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    def get(self, key: str, target: Any) -> Any:
        """Decode the value under ``key`` into ``target`` and return it."""

    @abstractmethod
    def multi_set(self, values: Mapping[str, Any], expiration: float) -> None:
        """Store every item of ``values``."""

    @abstractmethod
    def multi_get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return a mapping of the keys that were found to their values."""

    @abstractmethod
    def delete(self, *args: str) -> None:
        """Remove the given keys."""

    @abstractmethod
    def set_cache_with_not_found(self, key: str) -> None:
        """Store the not-found placeholder under ``key``."""


def build_cache_key(key_prefix: str, key: str) -> str:
    """Join ``key_prefix`` and ``key`` with a colon."""
    if not key:
        raise CacheError("cache key must not be empty")
    if key_prefix:
        return f"{key_prefix}:{key}"
    return key


_default_client: Cache | None = None


def set_default_client(client: Cache | None) -> Cache | None:
    """Set (or clear, with None) the process-wide default cache.

    Returns the client that was the default before the call.
    """
    global _default_client
    if client is not None and not isinstance(client, Cache):
        raise TypeError(f"default client must be a Cache, not {type(client).__name__}")
    previous = _default_client
    _default_client = client
    return previous


def get_default_client() -> Cache:
    """Return the process-wide default cache."""
    if _default_client is None:
        raise CacheError("no default cache client has been set up")
    return _default_client


def set_value(key: str, value: Any, expiration: float) -> None:
    """Store a value in the default cache."""
    get_default_client().set(key, value, expiration)


def get_value(key: str, target: Any) -> Any:
    """Read a value from the default cache into ``target``."""
    return get_default_client().get(key, target)


def multi_set(values: Mapping[str, Any], expiration: float) -> None:
    """Store several values in the default cache."""
    get_default_client().multi_set(values, expiration)


def multi_get(keys: Iterable[str]) -> dict[str, Any]:
    """Read several values from the default cache."""
    return get_default_client().multi_get(keys)


def delete(*args: str) -> None:
    """Remove keys from the default cache."""
    get_default_client().delete(*args)


def set_cache_with_not_found(key: str) -> None:
    """Store the not-found placeholder in the default cache."""
    get_default_client().set_cache_with_not_found(key)