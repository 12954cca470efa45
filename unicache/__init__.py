"""A uniform cache interface over in-process memory, Redis and Redis Cluster backends."""

__version__ = "0.1.0"

__all__ = ["cache", "encoding", "memory", "redis_cache", "provider"]