"""Local durable cache of task graphs."""

from tasksync.cache.store import CacheEntry, GraphCache, cache_key

__all__ = ["CacheEntry", "GraphCache", "cache_key"]
