"""Cache adapters implementing CachePort."""

from engmetrics.adapters.cache.in_memory import InMemoryCache

__all__ = ["InMemoryCache"]
