"""Simple in-memory TTL cache for upstream order fetches."""
import time
from typing import Any

_cache: dict[str, tuple[float, Any]] = {}
_MISS = object()


def orders_cache_key(start_date: str, end_date: str) -> str:
    """Cache key for an orders date range."""
    return f"{start_date}-{end_date}"


def get_cached(key: str):
    """Return cached value if still valid, else _MISS sentinel."""
    now = time.time()
    if key in _cache:
        expires, value = _cache[key]
        if now < expires:
            return value
        del _cache[key]
    return _MISS


def set_cached(key: str, value: Any, seconds: int = 300):
    """Store a value in cache with TTL."""
    _cache[key] = (time.time() + seconds, value)


def invalidate(key: str):
    """Drop a single entry (after an auto-refresh replaces it)."""
    _cache.pop(key, None)


def cache_size() -> int:
    return len(_cache)


def clear_cache() -> int:
    """Clear all cached values. Returns the number of entries removed."""
    size = len(_cache)
    _cache.clear()
    return size
