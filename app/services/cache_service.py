"""
Cache Service for read-side aggregates

Short-lived cache for the admin dashboard numbers (stats, pending count).
Never consulted for the pending check inside a state-changing operation.
"""

import json
import time
from typing import Any, Dict, Optional
import hashlib
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

DELETION_REQUEST_PREFIX = "deletion_requests:"


class CacheService:
    """
    Simple in-memory cache service with TTL (Time To Live) support.

    Entries are per-process; every write path invalidates by prefix.
    Invalidation bumps ``generation`` so a value computed before the
    invalidation is not stored after it.
    """

    def __init__(self, default_ttl: int = 30):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self.generation = 0

    def _generate_key(self, key: str, **kwargs) -> str:
        """Generate a cache key with optional parameters."""
        if not kwargs:
            return key

        # Sort kwargs for consistent key generation
        sorted_kwargs = sorted(kwargs.items())
        params_str = json.dumps(sorted_kwargs, sort_keys=True, default=str)
        params_hash = hashlib.md5(params_str.encode()).hexdigest()[:8]

        return f"{key}:{params_hash}"

    def get(self, key: str, **kwargs) -> Optional[Any]:
        """Get value from cache."""
        cache_key = self._generate_key(key, **kwargs)

        if cache_key in self.cache:
            entry = self.cache[cache_key]

            if entry["expires_at"] > time.time():
                return entry["value"]
            else:
                del self.cache[cache_key]

        return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        generation: Optional[int] = None,
        **kwargs
    ) -> bool:
        """
        Set value in cache with TTL.

        When ``generation`` is given and an invalidation has happened since it
        was read, the value is dropped. Returns whether it was stored.
        """
        if generation is not None and generation != self.generation:
            logger.debug(f"Dropped stale cache value for {key}")
            return False

        cache_key = self._generate_key(key, **kwargs)
        ttl = ttl or self.default_ttl

        self.cache[cache_key] = {
            "value": value,
            "expires_at": time.time() + ttl,
            "created_at": time.time()
        }
        return True

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        self.generation += 1
        keys_to_delete = [key for key in self.cache.keys() if key.startswith(prefix)]
        for key in keys_to_delete:
            del self.cache[key]
        if keys_to_delete:
            logger.debug(f"Invalidated {len(keys_to_delete)} cache entries under {prefix}")
        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all cache entries."""
        self.generation += 1
        self.cache.clear()


# Global cache instance
cache = CacheService(default_ttl=settings.read_cache_ttl_seconds)


def invalidate_deletion_request_reads() -> None:
    """Called after every committed workflow write."""
    cache.invalidate_prefix(DELETION_REQUEST_PREFIX)
