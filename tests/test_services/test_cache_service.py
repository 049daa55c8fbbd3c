from unittest.mock import patch

from app.services.cache_service import CacheService


def test_set_get_and_expiry():
    cache = CacheService(default_ttl=30)

    with patch("app.services.cache_service.time.time", return_value=1000.0):
        cache.set("deletion_requests:stats", {"pending_count": 2}, window_days=30)
        assert cache.get("deletion_requests:stats", window_days=30) == {"pending_count": 2}
        assert cache.get("deletion_requests:stats", window_days=7) is None

    with patch("app.services.cache_service.time.time", return_value=1031.0):
        assert cache.get("deletion_requests:stats", window_days=30) is None
    assert cache.cache == {}


def test_invalidate_prefix_only_touches_matching_keys():
    cache = CacheService()
    cache.set("deletion_requests:pending_count", 4)
    cache.set("deletion_requests:stats", {}, window_days=30)
    cache.set("assets:count", 10)

    removed = cache.invalidate_prefix("deletion_requests:")

    assert removed == 2
    assert cache.get("deletion_requests:pending_count") is None
    assert cache.get("assets:count") == 10


def test_value_read_before_invalidation_is_not_stored():
    cache = CacheService()
    generation = cache.generation

    # A write commits and invalidates while the value is being computed
    cache.invalidate_prefix("deletion_requests:")

    assert cache.set("deletion_requests:pending_count", 4, generation=generation) is False
    assert cache.get("deletion_requests:pending_count") is None

    assert cache.set("deletion_requests:pending_count", 5, generation=cache.generation) is True
    assert cache.get("deletion_requests:pending_count") == 5
