"""
Caching utilities for the dashboard and reports
Uses Redis (django-redis) when configured
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300
REPORTS_CACHE_TTL = 600

DASHBOARD_PREFIX = "dashboard"
REPORTS_PREFIX = "reports"


def make_cache_key(prefix, *args):
    """Build '<prefix>:<md5 of args>' so per-user report variants never collide"""
    digest = hashlib.md5(repr(args).encode()).hexdigest()
    return f"{prefix}:{digest}"


def get_or_compute(prefix, ttl, compute, *args):
    """Return the cached value for (prefix, args) or compute and store it"""
    key = make_cache_key(prefix, *args)
    value = cache.get(key)
    if value is not None:
        logger.debug(f"{prefix} cache hit: {key}")
        return value

    logger.debug(f"{prefix} cache miss: {key}")
    value = compute()
    cache.set(key, value, ttl)
    return value


def invalidate_prefix(prefix):
    """
    Drop every cached entry under a prefix.
    Only django-redis exposes delete_pattern; other backends keep entries until their TTL expires.
    """
    delete_pattern = getattr(cache, 'delete_pattern', None)
    if delete_pattern is None:
        logger.debug(f"Cache backend has no pattern delete; '{prefix}' entries expire by TTL")
        return 0
    try:
        removed = delete_pattern(f"{prefix}:*")
    except Exception as e:
        logger.warning(f"Could not invalidate cache prefix '{prefix}': {e}")
        return 0
    if removed:
        logger.info(f"Invalidated {removed} cache keys under '{prefix}'")
    return removed


def invalidate_dashboard_cache():
    return invalidate_prefix(DASHBOARD_PREFIX)


def invalidate_reports_cache():
    return invalidate_prefix(REPORTS_PREFIX)
