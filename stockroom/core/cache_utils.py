"""
Caching helpers for expensive aggregate queries
Uses Django's cache framework (Redis in production, local memory otherwise)
"""
from django.conf import settings
from django.core.cache import cache
import logging

logger = logging.getLogger(__name__)

DASHBOARD_SUMMARY_CACHE_KEY = "dashboard_summary"


def get_cached_dashboard_summary():
    """Return the cached dashboard summary, or None on a miss"""
    data = cache.get(DASHBOARD_SUMMARY_CACHE_KEY)
    if data is None:
        logger.debug(f"Cache MISS for {DASHBOARD_SUMMARY_CACHE_KEY}")
    else:
        logger.debug(f"Cache HIT for {DASHBOARD_SUMMARY_CACHE_KEY}")
    return data


def cache_dashboard_summary(data, ttl=None):
    """Cache dashboard summary data"""
    if ttl is None:
        ttl = settings.DASHBOARD_CACHE_TTL
    cache.set(DASHBOARD_SUMMARY_CACHE_KEY, data, ttl)
    logger.debug(f"Cached dashboard summary for {ttl}s")


def invalidate_dashboard_cache():
    """Invalidate dashboard summary cache"""
    cache.delete(DASHBOARD_SUMMARY_CACHE_KEY)
    logger.debug("Invalidated dashboard cache")
