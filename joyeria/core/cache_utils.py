"""
Caching utilities for expensive aggregate queries.

Keys are namespaced by a generation counter: bumping the generation makes
every older key unreachable on any cache backend, and on Redis the stale
keys are also deleted right away.
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
SALES_SUMMARY_CACHE_TTL = 30
DASHBOARD_CACHE_TTL = 60
LOW_STOCK_CACHE_TTL = 180

SALES_NAMESPACE = 'sales_summary'
STOCK_NAMESPACE = 'stock'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_cache_generation(namespace):
    return cache.get(f"{namespace}:version") or 0


def bump_cache_generation(namespace):
    """Invalidate every key cached under ``namespace``"""
    generation_key = f"{namespace}:version"
    try:
        cache.incr(generation_key)
    except ValueError:
        cache.set(generation_key, 1, None)
    invalidate_cache_pattern(f"{namespace}:g")


def cached_query(cache_ttl=60, namespace="query"):
    """
    Decorator to cache expensive queries under a namespace

    Usage:
        @cached_query(cache_ttl=30, namespace=SALES_NAMESPACE)
        def build_summary(branch_id, day):
            # expensive query here
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            prefix = f"{namespace}:g{get_cache_generation(namespace)}:{func.__name__}"
            cache_key = make_cache_key(prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {func.__name__}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {func.__name__}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Delete all keys matching a pattern when the cache is Redis.
    Other backends rely on the generation counter alone.
    """
    if 'redis' not in cache.__class__.__module__:
        return
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_sales_cache():
    """Drop cached sales summaries and dashboard figures"""
    bump_cache_generation(SALES_NAMESPACE)
    logger.debug("Invalidated sales summary cache")


def invalidate_stock_cache():
    bump_cache_generation(STOCK_NAMESPACE)
    logger.debug("Invalidated stock cache")
