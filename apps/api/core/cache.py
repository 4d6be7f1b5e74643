"""
Redis caching layer.

Used for per-client analytics snapshots and by the rate limiter.
Degrades gracefully: with Redis disabled or unreachable every read is a miss
and every write is a no-op.
"""
import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import ConnectionError, TimeoutError, RedisError
from sqlalchemy import event
from sqlalchemy.orm import Session
from core.config import settings

logger = logging.getLogger(__name__)

# Redis connection pool (singleton)
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get Redis client with connection pooling. Returns None if Redis unavailable."""
    global _redis_client

    if not settings.CACHE_ENABLED:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30
        )
        _redis_client.ping()
        logger.info("Redis connection established")
        return _redis_client
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Redis unavailable: {e}. Caching disabled.")
        _redis_client = None
        return None


def cache_key(prefix: str, *args, **kwargs) -> str:
    """Generate cache key from prefix and arguments."""
    key_parts = [prefix]

    for arg in args:
        if arg is not None:
            key_parts.append(str(arg))

    for k, v in sorted(kwargs.items()):
        if v is not None:
            key_parts.append(f"{k}:{v}")

    return ":".join(key_parts)


def get_cache(key: str) -> Optional[Any]:
    """Get value from cache. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if not client:
        return None

    try:
        value = client.get(key)
        if value:
            return json.loads(value)
        return None
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache get error for key {key}: {e}")
        return None


def set_cache(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set value in cache. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.setex(
            key,
            ttl if ttl is not None else settings.CACHE_TTL_DEFAULT,
            json.dumps(value, default=str)  # default=str handles datetime, UUID, etc.
        )
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache set error for key {key}: {e}")
        return False


def delete_cache(key: str) -> bool:
    """Delete key from cache. Returns True if successful, False otherwise."""
    client = get_redis_client()
    if not client:
        return False

    try:
        client.delete(key)
        return True
    except (ConnectionError, TimeoutError, RedisError) as e:
        logger.warning(f"Cache delete error for key {key}: {e}")
        return False


def analytics_cache_key(client_id) -> str:
    return cache_key("client_analytics", client_id)


def invalidate_client_cache(client_id) -> bool:
    """Drop cached analytics after anything that changes a client's numbers."""
    return delete_cache(analytics_cache_key(client_id))


_PENDING_KEY = "pending_client_cache_invalidations"


def invalidate_client_cache_on_commit(db: Session, client_id) -> None:
    """
    Queue an analytics invalidation until the session's outer transaction
    commits. Rolling back the outer transaction discards the queue.
    """
    db.info.setdefault(_PENDING_KEY, set()).add(str(client_id))


@event.listens_for(Session, "after_commit")
def _flush_pending_invalidations(session: Session) -> None:
    for client_id in session.info.pop(_PENDING_KEY, ()):
        invalidate_client_cache(client_id)


@event.listens_for(Session, "after_transaction_end")
def _discard_pending_invalidations(session: Session, transaction) -> None:
    if transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)
