"""Redis connection shared by the rate limiter and session revocation.

Redis is optional unless REDIS_REQUIRED is set: callers get ``None`` and
fall back (the limiter and the blacklist both fail open).
"""

import redis
from redis.exceptions import ConnectionError, RedisError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


def _connect(url: str) -> redis.Redis:
    client = redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=1,
        socket_timeout=1,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    client.ping()
    return client


def get_redis_client() -> redis.Redis | None:
    """Connected client, or None when Redis is disabled or unreachable (and not required)."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client

    if not settings.REDIS_URL:
        if settings.REDIS_REQUIRED:
            raise ValueError("REDIS_URL must be set when REDIS_REQUIRED=true")
        logger.warning("REDIS_ENABLED without REDIS_URL; rate limits stay in-process")
        return None

    try:
        _redis_client = _connect(settings.REDIS_URL)
    except RedisError as e:
        if settings.REDIS_REQUIRED:
            raise ConnectionError(f"Redis required but unreachable: {e}") from e
        logger.warning("Redis unreachable, continuing without it", extra={"error": str(e)})
        return None

    logger.info("Redis connection established")
    return _redis_client


def is_redis_available() -> bool:
    client = get_redis_client()
    if client is None:
        return False
    try:
        return bool(client.ping())
    except RedisError:
        return False


def init_redis() -> None:
    """Connect at startup so a required Redis fails the boot instead of the first request."""
    if not settings.REDIS_ENABLED:
        return
    try:
        get_redis_client()
    except (RedisError, ValueError) as e:
        if settings.REDIS_REQUIRED:
            raise
        logger.warning("Redis initialization failed (non-fatal)", extra={"error": str(e)})
