"""Redis blacklist for revoked session tokens."""

from datetime import datetime, timezone

from redis.exceptions import RedisError

from app.core.logging import get_logger
from app.core.redis_client import get_redis_client

logger = get_logger(__name__)


def _key(jti: str) -> str:
    return f"bl:session:{jti}"


def calculate_blacklist_ttl(expires_at: datetime) -> int:
    """Seconds until the token would expire anyway (at least 1)."""
    remaining = (expires_at - datetime.now(timezone.utc)).total_seconds()
    return max(int(remaining), 1)


def blacklist_session(jti: str, expires_at: datetime) -> bool:
    """
    Revoke a session token until its natural expiry.

    Returns False when Redis is unavailable; the cookie is still cleared,
    only server-side revocation of copied tokens is lost.
    """
    redis_client = get_redis_client()
    if redis_client is None:
        logger.warning("Redis unavailable, session not blacklisted", extra={"jti": jti})
        return False

    try:
        redis_client.setex(_key(jti), calculate_blacklist_ttl(expires_at), "1")
        return True
    except RedisError as e:
        logger.error("Failed to blacklist session", extra={"jti": jti, "error": str(e)})
        return False


def is_session_blacklisted(jti: str) -> bool:
    """True if the session was revoked. False when Redis is unavailable."""
    redis_client = get_redis_client()
    if redis_client is None:
        return False

    try:
        return redis_client.get(_key(jti)) is not None
    except RedisError as e:
        logger.error("Failed to check session blacklist", extra={"jti": jti, "error": str(e)})
        return False
