"""Rate limiting with a pluggable counter store.

``InMemoryRateLimitStore`` keeps counters in the process and is only
correct for a single instance. ``RedisRateLimitStore`` shares counters
across processes. Endpoints depend on ``get_rate_limit_store`` so tests
and deployments can swap the backend.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from fastapi import Depends, Request
from redis.exceptions import RedisError

from app.core.app_exceptions import RateLimited
from app.core.config import settings
from app.core.logging import get_logger
from app.core.redis_client import get_redis_client
from app.core.security_logging import get_client_ip, log_security_event

logger = get_logger(__name__)


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    retry_after: int  # Seconds until retry is allowed


class RateLimitStore(Protocol):
    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one attempt against key and report whether it is allowed."""
        ...


class InMemoryRateLimitStore:
    """Fixed-window counters held in this process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[int, float]] = {}  # key -> (count, reset_at)

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, now + window_seconds))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            self._prune(now)

        retry_after = max(int(reset_at - now + 0.999), 1)
        if count > limit:
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitResult(allowed=True, remaining=limit - count, retry_after=0)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]
        for k in expired:
            del self._windows[k]


class RedisRateLimitStore:
    """Fixed-window counters shared through Redis.

    Key format: rl:{key}:{window_seconds}. Redis errors fail open.
    """

    def __init__(self, client_factory: Callable = get_redis_client):
        self._client_factory = client_factory

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        redis_client = self._client_factory()
        if redis_client is None:
            logger.warning("Redis unavailable for rate limit, failing open", extra={"key": key})
            return RateLimitResult(allowed=True, remaining=limit, retry_after=0)

        redis_key = f"rl:{key}:{window_seconds}"
        try:
            pipe = redis_client.pipeline()
            pipe.incr(redis_key)
            pipe.ttl(redis_key)
            count, ttl = pipe.execute()
            # Expiry is only set on the first hit so the window stays fixed
            if ttl is None or ttl < 0:
                redis_client.expire(redis_key, window_seconds)
                ttl = window_seconds
        except RedisError as e:
            logger.error(
                "Rate limit check failed, failing open",
                extra={"key": key, "error": str(e)},
            )
            return RateLimitResult(allowed=True, remaining=limit, retry_after=0)

        if count > limit:
            return RateLimitResult(allowed=False, remaining=0, retry_after=max(int(ttl), 1))
        return RateLimitResult(allowed=True, remaining=max(limit - count, 0), retry_after=0)


_memory_store = InMemoryRateLimitStore()


def get_rate_limit_store() -> RateLimitStore:
    """FastAPI dependency returning the configured store."""
    if settings.RATE_LIMIT_BACKEND == "redis":
        return RedisRateLimitStore()
    return _memory_store


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_seconds: int


def _policies() -> dict[str, dict[str, RateLimitPolicy]]:
    return {
        "auth.login": {
            "ip": RateLimitPolicy(settings.RL_LOGIN_IP_LIMIT, settings.RL_LOGIN_IP_WINDOW),
            "email": RateLimitPolicy(settings.RL_LOGIN_EMAIL_LIMIT, settings.RL_LOGIN_EMAIL_WINDOW),
        },
        "auth.2fa": {
            "ip": RateLimitPolicy(settings.RL_2FA_IP_LIMIT, settings.RL_2FA_IP_WINDOW),
        },
        "auth.recovery": {
            "ip": RateLimitPolicy(settings.RL_RECOVERY_IP_LIMIT, settings.RL_RECOVERY_IP_WINDOW),
        },
        "auth.register": {
            "ip": RateLimitPolicy(settings.RL_REGISTER_IP_LIMIT, settings.RL_REGISTER_IP_WINDOW),
        },
    }


def get_rate_limit_policy(route_key: str, scope: str) -> RateLimitPolicy | None:
    return _policies().get(route_key, {}).get(scope)


def _enforce(
    store: RateLimitStore,
    request: Request,
    route_key: str,
    scope: str,
    identifier: str,
) -> None:
    policy = get_rate_limit_policy(route_key, scope)
    if policy is None:
        return

    result = store.hit(
        f"{route_key}:{scope}:{identifier}", policy.max_requests, policy.window_seconds
    )
    if not result.allowed:
        log_security_event(
            request,
            event_type=f"rate_limited_{route_key}_{scope}",
            outcome="deny",
            reason_code="RATE_LIMITED",
        )
        raise RateLimited(retry_after_seconds=result.retry_after)


def limit_by_ip(route_key: str) -> Callable:
    """
    Create a rate limit dependency keyed on the client IP.

    Args:
        route_key: Policy name (e.g., "auth.login")

    Returns:
        FastAPI dependency function
    """

    def dependency(
        request: Request,
        store: RateLimitStore = Depends(get_rate_limit_store),
    ) -> None:
        _enforce(store, request, route_key, "ip", get_client_ip(request))

    return dependency


def check_email_limit(
    store: RateLimitStore, request: Request, route_key: str, email: str
) -> None:
    """Count an attempt against a normalized email address."""
    _enforce(store, request, route_key, "email", email.strip().lower())
