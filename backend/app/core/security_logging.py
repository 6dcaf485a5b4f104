"""Security event logging.

Every allow/deny decision on the auth surface is logged as one structured
line. Codes, passwords and tokens are never passed in.
"""

import logging
from typing import Any, Literal

from fastapi import Request

from app.common.request_id import get_request_id
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger("app.security.events")

Outcome = Literal["allow", "deny", "degraded"]

_LEVELS: dict[str, int] = {
    "allow": logging.INFO,
    "deny": logging.WARNING,
    "degraded": logging.WARNING,
}

USER_AGENT_MAX_LENGTH = 200


def get_client_ip(request: Request) -> str:
    """
    Client address used for rate limits and audit rows.

    The socket peer, unless TRUSTED_PROXY_COUNT proxies sit in front of the
    app. Each of those appends the address it saw to X-Forwarded-For, so the
    client is that many hops from the right; anything further left is
    client-supplied and ignored.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = settings.TRUSTED_PROXY_COUNT
    if trusted <= 0:
        return peer

    hops = [hop.strip() for hop in request.headers.get("X-Forwarded-For", "").split(",")]
    hops = [hop for hop in hops if hop]
    if len(hops) < trusted:
        return peer
    return hops[-trusted]


def log_security_event(
    request: Request,
    event_type: str,
    outcome: Outcome,
    reason_code: str | None = None,
    user_id: int | None = None,
    **extra_fields: Any,
) -> None:
    """
    Log an auth decision.

    Args:
        request: Current request (request id, client IP, user agent)
        event_type: e.g. "auth_login_failed", "2fa_verified"
        outcome: "allow", "deny" or "degraded"
        reason_code: Error code behind a deny
        user_id: Account involved, when known
        **extra_fields: Non-secret context such as the 2FA method
    """
    fields: dict[str, Any] = {
        "event_type": event_type,
        "outcome": outcome,
        "request_id": get_request_id(request),
        "ip_address": get_client_ip(request),
        "user_agent": (request.headers.get("User-Agent") or "")[:USER_AGENT_MAX_LENGTH],
        **extra_fields,
    }
    if user_id is not None:
        fields["user_id"] = user_id
    if reason_code:
        fields["reason_code"] = reason_code

    logger.log(_LEVELS.get(outcome, logging.INFO), "Security event: %s", event_type, extra=fields)
