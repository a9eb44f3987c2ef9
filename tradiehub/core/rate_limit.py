"""
Rate limiting for the TradieHub API.

A single slowapi ``Limiter`` is shared by every router. Limits are keyed on
the client IP, honouring the first ``X-Forwarded-For`` hop when the API sits
behind a load balancer. Limit strings come from settings so they can be tuned
per environment.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from tradiehub.core.config import settings


def get_rate_limit_key(request: Request) -> str:
    """Resolve the client address used as the rate limit bucket."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
        if client_ip:
            return client_ip
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)

# Shorthands used by route decorators
AUTH_LIMIT = settings.rate_limit_auth
QUOTE_ACTION_LIMIT = settings.rate_limit_quote_actions
APPLICATION_LIMIT = settings.rate_limit_applications
