"""
Passkey Request Gating

Rate policy table and the FastAPI dependencies that run before every
passkey endpoint: a trusted-origin check and a Redis fixed-window rate
limiter. Every policy whose path matches the request is enforced, so the
global ceiling counts requests to all passkey paths.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from redis.exceptions import RedisError

from passkey_api.config import Settings, get_settings
from passkey_api.core.cache import get_redis
from passkey_api.core.errors import InvalidOriginError, RateLimitExceededError

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY_PREFIX = "passkey_rate_limit:"


@dataclass(frozen=True)
class RatePolicy:
    """Maximum attempts per client within a window, for matching paths."""

    name: str
    path: str
    window_seconds: int
    max_attempts: int
    prefix: bool = False

    def __post_init__(self) -> None:
        if self.window_seconds <= 0 or self.max_attempts <= 0:
            raise ValueError(f"Rate policy {self.name!r} needs a positive window and maximum")

    def matches(self, path: str) -> bool:
        if self.prefix:
            return path.startswith(self.path)
        return path.rstrip("/") == self.path


def build_rate_policies(settings: Settings) -> tuple[RatePolicy, ...]:
    """
    Build the passkey rate policy table from settings.

    Args:
        settings: Application settings

    Returns:
        Policies for registration, authentication and the global ceiling
    """
    return (
        RatePolicy(
            name="register",
            path="/passkey/register",
            window_seconds=settings.passkey_rate_limit_register_window,
            max_attempts=settings.passkey_rate_limit_register_max,
        ),
        RatePolicy(
            name="authenticate",
            path="/passkey/authenticate",
            window_seconds=settings.passkey_rate_limit_authenticate_window,
            max_attempts=settings.passkey_rate_limit_authenticate_max,
        ),
        RatePolicy(
            name="global",
            path="/passkey/",
            window_seconds=settings.passkey_rate_limit_global_window,
            max_attempts=settings.passkey_rate_limit_global_max,
            prefix=True,
        ),
    )


def match_policies(policies: tuple[RatePolicy, ...], path: str) -> list[RatePolicy]:
    """Return every policy that applies to a request path."""
    return [policy for policy in policies if policy.matches(path)]


def _client_address(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


# =============================================================================
# Dependencies
# =============================================================================


async def verify_trusted_origin(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> None:
    """
    Reject browser requests from origins that are not configured for WebAuthn.

    Native mobile clients usually send no Origin header and pass through.

    Raises:
        InvalidOriginError: Origin header present and not trusted
    """
    origin = request.headers.get("origin")
    if origin is None:
        return

    if origin.rstrip("/") not in {o.rstrip("/") for o in settings.webauthn_origins}:
        logger.warning(f"Rejected passkey request from untrusted origin {origin}")
        raise InvalidOriginError()


async def enforce_rate_limit(
    request: Request, settings: Annotated[Settings, Depends(get_settings)]
) -> None:
    """
    Count the request against every matching policy.

    Fixed windows in Redis keyed by policy and client address. If Redis is
    unavailable the request is allowed and a warning is logged.

    Raises:
        RateLimitExceededError: A policy's maximum was exceeded
    """
    if not settings.passkey_rate_limit_enabled:
        return

    policies = match_policies(build_rate_policies(settings), request.url.path)
    if not policies:
        return

    client = _client_address(request)

    try:
        redis = await get_redis()
        for policy in policies:
            key = f"{RATE_LIMIT_KEY_PREFIX}{policy.name}:{client}"

            async with redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.ttl(key)
                count, ttl = await pipe.execute()

            # First hit in the window (or a key that lost its expiry)
            if ttl < 0:
                await redis.expire(key, policy.window_seconds)
                ttl = policy.window_seconds

            if count > policy.max_attempts:
                logger.warning(
                    f"Rate limit exceeded for {policy.name} policy",
                    extra={"client": client, "path": request.url.path, "count": count},
                )
                raise RateLimitExceededError(retry_after=ttl)
    except RedisError as e:
        logger.warning(f"Rate limiting unavailable, allowing request: {e}")
