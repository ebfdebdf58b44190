"""
Security utilities for the API layer.

Service-to-service API keys, bearer tokens identifying the acting officer
or administrator, and per-client rate limiting. Role checks are the
calling layer's job; this module only establishes *who* is acting.
"""

import secrets
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from roadwatch.core.config import get_settings
from roadwatch.core.logging import bind_actor, get_logger

logger = get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """Authenticated officer/administrator, identified by an opaque id."""

    actor_id: int
    expires_at: datetime


def create_access_token(
    actor_id: int,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Issue a signed bearer token for an actor.

    Args:
        actor_id: Opaque officer/administrator identifier.
        expires_delta: Optional custom lifetime.

    Returns:
        str: Encoded JWT with the actor id as ``sub``.
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode(
        {"sub": str(actor_id), "exp": expire},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


def decode_access_token(token: str) -> Actor | None:
    """
    Decode and validate a bearer token.

    Returns:
        Actor: Decoded actor, or None if the token is invalid or expired.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    exp = payload.get("exp")
    if subject is None or exp is None or not str(subject).isdigit():
        return None

    return Actor(
        actor_id=int(subject),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Actor:
    """
    Resolve the acting officer from the Authorization header.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = decode_access_token(credentials.credentials)
    if actor is None:
        logger.warning("actor_token_invalid", reason="decode_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    bind_actor(actor.actor_id)
    return actor


async def verify_api_key(
    api_key: Annotated[str | None, Depends(api_key_header)],
) -> None:
    """
    Verify API key for service-to-service calls.

    Raises:
        HTTPException: If API key is missing or invalid.
    """
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
        )

    settings = get_settings()
    if not secrets.compare_digest(api_key, settings.api_key):
        logger.warning("api_key_invalid", reason="key_mismatch")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


@dataclass
class RateLimiter:
    """
    In-memory sliding window rate limiter.

    Attributes:
        requests_per_window: Maximum requests allowed per window.
        window_seconds: Size of the sliding window in seconds.
    """

    requests_per_window: int
    window_seconds: int
    _requests: dict[str, list[float]] = field(default_factory=lambda: defaultdict(list))

    def is_allowed(self, key: str) -> bool:
        """Record a hit for ``key`` and report whether it is under the limit."""
        now = time.time()
        window_start = now - self.window_seconds

        self._requests[key] = [t for t in self._requests[key] if t > window_start]

        if len(self._requests[key]) < self.requests_per_window:
            self._requests[key].append(now)
            return True
        return False

    def get_remaining(self, key: str) -> int:
        """Requests left for ``key`` in the current window."""
        window_start = time.time() - self.window_seconds
        current = [t for t in self._requests[key] if t > window_start]
        return max(0, self.requests_per_window - len(current))


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the process-wide rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _rate_limiter


async def check_rate_limit(request: Request) -> None:
    """
    Rate limiting dependency for public lookup routes.

    Raises:
        HTTPException: 429 when the client exceeded its window.
    """
    rate_limiter = get_rate_limiter()
    client_ip = request.client.host if request.client else "unknown"

    if not rate_limiter.is_allowed(client_ip):
        logger.warning("rate_limit_exceeded", client_ip=client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again later.",
            headers={
                "Retry-After": str(rate_limiter.window_seconds),
                "X-RateLimit-Remaining": "0",
            },
        )
