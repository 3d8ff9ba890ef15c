"""
Bearer Token Gate
=================

Shared-secret authentication for protected routes.

A single global secret (``API_SECRET``) gates every protected route. There
is no rotation, expiry or per-client scoping.
"""

import hmac
import logging

from fastapi import Depends, Request

from api.config import Settings

from .dependencies import get_settings
from .exceptions import UnauthorizedError

_logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def verify_bearer_token(authorization: str | None, secret: str | None) -> None:
    """
    Check an ``Authorization`` header value against the configured secret.

    Raises:
        UnauthorizedError: no secret configured, header missing or malformed,
            or token mismatch
    """
    if not secret:
        raise UnauthorizedError("Server has no API secret configured")

    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Missing or malformed Authorization header")

    token = authorization[len(BEARER_PREFIX):]
    expected = secret.encode("utf-8")
    supplied = token.encode("utf-8")

    if len(supplied) != len(expected):
        raise UnauthorizedError("Invalid token")
    if not hmac.compare_digest(supplied, expected):
        raise UnauthorizedError("Invalid token")


async def require_bearer_token(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    """Dependency for routes that always need the bearer token."""
    try:
        verify_bearer_token(request.headers.get("Authorization"), settings.api_secret)
    except UnauthorizedError as e:
        _logger.warning("Rejected %s %s: %s", request.method, request.url.path, e.message)
        raise


async def require_bearer_token_for_reads(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    """Dependency for read routes; enforced only when PUBLIC_READS_REQUIRE_AUTH is on."""
    if not settings.public_reads_require_auth:
        return
    await require_bearer_token(request, settings)
