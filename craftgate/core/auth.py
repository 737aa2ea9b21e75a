"""Caller authentication and identity for throttled routes.

Two concerns live here:

- Service authentication: the marketplace frontend calls this service with a
  shared ``X-API-Key``; valid keys come from ``APP_API_KEYS``.
- Caller identity: once the frontend has authenticated the end user, it
  forwards their id in ``X-User-Id``. Anonymous traffic omits the header and
  is throttled by IP instead.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Annotated

from fastapi import Header, HTTPException, status

from craftgate.core.config import settings
from craftgate.core.errors import AuthenticationAppError, ValidationAppError

logger = logging.getLogger(__name__)

MAX_USER_ID_LENGTH = 128
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]+$")


def _fingerprint(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key1"))
        ['key1', 'key2']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str) -> None:
    """Check ``provided_key`` against the configured keys.

    Raises:
        AuthenticationAppError: If the key is unknown, or authentication is
            required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error("auth.keys_not_configured")
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "auth.invalid_key",
            extra={"api_key_hash": _fingerprint(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing ``X-API-Key`` when auth is required.

    Raises:
        HTTPException: 403 Forbidden if the key is missing or invalid.
    """
    if not settings.app.api_key_required:
        return

    if not x_api_key:
        logger.warning("auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": _fingerprint(x_api_key)})


def normalize_user_id(raw: str | None) -> str | None:
    """Validate a forwarded user id.

    Blank values mean "anonymous" and yield None.

    Raises:
        ValidationAppError: If the id is too long or contains characters
            outside ``[A-Za-z0-9_.:@-]``.
    """
    if raw is None or not raw.strip():
        return None

    user_id = raw.strip()
    if len(user_id) > MAX_USER_ID_LENGTH or not _USER_ID_PATTERN.match(user_id):
        raise ValidationAppError(
            code="invalid_user_id",
            message="X-User-Id header is malformed",
            details={"hint": f"Use at most {MAX_USER_ID_LENGTH} characters from [A-Za-z0-9_.:@-]"},
        )
    return user_id


async def get_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str | None:
    """FastAPI dependency returning the authenticated end-user id, if any."""
    return normalize_user_id(x_user_id)
