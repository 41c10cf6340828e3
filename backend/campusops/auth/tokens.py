"""Bearer token issuance and verification for both signing domains.

Org-user tokens and platform-admin tokens use separate secrets and carry a
``type`` tag. Either check alone rejects a token from the other domain.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from pydantic import ValidationError

from backend.campusops.auth.identity import OrgClaims, PlatformClaims
from backend.campusops.config import Settings
from backend.campusops.errors import InvalidToken

logger = logging.getLogger(__name__)

ORG_TOKEN_TYPE = "org"
PLATFORM_TOKEN_TYPE = "platform"

_REQUIRED_CLAIMS = ["exp", "iat", "type"]


def bearer_token(authorization: str | None) -> str | None:
    """Extract the credential from an ``Authorization`` header.

    Returns:
        The token, or None if no header was sent

    Raises:
        InvalidToken: If the header is present but not a Bearer credential
    """
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise InvalidToken("Invalid authorization header format")
    token = authorization[7:].strip()
    if not token:
        raise InvalidToken("Invalid authorization header format")
    return token


def _encode(payload: dict[str, Any], secret: str, ttl: timedelta, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, secret: str, token_type: str, settings: Settings) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidToken("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Token validation failed: {type(e).__name__}") from e

    if payload.get("type") != token_type:
        logger.warning(
            "Token presented to the wrong verifier",
            extra={"structured": {"expected": token_type, "got": payload.get("type")}},
        )
        raise InvalidToken("Token type mismatch")
    return payload


def sign_auth_token(claims: OrgClaims, settings: Settings) -> str:
    """Sign a long-lived org-user token."""
    payload = {
        "sub": str(claims.user_id),
        "org": str(claims.organization_id),
        "email": claims.email,
        "type": ORG_TOKEN_TYPE,
    }
    return _encode(
        payload,
        settings.auth_secret,
        timedelta(days=settings.auth_token_ttl_days),
        settings,
    )


def verify_auth_token(token: str, settings: Settings) -> OrgClaims:
    """Verify an org-user token and return its claims.

    Raises:
        InvalidToken: On bad signature, expiry, missing claims or wrong type
    """
    payload = _decode(token, settings.auth_secret, ORG_TOKEN_TYPE, settings)
    try:
        return OrgClaims(
            user_id=payload.get("sub"),
            organization_id=payload.get("org"),
            email=payload.get("email"),
        )
    except ValidationError as e:
        raise InvalidToken("Token is missing identity claims") from e


def sign_platform_auth_token(claims: PlatformClaims, settings: Settings) -> str:
    """Sign a short-lived platform-admin token. It never carries an organization."""
    payload = {
        "sub": str(claims.admin_id),
        "email": claims.email,
        "type": PLATFORM_TOKEN_TYPE,
    }
    return _encode(
        payload,
        settings.platform_auth_secret,
        timedelta(days=settings.platform_token_ttl_days),
        settings,
    )


def verify_platform_auth_token(token: str, settings: Settings) -> PlatformClaims:
    """Verify a platform-admin token and return its claims.

    Raises:
        InvalidToken: On bad signature, expiry, missing claims or wrong type
    """
    payload = _decode(token, settings.platform_auth_secret, PLATFORM_TOKEN_TYPE, settings)
    if "org" in payload:
        raise InvalidToken("Platform token must not carry an organization")
    try:
        return PlatformClaims(admin_id=payload.get("sub"), email=payload.get("email"))
    except ValidationError as e:
        raise InvalidToken("Token is missing identity claims") from e
