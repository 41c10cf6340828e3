"""Single-use password setup tokens.

Lifecycle per token: PENDING -> USED on redemption, PENDING -> EXPIRED once
``expires_at`` passes (checked at validation time, never swept). USED and
EXPIRED are terminal. Only the SHA-256 hash of a token is stored.
"""

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from backend.campusops.auth.passwords import hash_password
from backend.campusops.config import Settings
from backend.campusops.db.models import PasswordSetupToken, User, UserStatus, utcnow
from backend.campusops.db.scoped import DataHandle, UnscopedDatabase
from backend.campusops.errors import BadRequest, InvalidSetupToken, TokenExpired, TokenUsed
from backend.campusops.utils.metrics import tenancy_metrics

logger = logging.getLogger(__name__)


class SetupTokenState(str, Enum):
    """State of a setup token at a given instant."""

    pending = "PENDING"
    used = "USED"
    expired = "EXPIRED"


@dataclass(frozen=True)
class IssuedSetupToken:
    """A freshly issued token; ``token`` is the only copy of the raw value."""

    token: str
    link: str
    expires_at: datetime


@dataclass(frozen=True)
class ValidatedSetupToken:
    token: PasswordSetupToken
    user: User


def generate_setup_token() -> str:
    return secrets.token_urlsafe(32)


def hash_setup_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_setup_link(token: str, settings: Settings) -> str:
    return f"{settings.app_base_url.rstrip('/')}/set-password?token={token}"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def setup_token_state(token: PasswordSetupToken, now: datetime | None = None) -> SetupTokenState:
    """Classify a stored token. USED wins over EXPIRED."""
    if token.used_at is not None:
        return SetupTokenState.used
    now = now or utcnow()
    if _as_utc(token.expires_at) <= _as_utc(now):
        return SetupTokenState.expired
    return SetupTokenState.pending


async def issue_setup_token(
    db: DataHandle, user_id: uuid.UUID, settings: Settings
) -> IssuedSetupToken:
    """Create a setup token for ``user_id``.

    Args:
        db: Any data handle (pass a transaction-bound one to issue atomically
            with the user it belongs to)
        user_id: User the link will set a password for
        settings: Application settings

    Returns:
        The raw token, its link, and its expiry
    """
    token = generate_setup_token()
    expires_at = utcnow() + timedelta(hours=settings.setup_token_ttl_hours)
    await db.create(
        PasswordSetupToken,
        user_id=user_id,
        token_hash=hash_setup_token(token),
        expires_at=expires_at,
    )
    return IssuedSetupToken(token=token, link=build_setup_link(token, settings), expires_at=expires_at)


async def validate_setup_token(
    db: UnscopedDatabase, token: str, now: datetime | None = None
) -> ValidatedSetupToken:
    """Look up a raw token and require it to be PENDING.

    Raises:
        InvalidSetupToken: Unknown token (or its user is gone)
        TokenUsed: Already redeemed
        TokenExpired: Past its expiry
    """
    stored = await db.find_first(
        PasswordSetupToken, PasswordSetupToken.token_hash == hash_setup_token(token)
    )
    user = await db.get(User, stored.user_id) if stored is not None else None
    if stored is None or user is None or user.deleted_at is not None:
        tenancy_metrics.record_setup_token_validation("invalid")
        raise InvalidSetupToken()

    state = setup_token_state(stored, now)
    tenancy_metrics.record_setup_token_validation(state.value.lower())
    if state is SetupTokenState.used:
        raise TokenUsed()
    if state is SetupTokenState.expired:
        raise TokenExpired()

    return ValidatedSetupToken(token=stored, user=user)


async def redeem_setup_token(
    db: UnscopedDatabase, token: str, password: str, settings: Settings
) -> User:
    """Set the user's password and consume the token in one transaction.

    Raises:
        BadRequest: Password too short
        InvalidSetupToken, TokenUsed, TokenExpired: As for validation
    """
    if len(password) < settings.min_password_length:
        raise BadRequest(
            f"Password must be at least {settings.min_password_length} characters"
        )

    async with db.transaction() as tx:
        validated = await validate_setup_token(tx, token)
        now = utcnow()
        # Guarded on used_at so a concurrent redemption of the same token loses
        consumed = await tx.update(
            PasswordSetupToken,
            PasswordSetupToken.id == validated.token.id,
            PasswordSetupToken.used_at.is_(None),
            values={"used_at": now},
        )
        if consumed != 1:
            raise TokenUsed()
        await tx.update(
            User,
            User.id == validated.user.id,
            values={
                "password_hash": hash_password(password),
                "status": UserStatus.active.value,
            },
        )

    logger.info(
        "Setup token redeemed",
        extra={"structured": {"user_id": str(validated.user.id)}},
    )
    return validated.user
