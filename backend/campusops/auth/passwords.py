"""Password hashing (bcrypt)."""

import bcrypt

from backend.campusops.errors import BadRequest

BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a plain password.

    Raises:
        BadRequest: If the password exceeds what bcrypt accepts
    """
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise BadRequest("Password is too long")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain password against a stored hash.

    Malformed stored hashes and over-long input verify as False.
    """
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        return False
