"""Authentication helpers for JWT handling and password hashing.

Shared utilities used by the auth dependency and the admin command handlers.

Pipeline:
- create_jwt / decode_jwt: HS256 tokens carrying the operator id in ``sub``
- validate_password: Length rule applied before hashing (sync, no network)
- hash_password: bcrypt one-way hash; the plaintext is never stored or logged
"""

from datetime import UTC, datetime, timedelta

import bcrypt
import jwt

from diradmin.core.config import settings
from diradmin.core.errors import ValidationError

# Default JWT expiration: 1 hour
_DEFAULT_EXPIRATION = timedelta(hours=1)

# bcrypt silently truncates input past 72 bytes
_BCRYPT_MAX_BYTES = 72


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or _DEFAULT_EXPIRATION),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.InvalidTokenError on failure."""
    return jwt.decode(
        token,
        settings.auth_secret.get_secret_value(),
        algorithms=["HS256"],
        audience=settings.auth_audience,
        issuer=settings.auth_issuer,
    )


def validate_password(password: str | None) -> str:
    """Validate a password supplied by an administrator.

    Args:
        password: Plain-text password to validate.

    Returns:
        The password, unchanged.

    Raises:
        ValidationError: If the password is missing, too short, or too long
            for bcrypt.
    """
    if not password or len(password) < settings.password_min_length:
        raise ValidationError(
            f"Password must be at least {settings.password_min_length} characters long"
        )
    if len(password.encode()) > _BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes")
    return password


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt (salted, configurable cost).

    Args:
        password: Plain-text password.

    Returns:
        bcrypt hash as a utf-8 string.
    """
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if password matches the stored bcrypt hash."""
    return bcrypt.checkpw(password.encode(), password_hash.encode())
