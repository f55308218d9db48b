"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only the user id and an expiry. Role is deliberately NOT embedded:
       auth/access.py re-reads the user row on every request, so a demotion
       or deleted account takes effect immediately.

       decode_access_token() raises ExpiredToken or InvalidToken rather than
       returning None, because the client is told which of the two happened.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in auth/access.authenticate() so response time does not
       reveal whether a username exists.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses to start
       in production without one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings
from core.errors import ExpiredToken, InvalidToken

logger = logging.getLogger("keycontrol.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares digests in constant time. A malformed stored hash
    counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("keycontrol_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification on a dummy hash (unknown-username path)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, expires_in: timedelta | None = None) -> str:
    """Encode a signed JWT carrying the user id and an expiry.

    Args:
        user_id:    Numeric user ID stored in the DB.
        expires_in: Token lifetime. Defaults to Settings.token_expire_seconds.
                    Tests pass a negative delta to mint already-expired tokens.
    """
    settings = get_settings()
    if expires_in is None:
        expires_in = timedelta(seconds=settings.token_expire_seconds)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; return the payload.

    Raises:
        ExpiredToken: signature is fine but exp is in the past.
        InvalidToken: anything else -- bad signature, garbage, missing claims.
    """
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredToken() from e
    except JWTError as e:
        raise InvalidToken() from e
    if not isinstance(payload.get("user_id"), int):
        raise InvalidToken()
    return payload
