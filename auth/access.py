"""
auth/access.py -- Identity & access: authenticate, verify_token, require_role.

Stateless: there is no session store and nothing about the caller
is cached between requests. verify_token() re-reads the user row every time,
so deleting an account or changing its role is effective on the next call.
"""

from __future__ import annotations

import logging

from auth.models import AccessLevel, Identity, User
from auth.store import UserStore
from auth.tokens import burn_password_check, create_access_token, decode_access_token, verify_password
from core.errors import Forbidden, InvalidCredentials, MissingToken, UnknownUser

logger = logging.getLogger("keycontrol.auth")


def authenticate(store: UserStore, username: str, password: str) -> tuple[User, str]:
    """Check a username/password pair and issue a token.

    Always runs bcrypt whether or not the user exists, so response time does
    not reveal which usernames are valid. Both failure paths raise the same
    InvalidCredentials.

    Returns (user, token).
    """
    user = store.get_by_username(username)
    if user is None:
        burn_password_check(password)
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", username)
        raise InvalidCredentials()
    return user, create_access_token(user.id)


def verify_token(store: UserStore, token: str | None) -> Identity:
    """Resolve a bearer token to the caller's current Identity.

    Raises MissingToken, InvalidToken, ExpiredToken, or UnknownUser (the token
    is genuine but its user row is gone).
    """
    if not token:
        raise MissingToken()
    payload = decode_access_token(token)
    user = store.get_by_id(payload["user_id"])
    if user is None:
        raise UnknownUser()
    return Identity.from_user(user)


def require_role(identity: Identity, role: AccessLevel) -> None:
    """Raise Forbidden unless the identity holds exactly this access level."""
    if identity.access_level is not AccessLevel(role):
        raise Forbidden()
