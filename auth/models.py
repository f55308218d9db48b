"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (plain containers plus a conversion helper). Mirrors the approach
in custody/models.py -- dataclasses own domain shape; stores and routes do
the work.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AccessLevel(str, Enum):
    """Closed set of roles. Compared as enum members, never as free strings."""

    employee = "employee"
    administrator = "administrator"


@dataclass
class User:
    """A person who can log in and operate the key desk.

    Created by migration or by an administrator; never deleted in normal flow.
    Only password_hash and access_level change after creation.
    """

    username: str
    password_hash: str
    access_level: AccessLevel = AccessLevel.employee
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """Who is calling, resolved fresh from the users table on every request."""

    user_id: int
    username: str
    access_level: AccessLevel

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(user_id=user.id, username=user.username, access_level=user.access_level)
