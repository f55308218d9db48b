"""
auth/store.py -- Persistence for User records, built on the shared gateway.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from sqlalchemy import func, select

from auth.models import AccessLevel, User
from core.config import now_iso
from db.gateway import Database
from db.schema import users


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(db)
        store.create_user(User(username="admin", password_hash=hash_password("secret"),
                               access_level=AccessLevel.administrator))
        user = store.get_by_username("admin")
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises StoreError(kind=unique_violation) if the username is taken;
        the surface answers 409.
        """
        result = self._db.execute(
            users.insert().values(
                username=user.username,
                password_hash=user.password_hash,
                access_level=AccessLevel(user.access_level).value,
                created_at=now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username. Returns None if not found."""
        row = self._db.fetch_one(select(users).where(users.c.username == username))
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        row = self._db.fetch_one(select(users).where(users.c.id == user_id))
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, *, password_hash: str | None = None, access_level: AccessLevel | None = None) -> bool:
        """Change the password hash and/or role. Returns False if user_id is unknown."""
        fields: dict = {}
        if password_hash is not None:
            fields["password_hash"] = password_hash
        if access_level is not None:
            fields["access_level"] = AccessLevel(access_level).value
        if not fields:
            return False
        result = self._db.execute(users.update().where(users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Remove a user row. Administrative recovery only; tokens stop working at once."""
        result = self._db.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0

    def count(self) -> int:
        row = self._db.fetch_one(select(func.count().label("n")).select_from(users))
        return int(row["n"]) if row else 0


def _row_to_user(row: dict) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        access_level=AccessLevel(row["access_level"]),
        created_at=row["created_at"],
    )
