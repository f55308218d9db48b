"""
db/seed.py -- Default data for a fresh KeyControl database.

seed_defaults() is safe to run repeatedly: each row is looked up by its
natural key (username, room number, person name) and inserted only when
missing. Existing rows, including a changed admin password, are left alone.

This is the one db/ module that reaches into auth/, for password hashing.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from auth.models import AccessLevel
from auth.tokens import hash_password
from core.config import now_iso
from db.gateway import Database, Transaction
from db.schema import people, rooms, users

logger = logging.getLogger("keycontrol.db")

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"

SAMPLE_ROOMS = [
    ("101", "Laboratório de Informática"),
    ("102", "Sala de Aula"),
    ("201", "Sala de Reuniões"),
    ("202", "Auditório"),
    ("301", "Biblioteca"),
]

SAMPLE_PEOPLE = [
    "Ana Souza",
    "Bruno Lima",
    "Carla Mendes",
    "Diego Santos",
]


def _ensure_admin(tx: Transaction) -> bool:
    if tx.fetch_one(select(users.c.id).where(users.c.username == DEFAULT_ADMIN_USERNAME)):
        return False
    tx.execute(
        users.insert().values(
            username=DEFAULT_ADMIN_USERNAME,
            password_hash=hash_password(DEFAULT_ADMIN_PASSWORD),
            access_level=AccessLevel.administrator.value,
            created_at=now_iso(),
        )
    )
    return True


def _ensure_rooms(tx: Transaction) -> int:
    inserted = 0
    for number, description in SAMPLE_ROOMS:
        if tx.fetch_one(select(rooms.c.id).where(rooms.c.number == number)):
            continue
        tx.execute(rooms.insert().values(number=number, description=description, created_at=now_iso()))
        inserted += 1
    return inserted


def _ensure_people(tx: Transaction) -> int:
    inserted = 0
    for name in SAMPLE_PEOPLE:
        if tx.fetch_one(select(people.c.id).where(people.c.name == name)):
            continue
        tx.execute(people.insert().values(name=name, created_at=now_iso()))
        inserted += 1
    return inserted


def seed_defaults(db: Database) -> dict[str, int]:
    """Insert the default administrator, sample rooms and sample people.

    Returns how many rows of each kind were actually inserted.
    """
    with db.transaction() as tx:
        summary = {
            "users": int(_ensure_admin(tx)),
            "rooms": _ensure_rooms(tx),
            "people": _ensure_people(tx),
        }
    if summary["users"]:
        logger.warning(
            "Default administrator %r created with the default password. Change it before going live.",
            DEFAULT_ADMIN_USERNAME,
        )
    logger.info("Seed complete: %s", summary)
    return summary
