"""
db/schema.py -- Table definitions for KeyControl (SQLAlchemy Core).

Four tables: users, rooms, people, key_history. Stores build their queries
from these Table objects; raw SQL strings are reserved for the few joins that
read better as text.

At most one open custody record per (room, key kind):
  key_history.open_slot is 1 while a record is unreturned and NULL once it is
  returned. UNIQUE(room_id, key_kind, open_slot) therefore admits a single
  open row per pair but any number of returned rows, because NULLs never
  compare equal inside a UNIQUE constraint (MySQL, PostgreSQL and SQLite all
  agree on this). This is what makes two simultaneous checkouts of the same
  key collide at the store instead of both passing the availability check.

Timestamps are ISO 8601 strings in UTC, written by the stores.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    inspect,
)

from db.gateway import Database

logger = logging.getLogger("keycontrol.db")

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(30), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("access_level", String(20), nullable=False, server_default="employee"),
    Column("created_at", String(32), nullable=False),
)

rooms = Table(
    "rooms",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("number", String(20), nullable=False, unique=True),
    Column("description", String(255)),
    Column("primary_key_state", String(20), nullable=False, server_default="available"),
    Column("reserve_key_state", String(20), nullable=False, server_default="available"),
    Column("created_at", String(32), nullable=False),
)

people = Table(
    "people",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)

key_history = Table(
    "key_history",
    metadata,
    Column("id", String(36), primary_key=True),  # uuid4, generated by the store
    Column("room_id", Integer, ForeignKey("rooms.id"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("key_kind", String(10), nullable=False),
    Column("holder_name", String(255), nullable=False),
    Column("notes", Text),
    Column("returned", Boolean, nullable=False, default=False),
    Column("open_slot", Integer),  # 1 while unreturned, NULL once returned
    Column("checked_out_at", String(32), nullable=False),
    Column("returned_at", String(32)),
    UniqueConstraint("room_id", "key_kind", "open_slot", name="uq_open_custody"),
)


def create_schema(db: Database) -> None:
    """Create any missing tables. Idempotent -- existing tables are left alone."""
    metadata.create_all(db.engine)
    logger.info("Schema ready (%s)", ", ".join(sorted(metadata.tables)))


def list_tables(db: Database) -> list[str]:
    """Return the table names currently present in the connected database."""
    return sorted(inspect(db.engine).get_table_names())
