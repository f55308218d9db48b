"""
custody/store.py -- Key custody state machine and its repositories.

Each (room, key kind) pair is either Available or CheckedOut. The ledger
(key_history) is the source of truth; the room's *_key_state column is a
denormalized copy that must agree with it after every write:

    room.<kind>_key_state == in_use  <=>  an unreturned record exists for (room, kind)

Transitions:
  checkout: Available -> CheckedOut. Insert an open record, flip the flag.
  checkin:  CheckedOut -> Available. Close the open record, flip the flag back.

Both writes of a transition run inside one gateway transaction, so a failure
of the second statement rolls back the first and the invariant above holds.
The availability check is a read-then-write; the UNIQUE(room_id, key_kind,
open_slot) constraint in db/schema.py is what stops two concurrent checkouts
that both passed the check. The loser's unique violation is reported as
KeyAlreadyCheckedOut, the same answer it would have got one moment later.

Pattern: Repository + Data Mapper (same as auth/store.py).
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import and_, false, func, select

from core.config import now_iso
from core.errors import KeyAlreadyCheckedOut, KeyNotCheckedOut, RoomNotFound
from custody.models import CustodyRecord, KeyKind, KeyState, Person, Room
from db.gateway import Database, StoreError, StoreErrorKind, Transaction
from db.schema import key_history, people, rooms

logger = logging.getLogger("keycontrol.custody")

# Room column holding the derived state for each key kind. Column objects,
# not names, so no SQL is ever assembled from request data.
_STATE_COLUMN = {
    KeyKind.primary: rooms.c.primary_key_state,
    KeyKind.reserve: rooms.c.reserve_key_state,
}


class CustodyStore:
    """Rooms, their derived key state, and the custody ledger.

    Usage:
        custody = CustodyStore(db)
        record_id = custody.checkout(room_id, KeyKind.primary, "Ana", operator_id)
        custody.checkin(room_id, KeyKind.primary)
        rooms = custody.list_rooms_with_custody()
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(self, number: str, description: str | None = None) -> int:
        """Insert a room with both keys available. Duplicate numbers raise StoreError."""
        result = self._db.execute(
            rooms.insert().values(
                number=number,
                description=description,
                primary_key_state=KeyState.available.value,
                reserve_key_state=KeyState.available.value,
                created_at=now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def get_room(self, room_id: int) -> Room | None:
        row = self._db.fetch_one(select(rooms).where(rooms.c.id == room_id))
        return _row_to_room(row) if row is not None else None

    def list_rooms_with_custody(self) -> list[Room]:
        """Every room plus the holder of each currently open record, by room number.

        Read-only projection. A holder is None when that key is not checked out.
        """
        primary = key_history.alias("p")
        reserve = key_history.alias("r")
        stmt = (
            select(
                rooms,
                primary.c.holder_name.label("primary_holder"),
                reserve.c.holder_name.label("reserve_holder"),
            )
            .select_from(
                rooms.outerjoin(
                    primary,
                    and_(
                        primary.c.room_id == rooms.c.id,
                        primary.c.key_kind == KeyKind.primary.value,
                        primary.c.returned == false(),
                    ),
                ).outerjoin(
                    reserve,
                    and_(
                        reserve.c.room_id == rooms.c.id,
                        reserve.c.key_kind == KeyKind.reserve.value,
                        reserve.c.returned == false(),
                    ),
                )
            )
            # Shorter numbers first, so "201" comes before "1001".
            .order_by(func.length(rooms.c.number), rooms.c.number)
        )
        return [_row_to_room(r) for r in self._db.fetch_many(stmt)]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def checkout(
        self,
        room_id: int,
        key_kind: KeyKind,
        holder_name: str,
        operator_user_id: int,
        notes: str | None = None,
    ) -> str:
        """Move (room, key_kind) from Available to CheckedOut. Returns the new record id.

        Raises:
            RoomNotFound: no such room; nothing is written.
            KeyAlreadyCheckedOut: the key is already out (checked or raced).
        """
        key_kind = KeyKind(key_kind)
        record_id = str(uuid.uuid4())
        with self._db.transaction() as tx:
            room = _load_room(tx, room_id)
            if room.state_of(key_kind) is not KeyState.available:
                raise KeyAlreadyCheckedOut()
            try:
                tx.execute(
                    key_history.insert().values(
                        id=record_id,
                        room_id=room_id,
                        user_id=operator_user_id,
                        key_kind=key_kind.value,
                        holder_name=holder_name,
                        notes=notes,
                        returned=False,
                        open_slot=1,
                        checked_out_at=now_iso(),
                    )
                )
            except StoreError as e:
                if e.kind is StoreErrorKind.unique_violation:
                    raise KeyAlreadyCheckedOut() from e
                raise
            tx.execute(
                rooms.update().where(rooms.c.id == room_id).values({_STATE_COLUMN[key_kind]: KeyState.in_use.value})
            )
        logger.info("Key %s of room %s checked out to %s (record %s)", key_kind.value, room_id, holder_name, record_id)
        return record_id

    def checkin(self, room_id: int, key_kind: KeyKind) -> str:
        """Move (room, key_kind) from CheckedOut back to Available. Returns the closed record id.

        Raises:
            RoomNotFound: no such room.
            KeyNotCheckedOut: there is no open record for this key.
        """
        key_kind = KeyKind(key_kind)
        with self._db.transaction() as tx:
            _load_room(tx, room_id)
            open_record = tx.fetch_one(
                select(key_history.c.id).where(
                    (key_history.c.room_id == room_id)
                    & (key_history.c.key_kind == key_kind.value)
                    & (key_history.c.returned == false())
                )
            )
            if open_record is None:
                raise KeyNotCheckedOut()
            record_id = open_record["id"]
            closed = tx.execute(
                key_history.update()
                .where((key_history.c.id == record_id) & (key_history.c.returned == false()))
                .values(returned=True, open_slot=None, returned_at=now_iso())
            )
            if closed.rowcount != 1:
                # A concurrent checkin closed it first.
                raise KeyNotCheckedOut()
            tx.execute(
                rooms.update().where(rooms.c.id == room_id).values({_STATE_COLUMN[key_kind]: KeyState.available.value})
            )
        logger.info("Key %s of room %s returned (record %s)", key_kind.value, room_id, record_id)
        return record_id

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def history(self, room_id: int) -> list[CustodyRecord]:
        """All custody records for a room, newest first. Raises RoomNotFound."""
        if self.get_room(room_id) is None:
            raise RoomNotFound()
        rows = self._db.fetch_many(
            select(key_history)
            .where(key_history.c.room_id == room_id)
            .order_by(key_history.c.checked_out_at.desc())
        )
        return [_row_to_record(r) for r in rows]

    def get_record(self, record_id: str) -> CustodyRecord | None:
        row = self._db.fetch_one(select(key_history).where(key_history.c.id == record_id))
        return _row_to_record(row) if row is not None else None


class PersonStore:
    """Repository for the people directory (reference data)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_person(self, name: str) -> int:
        result = self._db.execute(people.insert().values(name=name, created_at=now_iso()))
        return result.inserted_primary_key[0]

    def get_person(self, person_id: int) -> Person | None:
        row = self._db.fetch_one(select(people).where(people.c.id == person_id))
        return _row_to_person(row) if row is not None else None

    def list_people(self) -> list[Person]:
        """All people ordered by name."""
        rows = self._db.fetch_many(select(people).order_by(people.c.name))
        return [_row_to_person(r) for r in rows]


# ---------------------------------------------------------------------------
# Helpers and row mappers
# ---------------------------------------------------------------------------


def _load_room(tx: Transaction, room_id: int) -> Room:
    row = tx.fetch_one(select(rooms).where(rooms.c.id == room_id))
    if row is None:
        raise RoomNotFound()
    return _row_to_room(row)


def _row_to_room(row: dict) -> Room:
    return Room(
        id=row["id"],
        number=row["number"],
        description=row["description"],
        primary_key_state=KeyState(row["primary_key_state"]),
        reserve_key_state=KeyState(row["reserve_key_state"]),
        primary_holder=row.get("primary_holder"),
        reserve_holder=row.get("reserve_holder"),
        created_at=row["created_at"],
    )


def _row_to_record(row: dict) -> CustodyRecord:
    return CustodyRecord(
        id=row["id"],
        room_id=row["room_id"],
        user_id=row["user_id"],
        key_kind=KeyKind(row["key_kind"]),
        holder_name=row["holder_name"],
        notes=row["notes"],
        returned=bool(row["returned"]),
        checked_out_at=row["checked_out_at"],
        returned_at=row["returned_at"],
    )


def _row_to_person(row: dict) -> Person:
    return Person(id=row["id"], name=row["name"], created_at=row["created_at"])
