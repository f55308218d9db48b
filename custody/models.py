"""
custody/models.py -- Domain dataclasses for rooms, people, and the key ledger.

Plain data containers. The state transitions (checkout / checkin) live in
custody/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class KeyKind(str, Enum):
    """Which physical key of a room a record concerns."""

    primary = "primary"
    reserve = "reserve"


class KeyState(str, Enum):
    """Derived availability stored on the room row for each key kind."""

    available = "available"
    in_use = "in_use"


@dataclass
class Room:
    """A room with two physical keys.

    primary_key_state / reserve_key_state are denormalized: each is in_use
    exactly when an unreturned CustodyRecord exists for that key kind.
    primary_holder / reserve_holder are filled only by the listing projection.
    """

    number: str
    id: int | None = None
    description: str | None = None
    primary_key_state: KeyState = KeyState.available
    reserve_key_state: KeyState = KeyState.available
    primary_holder: str | None = None
    reserve_holder: str | None = None
    created_at: str = ""

    def state_of(self, kind: KeyKind) -> KeyState:
        return self.primary_key_state if kind is KeyKind.primary else self.reserve_key_state


@dataclass
class Person:
    """Reference data: someone who may hold a key."""

    name: str
    id: int | None = None
    created_at: str = ""


@dataclass
class CustodyRecord:
    """One checkout event. Created on checkout, mutated once on return, never deleted.

    user_id is the operator who registered the checkout, not the holder.
    """

    id: str
    room_id: int
    user_id: int
    key_kind: KeyKind
    holder_name: str
    checked_out_at: str
    notes: str | None = None
    returned: bool = False
    returned_at: str | None = None
