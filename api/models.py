"""
API request and response models for KeyControl REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
custody/models.py, which own the internal domain representation. Route
handlers map between the two.

Request models double as the validation schemas used by api/validation.py:
login, user creation, key checkout, plus the smaller admin payloads.
Unknown fields are dropped, never rejected.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

from auth.models import AccessLevel, Identity, User
from custody.models import CustodyRecord, KeyKind, Person, Room

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9]+$"

# Legacy Portuguese key-kind values still sent by older desk clients.
_KEY_KIND_ALIASES = {"principal": "primary", "reserva": "reserve"}


def _normalize_key_kind(value):
    if isinstance(value, str):
        value = value.strip().lower()
        return _KEY_KIND_ALIASES.get(value, value)
    return value


# bcrypt only reads the first 72 bytes of a password and bcrypt>=5 refuses
# longer input outright.
BCRYPT_MAX_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Senha deve ter no máximo {BCRYPT_MAX_BYTES} bytes")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserCreate(BaseModel):
    """Request body for POST /api/auth/users (and `main.py create-user`)."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=6, max_length=255)
    access_level: AccessLevel = Field(
        default=AccessLevel.employee,
        validation_alias=AliasChoices("access_level", "accessLevel", "role"),
    )

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class CheckoutRequest(BaseModel):
    """Request body for POST /api/rooms/{id}/checkout.

    Accepts the camelCase contract (keyKind, holderName, notes), snake_case,
    and the legacy field names (tipo_chave, nome_pessoa, observacoes).
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    key_kind: KeyKind = Field(validation_alias=AliasChoices("keyKind", "key_kind", "tipo_chave"))
    holder_name: str = Field(
        min_length=2,
        max_length=255,
        validation_alias=AliasChoices("holderName", "holder_name", "nome_pessoa"),
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        validation_alias=AliasChoices("notes", "observacoes"),
    )

    @field_validator("key_kind", mode="before")
    @classmethod
    def normalize_key_kind(cls, value):
        """Map legacy values (principal/reserva) onto the KeyKind enum."""
        return _normalize_key_kind(value)

    @field_validator("notes")
    @classmethod
    def blank_notes_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CheckinRequest(BaseModel):
    """Request body for POST /api/rooms/{id}/checkin."""

    key_kind: KeyKind = Field(validation_alias=AliasChoices("keyKind", "key_kind", "tipo_chave"))

    @field_validator("key_kind", mode="before")
    @classmethod
    def normalize_key_kind(cls, value):
        return _normalize_key_kind(value)


class RoomCreate(BaseModel):
    """Request body for POST /api/rooms."""

    model_config = ConfigDict(str_strip_whitespace=True)

    number: str = Field(min_length=1, max_length=20)
    description: Optional[str] = Field(default=None, max_length=255)


class PersonCreate(BaseModel):
    """Request body for POST /api/people."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user -- never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    access_level: AccessLevel

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, username=user.username, access_level=user.access_level)

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserResponse":
        return cls(id=identity.user_id, username=identity.username, access_level=identity.access_level)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Login realizado com sucesso"
    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserResponse


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserResponse


class RoomRow(BaseModel):
    """One room in GET /api/rooms, with the current holder of each key."""

    model_config = ConfigDict(frozen=True)

    id: int
    number: str
    description: Optional[str]
    primary_key_state: str
    reserve_key_state: str
    primary_holder: Optional[str] = None
    reserve_holder: Optional[str] = None

    # Field names the older desk clients read from the listing.
    @computed_field
    @property
    def pessoa_chave_principal(self) -> Optional[str]:
        return self.primary_holder

    @computed_field
    @property
    def pessoa_chave_reserva(self) -> Optional[str]:
        return self.reserve_holder

    @classmethod
    def from_room(cls, room: Room) -> "RoomRow":
        return cls(
            id=room.id,
            number=room.number,
            description=room.description,
            primary_key_state=room.primary_key_state.value,
            reserve_key_state=room.reserve_key_state.value,
            primary_holder=room.primary_holder,
            reserve_holder=room.reserve_holder,
        )


class RoomListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    rooms: list[RoomRow]


class RoomCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    room: RoomRow


class CustodyRecordRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    room_id: int
    user_id: int
    key_kind: KeyKind
    holder_name: str
    notes: Optional[str]
    returned: bool
    checked_out_at: str
    returned_at: Optional[str]

    @classmethod
    def from_record(cls, record: CustodyRecord) -> "CustodyRecordRow":
        return cls(
            id=record.id,
            room_id=record.room_id,
            user_id=record.user_id,
            key_kind=record.key_kind,
            holder_name=record.holder_name,
            notes=record.notes,
            returned=record.returned,
            checked_out_at=record.checked_out_at,
            returned_at=record.returned_at,
        )


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Chave retirada com sucesso"
    record: CustodyRecordRow


class CheckinResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Chave devolvida com sucesso"
    record_id: str


class HistoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    records: list[CustodyRecordRow]


class PersonRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str

    @classmethod
    def from_person(cls, person: Person) -> "PersonRow":
        return cls(id=person.id, name=person.name)


class PeopleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    people: list[PersonRow]


class PersonCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    person: PersonRow


class FieldError(BaseModel):
    """One failed field in a validation error envelope."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: str
    code: str
    details: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "OK"
    timestamp: str
    service: str = "API Backend KeyControl"
    version: str
    environment: str
    database: str
