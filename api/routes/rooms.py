"""
api/routes/rooms.py -- Room listing and key custody routes.

Routes (in registration order):
  GET  /rooms                    -- every room with current key holders
  POST /rooms                    -- register a room (administrator only)
  GET  /rooms/{room_id}/history  -- custody ledger for one room
  POST /rooms/{room_id}/checkout -- check a key out (201)
  POST /rooms/{room_id}/checkin  -- return a key

The body is validated by pydantic before any handler runs, so a malformed
checkout never reaches the store. The operator recorded on a checkout is the
authenticated caller, never a value from the body.
"""

from fastapi import APIRouter, Depends, Request

from api.models import (
    CheckinRequest,
    CheckinResponse,
    CheckoutRequest,
    CheckoutResponse,
    CustodyRecordRow,
    HistoryResponse,
    RoomCreate,
    RoomCreatedResponse,
    RoomListResponse,
    RoomRow,
)
from auth.dependencies import get_current_identity, require_admin
from auth.models import Identity
from custody.store import CustodyStore

# Every room route requires a bearer token. Router-level dependency applies to
# every route registered on this router; admin routes add require_admin on top.
router = APIRouter(dependencies=[Depends(get_current_identity)])


@router.get("/rooms", response_model=RoomListResponse)
def list_rooms(request: Request) -> RoomListResponse:
    """Return all rooms ordered by number, each with the holder of each key (or null)."""
    custody: CustodyStore = request.app.state.custody
    return RoomListResponse(rooms=[RoomRow.from_room(r) for r in custody.list_rooms_with_custody()])


@router.post("/rooms", response_model=RoomCreatedResponse, status_code=201)
def create_room(
    request: Request,
    body: RoomCreate,
    identity: Identity = Depends(require_admin),
) -> RoomCreatedResponse:
    """Register a room with both keys available. Administrator only; duplicate numbers are 409."""
    custody: CustodyStore = request.app.state.custody
    room_id = custody.create_room(body.number, body.description)
    return RoomCreatedResponse(room=RoomRow.from_room(custody.get_room(room_id)))


@router.get("/rooms/{room_id}/history", response_model=HistoryResponse)
def room_history(request: Request, room_id: int) -> HistoryResponse:
    """Return the room's custody records, newest first."""
    custody: CustodyStore = request.app.state.custody
    return HistoryResponse(records=[CustodyRecordRow.from_record(r) for r in custody.history(room_id)])


@router.post("/rooms/{room_id}/checkout", response_model=CheckoutResponse, status_code=201)
def checkout_key(
    request: Request,
    room_id: int,
    body: CheckoutRequest,
    identity: Identity = Depends(get_current_identity),
) -> CheckoutResponse:
    """Check out the room's primary or reserve key to a named holder.

    404 if the room does not exist; 400 if that key is already out.
    """
    custody: CustodyStore = request.app.state.custody
    record_id = custody.checkout(
        room_id,
        body.key_kind,
        body.holder_name,
        operator_user_id=identity.user_id,
        notes=body.notes,
    )
    return CheckoutResponse(record=CustodyRecordRow.from_record(custody.get_record(record_id)))


@router.post("/rooms/{room_id}/checkin", response_model=CheckinResponse)
def checkin_key(request: Request, room_id: int, body: CheckinRequest) -> CheckinResponse:
    """Return a checked-out key. 404 if the room does not exist; 400 if the key is not out."""
    custody: CustodyStore = request.app.state.custody
    record_id = custody.checkin(room_id, body.key_kind)
    return CheckinResponse(record_id=record_id)
