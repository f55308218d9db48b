"""
api/routes/people.py -- People directory (reference data for key holders).

  GET  /people -- list everyone, by name
  POST /people -- add a person (administrator only)
"""

from fastapi import APIRouter, Depends, Request

from api.models import PeopleResponse, PersonCreate, PersonCreatedResponse, PersonRow
from auth.dependencies import get_current_identity, require_admin
from auth.models import Identity
from custody.store import PersonStore

router = APIRouter(dependencies=[Depends(get_current_identity)])


@router.get("/people", response_model=PeopleResponse)
def list_people(request: Request) -> PeopleResponse:
    people: PersonStore = request.app.state.people
    return PeopleResponse(people=[PersonRow.from_person(p) for p in people.list_people()])


@router.post("/people", response_model=PersonCreatedResponse, status_code=201)
def create_person(
    request: Request,
    body: PersonCreate,
    identity: Identity = Depends(require_admin),
) -> PersonCreatedResponse:
    people: PersonStore = request.app.state.people
    person_id = people.create_person(body.name)
    return PersonCreatedResponse(person=PersonRow.from_person(people.get_person(person_id)))
