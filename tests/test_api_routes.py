"""
tests/test_api_routes.py -- Integration tests for the KeyControl HTTP surface.

These tests exercise the full stack: FastAPI routing -> middleware -> auth
dependency injection -> stores -> response models -> error envelope. Unit
tests of the stores miss middleware, dependency order and error mapping, so
integration tests are the right tool here.

Coverage:
  - Health: 200 without auth, database component, security headers
  - Login: 200 with user + token, 401 for bad credentials, 400 for bad input
  - Token failures: 401 missing / invalid / expired
  - Rooms: listing, checkout happy path, 400 key unavailable, 404 room,
    400 validation before any store call, legacy body, checkin, history
  - Administrator routes: 403 for employees, 201 for admins, 409 duplicates
  - Error mapping: pool exhaustion 503 + Retry-After, unreachable store 503
  - Unmatched routes: 404 echoing path and method

Fixtures used (from conftest.py):
  - api_client: ApiContext with an administrator (chefe) and an employee (maria)
"""

from __future__ import annotations

import itertools
from datetime import timedelta

from auth.tokens import create_access_token
from conftest import ADMIN_PASSWORD, EMPLOYEE_PASSWORD, ApiContext
from core.errors import PoolExhausted
from custody.store import CustodyStore
from db.gateway import StoreError, StoreErrorKind

_room_numbers = itertools.count(500)


def _new_room(ctx: ApiContext) -> int:
    """Create a fresh room so tests in this module never share key state."""
    return CustodyStore(ctx.db).create_room(str(next(_room_numbers)))


def _room_row(ctx: ApiContext, room_id: int) -> dict:
    rooms = ctx.client.get("/api/rooms", headers=ctx.employee_headers).json()["rooms"]
    return next(r for r in rooms if r["id"] == room_id)


class TestHealth:
    def test_health_no_auth_required(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "OK"
        assert data["database"] == "ok"
        assert data["service"] == "API Backend KeyControl"
        assert "timestamp" in data
        assert "version" in data

    def test_security_headers_present(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "default-src 'self'" in resp.headers["Content-Security-Policy"]


class TestLogin:
    def test_login_valid_credentials(self, api_client: ApiContext) -> None:
        resp = api_client.client.post("/api/auth/login", json={"username": "maria", "password": EMPLOYEE_PASSWORD})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["success"] is True
        assert data["user"] == {"id": api_client.employee_id, "username": "maria", "access_level": "employee"}
        assert data["token"]
        assert "password" not in resp.text
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_token_is_usable(self, api_client: ApiContext) -> None:
        token = api_client.client.post(
            "/api/auth/login", json={"username": "chefe", "password": ADMIN_PASSWORD}
        ).json()["token"]
        resp = api_client.client.post("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["user"]["access_level"] == "administrator"

    def test_wrong_password_and_unknown_user_look_the_same(self, api_client: ApiContext) -> None:
        wrong = api_client.client.post("/api/auth/login", json={"username": "maria", "password": "errada123"})
        unknown = api_client.client.post("/api/auth/login", json={"username": "ninguem", "password": "errada123"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json() == {"success": False, "error": "Credenciais inválidas", "code": "invalid_credentials"}

    def test_login_validation_error(self, api_client: ApiContext) -> None:
        resp = api_client.client.post("/api/auth/login", json={"username": "ab", "password": "1"})
        assert resp.status_code == 400
        data = resp.json()
        assert data["code"] == "validation_error"
        assert {d["field"] for d in data["details"]} == {"username", "password"}


class TestTokenFailures:
    def test_missing_token(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/rooms")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Token de acesso requerido"

    def test_invalid_token(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/rooms", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "invalid_token"

    def test_expired_token(self, api_client: ApiContext) -> None:
        token = create_access_token(api_client.employee_id, expires_in=timedelta(seconds=-5))
        for resp in (
            api_client.client.post("/api/auth/verify", headers={"Authorization": f"Bearer {token}"}),
            api_client.client.get("/api/rooms", headers={"Authorization": f"Bearer {token}"}),
        ):
            assert resp.status_code == 401
            assert resp.json()["error"] == "Token expirado"

    def test_non_bearer_scheme(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/rooms", headers={"Authorization": f"Basic {api_client.employee_token}"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "missing_token"


class TestCheckout:
    def test_never_checked_out_room_lists_available(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        row = _room_row(api_client, room_id)
        assert row["primary_key_state"] == "available"
        assert row["reserve_key_state"] == "available"
        assert row["primary_holder"] is None
        assert row["reserve_holder"] is None

    def test_checkout_then_repeat(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        url = f"/api/rooms/{room_id}/checkout"
        body = {"keyKind": "primary", "holderName": "Ana Souza", "notes": "Aula extra"}

        resp = api_client.client.post(url, json=body, headers=api_client.employee_headers)
        assert resp.status_code == 201, resp.text
        record = resp.json()["record"]
        assert record["holder_name"] == "Ana Souza"
        assert record["user_id"] == api_client.employee_id
        assert record["returned"] is False

        row = _room_row(api_client, room_id)
        assert row["primary_key_state"] == "in_use"
        assert row["primary_holder"] == "Ana Souza"
        assert row["reserve_holder"] is None

        again = api_client.client.post(
            url, json={"keyKind": "primary", "holderName": "Bruno Lima"}, headers=api_client.employee_headers
        )
        assert again.status_code == 400
        assert again.json()["error"] == "Chave não disponível"
        assert _room_row(api_client, room_id)["primary_holder"] == "Ana Souza"

    def test_room_101_mixed_body(self, api_client: ApiContext) -> None:
        """camelCase field name with a legacy value next to a legacy field name."""
        url = f"/api/rooms/{api_client.room_id}/checkout"
        body = {"keyKind": "principal", "nome_pessoa": "Ana"}
        first = api_client.client.post(url, json=body, headers=api_client.employee_headers)
        assert first.status_code == 201, first.text
        second = api_client.client.post(url, json=body, headers=api_client.employee_headers)
        assert second.status_code == 400
        assert second.json()["error"] == "Chave não disponível"

        row = _room_row(api_client, api_client.room_id)
        assert row["number"] == "101"
        assert row["primary_key_state"] == "in_use"
        assert row["primary_holder"] == "Ana"
        assert row["pessoa_chave_principal"] == "Ana"
        assert row["pessoa_chave_reserva"] is None

    def test_legacy_body(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        resp = api_client.client.post(
            f"/api/rooms/{room_id}/checkout",
            json={"tipo_chave": "reserva", "nome_pessoa": "Bruno Lima", "observacoes": ""},
            headers=api_client.employee_headers,
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["record"]["key_kind"] == "reserve"
        assert resp.json()["record"]["notes"] is None
        assert _room_row(api_client, room_id)["reserve_holder"] == "Bruno Lima"

    def test_missing_room(self, api_client: ApiContext) -> None:
        resp = api_client.client.post(
            "/api/rooms/99999/checkout",
            json={"keyKind": "primary", "holderName": "Ana Souza"},
            headers=api_client.employee_headers,
        )
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Sala não encontrada", "code": "room_not_found"}

    def test_invalid_body_never_reaches_store(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        resp = api_client.client.post(
            f"/api/rooms/{room_id}/checkout",
            json={"keyKind": "master", "holderName": "A"},
            headers=api_client.employee_headers,
        )
        assert resp.status_code == 400
        assert len(resp.json()["details"]) == 2
        history = api_client.client.get(f"/api/rooms/{room_id}/history", headers=api_client.employee_headers)
        assert history.json()["records"] == []

    def test_non_numeric_room_id(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/rooms/abc/history", headers=api_client.employee_headers)
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "room_id"


class TestCheckinAndHistory:
    def test_checkin_frees_key(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        headers = api_client.employee_headers
        api_client.client.post(
            f"/api/rooms/{room_id}/checkout", json={"keyKind": "reserve", "holderName": "Carla Mendes"}, headers=headers
        )
        resp = api_client.client.post(f"/api/rooms/{room_id}/checkin", json={"keyKind": "reserve"}, headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["record_id"]
        row = _room_row(api_client, room_id)
        assert row["reserve_key_state"] == "available"
        assert row["reserve_holder"] is None

        records = api_client.client.get(f"/api/rooms/{room_id}/history", headers=headers).json()["records"]
        assert len(records) == 1
        assert records[0]["returned"] is True
        assert records[0]["returned_at"] is not None

    def test_checkin_when_not_checked_out(self, api_client: ApiContext) -> None:
        room_id = _new_room(api_client)
        resp = api_client.client.post(
            f"/api/rooms/{room_id}/checkin", json={"keyKind": "primary"}, headers=api_client.employee_headers
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "key_not_checked_out"

    def test_history_missing_room(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/rooms/99999/history", headers=api_client.employee_headers)
        assert resp.status_code == 404


class TestAdministratorRoutes:
    def test_employee_cannot_create_room(self, api_client: ApiContext) -> None:
        resp = api_client.client.post("/api/rooms", json={"number": "900"}, headers=api_client.employee_headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Acesso negado. Privilégios de administrador requeridos."

    def test_admin_creates_room_and_duplicate_conflicts(self, api_client: ApiContext) -> None:
        body = {"number": "901", "description": "Sala nova"}
        resp = api_client.client.post("/api/rooms", json=body, headers=api_client.admin_headers)
        assert resp.status_code == 201, resp.text
        assert resp.json()["room"]["primary_key_state"] == "available"

        dup = api_client.client.post("/api/rooms", json=body, headers=api_client.admin_headers)
        assert dup.status_code == 409
        assert dup.json()["code"] == "conflict"

    def test_admin_creates_user(self, api_client: ApiContext) -> None:
        body = {"username": "joao1", "password": "segredo1", "accessLevel": "employee"}
        resp = api_client.client.post("/api/auth/users", json=body, headers=api_client.admin_headers)
        assert resp.status_code == 201, resp.text
        assert resp.json()["user"]["username"] == "joao1"

        dup = api_client.client.post("/api/auth/users", json=body, headers=api_client.admin_headers)
        assert dup.status_code == 409

    def test_password_over_bcrypt_limit_is_rejected(self, api_client: ApiContext) -> None:
        body = {"username": "longpw1", "password": "x" * 100}
        resp = api_client.client.post("/api/auth/users", json=body, headers=api_client.admin_headers)
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == "password"

    def test_employee_cannot_create_user(self, api_client: ApiContext) -> None:
        body = {"username": "pedro1", "password": "segredo1"}
        resp = api_client.client.post("/api/auth/users", json=body, headers=api_client.employee_headers)
        assert resp.status_code == 403

    def test_people_directory(self, api_client: ApiContext) -> None:
        created = api_client.client.post("/api/people", json={"name": "Diego Santos"}, headers=api_client.admin_headers)
        assert created.status_code == 201
        denied = api_client.client.post("/api/people", json={"name": "Eva"}, headers=api_client.employee_headers)
        assert denied.status_code == 403

        people = api_client.client.get("/api/people", headers=api_client.employee_headers).json()["people"]
        assert "Diego Santos" in [p["name"] for p in people]


class TestErrorMapping:
    def test_pool_exhaustion_is_503_with_retry_after(self, api_client: ApiContext, monkeypatch) -> None:
        def exhausted():
            raise PoolExhausted()

        monkeypatch.setattr(api_client.client.app.state.custody, "list_rooms_with_custody", exhausted)
        resp = api_client.client.get("/api/rooms", headers=api_client.employee_headers)
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "5"
        assert resp.json()["code"] == "pool_exhausted"

    def test_unreachable_store_is_503(self, api_client: ApiContext, monkeypatch) -> None:
        def unreachable():
            raise StoreError(StoreErrorKind.unavailable, "Can't connect to MySQL server", 2003)

        monkeypatch.setattr(api_client.client.app.state.people, "list_people", unreachable)
        resp = api_client.client.get("/api/people", headers=api_client.employee_headers)
        assert resp.status_code == 503
        assert "MySQL" not in resp.text

    def test_unmatched_route(self, api_client: ApiContext) -> None:
        resp = api_client.client.get("/api/nao-existe")
        assert resp.status_code == 404
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "Rota não encontrada"
        assert data["path"] == "/api/nao-existe"
        assert data["method"] == "GET"
