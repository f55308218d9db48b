"""
api/routes/auth.py -- Authentication and user management REST endpoints.

Routes:
  POST /api/auth/login   -- password login; returns user + bearer token
  POST /api/auth/verify  -- echo the identity behind the bearer token
  POST /api/auth/users   -- create a user (administrator only)

Security:
  POST /login carries an extra per-IP limit (LOGIN_RATE_LIMIT) on top of the
  global /api window. authenticate() equalizes timing between unknown
  usernames and wrong passwords; always go through it.
  Cache-Control: no-store on login responses so tokens never land in caches.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, UserCreate, UserCreatedResponse, UserResponse, VerifyResponse
from auth.access import authenticate
from auth.dependencies import get_current_identity, require_admin
from auth.models import Identity, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings

# Auth policy:
# - POST /api/auth/login:  public -- login endpoint must be unauthenticated
# - POST /api/auth/verify: requires a bearer token
# - POST /api/auth/users:  requires administrator
router = APIRouter()

# Decorated routes are skipped by SlowAPIMiddleware, so the /api window is
# repeated here next to the login-specific limit.
_LOGIN_LIMITS = f"{get_settings().login_rate_limit};{get_settings().api_rate_limit}"


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_LOGIN_LIMITS)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return the user and a token.

    Wrong username and wrong password produce the same 401, so the response
    does not reveal which usernames exist.
    """
    user_store: UserStore = request.app.state.user_store
    user, token = authenticate(user_store, body.username, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user=UserResponse.from_user(user),
            token=token,
            expires_in=get_settings().token_expire_seconds,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/verify", response_model=VerifyResponse)
def verify(identity: Identity = Depends(get_current_identity)) -> VerifyResponse:
    """Return the caller's identity as currently stored (role changes show up here)."""
    return VerifyResponse(user=UserResponse.from_identity(identity))


@router.post("/auth/users", response_model=UserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    identity: Identity = Depends(require_admin),
) -> UserCreatedResponse:
    """Create a user account. Administrator only.

    A taken username surfaces from the store as a unique violation (409).
    """
    user_store: UserStore = request.app.state.user_store
    user_id = user_store.create_user(
        User(
            username=body.username,
            password_hash=hash_password(body.password),
            access_level=body.access_level,
        )
    )
    created = user_store.get_by_id(user_id)
    return UserCreatedResponse(user=UserResponse.from_user(created))
