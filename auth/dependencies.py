"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The only accepted credential is an Authorization: Bearer <token> header.

get_current_identity() raises the specific AuthenticationError subclass;
the surface's KeyControlError handler turns it into a 401 envelope.
require_admin() wraps it and raises Forbidden (403) for employees.

auth/dependencies.py may import from fastapi because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.access import require_role, verify_token
from auth.models import AccessLevel, Identity


def bearer_token(request: Request) -> str | None:
    """Extract the token from 'Authorization: Bearer <token>', or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_current_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = verify_token(request.app.state.user_store, bearer_token(request))
    request.state.identity = identity
    return identity


def require_admin(request: Request) -> Identity:
    """Require the administrator access level. 401 if unauthenticated, 403 otherwise."""
    identity = get_current_identity(request)
    require_role(identity, AccessLevel.administrator)
    return identity
