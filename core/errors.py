"""
core/errors.py -- Error taxonomy for KeyControl.

Every failure a component can raise is a KeyControlError subclass carrying a
stable machine code and the HTTP status the surface should answer with.
Components raise the most specific class they can; api/main.py is the only
place that turns these into HTTP responses.

User-facing messages are in Portuguese (the deployment language); codes are
English snake_case and are what clients should branch on.

Layer rule: core/ is the kernel. No imports from api/, auth/, custody/, or db/.
"""

from __future__ import annotations

from typing import Any


class KeyControlError(Exception):
    """Base exception for all KeyControl failures."""

    http_status: int = 500
    code: str = "internal_error"
    message: str = "Erro interno do servidor"

    def __init__(self, message: str | None = None, *, details: list[dict[str, Any]] | None = None) -> None:
        self.message = message or type(self).message
        self.details = details
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400 -- malformed input
# ---------------------------------------------------------------------------


class ValidationError(KeyControlError):
    http_status = 400
    code = "validation_error"
    message = "Dados de entrada inválidos"


# ---------------------------------------------------------------------------
# 401 -- bad credentials or token
# ---------------------------------------------------------------------------


class AuthenticationError(KeyControlError):
    http_status = 401
    code = "authentication_error"
    message = "Não autenticado"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    message = "Credenciais inválidas"


class MissingToken(AuthenticationError):
    code = "missing_token"
    message = "Token de acesso requerido"


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    message = "Token inválido"


class ExpiredToken(AuthenticationError):
    code = "expired_token"
    message = "Token expirado"


class UnknownUser(AuthenticationError):
    """The token was valid but its user no longer exists."""

    code = "unknown_user"
    message = "Usuário não encontrado"


# ---------------------------------------------------------------------------
# 403 -- wrong role
# ---------------------------------------------------------------------------


class AuthorizationError(KeyControlError):
    http_status = 403
    code = "authorization_error"
    message = "Acesso negado"


class Forbidden(AuthorizationError):
    code = "forbidden"
    message = "Acesso negado. Privilégios de administrador requeridos."


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------


class NotFoundError(KeyControlError):
    http_status = 404
    code = "not_found"
    message = "Recurso não encontrado"


class RoomNotFound(NotFoundError):
    code = "room_not_found"
    message = "Sala não encontrada"


# ---------------------------------------------------------------------------
# 409 -- duplicate or unavailable resource
# ---------------------------------------------------------------------------


class ConflictError(KeyControlError):
    http_status = 409
    code = "conflict"
    message = "Registro duplicado"


class KeyAlreadyCheckedOut(ConflictError):
    # The public contract answers 400 for an unavailable key.
    http_status = 400
    code = "key_unavailable"
    message = "Chave não disponível"


class KeyNotCheckedOut(ConflictError):
    http_status = 400
    code = "key_not_checked_out"
    message = "Chave não está retirada"


# ---------------------------------------------------------------------------
# 5xx
# ---------------------------------------------------------------------------


class ServiceUnavailableError(KeyControlError):
    http_status = 503
    code = "service_unavailable"
    message = "Serviço indisponível"


class PoolExhausted(ServiceUnavailableError):
    """No pooled connection became free within the acquisition timeout.

    Retryable: the surface adds a Retry-After header.
    """

    code = "pool_exhausted"
    message = "Serviço sobrecarregado. Tente novamente em instantes."
    retry_after: int = 5


class InternalError(KeyControlError):
    http_status = 500
    code = "internal_error"
    message = "Erro interno do servidor"
