"""
api/validation.py -- Payload x schema -> normalized payload, or per-field errors.

Pure functions: no I/O, no side effects. Route handlers get this for free
through FastAPI's body parsing (RequestValidationError is rendered by
format_errors() in api/main.py); the CLI and other non-HTTP callers use
validate_payload() directly.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

M = TypeVar("M", bound=BaseModel)

# Request sections FastAPI prefixes onto error locations.
_LOCATION_PREFIXES = {"body", "query", "path", "header"}


def format_errors(errors: Iterable[Mapping[str, Any]]) -> list[dict[str, str]]:
    """Flatten pydantic error dicts into [{"field": "a.b", "message": "..."}]."""
    result = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        result.append({"field": ".".join(str(part) for part in loc), "message": str(err.get("msg", ""))})
    return result


def validate_payload(schema: type[M], payload: Any) -> M:
    """Validate payload against schema.

    Returns the normalized model (defaults filled, strings stripped, legacy
    aliases mapped). Raises core.errors.ValidationError with every failing
    field in .details -- all errors at once, not just the first.
    """
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(details=format_errors(e.errors())) from e
