"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules (to
apply per-route limits with @limiter.limit()).

default_limits applies the RATE_LIMIT_MAX_REQUESTS / RATE_LIMIT_WINDOW_SECONDS
window to every route not marked @limiter.exempt. A single shared instance
keeps one counter store for the whole app.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_settings.api_rate_limit],
    storage_uri="memory://",
)
