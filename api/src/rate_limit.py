"""
Rate limiting for authentication endpoints using slowapi.

Limits are keyed on the client address; storage defaults to in-process
memory unless ``rate_limit_storage_url`` points at a shared backend.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from api.src.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    enabled=_settings.rate_limit_enabled,
    storage_uri=_settings.rate_limit_storage_url or "memory://",
)

AUTH_LIMIT = _settings.rate_limit_auth
