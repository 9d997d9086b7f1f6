"""
api/limiter.py -- The one slowapi Limiter every router shares.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter); the public auth
routes in api/routes/v1/auth.py decorate themselves with @limiter.limit().
Counters live in the configured storage backend: "memory://" is per process,
so deployments running several workers should point RATE_LIMIT_STORAGE_URI at
a shared backend such as redis://.

Limit strings (login_rate_limit, register_rate_limit) are passed to the
decorators as callables and read from Settings at request time.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)
