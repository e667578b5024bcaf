"""API routers."""

from passkey_api.routers.health import router as health_router
from passkey_api.routers.passkeys import router as passkeys_router

__all__ = [
    "health_router",
    "passkeys_router",
]
