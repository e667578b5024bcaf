"""Pydantic contracts (API request/response schemas)."""

from passkey_api.models.contracts.common import ErrorResponse, HealthResponse
from passkey_api.models.contracts.passkeys import (
    AuthenticateRequest,
    AuthenticateResponse,
    AuthenticatorSelection,
    ChallengeRequest,
    ChallengeResponse,
    PasskeyListResponse,
    PasskeyMetadata,
    PasskeyPublic,
    RegisterRequest,
    RegisterResponse,
    RegistrationPreferences,
    RevokeRequest,
    RevokeResponse,
    SessionUser,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Passkeys
    "AuthenticateRequest",
    "AuthenticateResponse",
    "AuthenticatorSelection",
    "ChallengeRequest",
    "ChallengeResponse",
    "PasskeyListResponse",
    "PasskeyMetadata",
    "PasskeyPublic",
    "RegisterRequest",
    "RegisterResponse",
    "RegistrationPreferences",
    "RevokeRequest",
    "RevokeResponse",
    "SessionUser",
]
