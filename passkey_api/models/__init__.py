"""Passkey API Models.

ORM models (database tables):
    from passkey_api.models import PasskeyCredential, User
    from passkey_api.models.orm import PasskeyCredential, User

Pydantic contracts (API request/response):
    from passkey_api.models import ChallengeRequest, RegisterRequest
    from passkey_api.models.contracts import ChallengeRequest, RegisterRequest

Enums:
    from passkey_api.models.enums import CredentialStatus
"""

from passkey_api.models.contracts import (
    AuthenticateRequest,
    AuthenticateResponse,
    ChallengeRequest,
    ChallengeResponse,
    ErrorResponse,
    HealthResponse,
    PasskeyListResponse,
    PasskeyPublic,
    RegisterRequest,
    RegisterResponse,
    RevokeRequest,
    RevokeResponse,
)
from passkey_api.models.enums import ChallengeType, CredentialStatus, RevocationReason
from passkey_api.models.orm import (
    Base,
    PasskeyChallenge,
    PasskeyCredential,
    Session,
    User,
)

__all__ = [
    # ORM
    "Base",
    "User",
    "Session",
    "PasskeyCredential",
    "PasskeyChallenge",
    # Contracts
    "AuthenticateRequest",
    "AuthenticateResponse",
    "ChallengeRequest",
    "ChallengeResponse",
    "ErrorResponse",
    "HealthResponse",
    "PasskeyListResponse",
    "PasskeyPublic",
    "RegisterRequest",
    "RegisterResponse",
    "RevokeRequest",
    "RevokeResponse",
    # Enums
    "ChallengeType",
    "CredentialStatus",
    "RevocationReason",
]
