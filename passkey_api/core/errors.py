"""
Passkey Error Taxonomy

Every rejection the passkey endpoints can produce is a PasskeyError
subclass. Each carries a stable machine-readable code, a human message
and the HTTP status it maps to. main.py renders them as ErrorResponse.
"""

from typing import Any

from fastapi import status


class PasskeyError(Exception):
    """Base class for passkey protocol and lifecycle errors."""

    code: str = "passkey_error"
    default_message: str = "Passkey operation failed"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        self.headers = headers
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# Subject / credential state
# =============================================================================


class UserNotFoundError(PasskeyError):
    code = "user_not_found"
    default_message = "User not found"
    status_code = status.HTTP_404_NOT_FOUND


class CredentialExistsError(PasskeyError):
    code = "credential_exists"
    default_message = "Device already registered"
    status_code = status.HTTP_409_CONFLICT


class InvalidCredentialError(PasskeyError):
    code = "invalid_credential"
    default_message = "Invalid credential"
    status_code = status.HTTP_401_UNAUTHORIZED


class CredentialNotFoundError(PasskeyError):
    code = "credential_not_found"
    default_message = "Credential not found"
    status_code = status.HTTP_404_NOT_FOUND


# =============================================================================
# Challenge / verification
# =============================================================================


class InvalidChallengeError(PasskeyError):
    code = "invalid_challenge"
    default_message = "No active challenge found"
    status_code = status.HTTP_400_BAD_REQUEST


class ExpiredChallengeError(PasskeyError):
    code = "expired_challenge"
    default_message = "Challenge has expired"
    status_code = status.HTTP_400_BAD_REQUEST


class VerificationFailedError(PasskeyError):
    code = "verification_failed"
    default_message = "WebAuthn verification failed"
    status_code = status.HTTP_400_BAD_REQUEST


# =============================================================================
# Catch-all kinds (one per operation)
# =============================================================================


class RegistrationFailedError(PasskeyError):
    code = "registration_failed"
    default_message = "Failed to register device"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AuthenticationFailedError(PasskeyError):
    code = "authentication_failed"
    default_message = "Authentication failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class RevocationFailedError(PasskeyError):
    code = "revocation_failed"
    default_message = "Failed to revoke credential"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ChallengeGenerationFailedError(PasskeyError):
    code = "challenge_generation_failed"
    default_message = "Failed to generate challenge"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PasskeysRetrievalFailedError(PasskeyError):
    code = "passkeys_retrieval_failed"
    default_message = "Failed to retrieve passkeys"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# Request gating
# =============================================================================


class UnauthorizedAccessError(PasskeyError):
    code = "unauthorized_access"
    default_message = "Unauthorized access"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidOriginError(PasskeyError):
    code = "invalid_origin"
    default_message = "Invalid origin"
    status_code = status.HTTP_401_UNAUTHORIZED


class RateLimitExceededError(PasskeyError):
    code = "rate_limited"
    default_message = "Too many requests, please try again later"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = max(retry_after, 1)
        super().__init__(
            message,
            details={"retry_after": self.retry_after},
            headers={"Retry-After": str(self.retry_after)},
        )
