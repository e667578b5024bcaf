"""
Passkey/WebAuthn contract models.

API request and response models for the mobile passkey endpoints.
Credential payloads are the standard WebAuthn JSON produced by the
platform authenticator and are passed through untouched.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from passkey_api.models.enums import ChallengeType, CredentialStatus

# =============================================================================
# Shared
# =============================================================================


class AuthenticatorSelection(BaseModel):
    """Authenticator selection criteria the client presented to the platform."""

    authenticator_attachment: Literal["platform", "cross-platform"] | None = None
    resident_key: Literal["required", "preferred", "discouraged"] | None = None
    require_resident_key: bool | None = None
    user_verification: Literal["required", "preferred", "discouraged"] | None = None


class RegistrationPreferences(BaseModel):
    """Client registration preferences stored with a registration challenge."""

    attestation: Literal["none", "indirect", "direct", "enterprise"] | None = None
    authenticator_selection: AuthenticatorSelection | None = None
    timeout: int | None = Field(default=None, gt=0, description="Ceremony timeout in ms")


class PasskeyMetadata(BaseModel):
    """Device details reported by the client. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    device_name: str | None = Field(default=None, max_length=255)
    device_model: str | None = Field(default=None, max_length=255)
    app_version: str | None = Field(default=None, max_length=64)
    manufacturer: str | None = Field(default=None, max_length=255)
    biometric_type: str | None = Field(default=None, max_length=64)
    last_location: str | None = Field(default=None, max_length=255)


# =============================================================================
# Challenge
# =============================================================================


class ChallengeRequest(BaseModel):
    """Request a challenge for a registration or authentication ceremony."""

    user_id: str = Field(
        min_length=1,
        description="User the ceremony is for. For discoverable-credential sign-in "
        "use '__discoverable__'.",
    )
    type: ChallengeType = Field(description="Ceremony type")
    registration_options: RegistrationPreferences | None = Field(
        default=None,
        description="Registration preferences shown to the authenticator; "
        "re-applied when the registration is verified",
    )


class ChallengeResponse(BaseModel):
    """Issued challenge."""

    challenge: str = Field(description="Base64url encoded random challenge")
    expires_at: datetime = Field(description="When the challenge stops being accepted")


# =============================================================================
# Registration
# =============================================================================


class RegisterRequest(BaseModel):
    """Register a passkey created on the device."""

    user_id: str = Field(min_length=1, description="Owner of the new passkey")
    credential: dict[str, Any] = Field(
        description="WebAuthn registration credential JSON from the platform authenticator"
    )
    platform: str = Field(min_length=1, max_length=50, description="Client platform, e.g. 'ios'")
    metadata: PasskeyMetadata | None = Field(default=None, description="Device details")


class RegisterResponse(BaseModel):
    """Response after successful passkey registration."""

    success: bool = Field(description="Whether registration was successful")
    rp_name: str = Field(description="Relying party display name")
    rp_id: str = Field(description="Relying party ID")


# =============================================================================
# Authentication
# =============================================================================


class AuthenticateRequest(BaseModel):
    """Sign in with a registered passkey."""

    credential: dict[str, Any] = Field(
        description="WebAuthn authentication credential JSON from the platform authenticator"
    )
    metadata: PasskeyMetadata | None = Field(
        default=None, description="Device details merged into the stored metadata"
    )


class SessionUser(BaseModel):
    """User summary returned with a new session."""

    id: UUID
    email: str
    name: str | None = None
    email_verified: bool = False

    model_config = {"from_attributes": True}


class AuthenticateResponse(BaseModel):
    """Session issued after successful passkey authentication."""

    token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="JWT refresh token")
    token_type: str = Field(default="bearer")
    expires_at: datetime = Field(description="When the session expires")
    user: SessionUser


# =============================================================================
# Passkey Management
# =============================================================================


class PasskeyPublic(BaseModel):
    """Public representation of a registered passkey."""

    id: UUID = Field(description="Internal passkey ID")
    credential_id: str = Field(description="Authenticator-assigned credential ID")
    platform: str = Field(description="Client platform the passkey was registered on")
    status: CredentialStatus = Field(description="Credential lifecycle state")
    aaguid: str | None = Field(default=None, description="Authenticator model identifier")
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="device_metadata")
    last_used: datetime = Field(description="When the passkey was last used")
    created_at: datetime = Field(description="When the passkey was registered")
    updated_at: datetime

    model_config = {"from_attributes": True}


class PasskeyListResponse(BaseModel):
    """One page of a user's active passkeys."""

    passkeys: list[PasskeyPublic] = Field(description="Active passkeys, most recently used first")
    next_offset: int | None = Field(
        default=None, description="Offset of the next page, or null when there are no more"
    )


class RevokeRequest(BaseModel):
    """Revoke one of the caller's passkeys."""

    user_id: str = Field(min_length=1, description="Owner of the passkey")
    credential_id: str = Field(min_length=1, description="Credential ID to revoke")
    reason: str | None = Field(
        default=None, max_length=255, description="Why the passkey is being revoked"
    )


class RevokeResponse(BaseModel):
    """Response after revoking a passkey."""

    success: bool = Field(description="Whether the passkey was revoked")
