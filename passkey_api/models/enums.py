"""
Enums for passkey models.
"""

from enum import Enum


class CredentialStatus(str, Enum):
    """Lifecycle state of a registered passkey credential."""

    ACTIVE = "active"
    REVOKED = "revoked"


class ChallengeType(str, Enum):
    """Ceremony a challenge was issued for."""

    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class RevocationReason(str, Enum):
    """Reasons recorded on revoked credentials.

    Clients may send free-form reasons; these are the ones the service writes itself.
    """

    USER_INITIATED = "user_initiated"
    AUTOMATIC_INACTIVE = "automatic_inactive"
