"""Data access repositories."""

from passkey_api.repositories.challenge import ChallengeRepository
from passkey_api.repositories.credential import CredentialRepository
from passkey_api.repositories.user import UserRepository

__all__ = [
    "ChallengeRepository",
    "CredentialRepository",
    "UserRepository",
]
