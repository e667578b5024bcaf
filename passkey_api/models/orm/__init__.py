"""SQLAlchemy ORM Models for the passkey API.

Pure database models using SQLAlchemy 2.0 declarative style.
These models define the database schema and relationships.
"""

from passkey_api.models.orm.base import Base
from passkey_api.models.orm.challenge import PasskeyChallenge
from passkey_api.models.orm.passkey import PasskeyCredential
from passkey_api.models.orm.session import Session
from passkey_api.models.orm.user import User

__all__ = [
    # Base
    "Base",
    # Users
    "User",
    # Sessions
    "Session",
    # Passkeys
    "PasskeyCredential",
    "PasskeyChallenge",
]
