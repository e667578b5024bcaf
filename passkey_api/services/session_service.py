"""
Session Service

Issues the JWT access/refresh pair handed out after a passkey sign-in and
records the session so the refresh token can later be checked or revoked.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.config import Settings, get_settings
from passkey_api.core.security import create_access_token, create_refresh_token, hash_token
from passkey_api.models.orm.session import Session
from passkey_api.models.orm.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """Tokens for a freshly created session."""

    token: str
    refresh_token: str
    expires_at: datetime


class SessionService:
    """Creates sessions for authenticated users."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    async def create_session(
        self,
        user: User,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        """
        Create a session for a user.

        Args:
            user: Authenticated user
            user_agent: Optional client user agent
            ip_address: Optional client address

        Returns:
            IssuedSession with access token, refresh token and session expiry
        """
        token_data = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name or user.email.split("@")[0],
        }

        access_token = create_access_token(data=token_data)
        refresh_token, jti = create_refresh_token(data={"sub": str(user.id)})

        expires_at = datetime.now(UTC) + timedelta(days=self.settings.refresh_token_expire_days)
        session = Session(
            user_id=user.id,
            refresh_token_hash=hash_token(refresh_token),
            expires_at=expires_at,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
        )
        self.db.add(session)
        await self.db.flush()

        logger.info(f"Session created for user {user.id}", extra={"jti": jti})

        return IssuedSession(token=access_token, refresh_token=refresh_token, expires_at=expires_at)
