"""
Passkey Credential Repository

Lookups and bulk transitions for registered passkey credentials.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.models.enums import CredentialStatus, RevocationReason
from passkey_api.models.orm.passkey import PasskeyCredential
from passkey_api.repositories.base import BaseRepository


class CredentialRepository(BaseRepository[PasskeyCredential]):
    """Repository for PasskeyCredential model operations."""

    model = PasskeyCredential

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_credential_id(self, credential_id: str) -> PasskeyCredential | None:
        """
        Get a credential by its authenticator-assigned id, whatever its status.

        Args:
            credential_id: Base64url credential id

        Returns:
            PasskeyCredential or None if not found
        """
        result = await self.session.execute(
            select(PasskeyCredential).where(PasskeyCredential.credential_id == credential_id)
        )
        return result.scalar_one_or_none()

    async def get_active_by_credential_id(self, credential_id: str) -> PasskeyCredential | None:
        """Get an active credential by its authenticator-assigned id."""
        result = await self.session.execute(
            select(PasskeyCredential).where(
                PasskeyCredential.credential_id == credential_id,
                PasskeyCredential.status == CredentialStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def get_active_owned(
        self, credential_id: str, user_id: UUID
    ) -> PasskeyCredential | None:
        """
        Get an active credential only if it belongs to the given user.

        Args:
            credential_id: Base64url credential id
            user_id: Expected owner

        Returns:
            PasskeyCredential or None if not found, revoked or owned by someone else
        """
        result = await self.session.execute(
            select(PasskeyCredential).where(
                PasskeyCredential.credential_id == credential_id,
                PasskeyCredential.user_id == user_id,
                PasskeyCredential.status == CredentialStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def list_active_for_user(
        self, user_id: UUID, *, limit: int, offset: int = 0
    ) -> list[PasskeyCredential]:
        """
        List a user's active credentials, most recently used first.

        Args:
            user_id: Owner
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            List of credentials
        """
        result = await self.session.execute(
            select(PasskeyCredential)
            .where(
                PasskeyCredential.user_id == user_id,
                PasskeyCredential.status == CredentialStatus.ACTIVE,
            )
            .order_by(PasskeyCredential.last_used.desc(), PasskeyCredential.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def revoke_inactive(self, cutoff: datetime, now: datetime) -> int:
        """
        Revoke every active credential last used before the cutoff.

        Args:
            cutoff: Credentials with last_used strictly before this are revoked
            now: Timestamp recorded as revoked_at / updated_at

        Returns:
            Number of credentials revoked
        """
        result = await self.session.execute(
            update(PasskeyCredential)
            .where(
                PasskeyCredential.status == CredentialStatus.ACTIVE,
                PasskeyCredential.last_used < cutoff,
            )
            .values(
                status=CredentialStatus.REVOKED,
                revoked_at=now,
                revoked_reason=RevocationReason.AUTOMATIC_INACTIVE.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
