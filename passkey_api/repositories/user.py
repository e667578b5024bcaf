"""
User Repository

Provides database operations for User model.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.models.orm.user import User
from passkey_api.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    model = User

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_by_subject_id(self, user_id: str | UUID) -> User | None:
        """
        Get user by the id a client sent over the wire.

        Args:
            user_id: User id as string or UUID

        Returns:
            User, or None if not found or the id is not a valid UUID
        """
        if isinstance(user_id, str):
            try:
                user_id = UUID(user_id)
            except ValueError:
                return None
        return await self.get_by_id(user_id)

    async def get_by_email(self, email: str) -> User | None:
        """
        Get user by email address.

        Args:
            email: Email address to search for

        Returns:
            User or None if not found
        """
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()
