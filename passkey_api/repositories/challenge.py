"""
Passkey Challenge Repository

Challenge lookup with explicit precedence, single-use consumption, and
the expiry purge.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.models.enums import ChallengeType
from passkey_api.models.orm.challenge import PasskeyChallenge
from passkey_api.repositories.base import BaseRepository


class ChallengeRepository(BaseRepository[PasskeyChallenge]):
    """Repository for PasskeyChallenge model operations."""

    model = PasskeyChallenge

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def find_latest(
        self,
        challenge_type: ChallengeType,
        user_ids: Sequence[str],
        now: datetime,
    ) -> PasskeyChallenge | None:
        """
        Resolve the challenge a ceremony should be verified against.

        One query over every bucket in ``user_ids``. Ordering:
        unexpired before expired, then earlier entries of ``user_ids``
        before later ones, then newest first. The caller decides what an
        expired result means.

        Args:
            challenge_type: Registration or authentication
            user_ids: Candidate owners in order of preference
            now: Reference time for expiry

        Returns:
            The winning challenge, or None if no bucket has one
        """
        if not user_ids:
            return None

        expired_rank = case((PasskeyChallenge.expires_at < now, 1), else_=0)
        bucket_rank = case(
            {user_id: index for index, user_id in enumerate(user_ids)},
            value=PasskeyChallenge.user_id,
            else_=len(user_ids),
        )

        result = await self.session.execute(
            select(PasskeyChallenge)
            .where(
                PasskeyChallenge.type == challenge_type,
                PasskeyChallenge.user_id.in_(list(user_ids)),
            )
            .order_by(expired_rank, bucket_rank, PasskeyChallenge.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def consume(self, challenge_id: UUID) -> bool:
        """
        Delete a challenge by id, reporting whether this call removed it.

        Concurrent ceremonies holding the same challenge race on this
        DELETE; only one of them sees a matched row.

        Returns:
            True if the row was deleted here, False if it was already gone
        """
        result = await self.session.execute(
            delete(PasskeyChallenge)
            .where(PasskeyChallenge.id == challenge_id)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def delete_expired(self, now: datetime) -> int:
        """
        Delete every challenge that expired before ``now``.

        Returns:
            Number of challenges deleted
        """
        result = await self.session.execute(
            delete(PasskeyChallenge)
            .where(PasskeyChallenge.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
