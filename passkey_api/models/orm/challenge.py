"""
Passkey challenge ORM model.

Single-use nonces issued for a registration or authentication ceremony.
user_id is a plain string so authentication challenges can be bound to
the discoverable-credential sentinel instead of a real user.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Enum, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from passkey_api.models.enums import ChallengeType
from passkey_api.models.orm.base import Base, JSONType, UTCDateTime


class PasskeyChallenge(Base):
    """Outstanding WebAuthn challenge."""

    __tablename__ = "passkey_challenges"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255))
    challenge: Mapped[str] = mapped_column(String(255))
    type: Mapped[ChallengeType] = mapped_column(
        Enum(
            ChallengeType,
            name="passkey_challenge_type",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        )
    )
    registration_options: Mapped[dict[str, Any] | None] = mapped_column(JSONType, default=None)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the challenge is past its expiry."""
        return (now or datetime.now(UTC)) > self.expires_at

    __table_args__ = (
        Index("ix_passkey_challenges_user_id_type", "user_id", "type"),
        Index("ix_passkey_challenges_expires_at", "expires_at"),
    )
