"""
Passkey credential ORM model.

One row per WebAuthn credential id. Revocation and reactivation update the
row in place; rows are never deleted by the service.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passkey_api.models.enums import CredentialStatus
from passkey_api.models.orm.base import Base, JSONType, UTCDateTime

if TYPE_CHECKING:
    from passkey_api.models.orm.user import User


class PasskeyCredential(Base):
    """Registered passkey credential bound to a user and a device."""

    __tablename__ = "passkey_credentials"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    # WebAuthn credential data (base64url encoded)
    credential_id: Mapped[str] = mapped_column(String(1024), unique=True)
    public_key: Mapped[str] = mapped_column(Text)
    counter: Mapped[int] = mapped_column(Integer, default=0)
    aaguid: Mapped[str | None] = mapped_column(String(64), default=None)

    # Device info supplied by the client
    platform: Mapped[str] = mapped_column(String(50))
    # "metadata" is reserved on declarative classes
    device_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, default=dict
    )

    status: Mapped[CredentialStatus] = mapped_column(
        Enum(
            CredentialStatus,
            name="passkey_credential_status",
            native_enum=False,
            length=20,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=CredentialStatus.ACTIVE,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, default=None)
    revoked_reason: Mapped[str | None] = mapped_column(String(255), default=None)

    last_used: Mapped[datetime] = mapped_column(
        UTCDateTime, default=lambda: datetime.now(UTC)
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="passkeys")

    @property
    def is_active(self) -> bool:
        return self.status == CredentialStatus.ACTIVE

    __table_args__ = (
        Index("ix_passkey_credentials_user_id", "user_id"),
        Index("ix_passkey_credentials_status_last_used", "status", "last_used"),
    )
