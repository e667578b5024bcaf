"""Tests for CredentialRepository."""

from datetime import UTC, datetime, timedelta

import pytest

from passkey_api.models.enums import CredentialStatus
from passkey_api.models.orm.passkey import PasskeyCredential
from passkey_api.repositories.credential import CredentialRepository

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


async def add_passkey(
    db_session,
    user,
    credential_id: str,
    *,
    status: CredentialStatus = CredentialStatus.ACTIVE,
    last_used_days_ago: float = 0,
) -> PasskeyCredential:
    last_used = NOW - timedelta(days=last_used_days_ago)
    passkey = PasskeyCredential(
        user_id=user.id,
        credential_id=credential_id,
        public_key=f"pk-{credential_id}",
        platform="ios",
        status=status,
        last_used=last_used,
        created_at=last_used,
        updated_at=last_used,
    )
    db_session.add(passkey)
    await db_session.flush()
    return passkey


@pytest.mark.unit
class TestCredentialLookups:
    """Lookups by credential id."""

    async def test_get_by_credential_id_ignores_status(self, db_session, user):
        await add_passkey(db_session, user, "cred-1", status=CredentialStatus.REVOKED)
        repo = CredentialRepository(db_session)

        found = await repo.get_by_credential_id("cred-1")

        assert found is not None
        assert found.status == CredentialStatus.REVOKED

    async def test_get_active_skips_revoked(self, db_session, user):
        await add_passkey(db_session, user, "cred-1", status=CredentialStatus.REVOKED)
        repo = CredentialRepository(db_session)

        assert await repo.get_active_by_credential_id("cred-1") is None

    async def test_get_active_returns_active(self, db_session, user):
        passkey = await add_passkey(db_session, user, "cred-1")
        repo = CredentialRepository(db_session)

        assert await repo.get_active_by_credential_id("cred-1") is passkey

    async def test_get_active_owned_checks_owner(self, db_session, user, other_user):
        await add_passkey(db_session, user, "cred-1")
        repo = CredentialRepository(db_session)

        assert await repo.get_active_owned("cred-1", user.id) is not None
        assert await repo.get_active_owned("cred-1", other_user.id) is None

    async def test_unknown_id(self, db_session):
        repo = CredentialRepository(db_session)

        assert await repo.get_by_credential_id("missing") is None


@pytest.mark.unit
class TestListActiveForUser:
    """Listing order and filtering."""

    async def test_most_recently_used_first(self, db_session, user):
        await add_passkey(db_session, user, "old", last_used_days_ago=10)
        await add_passkey(db_session, user, "new", last_used_days_ago=0)
        await add_passkey(db_session, user, "mid", last_used_days_ago=3)
        repo = CredentialRepository(db_session)

        rows = await repo.list_active_for_user(user.id, limit=10)

        assert [p.credential_id for p in rows] == ["new", "mid", "old"]

    async def test_excludes_revoked_and_other_users(self, db_session, user, other_user):
        await add_passkey(db_session, user, "mine")
        await add_passkey(db_session, user, "gone", status=CredentialStatus.REVOKED)
        await add_passkey(db_session, other_user, "theirs")
        repo = CredentialRepository(db_session)

        rows = await repo.list_active_for_user(user.id, limit=10)

        assert [p.credential_id for p in rows] == ["mine"]

    async def test_limit_and_offset(self, db_session, user):
        for i in range(5):
            await add_passkey(db_session, user, f"cred-{i}", last_used_days_ago=i)
        repo = CredentialRepository(db_session)

        rows = await repo.list_active_for_user(user.id, limit=2, offset=2)

        assert [p.credential_id for p in rows] == ["cred-2", "cred-3"]


@pytest.mark.unit
class TestRevokeInactive:
    """Bulk inactivity revocation."""

    async def test_revokes_only_stale_active_credentials(self, db_session, user):
        stale = await add_passkey(db_session, user, "stale", last_used_days_ago=31)
        fresh = await add_passkey(db_session, user, "fresh", last_used_days_ago=29)
        revoked = await add_passkey(
            db_session, user, "already", status=CredentialStatus.REVOKED, last_used_days_ago=90
        )
        repo = CredentialRepository(db_session)

        count = await repo.revoke_inactive(NOW - timedelta(days=30), NOW)

        assert count == 1
        for passkey in (stale, fresh, revoked):
            await db_session.refresh(passkey)
        assert stale.status == CredentialStatus.REVOKED
        assert stale.revoked_reason == "automatic_inactive"
        assert stale.revoked_at == NOW
        assert fresh.status == CredentialStatus.ACTIVE
        assert revoked.revoked_reason is None

    async def test_second_run_revokes_nothing(self, db_session, user):
        await add_passkey(db_session, user, "stale", last_used_days_ago=60)
        repo = CredentialRepository(db_session)

        assert await repo.revoke_inactive(NOW - timedelta(days=30), NOW) == 1
        assert await repo.revoke_inactive(NOW - timedelta(days=30), NOW) == 0

    async def test_last_used_exactly_at_cutoff_is_kept(self, db_session, user):
        boundary = await add_passkey(db_session, user, "boundary", last_used_days_ago=30)
        repo = CredentialRepository(db_session)

        count = await repo.revoke_inactive(NOW - timedelta(days=30), NOW)

        assert count == 0
        await db_session.refresh(boundary)
        assert boundary.status == CredentialStatus.ACTIVE
        assert boundary.revoked_at is None
