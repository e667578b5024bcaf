"""
Passkey Service - challenge-response protocol and credential lifecycle.

Issues single-use challenges, orchestrates registration and authentication
against a PasskeyVerifier, and owns every credential state transition
(active, revoked, reactivated). Signature checks are delegated to the
verifier; everything stateful happens here.

Every public method re-raises PasskeyError unchanged and wraps anything
else into that operation's catch-all error with a generic message.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from passkey_api.config import Settings, get_settings
from passkey_api.core.errors import (
    AuthenticationFailedError,
    ChallengeGenerationFailedError,
    CredentialExistsError,
    CredentialNotFoundError,
    ExpiredChallengeError,
    InvalidChallengeError,
    InvalidCredentialError,
    PasskeyError,
    PasskeysRetrievalFailedError,
    RegistrationFailedError,
    RevocationFailedError,
    UserNotFoundError,
    VerificationFailedError,
)
from passkey_api.models.contracts.passkeys import RegistrationPreferences
from passkey_api.models.enums import ChallengeType, CredentialStatus, RevocationReason
from passkey_api.models.orm.challenge import PasskeyChallenge
from passkey_api.models.orm.passkey import PasskeyCredential
from passkey_api.models.orm.user import User
from passkey_api.repositories.challenge import ChallengeRepository
from passkey_api.repositories.credential import CredentialRepository
from passkey_api.repositories.user import UserRepository
from passkey_api.services.session_service import IssuedSession, SessionService
from passkey_api.services.webauthn_verifier import (
    CounterRegressionFailure,
    PasskeyVerifier,
    VerificationFailure,
    WebAuthnVerifier,
)

logger = logging.getLogger(__name__)

# Authentication challenges not bound to a known user (discoverable credentials)
DISCOVERABLE_SUBJECT_ID = "__discoverable__"

# 32 random bytes, 256 bits of entropy
CHALLENGE_NUM_BYTES = 32

DEFAULT_USER_VERIFICATION = "preferred"
DEFAULT_LIST_LIMIT = 10


@dataclass(frozen=True)
class IssuedChallenge:
    challenge: str
    expires_at: datetime


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    rp_name: str
    rp_id: str


@dataclass(frozen=True)
class AuthenticationResult:
    session: IssuedSession
    user: User


@dataclass(frozen=True)
class CredentialPage:
    passkeys: list[PasskeyCredential]
    next_offset: int | None


def normalize_subject_id(user_id: str) -> str:
    """Canonical string form of a user id; UUIDs are lowercased and hyphenated."""
    try:
        return str(UUID(user_id))
    except ValueError:
        return user_id


def _parse_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(value)
    except ValueError:
        return None


class PasskeyService:
    """Service for passkey challenge, registration, authentication and lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        verifier: PasskeyVerifier | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.verifier = verifier or WebAuthnVerifier(
            reject_counter_regression=self.settings.passkey_reject_counter_regression
        )
        self.users = UserRepository(db)
        self.credentials = CredentialRepository(db)
        self.challenges = ChallengeRepository(db)

    # ========================================================================
    # Challenge
    # ========================================================================

    async def issue_challenge(
        self,
        user_id: str,
        challenge_type: ChallengeType,
        registration_options: RegistrationPreferences | dict[str, Any] | None = None,
    ) -> IssuedChallenge:
        """
        Issue a single-use challenge for a ceremony.

        Registration challenges require an existing user. Authentication
        challenges do not, and may be bound to DISCOVERABLE_SUBJECT_ID.

        Args:
            user_id: User the ceremony is for, or the discoverable sentinel
            challenge_type: Registration or authentication
            registration_options: Preferences presented to the authenticator

        Returns:
            IssuedChallenge with the base64url token and its expiry

        Raises:
            UserNotFoundError: Registration challenge for an unknown user
            ChallengeGenerationFailedError: Any unexpected failure
        """
        try:
            subject_id = normalize_subject_id(user_id)

            if challenge_type == ChallengeType.REGISTRATION:
                user = await self.users.get_by_subject_id(subject_id)
                if user is None:
                    logger.warning(
                        "Challenge rejected: user not found", extra={"user_id": user_id}
                    )
                    raise UserNotFoundError()

            if isinstance(registration_options, RegistrationPreferences):
                registration_options = registration_options.model_dump(exclude_none=True)

            now = datetime.now(UTC)
            challenge = PasskeyChallenge(
                user_id=subject_id,
                challenge=secrets.token_urlsafe(CHALLENGE_NUM_BYTES),
                type=challenge_type,
                registration_options=registration_options or None,
                created_at=now,
                expires_at=now + timedelta(seconds=self.settings.passkey_challenge_ttl_seconds),
            )
            await self.challenges.create(challenge)

            logger.debug(
                f"Issued {challenge_type.value} challenge",
                extra={"user_id": subject_id, "expires_at": challenge.expires_at.isoformat()},
            )
            return IssuedChallenge(challenge=challenge.challenge, expires_at=challenge.expires_at)
        except PasskeyError:
            raise
        except Exception as e:
            logger.error(f"Failed to generate challenge: {e}", exc_info=True)
            raise ChallengeGenerationFailedError() from e

    # ========================================================================
    # Registration
    # ========================================================================

    async def register(
        self,
        user_id: str,
        credential: dict[str, Any],
        platform: str,
        metadata: dict[str, Any] | None = None,
    ) -> RegistrationResult:
        """
        Verify a registration response and create or reactivate the credential.

        A revoked credential with the same id is reactivated in place for the
        registering user. An active one is never overwritten.

        Args:
            user_id: Registering user
            credential: WebAuthn registration credential JSON
            platform: Client platform label
            metadata: Device details from the client

        Returns:
            RegistrationResult echoing the configured relying party

        Raises:
            UserNotFoundError: Unknown user
            InvalidChallengeError: No registration challenge for the user
            ExpiredChallengeError: The latest challenge has expired
            VerificationFailedError: The attestation did not verify
            CredentialExistsError: The credential id is already active
            RegistrationFailedError: Any unexpected failure
        """
        try:
            user = await self.users.get_by_subject_id(user_id)
            if user is None:
                logger.warning("Registration rejected: user not found", extra={"user_id": user_id})
                raise UserNotFoundError()

            now = datetime.now(UTC)
            challenge = await self._resolve_challenge(
                ChallengeType.REGISTRATION, [str(user.id)], now
            )

            preferences = self._load_preferences(challenge)
            selection = preferences.authenticator_selection
            user_verification = (
                selection.user_verification if selection and selection.user_verification else None
            ) or DEFAULT_USER_VERIFICATION
            require_user_verification = user_verification == "required"

            try:
                verification = self.verifier.verify_registration(
                    credential,
                    expected_challenge=challenge.challenge,
                    expected_origins=self.settings.webauthn_origins,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    require_user_verification=require_user_verification,
                )
            except VerificationFailure as e:
                logger.error(
                    f"Registration verification failed: {e.detail}", extra={"user_id": str(user.id)}
                )
                raise VerificationFailedError(
                    f"WebAuthn verification failed: {e.detail}", details={"reason": e.detail}
                ) from e

            await self._consume_challenge(challenge)

            device_metadata = {
                **(metadata or {}),
                "registration_preferences": {
                    "attestation": preferences.attestation or "none",
                    "user_verification": user_verification,
                    "authenticator_attachment": selection.authenticator_attachment
                    if selection
                    else None,
                    "resident_key": selection.resident_key if selection else None,
                    "require_resident_key": selection.require_resident_key if selection else None,
                },
                "registered_at": now.isoformat(),
                "verification_settings": {
                    "require_user_verification": require_user_verification,
                    "expected_origins": self.settings.webauthn_origins,
                    "rp_id": self.settings.webauthn_rp_id,
                },
            }

            existing = await self.credentials.get_by_credential_id(verification.credential_id)

            if existing is None:
                passkey = PasskeyCredential(
                    user_id=user.id,
                    credential_id=verification.credential_id,
                    public_key=verification.public_key,
                    counter=0,
                    aaguid=verification.aaguid,
                    platform=platform,
                    device_metadata=device_metadata,
                    status=CredentialStatus.ACTIVE,
                    last_used=now,
                    created_at=now,
                    updated_at=now,
                )
                try:
                    await self.credentials.create(passkey)
                except IntegrityError as e:
                    # Lost a race with a concurrent registration of the same id
                    logger.warning(
                        "Registration rejected: credential registered concurrently",
                        extra={"credential_id": verification.credential_id},
                    )
                    raise CredentialExistsError() from e
                logger.info(
                    f"Passkey registered for user {user.id}",
                    extra={"credential_id": passkey.credential_id, "platform": platform},
                )
            elif existing.status == CredentialStatus.ACTIVE:
                logger.warning(
                    "Registration rejected: credential already active",
                    extra={"credential_id": existing.credential_id},
                )
                raise CredentialExistsError()
            else:
                existing.user_id = user.id
                existing.platform = platform
                existing.public_key = verification.public_key
                existing.aaguid = verification.aaguid
                existing.counter = 0
                existing.status = CredentialStatus.ACTIVE
                existing.revoked_at = None
                existing.revoked_reason = None
                existing.device_metadata = device_metadata
                existing.last_used = now
                existing.updated_at = now
                await self.credentials.update(existing)
                logger.info(
                    f"Revoked passkey reactivated for user {user.id}",
                    extra={"credential_id": existing.credential_id, "platform": platform},
                )

            return RegistrationResult(
                success=True,
                rp_name=self.settings.webauthn_rp_name,
                rp_id=self.settings.webauthn_rp_id,
            )
        except PasskeyError:
            raise
        except Exception as e:
            logger.error(f"Passkey registration failed: {e}", exc_info=True)
            raise RegistrationFailedError() from e

    # ========================================================================
    # Authentication
    # ========================================================================

    async def authenticate(
        self,
        credential: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> AuthenticationResult:
        """
        Verify an assertion, record the use, and issue a session.

        Args:
            credential: WebAuthn authentication credential JSON
            metadata: Device details merged into the stored metadata
            user_agent: Client user agent recorded on the session
            ip_address: Client address recorded on the session

        Returns:
            AuthenticationResult with the issued session and the user

        Raises:
            InvalidCredentialError: Unknown, revoked or unparsable credential,
                or a signature counter that did not advance
            InvalidChallengeError: No usable authentication challenge
            ExpiredChallengeError: The winning challenge has expired
            VerificationFailedError: The assertion did not verify
            UserNotFoundError: The credential's owner no longer exists
            AuthenticationFailedError: Any unexpected failure
        """
        try:
            credential_id = self.verifier.extract_credential_id(credential)
            passkey = (
                await self.credentials.get_active_by_credential_id(credential_id)
                if credential_id
                else None
            )
            if passkey is None:
                logger.warning(
                    "Authentication rejected: no active credential",
                    extra={"credential_id": credential_id},
                )
                raise InvalidCredentialError()

            now = datetime.now(UTC)
            challenge = await self._resolve_challenge(
                ChallengeType.AUTHENTICATION,
                [str(passkey.user_id), DISCOVERABLE_SUBJECT_ID],
                now,
            )

            try:
                verification = self.verifier.verify_authentication(
                    credential,
                    expected_challenge=challenge.challenge,
                    expected_origins=self.settings.webauthn_origins,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    public_key=passkey.public_key,
                    counter=passkey.counter,
                )
            except CounterRegressionFailure as e:
                logger.error(
                    f"Authentication rejected, possible cloned authenticator: {e.detail}",
                    extra={"credential_id": passkey.credential_id},
                )
                raise InvalidCredentialError() from e
            except VerificationFailure as e:
                logger.error(
                    f"Authentication verification failed: {e.detail}",
                    extra={"credential_id": passkey.credential_id},
                )
                raise VerificationFailedError(
                    f"WebAuthn verification failed: {e.detail}", details={"reason": e.detail}
                ) from e

            user = await self.users.get_by_id(passkey.user_id)
            if user is None:
                logger.error(
                    "Authentication rejected: credential owner no longer exists",
                    extra={"credential_id": passkey.credential_id},
                )
                raise UserNotFoundError()

            await self._consume_challenge(challenge)

            passkey.last_used = now
            passkey.counter = verification.new_counter
            passkey.device_metadata = {
                **(passkey.device_metadata or {}),
                **(metadata or {}),
                "last_authentication_at": now.isoformat(),
            }
            passkey.updated_at = now
            await self.credentials.update(passkey)

            session = await SessionService(self.db, self.settings).create_session(
                user, user_agent=user_agent, ip_address=ip_address
            )

            logger.info(
                f"User {user.id} authenticated with passkey",
                extra={"credential_id": passkey.credential_id, "counter": passkey.counter},
            )
            return AuthenticationResult(session=session, user=user)
        except PasskeyError:
            raise
        except Exception as e:
            logger.error(f"Passkey authentication failed: {e}", exc_info=True)
            raise AuthenticationFailedError() from e

    # ========================================================================
    # Passkey Management
    # ========================================================================

    async def list_credentials(
        self, user_id: str | UUID, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0
    ) -> CredentialPage:
        """
        List a user's active passkeys, most recently used first.

        Args:
            user_id: Owner
            limit: Page size
            offset: Number of passkeys to skip

        Returns:
            CredentialPage with next_offset set when more passkeys exist
        """
        try:
            owner = _parse_uuid(user_id)
            if owner is None:
                return CredentialPage(passkeys=[], next_offset=None)

            rows = await self.credentials.list_active_for_user(
                owner, limit=limit + 1, offset=offset
            )
            next_offset = offset + limit if len(rows) > limit else None
            return CredentialPage(passkeys=rows[:limit], next_offset=next_offset)
        except PasskeyError:
            raise
        except Exception as e:
            logger.error(f"Failed to list passkeys: {e}", exc_info=True)
            raise PasskeysRetrievalFailedError() from e

    async def revoke(
        self, user_id: str | UUID, credential_id: str, reason: str | None = None
    ) -> PasskeyCredential:
        """
        Revoke one of a user's active passkeys.

        Revoked credentials, credentials owned by someone else and unknown
        ids all raise the same CredentialNotFoundError.

        Args:
            user_id: Owner
            credential_id: Credential to revoke
            reason: Stored as revoked_reason, defaults to "user_initiated"

        Returns:
            The revoked credential

        Raises:
            CredentialNotFoundError: No matching active credential
            RevocationFailedError: Any unexpected failure
        """
        try:
            owner = _parse_uuid(user_id)
            passkey = (
                await self.credentials.get_active_owned(credential_id, owner) if owner else None
            )
            if passkey is None:
                logger.warning(
                    "Revocation rejected: credential not found",
                    extra={"user_id": str(user_id), "credential_id": credential_id},
                )
                raise CredentialNotFoundError()

            now = datetime.now(UTC)
            passkey.status = CredentialStatus.REVOKED
            passkey.revoked_at = now
            passkey.revoked_reason = reason or RevocationReason.USER_INITIATED.value
            passkey.updated_at = now
            await self.credentials.update(passkey)

            logger.info(
                f"Passkey revoked for user {passkey.user_id}",
                extra={"credential_id": credential_id, "reason": passkey.revoked_reason},
            )
            return passkey
        except PasskeyError:
            raise
        except Exception as e:
            logger.error(f"Failed to revoke passkey: {e}", exc_info=True)
            raise RevocationFailedError() from e

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _resolve_challenge(
        self, challenge_type: ChallengeType, user_ids: list[str], now: datetime
    ) -> PasskeyChallenge:
        challenge = await self.challenges.find_latest(challenge_type, user_ids, now)
        if challenge is None:
            logger.warning(
                f"No {challenge_type.value} challenge found", extra={"user_ids": user_ids}
            )
            raise InvalidChallengeError()
        # Expired challenges are left for the purge sweep
        if challenge.is_expired(now):
            logger.warning(
                f"{challenge_type.value.capitalize()} challenge expired",
                extra={"user_id": challenge.user_id},
            )
            raise ExpiredChallengeError("Challenge has expired. Please request a new one.")
        return challenge

    async def _consume_challenge(self, challenge: PasskeyChallenge) -> None:
        # A concurrent ceremony already used this challenge; the caller's
        # transaction is rolled back by the request session.
        if not await self.challenges.consume(challenge.id):
            logger.warning(
                f"{challenge.type.value.capitalize()} challenge already consumed",
                extra={"user_id": challenge.user_id},
            )
            raise InvalidChallengeError()

    @staticmethod
    def _load_preferences(challenge: PasskeyChallenge) -> RegistrationPreferences:
        if not challenge.registration_options:
            return RegistrationPreferences()
        try:
            return RegistrationPreferences.model_validate(challenge.registration_options)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable registration options, using defaults: {e}")
            return RegistrationPreferences()
