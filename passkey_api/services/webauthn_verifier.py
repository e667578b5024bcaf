"""
WebAuthn Verification Adapter

Thin call-through to py_webauthn. Normalizes its results into small
dataclasses and every failure into VerificationFailure, so the passkey
service never inspects library exceptions.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_authentication_credential_json,
    parse_registration_credential_json,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Results and failures
# =============================================================================


@dataclass(frozen=True)
class RegistrationVerification:
    """Credential material extracted from a verified registration."""

    credential_id: str
    public_key: str
    aaguid: str | None
    counter: int = 0


@dataclass(frozen=True)
class AuthenticationVerification:
    """Outcome of a verified authentication assertion."""

    credential_id: str
    new_counter: int


class VerificationFailure(Exception):
    """The authenticator response did not verify."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class CounterRegressionFailure(VerificationFailure):
    """The signature verified but the authenticator counter did not advance."""

    def __init__(self, stored_counter: int, reported_counter: int):
        self.stored_counter = stored_counter
        self.reported_counter = reported_counter
        super().__init__(
            f"Signature counter did not increase (stored {stored_counter}, "
            f"reported {reported_counter})"
        )


class PasskeyVerifier(Protocol):
    """What the passkey service needs from a verification primitive."""

    def extract_credential_id(self, response: dict[str, Any]) -> str | None: ...

    def verify_registration(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        require_user_verification: bool,
    ) -> RegistrationVerification: ...

    def verify_authentication(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        public_key: str,
        counter: int,
    ) -> AuthenticationVerification: ...


# =============================================================================
# py_webauthn implementation
# =============================================================================


class WebAuthnVerifier:
    """PasskeyVerifier backed by py_webauthn."""

    def __init__(self, reject_counter_regression: bool = True):
        self.reject_counter_regression = reject_counter_regression

    def extract_credential_id(self, response: dict[str, Any]) -> str | None:
        """
        Get the base64url credential id from an authentication response.

        Returns:
            The credential id, or None if the payload cannot be parsed
        """
        try:
            credential = parse_authentication_credential_json(response)
        except Exception as e:
            logger.debug(f"Could not parse authentication response: {e}")
            return None
        return bytes_to_base64url(credential.raw_id)

    def verify_registration(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        require_user_verification: bool,
    ) -> RegistrationVerification:
        """
        Verify an attestation response against an issued challenge.

        Args:
            response: Registration credential JSON from the authenticator
            expected_challenge: Base64url challenge that was issued
            expected_origins: Accepted origins (web origins or android:apk-key-hash values)
            expected_rp_id: Relying party ID
            require_user_verification: Whether the UV flag must be set

        Returns:
            RegistrationVerification with base64url encoded id and key

        Raises:
            VerificationFailure: If parsing or verification fails
        """
        try:
            credential = parse_registration_credential_json(response)
            verification = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_origin=expected_origins,
                expected_rp_id=expected_rp_id,
                require_user_verification=require_user_verification,
            )
        except Exception as e:
            raise VerificationFailure(str(e)) from e

        return RegistrationVerification(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=bytes_to_base64url(verification.credential_public_key),
            aaguid=verification.aaguid or None,
            counter=verification.sign_count,
        )

    def verify_authentication(
        self,
        response: dict[str, Any],
        *,
        expected_challenge: str,
        expected_origins: list[str],
        expected_rp_id: str,
        public_key: str,
        counter: int,
    ) -> AuthenticationVerification:
        """
        Verify an assertion against the stored public key.

        py_webauthn is given a current count of 0 so the counter policy
        below is applied in one place, after the signature has verified.

        Args:
            response: Authentication credential JSON from the authenticator
            expected_challenge: Base64url challenge that was issued
            expected_origins: Accepted origins
            expected_rp_id: Relying party ID
            public_key: Stored base64url COSE public key
            counter: Stored signature counter

        Returns:
            AuthenticationVerification with the reported counter

        Raises:
            CounterRegressionFailure: If the counter did not advance and
                regression rejection is enabled
            VerificationFailure: If parsing or signature verification fails
        """
        try:
            credential = parse_authentication_credential_json(response)
            verification = verify_authentication_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_origin=expected_origins,
                expected_rp_id=expected_rp_id,
                credential_public_key=base64url_to_bytes(public_key),
                credential_current_sign_count=0,
            )
        except Exception as e:
            raise VerificationFailure(str(e)) from e

        new_counter = verification.new_sign_count
        credential_id = bytes_to_base64url(verification.credential_id)

        # Authenticators that do not implement a counter always report 0
        if (new_counter != 0 or counter != 0) and new_counter <= counter:
            if self.reject_counter_regression:
                raise CounterRegressionFailure(counter, new_counter)
            logger.warning(
                f"Signature counter regression for credential {credential_id}",
                extra={"stored_counter": counter, "reported_counter": new_counter},
            )

        return AuthenticationVerification(credential_id=credential_id, new_counter=new_counter)
