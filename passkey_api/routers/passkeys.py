"""
Passkey Router

Endpoints for mobile passkey sign-in:
- Challenge: issue a single-use nonce for a ceremony
- Registration: verify a new credential and store (or reactivate) it
- Authentication: verify an assertion and issue a session
- Management: list and revoke the caller's passkeys

Every route runs the trusted-origin check and the rate limiter first.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from passkey_api.config import Settings, get_settings
from passkey_api.core.auth import CurrentActiveUser, UserPrincipal
from passkey_api.core.database import DbSession
from passkey_api.core.errors import UnauthorizedAccessError
from passkey_api.core.rate_limit import enforce_rate_limit, verify_trusted_origin
from passkey_api.core.security import generate_csrf_token
from passkey_api.models.contracts.passkeys import (
    AuthenticateRequest,
    AuthenticateResponse,
    ChallengeRequest,
    ChallengeResponse,
    PasskeyListResponse,
    PasskeyPublic,
    RegisterRequest,
    RegisterResponse,
    RevokeRequest,
    RevokeResponse,
    SessionUser,
)
from passkey_api.services.passkey_service import (
    DEFAULT_LIST_LIMIT,
    PasskeyService,
    normalize_subject_id,
)
from passkey_api.services.webauthn_verifier import PasskeyVerifier, WebAuthnVerifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/passkey",
    tags=["passkeys"],
    dependencies=[Depends(verify_trusted_origin), Depends(enforce_rate_limit)],
)


# =============================================================================
# Dependencies
# =============================================================================


def get_passkey_verifier(
    settings: Annotated[Settings, Depends(get_settings)],
) -> PasskeyVerifier:
    """Verifier used by the passkey endpoints (overridden in tests)."""
    return WebAuthnVerifier(reject_counter_regression=settings.passkey_reject_counter_regression)


def get_passkey_service(
    db: DbSession,
    verifier: Annotated[PasskeyVerifier, Depends(get_passkey_verifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PasskeyService:
    return PasskeyService(db, verifier=verifier, settings=settings)


PasskeyServiceDep = Annotated[PasskeyService, Depends(get_passkey_service)]


def _require_owner(user: UserPrincipal, user_id: str) -> None:
    if normalize_subject_id(user_id) != str(user.user_id):
        logger.warning(
            f"User {user.user_id} attempted to access passkeys of another user",
            extra={"target_user_id": user_id},
        )
        raise UnauthorizedAccessError()


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """
    Set HttpOnly authentication cookies and CSRF token.

    Cookies are secure (in production), SameSite=Lax, and HttpOnly.
    """
    settings = get_settings()
    secure = settings.is_production

    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=secure,
        samesite="lax",
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
    )
    # Readable by JavaScript
    response.set_cookie(
        key="csrf_token",
        value=generate_csrf_token(),
        httponly=False,
        secure=secure,
        samesite="strict",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )


# =============================================================================
# Challenge
# =============================================================================


@router.post(
    "/challenge",
    response_model=ChallengeResponse,
    summary="Issue a passkey challenge",
    description="Generate a single-use challenge for a registration or authentication "
    "ceremony. Registration requires an existing user.",
)
async def issue_challenge(
    body: ChallengeRequest,
    service: PasskeyServiceDep,
    db: DbSession,
) -> ChallengeResponse:
    issued = await service.issue_challenge(body.user_id, body.type, body.registration_options)
    await db.commit()
    return ChallengeResponse(challenge=issued.challenge, expires_at=issued.expires_at)


# =============================================================================
# Registration
# =============================================================================


@router.post(
    "/register",
    response_model=RegisterResponse,
    summary="Register a passkey",
    description="Verify a WebAuthn registration response against the user's latest "
    "registration challenge and store the credential.",
)
async def register_passkey(
    body: RegisterRequest,
    service: PasskeyServiceDep,
    db: DbSession,
) -> RegisterResponse:
    metadata = body.metadata.model_dump(exclude_none=True) if body.metadata else None
    result = await service.register(body.user_id, body.credential, body.platform, metadata)
    await db.commit()
    return RegisterResponse(success=result.success, rp_name=result.rp_name, rp_id=result.rp_id)


# =============================================================================
# Authentication
# =============================================================================


@router.post(
    "/authenticate",
    response_model=AuthenticateResponse,
    summary="Sign in with a passkey",
    description="Verify a WebAuthn assertion and issue a session. Sets auth cookies "
    "and also returns the tokens for mobile clients.",
)
async def authenticate_passkey(
    body: AuthenticateRequest,
    request: Request,
    response: Response,
    service: PasskeyServiceDep,
    db: DbSession,
) -> AuthenticateResponse:
    metadata = body.metadata.model_dump(exclude_none=True) if body.metadata else None
    result = await service.authenticate(
        body.credential,
        metadata,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    await db.commit()

    set_auth_cookies(response, result.session.token, result.session.refresh_token)

    return AuthenticateResponse(
        token=result.session.token,
        refresh_token=result.session.refresh_token,
        expires_at=result.session.expires_at,
        user=SessionUser.model_validate(result.user),
    )


# =============================================================================
# Management
# =============================================================================


@router.get(
    "/list/{user_id}",
    response_model=PasskeyListResponse,
    summary="List a user's passkeys",
    description="Active passkeys of the caller, most recently used first.",
)
async def list_passkeys(
    user_id: str,
    user: CurrentActiveUser,
    service: PasskeyServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = DEFAULT_LIST_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> PasskeyListResponse:
    _require_owner(user, user_id)

    page = await service.list_credentials(user.user_id, limit=limit, offset=offset)

    return PasskeyListResponse(
        passkeys=[PasskeyPublic.model_validate(p) for p in page.passkeys],
        next_offset=page.next_offset,
    )


@router.post(
    "/revoke",
    response_model=RevokeResponse,
    summary="Revoke a passkey",
    description="Revoke one of the caller's active passkeys.",
)
async def revoke_passkey(
    body: RevokeRequest,
    user: CurrentActiveUser,
    service: PasskeyServiceDep,
    db: DbSession,
) -> RevokeResponse:
    _require_owner(user, body.user_id)

    await service.revoke(user.user_id, body.credential_id, body.reason)
    await db.commit()

    return RevokeResponse(success=True)
