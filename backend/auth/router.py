# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – login, two-factor, password and email lifecycle.

Security notes
--------------
* Login returns the *same* 401 body whether the email doesn't exist, the
  password is wrong, or the account is locked, disabled or unconfirmed.
  This prevents user-enumeration attacks.
* forgot-password and resend-confirmation always answer ``{"sent": true}``
  before touching the database; the real work runs as a background task.
* change-password and the 2FA toggles re-verify the current password, so a
  stolen (but not yet expired) token alone cannot take over the account.
* Outbound mail is sent from a background task after the response.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from database import get_db
from core.errors import unwrap
from core.policy import Principal
from core.security import get_client_ip, get_current_principal
from services.authentication import AuthenticationService, LoginOutcome
from services.notifications import Notifier, Sender, get_notifier, get_sender
from services.passwords import PasswordService, run_detached
from auth.schemas import (
    ChangePasswordRequest,
    CurrentPasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    ResetPasswordRequest,
    SentResponse,
    UserInfoResponse,
    VerifyTwoFactorRequest,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(
    request: Request,
    db: Session = Depends(get_db),
    send: Sender = Depends(get_sender),
) -> AuthenticationService:
    return AuthenticationService(db, send, request_ip=get_client_ip(request))


def get_password_service(
    request: Request,
    db: Session = Depends(get_db),
    send: Sender = Depends(get_sender),
) -> PasswordService:
    return PasswordService(db, send, request_ip=get_client_ip(request))


def _login_response(outcome: LoginOutcome) -> LoginResponse:
    return LoginResponse(
        requires_two_factor=outcome.requires_two_factor,
        user_id=outcome.user_id,
        access_token=outcome.access_token,
        token_type="bearer" if outcome.access_token else None,
        expires_at=outcome.expires_at,
    )


# ---------------------------------------------------------------------------
# POST /auth/login  – step 1
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, service: AuthenticationService = Depends(get_auth_service)):
    """Check credentials; return a token, or a 2FA challenge."""
    return _login_response(unwrap(service.login(body.email, body.password)))


# ---------------------------------------------------------------------------
# POST /auth/2fa/*
# ---------------------------------------------------------------------------


@router.post("/2fa/verify", response_model=LoginResponse)
def verify_two_factor(
    body: VerifyTwoFactorRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Exchange the emailed code for an access token."""
    return _login_response(unwrap(service.verify_two_factor(body.user_id, body.code)))


@router.post("/2fa/enable", status_code=status.HTTP_204_NO_CONTENT)
def enable_two_factor(
    body: CurrentPasswordRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthenticationService = Depends(get_auth_service),
):
    unwrap(service.enable_two_factor(principal, body.current_password))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/2fa/disable", status_code=status.HTTP_204_NO_CONTENT)
def disable_two_factor(
    body: CurrentPasswordRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthenticationService = Depends(get_auth_service),
):
    unwrap(service.disable_two_factor(principal, body.current_password))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Email confirmation
# ---------------------------------------------------------------------------


@router.get("/confirm-email", status_code=status.HTTP_204_NO_CONTENT)
def confirm_email(
    user_id: str = Query(..., alias="userId"),
    token: str = Query(...),
    service: PasswordService = Depends(get_password_service),
):
    unwrap(service.confirm_email(user_id, token))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/resend-confirmation", response_model=SentResponse)
def resend_confirmation(
    body: EmailRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    notifier: Notifier = Depends(get_notifier),
):
    """Answer immediately; lookup, code issuance and mail run afterwards."""
    background_tasks.add_task(
        run_detached, "resend_confirmation", body.email, notifier, get_client_ip(request)
    )
    return SentResponse(sent=True)


# ---------------------------------------------------------------------------
# Password lifecycle
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=SentResponse)
def forgot_password(
    body: EmailRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    notifier: Notifier = Depends(get_notifier),
):
    """Answer immediately; lookup, code issuance and mail run afterwards."""
    background_tasks.add_task(
        run_detached, "forgot_password", body.email, notifier, get_client_ip(request)
    )
    return SentResponse(sent=True)


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT)
def reset_password(body: ResetPasswordRequest, service: PasswordService = Depends(get_password_service)):
    unwrap(service.reset_password(body.email, body.token, body.new_password))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    service: PasswordService = Depends(get_password_service),
):
    """Change the authenticated caller's password.  No 2FA step is required."""
    unwrap(service.change_password(principal, body.current_password, body.new_password))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserInfoResponse)
def me(
    principal: Principal = Depends(get_current_principal),
    service: AuthenticationService = Depends(get_auth_service),
):
    """Return the authenticated caller's own profile (no secrets)."""
    identity = unwrap(service.current_identity(principal))
    return UserInfoResponse(
        id=identity.id,
        email=identity.email,
        full_name=identity.full_name,
        phone_number=identity.phone_number,
        email_confirmed=identity.email_confirmed,
        two_factor_enabled=identity.two_factor_enabled,
        roles=identity.role_names,
        last_login_at=identity.last_login_at,
    )
