# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the auth endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from core.schemas import ApiModel


# -- Requests --------------------------------------------------------------


class LoginRequest(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class VerifyTwoFactorRequest(ApiModel):
    user_id: str = Field(min_length=1)
    code: str = Field(min_length=1)


class CurrentPasswordRequest(ApiModel):
    current_password: str


class EmailRequest(ApiModel):
    email: str


class ResetPasswordRequest(ApiModel):
    email: str
    token: str
    new_password: str


class ChangePasswordRequest(ApiModel):
    current_password: str
    new_password: str


# -- Responses -------------------------------------------------------------


class LoginResponse(ApiModel):
    requires_two_factor: bool
    user_id: Optional[str] = None
    access_token: Optional[str] = None
    token_type: Optional[str] = None  # "bearer" whenever access_token is set
    expires_at: Optional[datetime] = None


class SentResponse(ApiModel):
    sent: bool = True


class UserInfoResponse(ApiModel):
    id: str
    email: str
    full_name: str
    phone_number: Optional[str] = None
    email_confirmed: bool
    two_factor_enabled: bool
    roles: List[str] = []
    last_login_at: Optional[datetime] = None
