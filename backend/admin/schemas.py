# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the admin endpoints."""

from datetime import datetime
from typing import List, Optional

from core.schemas import ApiModel


# -- Requests --------------------------------------------------------------


class CreateEmployeeRequest(ApiModel):
    email: str
    full_name: str
    password: str
    phone_number: Optional[str] = None
    roles: List[str] = []


class UpdateEmployeeRequest(ApiModel):
    # Omitted (null) profile fields are left unchanged
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    # Required and authoritative: the employee ends up with exactly these
    # roles.  Send [] to clear them.
    roles: List[str]


# -- Responses -------------------------------------------------------------


class EmployeeSummary(ApiModel):
    id: str
    email: str
    full_name: str
    email_confirmed: bool
    is_active: bool
    two_factor_enabled: bool
    roles: List[str] = []


class EmployeeDetail(EmployeeSummary):
    phone_number: Optional[str] = None
    failed_access_count: int
    lockout_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class EmployeePageResponse(ApiModel):
    items: List[EmployeeSummary]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class RoleListResponse(ApiModel):
    roles: List[str]


# -- Audit log responses ---------------------------------------------------


class AuditLogRow(ApiModel):
    id: int
    actor_email: Optional[str] = None       # resolved from actor_id join
    target_email: Optional[str] = None      # resolved from target_id join
    action: str
    detail: Optional[str] = None
    request_ip: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(ApiModel):
    logs: List[AuditLogRow]
