# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Admin endpoints – employee lifecycle management and the audit trail.

Every endpoint in this router is guarded by ``require_admin``.  A request
that carries a valid JWT without one of the configured admin roles receives
403 before any business logic runs.  Roles are read from the token claims;
the identity store is not consulted for the authorization decision.
"""

import io
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from sqlalchemy.orm import Session, aliased

from database import get_db
from core.errors import unwrap
from core.policy import Principal
from core.security import get_client_ip, require_admin
from models.audit_log import AuditLog
from models.identity import Identity, normalize_email
from services.employees import EmployeeService
from services.notifications import Sender, get_sender
from admin.schemas import (
    AuditLogListResponse,
    AuditLogRow,
    CreateEmployeeRequest,
    EmployeeDetail,
    EmployeePageResponse,
    EmployeeSummary,
    RoleListResponse,
    UpdateEmployeeRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])


def get_employee_service(
    request: Request,
    db: Session = Depends(get_db),
    send: Sender = Depends(get_sender),
) -> EmployeeService:
    return EmployeeService(db, send, request_ip=get_client_ip(request))


def _summary(identity: Identity) -> EmployeeSummary:
    return EmployeeSummary(
        id=identity.id,
        email=identity.email,
        full_name=identity.full_name,
        email_confirmed=identity.email_confirmed,
        is_active=identity.is_active,
        two_factor_enabled=identity.two_factor_enabled,
        roles=identity.role_names,
    )


def _detail(identity: Identity) -> EmployeeDetail:
    return EmployeeDetail(
        **_summary(identity).model_dump(),
        phone_number=identity.phone_number,
        failed_access_count=identity.failed_access_count,
        lockout_until=identity.lockout_until,
        last_login_at=identity.last_login_at,
        created_at=identity.created_at,
        updated_at=identity.updated_at,
    )


# ---------------------------------------------------------------------------
# GET /admin/employees  – paged, searchable listing
# ---------------------------------------------------------------------------


@router.get("/employees", response_model=EmployeePageResponse)
def list_employees(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(20, alias="pageSize"),
    search: Optional[str] = Query(None, description="Case-insensitive match on email or name"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    page = unwrap(service.list_employees(admin, page_number, page_size, search, include_inactive))
    return EmployeePageResponse(
        items=[_summary(identity) for identity in page.items],
        total_count=page.total_count,
        page_number=page.page_number,
        page_size=page.page_size,
        total_pages=page.total_pages,
        has_next=page.has_next,
        has_previous=page.has_previous,
    )


# ---------------------------------------------------------------------------
# POST /admin/employees  – create an employee
# ---------------------------------------------------------------------------


@router.post("/employees", response_model=EmployeeDetail, status_code=status.HTTP_201_CREATED)
def create_employee(
    body: CreateEmployeeRequest,
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    """
    Create an employee account.  The email starts unconfirmed and a
    confirmation link is mailed to the new address.
    """
    identity = unwrap(
        service.create(
            admin,
            email=body.email,
            full_name=body.full_name,
            password=body.password,
            roles=body.roles,
            phone_number=body.phone_number,
        )
    )
    return _detail(identity)


# ---------------------------------------------------------------------------
# GET /admin/employees/{id}
# ---------------------------------------------------------------------------


@router.get("/employees/{employee_id}", response_model=EmployeeDetail)
def get_employee(
    employee_id: str,
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    return _detail(unwrap(service.get_details(admin, employee_id)))


# ---------------------------------------------------------------------------
# PUT /admin/employees/{id}  – profile + authoritative role set
# ---------------------------------------------------------------------------


@router.put("/employees/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_employee(
    employee_id: str,
    body: UpdateEmployeeRequest,
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    unwrap(
        service.update(
            admin,
            employee_id,
            roles=body.roles,
            full_name=body.full_name,
            phone_number=body.phone_number,
        )
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# POST /admin/employees/{id}/activate | deactivate
# ---------------------------------------------------------------------------


@router.post("/employees/{employee_id}/activate", status_code=status.HTTP_204_NO_CONTENT)
def activate_employee(
    employee_id: str,
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    """Re-enable sign-in and clear any lockout.  No-op if already active."""
    unwrap(service.activate(admin, employee_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/employees/{employee_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_employee(
    employee_id: str,
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    """
    Disable sign-in permanently (until re-activated).  Guard: an admin cannot
    deactivate their own account.
    """
    unwrap(service.deactivate(admin, employee_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# GET /admin/roles
# ---------------------------------------------------------------------------


@router.get("/roles", response_model=RoleListResponse)
def list_roles(
    admin: Principal = Depends(require_admin),
    service: EmployeeService = Depends(get_employee_service),
):
    return RoleListResponse(roles=unwrap(service.list_roles(admin)))


# ---------------------------------------------------------------------------
# GET /admin/audit-logs  – audit trail with optional filters
# ---------------------------------------------------------------------------


def _audit_query(db: Session, emails=None, action=None, since=None, until=None):
    Actor  = aliased(Identity)
    Target = aliased(Identity)

    q = (
        db.query(AuditLog, Actor.email, Target.email)
        .outerjoin(Actor,  AuditLog.actor_id  == Actor.id)
        .outerjoin(Target, AuditLog.target_id == Target.id)
    )
    if emails:
        wanted = [normalize_email(e) for e in emails]
        q = q.filter(Actor.normalized_email.in_(wanted) | Target.normalized_email.in_(wanted))
    if action:
        q = q.filter(AuditLog.action == action)
    if since:
        q = q.filter(AuditLog.created_at >= since)
    if until:
        q = q.filter(AuditLog.created_at <= until)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


@router.get("/audit-logs", response_model=AuditLogListResponse)
def list_audit_logs(
    emails: Optional[List[str]] = Query(None, alias="email", description="Filter by email(s) – repeated param"),
    action: Optional[str] = Query(None, description="Exact action name, e.g. login_failed"),
    since: Optional[datetime] = Query(None, description="ISO-8601 start of time window"),
    until: Optional[datetime] = Query(None, description="ISO-8601 end of time window"),
    limit: int = Query(200, ge=1, le=1000),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Return audit rows newest-first.  ``email`` matches rows where either the
    actor or the target has one of the given addresses.
    """
    rows = _audit_query(db, emails, action, since, until).limit(limit).all()
    return AuditLogListResponse(
        logs=[
            AuditLogRow(
                id=row.id,
                actor_email=actor_email,
                target_email=target_email,
                action=row.action,
                detail=row.detail,
                request_ip=row.request_ip,
                created_at=row.created_at,
            )
            for row, actor_email, target_email in rows
        ]
    )


# ---------------------------------------------------------------------------
# GET /admin/audit-logs/export  – download audit logs as Excel
# ---------------------------------------------------------------------------

_AUDIT_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_AUDIT_HEADER_FILL  = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_AUDIT_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_AUDIT_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

_AUDIT_EXPORT_HEADERS = ["ID", "Time (UTC)", "Actor", "Target", "Action", "Request IP", "Details"]
_AUDIT_COL_WIDTHS     = [8, 20, 28, 28, 22, 16, 50]


@router.get("/audit-logs/export")
def export_audit_logs(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Export the whole audit trail as an Excel workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Audit Logs"

    # Header row
    ws.append(_AUDIT_EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _AUDIT_HEADER_FONT
        cell.fill = _AUDIT_HEADER_FILL
        cell.alignment = _AUDIT_HEADER_ALIGN
        cell.border = _AUDIT_THIN_BORDER

    # Data rows
    for row, actor_email, target_email in _audit_query(db).all():
        ws.append([
            row.id,
            row.created_at.strftime("%Y-%m-%d %H:%M:%S") if row.created_at else "",
            actor_email or "",
            target_email or "",
            row.action,
            row.request_ip or "",
            row.detail or "",
        ])
        for cell in ws[ws.max_row]:
            cell.border = _AUDIT_THIN_BORDER

    for col_idx, width in enumerate(_AUDIT_COL_WIDTHS, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = width

    # Stream
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()

    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="audit-logs.xlsx"'},
    )
