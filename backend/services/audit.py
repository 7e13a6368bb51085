# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""Audit-trail writer.  Rows are staged on the session; the caller commits."""

from typing import Optional

from sqlalchemy.orm import Session

from models.audit_log import AuditLog


def record(
    db: Session,
    action: str,
    *,
    actor_id: Optional[str] = None,
    target_id: Optional[str] = None,
    detail: Optional[str] = None,
    request_ip: Optional[str] = None,
) -> None:
    db.add(
        AuditLog(
            actor_id=actor_id,
            target_id=target_id,
            action=action,
            detail=detail,
            request_ip=request_ip,
        )
    )
