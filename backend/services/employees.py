# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Employee lifecycle management for administrators.

Every public method takes the calling :class:`Principal` and consults the
policy evaluator before touching the store, so the service stays safe even
when used outside the HTTP routers.  Identities are never deleted:
deactivation is the terminal state and also plants a permanent lockout.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.clock import PERMANENT_LOCKOUT, utcnow
from core.config import settings
from core.errors import ErrorKind, Result
from core.logger import logger
from core.policy import Principal, allow
from core.security import hash_password, validate_new_password
from models.identity import Identity
from services import audit
from services.codes import OneTimeCodeIssuer
from services.notifications import Sender
from services.passwords import PasswordService
from store.identity_store import IdentityStore

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class EmployeePage:
    items: List[Identity]
    total_count: int
    page_number: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.total_count else 0

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1


class EmployeeService:
    def __init__(
        self,
        db: Session,
        send: Sender,
        *,
        codes: Optional[OneTimeCodeIssuer] = None,
        cfg=settings,
        clock: Callable[[], datetime] = utcnow,
        request_ip: Optional[str] = None,
    ):
        self.db = db
        self.store = IdentityStore(db)
        self.codes = codes or OneTimeCodeIssuer(db, clock=clock)
        self.passwords = PasswordService(
            db, send, codes=self.codes, cfg=cfg, clock=clock, request_ip=request_ip
        )
        self.cfg = cfg
        self.request_ip = request_ip

    # -- read ----------------------------------------------------------------

    def list_employees(
        self,
        actor: Principal,
        page_number: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> Result[EmployeePage]:
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        if page_number < 1:
            return Result.fail(ErrorKind.VALIDATION_ERROR, "pageNumber must be >= 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            return Result.fail(ErrorKind.VALIDATION_ERROR, f"pageSize must be between 1 and {MAX_PAGE_SIZE}")

        items, total = self.store.search(page_number, page_size, search, include_inactive)
        return Result.success(EmployeePage(items, total, page_number, page_size))

    def get_details(self, actor: Principal, employee_id: str) -> Result[Identity]:
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        identity = self.store.find_by_id(employee_id)
        if identity is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Employee not found")
        return Result.success(identity)

    def list_roles(self, actor: Principal) -> Result[List[str]]:
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        return Result.success([role.name for role in self.store.list_roles()])

    # -- write ---------------------------------------------------------------

    def create(
        self,
        actor: Principal,
        email: str,
        full_name: str,
        password: str,
        roles: List[str],
        phone_number: Optional[str] = None,
    ) -> Result[Identity]:
        """
        Create an employee with an unconfirmed email and mail them the
        confirmation link.
        """
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)

        email = (email or "").strip()
        if "@" not in email or email.startswith("@") or email.endswith("@"):
            return Result.fail(ErrorKind.VALIDATION_ERROR, "A valid email address is required")
        if not full_name or not full_name.strip():
            return Result.fail(ErrorKind.VALIDATION_ERROR, "fullName is required")
        err = validate_new_password(password or "")
        if err:
            return Result.fail(ErrorKind.VALIDATION_ERROR, err)
        resolved, missing = self.store.roles_named(roles)
        if missing:
            return Result.fail(ErrorKind.VALIDATION_ERROR, f"Unknown role(s): {', '.join(missing)}")

        # Uniqueness check
        if self.store.find_by_email(email) is not None:
            return Result.fail(ErrorKind.CONFLICT, "Email already exists")
        try:
            identity = self.store.create(
                email=email,
                password_hash=hash_password(password),
                full_name=full_name,
                phone_number=_blank_to_none(phone_number),
                roles=resolved,
            )
        except IntegrityError:
            # Lost a race with a concurrent create of the same address
            self.db.rollback()
            return Result.fail(ErrorKind.CONFLICT, "Email already exists")

        self._audit(actor, "create_employee", identity, "roles=" + ",".join(identity.role_names))
        self.db.commit()
        logger.info("employee created | admin_id=%s user_id=%s", actor.id, identity.id)
        self.passwords.send_confirmation(identity)
        return Result.success(identity)

    def update(
        self,
        actor: Principal,
        employee_id: str,
        roles: List[str],
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Result[None]:
        """
        Partial profile update (only provided fields change) and a full
        replacement of the role set: *roles* is authoritative.
        """
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        identity = self.store.find_by_id(employee_id)
        if identity is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Employee not found")

        if full_name is not None and not full_name.strip():
            return Result.fail(ErrorKind.VALIDATION_ERROR, "fullName cannot be blank")
        resolved, missing = self.store.roles_named(roles)
        if missing:
            return Result.fail(ErrorKind.VALIDATION_ERROR, f"Unknown role(s): {', '.join(missing)}")
        # Prevents an administrator from locking themselves out of /admin
        if employee_id == actor.id and not allow([r.name for r in resolved], self.cfg.admin_roles):
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Cannot remove your own administrative role")

        if full_name is not None:
            identity.full_name = full_name.strip()
        if phone_number is not None:
            identity.phone_number = _blank_to_none(phone_number)

        current = {role.id: role for role in identity.roles}
        wanted = {role.id: role for role in resolved}
        granted = [role for rid, role in wanted.items() if rid not in current]
        revoked = [role for rid, role in current.items() if rid not in wanted]
        self.store.add_roles(identity, granted)
        self.store.remove_roles(identity, revoked)

        detail = "granted=%s revoked=%s" % (
            ",".join(r.name for r in granted) or "-",
            ",".join(r.name for r in revoked) or "-",
        )
        self._audit(actor, "update_employee", identity, detail)
        self.store.update(identity)
        logger.info("employee updated | admin_id=%s user_id=%s %s", actor.id, identity.id, detail)
        return Result.success()

    def activate(self, actor: Principal, employee_id: str) -> Result[None]:
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        identity = self.store.find_by_id(employee_id)
        if identity is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Employee not found")
        if identity.is_active:
            return Result.success()

        identity.is_active = True
        identity.lockout_until = None
        identity.failed_access_count = 0
        self._audit(actor, "activate_employee", identity)
        self.store.update(identity)
        logger.info("employee activated | admin_id=%s user_id=%s", actor.id, identity.id)
        return Result.success()

    def deactivate(self, actor: Principal, employee_id: str) -> Result[None]:
        if not self._allowed(actor):
            return Result.fail(ErrorKind.FORBIDDEN)
        if employee_id == actor.id:
            return Result.fail(ErrorKind.VALIDATION_ERROR, "Cannot deactivate yourself")
        identity = self.store.find_by_id(employee_id)
        if identity is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Employee not found")
        if not identity.is_active:
            return Result.success()

        identity.is_active = False
        identity.lockout_until = PERMANENT_LOCKOUT
        identity.failed_access_count = 0
        # Pending 2FA, reset and confirmation codes die with the account
        self.codes.revoke(identity)
        self._audit(actor, "deactivate_employee", identity)
        self.store.update(identity)
        logger.info("employee deactivated | admin_id=%s user_id=%s", actor.id, identity.id)
        return Result.success()

    # -- internals -----------------------------------------------------------

    def _allowed(self, actor: Principal) -> bool:
        if allow(actor.roles, self.cfg.admin_roles):
            return True
        logger.warning("admin operation forbidden | caller_id=%s", actor.id)
        return False

    def _audit(self, actor: Principal, action: str, identity: Identity, detail: Optional[str] = None) -> None:
        audit.record(
            self.db,
            action,
            actor_id=actor.id,
            target_id=identity.id,
            detail=detail,
            request_ip=self.request_ip,
        )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
