# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Identity store – the only component that reads or writes ``identities`` and
their role membership.

Concurrency
-----------
Every request works through its own session.  Counter updates on a failed
login are issued as single ``UPDATE … SET failed_access_count =
failed_access_count + 1`` statements so concurrent failures are never lost.
The follow-up "trip the lockout" update is conditional on the counter, so two
racing requests may both trip it; that only re-stamps the same window.
Profile and role updates are last-write-wins.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models.identity import Identity, normalize_email
from models.role import Role


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class IdentityStore:
    def __init__(self, session: Session):
        self.session = session

    # -- lookups -------------------------------------------------------------

    def find_by_email(self, email: str) -> Optional[Identity]:
        """Case-insensitive lookup."""
        return (
            self.session.query(Identity)
            .filter(Identity.normalized_email == normalize_email(email))
            .first()
        )

    def find_by_id(self, identity_id: str) -> Optional[Identity]:
        return self.session.get(Identity, identity_id)

    def search(
        self,
        page_number: int,
        page_size: int,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> tuple[list[Identity], int]:
        """
        Return ``(page_items, total_count)`` ordered by email.  *search* matches
        email or full name, case-insensitively.
        """
        q = self.session.query(Identity)
        if not include_inactive:
            q = q.filter(Identity.is_active.is_(True))
        if search and search.strip():
            pattern = _like_pattern(search.strip().lower())
            q = q.filter(
                or_(
                    Identity.normalized_email.like(pattern, escape="\\"),
                    func.lower(Identity.full_name).like(pattern, escape="\\"),
                )
            )

        total = q.count()
        items = (
            q.order_by(Identity.normalized_email, Identity.id)
            .offset((page_number - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    # -- writes --------------------------------------------------------------

    def create(
        self,
        email: str,
        password_hash: str,
        full_name: str,
        phone_number: Optional[str] = None,
        roles: Sequence[Role] = (),
        email_confirmed: bool = False,
    ) -> Identity:
        """
        Insert a new identity and commit.  Raises ``IntegrityError`` when the
        normalized email already exists; callers check first and treat the
        exception as a lost race.
        """
        identity = Identity(
            email=email.strip(),
            normalized_email=normalize_email(email),
            password_hash=password_hash,
            full_name=full_name.strip(),
            phone_number=phone_number,
            email_confirmed=email_confirmed,
            is_active=True,
            two_factor_enabled=False,
            failed_access_count=0,
        )
        identity.roles = list(roles)
        self.session.add(identity)
        self.session.commit()
        self.session.refresh(identity)
        return identity

    def update(self, identity: Identity) -> Identity:
        """Persist pending changes on *identity* (and anything else staged)."""
        self.session.add(identity)
        self.session.commit()
        self.session.refresh(identity)
        return identity

    def register_failed_attempt(
        self, identity_id: str, max_attempts: int, lockout_until: datetime
    ) -> bool:
        """
        Atomically bump the failure counter.  When it reaches *max_attempts*
        the identity is locked until *lockout_until* and the counter restarts.
        Returns True if this call tripped the lockout.
        """
        self.session.query(Identity).filter(Identity.id == identity_id).update(
            {Identity.failed_access_count: Identity.failed_access_count + 1},
            synchronize_session=False,
        )
        tripped = (
            self.session.query(Identity)
            .filter(
                Identity.id == identity_id,
                Identity.failed_access_count >= max_attempts,
            )
            .update(
                {Identity.lockout_until: lockout_until, Identity.failed_access_count: 0},
                synchronize_session=False,
            )
        )
        self.session.commit()
        return tripped > 0

    # -- roles ---------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        return self.session.query(Role).order_by(Role.name).all()

    def roles_named(self, names: Iterable[str]) -> tuple[list[Role], list[str]]:
        """
        Resolve role names case-insensitively.  Returns ``(roles, missing)``
        where *missing* keeps the caller's spelling.
        """
        wanted = {}
        for name in names:
            key = name.strip().lower()
            if key:
                wanted.setdefault(key, name.strip())
        if not wanted:
            return [], []
        found = (
            self.session.query(Role)
            .filter(func.lower(Role.name).in_(list(wanted)))
            .order_by(Role.name)
            .all()
        )
        found_keys = {role.name.lower() for role in found}
        missing = [spelling for key, spelling in wanted.items() if key not in found_keys]
        return found, missing

    def ensure_roles(self, names: Iterable[str]) -> list[Role]:
        """Create any of *names* that do not exist yet (bootstrap helper)."""
        found, missing = self.roles_named(names)
        for name in missing:
            role = Role(name=name)
            self.session.add(role)
            found.append(role)
        if missing:
            self.session.commit()
        return found

    def add_roles(self, identity: Identity, roles: Iterable[Role]) -> None:
        """Stage role grants; persisted by the next :meth:`update`."""
        current = {role.id for role in identity.roles}
        for role in roles:
            if role.id not in current:
                identity.roles.append(role)
                current.add(role.id)

    def remove_roles(self, identity: Identity, roles: Iterable[Role]) -> None:
        """Stage role revocations; persisted by the next :meth:`update`."""
        drop = {role.id for role in roles}
        identity.roles = [role for role in identity.roles if role.id not in drop]
