# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first administrator.

Run once after the initial migration:
    python bin/seed_admin.py

The script reads FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD from etc/app.conf
(or the environment).  After the row is inserted those values are no longer
used by the application.

The administrator is created with a confirmed email and the ``Admin`` role,
so they can sign in immediately and create everyone else.
"""

import sys
import os

# ---------------------------------------------------------------------------
# Path setup so backend modules are importable
# ---------------------------------------------------------------------------
# bin/seed_admin.py  →  ../  →  project root
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from core.config import settings                  # noqa: E402
from core.logger import logger                    # noqa: E402
from core.security import hash_password, validate_new_password  # noqa: E402
from database import SessionLocal                 # noqa: E402
from models.role import BUILTIN_ROLES             # noqa: E402
from store.identity_store import IdentityStore    # noqa: E402


def seed() -> int:
    if not settings.first_admin_email or not settings.first_admin_password:
        logger.warning("[seed_admin] FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set – nothing to do.")
        return 0

    err = validate_new_password(settings.first_admin_password)
    if err:
        logger.error("[seed_admin] FIRST_ADMIN_PASSWORD rejected: %s", err)
        return 1

    db = SessionLocal()
    try:
        store = IdentityStore(db)
        roles = store.ensure_roles(BUILTIN_ROLES)
        admin_roles, _ = store.roles_named(settings.admin_roles)
        if not admin_roles:
            admin_roles = store.ensure_roles(settings.admin_roles)

        if store.find_by_email(settings.first_admin_email):
            logger.info("[seed_admin] Admin '%s' already exists – skipping.", settings.first_admin_email)
            return 0

        admin = store.create(
            email=settings.first_admin_email,
            password_hash=hash_password(settings.first_admin_password),
            full_name="Administrator",
            roles=admin_roles,
            email_confirmed=True,
        )
        logger.info(
            "[seed_admin] Admin '%s' created (id=%s, roles=%s); %d roles present.",
            admin.email,
            admin.id,
            ",".join(admin.role_names),
            len(roles),
        )
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(seed())
