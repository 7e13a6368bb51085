"""
Shared fixtures.

``core.config`` builds its settings singleton at import time, so the test
configuration has to be in the environment before any application module is
imported.  Every test gets a freshly created SQLite schema with the built-in
roles seeded.
"""

import os
import tempfile
from pathlib import Path

_test_tmp_dir = tempfile.mkdtemp(prefix="bankiam_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_test_tmp_dir, 'test.db').as_posix()}"
os.environ["SECRET_KEY"] = "test-signing-secret-not-for-production-0123456789"
os.environ["LOCKOUT_MAX_ATTEMPTS"] = "3"
os.environ["LOCKOUT_MINUTES"] = "15"
os.environ["TWO_FACTOR_CODE_MINUTES"] = "10"
os.environ["PASSWORD_RESET_CODE_MINUTES"] = "60"
os.environ["ACCESS_TOKEN_EXPIRE_MINUTES"] = "60"
# Keeps pbkdf2 fast enough for a few hundred hashes
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["SMTP_HOST"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.policy import Principal  # noqa: E402
from core.security import hash_password  # noqa: E402
from core.tokens import token_issuer  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
import models.audit_log  # noqa: F401, E402
import models.one_time_code  # noqa: F401, E402
from models.role import BUILTIN_ROLES  # noqa: E402
from services.authentication import AuthenticationService  # noqa: E402
from services.employees import EmployeeService  # noqa: E402
from services.notifications import get_notifier  # noqa: E402
from services.passwords import PasswordService  # noqa: E402
from store.identity_store import IdentityStore  # noqa: E402

from helpers import PASSWORD, FakeClock, RecordingNotifier  # noqa: E402


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        IdentityStore(session).ensure_roles(BUILTIN_ROLES)
    finally:
        session.close()
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def outbox():
    return []


@pytest.fixture
def make_identity(db):
    store = IdentityStore(db)

    def _make(
        email,
        password=PASSWORD,
        full_name=None,
        roles=("Employee",),
        email_confirmed=True,
        two_factor_enabled=False,
        is_active=True,
    ):
        resolved, missing = store.roles_named(roles)
        assert not missing, missing
        identity = store.create(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name or email.split("@")[0].title(),
            roles=resolved,
            email_confirmed=email_confirmed,
        )
        if two_factor_enabled or not is_active:
            identity.two_factor_enabled = two_factor_enabled
            identity.is_active = is_active
            store.update(identity)
        return identity

    return _make


@pytest.fixture
def auth_service(db, outbox, clock):
    return AuthenticationService(db, outbox.append, clock=clock)


@pytest.fixture
def password_service(db, outbox, clock):
    return PasswordService(db, outbox.append, clock=clock)


@pytest.fixture
def employee_service(db, outbox, clock):
    return EmployeeService(db, outbox.append, clock=clock)


@pytest.fixture
def admin(make_identity):
    return make_identity("admin@bank.test", full_name="Ada Admin", roles=("Admin",))


@pytest.fixture
def admin_principal(admin):
    return Principal(id=admin.id, email=admin.email, roles=frozenset(admin.role_names))


# -- HTTP ----------------------------------------------------------------------


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(notifier):
    from main import app

    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def bearer():
    def _headers(identity):
        return {"Authorization": f"Bearer {token_issuer.issue(identity).access_token}"}

    return _headers
