"""Login, two-factor verification and lockout."""

from datetime import timedelta

from core.clock import as_utc
from core.errors import ErrorKind
from core.config import settings
from core.tokens import token_issuer
from models.audit_log import AuditLog
from services.authentication import AuthenticationService

from helpers import PASSWORD, code_in, wrong_code


def _actions(db, identity):
    rows = db.query(AuditLog).filter(AuditLog.target_id == identity.id).order_by(AuditLog.id).all()
    return [row.action for row in rows]


# -- single-factor -------------------------------------------------------------


def test_login_without_two_factor_returns_token(auth_service, make_identity, clock):
    alice = make_identity("alice@bank.test", roles=("Employee",))

    result = auth_service.login("alice@bank.test", PASSWORD)

    assert result.ok
    outcome = result.value
    assert outcome.requires_two_factor is False
    assert outcome.expires_at == clock.now + timedelta(minutes=60)
    claims = token_issuer.decode(outcome.access_token)
    assert claims["sub"] == alice.id
    assert claims["roles"] == ["Employee"]


def test_login_matches_email_case_insensitively(auth_service, make_identity):
    make_identity("alice@bank.test")
    assert auth_service.login("  ALICE@Bank.Test ", PASSWORD).ok


def test_login_records_last_login(auth_service, make_identity, clock, db):
    alice = make_identity("alice@bank.test")
    auth_service.login("alice@bank.test", PASSWORD)
    db.refresh(alice)
    assert as_utc(alice.last_login_at) == clock.now
    assert "user_login" in _actions(db, alice)


def test_login_requires_both_fields(auth_service):
    assert auth_service.login("", PASSWORD).error.kind is ErrorKind.VALIDATION_ERROR
    assert auth_service.login("alice@bank.test", "").error.kind is ErrorKind.VALIDATION_ERROR


def test_unknown_email_and_wrong_password_fail_alike(auth_service, make_identity):
    make_identity("alice@bank.test")

    unknown = auth_service.login("nobody@bank.test", PASSWORD)
    wrong = auth_service.login("alice@bank.test", "Wrong-pass1")

    assert unknown.error.kind is ErrorKind.INVALID_CREDENTIALS
    assert wrong.error.kind is ErrorKind.INVALID_CREDENTIALS


def test_unconfirmed_email_cannot_sign_in(auth_service, make_identity):
    make_identity("carol@bank.test", email_confirmed=False)
    result = auth_service.login("carol@bank.test", PASSWORD)
    assert result.error.kind is ErrorKind.EMAIL_NOT_CONFIRMED


def test_inactive_identity_cannot_sign_in(auth_service, make_identity):
    make_identity("dave@bank.test", is_active=False)
    result = auth_service.login("dave@bank.test", PASSWORD)
    assert result.error.kind is ErrorKind.INVALID_CREDENTIALS


# -- lockout -------------------------------------------------------------------


def test_lockout_after_repeated_wrong_passwords(auth_service, make_identity, clock, db):
    alice = make_identity("alice@bank.test")

    for _ in range(settings.lockout_max_attempts):
        assert auth_service.login("alice@bank.test", "Wrong-pass1").error.kind is ErrorKind.INVALID_CREDENTIALS

    # The right password no longer helps while the lockout runs
    assert auth_service.login("alice@bank.test", PASSWORD).error.kind is ErrorKind.ACCOUNT_LOCKED
    db.refresh(alice)
    assert as_utc(alice.lockout_until) == clock.now + timedelta(minutes=settings.lockout_minutes)
    assert "account_locked" in _actions(db, alice)

    clock.advance(minutes=settings.lockout_minutes, seconds=1)
    assert auth_service.login("alice@bank.test", PASSWORD).ok


def test_successful_login_resets_failure_count(auth_service, make_identity, db):
    alice = make_identity("alice@bank.test")

    for _ in range(settings.lockout_max_attempts - 1):
        auth_service.login("alice@bank.test", "Wrong-pass1")
    assert auth_service.login("alice@bank.test", PASSWORD).ok

    db.refresh(alice)
    assert alice.failed_access_count == 0
    # A fresh streak is needed to lock the account again
    auth_service.login("alice@bank.test", "Wrong-pass1")
    assert auth_service.login("alice@bank.test", PASSWORD).ok


# -- two-factor ----------------------------------------------------------------


def test_login_with_two_factor_issues_challenge(auth_service, make_identity, outbox):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)

    result = auth_service.login("bob@bank.test", PASSWORD)

    assert result.ok
    assert result.value.requires_two_factor is True
    assert result.value.user_id == bob.id
    assert result.value.access_token is None
    assert len(outbox) == 1
    assert outbox[0].to_address == "bob@bank.test"


def test_verify_two_factor_accepts_code_once(auth_service, make_identity, outbox):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)
    auth_service.login("bob@bank.test", PASSWORD)
    code = code_in(outbox[-1].body)

    assert auth_service.verify_two_factor(bob.id, wrong_code(code)).error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE

    first = auth_service.verify_two_factor(bob.id, code)
    assert first.ok
    assert token_issuer.decode(first.value.access_token)["sub"] == bob.id

    second = auth_service.verify_two_factor(bob.id, code)
    assert second.error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE


def test_two_factor_code_expires(auth_service, make_identity, outbox, clock):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)
    auth_service.login("bob@bank.test", PASSWORD)
    code = code_in(outbox[-1].body)

    clock.advance(minutes=settings.two_factor_code_minutes, seconds=1)

    assert auth_service.verify_two_factor(bob.id, code).error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE


def test_second_login_retires_first_code(auth_service, make_identity, outbox):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)
    auth_service.login("bob@bank.test", PASSWORD)
    first = code_in(outbox[-1].body)
    auth_service.login("bob@bank.test", PASSWORD)
    second = code_in(outbox[-1].body)

    if first != second:
        assert not auth_service.verify_two_factor(bob.id, first).ok
    assert auth_service.verify_two_factor(bob.id, second).ok


def test_verify_two_factor_rejects_invalid_requests(auth_service, make_identity):
    alice = make_identity("alice@bank.test")

    assert auth_service.verify_two_factor(alice.id, "123456").error.kind is ErrorKind.INVALID_TWO_FACTOR_REQUEST
    assert auth_service.verify_two_factor("no-such-id", "123456").error.kind is ErrorKind.INVALID_TWO_FACTOR_REQUEST
    assert auth_service.verify_two_factor("", "123456").error.kind is ErrorKind.INVALID_TWO_FACTOR_REQUEST


def test_wrong_codes_count_toward_lockout(auth_service, make_identity, outbox):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)
    auth_service.login("bob@bank.test", PASSWORD)
    code = code_in(outbox[-1].body)

    for _ in range(settings.lockout_max_attempts):
        auth_service.verify_two_factor(bob.id, wrong_code(code))

    # Lockout retired the outstanding code and blocks a new login
    assert auth_service.verify_two_factor(bob.id, code).error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE
    assert auth_service.login("bob@bank.test", PASSWORD).error.kind is ErrorKind.ACCOUNT_LOCKED


def test_wrong_codes_can_be_excluded_from_lockout(db, outbox, clock, make_identity):
    cfg = settings.model_copy(update={"two_factor_failures_count_toward_lockout": False})
    service = AuthenticationService(db, outbox.append, cfg=cfg, clock=clock)
    bob = make_identity("bob@bank.test", two_factor_enabled=True)
    service.login("bob@bank.test", PASSWORD)
    code = code_in(outbox[-1].body)

    for _ in range(settings.lockout_max_attempts + 1):
        service.verify_two_factor(bob.id, wrong_code(code))

    assert service.verify_two_factor(bob.id, code).ok
    assert "login_failed" in _actions(db, bob)


def test_enable_and_disable_two_factor(auth_service, make_identity, db, outbox):
    from core.policy import Principal

    alice = make_identity("alice@bank.test")
    principal = Principal(id=alice.id, email=alice.email, roles=frozenset({"Employee"}))

    assert auth_service.enable_two_factor(principal, "Wrong-pass1").error.kind is ErrorKind.INVALID_CURRENT_PASSWORD
    assert auth_service.enable_two_factor(principal, PASSWORD).ok
    db.refresh(alice)
    assert alice.two_factor_enabled is True
    assert auth_service.login("alice@bank.test", PASSWORD).value.requires_two_factor is True

    code = code_in(outbox[-1].body)
    assert auth_service.disable_two_factor(principal, PASSWORD).ok
    db.refresh(alice)
    assert alice.two_factor_enabled is False
    # The pending challenge died with the setting
    assert not auth_service.verify_two_factor(alice.id, code).ok
    assert auth_service.login("alice@bank.test", PASSWORD).value.access_token
