"""Forgot / reset / change password and email confirmation."""

from datetime import timedelta

import pytest

from core.errors import ErrorKind
from core.policy import Principal
from core.security import hash_password
from models.one_time_code import CodePurpose
from services.codes import OneTimeCodeIssuer
from services.passwords import run_detached

from helpers import PASSWORD, RecordingNotifier, link_params

NEW_PASSWORD = "N3w-Password"


def _principal(identity):
    return Principal(id=identity.id, email=identity.email, roles=frozenset(identity.role_names))


# -- forgot / reset ------------------------------------------------------------


def test_forgot_password_answers_identically(password_service, make_identity, outbox):
    make_identity("alice@bank.test")

    known = password_service.forgot_password("alice@bank.test")
    unknown = password_service.forgot_password("nobody@bank.test")

    assert known == unknown
    assert known.value is True
    assert [m.to_address for m in outbox] == ["alice@bank.test"]


def test_forgot_password_skips_ineligible_identities(password_service, make_identity, outbox):
    make_identity("carol@bank.test", email_confirmed=False)
    make_identity("dave@bank.test", is_active=False)

    assert password_service.forgot_password("carol@bank.test").value is True
    assert password_service.forgot_password("dave@bank.test").value is True
    assert outbox == []


def test_reset_password_replaces_password(password_service, auth_service, make_identity, outbox):
    make_identity("alice@bank.test")
    password_service.forgot_password("alice@bank.test")
    params = link_params(outbox[-1].body)
    assert params["email"] == "alice@bank.test"

    assert password_service.reset_password("alice@bank.test", params["token"], NEW_PASSWORD).ok

    assert auth_service.login("alice@bank.test", NEW_PASSWORD).ok
    assert auth_service.login("alice@bank.test", PASSWORD).error.kind is ErrorKind.INVALID_CREDENTIALS


def test_reset_link_is_single_use(password_service, make_identity, outbox):
    make_identity("alice@bank.test")
    password_service.forgot_password("alice@bank.test")
    token = link_params(outbox[-1].body)["token"]

    assert password_service.reset_password("alice@bank.test", token, NEW_PASSWORD).ok
    again = password_service.reset_password("alice@bank.test", token, "An0ther-Password")
    assert again.error.kind is ErrorKind.INVALID_OR_EXPIRED_RESET_LINK


def test_reset_link_expires(password_service, make_identity, outbox, clock):
    make_identity("alice@bank.test")
    password_service.forgot_password("alice@bank.test")
    token = link_params(outbox[-1].body)["token"]

    clock.advance(minutes=60, seconds=1)

    result = password_service.reset_password("alice@bank.test", token, NEW_PASSWORD)
    assert result.error.kind is ErrorKind.INVALID_OR_EXPIRED_RESET_LINK


def test_reset_rejects_bad_token_and_unknown_email(password_service, make_identity):
    make_identity("alice@bank.test")

    bad = password_service.reset_password("alice@bank.test", "not-a-token", NEW_PASSWORD)
    unknown = password_service.reset_password("nobody@bank.test", "not-a-token", NEW_PASSWORD)

    assert bad.error.kind is ErrorKind.INVALID_OR_EXPIRED_RESET_LINK
    assert unknown.error.kind is ErrorKind.INVALID_OR_EXPIRED_RESET_LINK


def test_weak_password_does_not_burn_reset_link(password_service, make_identity, outbox):
    make_identity("alice@bank.test")
    password_service.forgot_password("alice@bank.test")
    token = link_params(outbox[-1].body)["token"]

    weak = password_service.reset_password("alice@bank.test", token, "short")
    assert weak.error.kind is ErrorKind.VALIDATION_ERROR
    assert password_service.reset_password("alice@bank.test", token, NEW_PASSWORD).ok


def test_weak_password_answer_does_not_reveal_account(password_service, make_identity):
    make_identity("alice@bank.test")

    known = password_service.reset_password("alice@bank.test", "not-a-token", "weak")
    unknown = password_service.reset_password("nobody@bank.test", "not-a-token", "weak")

    assert known == unknown
    assert known.error.kind is ErrorKind.VALIDATION_ERROR


def test_run_detached_issues_and_mails_in_own_session(make_identity):
    make_identity("alice@bank.test")
    carol = make_identity("carol@bank.test", email_confirmed=False)
    notifier = RecordingNotifier()

    run_detached("forgot_password", "alice@bank.test", notifier, "10.0.0.1")
    run_detached("forgot_password", "nobody@bank.test", notifier)
    run_detached("resend_confirmation", "carol@bank.test", notifier)

    assert [sent[0] for sent in notifier.sent] == ["alice@bank.test", "carol@bank.test"]
    assert link_params(notifier.sent[1][2])["userId"] == carol.id


def test_run_detached_swallows_delivery_failure(make_identity):
    make_identity("alice@bank.test")
    run_detached("forgot_password", "alice@bank.test", RecordingNotifier(fail=True))


def test_run_detached_only_runs_anonymous_operations():
    with pytest.raises(ValueError):
        run_detached("reset_password", "alice@bank.test", RecordingNotifier())


def test_reset_code_cannot_confirm_email(db, clock, password_service, make_identity):
    carol = make_identity("carol@bank.test", email_confirmed=False)
    token = OneTimeCodeIssuer(db, clock=clock).issue(carol, CodePurpose.PASSWORD_RESET)

    result = password_service.confirm_email(carol.id, token)
    assert result.error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE


def test_reset_lifts_temporary_lockout(password_service, auth_service, make_identity, outbox):
    make_identity("alice@bank.test")
    for _ in range(3):
        auth_service.login("alice@bank.test", "Wrong-pass1")
    assert auth_service.login("alice@bank.test", PASSWORD).error.kind is ErrorKind.ACCOUNT_LOCKED

    password_service.forgot_password("alice@bank.test")
    token = link_params(outbox[-1].body)["token"]
    assert password_service.reset_password("alice@bank.test", token, NEW_PASSWORD).ok

    assert auth_service.login("alice@bank.test", NEW_PASSWORD).ok


# -- change --------------------------------------------------------------------


def test_change_password_requires_current_password(password_service, make_identity):
    alice = make_identity("alice@bank.test")
    result = password_service.change_password(_principal(alice), "Wrong-pass1", NEW_PASSWORD)
    assert result.error.kind is ErrorKind.INVALID_CURRENT_PASSWORD


def test_change_password_enforces_policy(password_service, make_identity):
    alice = make_identity("alice@bank.test")
    for weak in ("short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"):
        result = password_service.change_password(_principal(alice), PASSWORD, weak)
        assert result.error.kind is ErrorKind.VALIDATION_ERROR, weak


def test_change_password_skips_second_factor(password_service, auth_service, make_identity, outbox, db):
    bob = make_identity("bob@bank.test", two_factor_enabled=True)

    assert password_service.change_password(_principal(bob), PASSWORD, NEW_PASSWORD).ok
    assert outbox == []

    db.refresh(bob)
    assert bob.two_factor_enabled is True
    assert auth_service.login("bob@bank.test", NEW_PASSWORD).value.requires_two_factor is True


def test_change_password_rejects_deactivated_caller(password_service, make_identity):
    dave = make_identity("dave@bank.test", is_active=False)
    result = password_service.change_password(_principal(dave), PASSWORD, NEW_PASSWORD)
    assert result.error.kind is ErrorKind.UNAUTHENTICATED


# -- email confirmation --------------------------------------------------------


def test_confirm_email_with_resent_link(password_service, auth_service, make_identity, outbox, db):
    carol = make_identity("carol@bank.test", email_confirmed=False)

    assert password_service.resend_confirmation("carol@bank.test").value is True
    params = link_params(outbox[-1].body)
    assert params["userId"] == carol.id

    assert password_service.confirm_email(carol.id, params["token"]).ok
    db.refresh(carol)
    assert carol.email_confirmed is True
    assert auth_service.login("carol@bank.test", PASSWORD).ok

    again = password_service.confirm_email(carol.id, params["token"])
    assert again.error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE


def test_confirm_email_rejects_unknown_identity(password_service):
    result = password_service.confirm_email("no-such-id", "whatever")
    assert result.error.kind is ErrorKind.INVALID_OR_EXPIRED_CODE


def test_resend_confirmation_is_silent_for_ineligible(password_service, make_identity, outbox):
    make_identity("alice@bank.test")

    assert password_service.resend_confirmation("alice@bank.test").value is True
    assert password_service.resend_confirmation("nobody@bank.test").value is True
    assert outbox == []


def test_confirmation_link_outlives_reset_link(password_service, make_identity, outbox, clock):
    carol = make_identity("carol@bank.test", email_confirmed=False)
    password_service.resend_confirmation("carol@bank.test")
    token = link_params(outbox[-1].body)["token"]

    clock.advance(hours=23)
    assert password_service.confirm_email(carol.id, token).ok


def test_hash_password_is_salted():
    assert hash_password(PASSWORD) != hash_password(PASSWORD)
