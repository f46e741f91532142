# tests/test_auth.py

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from ddlog.database import as_utc
from ddlog.errors import (
    AuthError,
    ConflictError,
    InvalidCredentialError,
    LockedError,
    NotFoundError,
    ValidationError,
)


@pytest.mark.parametrize("pin", ["12345", "1234567", "12a456", "", " 12345", "123456\n", "１２３４５６", None, 123456])
def test_setup_rejects_malformed_pin(auth, pin) -> None:
    with pytest.raises(ValidationError):
        auth.setup(pin)
    assert auth.get_credential() is None


def test_setup_stores_hash_not_pin(auth) -> None:
    credential = auth.setup("123456")

    assert credential.id
    assert credential.pin_hash != "123456"
    assert credential.failed_attempts == 0
    assert credential.locked_until is None


def test_second_setup_conflicts(auth) -> None:
    auth.setup("123456")
    with pytest.raises(ConflictError):
        auth.setup("654321")


def test_status_reflects_setup(auth) -> None:
    assert auth.status() == {"has_user": False, "requires_setup": True}
    auth.setup("000000")
    assert auth.status() == {"has_user": True, "requires_setup": False}


def test_login_without_credential(auth) -> None:
    with pytest.raises(NotFoundError):
        auth.login("123456")


def test_login_malformed_pin_does_not_count_as_failure(auth, owner_id) -> None:
    with pytest.raises(ValidationError):
        auth.login("abc")
    assert auth.get_credential().failed_attempts == 0


def test_setup_then_login(auth, owner_id, settings) -> None:
    result = auth.login("123456")

    assert result["user"].id == owner_id
    payload = jwt.decode(result["token"], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    assert payload["sub"] == owner_id


def test_wrong_pin_reports_attempts_remaining(auth, owner_id) -> None:
    with pytest.raises(InvalidCredentialError) as exc_info:
        auth.login("000000")
    assert exc_info.value.attempts_remaining == 4
    assert auth.get_credential().failed_attempts == 1


def test_four_failures_then_success_resets_counter(auth, owner_id) -> None:
    for expected_remaining in (4, 3, 2, 1):
        with pytest.raises(InvalidCredentialError) as exc_info:
            auth.login("999999")
        assert exc_info.value.attempts_remaining == expected_remaining

    auth.login("123456")
    credential = auth.get_credential()
    assert credential.failed_attempts == 0
    assert credential.locked_until is None


def test_fifth_failure_locks(auth, owner_id, clock, settings) -> None:
    for _ in range(4):
        with pytest.raises(InvalidCredentialError):
            auth.login("999999")

    with pytest.raises(LockedError) as exc_info:
        auth.login("999999")
    assert exc_info.value.remaining_seconds == settings.lockout_seconds

    credential = auth.get_credential()
    assert credential.failed_attempts == 5
    assert as_utc(credential.locked_until) == clock.now + timedelta(seconds=30)


def _lock(auth) -> None:
    for _ in range(4):
        with pytest.raises(InvalidCredentialError):
            auth.login("999999")
    with pytest.raises(LockedError):
        auth.login("999999")


def test_locked_rejects_correct_pin_before_comparing(auth, owner_id, clock) -> None:
    _lock(auth)
    clock.advance(seconds=10)

    with pytest.raises(LockedError) as exc_info:
        auth.login("123456")
    assert exc_info.value.remaining_seconds == 20
    # the rejected attempt does not touch the counter
    assert auth.get_credential().failed_attempts == 5


def test_remaining_seconds_rounds_up(auth, owner_id, clock) -> None:
    _lock(auth)
    clock.advance(seconds=29, milliseconds=100)

    with pytest.raises(LockedError) as exc_info:
        auth.login("123456")
    assert exc_info.value.remaining_seconds == 1


def test_expired_lockout_resets_then_accepts_correct_pin(auth, owner_id, clock) -> None:
    _lock(auth)
    clock.advance(seconds=30)

    result = auth.login("123456")
    assert result["user"].id == owner_id
    assert auth.get_credential().failed_attempts == 0


def test_expired_lockout_resets_then_counts_wrong_pin_from_zero(auth, owner_id, clock) -> None:
    _lock(auth)
    clock.advance(minutes=5)

    with pytest.raises(InvalidCredentialError) as exc_info:
        auth.login("999999")
    assert exc_info.value.attempts_remaining == 4

    credential = auth.get_credential()
    assert credential.failed_attempts == 1
    assert credential.locked_until is None


def test_verify_token_roundtrip(auth, owner_id) -> None:
    token = auth.login("123456")["token"]
    assert auth.verify_token(token).id == owner_id


def test_verify_token_rejects_foreign_signature(auth, owner_id, settings) -> None:
    forged = jwt.encode({"sub": owner_id}, "another-secret", algorithm=settings.jwt_algorithm)
    with pytest.raises(AuthError) as exc_info:
        auth.verify_token(forged)
    assert exc_info.value.status_code == 403


def test_verify_token_rejects_unknown_owner(auth, owner_id) -> None:
    token = auth.create_access_token("does-not-exist")
    with pytest.raises(AuthError):
        auth.verify_token(token)


def test_login_rejects_pin_with_trailing_newline(auth, owner_id) -> None:
    with pytest.raises(ValidationError):
        auth.login("123456\n")
    assert auth.get_credential().failed_attempts == 0


def test_verify_token_rejects_expired_token(auth, owner_id) -> None:
    token = auth.create_access_token(owner_id, expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthError) as exc_info:
        auth.verify_token(token)
    assert exc_info.value.status_code == 403
