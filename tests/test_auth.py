"""Tests for user registration and sign-in."""

from __future__ import annotations

import pytest

from atm_ledger import auth
from atm_ledger.constants import Role
from atm_ledger.errors import ErrorKind, Failure


def test_hash_pin_is_salted():
    first = auth.hash_pin("1234")
    second = auth.hash_pin("1234")

    assert first != second
    assert auth.pin_context.verify("1234", first)
    assert not auth.pin_context.verify("4321", first)


def test_register_user_stores_hash_not_pin(context):
    user = auth.register_user(context.users, user_id="U-NEW", name="nora", pin="5678", role=Role.CUSTOMER)

    stored = context.users.find_by_name("nora")
    assert stored == user
    assert "5678" not in stored.pin_hash
    assert stored.pin_hash.startswith("$pbkdf2-sha256$")


def test_register_user_rejects_taken_name(context):
    with pytest.raises(ValueError):
        auth.register_user(context.users, user_id="U-X", name="alice", pin="1111", role=Role.CUSTOMER)


@pytest.mark.parametrize("pin", ["123", "1234567", "12a4", ""])
def test_register_user_rejects_malformed_pin(context, pin):
    with pytest.raises(ValueError):
        auth.register_user(context.users, user_id="U-X", name="xavier", pin=pin, role=Role.CUSTOMER)


def test_authenticate_returns_user(context):
    user = auth.authenticate(context.users, "alice", "1234")
    assert user.user_id == "U-ALICE"
    assert user.role is Role.CUSTOMER


def test_authenticate_same_message_for_unknown_name_and_wrong_pin(context):
    wrong_pin = auth.authenticate(context.users, "alice", "0000")
    unknown = auth.authenticate(context.users, "mallory", "1234")

    for outcome in (wrong_pin, unknown):
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.UNAUTHORIZED
    assert wrong_pin.message == unknown.message == auth.INVALID_CREDENTIALS


def test_require_role(context):
    technician = auth.authenticate(context.users, "tina", "9999")

    assert auth.require_role(technician, Role.TECHNICIAN) is None
    denied = auth.require_role(technician, Role.CUSTOMER)
    assert denied.kind is ErrorKind.UNAUTHORIZED
