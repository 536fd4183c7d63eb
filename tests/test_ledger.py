"""Unit tests for the account ledger with a mocked account store."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from atm_ledger import data_manager
from atm_ledger.constants import AccountKind
from atm_ledger.errors import ErrorKind, Failure
from atm_ledger.ledger import Ledger, to_amount
from atm_ledger.stores import AccountStore


def _account(account_id: str = "ACC-1", balance: str = "100.00") -> data_manager.AccountRow:
    return data_manager.AccountRow(
        account_id=account_id,
        owner_id="U-1",
        account_kind=AccountKind.CHECKING,
        balance=Decimal(balance),
    )


@pytest.fixture
def store() -> Mock:
    store = Mock(spec=AccountStore)
    store.find_by_id.side_effect = lambda account_id: _account() if account_id == "ACC-1" else None
    return store


@pytest.fixture
def ledger(store) -> Ledger:
    return Ledger(store)


# ---------------------------------------------------------------------------
# Amount parsing
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [("50", Decimal("50.00")), ("12.5", Decimal("12.50")), (7, Decimal("7.00")), (Decimal("0.01"), Decimal("0.01"))],
)
def test_to_amount_normalises_to_cents(raw, expected):
    assert to_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", "1.234", ""])
def test_to_amount_rejects_bad_input(raw):
    result = to_amount(raw)
    assert isinstance(result, Failure)
    assert result.kind is ErrorKind.INVALID_AMOUNT


def test_to_amount_does_not_check_sign():
    assert to_amount("-5") == Decimal("-5.00")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def test_get_account_returns_row(ledger):
    assert ledger.get_account("ACC-1") == _account()


def test_get_account_unknown_is_not_found(ledger):
    result = ledger.get_account("ACC-404")
    assert isinstance(result, Failure)
    assert result.kind is ErrorKind.NOT_FOUND


def test_balance_of(ledger, store):
    assert ledger.balance_of("ACC-1") == Decimal("100.00")
    store.update.assert_not_called()


def test_accounts_for_owner_delegates(ledger, store):
    store.find_by_owner.return_value = [_account()]
    assert ledger.accounts_for_owner("U-1") == [_account()]
    store.find_by_owner.assert_called_once_with("U-1")


# ---------------------------------------------------------------------------
# Debit / credit
# ---------------------------------------------------------------------------


def test_debit_persists_new_balance(ledger, store):
    updated = ledger.debit("ACC-1", Decimal("40.00"))
    assert updated.balance == Decimal("60.00")
    store.update.assert_called_once_with(updated)


def test_debit_entire_balance_is_allowed(ledger):
    assert ledger.debit("ACC-1", Decimal("100.00")).balance == Decimal("0.00")


@pytest.mark.parametrize("amount", ["100.01", "0", "-5"])
def test_debit_refuses_overdraft_and_non_positive(ledger, store, amount):
    result = ledger.debit("ACC-1", Decimal(amount))
    assert isinstance(result, Failure)
    assert result.kind is ErrorKind.INSUFFICIENT_FUNDS
    store.update.assert_not_called()


def test_debit_unknown_account(ledger):
    assert ledger.debit("ACC-404", Decimal("1")).kind is ErrorKind.NOT_FOUND


def test_credit_persists_new_balance(ledger, store):
    updated = ledger.credit("ACC-1", Decimal("0.55"))
    assert updated.balance == Decimal("100.55")
    store.update.assert_called_once_with(updated)


@pytest.mark.parametrize("amount", ["0", "-1"])
def test_credit_refuses_non_positive(ledger, store, amount):
    result = ledger.credit("ACC-1", Decimal(amount))
    assert result.kind is ErrorKind.INVALID_AMOUNT
    store.update.assert_not_called()


def test_credit_unknown_account(ledger):
    assert ledger.credit("ACC-404", Decimal("1")).kind is ErrorKind.NOT_FOUND


@pytest.mark.parametrize("amount", [Decimal("0.015"), Decimal("10.001"), Decimal("NaN"), Decimal("Infinity")])
def test_debit_and_credit_refuse_fractions_of_a_cent(ledger, store, amount):
    for operation in (ledger.debit, ledger.credit):
        result = operation("ACC-1", amount)
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.INVALID_AMOUNT
    store.update.assert_not_called()


def test_credit_applies_exact_cents(ledger):
    assert ledger.credit("ACC-1", Decimal("0.01")).balance == Decimal("100.01")


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


def test_open_account_adds_row(ledger, store):
    account = ledger.open_account("ACC-9", "U-9", AccountKind.SAVINGS, Decimal("25"))
    assert account.balance == Decimal("25.00")
    store.add.assert_called_once_with(account)


def test_open_account_defaults_to_zero_balance(ledger):
    assert ledger.open_account("ACC-9", "U-9", AccountKind.CHECKING).balance == Decimal("0.00")


def test_open_account_duplicate_raises(ledger, store):
    with pytest.raises(ValueError):
        ledger.open_account("ACC-1", "U-1", AccountKind.CHECKING)
    store.add.assert_not_called()


def test_open_account_negative_balance_is_invalid(ledger, store):
    result = ledger.open_account("ACC-9", "U-9", AccountKind.CHECKING, Decimal("-1"))
    assert result.kind is ErrorKind.INVALID_AMOUNT
    store.add.assert_not_called()


def test_open_account_refuses_fractions_of_a_cent(ledger, store):
    result = ledger.open_account("ACC-9", "U-9", AccountKind.CHECKING, Decimal("1.005"))
    assert result.kind is ErrorKind.INVALID_AMOUNT
    store.add.assert_not_called()
