"""Account balances and the only code allowed to change them.

Every balance change goes through :meth:`Ledger.debit` or
:meth:`Ledger.credit`, which persist the new account through the
:class:`~atm_ledger.stores.AccountStore` immediately.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import List, Union

from . import data_manager, errors, log
from .constants import CENTS, ZERO, AccountKind
from .errors import Failure, Result
from .stores import AccountStore


def to_amount(value: Union[str, int, Decimal]) -> Result[Decimal]:
    """Convert caller input into a :class:`Decimal` with at most two places.

    Sign is not checked here; each operation applies its own rule.

    Returns:
        Decimal | Failure: The amount, or ``INVALID_AMOUNT`` when ``value`` is
            not a finite number or carries fractions of a cent.
    """

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            return errors.invalid_amount(f"Not a valid amount: {value!r}")
        cents = amount.quantize(CENTS)
    except (InvalidOperation, ValueError):
        return errors.invalid_amount(f"Not a valid amount: {value!r}")
    if amount != cents:
        return errors.invalid_amount(f"Amount {amount} has more precision than one cent")
    return cents


class Ledger:
    """Authoritative owner of account balances."""

    def __init__(self, store: AccountStore) -> None:
        self.store = store

    def get_account(self, account_id: str) -> Result[data_manager.AccountRow]:
        account = self.store.find_by_id(account_id)
        if account is None:
            return errors.not_found(f"Account not found: {account_id}")
        return account

    def balance_of(self, account_id: str) -> Result[Decimal]:
        """Return the balance of ``account_id`` without changing anything."""

        account = self.get_account(account_id)
        if isinstance(account, Failure):
            return account
        return account.balance

    def accounts_for_owner(self, owner_id: str) -> List[data_manager.AccountRow]:
        return self.store.find_by_owner(owner_id)

    def debit(self, account_id: str, amount: Decimal) -> Result[data_manager.AccountRow]:
        """Subtract ``amount`` from the account balance.

        A non-positive amount is refused the same way as an overdraft, so a
        debit can never raise a balance.

        Returns:
            AccountRow | Failure: The updated account; ``INVALID_AMOUNT`` when
                ``amount`` is not a whole number of cents; ``NOT_FOUND`` for an
                unknown account; ``INSUFFICIENT_FUNDS`` when ``amount`` is not
                positive or exceeds the balance.
        """

        amount = to_amount(amount)
        if isinstance(amount, Failure):
            return amount
        account = self.get_account(account_id)
        if isinstance(account, Failure):
            return account
        if amount <= ZERO or amount > account.balance:
            return errors.insufficient_funds(
                f"Insufficient funds. Current balance: {account.balance:.2f}, requested: {amount:.2f}"
            )

        updated = replace(account, balance=(account.balance - amount).quantize(CENTS))
        self.store.update(updated)
        log.info("Debited %s from account '%s' (balance=%s)", amount, account_id, updated.balance)
        return updated

    def credit(self, account_id: str, amount: Decimal) -> Result[data_manager.AccountRow]:
        """Add ``amount`` to the account balance.

        Returns:
            AccountRow | Failure: The updated account; ``NOT_FOUND`` for an
                unknown account; ``INVALID_AMOUNT`` when ``amount`` is not
                positive or not a whole number of cents.
        """

        amount = to_amount(amount)
        if isinstance(amount, Failure):
            return amount
        account = self.get_account(account_id)
        if isinstance(account, Failure):
            return account
        if amount <= ZERO:
            return errors.invalid_amount(f"Credit amount must be positive, got {amount}")

        updated = replace(account, balance=(account.balance + amount).quantize(CENTS))
        self.store.update(updated)
        log.info("Credited %s to account '%s' (balance=%s)", amount, account_id, updated.balance)
        return updated

    def open_account(
        self,
        account_id: str,
        owner_id: str,
        account_kind: AccountKind,
        opening_balance: Decimal = ZERO,
    ) -> Result[data_manager.AccountRow]:
        """Provision a new account.

        Raises:
            ValueError: If ``account_id`` is already in use.
        """

        if self.store.find_by_id(account_id) is not None:
            log.error("Refusing to provision duplicate account '%s'", account_id)
            raise ValueError(f"Account already exists: {account_id}")
        opening_balance = to_amount(opening_balance)
        if isinstance(opening_balance, Failure):
            return opening_balance
        if opening_balance < ZERO:
            return errors.invalid_amount(f"Opening balance cannot be negative: {opening_balance}")

        account = data_manager.AccountRow(
            account_id=account_id,
            owner_id=owner_id,
            account_kind=account_kind,
            balance=opening_balance,
        )
        self.store.add(account)
        log.info("Opened %s account '%s' for owner '%s'", account_kind.value, account_id, owner_id)
        return account
