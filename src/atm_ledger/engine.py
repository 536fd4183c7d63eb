"""Transaction workflows for the teller.

The engine composes the :class:`~atm_ledger.ledger.Ledger`, the machine's
:class:`~atm_ledger.cash_reserve.CashReserve`, the denomination allocator,
and the :class:`~atm_ledger.audit.AuditTrail`. Each workflow validates every
precondition before its first mutation, then commits in a fixed order and
returns either the recorded transaction or a
:class:`~atm_ledger.errors.Failure`.

There is no compensating rollback: once a commit step has run, a later
failure leaves the earlier mutation in place and is reported as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from . import allocator, data_manager, errors, log
from .audit import AuditTrail, build_transaction
from .cash_reserve import CashReserve
from .constants import ZERO, TransactionKind
from .errors import Failure, ResourceShortage, Result
from .ledger import Ledger, to_amount
from .stores import MachineStateStore


@dataclass(frozen=True)
class BalanceInquiry:
    """Outcome of a balance read, with the optional receipt outcome kept apart."""

    account_id: str
    balance: Decimal
    receipt_requested: bool = False
    receipt_failure: Optional[Failure] = None

    @property
    def receipt_printed(self) -> bool:
        return self.receipt_requested and self.receipt_failure is None


@dataclass(frozen=True)
class Withdrawal:
    """A completed withdrawal and the notes handed to the customer."""

    transaction: data_manager.TransactionRow
    notes: Dict[int, int]


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    return candidate if candidate is not None else datetime.now(UTC)


class TransactionEngine:
    """Orchestrates withdrawals, deposits, transfers, and balance inquiries."""

    def __init__(
        self,
        ledger: Ledger,
        reserve: CashReserve,
        audit: AuditTrail,
        machine_store: MachineStateStore,
    ) -> None:
        self.ledger = ledger
        self.reserve = reserve
        self.audit = audit
        self.machine_store = machine_store

    def _save_reserve(self) -> None:
        self.machine_store.save(self.reserve.snapshot())

    def withdraw(
        self,
        account_id: str,
        amount: Decimal,
        *,
        timestamp: Optional[datetime] = None,
    ) -> Result[Withdrawal]:
        """Pay out ``amount`` in notes and debit the account.

        Checks run in this order and stop at the first failure, before
        anything is mutated: a positive whole number of cents, account
        exists, balance covers the amount, the machine holds enough cash in
        total, and the loaded notes can form the amount exactly. Only then
        is the account debited, the notes removed, and the withdrawal
        recorded.

        Args:
            account_id (str): Account to debit.
            amount (Decimal): Requested cash.
            timestamp (datetime | None): Override for the recorded time.

        Returns:
            Withdrawal | Failure: The recorded transaction and the dispensed
                notes, or the first failed check. ``RESOURCE_UNAVAILABLE``
                distinguishes ``INSUFFICIENT_CASH`` from
                ``UNSPLITTABLE_AMOUNT``.
        """

        amount = to_amount(amount)
        if isinstance(amount, Failure):
            return amount
        if amount <= ZERO:
            return errors.invalid_amount(f"Withdrawal amount must be positive, got {amount}")
        account = self.ledger.get_account(account_id)
        if isinstance(account, Failure):
            return account
        if account.balance < amount:
            return errors.insufficient_funds(
                f"Insufficient funds. Current balance: {account.balance:.2f}, requested: {amount:.2f}"
            )
        if not self.reserve.has_sufficient_cash(amount):
            return errors.resource_unavailable(
                ResourceShortage.INSUFFICIENT_CASH,
                "ATM out of cash. Please try another ATM.",
            )
        notes = allocator.allocate(amount, self.reserve.notes, denominations=self.reserve.denominations)
        if notes is None:
            return errors.resource_unavailable(
                ResourceShortage.UNSPLITTABLE_AMOUNT,
                f"Cannot dispense {amount:.2f} exactly with the available notes.",
            )

        debited = self.ledger.debit(account_id, amount)
        if isinstance(debited, Failure):
            return debited

        for denomination, count in notes.items():
            if not self.reserve.remove_cash(denomination, count):
                # The debit above stays in place; there is no rollback.
                log.error(
                    "Cassette %s could not supply %s notes after debiting '%s'",
                    denomination,
                    count,
                    account_id,
                )
                self._save_reserve()
                return errors.resource_unavailable(
                    ResourceShortage.INSUFFICIENT_CASH,
                    f"Cassette for {denomination} notes could not supply {count} notes.",
                )
        self._save_reserve()

        transaction = build_transaction(
            TransactionKind.WITHDRAWAL,
            amount,
            timestamp=_resolve_timestamp(timestamp),
            source_account_id=account_id,
        )
        self.audit.record(transaction)
        log.info(
            "Dispensed %s from machine '%s' as %s",
            amount,
            self.reserve.machine_id,
            ", ".join(f"{count}x{denomination}" for denomination, count in notes.items()),
        )
        return Withdrawal(transaction=transaction, notes=notes)

    def deposit(
        self,
        account_id: str,
        amount: Decimal,
        *,
        timestamp: Optional[datetime] = None,
    ) -> Result[data_manager.TransactionRow]:
        """Credit ``amount`` to the account and absorb the notes.

        The ledger receives the exact amount. The cassettes receive the
        greedy note breakdown of the amount; any part below the smallest
        denomination is not tracked in the reserve, since the cassette counts
        model dispensing capacity rather than cash custody.

        Returns:
            TransactionRow | Failure: The recorded deposit, ``INVALID_AMOUNT``
                for a non-positive amount or fractions of a cent, or
                ``NOT_FOUND``.
        """

        amount = to_amount(amount)
        if isinstance(amount, Failure):
            return amount
        if amount <= ZERO:
            return errors.invalid_amount(f"Deposit amount must be positive, got {amount}")

        credited = self.ledger.credit(account_id, amount)
        if isinstance(credited, Failure):
            return credited

        notes, remainder = allocator.decompose(amount, denominations=self.reserve.denominations)
        for denomination, count in notes.items():
            self.reserve.add_cash(denomination, count)
        self._save_reserve()
        if remainder:
            log.info("Deposit remainder %s for account '%s' is not held in a cassette", remainder, account_id)

        transaction = build_transaction(
            TransactionKind.DEPOSIT,
            amount,
            timestamp=_resolve_timestamp(timestamp),
            destination_account_id=account_id,
        )
        return self.audit.record(transaction)

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        *,
        timestamp: Optional[datetime] = None,
    ) -> Result[data_manager.TransactionRow]:
        """Move ``amount`` between two accounts without touching the cassettes.

        Returns:
            TransactionRow | Failure: The recorded transfer; ``INVALID_AMOUNT``
                for a non-positive amount, fractions of a cent or identical
                accounts;
                ``NOT_FOUND`` when either account is missing;
                ``INSUFFICIENT_FUNDS`` when the source cannot cover it.
        """

        amount = to_amount(amount)
        if isinstance(amount, Failure):
            return amount
        if amount <= ZERO:
            return errors.invalid_amount(f"Transfer amount must be positive, got {amount}")
        source = self.ledger.get_account(from_account_id)
        if isinstance(source, Failure):
            return source
        destination = self.ledger.get_account(to_account_id)
        if isinstance(destination, Failure):
            return destination
        if from_account_id == to_account_id:
            return errors.invalid_amount("Cannot transfer to the same account")
        if source.balance < amount:
            return errors.insufficient_funds(
                f"Insufficient funds in source account. Balance: {source.balance:.2f}"
            )

        debited = self.ledger.debit(from_account_id, amount)
        if isinstance(debited, Failure):
            return debited
        credited = self.ledger.credit(to_account_id, amount)
        if isinstance(credited, Failure):
            log.error("Credit to '%s' failed after debiting '%s'", to_account_id, from_account_id)
            return credited

        transaction = build_transaction(
            TransactionKind.TRANSFER,
            amount,
            timestamp=_resolve_timestamp(timestamp),
            source_account_id=from_account_id,
            destination_account_id=to_account_id,
        )
        return self.audit.record(transaction)

    def balance_inquiry(self, account_id: str, *, print_receipt: bool = False) -> Result[BalanceInquiry]:
        """Read the balance and optionally claim the resources for a receipt.

        A receipt that cannot be printed is reported in
        :attr:`BalanceInquiry.receipt_failure`; the balance is returned either
        way. Inquiries are not written to the audit trail.
        """

        balance = self.ledger.balance_of(account_id)
        if isinstance(balance, Failure):
            return balance
        receipt_failure = self.claim_receipt_resources() if print_receipt else None
        return BalanceInquiry(
            account_id=account_id,
            balance=balance,
            receipt_requested=print_receipt,
            receipt_failure=receipt_failure,
        )

    def claim_receipt_resources(self) -> Optional[Failure]:
        """Consume the ink and paper for one receipt.

        Returns:
            Failure | None: ``OUT_OF_INK`` (checked first) or
                ``OUT_OF_PAPER`` when a receipt cannot be printed, otherwise
                ``None`` after the consumables were used and saved.
        """

        if not self.reserve.can_print_receipt():
            if self.reserve.ink_level <= 0:
                return errors.resource_unavailable(
                    ResourceShortage.OUT_OF_INK, "Cannot print receipt - ATM out of ink"
                )
            return errors.resource_unavailable(
                ResourceShortage.OUT_OF_PAPER, "Cannot print receipt - ATM out of paper"
            )
        self.reserve.consume_receipt_resources()
        self._save_reserve()
        log.debug(
            "Receipt resources used (ink=%s, paper=%s)",
            self.reserve.ink_level,
            self.reserve.paper_level,
        )
        return None

    def history(self, account_id: str) -> Result[List[data_manager.TransactionRow]]:
        account = self.ledger.get_account(account_id)
        if isinstance(account, Failure):
            return account
        return self.audit.for_account(account_id)
