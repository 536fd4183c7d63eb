"""Persistence contracts consumed by the engine, and their workbook versions.

The ledger, audit trail, and maintenance code only see the abstract stores
below. The workbook implementations translate each call into
:mod:`~atm_ledger.data_manager` sheet operations and then invoke the optional
``on_write`` hook, which the runtime uses to save the workbook to disk after
every mutation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .cash_reserve import CashReserveState

WriteHook = Optional[Callable[[], None]]


class AccountStore(ABC):
    """Where account balances live between sessions."""

    @abstractmethod
    def find_by_id(self, account_id: str) -> Optional[data_manager.AccountRow]:
        """Return the account or ``None`` when it does not exist."""

    @abstractmethod
    def find_by_owner(self, owner_id: str) -> List[data_manager.AccountRow]:
        """Return every account held by ``owner_id`` in storage order."""

    @abstractmethod
    def add(self, account: data_manager.AccountRow) -> None:
        """Persist a newly provisioned account."""

    @abstractmethod
    def update(self, account: data_manager.AccountRow) -> None:
        """Persist the new state of an existing account."""


class TransactionStore(ABC):
    """Append-only storage for completed transactions."""

    @abstractmethod
    def append(self, transaction: data_manager.TransactionRow) -> None:
        """Persist ``transaction`` after every existing entry."""

    @abstractmethod
    def find_by_account(self, account_id: str) -> List[data_manager.TransactionRow]:
        """Return every transaction naming ``account_id`` as source or destination."""

    @abstractmethod
    def find_by_id(self, transaction_id: str) -> Optional[data_manager.TransactionRow]:
        """Return the transaction or ``None`` when unknown."""


class MachineStateStore(ABC):
    """Storage for the single machine's cassettes and consumables."""

    @abstractmethod
    def load(self) -> CashReserveState:
        """Return the last saved machine state."""

    @abstractmethod
    def save(self, state: CashReserveState) -> None:
        """Replace the saved machine state with ``state``."""


class UserStore(ABC):
    """Credential lookup for customers and technicians."""

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[data_manager.UserRow]:
        """Return the user registered under ``name`` or ``None``."""

    @abstractmethod
    def add(self, user: data_manager.UserRow) -> None:
        """Persist a new user."""


class _WorkbookStore:
    def __init__(self, workbook: Workbook, on_write: WriteHook = None) -> None:
        self.workbook = workbook
        self._on_write = on_write

    def _written(self) -> None:
        if self._on_write is not None:
            self._on_write()


class WorkbookAccountStore(_WorkbookStore, AccountStore):
    """:class:`AccountStore` backed by the ``Accounts`` sheet."""

    def _by_id(self) -> Dict[str, data_manager.AccountRow]:
        return {account.account_id: account for account in data_manager.iter_accounts(self.workbook)}

    def find_by_id(self, account_id: str) -> Optional[data_manager.AccountRow]:
        return self._by_id().get(account_id)

    def find_by_owner(self, owner_id: str) -> List[data_manager.AccountRow]:
        return [account for account in data_manager.iter_accounts(self.workbook) if account.owner_id == owner_id]

    def add(self, account: data_manager.AccountRow) -> None:
        data_manager.append_account(self.workbook, account)
        self._written()

    def update(self, account: data_manager.AccountRow) -> None:
        data_manager.update_account(
            self.workbook,
            account.account_id,
            field_values={
                "OwnerID": account.owner_id,
                "AccountKind": account.account_kind.value,
                "Balance": account.balance,
            },
        )
        log.debug("Stored balance %s for account '%s'", account.balance, account.account_id)
        self._written()


class WorkbookTransactionStore(_WorkbookStore, TransactionStore):
    """:class:`TransactionStore` backed by the ``Transactions`` sheet."""

    def append(self, transaction: data_manager.TransactionRow) -> None:
        data_manager.append_transaction(self.workbook, transaction)
        self._written()

    def find_by_account(self, account_id: str) -> List[data_manager.TransactionRow]:
        return [entry for entry in data_manager.iter_transactions(self.workbook) if entry.involves(account_id)]

    def find_by_id(self, transaction_id: str) -> Optional[data_manager.TransactionRow]:
        for entry in data_manager.iter_transactions(self.workbook):
            if entry.transaction_id == transaction_id:
                return entry
        return None


class WorkbookMachineStateStore(_WorkbookStore, MachineStateStore):
    """:class:`MachineStateStore` backed by the ``Machine`` and ``Cassettes`` sheets."""

    def __init__(self, workbook: Workbook, on_write: WriteHook = None, *, machine_id: Optional[str] = None) -> None:
        super().__init__(workbook, on_write)
        self.machine_id = machine_id

    def load(self) -> CashReserveState:
        return data_manager.read_machine_state(self.workbook, machine_id=self.machine_id)

    def save(self, state: CashReserveState) -> None:
        data_manager.write_machine_state(self.workbook, state)
        self._written()


class WorkbookUserStore(_WorkbookStore, UserStore):
    """:class:`UserStore` backed by the ``Users`` sheet."""

    def find_by_name(self, name: str) -> Optional[data_manager.UserRow]:
        for user in data_manager.iter_users(self.workbook):
            if user.name == name:
                return user
        return None

    def add(self, user: data_manager.UserRow) -> None:
        data_manager.append_user(self.workbook, user)
        self._written()
