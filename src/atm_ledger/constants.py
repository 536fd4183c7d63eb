"""Enumerations and fixed values shared across the ATM ledger modules.

Keeps the workbook layer, the engine, and the command-line front end on a
single definition of denominations, record kinds, and sheet names.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Note values the machine holds, largest first.
DENOMINATIONS: tuple[int, ...] = (100, 50, 20, 10)
SMALLEST_DENOMINATION = DENOMINATIONS[-1]

INK_MIN = 0
INK_MAX = 100
RECEIPT_INK_COST = 1
RECEIPT_PAPER_COST = 1

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class AccountKind(str, Enum):
    """Enumerate the account products a customer can hold."""

    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"


class TransactionKind(str, Enum):
    """Enumerate the transaction kinds recorded in the audit trail."""

    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"
    TRANSFER = "TRANSFER"
    BALANCE_INQUIRY = "BALANCE_INQUIRY"


class Role(str, Enum):
    """Enumerate who may sign in at the terminal."""

    CUSTOMER = "CUSTOMER"
    TECHNICIAN = "TECHNICIAN"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    USERS = "Users"
    ACCOUNTS = "Accounts"
    TRANSACTIONS = "Transactions"
    MACHINE = "Machine"
    CASSETTES = "Cassettes"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DENOMINATIONS",
    "SMALLEST_DENOMINATION",
    "INK_MIN",
    "INK_MAX",
    "RECEIPT_INK_COST",
    "RECEIPT_PAPER_COST",
    "CENTS",
    "ZERO",
    "AccountKind",
    "TransactionKind",
    "Role",
    "SheetName",
]
