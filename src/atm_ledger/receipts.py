"""Plain-text rendering of receipts and machine reports.

Nothing here touches ink or paper; the engine claims those before a receipt
is rendered.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional

from . import data_manager
from .cash_reserve import CashReserveState
from .maintenance import MaintenanceAction

RULE = "=" * 32
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _banner(title: str) -> List[str]:
    return [RULE, title.center(32).rstrip(), RULE]


def format_money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def format_timestamp(moment: Optional[datetime]) -> str:
    return moment.strftime(TIMESTAMP_FORMAT) if moment is not None else "N/A"


def format_transaction_receipt(
    transaction: data_manager.TransactionRow,
    *,
    notes: Optional[Mapping[int, int]] = None,
) -> str:
    lines = _banner("TRANSACTION RECEIPT")
    lines += [
        f"Transaction ID: {transaction.transaction_id}",
        f"Type: {transaction.kind.value}",
        f"Amount: {format_money(transaction.amount)}",
        f"From Account: {transaction.source_account_id or 'N/A'}",
        f"To Account: {transaction.destination_account_id or 'N/A'}",
        f"Timestamp: {format_timestamp(transaction.timestamp)}",
    ]
    if notes:
        lines.append("Notes: " + ", ".join(f"{count} x {denomination}" for denomination, count in sorted(notes.items(), reverse=True)))
    lines.append(RULE)
    return "\n".join(lines)


def format_balance_receipt(account_id: str, balance: Decimal) -> str:
    lines = _banner("BALANCE RECEIPT")
    lines += [f"Account: {account_id}", f"Balance: {format_money(balance)}", RULE]
    return "\n".join(lines)


def format_history(account_id: str, transactions: Iterable[data_manager.TransactionRow]) -> str:
    lines = _banner(f"HISTORY {account_id}")
    rows = list(transactions)
    if not rows:
        lines.append("No transactions recorded.")
    for entry in rows:
        sign = "-" if entry.source_account_id == account_id else "+"
        lines.append(
            f"{format_timestamp(entry.timestamp)}  {entry.kind.value:<10} {sign}{format_money(entry.amount)}"
        )
    lines.append(RULE)
    return "\n".join(lines)


def format_status_report(state: CashReserveState) -> str:
    lines = _banner("ATM STATUS REPORT")
    lines += [
        f"ATM ID: {state.machine_id}",
        f"Software Version: {state.software_version}",
        f"Total Cash: {format_money(state.total_cash)}",
        "Cash by Denomination:",
    ]
    for denomination in sorted(state.notes, reverse=True):
        lines.append(f"  {denomination} notes: {state.notes[denomination]}")
    lines += [
        f"Ink Level: {state.ink_level}%",
        f"Paper Level: {state.paper_level} sheets",
        RULE,
    ]
    return "\n".join(lines)


def format_maintenance_report(technician: str, actions: Iterable[MaintenanceAction]) -> str:
    lines = _banner("MAINTENANCE REPORT")
    lines.append(f"Technician: {technician}")
    entries = list(actions)
    if not entries:
        lines.append("No maintenance actions performed.")
    for entry in entries:
        lines.append(f"{format_timestamp(entry.timestamp)}  {entry.action}: {entry.detail}")
    lines.append(RULE)
    return "\n".join(lines)
