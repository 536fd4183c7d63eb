"""Append-only audit trail of completed transactions."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import List, Optional
import uuid

from . import data_manager, errors, log
from .constants import TransactionKind
from .errors import Result
from .stores import TransactionStore


def generate_transaction_id(*, prefix: str = "T", when: Optional[datetime] = None) -> str:
    """Generate a sortable transaction identifier.

    Returns:
        str: ``{prefix}{YYYYMMDDHHMMSSffffff}-{XXXX}``. The timestamp keeps ids
            in chronological order and the random suffix separates entries
            created within the same microsecond.
    """

    when = when or datetime.now(UTC)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:4].upper()}"


def build_transaction(
    kind: TransactionKind,
    amount: Decimal,
    *,
    timestamp: datetime,
    source_account_id: Optional[str] = None,
    destination_account_id: Optional[str] = None,
) -> data_manager.TransactionRow:
    """Materialise an immutable transaction record.

    Raises:
        ValueError: If ``amount`` is not positive.
    """

    if amount <= 0:
        raise ValueError("Transaction amount must be positive")
    return data_manager.TransactionRow(
        transaction_id=generate_transaction_id(prefix=kind.value[0], when=timestamp),
        timestamp=timestamp,
        kind=kind,
        amount=amount,
        source_account_id=source_account_id,
        destination_account_id=destination_account_id,
    )


class AuditTrail:
    """Records transactions and answers history queries."""

    def __init__(self, store: TransactionStore) -> None:
        self.store = store

    def record(self, transaction: data_manager.TransactionRow) -> data_manager.TransactionRow:
        self.store.append(transaction)
        log.info(
            "Recorded %s transaction '%s' (amount=%s, from=%s, to=%s)",
            transaction.kind.value,
            transaction.transaction_id,
            transaction.amount,
            transaction.source_account_id,
            transaction.destination_account_id,
        )
        return transaction

    def for_account(self, account_id: str) -> List[data_manager.TransactionRow]:
        """Return every transaction touching ``account_id`` in the order recorded."""

        return list(self.store.find_by_account(account_id))

    def get(self, transaction_id: str) -> Result[data_manager.TransactionRow]:
        transaction = self.store.find_by_id(transaction_id)
        if transaction is None:
            return errors.not_found(f"Transaction not found: {transaction_id}")
        return transaction
