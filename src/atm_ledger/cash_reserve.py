"""Physical resource bookkeeping for the teller: notes, ink and paper.

One :class:`CashReserve` exists per machine. It is built from the state the
:class:`~atm_ledger.stores.MachineStateStore` loads and is handed to the
engine and the maintenance service explicitly; nothing in this module keeps a
process-wide instance. Total cash is always derived from the cassettes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence

from . import log
from .constants import (
    DENOMINATIONS,
    INK_MAX,
    INK_MIN,
    RECEIPT_INK_COST,
    RECEIPT_PAPER_COST,
)


DEFAULT_MACHINE_ID = "ATM-001"
DEFAULT_SOFTWARE_VERSION = "1.0"


@dataclass(frozen=True)
class CashReserveState:
    """Snapshot of everything the machine physically holds."""

    notes: Mapping[int, int] = field(default_factory=dict)
    ink_level: int = INK_MIN
    paper_level: int = 0
    machine_id: str = DEFAULT_MACHINE_ID
    software_version: str = DEFAULT_SOFTWARE_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "notes", MappingProxyType(dict(self.notes)))

    @property
    def total_cash(self) -> Decimal:
        return Decimal(sum(denomination * count for denomination, count in self.notes.items()))


def clamp_ink(level: int) -> int:
    return max(INK_MIN, min(INK_MAX, int(level)))


def clamp_paper(level: int) -> int:
    return max(0, int(level))


class CashReserve:
    """Mutable view of the cassettes and consumables of a single machine."""

    def __init__(
        self,
        notes: Optional[Mapping[int, int]] = None,
        *,
        ink_level: int = INK_MIN,
        paper_level: int = 0,
        machine_id: str = DEFAULT_MACHINE_ID,
        software_version: str = DEFAULT_SOFTWARE_VERSION,
        denominations: Sequence[int] = DENOMINATIONS,
    ) -> None:
        self.machine_id = machine_id
        self.software_version = software_version
        self._denominations = tuple(sorted(denominations, reverse=True))
        self._notes: Dict[int, int] = {denomination: 0 for denomination in self._denominations}
        for denomination, count in (notes or {}).items():
            if denomination not in self._notes:
                raise ValueError(f"Unsupported denomination: {denomination}")
            self._notes[denomination] = max(int(count), 0)
        self._ink_level = clamp_ink(ink_level)
        self._paper_level = clamp_paper(paper_level)

    @classmethod
    def from_state(cls, state: CashReserveState) -> "CashReserve":
        return cls(
            state.notes,
            ink_level=state.ink_level,
            paper_level=state.paper_level,
            machine_id=state.machine_id,
            software_version=state.software_version,
        )

    def snapshot(self) -> CashReserveState:
        """Return an immutable copy suitable for persisting."""

        return CashReserveState(
            notes=dict(self._notes),
            ink_level=self._ink_level,
            paper_level=self._paper_level,
            machine_id=self.machine_id,
            software_version=self.software_version,
        )

    # ------------------------------------------------------------------
    # Cash
    # ------------------------------------------------------------------

    @property
    def denominations(self) -> tuple[int, ...]:
        return self._denominations

    @property
    def notes(self) -> Dict[int, int]:
        """Copy of the note counts keyed by denomination."""

        return dict(self._notes)

    def count(self, denomination: int) -> int:
        return self._notes.get(denomination, 0)

    def total_cash(self) -> Decimal:
        """Sum of ``denomination * count`` over every cassette, recomputed per call."""

        return Decimal(sum(denomination * count for denomination, count in self._notes.items()))

    def has_sufficient_cash(self, amount: Decimal) -> bool:
        return self.total_cash() >= amount

    def add_cash(self, denomination: int, count: int) -> bool:
        """Load ``count`` notes into the cassette for ``denomination``.

        Returns ``False`` without changing anything when the denomination is
        not one the machine accepts or ``count`` is negative.
        """

        if denomination not in self._notes or count < 0:
            log.warning("Rejected loading %s x %s into machine '%s'", count, denomination, self.machine_id)
            return False
        self._notes[denomination] += count
        return True

    def remove_cash(self, denomination: int, count: int) -> bool:
        """Take ``count`` notes out of the cassette for ``denomination``.

        Returns ``False`` and leaves the cassette untouched when it holds fewer
        than ``count`` notes.
        """

        available = self._notes.get(denomination, 0)
        if count < 0 or count > available:
            log.warning(
                "Cannot remove %s x %s from machine '%s' (only %s loaded)",
                count,
                denomination,
                self.machine_id,
                available,
            )
            return False
        self._notes[denomination] = available - count
        return True

    # ------------------------------------------------------------------
    # Consumables
    # ------------------------------------------------------------------

    @property
    def ink_level(self) -> int:
        return self._ink_level

    @ink_level.setter
    def ink_level(self, value: int) -> None:
        self._ink_level = clamp_ink(value)

    @property
    def paper_level(self) -> int:
        return self._paper_level

    @paper_level.setter
    def paper_level(self, value: int) -> None:
        self._paper_level = clamp_paper(value)

    def can_print_receipt(self) -> bool:
        return self._ink_level > 0 and self._paper_level > 0

    def consume_receipt_resources(self) -> bool:
        """Use one unit of ink and one sheet of paper for a receipt.

        Does nothing and returns ``False`` when :meth:`can_print_receipt` is
        false; callers are expected to check first so they can report which
        consumable ran out.
        """

        if not self.can_print_receipt():
            return False
        self.ink_level = self._ink_level - RECEIPT_INK_COST
        self.paper_level = self._paper_level - RECEIPT_PAPER_COST
        return True

    def refill_ink(self) -> None:
        self.ink_level = INK_MAX

    def restock_paper(self, sheets: int) -> None:
        self.paper_level = self._paper_level + sheets

    def __repr__(self) -> str:
        return (
            f"CashReserve(machine_id={self.machine_id!r}, total_cash={self.total_cash()}, "
            f"ink_level={self._ink_level}, paper_level={self._paper_level}, "
            f"software_version={self.software_version!r})"
        )
