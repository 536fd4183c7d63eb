"""Technician operations on the machine, gated by software capabilities.

Which maintenance actions a machine permits depends on its installed software
version. Instead of a class per version, :func:`capabilities_for_version`
maps a version onto a :class:`MaintenanceCapability` flag set that the
:class:`MaintenanceService` checks before every action.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Flag
from typing import List, Mapping, Optional

from . import errors, log
from .cash_reserve import CashReserve, CashReserveState
from .errors import Failure, Result
from .stores import MachineStateStore


class MaintenanceCapability(Flag):
    """Maintenance actions a software version allows."""

    NONE = 0
    VIEW_STATUS = 1
    REPLENISH_CASH = 2
    REFILL_INK = 4
    RESTOCK_PAPER = 8
    UPDATE_SOFTWARE = 16
    READ_ONLY = VIEW_STATUS
    FULL = VIEW_STATUS | REPLENISH_CASH | REFILL_INK | RESTOCK_PAPER | UPDATE_SOFTWARE


FULL_MAINTENANCE_MAJOR_VERSION = 2


def parse_version(version: str) -> tuple[int, ...]:
    """Split ``"2.1"`` into ``(2, 1)``.

    Raises:
        ValueError: If any dotted component is not an integer.
    """

    try:
        return tuple(int(part) for part in version.strip().split("."))
    except ValueError as exc:
        raise ValueError(f"Invalid software version: {version!r}") from exc


def capabilities_for_version(version: str) -> MaintenanceCapability:
    """Return what a technician may do on a machine running ``version``.

    Version 1 machines are read-only; version 2 and later allow every
    maintenance action. Unparseable versions are treated as read-only.
    """

    try:
        major = parse_version(version)[0]
    except ValueError:
        log.warning("Unrecognised software version '%s'; maintenance is read-only", version)
        return MaintenanceCapability.READ_ONLY
    if major >= FULL_MAINTENANCE_MAJOR_VERSION:
        return MaintenanceCapability.FULL
    return MaintenanceCapability.READ_ONLY


@dataclass(frozen=True)
class MaintenanceAction:
    """One entry of the technician's session log."""

    action: str
    detail: str
    timestamp: datetime


class MaintenanceService:
    """Applies technician actions to the machine's :class:`CashReserve`."""

    def __init__(
        self,
        reserve: CashReserve,
        machine_store: MachineStateStore,
        capabilities: Optional[MaintenanceCapability] = None,
    ) -> None:
        self.reserve = reserve
        self.machine_store = machine_store
        self.capabilities = (
            capabilities if capabilities is not None else capabilities_for_version(reserve.software_version)
        )
        self.actions: List[MaintenanceAction] = []

    def allows(self, capability: MaintenanceCapability) -> bool:
        return capability in self.capabilities

    def _authorize(self, capability: MaintenanceCapability) -> Optional[Failure]:
        if self.allows(capability):
            return None
        return errors.unauthorized(
            f"Operation not permitted in version {self.reserve.software_version}. "
            "Please upgrade to version 2 for full maintenance capabilities."
        )

    def _commit(self, action: str, detail: str) -> CashReserveState:
        state = self.reserve.snapshot()
        self.machine_store.save(state)
        self.actions.append(MaintenanceAction(action=action, detail=detail, timestamp=datetime.now(UTC)))
        log.info("Maintenance %s on machine '%s': %s", action, self.reserve.machine_id, detail)
        return state

    def status(self) -> Result[CashReserveState]:
        denied = self._authorize(MaintenanceCapability.VIEW_STATUS)
        if denied is not None:
            return denied
        return self.reserve.snapshot()

    def replenish_cash(self, notes: Mapping[int, int]) -> Result[CashReserveState]:
        """Load technician-supplied notes into the cassettes.

        The whole request is validated first: every denomination must be one
        the machine accepts, no count may be negative, and at least one note
        must be added.

        Returns:
            CashReserveState | Failure: The saved state, ``UNAUTHORIZED``, or
                ``INVALID_AMOUNT``.
        """

        denied = self._authorize(MaintenanceCapability.REPLENISH_CASH)
        if denied is not None:
            return denied
        for denomination, count in notes.items():
            if denomination not in self.reserve.denominations:
                return errors.invalid_amount(f"Unsupported denomination: {denomination}")
            if count < 0:
                return errors.invalid_amount("Cannot add negative notes")
        added = sum(denomination * count for denomination, count in notes.items())
        if added == 0:
            return errors.invalid_amount("Cash replenish cancelled. No notes were added")

        for denomination, count in notes.items():
            if count:
                self.reserve.add_cash(denomination, count)
        return self._commit(
            "CASH_REPLENISHMENT",
            f"Added {added} (new total: {self.reserve.total_cash()})",
        )

    def refill_ink(self) -> Result[CashReserveState]:
        denied = self._authorize(MaintenanceCapability.REFILL_INK)
        if denied is not None:
            return denied
        self.reserve.refill_ink()
        return self._commit("INK_REFILL", f"Ink level {self.reserve.ink_level}%")

    def restock_paper(self, sheets: int) -> Result[CashReserveState]:
        denied = self._authorize(MaintenanceCapability.RESTOCK_PAPER)
        if denied is not None:
            return denied
        if sheets <= 0:
            return errors.invalid_amount("Paper restock must add at least one sheet")
        self.reserve.restock_paper(sheets)
        return self._commit("PAPER_RESTOCK", f"Added {sheets} sheets (now {self.reserve.paper_level})")

    def update_software(self, new_version: str) -> Result[CashReserveState]:
        """Install ``new_version`` and re-derive the maintenance capabilities.

        Returns:
            CashReserveState | Failure: The saved state, ``UNAUTHORIZED``, or
                ``INVALID_AMOUNT`` when the version string is malformed.
        """

        denied = self._authorize(MaintenanceCapability.UPDATE_SOFTWARE)
        if denied is not None:
            return denied
        try:
            parse_version(new_version)
        except ValueError as exc:
            return errors.invalid_amount(str(exc))

        previous = self.reserve.software_version
        self.reserve.software_version = new_version.strip()
        self.capabilities = capabilities_for_version(self.reserve.software_version)
        return self._commit("SOFTWARE_UPDATE", f"{previous} -> {self.reserve.software_version}")
