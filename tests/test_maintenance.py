"""Tests for version-gated technician operations."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from atm_ledger import data_manager, runtime
from atm_ledger.cash_reserve import CashReserve
from atm_ledger.errors import ErrorKind, Failure
from atm_ledger.maintenance import (
    MaintenanceCapability,
    MaintenanceService,
    capabilities_for_version,
    parse_version,
)
from atm_ledger.setup_workbook import build_machine_workbook
from atm_ledger.stores import MachineStateStore


@pytest.fixture
def reserve() -> CashReserve:
    return CashReserve({100: 1, 50: 2, 20: 5, 10: 5}, ink_level=5, paper_level=6, software_version="2.0")


@pytest.fixture
def machine_store() -> Mock:
    return Mock(spec=MachineStateStore)


@pytest.fixture
def service(reserve, machine_store) -> MaintenanceService:
    return MaintenanceService(reserve, machine_store)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("version", ["1.0", "1.9", "1"])
def test_version_one_is_read_only(version):
    assert capabilities_for_version(version) == MaintenanceCapability.READ_ONLY


@pytest.mark.parametrize("version", ["2.0", "2.1", "3"])
def test_version_two_and_later_get_everything(version):
    capabilities = capabilities_for_version(version)
    assert capabilities == MaintenanceCapability.FULL
    for capability in (
        MaintenanceCapability.VIEW_STATUS,
        MaintenanceCapability.REPLENISH_CASH,
        MaintenanceCapability.REFILL_INK,
        MaintenanceCapability.RESTOCK_PAPER,
        MaintenanceCapability.UPDATE_SOFTWARE,
    ):
        assert capability in capabilities


def test_unparseable_version_is_read_only():
    assert capabilities_for_version("beta") == MaintenanceCapability.READ_ONLY


def test_parse_version():
    assert parse_version(" 2.10 ") == (2, 10)
    with pytest.raises(ValueError):
        parse_version("2.x")


# ---------------------------------------------------------------------------
# Read-only machines
# ---------------------------------------------------------------------------


def test_read_only_machine_allows_status_only(machine_store):
    reserve = CashReserve({100: 1}, software_version="1.0")
    service = MaintenanceService(reserve, machine_store)

    assert service.status().total_cash == Decimal("100")
    for outcome in (
        service.replenish_cash({100: 1}),
        service.refill_ink(),
        service.restock_paper(5),
        service.update_software("2.0"),
    ):
        assert isinstance(outcome, Failure)
        assert outcome.kind is ErrorKind.UNAUTHORIZED
        assert "version 1.0" in outcome.message
    assert reserve.count(100) == 1
    machine_store.save.assert_not_called()
    assert service.actions == []


def test_explicit_capabilities_override_version(reserve, machine_store):
    service = MaintenanceService(reserve, machine_store, capabilities=MaintenanceCapability.NONE)
    assert service.status().kind is ErrorKind.UNAUTHORIZED


# ---------------------------------------------------------------------------
# Full maintenance
# ---------------------------------------------------------------------------


def test_replenish_cash_adds_notes_and_saves(service, reserve, machine_store):
    state = service.replenish_cash({100: 2, 20: 5})

    assert state.total_cash == Decimal("650")
    assert reserve.count(100) == 3
    machine_store.save.assert_called_once_with(state)
    assert service.actions[-1].action == "CASH_REPLENISHMENT"


@pytest.mark.parametrize(
    "notes",
    [{5: 1}, {100: -1}, {100: 0, 50: 0}, {}],
)
def test_replenish_cash_rejects_bad_requests(service, reserve, machine_store, notes):
    outcome = service.replenish_cash(notes)

    assert outcome.kind is ErrorKind.INVALID_AMOUNT
    assert reserve.total_cash() == Decimal("350")
    machine_store.save.assert_not_called()


def test_replenish_cash_validates_before_loading(service, reserve):
    outcome = service.replenish_cash({100: 3, 10: -2})
    assert outcome.kind is ErrorKind.INVALID_AMOUNT
    assert reserve.count(100) == 1


def test_refill_ink(service, reserve):
    state = service.refill_ink()
    assert state.ink_level == 100
    assert reserve.ink_level == 100
    assert service.actions[-1].action == "INK_REFILL"


def test_restock_paper(service, reserve):
    state = service.restock_paper(50)
    assert state.paper_level == 56
    assert service.actions[-1].action == "PAPER_RESTOCK"


@pytest.mark.parametrize("sheets", [0, -3])
def test_restock_paper_requires_positive_sheets(service, sheets):
    assert service.restock_paper(sheets).kind is ErrorKind.INVALID_AMOUNT


def test_update_software_recomputes_capabilities(service, reserve):
    state = service.update_software("1.5")

    assert state.software_version == "1.5"
    assert reserve.software_version == "1.5"
    assert service.capabilities == MaintenanceCapability.READ_ONLY
    assert service.refill_ink().kind is ErrorKind.UNAUTHORIZED


def test_update_software_rejects_malformed_version(service, reserve):
    outcome = service.update_software("two")
    assert outcome.kind is ErrorKind.INVALID_AMOUNT
    assert reserve.software_version == "2.0"


def test_actions_are_logged_in_order(service):
    service.refill_ink()
    service.restock_paper(1)
    assert [entry.action for entry in service.actions] == ["INK_REFILL", "PAPER_RESTOCK"]
    assert all(entry.timestamp.tzinfo is not None for entry in service.actions)


# ---------------------------------------------------------------------------
# Shared reserve
# ---------------------------------------------------------------------------


def test_replenished_cash_is_visible_to_engine(settings):
    workbook = build_machine_workbook(software_version="2.0")
    context = runtime.build_context(settings, workbook, autosave=False)

    context.maintenance.replenish_cash({100: 4})

    assert context.engine.reserve is context.maintenance.reserve
    assert context.reserve.total_cash() == Decimal("750")
    assert data_manager.read_machine_state(workbook).notes[100] == 5
