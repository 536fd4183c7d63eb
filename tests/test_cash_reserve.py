"""Unit tests for the in-memory cash reserve."""

from __future__ import annotations

from decimal import Decimal

import pytest

from atm_ledger.cash_reserve import CashReserve, CashReserveState, clamp_ink, clamp_paper
from atm_ledger.constants import INK_MAX


@pytest.fixture
def reserve() -> CashReserve:
    return CashReserve({100: 1, 50: 2, 20: 5, 10: 5}, ink_level=5, paper_level=6)


def test_total_cash_is_derived_from_cassettes(reserve):
    assert reserve.total_cash() == Decimal("350")


def test_unlisted_denominations_start_empty():
    reserve = CashReserve({100: 2})
    assert reserve.notes == {100: 2, 50: 0, 20: 0, 10: 0}


def test_constructor_rejects_unknown_denomination():
    with pytest.raises(ValueError):
        CashReserve({5: 10})


def test_notes_property_returns_copy(reserve):
    notes = reserve.notes
    notes[100] = 99
    assert reserve.count(100) == 1


def test_has_sufficient_cash(reserve):
    assert reserve.has_sufficient_cash(Decimal("350"))
    assert not reserve.has_sufficient_cash(Decimal("360"))


# ---------------------------------------------------------------------------
# Cash movements
# ---------------------------------------------------------------------------


def test_add_cash_updates_total(reserve):
    assert reserve.add_cash(50, 2)
    assert reserve.count(50) == 4
    assert reserve.total_cash() == Decimal("450")


@pytest.mark.parametrize("denomination, count", [(5, 1), (100, -1)])
def test_add_cash_rejects_invalid_input(reserve, denomination, count):
    assert reserve.add_cash(denomination, count) is False
    assert reserve.total_cash() == Decimal("350")


def test_remove_cash_decrements_cassette(reserve):
    assert reserve.remove_cash(20, 3)
    assert reserve.count(20) == 2


def test_remove_cash_refuses_more_than_loaded(reserve):
    assert reserve.remove_cash(100, 2) is False
    assert reserve.count(100) == 1


def test_remove_cash_refuses_negative_count(reserve):
    assert reserve.remove_cash(10, -1) is False
    assert reserve.count(10) == 5


# ---------------------------------------------------------------------------
# Consumables
# ---------------------------------------------------------------------------


def test_consume_receipt_resources_uses_one_unit_each(reserve):
    assert reserve.consume_receipt_resources()
    assert reserve.ink_level == 4
    assert reserve.paper_level == 5


def test_consume_receipt_resources_refuses_without_ink():
    reserve = CashReserve(ink_level=0, paper_level=3)
    assert not reserve.can_print_receipt()
    assert reserve.consume_receipt_resources() is False
    assert reserve.paper_level == 3


def test_consume_receipt_resources_refuses_without_paper():
    reserve = CashReserve(ink_level=10, paper_level=0)
    assert reserve.consume_receipt_resources() is False
    assert reserve.ink_level == 10


def test_levels_never_leave_bounds(reserve):
    reserve.ink_level = 250
    reserve.paper_level = -4
    assert reserve.ink_level == INK_MAX
    assert reserve.paper_level == 0

    reserve.ink_level = -1
    assert reserve.ink_level == 0


def test_repeated_receipts_stop_at_empty_paper(reserve):
    printed = sum(1 for _ in range(20) if reserve.consume_receipt_resources())
    assert printed == 5
    assert reserve.ink_level == 0
    assert reserve.paper_level == 1


def test_refill_ink_and_restock_paper(reserve):
    reserve.refill_ink()
    reserve.restock_paper(10)
    assert reserve.ink_level == INK_MAX
    assert reserve.paper_level == 16


def test_clamp_helpers():
    assert clamp_ink(101) == INK_MAX
    assert clamp_ink(-3) == 0
    assert clamp_paper(-3) == 0
    assert clamp_paper(7) == 7


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def test_snapshot_round_trips_through_from_state(reserve):
    reserve.software_version = "2.0"
    state = reserve.snapshot()
    restored = CashReserve.from_state(state)

    assert restored.notes == reserve.notes
    assert restored.ink_level == 5
    assert restored.paper_level == 6
    assert restored.software_version == "2.0"
    assert state.total_cash == Decimal("350")


def test_snapshot_is_independent_of_later_mutation(reserve):
    state = reserve.snapshot()
    reserve.remove_cash(100, 1)
    assert state.notes[100] == 1


def test_state_defaults():
    state = CashReserveState()
    assert state.total_cash == Decimal("0")
    assert state.machine_id == "ATM-001"
    assert state.software_version == "1.0"


def test_snapshot_notes_are_read_only(reserve):
    state = reserve.snapshot()

    with pytest.raises(TypeError):
        state.notes[100] = 99
    assert state.notes[100] == 1
    assert reserve.count(100) == 1


def test_state_copies_the_mapping_it_is_given():
    notes = {100: 2}
    state = CashReserveState(notes=notes)
    notes[100] = 7

    assert state.notes == {100: 2}
