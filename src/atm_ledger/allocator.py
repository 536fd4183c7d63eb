"""Denomination allocation for dispensing and absorbing notes.

Both helpers run the same descending greedy pass over :data:`DENOMINATIONS`.
For the canonical set 100/50/20/10 every denomination is a multiple of the
next smaller one, so the greedy pass also yields the smallest note count.
Neither function touches machine state; callers commit the result.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from . import log
from .constants import DENOMINATIONS, SMALLEST_DENOMINATION

Amount = Union[int, Decimal]


def _as_decimal(amount: Amount) -> Decimal:
    return amount if isinstance(amount, Decimal) else Decimal(amount)


def allocate(
    amount: Amount,
    available: Mapping[int, int],
    *,
    denominations: Sequence[int] = DENOMINATIONS,
) -> Optional[Dict[int, int]]:
    """Compute the notes needed to pay out ``amount`` exactly.

    At each denomination, largest first, the pass takes
    ``min(available[d], remaining // d)`` notes. Denominations with a zero
    take are left out of the result.

    Args:
        amount (int | Decimal): Requested payout. Must be a non-negative exact
            multiple of the smallest denomination.
        available (Mapping[int, int]): Notes currently loaded per
            denomination. Missing denominations count as empty.
        denominations (Sequence[int]): Denominations to consider, largest
            first.

    Returns:
        dict[int, int] | None: Notes to dispense keyed by denomination, or
            ``None`` when the amount cannot be formed from the available
            notes.
    """

    value = _as_decimal(amount)
    smallest = min(denominations) if denominations else SMALLEST_DENOMINATION
    if value < 0 or value % smallest != 0:
        log.debug("Allocation rejected: %s is not a multiple of %s", value, smallest)
        return None

    remaining = value
    notes: Dict[int, int] = {}
    for denomination in sorted(denominations, reverse=True):
        loaded = max(int(available.get(denomination, 0)), 0)
        take = min(loaded, int(remaining // denomination))
        if take > 0:
            notes[denomination] = take
            remaining -= take * denomination

    if remaining != 0:
        log.debug("Allocation infeasible for %s: %s left over", value, remaining)
        return None
    return notes


def decompose(
    amount: Amount,
    *,
    denominations: Sequence[int] = DENOMINATIONS,
) -> Tuple[Dict[int, int], Decimal]:
    """Break ``amount`` into notes with no limit on availability.

    Deposits use this to decide which cassettes absorb the cash. Anything
    below the smallest denomination, including minor units, is returned as the
    remainder instead of being placed in a cassette.

    Args:
        amount (int | Decimal): Deposited amount; negative values are treated
            as nothing to absorb.
        denominations (Sequence[int]): Denominations to fill, largest first.

    Returns:
        tuple[dict[int, int], Decimal]: Note counts keyed by denomination and
            the remainder that no note covers.
    """

    remaining = max(_as_decimal(amount), Decimal("0"))
    notes: Dict[int, int] = {}
    for denomination in sorted(denominations, reverse=True):
        count = int(remaining // denomination)
        if count > 0:
            notes[denomination] = count
            remaining -= count * denomination
    return notes, remaining


def note_total(notes: Mapping[int, int]) -> int:
    """Return the face value of a note breakdown."""

    return sum(denomination * count for denomination, count in notes.items())


def note_count(notes: Mapping[int, int]) -> int:
    """Return how many physical notes a breakdown contains."""

    return sum(notes.values())
