"""Failure values returned by the ledger and cash-reserve engine.

Domain outcomes such as an overdrawn account or an empty cassette are not
exceptional for a teller, so core operations hand back a :class:`Failure`
instead of raising. Callers branch with :func:`is_failure` and present the
message; nothing here is fatal to the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, TypeVar, Union

from . import log


class ErrorKind(str, Enum):
    """Enumerate every way a core operation can be refused."""

    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    UNAUTHORIZED = "UNAUTHORIZED"


class ResourceShortage(str, Enum):
    """Sub-cases of :attr:`ErrorKind.RESOURCE_UNAVAILABLE`."""

    INSUFFICIENT_CASH = "INSUFFICIENT_CASH"
    UNSPLITTABLE_AMOUNT = "UNSPLITTABLE_AMOUNT"
    OUT_OF_INK = "OUT_OF_INK"
    OUT_OF_PAPER = "OUT_OF_PAPER"


@dataclass(frozen=True)
class Failure:
    """Immutable description of a refused operation."""

    kind: ErrorKind
    message: str
    shortage: Optional[ResourceShortage] = None

    def __str__(self) -> str:
        return self.message


T = TypeVar("T")
Result = Union[T, Failure]


def is_failure(value: Any) -> bool:
    """Return ``True`` when ``value`` is a :class:`Failure`."""

    return isinstance(value, Failure)


def fail(kind: ErrorKind, message: str, *, shortage: Optional[ResourceShortage] = None) -> Failure:
    """Build a :class:`Failure` and log it at warning level.

    Args:
        kind (ErrorKind): Category the caller should branch on.
        message (str): Human readable explanation suitable for a screen.
        shortage (ResourceShortage | None): Required when ``kind`` is
            ``RESOURCE_UNAVAILABLE`` so the front end can be precise.

    Returns:
        Failure: The frozen failure value.
    """

    if kind is ErrorKind.RESOURCE_UNAVAILABLE and shortage is None:
        raise ValueError("Resource failures must name the missing resource")
    log.warning("%s: %s", kind.value, message)
    return Failure(kind=kind, message=message, shortage=shortage)


def not_found(message: str) -> Failure:
    return fail(ErrorKind.NOT_FOUND, message)


def insufficient_funds(message: str) -> Failure:
    return fail(ErrorKind.INSUFFICIENT_FUNDS, message)


def invalid_amount(message: str) -> Failure:
    return fail(ErrorKind.INVALID_AMOUNT, message)


def unauthorized(message: str) -> Failure:
    return fail(ErrorKind.UNAUTHORIZED, message)


def resource_unavailable(shortage: ResourceShortage, message: str) -> Failure:
    return fail(ErrorKind.RESOURCE_UNAVAILABLE, message, shortage=shortage)


__all__ = [
    "ErrorKind",
    "ResourceShortage",
    "Failure",
    "Result",
    "is_failure",
    "fail",
    "not_found",
    "insufficient_funds",
    "invalid_amount",
    "unauthorized",
    "resource_unavailable",
]
