"""Stage results: a value was found, or the data was insufficient.

Insufficient data is an expected outcome throughout the engine, never an
exception.  ``Found`` is truthy and ``Insufficient`` is falsy, so callers can
write ``if result:`` and then read ``result.value``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Insufficient:
    reason: str

    def __bool__(self) -> bool:
        return False


Outcome = Union[Found[T], Insufficient]


def unwrap(outcome: Outcome[T]) -> T | None:
    """Return the found value, or None."""
    if isinstance(outcome, Found):
        return outcome.value
    return None
