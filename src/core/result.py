"""Stage results: a value is either ready, still pending, or invalid."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ready(Generic[T]):
    value: T


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Invalid:
    reason: str


Result = Union[Ready[T], Pending, Invalid]

PENDING = Pending()


def combine(*results: "Result[Any]") -> "Result[tuple]":
    """
    Ready with all values when every input is ready.

    The first invalid input wins over pending ones, so a definite failure is
    reported even while other inputs are still loading.
    """
    values = []
    pending = False
    for result in results:
        if isinstance(result, Invalid):
            return result
        if isinstance(result, Pending):
            pending = True
            continue
        values.append(result.value)
    if pending:
        return PENDING
    return Ready(tuple(values))


def from_optional(value: "T | None", reason: str) -> "Result[T]":
    if value is None:
        return Invalid(reason)
    return Ready(value)
