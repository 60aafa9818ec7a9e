"""
Tagged probe outcomes.

A scan probe ends in exactly one of three states so callers can tell an
expected absence apart from something that broke:

    Ok(value)        the provider returned a record
    Skipped(reason)  not found, timed out, or provider refused; expected
    Fatal(reason)    unexpected exception; counted and logged, never raised
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar, Union

from app.services.sync.exceptions import ResultsApiError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    tag = "ok"


@dataclass(frozen=True)
class Skipped:
    reason: str
    tag = "skipped"


@dataclass(frozen=True)
class Fatal:
    reason: str
    tag = "fatal"


Outcome = Union[Ok[Any], Skipped, Fatal]


async def capture(awaitable: Awaitable[T]) -> Outcome:
    """Await ``awaitable`` and wrap its result or failure in an outcome."""
    try:
        return Ok(await awaitable)
    except ResultsApiError as e:
        return Skipped(f"{type(e).__name__}: {e}")
    except Exception as e:
        return Fatal(f"{type(e).__name__}: {e}")
