"""
Outcome types returned by the public simulation entry points.

Inside the engine, problems are raised as ``EngineError`` subclasses. The
``returns_outcome`` decorator turns them into values so callers branch on
``Ok`` / ``Insufficient`` / ``Failed`` instead of catching exceptions.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineError(Exception):
    kind = "error"


class PreconditionError(EngineError, ValueError):
    """Inputs rejected before any computation (bad dates, weights, missing risk categories)."""
    kind = "precondition"


class MissingDataError(EngineError):
    """A selected fund has no usable price history for the requested range."""
    kind = "missing_data"


class InsufficientDataError(EngineError):
    """Not enough history to derive a figure the run depends on."""
    kind = "insufficient"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class Insufficient:
    reason: str = "not enough history"
    ok = False


@dataclass(frozen=True)
class Failed:
    reason: str
    kind: Literal["precondition", "missing_data", "error"] = "error"
    ok = False


Outcome = Union[Ok[T], Insufficient, Failed]


def returns_outcome(fn):
    """Wrap a function that raises EngineError so it returns an Outcome instead."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> Outcome[Any]:
        try:
            return Ok(fn(*args, **kwargs))
        except InsufficientDataError as e:
            logger.info("%s: insufficient data: %s", fn.__name__, e)
            return Insufficient(str(e))
        except EngineError as e:
            logger.warning("%s failed (%s): %s", fn.__name__, e.kind, e)
            return Failed(str(e), e.kind)

    return wrapper
