"""Explicit success/failure values for recoverable solver failures."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class FailureKind(Enum):
    """Failures the solver recovers from locally."""
    NOT_POSITIVE_DEFINITE = auto()  # KKT matrix rejected by the factorization
    EVALUATION_FAILED = auto()      # cost/dynamics undefined at a trial point


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying its kind and a short reason."""

    kind: FailureKind
    reason: str = ""


Result = Union[Ok[T], Err]
