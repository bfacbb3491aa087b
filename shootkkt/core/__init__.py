"""Core abstractions for shooting problems."""

from shootkkt.core.action import ActionData, ActionModel, ActionModelAbstract
from shootkkt.core.config import KKTConfig
from shootkkt.core.problem import ShootingProblem
from shootkkt.core.result import Err, FailureKind, Ok, Result
from shootkkt.core.state import State, StateSO2, StateVector

__all__ = [
    "ActionData",
    "ActionModel",
    "ActionModelAbstract",
    "KKTConfig",
    "ShootingProblem",
    "Err",
    "FailureKind",
    "Ok",
    "Result",
    "State",
    "StateSO2",
    "StateVector",
]
