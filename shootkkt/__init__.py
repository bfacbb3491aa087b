"""
Shootkkt: Newton-KKT solver for multiple-shooting optimal control.

This library provides:
- Stage models with manifold-aware states (Euclidean, SO(2))
- A shooting problem container with batched cost/derivative evaluation
- A full-horizon KKT solver with LDLᵀ factorization, backtracking line
  search and adaptive regularization
- Iteration callbacks for logging and history recording
"""

__version__ = "0.1.0"

from shootkkt.core.config import KKTConfig
from shootkkt.core.problem import ShootingProblem
from shootkkt.core.state import StateVector, StateSO2
from shootkkt.solvers.kkt import SolverKKT
from shootkkt.callbacks import CallbackLogger, CallbackVerbose

__all__ = [
    "KKTConfig",
    "ShootingProblem",
    "StateVector",
    "StateSO2",
    "SolverKKT",
    "CallbackLogger",
    "CallbackVerbose",
]
