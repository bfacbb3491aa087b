"""Shooting solvers."""

from shootkkt.solvers.base import SolverAbstract, SolverSnapshot
from shootkkt.solvers.kkt import SolverKKT

__all__ = [
    "SolverAbstract",
    "SolverSnapshot",
    "SolverKKT",
]
