"""Concrete stage models."""

from shootkkt.models.lqr import ActionModelLQR
from shootkkt.models.unicycle import ActionModelUnicycle
from shootkkt.models.rotor import ActionModelRotor

__all__ = [
    "ActionModelLQR",
    "ActionModelUnicycle",
    "ActionModelRotor",
]
