"""Linear algebra backend abstractions."""

from shootkkt.algebra.protocols import LinearAlgebraBackend
from shootkkt.algebra.dense import DenseBackend, LDLFactorization

__all__ = [
    "LinearAlgebraBackend",
    "DenseBackend",
    "LDLFactorization",
]
