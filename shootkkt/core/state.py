"""State spaces: points and tangent increments.

States may live on non-Euclidean spaces. Every place the solver compares or
moves states goes through ``diff`` and ``integrate`` instead of plain
subtraction and addition.
"""

from typing import Optional, Protocol
import numpy as np
from numpy.typing import NDArray


class State(Protocol):
    """Manifold operators of a state space."""

    @property
    def nx(self) -> int:
        """Size of the point representation."""
        ...

    @property
    def ndx(self) -> int:
        """Size of the tangent space."""
        ...

    def zero(self) -> NDArray:
        """Neutral point of the space."""
        ...

    def rand(self, rng: Optional[np.random.Generator] = None) -> NDArray:
        """Random point of the space."""
        ...

    def diff(self, x0: NDArray, x1: NDArray) -> NDArray:
        """Tangent vector taking x0 to x1, i.e. x1 ⊖ x0, shape (ndx,)."""
        ...

    def integrate(self, x: NDArray, dx: NDArray) -> NDArray:
        """Point reached from x along dx, i.e. x ⊕ dx, shape (nx,)."""
        ...


class StateVector:
    """Euclidean state space R^nx."""

    def __init__(self, nx: int):
        if nx < 1:
            raise ValueError(f"State dimension must be positive, got {nx}")
        self._nx = nx

    @property
    def nx(self) -> int:
        return self._nx

    @property
    def ndx(self) -> int:
        return self._nx

    def zero(self) -> NDArray:
        return np.zeros(self._nx)

    def rand(self, rng: Optional[np.random.Generator] = None) -> NDArray:
        rng = np.random.default_rng() if rng is None else rng
        return rng.standard_normal(self._nx)

    def diff(self, x0: NDArray, x1: NDArray) -> NDArray:
        return np.asarray(x1, dtype=float) - np.asarray(x0, dtype=float)

    def integrate(self, x: NDArray, dx: NDArray) -> NDArray:
        return np.asarray(x, dtype=float) + np.asarray(dx, dtype=float)

    def __repr__(self) -> str:
        return f"StateVector(nx={self._nx})"


class StateSO2:
    """
    Planar orientations SO(2).

    A point is the unit vector (cos θ, sin θ), so nx = 2 while the tangent
    space is the scalar angular increment (ndx = 1).
    """

    nx = 2
    ndx = 1

    def zero(self) -> NDArray:
        return np.array([1.0, 0.0])

    def rand(self, rng: Optional[np.random.Generator] = None) -> NDArray:
        rng = np.random.default_rng() if rng is None else rng
        return self.from_angle(rng.uniform(-np.pi, np.pi))

    @staticmethod
    def from_angle(theta: float) -> NDArray:
        return np.array([np.cos(theta), np.sin(theta)])

    @staticmethod
    def angle(x: NDArray) -> float:
        return float(np.arctan2(x[1], x[0]))

    def diff(self, x0: NDArray, x1: NDArray) -> NDArray:
        # Relative rotation x0^{-1} x1, wrapped to (-π, π]
        c = x0[0] * x1[0] + x0[1] * x1[1]
        s = x0[0] * x1[1] - x0[1] * x1[0]
        return np.array([np.arctan2(s, c)])

    def integrate(self, x: NDArray, dx: NDArray) -> NDArray:
        c, s = np.cos(dx[0]), np.sin(dx[0])
        return np.array([c * x[0] - s * x[1], s * x[0] + c * x[1]])

    def __repr__(self) -> str:
        return "StateSO2()"
