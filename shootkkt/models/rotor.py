"""Planar rotor whose orientation lives on SO(2)."""

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.action import ActionData, ActionModelAbstract
from shootkkt.core.state import StateSO2


class ActionModelRotor(ActionModelAbstract):
    """
    Orientation driven by an angular rate: xnext = x ⊕ dt·u.

    Cost ½ w₀ (x ⊖ target)² + ½ w₁ u², where the error is the wrapped angle
    between x and the target orientation.
    """

    def __init__(
        self,
        dt: float = 0.1,
        target: float = 0.0,
        weights: tuple[float, float] = (1.0, 0.1),
    ):
        super().__init__(StateSO2(), 1)
        self.dt = dt
        self.target = StateSO2.from_angle(target)
        self.weights = np.asarray(weights, dtype=float)

    def calc(self, data: ActionData, x: NDArray, u: Optional[NDArray] = None) -> None:
        self._check_sizes(x, u)
        err = self.state.diff(self.target, x)
        data.cost = 0.5 * self.weights[0] * float(err @ err)
        if u is None:
            return
        data.xnext[:] = self.state.integrate(x, self.dt * u)
        data.cost += 0.5 * self.weights[1] * float(u @ u)

    def calc_diff(
        self, data: ActionData, x: NDArray, u: Optional[NDArray] = None
    ) -> None:
        self._check_sizes(x, u)
        # Error and dynamics are both translations in the tangent space
        err = self.state.diff(self.target, x)
        data.Lx[:] = self.weights[0] * err
        data.Lxx[:] = self.weights[0]
        if u is None:
            return
        data.Lu[:] = self.weights[1] * u
        data.Luu[:] = self.weights[1]
        data.Fx[:] = 1.0
        data.Fu[:] = self.dt
