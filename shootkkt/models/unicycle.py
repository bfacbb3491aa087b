"""Unicycle kinematics driven to the origin."""

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.action import ActionData, ActionModelAbstract
from shootkkt.core.state import StateVector


class ActionModelUnicycle(ActionModelAbstract):
    """
    Discrete unicycle: state (x, y, θ), control (v, ω).

    The cost ½ w₀² ‖state‖² + ½ w₁² ‖control‖² regulates to the origin;
    Hessians are Gauss-Newton (no dynamics curvature).
    """

    def __init__(self, dt: float = 0.1, weights: tuple[float, float] = (10.0, 1.0)):
        super().__init__(StateVector(3), 2)
        self.dt = dt
        self.weights = np.asarray(weights, dtype=float)

    def calc(self, data: ActionData, x: NDArray, u: Optional[NDArray] = None) -> None:
        self._check_sizes(x, u)
        wx, wu = self.weights ** 2
        data.cost = 0.5 * wx * float(x @ x)
        if u is None:
            return
        c, s = np.cos(x[2]), np.sin(x[2])
        data.xnext[:] = [
            x[0] + c * u[0] * self.dt,
            x[1] + s * u[0] * self.dt,
            x[2] + u[1] * self.dt,
        ]
        data.cost += 0.5 * wu * float(u @ u)

    def calc_diff(
        self, data: ActionData, x: NDArray, u: Optional[NDArray] = None
    ) -> None:
        self._check_sizes(x, u)
        wx, wu = self.weights ** 2
        data.Lx[:] = wx * x
        data.Lxx[:] = wx * np.eye(3)
        if u is None:
            return
        c, s = np.cos(x[2]), np.sin(x[2])
        dt = self.dt
        data.Lu[:] = wu * u
        data.Luu[:] = wu * np.eye(2)
        data.Fx[:] = [
            [1.0, 0.0, -s * u[0] * dt],
            [0.0, 1.0, c * u[0] * dt],
            [0.0, 0.0, 1.0],
        ]
        data.Fu[:] = [
            [c * dt, 0.0],
            [s * dt, 0.0],
            [0.0, dt],
        ]
