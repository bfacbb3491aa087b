"""Linear-quadratic stage model."""

from typing import Optional
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.action import ActionData, ActionModelAbstract
from shootkkt.core.state import StateVector


class ActionModelLQR(ActionModelAbstract):
    """
    Linear dynamics with quadratic cost.

        xnext = Fx x + Fu u + f0
        cost  = ½ xᵀLxx x + ½ uᵀLuu u + xᵀLxu u + lxᵀx + luᵀu

    Fx may be rectangular, in which case the next state lives in a space of a
    different size (e.g. a change of contact mode).
    """

    def __init__(
        self,
        Fx: NDArray,
        Fu: NDArray,
        Lxx: NDArray,
        Luu: NDArray,
        Lxu: Optional[NDArray] = None,
        f0: Optional[NDArray] = None,
        lx: Optional[NDArray] = None,
        lu: Optional[NDArray] = None,
    ):
        Fx = np.atleast_2d(np.asarray(Fx, dtype=float))
        Fu = np.atleast_2d(np.asarray(Fu, dtype=float))
        nx_next, nx = Fx.shape
        nu = Fu.shape[1]
        if Fu.shape[0] != nx_next:
            raise ValueError(f"Fu must have {nx_next} rows, got {Fu.shape[0]}")
        super().__init__(StateVector(nx), nu, StateVector(nx_next))

        self.Fx = Fx
        self.Fu = Fu
        self.f0 = np.zeros(nx_next) if f0 is None else np.asarray(f0, dtype=float)
        self.Lxx = np.atleast_2d(np.asarray(Lxx, dtype=float))
        self.Luu = np.atleast_2d(np.asarray(Luu, dtype=float))
        self.Lxu = np.zeros((nx, nu)) if Lxu is None else np.asarray(Lxu, dtype=float)
        self.lx = np.zeros(nx) if lx is None else np.asarray(lx, dtype=float)
        self.lu = np.zeros(nu) if lu is None else np.asarray(lu, dtype=float)

        if self.Lxx.shape != (nx, nx) or self.Luu.shape != (nu, nu):
            raise ValueError(
                f"Expected Lxx ({nx}, {nx}) and Luu ({nu}, {nu}), "
                f"got {self.Lxx.shape} and {self.Luu.shape}"
            )
        if self.Lxu.shape != (nx, nu):
            raise ValueError(f"Expected Lxu ({nx}, {nu}), got {self.Lxu.shape}")

    @classmethod
    def random(
        cls, nx: int, nu: int, rng: Optional[np.random.Generator] = None
    ) -> "ActionModelLQR":
        """Random instance with a positive definite cost Hessian."""
        rng = np.random.default_rng() if rng is None else rng
        M = rng.standard_normal((nx + nu, nx + nu))
        H = M @ M.T + (nx + nu) * np.eye(nx + nu)
        return cls(
            Fx=np.eye(nx) + 0.1 * rng.standard_normal((nx, nx)),
            Fu=rng.standard_normal((nx, nu)),
            Lxx=H[:nx, :nx],
            Luu=H[nx:, nx:],
            Lxu=H[:nx, nx:],
            f0=0.1 * rng.standard_normal(nx),
            lx=rng.standard_normal(nx),
            lu=rng.standard_normal(nu),
        )

    def calc(self, data: ActionData, x: NDArray, u: Optional[NDArray] = None) -> None:
        self._check_sizes(x, u)
        data.cost = float(0.5 * x @ self.Lxx @ x + self.lx @ x)
        if u is None:
            return
        data.xnext[:] = self.Fx @ x + self.Fu @ u + self.f0
        data.cost += float(0.5 * u @ self.Luu @ u + x @ self.Lxu @ u + self.lu @ u)

    def calc_diff(
        self, data: ActionData, x: NDArray, u: Optional[NDArray] = None
    ) -> None:
        self._check_sizes(x, u)
        data.Lxx[:] = self.Lxx
        if u is None:
            data.Lx[:] = self.Lxx @ x + self.lx
            return
        data.Lx[:] = self.Lxx @ x + self.Lxu @ u + self.lx
        data.Lu[:] = self.Luu @ u + self.Lxu.T @ x + self.lu
        data.Luu[:] = self.Luu
        data.Lxu[:] = self.Lxu
        data.Fx[:] = self.Fx
        data.Fu[:] = self.Fu
