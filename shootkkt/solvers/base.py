"""Base solver interface and the read-only view handed to callbacks."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.problem import ShootingProblem
from shootkkt.core.result import Result


@dataclass(frozen=True)
class SolverSnapshot:
    """Solver state after one iteration; arrays are read-only copies."""

    iter: int
    cost: float
    stop: float
    xreg: Optional[float]
    ureg: Optional[float]
    steplength: float
    d: tuple[float, float]   # (linear, quadratic) expected improvement
    is_feasible: bool
    xs: tuple[NDArray, ...]
    us: tuple[NDArray, ...]
    dxs: tuple[NDArray, ...]
    dus: tuple[NDArray, ...]
    lambdas: tuple[NDArray, ...]


Callback = Callable[[SolverSnapshot], None]


def _frozen(arrays: Sequence[NDArray]) -> tuple[NDArray, ...]:
    out = []
    for a in arrays:
        a = a.copy()
        a.flags.writeable = False
        out.append(a)
    return tuple(out)


class SolverAbstract(ABC):
    """Owns the candidate trajectory and the callback list of a shooting solver."""

    def __init__(self, problem: ShootingProblem):
        self.problem = problem
        T = problem.T
        models = problem.models

        self.xs: list[NDArray] = [m.state.zero() for m in models]
        self.xs[0][:] = problem.x0
        self.us: list[NDArray] = [np.zeros(m.nu) for m in problem.running_models]
        self.is_feasible = False

        # Search direction and multipliers, in tangent coordinates
        self.dxs: list[NDArray] = [np.zeros(m.state.ndx) for m in models]
        self.dus: list[NDArray] = [np.zeros(m.nu) for m in problem.running_models]
        self.lambdas: list[NDArray] = [np.zeros(m.state.ndx) for m in models]

        self.cost = 0.0
        self.stop = 0.0
        self.xreg: Optional[float] = None
        self.ureg: Optional[float] = None
        self.iter = 0
        self.steplength = 1.0
        self.d = np.zeros(2)
        self.callbacks: list[Callback] = []

        assert len(self.xs) == len(self.lambdas) == T + 1 and len(self.us) == T

    def set_candidate(
        self,
        xs: Optional[Sequence[NDArray]] = None,
        us: Optional[Sequence[NDArray]] = None,
        is_feasible: bool = False,
    ) -> None:
        """
        Copy a warm start into the solver's trajectory buffers.

        Missing states default to each node's neutral point with the first one
        at x0; missing controls default to zero.

        Args:
            xs: T+1 states, or None
            us: T controls, or None
            is_feasible: Whether xs satisfies the dynamics and x0 exactly
        """
        problem = self.problem
        models = problem.models
        if xs is None:
            for m, x in zip(models, self.xs):
                x[:] = m.state.zero()
            self.xs[0][:] = problem.x0
        else:
            if len(xs) != problem.T + 1:
                raise ValueError(f"Expected {problem.T + 1} states, got {len(xs)}")
            for t, (x, x_new) in enumerate(zip(self.xs, xs)):
                if np.shape(x_new) != x.shape:
                    raise ValueError(
                        f"State {t}: expected shape {x.shape}, got {np.shape(x_new)}"
                    )
                np.copyto(x, x_new)
        if us is None:
            for u in self.us:
                u[:] = 0.0
        else:
            if len(us) != problem.T:
                raise ValueError(f"Expected {problem.T} controls, got {len(us)}")
            for t, (u, u_new) in enumerate(zip(self.us, us)):
                if np.shape(u_new) != u.shape:
                    raise ValueError(
                        f"Control {t}: expected shape {u.shape}, got {np.shape(u_new)}"
                    )
                np.copyto(u, u_new)
        self.is_feasible = is_feasible

    def snapshot(self) -> SolverSnapshot:
        """Read-only view of the current solver state."""
        return SolverSnapshot(
            iter=self.iter,
            cost=float(self.cost),
            stop=float(self.stop),
            xreg=self.xreg,
            ureg=self.ureg,
            steplength=float(self.steplength),
            d=(float(self.d[0]), float(self.d[1])),
            is_feasible=self.is_feasible,
            xs=_frozen(self.xs),
            us=_frozen(self.us),
            dxs=_frozen(self.dxs),
            dus=_frozen(self.dus),
            lambdas=_frozen(self.lambdas),
        )

    def notify(self) -> None:
        """Invoke every registered callback once."""
        if not self.callbacks:
            return
        view = self.snapshot()
        for callback in self.callbacks:
            callback(view)

    @abstractmethod
    def solve(
        self,
        init_xs: Optional[Sequence[NDArray]] = None,
        init_us: Optional[Sequence[NDArray]] = None,
        maxiter: int = 100,
        is_feasible: bool = False,
        reginit: Optional[float] = None,
    ) -> bool:
        """
        Run the solver from a warm start.

        Returns:
            True when the convergence test passes within maxiter iterations
        """
        ...

    @abstractmethod
    def compute_direction(self, recalc: bool = True) -> Result[None]:
        """Compute the search direction, optionally re-deriving the problem."""
        ...

    @abstractmethod
    def try_step(self, steplength: float) -> Result[float]:
        """Evaluate a trial point; Ok carries the actual cost decrease."""
        ...

    @abstractmethod
    def stopping_criteria(self) -> float:
        """Scalar optimality residual."""
        ...

    @abstractmethod
    def expected_improvement(self) -> NDArray:
        """Predicted (linear, quadratic) cost decrease along the direction."""
        ...
