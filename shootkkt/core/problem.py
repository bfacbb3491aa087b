"""Multiple-shooting problem: a fixed horizon of stage models."""

from typing import Sequence
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.action import ActionData, ActionModel


class ShootingProblem:
    """
    Owns the stage sequence, the per-stage data and the reference initial state.

    The solver reads ``running_datas`` and ``terminal_data`` after each
    ``calc_diff`` call; they are overwritten on the next evaluation.
    """

    def __init__(
        self,
        x0: NDArray,
        running_models: Sequence[ActionModel],
        terminal_model: ActionModel,
    ):
        """
        Initialize shooting problem.

        Args:
            x0: Reference initial state, shape (nx_0,)
            running_models: T stage models
            terminal_model: Model of the final node (no control, no dynamics)
        """
        if len(running_models) == 0:
            raise ValueError("A shooting problem needs at least one running model")
        self.running_models = list(running_models)
        self.terminal_model = terminal_model
        self._check_chain()

        self.x0 = np.array(x0, dtype=float)
        if self.x0.shape != (self.running_models[0].state.nx,):
            raise ValueError(
                f"Expected x0 of shape ({self.running_models[0].state.nx},), "
                f"got {self.x0.shape}"
            )

        self.running_datas: list[ActionData] = [
            m.create_data() for m in self.running_models
        ]
        self.terminal_data: ActionData = terminal_model.create_data()

    @property
    def T(self) -> int:
        """Number of running stages."""
        return len(self.running_models)

    @property
    def models(self) -> list[ActionModel]:
        """All T+1 node models, terminal last."""
        return self.running_models + [self.terminal_model]

    def calc(self, xs: Sequence[NDArray], us: Sequence[NDArray]) -> float:
        """
        Total cost of a trajectory, without derivatives.

        Args:
            xs: T+1 states
            us: T controls

        Returns:
            Sum of running and terminal costs
        """
        self._check_lengths(xs, us)
        cost = 0.0
        for m, d, x, u in zip(self.running_models, self.running_datas, xs, us):
            m.calc(d, x, u)
            cost += d.cost
        self.terminal_model.calc(self.terminal_data, xs[-1])
        return cost + self.terminal_data.cost

    def calc_diff(self, xs: Sequence[NDArray], us: Sequence[NDArray]) -> float:
        """Total cost of a trajectory, populating every stage's derivatives."""
        self._check_lengths(xs, us)
        cost = 0.0
        for m, d, x, u in zip(self.running_models, self.running_datas, xs, us):
            m.calc(d, x, u)
            m.calc_diff(d, x, u)
            cost += d.cost
        self.terminal_model.calc(self.terminal_data, xs[-1])
        self.terminal_model.calc_diff(self.terminal_data, xs[-1])
        return cost + self.terminal_data.cost

    def rollout(self, us: Sequence[NDArray]) -> list[NDArray]:
        """Simulate the dynamics from x0 under the given controls."""
        if len(us) != self.T:
            raise ValueError(f"Expected {self.T} controls, got {len(us)}")
        xs = [self.x0.copy()]
        for m, d, u in zip(self.running_models, self.running_datas, us):
            m.calc(d, xs[-1], u)
            xs.append(d.xnext.copy())
        return xs

    def _check_lengths(self, xs: Sequence[NDArray], us: Sequence[NDArray]) -> None:
        if len(xs) != self.T + 1:
            raise ValueError(f"Expected {self.T + 1} states, got {len(xs)}")
        if len(us) != self.T:
            raise ValueError(f"Expected {self.T} controls, got {len(us)}")

    def _check_chain(self) -> None:
        models = self.models
        for t in range(self.T):
            produced = models[t].state_next
            expected = models[t + 1].state
            if produced.nx != expected.nx or produced.ndx != expected.ndx:
                raise ValueError(
                    f"Stage {t} produces a state of size (nx={produced.nx}, "
                    f"ndx={produced.ndx}) but node {t + 1} expects "
                    f"(nx={expected.nx}, ndx={expected.ndx})"
                )
