"""Iteration observers for the shooting solvers."""

import logging
from typing import Optional

from shootkkt.solvers.base import SolverSnapshot

logger = logging.getLogger(__name__)


class CallbackVerbose:
    """Logs one line per iteration, with a header every ``header_every`` lines."""

    HEADER = (
        "iter     cost         stop         grad         xreg         ureg"
        "       step    feas"
    )

    def __init__(
        self,
        level: int = logging.INFO,
        header_every: int = 10,
        log: Optional[logging.Logger] = None,
    ):
        self.level = level
        self.header_every = header_every
        self.log = logger if log is None else log

    def __call__(self, snapshot: SolverSnapshot) -> None:
        if snapshot.iter % self.header_every == 0:
            self.log.log(self.level, self.HEADER)
        self.log.log(
            self.level,
            "%4d  %.5e  %.5e  %.5e  %.5e  %.5e  %.4f  %d",
            snapshot.iter,
            snapshot.cost,
            snapshot.stop,
            snapshot.d[0],
            _or_zero(snapshot.xreg),
            _or_zero(snapshot.ureg),
            snapshot.steplength,
            snapshot.is_feasible,
        )


class CallbackLogger:
    """Records the iteration history of a solve."""

    def __init__(self):
        self.xs = []
        self.us = []
        self.costs: list[float] = []
        self.stops: list[float] = []
        self.grads: list[float] = []
        self.steps: list[float] = []
        self.xregs: list[float] = []
        self.uregs: list[float] = []

    def __call__(self, snapshot: SolverSnapshot) -> None:
        self.xs = snapshot.xs
        self.us = snapshot.us
        self.costs.append(snapshot.cost)
        self.stops.append(snapshot.stop)
        self.grads.append(snapshot.d[0])
        self.steps.append(snapshot.steplength)
        self.xregs.append(_or_zero(snapshot.xreg))
        self.uregs.append(_or_zero(snapshot.ureg))

    def __len__(self) -> int:
        return len(self.costs)


def _or_zero(reg: Optional[float]) -> float:
    return 0.0 if reg is None else float(reg)
