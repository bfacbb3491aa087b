"""Stage model interface and per-stage derivative data."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol
import numpy as np
from numpy.typing import NDArray

from shootkkt.core.state import State


@dataclass
class ActionData:
    """Cost and dynamics evaluated at one node, with their derivatives."""

    cost: float
    xnext: NDArray   # (nx_next,) propagated next state
    Lx: NDArray      # (ndx,)
    Lu: NDArray      # (nu,)
    Lxx: NDArray     # (ndx, ndx)
    Luu: NDArray     # (nu, nu)
    Lxu: NDArray     # (ndx, nu)
    Fx: NDArray      # (ndx_next, ndx)
    Fu: NDArray      # (ndx_next, nu)


class ActionModel(Protocol):
    """What the solver needs from a stage: dimensions, derivatives, manifold ops."""

    @property
    def state(self) -> State:
        """State space of the node."""
        ...

    @property
    def state_next(self) -> State:
        """State space of the propagated next state."""
        ...

    @property
    def nu(self) -> int:
        """Control dimension."""
        ...

    def create_data(self) -> ActionData:
        """Allocate a data container sized for this model."""
        ...

    def calc(self, data: ActionData, x: NDArray, u: Optional[NDArray] = None) -> None:
        """
        Evaluate cost and next state into data.

        With u=None the node is evaluated as a terminal node: state cost only,
        dynamics fields are left untouched.
        """
        ...

    def calc_diff(
        self, data: ActionData, x: NDArray, u: Optional[NDArray] = None
    ) -> None:
        """Evaluate cost gradient/Hessian and dynamics Jacobians into data."""
        ...


class ActionModelAbstract(ABC):
    """Shared allocation logic for concrete stage models."""

    def __init__(self, state: State, nu: int, state_next: Optional[State] = None):
        self._state = state
        self._state_next = state if state_next is None else state_next
        self._nu = nu

    @property
    def state(self) -> State:
        return self._state

    @property
    def state_next(self) -> State:
        return self._state_next

    @property
    def nu(self) -> int:
        return self._nu

    def create_data(self) -> ActionData:
        ndx, ndx_next, nu = self._state.ndx, self._state_next.ndx, self._nu
        return ActionData(
            cost=float("nan"),
            xnext=self._state_next.zero(),
            Lx=np.zeros(ndx),
            Lu=np.zeros(nu),
            Lxx=np.zeros((ndx, ndx)),
            Luu=np.zeros((nu, nu)),
            Lxu=np.zeros((ndx, nu)),
            Fx=np.zeros((ndx_next, ndx)),
            Fu=np.zeros((ndx_next, nu)),
        )

    @abstractmethod
    def calc(self, data: ActionData, x: NDArray, u: Optional[NDArray] = None) -> None:
        ...

    @abstractmethod
    def calc_diff(
        self, data: ActionData, x: NDArray, u: Optional[NDArray] = None
    ) -> None:
        ...

    def _check_sizes(self, x: NDArray, u: Optional[NDArray]) -> None:
        if x.shape != (self._state.nx,):
            raise ValueError(
                f"Expected state of shape ({self._state.nx},), got {x.shape}"
            )
        if u is not None and u.shape != (self._nu,):
            raise ValueError(f"Expected control of shape ({self._nu},), got {u.shape}")
