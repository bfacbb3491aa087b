"""Full-horizon KKT (Newton) solver for multiple-shooting problems."""

import logging
from typing import Optional, Sequence
import numpy as np
from numpy.typing import NDArray

from shootkkt.algebra.dense import DenseBackend
from shootkkt.algebra.protocols import LinearAlgebraBackend
from shootkkt.core.config import KKTConfig
from shootkkt.core.problem import ShootingProblem
from shootkkt.core.result import Err, FailureKind, Ok, Result
from shootkkt.solvers.base import SolverAbstract

logger = logging.getLogger(__name__)


def _is_set(reg: Optional[float]) -> bool:
    return reg is not None and not np.isnan(reg)


class SolverKKT(SolverAbstract):
    """
    Newton solver on the KKT system of the whole horizon.

    Unknowns are ordered [dx_0..dx_T, du_0..du_{T-1}, λ_0..λ_T]; the system

        [ H   Jᵀ ] [ Δ ]     [ ∇L ]
        [ J   0  ] [ λ ] = - [ gap ]

    is rebuilt from the problem derivatives, factored, and the resulting
    direction is line-searched with adaptive Levenberg-Marquardt damping on
    the diagonal of H.
    """

    def __init__(
        self,
        problem: ShootingProblem,
        config: Optional[KKTConfig] = None,
        backend: Optional[LinearAlgebraBackend] = None,
    ):
        """
        Initialize KKT solver.

        Args:
            problem: Shooting problem (horizon is fixed for the solver lifetime)
            config: Thresholds and regularization schedule
            backend: Factorization backend (dense LDLᵀ by default)
        """
        super().__init__(problem)
        self.config = KKTConfig() if config is None else config
        self.backend = DenseBackend() if backend is None else backend
        self.alphas = self.config.alphas

        self.cost_try = 0.0
        self.dV = 0.0
        self.dVexp = 0.0
        self.was_feasible = False
        # Problem data holds derivatives of the current candidate
        self._fresh = False

        self._allocate_data()

    # Configuration (read-only mirrors of self.config)

    @property
    def regfactor(self) -> float:
        return self.config.regfactor

    @property
    def regmin(self) -> float:
        return self.config.regmin

    @property
    def regmax(self) -> float:
        return self.config.regmax

    @property
    def th_grad(self) -> float:
        return self.config.th_grad

    @property
    def th_step(self) -> float:
        return self.config.th_step

    @property
    def th_stop(self) -> float:
        return self.config.th_stop

    @property
    def th_acceptstep(self) -> float:
        return self.config.th_acceptstep

    def _allocate_data(self) -> None:
        problem = self.problem
        models = problem.models
        T = problem.T

        ndxs = [m.state.ndx for m in models]
        nus = [m.nu for m in problem.running_models]
        self.nx = sum(m.state.nx for m in models)
        self.ndx = sum(ndxs)
        self.nu = sum(nus)

        # Offsets of each node inside the x-block and u-block
        self._ix = np.concatenate(([0], np.cumsum(ndxs))).astype(int)
        self._iu = np.concatenate(([0], np.cumsum(nus))).astype(int)

        ndx, nu = self.ndx, self.nu
        n = 2 * ndx + nu
        self.kkt = np.zeros((n, n))
        self.kktref = np.zeros(n)
        self.primaldual = np.zeros(n)
        self.primal = self.primaldual[: ndx + nu]
        self.dual = self.primaldual[ndx + nu:]
        self.kkt_primal = np.zeros(ndx + nu)
        self._dF = np.zeros(ndx + nu)

        self._xdiag = np.arange(ndx)
        self._udiag = np.arange(ndx, ndx + nu)
        self._cdiag = np.arange(ndx + nu, n)

        self.xs_try = [m.state.zero() for m in models]
        self.xs_try[0][:] = problem.x0
        self.us_try = [np.full(m.nu, np.nan) for m in problem.running_models]

        assert len(self.dxs) == len(self.lambdas) == T + 1 and len(self.dus) == T

    def set_candidate(
        self,
        xs: Optional[Sequence[NDArray]] = None,
        us: Optional[Sequence[NDArray]] = None,
        is_feasible: bool = False,
    ) -> None:
        super().set_candidate(xs, us, is_feasible)
        self._fresh = False

    # KKT assembly

    def calc(self) -> float:
        """
        Re-derive the problem at the current candidate and rebuild the KKT system.

        Returns:
            Total cost of the candidate
        """
        self.cost = self.problem.calc_diff(self.xs, self.us)
        self._fresh = True
        self.assemble()
        return self.cost

    def assemble(self) -> None:
        """Rebuild the KKT matrix and residual from the cached problem data."""
        problem = self.problem
        T = problem.T
        ndx, nu = self.ndx, self.nu
        ix, iu = self._ix, self._iu
        c0 = ndx + nu
        kkt, ref = self.kkt, self.kktref

        kkt.fill(0.0)
        ref.fill(0.0)

        # Each gap depends on its own node through the identity
        kkt[self._cdiag, self._xdiag] = 1.0

        # Gap at the first node is its deviation from the reference x0
        ref[c0: c0 + ix[1]] = problem.running_models[0].state.diff(
            problem.x0, self.xs[0]
        )

        for t, (m, d) in enumerate(zip(problem.running_models, problem.running_datas)):
            sx = slice(ix[t], ix[t + 1])
            su = slice(ndx + iu[t], ndx + iu[t + 1])
            rows = slice(c0 + ix[t + 1], c0 + ix[t + 2])

            kkt[sx, sx] = d.Lxx
            kkt[sx, su] = d.Lxu
            kkt[su, sx] = d.Lxu.T
            kkt[su, su] = d.Luu
            kkt[rows, sx] = -d.Fx
            kkt[rows, su] = -d.Fu

            ref[sx] = d.Lx
            ref[su] = d.Lu
            ref[rows] = m.state_next.diff(d.xnext, self.xs[t + 1])

        df = problem.terminal_data
        sf = slice(ix[T], ix[T + 1])
        kkt[sf, sf] = df.Lxx
        ref[sf] = df.Lx

        kkt[:c0, c0:] = kkt[c0:, :c0].T

        if _is_set(self.xreg):
            kkt[self._xdiag, self._xdiag] += self.xreg
        if _is_set(self.ureg):
            kkt[self._udiag, self._udiag] += self.ureg

    # Factorization, solve and direction extraction

    def compute_primal_dual(self) -> Result[None]:
        """Factor the KKT matrix and solve KKT·Δ = -kktref into primaldual."""
        factored = self.backend.factor(self.kkt, self.ndx)
        if isinstance(factored, Err):
            return factored
        np.negative(self.kktref, out=self.primaldual)
        self.backend.solve(factored.value, self.primaldual, out=self.primaldual)
        return Ok(None)

    def compute_direction(self, recalc: bool = True) -> Result[None]:
        """
        Compute per-node state/control increments and multipliers.

        Args:
            recalc: Re-derive the problem first; otherwise the KKT system is
                rebuilt from the derivatives already cached in the problem data

        Returns:
            Ok(None), or Err(NOT_POSITIVE_DEFINITE) when the factorization is
            rejected under the current regularization
        """
        if recalc:
            self.calc()
        else:
            self.assemble()

        outcome = self.compute_primal_dual()
        if isinstance(outcome, Err):
            return outcome

        ndx = self.ndx
        ix, iu = self._ix, self._iu
        p_x = self.primal[:ndx]
        p_u = self.primal[ndx:]
        for t, dx in enumerate(self.dxs):
            dx[:] = p_x[ix[t]: ix[t + 1]]
            self.lambdas[t][:] = self.dual[ix[t]: ix[t + 1]]
        for t, du in enumerate(self.dus):
            du[:] = p_u[iu[t]: iu[t + 1]]
        return outcome

    def expected_improvement(self) -> NDArray:
        """
        Predicted cost decrease along the primal direction.

        Returns:
            d[0] = -∇Lᵀp (first order), d[1] = -pᵀHp (second order), with H the
            regularized cost Hessian block
        """
        n = self.ndx + self.nu
        self.d[0] = -self.kktref[:n] @ self.primal
        np.dot(self.kkt[:n, :n], self.primal, out=self.kkt_primal)
        self.d[1] = -self.kkt_primal @ self.primal
        return self.d

    def stopping_criteria(self) -> float:
        """
        Squared norm of the Lagrangian gradient plus squared norm of the gaps.

        Stationarity of each node x_t is ∇L_x + λ_t - Fx_tᵀ λ_{t+1}, of each
        control ∇L_u - Fu_tᵀ λ_{t+1}; the terminal node has no successor and
        contributes ∇L_x + λ_T.
        """
        problem = self.problem
        T = problem.T
        ndx = self.ndx
        ix, iu = self._ix, self._iu
        dF = self._dF
        lambdas = self.lambdas

        for t, d in enumerate(problem.running_datas):
            dF[ix[t]: ix[t + 1]] = lambdas[t] - d.Fx.T @ lambdas[t + 1]
            dF[ndx + iu[t]: ndx + iu[t + 1]] = -d.Fu.T @ lambdas[t + 1]
        dF[ix[T]: ix[T + 1]] = lambdas[T]

        dF += self.kktref[: ndx + self.nu]
        gaps = self.kktref[ndx + self.nu:]
        self.stop = float(dF @ dF + gaps @ gaps)
        return self.stop

    # Line search and regularization

    def try_step(self, steplength: float) -> Result[float]:
        """
        Evaluate the cost at xs ⊕ α·dxs, us + α·dus.

        Returns:
            Ok(cost - cost_try), or Err(EVALUATION_FAILED) when the models raise
            an arithmetic error or return a non-finite cost at the trial point
        """
        problem = self.problem
        for m, x, dx, x_try in zip(problem.models, self.xs, self.dxs, self.xs_try):
            x_try[:] = m.state.integrate(x, steplength * dx)
        for u, du, u_try in zip(self.us, self.dus, self.us_try):
            np.multiply(du, steplength, out=u_try)
            u_try += u

        # The trial evaluation overwrites the stage data
        self._fresh = False
        try:
            with np.errstate(divide="raise", over="raise", invalid="raise"):
                self.cost_try = problem.calc(self.xs_try, self.us_try)
        except ArithmeticError as exc:
            return Err(FailureKind.EVALUATION_FAILED, str(exc) or type(exc).__name__)
        if not np.isfinite(self.cost_try):
            return Err(FailureKind.EVALUATION_FAILED, f"cost is {self.cost_try}")
        return Ok(self.cost - self.cost_try)

    def line_search(self) -> bool:
        """
        Backtrack over the step lengths and adopt the first acceptable trial.

        Returns:
            True if a step was accepted
        """
        for alpha in self.alphas:
            self.steplength = alpha
            outcome = self.try_step(alpha)
            if isinstance(outcome, Err):
                logger.debug("step %.3e rejected: %s", alpha, outcome.reason)
                continue
            self.dV = outcome.value
            self.dVexp = alpha * (self.d[0] + 0.5 * alpha * self.d[1])

            if (
                self.d[0] < self.th_grad
                or not self.is_feasible
                or self.dV > self.th_acceptstep * self.dVexp
            ):
                self.was_feasible = self.is_feasible
                self.set_candidate(self.xs_try, self.us_try, True)
                self.cost = self.cost_try
                return True
        return False

    def increase_regularization(self) -> None:
        reg = self.regmin if not _is_set(self.xreg) else self.xreg
        self.xreg = min(reg * self.regfactor, self.regmax)
        self.ureg = self.xreg
        logger.debug("regularization increased to %.3e", self.xreg)

    def decrease_regularization(self) -> None:
        reg = self.regmin if not _is_set(self.xreg) else self.xreg
        self.xreg = max(reg / self.regfactor, self.regmin)
        self.ureg = self.xreg
        logger.debug("regularization decreased to %.3e", self.xreg)

    # Solve loop

    def solve(
        self,
        init_xs: Optional[Sequence[NDArray]] = None,
        init_us: Optional[Sequence[NDArray]] = None,
        maxiter: int = 100,
        is_feasible: bool = False,
        reginit: Optional[float] = None,
    ) -> bool:
        """
        Iterate Newton steps until the KKT residual vanishes.

        Args:
            init_xs: Warm-start states (T+1), default neutral points with x0 first
            init_us: Warm-start controls (T), default zeros
            maxiter: Iteration cap
            is_feasible: Whether init_xs satisfies the dynamics exactly
            reginit: Initial regularization, default regmin; clamped into
                [regmin, regmax]

        Returns:
            True on convergence. False when the iteration cap is reached or
            regularization saturates at regmax.
        """
        if maxiter < 1:
            raise ValueError(f"maxiter must be positive, got {maxiter}")
        self.set_candidate(init_xs, init_us, is_feasible)
        self.was_feasible = False
        if reginit is None or np.isnan(reginit):
            self.xreg = self.regmin
        else:
            self.xreg = min(max(float(reginit), self.regmin), self.regmax)
        self.ureg = self.xreg

        for self.iter in range(maxiter):
            recalc = not self._fresh
            while True:
                outcome = self.compute_direction(recalc)
                if isinstance(outcome, Ok):
                    break
                logger.debug("factorization rejected: %s", outcome.reason)
                recalc = False
                if self.xreg == self.regmax:
                    logger.info(
                        "iter %d: KKT matrix not factorable at maximum "
                        "regularization", self.iter,
                    )
                    return False
                self.increase_regularization()

            self.expected_improvement()
            accepted = self.line_search()

            if self.steplength > self.th_step:
                self.decrease_regularization()
            if self.steplength == self.alphas[-1]:
                self.increase_regularization()
                if self.xreg == self.regmax:
                    logger.info(
                        "iter %d: line search stalled at maximum regularization",
                        self.iter,
                    )
                    return False

            if accepted:
                self.calc()
            self.stopping_criteria()
            self.notify()

            if self.was_feasible and self.stop < self.th_stop:
                logger.info(
                    "converged in %d iterations (cost %.6e, stop %.3e)",
                    self.iter + 1, self.cost, self.stop,
                )
                return True

        logger.info("no convergence after %d iterations (stop %.3e)", maxiter, self.stop)
        return False
