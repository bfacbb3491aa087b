"""Tests for the KKT solve loop, line search and regularization control."""

import logging

import numpy as np
import pytest

from shootkkt.callbacks import CallbackLogger
from shootkkt.core.action import ActionModelAbstract
from shootkkt.core.config import KKTConfig
from shootkkt.core.problem import ShootingProblem
from shootkkt.core.result import Err, FailureKind, Ok
from shootkkt.core.state import StateSO2, StateVector
from shootkkt.models import ActionModelLQR, ActionModelRotor, ActionModelUnicycle
from shootkkt.solvers.kkt import SolverKKT


def _scalar_problem(T=2, x0=0.0):
    """x' = x + u with cost x² + u² at every node."""
    model = ActionModelLQR(Fx=[[1.0]], Fu=[[1.0]], Lxx=[[2.0]], Luu=[[2.0]])
    return ShootingProblem(np.array([x0]), [model] * T, model)


def _analytic_lq_solution(problem):
    """Solve the equality-constrained QP directly."""
    solver = SolverKKT(problem)
    solver.calc()
    n = solver.ndx + solver.nu
    sol = np.linalg.solve(solver.kkt, -solver.kktref)
    xs = np.concatenate(solver.xs) + sol[: solver.ndx]
    us = np.concatenate(solver.us) + sol[solver.ndx: n]
    return xs, us


def test_single_stage_lq_converges_in_one_iteration():
    rng = np.random.default_rng(0)
    running, terminal = ActionModelLQR.random(3, 2, rng), ActionModelLQR.random(3, 2, rng)
    problem = ShootingProblem(rng.standard_normal(3), [running], terminal)

    us = [rng.standard_normal(2)]
    xs = problem.rollout(us)
    x_opt, u_opt = _analytic_lq_solution(problem)

    solver = SolverKKT(problem)
    logger = CallbackLogger()
    solver.callbacks.append(logger)
    assert solver.solve(xs, us, maxiter=10, is_feasible=True)

    assert solver.iter == 0
    assert len(logger) == 1
    assert solver.stop < solver.th_stop
    assert np.allclose(np.concatenate(solver.xs), x_opt, atol=1e-6)
    assert np.allclose(np.concatenate(solver.us), u_opt, atol=1e-6)


def test_scalar_two_stage_from_infeasible_guess():
    problem = _scalar_problem(T=2, x0=0.0)
    solver = SolverKKT(problem)

    xs = [np.array([1.0]), np.array([2.0]), np.array([-1.5])]
    us = [np.array([0.7]), np.array([-0.3])]
    assert solver.solve(xs, us, maxiter=10, is_feasible=False)

    assert solver.iter < 5
    assert np.allclose(np.concatenate(solver.xs), 0.0, atol=1e-6)
    assert np.allclose(np.concatenate(solver.us), 0.0, atol=1e-6)
    assert solver.stop < solver.th_stop
    assert solver.xreg == solver.regmin
    assert solver.ureg == solver.regmin
    assert solver.is_feasible and solver.was_feasible


def test_infeasible_start_needs_a_second_iteration():
    """Convergence requires the previously accepted iterate to be feasible."""
    problem = _scalar_problem(T=2, x0=0.0)
    solver = SolverKKT(problem)
    xs = [np.array([1.0])] * 3
    us = [np.array([1.0])] * 2

    assert not solver.solve(xs, us, maxiter=1)
    assert solver.stop < solver.th_stop
    assert not solver.was_feasible


def test_unicycle_converges():
    model = ActionModelUnicycle()
    problem = ShootingProblem(np.array([-1.0, -1.0, 1.0]), [model] * 20, model)
    solver = SolverKKT(problem)

    us = [np.zeros(2)] * 20
    assert solver.solve(problem.rollout(us), us, maxiter=200, is_feasible=True)
    assert solver.stop < solver.th_stop
    assert np.linalg.norm(solver.xs[-1]) < np.linalg.norm(problem.x0)
    # Dynamics hold at the solution
    for t in range(problem.T):
        model.calc(problem.running_datas[t], solver.xs[t], solver.us[t])
        assert np.allclose(problem.running_datas[t].xnext, solver.xs[t + 1], atol=1e-4)


def test_rotor_on_so2_converges():
    model = ActionModelRotor(dt=0.1, target=0.0)
    x0 = StateSO2.from_angle(2.5)
    problem = ShootingProblem(x0, [model] * 10, model)
    solver = SolverKKT(problem)

    assert solver.solve(maxiter=20)
    assert solver.stop < solver.th_stop
    for x in solver.xs:
        assert np.isclose(np.linalg.norm(x), 1.0)
    # Heading moves monotonically toward the target
    angles = [StateSO2.angle(x) for x in solver.xs]
    assert np.all(np.diff(angles) < 0.0)
    assert angles[-1] < angles[0]


def test_default_warm_start():
    solver = SolverKKT(_scalar_problem(T=3, x0=2.0))
    assert solver.solve(maxiter=10)
    assert np.allclose(solver.xs[0], [2.0])


def test_all_rejecting_oracle_fails_at_max_regularization(monkeypatch):
    """Every trial evaluation fails: regularization escalates until regmax."""
    problem = _scalar_problem(T=2, x0=0.0)
    config = KKTConfig(regmin=0.125, regmax=1.0, regfactor=2.0)
    solver = SolverKKT(problem, config=config)

    def failing_calc(xs, us):
        raise FloatingPointError("out of domain")

    monkeypatch.setattr(problem, "calc", failing_calc)
    logger = CallbackLogger()
    solver.callbacks.append(logger)

    assert not solver.solve(maxiter=100)
    assert solver.xreg == config.regmax
    assert solver.steplength == solver.alphas[-1]
    assert solver.iter == 2
    # Candidate never moved
    assert np.allclose(np.concatenate(solver.us), 0.0)
    assert logger.xregs == [0.25, 0.5]


def test_non_finite_trial_cost_is_an_evaluation_failure(monkeypatch):
    problem = _scalar_problem(T=2)
    solver = SolverKKT(problem)
    solver.calc()
    monkeypatch.setattr(problem, "calc", lambda xs, us: float("nan"))

    outcome = solver.try_step(1.0)
    assert isinstance(outcome, Err)
    assert outcome.kind is FailureKind.EVALUATION_FAILED


def test_numpy_floating_point_error_in_trial_is_caught():
    """Invalid operations inside a model's calc surface as Err, not warnings."""

    class LogBarrier(ActionModelLQR):
        def calc(self, data, x, u=None):
            super().calc(data, x, u)
            data.cost -= float(np.log(1.0 - x[0]))  # undefined for x >= 1

    model = LogBarrier(Fx=[[1.0]], Fu=[[1.0]], Lxx=[[2.0]], Luu=[[2.0]])
    problem = ShootingProblem(np.array([0.0]), [model], model)
    solver = SolverKKT(problem)
    solver.set_candidate([np.zeros(1), np.zeros(1)], [np.zeros(1)], True)
    solver.calc()
    solver.dxs[1][:] = 5.0

    outcome = solver.try_step(1.0)
    assert isinstance(outcome, Err)
    assert outcome.kind is FailureKind.EVALUATION_FAILED
    assert isinstance(solver.try_step(0.1), Ok)


def test_trial_shape_errors_propagate(monkeypatch):
    problem = _scalar_problem(T=2)
    solver = SolverKKT(problem)
    solver.calc()

    def malformed(xs, us):
        raise ValueError("bad dimensions")

    monkeypatch.setattr(problem, "calc", malformed)
    with pytest.raises(ValueError):
        solver.try_step(1.0)


def test_line_search_skips_failed_trials(monkeypatch):
    """A failing large step falls back to the next smaller one."""
    problem = _scalar_problem(T=2, x0=0.0)
    solver = SolverKKT(problem)
    real_calc = problem.calc
    calls = []

    def calc_rejecting_full_step(xs, us):
        calls.append(solver.steplength)
        if solver.steplength == 1.0:
            raise OverflowError("too far")
        return real_calc(xs, us)

    monkeypatch.setattr(problem, "calc", calc_rejecting_full_step)
    xs = [np.zeros(1), np.ones(1), np.ones(1)]
    us = [np.zeros(1)] * 2
    solver.solve(xs, us, maxiter=1, is_feasible=False)

    assert calls[:2] == [1.0, 0.5]
    assert solver.steplength == 0.5
    assert solver.is_feasible


def test_factorization_failure_escalates_regularization(monkeypatch):
    """Concave control cost: regularization grows until the system factors."""
    model = ActionModelLQR(Fx=[[1.0]], Fu=[[1.0]], Lxx=[[2.0]], Luu=[[-3.0]])
    terminal = ActionModelLQR(Fx=[[1.0]], Fu=[[1.0]], Lxx=[[2.0]], Luu=[[1.0]])
    problem = ShootingProblem(np.array([1.0]), [model], terminal)
    solver = SolverKKT(problem)

    seen = []
    calc_calls = []
    real_increase = solver.increase_regularization
    real_calc_diff = problem.calc_diff

    def recording_increase():
        real_increase()
        seen.append(solver.xreg)

    def counting_calc_diff(xs, us):
        calc_calls.append(True)
        return real_calc_diff(xs, us)

    monkeypatch.setattr(solver, "increase_regularization", recording_increase)
    monkeypatch.setattr(problem, "calc_diff", counting_calc_diff)

    solver.set_candidate()
    solver.xreg = solver.ureg = solver.regmin
    solver.calc()
    calc_calls.clear()

    recalc = False
    while True:
        outcome = solver.compute_direction(recalc)
        if isinstance(outcome, Ok):
            break
        assert outcome.kind is FailureKind.NOT_POSITIVE_DEFINITE
        solver.increase_regularization()

    assert len(seen) > 0
    assert seen == sorted(seen)
    assert all(reg <= solver.regmax for reg in seen)
    assert solver.xreg > 0.5  # reduced Hessian -1 + 2·reg must turn positive
    assert not calc_calls  # retries never re-derive the problem


class DoubleWell(ActionModelAbstract):
    """x' = x + u with cost (x² - 1)² + ½u²; concave around x = 0."""

    def __init__(self):
        super().__init__(StateVector(1), 1)

    def calc(self, data, x, u=None):
        self._check_sizes(x, u)
        data.cost = float((x[0] ** 2 - 1.0) ** 2)
        if u is None:
            return
        data.xnext[:] = x + u
        data.cost += float(0.5 * u[0] ** 2)

    def calc_diff(self, data, x, u=None):
        self._check_sizes(x, u)
        data.Lx[:] = 4.0 * x[0] * (x[0] ** 2 - 1.0)
        data.Lxx[:] = 12.0 * x[0] ** 2 - 4.0
        if u is None:
            return
        data.Lu[:] = u
        data.Luu[:] = 1.0
        data.Lxu[:] = 0.0
        data.Fx[:] = 1.0
        data.Fu[:] = 1.0


def test_solve_recovers_from_rejected_factorization(monkeypatch):
    """Starting on the concave hump, solve raises regularization and still converges."""
    model = DoubleWell()
    problem = ShootingProblem(np.array([0.0]), [model], model)
    solver = SolverKKT(problem)

    increases = []
    real_increase = solver.increase_regularization

    def recording_increase():
        real_increase()
        increases.append((solver.iter, solver.xreg))

    monkeypatch.setattr(solver, "increase_regularization", recording_increase)
    xs = [np.array([0.0]), np.array([0.1])]
    us = [np.array([0.1])]
    assert solver.solve(xs, us, maxiter=100, is_feasible=True)

    # The very first factorization at regmin was rejected
    assert increases[0] == (0, pytest.approx(solver.regmin * solver.regfactor))
    for it in {i for i, _ in increases}:
        regs = [reg for i, reg in increases if i == it]
        assert regs == sorted(regs)
    assert all(reg <= solver.regmax for _, reg in increases)

    assert solver.stop < solver.th_stop
    assert abs(solver.us[0][0]) == pytest.approx(np.sqrt(0.75), abs=1e-6)
    assert np.allclose(solver.xs[1], solver.xs[0] + solver.us[0])


def test_regularization_changes_are_logged(caplog):
    solver = SolverKKT(_scalar_problem(), config=KKTConfig(regmin=1e-4, regmax=1e-2))
    solver.xreg = 1e-3
    with caplog.at_level(logging.DEBUG, logger="shootkkt.solvers.kkt"):
        solver.increase_regularization()
        solver.decrease_regularization()

    messages = [r.getMessage() for r in caplog.records if r.name == "shootkkt.solvers.kkt"]
    assert any(m.startswith("regularization increased") for m in messages)
    assert any(m.startswith("regularization decreased") for m in messages)


def test_factorization_failure_at_regmax_fails_solve():
    model = ActionModelLQR(Fx=[[1.0]], Fu=[[1.0]], Lxx=[[2.0]], Luu=[[-3.0]])
    problem = ShootingProblem(np.array([1.0]), [model], model)
    config = KKTConfig(regmin=1e-9, regmax=1e-3)
    solver = SolverKKT(problem, config=config)

    assert not solver.solve(maxiter=50)
    assert solver.xreg == config.regmax
    assert solver.iter == 0


def test_regularization_bounds():
    solver = SolverKKT(_scalar_problem(), config=KKTConfig(regmin=1e-4, regmax=1e-2))
    solver.xreg = 1e-4
    for _ in range(5):
        solver.increase_regularization()
        assert solver.xreg <= 1e-2
        assert solver.ureg == solver.xreg
    assert solver.xreg == 1e-2
    for _ in range(5):
        solver.decrease_regularization()
        assert solver.xreg >= 1e-4
    assert solver.xreg == 1e-4


def test_regularization_non_increasing_on_large_steps():
    rng = np.random.default_rng(4)
    models = [ActionModelLQR.random(2, 1, rng) for _ in range(6)]
    problem = ShootingProblem(rng.standard_normal(2), models[:-1], models[-1])
    solver = SolverKKT(problem)
    logger = CallbackLogger()
    solver.callbacks.append(logger)

    xs = [rng.standard_normal(2) for _ in range(6)]
    us = [rng.standard_normal(1) for _ in range(5)]
    assert solver.solve(xs, us, maxiter=20, reginit=1e-3)

    for step, before, after in zip(logger.steps, [1e-3] + logger.xregs, logger.xregs):
        if step > solver.th_step:
            assert after <= before
        assert after >= solver.regmin


def test_reginit_is_clamped():
    solver = SolverKKT(_scalar_problem(), config=KKTConfig(regmin=1e-6, regmax=1.0))
    solver.solve(maxiter=1, reginit=1e3)
    assert solver.xreg <= 1.0
    solver.solve(maxiter=1, reginit=0.0)
    assert solver.xreg >= 1e-6


def test_invalid_arguments():
    solver = SolverKKT(_scalar_problem(T=2))
    with pytest.raises(ValueError):
        solver.solve(maxiter=0)
    with pytest.raises(ValueError):
        solver.solve(init_xs=[np.zeros(1)] * 2)
    with pytest.raises(ValueError):
        solver.solve(init_us=[np.zeros(2)] * 2)


def test_callbacks_receive_read_only_snapshots():
    solver = SolverKKT(_scalar_problem(T=2, x0=1.0))
    snapshots = []
    solver.callbacks.append(snapshots.append)
    solver.solve(maxiter=10)

    assert [s.iter for s in snapshots] == list(range(len(snapshots)))
    last = snapshots[-1]
    assert last.cost == pytest.approx(solver.cost)
    assert last.stop == pytest.approx(solver.stop)
    with pytest.raises(ValueError):
        last.xs[0][0] = 3.0


def test_snapshots_carry_direction_and_multipliers():
    solver = SolverKKT(_scalar_problem(T=2, x0=1.0))
    snapshots = []
    solver.callbacks.append(snapshots.append)
    assert solver.solve(maxiter=10)

    last = snapshots[-1]
    assert len(last.dxs) == len(last.lambdas) == 3
    assert len(last.dus) == 2
    assert np.allclose(np.concatenate(last.dxs), np.concatenate(solver.dxs))
    assert np.allclose(np.concatenate(last.dus), np.concatenate(solver.dus))
    assert np.allclose(np.concatenate(last.lambdas), np.concatenate(solver.lambdas))
    with pytest.raises(ValueError):
        last.lambdas[0][0] = 1.0
    # Copies, not views of the solver's buffers
    assert last.dxs[0] is not solver.dxs[0]
