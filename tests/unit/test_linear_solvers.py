"""Tests for the constrained linear least-squares strategies."""

import pytest

import numpy as np
from scipy.optimize import nnls

from sepfit.core.algorithms.linear_solvers import (
    ActiveSetNNLSSolver,
    BoxConstrainedSolver,
    FastNNLSSolver,
    LinearSubproblem,
    PinnedLinearSolver,
    UnconstrainedSolver,
    fnnls,
    get_linear_solver,
)
from sepfit.core.algorithms.regularization import lsq_components, regoperator
from sepfit.core.domain.config import LinearSolverName, SNLLSConfig
from sepfit.core.domain.state import RegularizationState
from sepfit.core.shared.exceptions import SolverDivergenceError


def _state(*, linear_constrained=False, non_negative_only=False):
    return RegularizationState(
        ill_conditioned=False,
        linear_constrained=linear_constrained,
        nonlinear_constrained=False,
        non_negative_only=non_negative_only,
    )


class TestLinearSubproblem:
    """Tests for the stacked penalized system."""

    def test_plain_problem(self, rng):
        """Without components the system is (A, y)."""
        A = rng.normal(size=(8, 3))
        y = rng.normal(size=8)
        problem = LinearSubproblem.build(A, y)
        assert problem.design is A
        assert problem.target is y

    def test_stacked_normal_equations_match_components(self, rng):
        """Normal equations of the stacked system equal the penalized components."""
        A = rng.normal(size=(15, 5))
        y = rng.normal(size=15)
        components = lsq_components(A, y, regoperator(5, 2), 0.7)

        problem = LinearSubproblem.build(A, y, components)
        AtA, Aty = problem.normal_equations()
        assert problem.design.shape == (18, 5)
        np.testing.assert_allclose(AtA, components.normal_matrix, atol=1e-12)
        np.testing.assert_allclose(Aty, components.normal_vector, atol=1e-12)

    def test_pin_moves_fixed_columns_into_target(self, rng):
        """Pinning drops the fixed columns and subtracts their contribution."""
        A = rng.normal(size=(10, 3))
        y = rng.normal(size=10)
        fixed = np.array([False, True, False])

        reduced = LinearSubproblem.build(A, y).pin(fixed, np.array([0.7]))

        np.testing.assert_array_equal(reduced.design, A[:, [0, 2]])
        np.testing.assert_allclose(reduced.target, y - 0.7 * A[:, 1])


class TestFNNLS:
    """Tests for the fast NNLS algorithm."""

    @pytest.mark.parametrize("seed", range(5))
    def test_matches_active_set_nnls(self, seed):
        """FNNLS agrees with scipy's Lawson-Hanson NNLS."""
        rng = np.random.default_rng(seed)
        A = rng.normal(size=(30, 8))
        b = rng.normal(size=30)

        x = fnnls(A.T @ A, A.T @ b)
        expected, _ = nnls(A, b)

        np.testing.assert_allclose(x, expected, atol=1e-8)

    def test_unconstrained_optimum_is_kept(self, rng):
        """A positive unconstrained solution is returned unchanged."""
        A = rng.normal(size=(20, 3))
        x_true = np.array([1.0, 2.0, 3.0])
        x = fnnls(A.T @ A, A.T @ (A @ x_true))
        np.testing.assert_allclose(x, x_true, rtol=1e-8)

    def test_all_negative_target(self):
        """A target anti-aligned with every column gives x = 0."""
        A = np.eye(3)
        np.testing.assert_array_equal(fnnls(A, -np.ones(3)), np.zeros(3))

    def test_iteration_budget(self):
        """Exhausting the budget raises SolverDivergenceError."""
        with pytest.raises(SolverDivergenceError, match="did not converge"):
            fnnls(np.eye(3), np.ones(3), max_iter=0)


class TestSolvers:
    """Tests for the solver strategies."""

    @pytest.mark.parametrize("solver", [FastNNLSSolver(), ActiveSetNNLSSolver()])
    def test_nnls_solutions_are_non_negative(self, solver):
        """NNLS strategies never return negative coefficients."""
        rng = np.random.default_rng(7)
        lower, upper = np.zeros(6), np.full(6, np.inf)
        for _ in range(20):
            A = rng.normal(size=(25, 6))
            y = rng.normal(size=25)
            x = solver.solve(LinearSubproblem.build(A, y), lower, upper)
            assert np.all(x >= 0)

    @pytest.mark.parametrize("method", list(LinearSolverName))
    def test_box_solutions_respect_bounds(self, rng, method):
        """Box-constrained strategies stay inside [lower, upper]."""
        solver = BoxConstrainedSolver(method=method)
        lower = np.array([-0.5, 0.0, 0.2, -np.inf])
        upper = np.array([0.5, 1.0, np.inf, 0.0])
        for _ in range(10):
            A = rng.normal(size=(20, 4))
            y = 3 * rng.normal(size=20)
            x = solver.solve(LinearSubproblem.build(A, y), lower, upper)
            assert np.all(x >= lower)
            assert np.all(x <= upper)

    def test_box_matches_unconstrained_when_inactive(self, rng):
        """Inactive bounds reproduce the plain least-squares solution."""
        A = rng.normal(size=(30, 3))
        x_true = np.array([0.1, -0.2, 0.3])
        problem = LinearSubproblem.build(A, A @ x_true)
        lower, upper = np.full(3, -10.0), np.full(3, 10.0)

        x_box = BoxConstrainedSolver().solve(problem, lower, upper)
        x_plain = UnconstrainedSolver().solve(problem, lower, upper)

        np.testing.assert_allclose(x_box, x_true, atol=1e-8)
        np.testing.assert_allclose(x_plain, x_true, atol=1e-10)

    def test_pinned_coefficients_keep_their_value(self, rng):
        """Pinned coefficients are fixed and the free ones solve the reduced problem."""
        A = rng.normal(size=(20, 3))
        y = rng.normal(size=20)
        lower = np.array([-np.inf, 0.7, -np.inf])
        upper = np.array([np.inf, 0.7, np.inf])
        solver = PinnedLinearSolver(UnconstrainedSolver(), lower == upper)

        x = solver.solve(LinearSubproblem.build(A, y), lower, upper)

        expected = np.linalg.lstsq(A[:, [0, 2]], y - 0.7 * A[:, 1], rcond=None)[0]
        assert x[1] == 0.7
        np.testing.assert_allclose(x[[0, 2]], expected, atol=1e-10)

    def test_pinned_with_box_bounds(self, rng):
        """Free coefficients of a pinned box problem respect their bounds."""
        lower = np.array([0.0, -0.3, 0.0])
        upper = np.array([np.inf, -0.3, 0.2])
        solver = PinnedLinearSolver(BoxConstrainedSolver(), lower == upper)
        for _ in range(10):
            A = rng.normal(size=(20, 3))
            y = 3 * rng.normal(size=20)
            x = solver.solve(LinearSubproblem.build(A, y), lower, upper)
            assert x[1] == -0.3
            assert np.all(x >= lower)
            assert np.all(x <= upper)

    def test_all_pinned(self, rng):
        """With every coefficient pinned no solve is needed."""
        lower = upper = np.array([1.0, 2.0])
        solver = PinnedLinearSolver(UnconstrainedSolver(), np.array([True, True]))
        x = solver.solve(LinearSubproblem.build(rng.normal(size=(5, 2)), rng.normal(size=5)), lower, upper)
        np.testing.assert_array_equal(x, [1.0, 2.0])


class TestRouting:
    """Tests for get_linear_solver."""

    def test_unconstrained_route(self):
        """No linear bounds routes to the direct solve."""
        assert isinstance(get_linear_solver(_state(), SNLLSConfig()), UnconstrainedSolver)

    def test_non_negative_route(self):
        """Pure non-negativity routes to the configured NNLS strategy."""
        state = _state(linear_constrained=True, non_negative_only=True)
        assert isinstance(get_linear_solver(state, SNLLSConfig()), FastNNLSSolver)
        assert isinstance(get_linear_solver(state, SNLLSConfig(NnlsSolver="nnls")), ActiveSetNNLSSolver)

    def test_box_route(self):
        """General bounds route to the configured box strategy."""
        state = _state(linear_constrained=True)
        solver = get_linear_solver(state, SNLLSConfig(LinSolver="trf"))
        assert isinstance(solver, BoxConstrainedSolver)
        assert solver.name == "trf"

    def test_pinned_route_wraps_strategy(self):
        """Pinned coefficients wrap the routed strategy."""
        state = _state(linear_constrained=True)
        solver = get_linear_solver(state, SNLLSConfig(), np.array([False, True]))
        assert isinstance(solver, PinnedLinearSolver)
        assert solver.name == "bvls"

    def test_no_pinned_coefficients_keeps_strategy(self):
        """An all-free mask leaves the strategy unwrapped."""
        solver = get_linear_solver(_state(), SNLLSConfig(), np.array([False, False]))
        assert isinstance(solver, UnconstrainedSolver)
