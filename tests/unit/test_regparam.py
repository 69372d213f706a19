"""Tests for regularization-parameter selection."""

import pytest

import numpy as np

from sepfit.core.algorithms.regparam import (
    evaluate_regparam,
    regparam_range,
    score_evaluations,
    select_regparam,
)
from sepfit.core.algorithms.regularization import regoperator
from sepfit.core.domain.config import RegParamCriterion, RegularizationType
from sepfit.core.shared.exceptions import SolverDivergenceError


class TestRegParamRange:
    """Tests for the candidate grid."""

    def test_grid_spans_singular_values(self, smoothing_problem):
        """The grid is increasing and ends at the largest singular value."""
        A, _, _ = smoothing_problem
        grid = regparam_range(A)
        s = np.linalg.svd(A, compute_uv=False)
        assert np.all(np.diff(grid) > 0)
        assert grid[-1] == pytest.approx(s.max())
        assert grid[0] >= s.max() * 1e-8 * (1 - 1e-12)

    def test_grid_resolution(self, rng):
        """Consecutive grid points are at most one resolution step apart."""
        grid = regparam_range(rng.normal(size=(20, 5)), resolution=0.25)
        assert np.all(np.diff(np.log10(grid)) <= 0.25 + 1e-12)

    def test_grid_is_at_least_one_decade(self):
        """An orthogonal operator still gets a one-decade grid."""
        grid = regparam_range(np.eye(4))
        assert np.log10(grid[-1] / grid[0]) == pytest.approx(1.0)

    def test_zero_operator_raises(self):
        """A zero operator has no usable grid."""
        with pytest.raises(SolverDivergenceError):
            regparam_range(np.zeros((5, 2)))


class TestCriteria:
    """Tests for the selection criteria."""

    def test_aic_formula(self, smoothing_problem):
        """AIC is N log(RSS / N) + 2 tr(H)."""
        A, y, _ = smoothing_problem
        ev = evaluate_regparam(A, y, regoperator(A.shape[1], 2), 0.1)
        expected = ev.n * np.log(ev.rss / ev.n) + 2 * np.trace(ev.influence)
        score = score_evaluations(RegParamCriterion.AIC, [ev])
        assert score[0] == pytest.approx(expected)

    def test_gcv_formula(self, smoothing_problem):
        """GCV is RSS / (1 - tr(H) / N)²."""
        A, y, _ = smoothing_problem
        ev = evaluate_regparam(A, y, regoperator(A.shape[1], 2), 0.1)
        expected = ev.rss / (1 - ev.trace / ev.n) ** 2
        assert score_evaluations(RegParamCriterion.GCV, [ev])[0] == pytest.approx(expected)

    def test_trace_decreases_with_alpha(self, smoothing_problem):
        """Stronger regularization lowers the effective number of parameters."""
        A, y, _ = smoothing_problem
        L = regoperator(A.shape[1], 2)
        traces = [evaluate_regparam(A, y, L, alpha).trace for alpha in (1e-3, 1e-1, 10.0)]
        assert traces[0] > traces[1] > traces[2]

    @pytest.mark.parametrize("criterion", list(RegParamCriterion))
    def test_every_criterion_selects_from_grid(self, smoothing_problem, criterion):
        """Every criterion returns a finite, positive value on the grid."""
        A, y, _ = smoothing_problem
        selection = select_regparam(A, y, regoperator(A.shape[1], 2), criterion)
        assert np.isfinite(selection.alpha)
        assert selection.alpha > 0
        assert selection.alpha in selection.grid
        assert selection.criterion is criterion
        assert selection.scores.shape == selection.grid.shape

    @pytest.mark.parametrize("reg_type", [RegularizationType.TV, RegularizationType.HUBER])
    def test_reweighted_penalties(self, smoothing_problem, reg_type):
        """Non-quadratic penalties select a finite parameter."""
        A, y, _ = smoothing_problem
        selection = select_regparam(A, y, regoperator(A.shape[1], 1), "gcv", reg_type=reg_type, resolution=0.5)
        assert np.isfinite(selection.alpha)


class TestSelection:
    """Tests for select_regparam."""

    def test_regularized_solution_is_closer(self, smoothing_problem):
        """The selected parameter improves on the unregularized solution."""
        A, y, x_true = smoothing_problem
        L = regoperator(A.shape[1], 2)
        selection = select_regparam(A, y, L, "gcv")

        x_reg = np.linalg.solve(A.T @ A + selection.alpha**2 * L.T @ L, A.T @ y)
        x_plain = np.linalg.lstsq(A, y, rcond=None)[0]
        assert np.linalg.norm(x_reg - x_true) < np.linalg.norm(x_plain - x_true)

    def test_refine_stays_between_neighbours(self, smoothing_problem):
        """Brent refinement stays within the neighbouring grid points."""
        A, y, _ = smoothing_problem
        L = regoperator(A.shape[1], 2)
        coarse = select_regparam(A, y, L, "aic")
        refined = select_regparam(A, y, L, "aic", search="refine")

        best = int(np.nanargmin(coarse.scores))
        lower = coarse.grid[max(best - 1, 0)]
        upper = coarse.grid[min(best + 1, coarse.grid.size - 1)]
        assert lower * (1 - 1e-9) <= refined.alpha <= upper * (1 + 1e-9)

    def test_no_usable_score_raises(self):
        """Selection fails when no candidate has a finite score."""
        A = np.eye(2)
        y = np.array([1.0, 2.0])
        # tr(H) > N - 1 on the whole grid, so every AICc score is infinite
        with pytest.raises(SolverDivergenceError, match="no finite score"):
            select_regparam(A, y, regoperator(2, 1), "aicc")
