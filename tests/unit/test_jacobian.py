"""Tests for finite-difference Jacobians."""

import pytest

import numpy as np

from sepfit.core.fitting.jacobian import augmented_jacobian, numerical_jacobian


def _func(x):
    return np.array([x[0] ** 2, np.sin(x[1]), x[0] * x[1]])


def _analytic(x):
    return np.array(
        [
            [2 * x[0], 0.0],
            [0.0, np.cos(x[1])],
            [x[1], x[0]],
        ]
    )


class TestNumericalJacobian:
    """Tests for numerical_jacobian."""

    def test_central_differences(self):
        """Interior points match the analytic Jacobian."""
        x = np.array([1.5, 0.3])
        np.testing.assert_allclose(numerical_jacobian(_func, x), _analytic(x), rtol=1e-7, atol=1e-9)

    def test_steps_respect_bounds(self):
        """Points on a bound are differentiated one-sidedly inside the box."""
        lower = np.array([1.0, 0.0])
        upper = np.array([2.0, 0.3])
        x = np.array([1.0, 0.3])

        def guarded(z):
            if np.any(z < lower) or np.any(z > upper):
                pytest.fail(f"evaluated outside the box at {z}")
            return _func(z)

        jac = numerical_jacobian(guarded, x, lower, upper)
        np.testing.assert_allclose(jac, _analytic(x), rtol=1e-4, atol=1e-6)

    def test_degenerate_box(self):
        """A zero-width box gives a zero column."""
        x = np.array([1.0, 0.3])
        jac = numerical_jacobian(_func, x, np.array([1.0, -np.inf]), np.array([1.0, np.inf]))
        np.testing.assert_array_equal(jac[:, 0], 0.0)


class TestAugmentedJacobian:
    """Tests for the Jacobian of the separable residual."""

    def test_blocks(self, decay_operator, decay_grid):
        """Nonlinear block differentiates A(p) x and the linear block is A(p)."""
        p = np.array([1.3])
        lin = np.array([2.0, 0.5])
        jac = augmented_jacobian(decay_operator, p, lin)

        expected_nonlin = -lin[0] * decay_grid * np.exp(-p[0] * decay_grid)
        assert jac.shape == (100, 3)
        np.testing.assert_allclose(jac[:, 0], expected_nonlin, rtol=1e-6, atol=1e-9)
        np.testing.assert_array_equal(jac[:, 1:], decay_operator(p))

    def test_penalty_rows(self, decay_operator):
        """Penalty rows act on the linear coefficients only."""
        penalty = np.array([[-0.2, 0.2]])
        jac = augmented_jacobian(decay_operator, np.array([1.0]), np.array([1.0, 1.0]), penalty_operator=penalty)
        assert jac.shape == (101, 3)
        np.testing.assert_array_equal(jac[-1], [0.0, -0.2, 0.2])
