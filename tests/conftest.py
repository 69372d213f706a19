"""Pytest fixtures for SepFit tests."""

import pytest

import numpy as np


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def decay_grid():
    """Sampling grid of the exponential-plus-ramp model."""
    return np.linspace(0, 1, 100)


@pytest.fixture
def decay_operator(decay_grid):
    """Well-conditioned operator ``A(p) = [exp(-p t), t]``."""
    t = decay_grid

    def operator(p):
        return np.column_stack([np.exp(-p[0] * t), t])

    return operator


@pytest.fixture
def decay_problem(decay_operator):
    """Noise-free data of the decay model with its true parameters."""
    p_true = np.array([1.0])
    x_true = np.array([2.0, 0.5])
    y = decay_operator(p_true) @ x_true
    return y, decay_operator, p_true, x_true


@pytest.fixture
def collinear_operator(decay_grid):
    """Ill-conditioned operator with two nearly identical decays."""
    t = decay_grid

    def operator(p):
        return np.column_stack([np.exp(-p[0] * t), np.exp(-1.01 * p[0] * t)])

    return operator


@pytest.fixture
def smoothing_problem(rng):
    """Ill-posed Gaussian-kernel deconvolution with a smooth solution."""
    s = np.linspace(0, 1, 60)
    r = np.linspace(0, 1, 40)
    A = np.exp(-((s[:, None] - r[None, :]) ** 2) / (2 * 0.05**2))
    x_true = np.exp(-((r - 0.5) ** 2) / (2 * 0.1**2))
    y = A @ x_true + rng.normal(0, 0.01, s.size)
    return A, y, x_true
