"""Tests for the per-call solver state."""

import numpy as np

from sepfit.core.domain.state import RegParamCache, RegularizationState, SolverState


class TestRegParamCache:
    """Tests for regularization-parameter reuse."""

    def test_empty_cache_is_not_reusable(self):
        """Nothing is reused before the first selection."""
        assert not RegParamCache().reusable(np.array([1.0]), 1e-3)

    def test_small_relative_change_reuses(self):
        """Every component below the threshold reuses the parameter."""
        cache = RegParamCache()
        cache.store(np.array([1.0, -2.0]), 0.5)
        assert cache.reusable(np.array([1.0005, -2.001]), 1e-3)

    def test_one_large_component_reselects(self):
        """A single component above the threshold forces a new selection."""
        cache = RegParamCache()
        cache.store(np.array([1.0, 2.0]), 0.5)
        assert not cache.reusable(np.array([1.0, 2.1]), 1e-3)

    def test_change_is_relative_to_cached_p(self):
        """The relative change divides by the cached p, not the candidate."""
        cache = RegParamCache()
        cache.store(np.array([1.0]), 0.5)
        # 0.095 / 1.0 is below the threshold, 0.095 / 0.905 is not
        assert cache.reusable(np.array([0.905]), 0.1)
        assert not cache.reusable(np.array([0.895]), 0.1)

    def test_zero_component_uses_absolute_change(self):
        """Components at zero compare the absolute change."""
        cache = RegParamCache()
        cache.store(np.array([0.0, 1.0]), 0.5)
        assert cache.reusable(np.array([0.0, 1.0]), 1e-3)
        assert cache.reusable(np.array([1e-4, 1.0]), 1e-3)
        assert not cache.reusable(np.array([1e-2, 1.0]), 1e-3)

    def test_store_copies(self):
        """The cache keeps its own copy of p."""
        cache = RegParamCache()
        p = np.array([1.0])
        cache.store(p, 0.1)
        p[0] = 5.0
        assert cache.last_p[0] == 1.0
        assert cache.last_alpha == 0.1

    def test_shape_change_is_not_reusable(self):
        """A different parameter count never reuses the cache."""
        cache = RegParamCache()
        cache.store(np.array([1.0]), 0.1)
        assert not cache.reusable(np.array([1.0, 1.0]), 1e-3)


class TestSolverState:
    """Tests for SolverState."""

    def test_independent_caches(self):
        """Each solver state owns an independent cache."""
        regularization = RegularizationState(True, False, True, False)
        first = SolverState(regularization)
        second = SolverState(regularization)
        first.cache.store(np.array([1.0]), 0.3)
        assert second.cache.last_alpha is None
        assert first.nfev == 0
        assert first.selections == 0
