"""Linear algebra helpers shared by the solvers and the uncertainty quantifier.

Near-singular matrices are detected explicitly from the condition number and
the numerical rank. Callers receive a typed :class:`InversionResult` telling
them whether the pseudo-inverse was used, instead of relying on exceptions or
the warnings machinery.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.shared.constants import ILL_CONDITIONED_THRESHOLD, SINGULAR_CONDITION_THRESHOLD

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray


@dataclass(frozen=True, slots=True)
class InversionResult:
    """Inverse of a square matrix together with its singularity signal."""

    matrix: FloatArray
    singular: bool
    condition_number: float


class LinearAlgebraHelper:
    """Conditioning checks and guarded inversion."""

    @staticmethod
    def condition_number(matrix: FloatArray) -> float:
        """2-norm condition number, ``inf`` for non-finite or empty matrices."""
        matrix = np.asarray(matrix, dtype=float)
        if matrix.size == 0 or not np.all(np.isfinite(matrix)):
            return float(np.inf)
        return float(np.linalg.cond(matrix))

    @staticmethod
    def is_ill_conditioned(
        matrix: FloatArray,
        threshold: float = ILL_CONDITIONED_THRESHOLD,
    ) -> bool:
        """Classify a forward operator as ill-conditioned.

        Args:
            matrix: Linear operator ``A``
            threshold: Condition number above which ``A`` is ill-conditioned

        Returns
        -------
            True if ``cond(A) > threshold``
        """
        return LinearAlgebraHelper.condition_number(matrix) > threshold

    @staticmethod
    def is_near_singular(
        matrix: FloatArray,
        threshold: float = SINGULAR_CONDITION_THRESHOLD,
    ) -> bool:
        """Check a square matrix for rank deficiency or near-singularity."""
        matrix = np.asarray(matrix, dtype=float)
        if not np.all(np.isfinite(matrix)):
            return True
        if np.linalg.matrix_rank(matrix) < min(matrix.shape):
            return True
        return LinearAlgebraHelper.condition_number(matrix) > threshold

    @staticmethod
    def inverse(matrix: FloatArray) -> InversionResult:
        """Invert a square matrix, falling back to the pseudo-inverse.

        Args:
            matrix: Square matrix, typically ``JᵀJ`` or a normal matrix

        Returns
        -------
            InversionResult with ``singular=True`` when the pseudo-inverse was used
        """
        matrix = np.asarray(matrix, dtype=float)
        cond = LinearAlgebraHelper.condition_number(matrix)
        if not np.all(np.isfinite(matrix)):
            return InversionResult(np.full(matrix.shape, np.nan), singular=True, condition_number=cond)
        if LinearAlgebraHelper.is_near_singular(matrix):
            return InversionResult(np.linalg.pinv(matrix), singular=True, condition_number=cond)
        return InversionResult(np.linalg.inv(matrix), singular=False, condition_number=cond)

    @staticmethod
    def solve(matrix: FloatArray, rhs: FloatArray) -> FloatArray:
        """Solve a square system, using least squares if it is singular."""
        try:
            return np.linalg.solve(matrix, rhs)
        except np.linalg.LinAlgError:
            return np.linalg.lstsq(matrix, rhs, rcond=None)[0]


__all__ = ["InversionResult", "LinearAlgebraHelper"]
