"""Shared typing aliases used across SepFit."""

from collections.abc import Callable

import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[np.float64]
BoolArray = npt.NDArray[np.bool_]

# p -> A(p), shape (N, M)
OperatorFunction = Callable[[FloatArray], FloatArray]
ResidualFunction = Callable[[FloatArray], FloatArray]
