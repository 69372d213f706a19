"""Numerical building blocks: regularization, linear solvers and the separable residual."""
