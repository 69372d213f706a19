"""Outer nonlinear optimization: constraints, strategies, multi-start and the engine."""
