"""Exception hierarchy of the nonlinear solver core."""

from __future__ import annotations

from typing import Optional


class GCPError(Exception):
    """Base class for all solver-core errors."""


class ConfigurationError(GCPError, ValueError):
    """Unknown option or inconsistent parameter set (fatal at initialization)."""


class ConvergenceFailure(GCPError, RuntimeError):
    """The nonlinear iteration did not converge.

    Raised as a hard failure inside a regular step. The initial-guess
    computation catches it and reports ``False`` instead.
    """

    def __init__(self, message: str, *, step: Optional[int] = None, iterations: Optional[int] = None):
        super().__init__(message)
        self.step = step
        self.iterations = iterations


class LineSearchFailure(ConvergenceFailure):
    """Backtracking hit its iteration cap or its lower bound on lambda."""


class StagnationError(ConvergenceFailure):
    """Newton step fell below the step tolerance while the residual stayed large."""


class NumericalInstability(GCPError, FloatingPointError):
    """A residual or Jacobian entry is NaN or infinite."""


class LinearSolverError(GCPError, RuntimeError):
    """The linear solve failed or returned a non-finite update."""
