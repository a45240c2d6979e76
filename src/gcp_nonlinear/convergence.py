"""Newton convergence helpers (stable rules)."""

from __future__ import annotations

import math
from dataclasses import dataclass

from gcp_nonlinear.config import NewtonRaphsonParameters


@dataclass(frozen=True)
class NewtonConvergence:
    absolute_tolerance: float = 1e-8
    step_tolerance: float = 1e-10
    stagnation_factor: float = 100.0

    @classmethod
    def from_parameters(cls, parameters: NewtonRaphsonParameters) -> "NewtonConvergence":
        return cls(
            absolute_tolerance=float(parameters.absolute_tolerance),
            step_tolerance=float(parameters.step_tolerance),
        )

    def residual_converged(self, norm_r: float) -> bool:
        return float(norm_r) < self.absolute_tolerance

    def small_step(self, lambda_: float, norm_du: float) -> bool:
        return float(lambda_) * float(norm_du) < self.step_tolerance

    def converged(self, norm_r: float, lambda_: float, norm_du: float) -> bool:
        """||R|| < tol, or a tiny step with ||R|| < 100 tol."""
        if self.residual_converged(norm_r):
            return True
        return self.small_step(lambda_, norm_du) and float(norm_r) < self.stagnation_factor * self.absolute_tolerance

    def stagnated(self, norm_r: float, lambda_: float, norm_du: float) -> bool:
        """Tiny step while the residual is still large."""
        return self.small_step(lambda_, norm_du) and float(norm_r) >= self.stagnation_factor * self.absolute_tolerance

    def initial_guess_converged(self, norm_r: float, norm_du: float) -> bool:
        return self.residual_converged(norm_r) or float(norm_du) < self.step_tolerance


def convergence_rate(norm_k: float, norm_km1: float) -> float:
    """log||R_k|| / log||R_{k-1}||; 0 when undefined."""
    if norm_k <= 0.0 or norm_km1 <= 0.0 or norm_km1 == 1.0:
        return 0.0
    rate = math.log(norm_k) / math.log(norm_km1)
    return rate if math.isfinite(rate) else 0.0
