"""Backtracking line search on the merit function f = 1/2 ||R||^2.

Along the Newton direction the slope at λ = 0 is f'(0) = -2 f0, so the
sufficient-decrease (Armijo) condition reads

    f(λ) <= (1 - 2 α λ) f0 .

On failure λ is shrunk with the minimizer of a quadratic model (first shrink)
or a cubic model through the last two samples (subsequent shrinks), clipped
into ``[lower_bound_factor * λ, upper_bound_factor * λ]``.
"""

from __future__ import annotations

import math
from typing import List, Optional

from gcp_nonlinear.config import LineSearchParameters
from gcp_nonlinear.errors import LineSearchFailure


class LineSearch:
    def __init__(self, parameters: Optional[LineSearchParameters] = None):
        self.parameters = parameters if parameters is not None else LineSearchParameters()
        self.initial_merit = 0.0
        self.lambdas: List[float] = []
        self.merits: List[float] = []
        self.n_iterations = 0

    def reinit(self, initial_merit: float) -> None:
        """Start a new search from f0 = ``initial_merit`` (λ = 1 is the first trial)."""
        self.initial_merit = float(initial_merit)
        self.lambdas = []
        self.merits = []
        self.n_iterations = 0

    def get_n_iterations(self) -> int:
        return self.n_iterations

    def suffices_descent_condition(self, trial_merit: float, lambda_: float) -> bool:
        alpha = float(self.parameters.armijo_condition_constant)
        return float(trial_merit) <= (1.0 - 2.0 * alpha * float(lambda_)) * self.initial_merit

    def get_lambda(self, trial_merit: float, lambda_: float) -> float:
        """Next (strictly smaller) step length after ``lambda_`` was rejected."""
        p = self.parameters
        lambda_ = float(lambda_)
        trial_merit = float(trial_merit)
        self.lambdas.append(lambda_)
        self.merits.append(trial_merit)
        self.n_iterations += 1

        if self.n_iterations > p.n_max_iterations:
            raise LineSearchFailure(
                f"Line search did not satisfy the descent condition in {p.n_max_iterations} iterations "
                f"(lambda={lambda_:.3e}, f={trial_merit:.3e}, f0={self.initial_merit:.3e})",
                iterations=self.n_iterations,
            )

        if len(self.lambdas) == 1:
            candidate = self._quadratic_minimizer(lambda_, trial_merit)
        else:
            candidate = self._cubic_minimizer(lambda_, trial_merit, self.lambdas[-2], self.merits[-2])

        lower = p.lower_bound_factor * lambda_
        upper = p.upper_bound_factor * lambda_
        if not math.isfinite(candidate):
            candidate = upper
        new_lambda = min(max(candidate, lower), upper)

        if new_lambda < p.min_lambda:
            raise LineSearchFailure(
                f"Line search step length {new_lambda:.3e} fell below min_lambda={p.min_lambda:.3e}",
                iterations=self.n_iterations,
            )
        return new_lambda

    def _quadratic_minimizer(self, lambda_1: float, f_1: float) -> float:
        f0 = self.initial_merit
        g0 = -2.0 * f0
        denom = 2.0 * (f_1 - f0 - g0 * lambda_1)
        if denom <= 0.0:
            return math.nan
        return -g0 * lambda_1 * lambda_1 / denom

    def _cubic_minimizer(self, lambda_1: float, f_1: float, lambda_2: float, f_2: float) -> float:
        f0 = self.initial_merit
        g0 = -2.0 * f0
        if lambda_1 == lambda_2:
            return math.nan
        r1 = f_1 - f0 - g0 * lambda_1
        r2 = f_2 - f0 - g0 * lambda_2
        factor = 1.0 / (lambda_1 - lambda_2)
        a = factor * (r1 / lambda_1 ** 2 - r2 / lambda_2 ** 2)
        b = factor * (-lambda_2 * r1 / lambda_1 ** 2 + lambda_1 * r2 / lambda_2 ** 2)
        if a == 0.0:
            if b == 0.0:
                return math.nan
            return -g0 / (2.0 * b)
        disc = b * b - 3.0 * a * g0
        if disc < 0.0:
            return math.nan
        return (-b + math.sqrt(disc)) / (3.0 * a)
