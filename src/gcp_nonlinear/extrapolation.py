"""Initial trial solution of a time step from the solution history."""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np


def step_size_ratio(next_step_size: float, previous_step_size: float, step_number: int) -> float:
    """r = dt_n / dt_{n-1}; 1 on the first step."""
    if step_number <= 0 or previous_step_size <= 0.0:
        return 1.0
    return float(next_step_size) / float(previous_step_size)


def extrapolate_initial_trial_solution(
    old_solution: np.ndarray,
    old_old_solution: np.ndarray,
    ratio: float,
    extrapolate: bool = True,
    constraints: Optional[object] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Linear extrapolation of the last two converged solutions.

    Parameters
    ----------
    old_solution : np.ndarray
        Converged solution at t^{n-1} (S1).
    old_old_solution : np.ndarray
        Converged solution at t^{n-2} (S0).
    ratio : float
        Step size ratio r = dt_n / dt_{n-1}.
    extrapolate : bool
        If False the trial solution is S1 and the update seed is zero.
    constraints : ConstraintHandler, optional
        If given, ``distribute`` is applied to the trial solution and
        ``distribute_homogeneous`` to the update seed.

    Returns
    -------
    trial_solution : np.ndarray
        (1 + r) S1 - r S0, or S1.
    newton_update : np.ndarray
        S1 - trial_solution.
    """
    s1 = np.asarray(old_solution, dtype=float)
    s0 = np.asarray(old_old_solution, dtype=float)
    if s1.shape != s0.shape:
        raise ValueError(f"Solution shapes differ: {s1.shape} vs {s0.shape}")

    if extrapolate:
        r = float(ratio)
        trial = (1.0 + r) * s1 - r * s0
        newton_update = s1 - trial
    else:
        trial = s1.copy()
        newton_update = np.zeros_like(s1)

    if constraints is not None:
        constraints.distribute(trial)
        constraints.distribute_homogeneous(newton_update)

    return trial, newton_update
