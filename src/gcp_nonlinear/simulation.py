"""Time-stepping loop over the loading program."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from gcp_nonlinear.clock import SimulationClock
from gcp_nonlinear.newton import IterationState, NewtonRaphsonSolver
from gcp_nonlinear.schedule import LoadingPhase


@dataclass
class StepResult:
    step: int
    time: float
    phase: LoadingPhase
    n_iterations: int
    residual_norm: float
    used_initial_guess: bool = False


@dataclass
class SimulationResult:
    solution: np.ndarray
    steps: List[StepResult] = field(default_factory=list)
    solutions: List[np.ndarray] = field(default_factory=list)

    @property
    def n_steps(self) -> int:
        return len(self.steps)


def run_simulation(
    solver: NewtonRaphsonSolver,
    initial_solution: np.ndarray,
    clock: Optional[SimulationClock] = None,
    compute_initial_guess_first: bool = False,
    store_solutions: bool = False,
    callback: Optional[Callable[[SimulationClock, IterationState], None]] = None,
) -> SimulationResult:
    """Advance from ``start_time`` to ``end_time``.

    Each step takes its size from the load schedule, is solved by
    :meth:`NewtonRaphsonSolver.solve_nonlinear_system` (which commits the
    history) and then moves the clock forward.

    With ``compute_initial_guess_first`` the first step is seeded by
    :meth:`NewtonRaphsonSolver.compute_initial_guess`; if that reports a soft
    failure the step falls back to the regular extrapolated seed.

    A hard failure propagates after the driver has rolled back the history of
    the failed step; steps committed before it are kept.
    """
    schedule = solver.schedule
    verbose = solver.parameters.verbose
    if clock is None:
        tp = solver.parameters.temporal_discretization_parameters
        clock = SimulationClock(tp.start_time, tp.end_time, schedule.step_size(0))

    old_solution = np.array(initial_solution, dtype=float, copy=True)
    old_old_solution = old_solution.copy()
    result = SimulationResult(solution=old_solution)
    if store_solutions:
        result.solutions.append(old_solution.copy())

    while not clock.is_at_end():
        step = clock.step_number
        clock.set_desired_next_step_size(schedule.step_size(step))

        seed = None
        used_initial_guess = False
        if compute_initial_guess_first and clock.is_at_start():
            ok, guess = solver.compute_initial_guess(clock, old_solution, old_old_solution)
            if ok:
                seed = guess.trial_solution
                used_initial_guess = True
            elif verbose:
                print(f"[run] step={step} initial guess failed, using the extrapolated seed")

        state, n_iterations = solver.solve_nonlinear_system(
            clock, old_solution, old_old_solution, trial_solution=seed
        )

        old_old_solution = old_solution
        old_solution = state.trial_solution.copy()

        result.steps.append(
            StepResult(
                step=step,
                time=clock.next_time,
                phase=schedule.phase(step),
                n_iterations=n_iterations,
                residual_norm=state.residual_norm,
                used_initial_guess=used_initial_guess,
            )
        )
        if store_solutions:
            result.solutions.append(old_solution.copy())
        if callback is not None:
            callback(clock, state)
        if verbose:
            print(
                f"[run] step={step} t={clock.next_time:.6g} phase={schedule.phase(step).value} "
                f"it={n_iterations} ||R||={state.residual_norm:.3e}"
            )

        clock.advance_time()

    result.solution = old_solution
    return result
