"""Newton–Raphson driver with backtracking line search.

Per step::

    seed (extrapolate) -> history.prepare_for_update()
    repeat:
        store trial                      (rollback point of the line search)
        history.reset_and_update(trial)
        R0, J  <- assembler
        dU     <- linear solver (J dU = -R0)
        trial  <- stored + dU            (λ = 1)
        history.reset_and_update(trial); R <- assembler
        while Armijo fails: shrink λ, trial <- stored + λ dU, update history, reassemble
    until converged

The per-step values live in an :class:`IterationState` that is threaded
through and returned; the solver object holds collaborators and parameters
only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from gcp_nonlinear.clock import SimulationClock
from gcp_nonlinear.config import Parameters
from gcp_nonlinear.convergence import NewtonConvergence, convergence_rate
from gcp_nonlinear.errors import ConvergenceFailure, NumericalInstability, StagnationError
from gcp_nonlinear.extrapolation import extrapolate_initial_trial_solution, step_size_ratio
from gcp_nonlinear.history import HistoryStore, HistoryUpdateContext
from gcp_nonlinear.line_search import LineSearch
from gcp_nonlinear.linear_solver import ScipyLinearSolver
from gcp_nonlinear.logger import IterationRecord, NonlinearSolverLogger
from gcp_nonlinear.schedule import LoadSchedule


@dataclass
class IterationState:
    trial_solution: np.ndarray
    newton_update: np.ndarray
    old_solution: np.ndarray
    old_old_solution: np.ndarray
    residual: Optional[np.ndarray] = None
    residual_norm: float = 0.0
    newton_update_norm: float = 0.0
    relaxation_parameter: float = 1.0
    nonlinear_iteration: int = 0
    residual_norms: Dict[str, float] = field(default_factory=dict)
    newton_update_norms: Dict[str, float] = field(default_factory=dict)


def _identity(x: float) -> float:
    return x


class NewtonRaphsonSolver:
    """Solves the nonlinear system of one time step.

    Parameters
    ----------
    assembler : FieldAssembler
        Residual/Jacobian construction and kinematics sampling.
    history : HistoryStore, optional
        Per-point history; skipped when None (no internal variables).
    parameters : Parameters, optional
    linear_solver : LinearSolver, optional
        Defaults to :class:`ScipyLinearSolver` with the configured solver type.
    constraints : ConstraintHandler, optional
    schedule : LoadSchedule, optional
        Defaults to one built from the temporal discretization parameters.
    logger : NonlinearSolverLogger, optional
    field_slices : dict, optional
        ``name -> indices`` of each field for per-field norms.
    reduce_sum : callable, optional
        All-reduce of a local scalar sum (identity for a single partition).
    """

    def __init__(
        self,
        assembler,
        history: Optional[HistoryStore] = None,
        parameters: Optional[Parameters] = None,
        linear_solver=None,
        constraints=None,
        schedule: Optional[LoadSchedule] = None,
        logger: Optional[NonlinearSolverLogger] = None,
        field_slices: Optional[Dict[str, np.ndarray]] = None,
        reduce_sum: Optional[Callable[[float], float]] = None,
    ):
        self.parameters = parameters if parameters is not None else Parameters()
        p = self.parameters
        self.assembler = assembler
        self.history = history
        self.linear_solver = linear_solver or ScipyLinearSolver(
            p.krylov_parameters.solver_type, verbose=p.verbose
        )
        self.constraints = constraints
        self.schedule = schedule or LoadSchedule(
            p.temporal_discretization_parameters,
            flag_skip_extrapolation_at_extrema=p.flag_skip_extrapolation_at_extrema,
            flag_zero_damage_during_loading_and_unloading=p.flag_zero_damage_during_loading_and_unloading,
        )
        self.field_slices = {str(k): np.asarray(v, dtype=int) for k, v in (field_slices or {}).items()}
        self.logger = logger or NonlinearSolverLogger(
            field_names=list(self.field_slices), verbose=p.verbose, output_file=p.logger_output_file
        )
        self.reduce_sum = reduce_sum or _identity
        self.convergence = NewtonConvergence.from_parameters(p.newton_parameters)
        self.line_search = LineSearch(p.line_search_parameters)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _norm(self, vector: np.ndarray, index: Optional[np.ndarray] = None) -> float:
        v = vector if index is None else vector[index]
        local = float(np.dot(v, v))
        return float(np.sqrt(self.reduce_sum(local)))

    def _field_norms(self, vector: np.ndarray) -> Dict[str, float]:
        return {name: self._norm(vector, idx) for name, idx in self.field_slices.items()}

    @staticmethod
    def _check_finite(name: str, array) -> None:
        data = array.data if sp.issparse(array) else np.asarray(array)
        if not np.all(np.isfinite(data)):
            raise NumericalInstability(f"Non-finite entries in the {name}")

    def _context(self, clock: SimulationClock) -> HistoryUpdateContext:
        return HistoryUpdateContext(
            loading_type=self.parameters.temporal_discretization_parameters.loading_type,
            damage_frozen=self.schedule.is_damage_frozen(clock.next_time),
        )

    def _update_history(self, state: IterationState, context: HistoryUpdateContext) -> None:
        if self.history is None:
            return
        kinematics = self.assembler.point_kinematics(state.trial_solution, state.old_solution)
        self.history.reset_and_update(kinematics, context)

    def _assemble_residual(self, state: IterationState) -> float:
        """Assemble R(trial), store it in ``state`` and return the merit 1/2 ||R||^2."""
        residual = np.asarray(self.assembler.assemble_residual(state.trial_solution, self.history), dtype=float)
        self._check_finite("residual", residual)
        state.residual = residual
        state.residual_norm = self._norm(residual)
        return 0.5 * state.residual_norm ** 2

    def seed(
        self,
        clock: SimulationClock,
        old_solution: np.ndarray,
        old_old_solution: np.ndarray,
        trial_solution: Optional[np.ndarray] = None,
    ) -> IterationState:
        """Initial trial solution of the step ending at ``clock.next_time``."""
        if self.constraints is not None:
            self.constraints.update(clock.next_time)

        if trial_solution is not None:
            trial = np.array(trial_solution, dtype=float, copy=True)
            update = np.zeros_like(trial)
            if self.constraints is not None:
                self.constraints.distribute(trial)
        else:
            extrapolate = not self.schedule.skip_extrapolation(clock.step_number, clock.current_time)
            ratio = step_size_ratio(clock.next_step_size, clock.previous_step_size, clock.step_number)
            trial, update = extrapolate_initial_trial_solution(
                old_solution, old_old_solution, ratio, extrapolate=extrapolate, constraints=self.constraints
            )
        return IterationState(
            trial_solution=trial,
            newton_update=update,
            old_solution=np.asarray(old_solution, dtype=float),
            old_old_solution=np.asarray(old_old_solution, dtype=float),
        )

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def _log_initial_residual(self, state: IterationState, clock: SimulationClock) -> None:
        self.logger.log(
            IterationRecord(
                step=clock.step_number,
                time=clock.next_time,
                nonlinear_iteration=0,
                linear_iterations=0,
                line_search_iterations=0,
                newton_update_norm=0.0,
                residual_norm=state.residual_norm,
                convergence_rate=0.0,
                residual_norms=self._field_norms(state.residual),
            )
        )

    def _newton_iteration(self, state: IterationState, clock: SimulationClock, context: HistoryUpdateContext) -> None:
        """One Newton step with line search; updates ``state`` in place."""
        p = self.parameters
        stored_trial = state.trial_solution.copy()

        self._update_history(state, context)
        initial_merit = self._assemble_residual(state)
        initial_norm = state.residual_norm
        if state.nonlinear_iteration == 1:
            self._log_initial_residual(state, clock)

        jacobian = self.assembler.assemble_jacobian(state.trial_solution, self.history)
        self._check_finite("jacobian", jacobian)

        tolerance = max(initial_norm * p.krylov_parameters.relative_tolerance, p.krylov_parameters.absolute_tolerance)
        newton_update, n_linear = self.linear_solver.solve(
            jacobian,
            -state.residual,
            p.krylov_parameters.relative_tolerance,
            tolerance,
            p.krylov_parameters.n_max_iterations,
        )
        newton_update = np.asarray(newton_update, dtype=float)
        if self.constraints is not None:
            self.constraints.distribute_homogeneous(newton_update)

        relaxation = 1.0
        state.trial_solution = stored_trial + relaxation * newton_update
        self._update_history(state, context)
        trial_merit = self._assemble_residual(state)

        self.line_search.reinit(initial_merit)
        while not self.line_search.suffices_descent_condition(trial_merit, relaxation):
            relaxation = self.line_search.get_lambda(trial_merit, relaxation)
            state.trial_solution = stored_trial + relaxation * newton_update
            self._update_history(state, context)
            trial_merit = self._assemble_residual(state)

        previous_norm = initial_norm
        state.newton_update = newton_update
        state.newton_update_norm = self._norm(newton_update)
        state.relaxation_parameter = relaxation
        state.residual_norms = self._field_norms(state.residual)
        state.newton_update_norms = {
            name: relaxation * value for name, value in self._field_norms(newton_update).items()
        }

        rate = convergence_rate(state.residual_norm, previous_norm) if state.nonlinear_iteration > 1 else 0.0
        self.logger.log(
            IterationRecord(
                step=clock.step_number,
                time=clock.next_time,
                nonlinear_iteration=state.nonlinear_iteration,
                linear_iterations=int(n_linear),
                line_search_iterations=self.line_search.get_n_iterations(),
                newton_update_norm=relaxation * state.newton_update_norm,
                residual_norm=state.residual_norm,
                convergence_rate=rate,
                newton_update_norms=dict(state.newton_update_norms),
                residual_norms=dict(state.residual_norms),
            )
        )

    def solve_nonlinear_system(
        self,
        clock: SimulationClock,
        old_solution: np.ndarray,
        old_old_solution: np.ndarray,
        trial_solution: Optional[np.ndarray] = None,
    ) -> Tuple[IterationState, int]:
        """Solve the step ending at ``clock.next_time`` and commit the history.

        Raises
        ------
        ConvergenceFailure
            Iteration cap exceeded (hard failure), or the line search failed.
        StagnationError
            Step below ``step_tolerance`` while ``||R|| >= 100 * absolute_tolerance``.
        NumericalInstability
            Non-finite residual or Jacobian entry.
        LinearSolverError
            Propagated from the linear solver.

        The history is rolled back to the last committed step before any
        exception, these or one raised by a collaborator, propagates.
        """
        p = self.parameters.newton_parameters
        state = self.seed(clock, old_solution, old_old_solution, trial_solution)
        context = self._context(clock)
        if self.history is not None:
            self.history.prepare_for_update()
        self.logger.print_step_header(clock.step_number, clock.next_time)

        try:
            while True:
                state.nonlinear_iteration += 1
                if state.nonlinear_iteration > p.n_max_iterations:
                    raise ConvergenceFailure(
                        f"Maximum number of nonlinear iterations ({p.n_max_iterations}) reached "
                        f"at step {clock.step_number} (||R||={state.residual_norm:.3e})",
                        step=clock.step_number,
                        iterations=p.n_max_iterations,
                    )
                self._newton_iteration(state, clock, context)

                if self.convergence.converged(state.residual_norm, state.relaxation_parameter, state.newton_update_norm):
                    break
                if self.convergence.stagnated(state.residual_norm, state.relaxation_parameter, state.newton_update_norm):
                    raise StagnationError(
                        f"Newton step {state.relaxation_parameter * state.newton_update_norm:.3e} below the step "
                        f"tolerance while ||R||={state.residual_norm:.3e} at step {clock.step_number}",
                        step=clock.step_number,
                        iterations=state.nonlinear_iteration,
                    )
        except ConvergenceFailure as e:
            if e.step is None:
                e.step = clock.step_number
            if self.history is not None:
                self.history.reset_values()
            raise
        except Exception:
            if self.history is not None:
                self.history.reset_values()
            raise

        if self.history is not None:
            kinematics = self.assembler.point_kinematics(state.trial_solution, state.old_solution)
            self.history.commit(kinematics)
        self.logger.print_message(
            f"converged step={clock.step_number} it={state.nonlinear_iteration} ||R||={state.residual_norm:.3e}"
        )
        return state, state.nonlinear_iteration

    def compute_initial_guess(
        self,
        clock: SimulationClock,
        old_solution: np.ndarray,
        old_old_solution: np.ndarray,
        trial_solution: Optional[np.ndarray] = None,
    ) -> Tuple[bool, IterationState]:
        """Newton iteration whose iteration cap is a soft failure.

        Convergence test: ``||R|| < absolute_tolerance`` or
        ``||dU|| < step_tolerance``. Returns ``(False, state)`` when the cap is
        reached or the line search gives up. The history is rolled back in
        either case; it is committed by :meth:`solve_nonlinear_system`.
        """
        p = self.parameters.newton_parameters
        state = self.seed(clock, old_solution, old_old_solution, trial_solution)
        context = self._context(clock)
        if self.history is not None:
            self.history.prepare_for_update()
        self.logger.print_step_header(clock.step_number, clock.next_time)

        converged = False
        try:
            while not converged:
                state.nonlinear_iteration += 1
                if state.nonlinear_iteration > p.n_max_iterations:
                    self.logger.print_message(
                        "maximum number of nonlinear iterations reached, computing a new initial solution"
                    )
                    break
                self._newton_iteration(state, clock, context)
                converged = self.convergence.initial_guess_converged(state.residual_norm, state.newton_update_norm)
        except ConvergenceFailure as e:
            self.logger.print_message(f"initial guess failed: {e}")
            converged = False
        finally:
            if self.history is not None:
                self.history.reset_values()

        return converged, state
