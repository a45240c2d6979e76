"""gcp_nonlinear package (nonlinear incremental solver core)."""

from .clock import SimulationClock
from .cohesive_laws import CohesiveLaw, ContactLaw
from .config import (
    CohesiveLawParameters,
    ContactLawParameters,
    KrylovParameters,
    LineSearchParameters,
    LoadingType,
    NewtonRaphsonParameters,
    Parameters,
    RegularizationFunction,
    ScalarMicroscopicStressLawParameters,
    SolverType,
    TemporalDiscretizationParameters,
)
from .constraints import DirichletConstraints
from .convergence import NewtonConvergence
from .errors import (
    ConfigurationError,
    ConvergenceFailure,
    GCPError,
    LinearSolverError,
    LineSearchFailure,
    NumericalInstability,
    StagnationError,
)
from .extrapolation import extrapolate_initial_trial_solution, step_size_ratio
from .interfaces import ConstraintHandler, FieldAssembler, LinearSolver
from .history import HistoryStore, HistoryUpdateContext, InterfaceHistory, PointKeyMap, PointKinematics, SlipHistory
from .line_search import LineSearch
from .linear_solver import ScipyLinearSolver
from .logger import IterationRecord, NonlinearSolverLogger
from .microstress import ScalarMicroscopicStressLaw
from .newton import IterationState, NewtonRaphsonSolver
from .schedule import LoadingPhase, LoadSchedule, StepClassification
from .simulation import SimulationResult, StepResult, run_simulation

__all__ = [
    "SimulationClock",
    "CohesiveLaw", "ContactLaw",
    "CohesiveLawParameters", "ContactLawParameters", "KrylovParameters", "LineSearchParameters",
    "LoadingType", "NewtonRaphsonParameters", "Parameters", "RegularizationFunction",
    "ScalarMicroscopicStressLawParameters", "SolverType", "TemporalDiscretizationParameters",
    "DirichletConstraints",
    "NewtonConvergence",
    "ConfigurationError", "ConvergenceFailure", "GCPError", "LinearSolverError", "LineSearchFailure",
    "NumericalInstability", "StagnationError",
    "extrapolate_initial_trial_solution", "step_size_ratio",
    "HistoryStore", "HistoryUpdateContext", "InterfaceHistory", "PointKeyMap", "PointKinematics", "SlipHistory",
    "ConstraintHandler", "FieldAssembler", "LinearSolver",
    "LineSearch",
    "ScipyLinearSolver",
    "IterationRecord", "NonlinearSolverLogger",
    "ScalarMicroscopicStressLaw",
    "IterationState", "NewtonRaphsonSolver",
    "LoadingPhase", "LoadSchedule", "StepClassification",
    "SimulationResult", "StepResult", "run_simulation",
]
