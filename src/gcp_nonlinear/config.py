"""Run-time parameters of the nonlinear solver core.

Parameters are grouped in small dataclasses. Each group normalizes and
validates itself in ``__post_init__`` so that a bad option fails when the
parameter set is built, not in the middle of a run.

A full parameter set can be written to / read from YAML:

    params = Parameters.load_yaml("run.yaml")
    params.save_yaml("run_used.yaml")

``Parameters.from_dict`` accepts either the nested layout produced by
``to_dict`` or the flat option names (``absolute_tolerance``,
``critical_cohesive_traction``, ``loading_type``, ...), which are routed to
the group that owns them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Dict, Optional

import yaml

from gcp_nonlinear.errors import ConfigurationError


class RegularizationFunction(Enum):
    """Regularization of the rate-independent flow rule."""
    POWER_LAW = "power_law"
    TANH = "tanh"


class LoadingType(Enum):
    """Loading protocol."""
    MONOTONIC = "monotonic"
    CYCLIC = "cyclic"
    CYCLIC_WITH_UNLOADING = "cyclic_with_unloading"


class SolverType(Enum):
    """Linear solver used for the Newton correction."""
    DIRECT = "direct"
    CG = "cg"
    GMRES = "gmres"


_REGULARIZATION_ALIASES = {
    "power_law": RegularizationFunction.POWER_LAW,
    "powerlaw": RegularizationFunction.POWER_LAW,
    "power-law": RegularizationFunction.POWER_LAW,
    "tanh": RegularizationFunction.TANH,
}

_LOADING_ALIASES = {
    "monotonic": LoadingType.MONOTONIC,
    "cyclic": LoadingType.CYCLIC,
    "cyclic_with_unloading": LoadingType.CYCLIC_WITH_UNLOADING,
    "cyclicwithunloading": LoadingType.CYCLIC_WITH_UNLOADING,
    "cyclic-with-unloading": LoadingType.CYCLIC_WITH_UNLOADING,
}

_SOLVER_ALIASES = {
    "direct": SolverType.DIRECT,
    "directsolver": SolverType.DIRECT,
    "cg": SolverType.CG,
    "gmres": SolverType.GMRES,
}


def _parse_enum(value: Any, enum_cls, aliases: Dict[str, Enum], what: str):
    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower()
    if key not in aliases:
        choices = ", ".join(sorted({m.value for m in enum_cls}))
        raise ConfigurationError(f"Unknown {what}='{value}'. Use one of: {choices}.")
    return aliases[key]


def parse_regularization_function(value: Any) -> RegularizationFunction:
    return _parse_enum(value, RegularizationFunction, _REGULARIZATION_ALIASES, "regularization_function")


def parse_loading_type(value: Any) -> LoadingType:
    return _parse_enum(value, LoadingType, _LOADING_ALIASES, "loading_type")


def parse_solver_type(value: Any) -> SolverType:
    return _parse_enum(value, SolverType, _SOLVER_ALIASES, "solver_type")


# ============================================================================
# SOLVER GROUPS
# ============================================================================

@dataclass
class NewtonRaphsonParameters:
    n_max_iterations: int = 15
    absolute_tolerance: float = 1e-8
    step_tolerance: float = 1e-10

    def __post_init__(self) -> None:
        self.n_max_iterations = int(self.n_max_iterations)
        if self.n_max_iterations < 1:
            raise ConfigurationError("n_max_iterations must be >= 1")
        if self.absolute_tolerance <= 0.0 or self.step_tolerance <= 0.0:
            raise ConfigurationError("Newton tolerances must be positive")


@dataclass
class KrylovParameters:
    """Tolerances handed to the linear solver.

    The solve tolerance is ``max(||R|| * relative_tolerance, absolute_tolerance)``.
    """
    solver_type: SolverType = SolverType.DIRECT
    relative_tolerance: float = 1e-6
    absolute_tolerance: float = 1e-12
    n_max_iterations: int = 1000

    def __post_init__(self) -> None:
        self.solver_type = parse_solver_type(self.solver_type)
        self.n_max_iterations = int(self.n_max_iterations)


@dataclass
class LineSearchParameters:
    armijo_condition_constant: float = 1e-4
    n_max_iterations: int = 15
    lower_bound_factor: float = 0.1
    upper_bound_factor: float = 0.5
    min_lambda: float = 1e-8

    def __post_init__(self) -> None:
        if not (0.0 < self.armijo_condition_constant < 0.5):
            raise ConfigurationError("armijo_condition_constant must lie in (0, 0.5)")
        if not (0.0 < self.lower_bound_factor <= self.upper_bound_factor < 1.0):
            raise ConfigurationError("Line-search bounds must satisfy 0 < lower <= upper < 1")
        if self.min_lambda <= 0.0:
            raise ConfigurationError("min_lambda must be positive")
        self.n_max_iterations = int(self.n_max_iterations)


# ============================================================================
# CONSTITUTIVE GROUPS
# ============================================================================

@dataclass(frozen=True)
class ScalarMicroscopicStressLawParameters:
    regularization_function: RegularizationFunction = RegularizationFunction.TANH
    regularization_parameter: float = 1e-3
    initial_slip_resistance: float = 0.0
    linear_hardening_modulus: float = 0.0
    hardening_parameter: float = 1.0

    def __post_init__(self) -> None:
        # frozen: assign through object.__setattr__
        object.__setattr__(
            self, "regularization_function", parse_regularization_function(self.regularization_function)
        )
        if self.regularization_parameter <= 0.0:
            raise ConfigurationError("regularization_parameter must be positive")
        if not (0.0 <= self.hardening_parameter <= 1.0):
            raise ConfigurationError(
                f"hardening_parameter must lie in [0, 1], got {self.hardening_parameter}"
            )


@dataclass(frozen=True)
class CohesiveLawParameters:
    critical_cohesive_traction: float = 700.0
    critical_opening_displacement: float = 2.5e-2
    degradation_exponent: float = 1.0
    tangential_weight: float = 1.0
    flag_couple_macrotraction_to_damage: bool = True
    flag_couple_microtraction_to_damage: bool = True
    # Cyclic damage evolution
    damage_accumulation_constant: float = 1.0
    endurance_limit: float = 0.0

    def __post_init__(self) -> None:
        if self.critical_cohesive_traction <= 0.0:
            raise ConfigurationError("critical_cohesive_traction must be positive")
        if self.critical_opening_displacement <= 0.0:
            raise ConfigurationError("critical_opening_displacement must be positive")
        if self.degradation_exponent < 1.0:
            raise ConfigurationError("degradation_exponent must be >= 1")
        if self.tangential_weight < 0.0:
            raise ConfigurationError("tangential_weight must be non-negative")
        if self.damage_accumulation_constant < 0.0 or self.endurance_limit < 0.0:
            raise ConfigurationError("Damage evolution constants must be non-negative")


@dataclass(frozen=True)
class ContactLawParameters:
    penalty_coefficient: float = 1e4

    def __post_init__(self) -> None:
        if self.penalty_coefficient < 0.0:
            raise ConfigurationError("penalty_coefficient must be non-negative")


# ============================================================================
# LOADING PROGRAM
# ============================================================================

@dataclass
class TemporalDiscretizationParameters:
    """Step counts and durations of the loading program.

    Outside the cyclic phase the step size is ``time_step_size``; inside it
    is ``period / (2 * n_steps_per_half_cycle)``.
    """
    loading_type: LoadingType = LoadingType.MONOTONIC
    start_time: float = 0.0
    end_time: float = 1.0
    time_step_size: float = 1e-1
    period: float = 1.0
    n_cycles: int = 1
    n_steps_per_half_cycle: int = 10
    n_steps_in_preloading_phase: int = 0
    n_steps_in_loading_and_unloading_phases: int = 0
    n_steps_in_unloading_phase: int = 0

    def __post_init__(self) -> None:
        self.loading_type = parse_loading_type(self.loading_type)
        for name in (
            "n_cycles",
            "n_steps_per_half_cycle",
            "n_steps_in_preloading_phase",
            "n_steps_in_loading_and_unloading_phases",
            "n_steps_in_unloading_phase",
        ):
            value = int(getattr(self, name))
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative")
            setattr(self, name, value)
        if self.time_step_size <= 0.0:
            raise ConfigurationError("time_step_size must be positive")
        if self.loading_type != LoadingType.MONOTONIC:
            if self.period <= 0.0:
                raise ConfigurationError("period must be positive for cyclic loading")
            if self.n_steps_per_half_cycle < 1:
                raise ConfigurationError("n_steps_per_half_cycle must be >= 1 for cyclic loading")
            # The cyclic program fixes the end time.
            self.end_time = float(self.start_of_unloading_phase + self.n_steps_in_unloading_phase * self.time_step_size)
        if self.end_time <= self.start_time:
            raise ConfigurationError("end_time must be larger than start_time")

    @property
    def cyclic_time_step_size(self) -> float:
        return float(self.period) / (2.0 * max(1, self.n_steps_per_half_cycle))

    @property
    def start_of_loading_phase(self) -> float:
        return float(self.start_time + self.n_steps_in_preloading_phase * self.time_step_size)

    @property
    def start_of_cyclic_phase(self) -> float:
        return float(self.start_of_loading_phase + self.n_steps_in_loading_and_unloading_phases * self.time_step_size)

    @property
    def start_of_unloading_phase(self) -> float:
        if self.loading_type == LoadingType.MONOTONIC:
            return math.inf
        return float(self.start_of_cyclic_phase + self.n_cycles * self.period)

    @property
    def n_steps_in_cyclic_phase(self) -> int:
        return int(2 * self.n_steps_per_half_cycle * self.n_cycles)


# ============================================================================
# MASTER PARAMETER SET
# ============================================================================

_GROUPS = {
    "newton_parameters": NewtonRaphsonParameters,
    "krylov_parameters": KrylovParameters,
    "line_search_parameters": LineSearchParameters,
    "scalar_microstress_law_parameters": ScalarMicroscopicStressLawParameters,
    "cohesive_law_parameters": CohesiveLawParameters,
    "contact_law_parameters": ContactLawParameters,
    "temporal_discretization_parameters": TemporalDiscretizationParameters,
}

# Flat option names that exist in more than one group.
_FLAT_ALIASES = {
    "relative_tolerance": ("krylov_parameters", "relative_tolerance"),
    "krylov_relative_tolerance": ("krylov_parameters", "relative_tolerance"),
    "krylov_absolute_tolerance": ("krylov_parameters", "absolute_tolerance"),
    "krylov_max_iterations": ("krylov_parameters", "n_max_iterations"),
    "n_max_iterations": ("newton_parameters", "n_max_iterations"),
    "absolute_tolerance": ("newton_parameters", "absolute_tolerance"),
    "line_search_max_iterations": ("line_search_parameters", "n_max_iterations"),
}


@dataclass
class Parameters:
    newton_parameters: NewtonRaphsonParameters = field(default_factory=NewtonRaphsonParameters)
    krylov_parameters: KrylovParameters = field(default_factory=KrylovParameters)
    line_search_parameters: LineSearchParameters = field(default_factory=LineSearchParameters)
    scalar_microstress_law_parameters: ScalarMicroscopicStressLawParameters = field(
        default_factory=ScalarMicroscopicStressLawParameters
    )
    cohesive_law_parameters: CohesiveLawParameters = field(default_factory=CohesiveLawParameters)
    contact_law_parameters: ContactLawParameters = field(default_factory=ContactLawParameters)
    temporal_discretization_parameters: TemporalDiscretizationParameters = field(
        default_factory=TemporalDiscretizationParameters
    )

    flag_skip_extrapolation_at_extrema: bool = False
    flag_zero_damage_during_loading_and_unloading: bool = False

    use_numba: bool = False
    verbose: bool = False
    logger_output_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a YAML-friendly dictionary (enums become their values)."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _GROUPS:
                group = asdict(value)
                out[f.name] = {k: (v.value if isinstance(v, Enum) else v) for k, v in group.items()}
            else:
                out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Parameters":
        """Construct from a nested or flat dictionary (inverse of ``to_dict``)."""
        data = dict(data or {})
        group_kwargs: Dict[str, Dict[str, Any]] = {name: {} for name in _GROUPS}
        top_kwargs: Dict[str, Any] = {}

        owner = {}
        for group_name, group_cls in _GROUPS.items():
            for f in fields(group_cls):
                owner.setdefault(f.name, (group_name, f.name))
        owner.update(_FLAT_ALIASES)
        top_names = {f.name for f in fields(cls)} - set(_GROUPS)

        for key, value in data.items():
            if key in _GROUPS:
                if not isinstance(value, dict):
                    raise ConfigurationError(f"Parameter group '{key}' must be a mapping")
                group_kwargs[key].update(value)
            elif key in top_names:
                top_kwargs[key] = value
            elif key in owner:
                group_name, field_name = owner[key]
                group_kwargs[group_name][field_name] = value
            else:
                raise ConfigurationError(f"Unknown configuration option '{key}'")

        groups = {}
        for group_name, group_cls in _GROUPS.items():
            known = {f.name for f in fields(group_cls)}
            unknown = set(group_kwargs[group_name]) - known
            if unknown:
                raise ConfigurationError(
                    f"Unknown option(s) {sorted(unknown)} in parameter group '{group_name}'"
                )
            groups[group_name] = group_cls(**group_kwargs[group_name])
        return cls(**groups, **top_kwargs)

    def save_yaml(self, filepath: str) -> None:
        with open(filepath, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load_yaml(cls, filepath: str) -> "Parameters":
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})
