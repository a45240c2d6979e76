"""Load schedule: loading phases, extrema steps and damage freeze windows.

Phases are closed-open intervals over the step index ``n`` (the number of
already converged steps, i.e. the step being solved goes from ``t^n`` to
``t^{n+1}``)::

    Preloading  [0, P)
    Loading     [P, P + L)
    Cyclic      [P + L, P + L + 2*H*N)
    Unloading   [P + L + 2*H*N, inf)

with P, L the preloading / loading step counts, H the steps per half cycle
and N the number of cycles. Monotonic loading is a single Loading phase.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from gcp_nonlinear.config import LoadingType, TemporalDiscretizationParameters

_TIME_EPS = 1e-10


class LoadingPhase(Enum):
    PRELOADING = "preloading"
    LOADING = "loading"
    CYCLIC = "cyclic"
    UNLOADING = "unloading"


@dataclass(frozen=True)
class StepClassification:
    """Everything the driver needs to know about one step."""
    step: int
    phase: LoadingPhase
    extrema_step: bool
    skip_extrapolation: bool
    damage_frozen: bool


class LoadSchedule:
    """Classifies steps of a loading program.

    Parameters
    ----------
    parameters : TemporalDiscretizationParameters
        Step counts, period and loading type.
    flag_skip_extrapolation_at_extrema : bool
        Seed extrema steps with the last converged solution instead of the
        extrapolated one.
    flag_zero_damage_during_loading_and_unloading : bool
        Freeze damage evolution during the preloading (and, for
        CyclicWithUnloading, the unloading) phase.
    """

    def __init__(
        self,
        parameters: TemporalDiscretizationParameters,
        flag_skip_extrapolation_at_extrema: bool = False,
        flag_zero_damage_during_loading_and_unloading: bool = False,
    ):
        self.parameters = parameters
        self.flag_skip_extrapolation_at_extrema = bool(flag_skip_extrapolation_at_extrema)
        self.flag_zero_damage_during_loading_and_unloading = bool(flag_zero_damage_during_loading_and_unloading)

    # ------------------------------------------------------------------
    # Phase boundaries (step indices)
    # ------------------------------------------------------------------

    @property
    def loading_type(self) -> LoadingType:
        return self.parameters.loading_type

    @property
    def start_of_loading_step(self) -> int:
        return int(self.parameters.n_steps_in_preloading_phase)

    @property
    def start_of_cyclic_step(self) -> int:
        return self.start_of_loading_step + int(self.parameters.n_steps_in_loading_and_unloading_phases)

    @property
    def start_of_unloading_step(self) -> int:
        return self.start_of_cyclic_step + self.parameters.n_steps_in_cyclic_phase

    def phase(self, step: int) -> LoadingPhase:
        step = int(step)
        if step < 0:
            raise ValueError(f"Step index must be non-negative, got {step}")
        if self.loading_type == LoadingType.MONOTONIC:
            return LoadingPhase.LOADING
        if step < self.start_of_loading_step:
            return LoadingPhase.PRELOADING
        if step < self.start_of_cyclic_step:
            return LoadingPhase.LOADING
        if step < self.start_of_unloading_step:
            return LoadingPhase.CYCLIC
        return LoadingPhase.UNLOADING

    def step_size(self, step: int) -> float:
        """Step size used to go from step ``step`` to ``step + 1``."""
        if self.phase(step) == LoadingPhase.CYCLIC:
            return self.parameters.cyclic_time_step_size
        return float(self.parameters.time_step_size)

    # ------------------------------------------------------------------
    # Cyclic bookkeeping
    # ------------------------------------------------------------------

    def cycle_count(self, time: float) -> int:
        """Completed cycles at ``time`` (negative before the cyclic phase)."""
        p = self.parameters
        elapsed = (float(time) - p.start_of_cyclic_phase) / float(p.period)
        # accumulated step sizes land a hair below a cycle boundary; count that cycle as completed
        return int(math.floor(elapsed + _TIME_EPS))

    def effective_step_number(self, step: int, time: float) -> int:
        """Step index relative to the start of the current cycle."""
        p = self.parameters
        n_cycles = self.cycle_count(time)
        return abs(int(step) - self.start_of_cyclic_step - 2 * p.n_steps_per_half_cycle * n_cycles)

    def is_extrema_step(self, step: int, time: float) -> bool:
        """Phase boundaries and the quarter / three-quarter points of each cycle."""
        if self.loading_type == LoadingType.MONOTONIC:
            return False

        step = int(step)
        p = self.parameters
        half = int(p.n_steps_per_half_cycle)

        maximum_of_preloading_phase = step == self.start_of_loading_step // 2
        start_of_loading_phase = step == self.start_of_loading_step
        start_of_cyclic_phase = step == self.start_of_cyclic_step
        start_of_unloading_phase = step == self.start_of_unloading_step

        extrema_of_cyclic_phase = False
        n_cycles = self.cycle_count(time)
        if n_cycles >= 0 and step <= self.start_of_unloading_step:
            effective = self.effective_step_number(step, time)
            extrema_of_cyclic_phase = effective in ((2 * half * 1) // 4, (2 * half * 3) // 4)

        return (
            maximum_of_preloading_phase
            or start_of_loading_phase
            or start_of_cyclic_phase
            or start_of_unloading_phase
            or extrema_of_cyclic_phase
        )

    def skip_extrapolation(self, step: int, time: float) -> bool:
        return self.flag_skip_extrapolation_at_extrema and self.is_extrema_step(step, time)

    def is_damage_frozen(self, next_time: float) -> bool:
        """Whether damage evolution is suppressed for a step ending at ``next_time``."""
        if not self.flag_zero_damage_during_loading_and_unloading:
            return False

        p = self.parameters
        if self.loading_type == LoadingType.MONOTONIC:
            return False

        in_preloading = next_time <= p.start_of_loading_phase + _TIME_EPS
        if self.loading_type == LoadingType.CYCLIC:
            return in_preloading

        in_unloading = next_time > p.start_of_unloading_phase + _TIME_EPS
        return in_preloading or in_unloading

    def classify(self, step: int, time: float, next_time: float) -> StepClassification:
        extrema = self.is_extrema_step(step, time)
        return StepClassification(
            step=int(step),
            phase=self.phase(step),
            extrema_step=extrema,
            skip_extrapolation=self.flag_skip_extrapolation_at_extrema and extrema,
            damage_frozen=self.is_damage_frozen(next_time),
        )
