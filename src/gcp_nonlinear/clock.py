"""Discrete simulation time owned by the time-stepping driver."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SimulationClock:
    """Current/next time, step sizes and step counter.

    ``next_time`` is the time the nonlinear system is being solved for;
    ``advance_time`` moves it into ``current_time`` once a step converged.
    """

    start_time: float = 0.0
    end_time: float = 1.0
    desired_start_step_size: float = 0.1

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be larger than start_time")
        if self.desired_start_step_size <= 0.0:
            raise ValueError("Step size must be positive")
        self.current_time = float(self.start_time)
        self.step_number = 0
        self.previous_step_size = 0.0
        self.next_step_size = min(float(self.desired_start_step_size), self.end_time - self.start_time)

    @property
    def next_time(self) -> float:
        return float(self.current_time + self.next_step_size)

    def is_at_start(self) -> bool:
        return self.step_number == 0

    def is_at_end(self) -> bool:
        return self.current_time >= self.end_time - 1e-12 * max(1.0, abs(self.end_time))

    def set_desired_next_step_size(self, step_size: float) -> None:
        """Set the next step size, shortening it to land exactly on ``end_time``."""
        step_size = float(step_size)
        if step_size <= 0.0:
            raise ValueError("Step size must be positive")
        remaining = self.end_time - self.current_time
        # Stretch slightly to avoid a sliver step at the end.
        if step_size * 1.05 >= remaining:
            step_size = remaining
        self.next_step_size = step_size

    def advance_time(self) -> None:
        if self.is_at_end():
            raise RuntimeError("Cannot advance time past end_time")
        self.current_time = self.next_time
        self.previous_step_size = self.next_step_size
        self.step_number += 1
        if not self.is_at_end():
            self.set_desired_next_step_size(self.previous_step_size)
