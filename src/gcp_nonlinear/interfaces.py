"""Structural interfaces of the collaborators the solver core calls into."""

from __future__ import annotations

from typing import Protocol, Tuple, runtime_checkable

import numpy as np

from gcp_nonlinear.history import HistoryStore, PointKinematics


@runtime_checkable
class FieldAssembler(Protocol):
    """Residual/Jacobian construction and kinematics sampling.

    All entries must be finite; constrained rows are expected to be condensed
    (see :meth:`gcp_nonlinear.constraints.DirichletConstraints.condense`).
    """

    def assemble_residual(self, trial_solution: np.ndarray, history: HistoryStore) -> np.ndarray:
        ...

    def assemble_jacobian(self, trial_solution: np.ndarray, history: HistoryStore):
        ...

    def point_kinematics(self, trial_solution: np.ndarray, old_solution: np.ndarray) -> PointKinematics:
        ...


@runtime_checkable
class LinearSolver(Protocol):
    def solve(
        self,
        jacobian,
        rhs: np.ndarray,
        relative_tolerance: float,
        absolute_tolerance: float,
        max_iterations: int,
    ) -> Tuple[np.ndarray, int]:
        ...


@runtime_checkable
class ConstraintHandler(Protocol):
    def update(self, time: float) -> None:
        ...

    def distribute(self, vector: np.ndarray) -> None:
        ...

    def distribute_homogeneous(self, vector: np.ndarray) -> None:
        ...
