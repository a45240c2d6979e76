"""Per-point history storage with commit/rollback.

Data-oriented layout
--------------------
History variables live in flat struct-of-arrays containers addressed by a
stable integer index. A :class:`PointKeyMap` assigns each owner (a cell for
bulk points, an unordered pair of region ids for interface points) a
contiguous index range at setup. Kernels never see the keys.

Every container keeps two copies of each variable:

* the *working* value, recomputed on every Newton iterate / line-search trial;
* the ``tmp_`` snapshot, taken by :meth:`store_current_values` at the start
  of a step and restored by :meth:`reset_values`.

A working value becomes committed when the step converges: the snapshot of the
next step is then taken from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterator, Optional, Tuple, Union

import numpy as np

from gcp_nonlinear.cohesive_laws import CohesiveLaw
from gcp_nonlinear.config import (
    CohesiveLawParameters,
    LoadingType,
    Parameters,
    ScalarMicroscopicStressLawParameters,
)
from gcp_nonlinear.microstress import hardening_matrix


Key = Union[int, Tuple[int, int]]


def _readonly(a: np.ndarray) -> np.ndarray:
    v = a.view()
    v.flags.writeable = False
    return v


# ----------------------------------------------------------------------------
# Key map
# ----------------------------------------------------------------------------


class PointKeyMap:
    """Owner key -> contiguous slice of point indices.

    Parameters
    ----------
    symmetric : bool
        If True keys are unordered pairs: ``(a, b)`` and ``(b, a)`` address the
        same range.
    """

    def __init__(self, symmetric: bool = False):
        self.symmetric = bool(symmetric)
        self._ranges: Dict[Hashable, slice] = {}
        self.n_points = 0

    def normalize_key(self, key: Key) -> Hashable:
        if self.symmetric:
            if not isinstance(key, (tuple, list)) or len(key) != 2:
                raise TypeError(f"Interface key must be a pair of ids, got {key!r}")
            a, b = int(key[0]), int(key[1])
            return (a, b) if a <= b else (b, a)
        if isinstance(key, (tuple, list)):
            raise TypeError(f"Bulk key must be a single id, got {key!r}")
        return int(key)

    def add(self, key: Key, n_points: int) -> slice:
        k = self.normalize_key(key)
        if k in self._ranges:
            raise KeyError(f"Key {k!r} is already registered")
        n_points = int(n_points)
        if n_points < 0:
            raise ValueError("n_points must be non-negative")
        rng = slice(self.n_points, self.n_points + n_points)
        self._ranges[k] = rng
        self.n_points += n_points
        return rng

    def __getitem__(self, key: Key) -> slice:
        k = self.normalize_key(key)
        try:
            return self._ranges[k]
        except KeyError:
            raise KeyError(f"Unknown history key {key!r}") from None

    def __contains__(self, key: Key) -> bool:
        try:
            return self.normalize_key(key) in self._ranges
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self._ranges)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._ranges)


# ----------------------------------------------------------------------------
# Kinematics handed over by the assembler
# ----------------------------------------------------------------------------


@dataclass
class PointKinematics:
    """Trial kinematics sampled at every history point.

    Attributes
    ----------
    slips, old_slips : (n_slip_points, n_slips) np.ndarray, optional
        Slips of the trial iterate and of the last converged step.
    openings : (n_interface_points, dim) np.ndarray, optional
        Displacement jump (neighbor minus current side).
    normals : (n_interface_points, dim) np.ndarray, optional
        Unit normals.
    micro_free_energy : (n_interface_points,) np.ndarray, optional
        Free energy density of the microscopic traction coupling. Zero if
        omitted.
    """

    slips: Optional[np.ndarray] = None
    old_slips: Optional[np.ndarray] = None
    openings: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    micro_free_energy: Optional[np.ndarray] = None


@dataclass(frozen=True)
class HistoryUpdateContext:
    loading_type: LoadingType = LoadingType.MONOTONIC
    damage_frozen: bool = False


# ----------------------------------------------------------------------------
# Slip resistances
# ----------------------------------------------------------------------------


class SlipHistory:
    """Slip resistances g_α over ``n_points x n_slips``.

    g_α = g_α,old + Σ_β h_αβ |γ_β − γ_β,old|,  h_αβ = H (q + (1 − q) δ_αβ)
    """

    def __init__(self, n_points: int, n_slips: int):
        self.n_points = int(n_points)
        self.n_slips = int(n_slips)
        self.slip_resistances: Optional[np.ndarray] = None
        self.tmp_slip_resistances: Optional[np.ndarray] = None
        self.hardening_matrix: Optional[np.ndarray] = None
        self.initial_slip_resistance = 0.0
        self.linear_hardening_modulus = 0.0
        self.hardening_parameter = 1.0
        self.flag_init_was_called = False

    def _check_init(self) -> None:
        if not self.flag_init_was_called:
            raise RuntimeError("SlipHistory.init() has not been called")

    def init(self, parameters: ScalarMicroscopicStressLawParameters) -> None:
        self.initial_slip_resistance = float(parameters.initial_slip_resistance)
        self.linear_hardening_modulus = float(parameters.linear_hardening_modulus)
        self.hardening_parameter = float(parameters.hardening_parameter)
        self.hardening_matrix = hardening_matrix(
            self.n_slips, self.linear_hardening_modulus, self.hardening_parameter
        )
        self.slip_resistances = np.full((self.n_points, self.n_slips), self.initial_slip_resistance, dtype=float)
        self.tmp_slip_resistances = self.slip_resistances.copy()
        self.flag_init_was_called = True

    def store_current_values(self) -> None:
        self._check_init()
        self.tmp_slip_resistances[...] = self.slip_resistances

    def reset_values(self) -> None:
        self._check_init()
        self.slip_resistances[...] = self.tmp_slip_resistances

    def update_values(self, slips: np.ndarray, old_slips: np.ndarray, use_numba: bool = False) -> None:
        self._check_init()
        slips = np.ascontiguousarray(slips, dtype=float)
        old_slips = np.ascontiguousarray(old_slips, dtype=float)
        shape = (self.n_points, self.n_slips)
        if slips.shape != shape or old_slips.shape != shape:
            raise ValueError(f"Slip arrays must have shape {shape}, got {slips.shape} and {old_slips.shape}")

        if use_numba:
            from gcp_nonlinear.numba.kernels_history import slip_update_kernel

            slip_update_kernel(
                self.tmp_slip_resistances, slips, old_slips, self.hardening_matrix, self.slip_resistances
            )
        else:
            increments = np.abs(slips - old_slips)
            self.slip_resistances[...] = self.tmp_slip_resistances + increments @ self.hardening_matrix.T

    def get_slip_resistances(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.slip_resistances if index is None else self.slip_resistances[index]
        return _readonly(a)


# ----------------------------------------------------------------------------
# Interface damage
# ----------------------------------------------------------------------------


class InterfaceHistory:
    """Damage and opening history at interface points."""

    def __init__(self, n_points: int):
        self.n_points = int(n_points)
        self.law: Optional[CohesiveLaw] = None
        self.damage_accumulation_constant = 1.0
        self.endurance_limit = 0.0

        self.damage_variable: Optional[np.ndarray] = None
        self.max_effective_opening_displacement: Optional[np.ndarray] = None
        self.effective_opening_displacement: Optional[np.ndarray] = None
        self.old_effective_opening_displacement: Optional[np.ndarray] = None
        self.effective_cohesive_traction: Optional[np.ndarray] = None
        self.max_effective_normal_opening_displacement: Optional[np.ndarray] = None
        self.max_effective_tangential_opening_displacement: Optional[np.ndarray] = None
        self.max_cohesive_traction: Optional[np.ndarray] = None

        self.tmp_damage_variable: Optional[np.ndarray] = None
        self.tmp_max_effective_opening_displacement: Optional[np.ndarray] = None
        self.tmp_effective_opening_displacement: Optional[np.ndarray] = None
        self.tmp_max_effective_normal_opening_displacement: Optional[np.ndarray] = None
        self.tmp_max_effective_tangential_opening_displacement: Optional[np.ndarray] = None
        self.tmp_max_cohesive_traction: Optional[np.ndarray] = None

        self.freeze: Optional[np.ndarray] = None
        self.flag_init_was_called = False

    @property
    def critical_cohesive_traction(self) -> float:
        self._check_init()
        return self.law.critical_cohesive_traction

    @property
    def critical_opening_displacement(self) -> float:
        self._check_init()
        return self.law.critical_opening_displacement

    def _check_init(self) -> None:
        if not self.flag_init_was_called:
            raise RuntimeError("InterfaceHistory.init() has not been called")

    def init(self, parameters: CohesiveLawParameters) -> None:
        self.law = CohesiveLaw.from_parameters(parameters)
        self.damage_accumulation_constant = float(parameters.damage_accumulation_constant)
        self.endurance_limit = float(parameters.endurance_limit)

        n = self.n_points
        self.damage_variable = np.zeros(n, dtype=float)
        self.max_effective_opening_displacement = np.zeros(n, dtype=float)
        self.effective_opening_displacement = np.zeros(n, dtype=float)
        self.old_effective_opening_displacement = np.zeros(n, dtype=float)
        self.effective_cohesive_traction = np.zeros(n, dtype=float)
        self.tmp_damage_variable = np.zeros(n, dtype=float)
        self.tmp_max_effective_opening_displacement = np.zeros(n, dtype=float)
        self.max_effective_normal_opening_displacement = np.zeros(n, dtype=float)
        self.max_effective_tangential_opening_displacement = np.zeros(n, dtype=float)
        self.max_cohesive_traction = np.zeros(n, dtype=float)
        self.tmp_effective_opening_displacement = np.zeros(n, dtype=float)
        self.tmp_max_effective_normal_opening_displacement = np.zeros(n, dtype=float)
        self.tmp_max_effective_tangential_opening_displacement = np.zeros(n, dtype=float)
        self.tmp_max_cohesive_traction = np.zeros(n, dtype=float)
        self.freeze = np.zeros(n, dtype=bool)
        self.flag_init_was_called = True

    def set_freeze(self, mask, index: Optional[slice] = None) -> None:
        """Freeze damage evolution at selected points (only openings are tracked)."""
        self._check_init()
        if index is None:
            self.freeze[...] = mask
        else:
            self.freeze[index] = mask

    def store_current_values(self) -> None:
        self._check_init()
        self.tmp_damage_variable[...] = self.damage_variable
        self.tmp_max_effective_opening_displacement[...] = self.max_effective_opening_displacement
        self.tmp_effective_opening_displacement[...] = self.effective_opening_displacement
        self.tmp_max_effective_normal_opening_displacement[...] = self.max_effective_normal_opening_displacement
        self.tmp_max_effective_tangential_opening_displacement[...] = self.max_effective_tangential_opening_displacement
        self.tmp_max_cohesive_traction[...] = self.max_cohesive_traction

    def reset_values(self) -> None:
        self._check_init()
        self.damage_variable[...] = self.tmp_damage_variable
        self.max_effective_opening_displacement[...] = self.tmp_max_effective_opening_displacement
        self.effective_opening_displacement[...] = self.tmp_effective_opening_displacement
        self.max_effective_normal_opening_displacement[...] = self.tmp_max_effective_normal_opening_displacement
        self.max_effective_tangential_opening_displacement[...] = self.tmp_max_effective_tangential_opening_displacement
        self.max_cohesive_traction[...] = self.tmp_max_cohesive_traction

    def update_values(
        self,
        openings: np.ndarray,
        normals: np.ndarray,
        micro_free_energy: Optional[np.ndarray] = None,
        loading_type: LoadingType = LoadingType.MONOTONIC,
        damage_frozen: bool = False,
        use_numba: bool = False,
    ) -> None:
        """Recompute working values from the snapshot and the trial openings.

        Monotonic: d = max(d_old, 1 − exp(−δ_max / (p δ_c))).
        Cyclic: Y = −φ'(d_old) (ψ_coh(δ) + ψ_micro),
        d = min(1, d_old + c ⟨Y − Y_e⟩ |δ − δ_committed|).
        Frozen points keep d_old; their openings are still tracked.
        The running maxima of ⟨δ_n⟩, β|u_t| and φ(d) K_0 δ_eff are updated last.
        """
        self._check_init()
        openings = np.ascontiguousarray(openings, dtype=float)
        normals = np.ascontiguousarray(normals, dtype=float)
        if openings.ndim != 2 or openings.shape[0] != self.n_points or normals.shape != openings.shape:
            raise ValueError(
                f"openings/normals must have shape ({self.n_points}, dim), got {openings.shape} and {normals.shape}"
            )
        if micro_free_energy is None:
            micro_free_energy = np.zeros(self.n_points, dtype=float)
        else:
            micro_free_energy = np.ascontiguousarray(micro_free_energy, dtype=float).reshape(self.n_points)

        freeze = self.freeze | bool(damage_frozen)
        cyclic = loading_type in (LoadingType.CYCLIC, LoadingType.CYCLIC_WITH_UNLOADING)

        if use_numba:
            from gcp_nonlinear.numba.kernels_history import MODE_CYCLIC, MODE_MONOTONIC, interface_update_kernel

            law = self.law
            interface_update_kernel(
                openings,
                normals,
                micro_free_energy,
                self.tmp_damage_variable,
                self.tmp_max_effective_opening_displacement,
                self.tmp_max_effective_normal_opening_displacement,
                self.tmp_max_effective_tangential_opening_displacement,
                self.tmp_max_cohesive_traction,
                self.old_effective_opening_displacement,
                freeze,
                MODE_CYCLIC if cyclic else MODE_MONOTONIC,
                float(law.critical_cohesive_traction),
                float(law.critical_opening_displacement),
                float(law.tangential_weight),
                float(law.degradation_exponent),
                bool(law.flag_couple_macrotraction_to_damage),
                self.damage_accumulation_constant,
                self.endurance_limit,
                self.damage_variable,
                self.max_effective_opening_displacement,
                self.effective_opening_displacement,
                self.max_effective_normal_opening_displacement,
                self.max_effective_tangential_opening_displacement,
                self.max_cohesive_traction,
            )
            return

        law = self.law
        delta = np.asarray(law.effective_opening_displacement(openings, normals), dtype=float).reshape(self.n_points)
        delta_max = np.maximum(self.tmp_max_effective_opening_displacement, delta)
        normal_part, tangential_part = law.effective_opening_components(openings, normals)
        d_old = self.tmp_damage_variable

        if cyclic:
            dphi = np.asarray(law.degradation_function_derivative_value(d_old, True), dtype=float)
            psi = np.asarray(law.free_energy_density(delta), dtype=float)
            force = -dphi * (psi + micro_free_energy)
            excess = np.maximum(force - self.endurance_limit, 0.0)
            d = d_old + self.damage_accumulation_constant * excess * np.abs(
                delta - self.old_effective_opening_displacement
            )
        else:
            d = np.maximum(d_old, np.asarray(law.monotonic_damage(delta_max), dtype=float))

        d = np.where(freeze, d_old, np.clip(d, 0.0, 1.0))
        phi = np.asarray(law.macrotraction_degradation(d), dtype=float)

        self.effective_opening_displacement[...] = delta
        self.max_effective_opening_displacement[...] = delta_max
        self.damage_variable[...] = d
        self.max_effective_normal_opening_displacement[...] = np.maximum(
            self.tmp_max_effective_normal_opening_displacement, normal_part.reshape(self.n_points)
        )
        self.max_effective_tangential_opening_displacement[...] = np.maximum(
            self.tmp_max_effective_tangential_opening_displacement, tangential_part.reshape(self.n_points)
        )
        self.max_cohesive_traction[...] = np.maximum(
            self.tmp_max_cohesive_traction, phi * law.initial_stiffness * delta
        )

    def store_effective_quantities(self, openings: Optional[np.ndarray] = None, normals: Optional[np.ndarray] = None) -> None:
        """Bookkeeping at step convergence: committed opening and degraded traction norm."""
        self._check_init()
        self.old_effective_opening_displacement[...] = self.effective_opening_displacement
        if openings is not None and normals is not None:
            self.effective_cohesive_traction[...] = np.asarray(
                self.law.effective_cohesive_traction(openings, normals, self.damage_variable),
                dtype=float,
            ).reshape(self.n_points)

    def get_damage_variable(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        return _readonly(self.damage_variable if index is None else self.damage_variable[index])

    def get_max_effective_opening_displacement(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.max_effective_opening_displacement
        return _readonly(a if index is None else a[index])

    def get_effective_opening_displacement(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.effective_opening_displacement
        return _readonly(a if index is None else a[index])

    def get_effective_cohesive_traction(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.effective_cohesive_traction
        return _readonly(a if index is None else a[index])

    def get_max_effective_normal_opening_displacement(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.max_effective_normal_opening_displacement
        return _readonly(a if index is None else a[index])

    def get_max_effective_tangential_opening_displacement(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.max_effective_tangential_opening_displacement
        return _readonly(a if index is None else a[index])

    def get_max_cohesive_traction(self, index: Optional[slice] = None) -> np.ndarray:
        self._check_init()
        a = self.max_cohesive_traction
        return _readonly(a if index is None else a[index])


# ----------------------------------------------------------------------------
# Aggregate store
# ----------------------------------------------------------------------------


class HistoryStore:
    """Slip and interface histories behind one commit/rollback protocol.

    Typical setup::

        store = HistoryStore(n_slips=2)
        store.register_cell(0, n_q_points=4)
        store.register_interface(0, 1, n_q_points=2)
        store.init(parameters)

    Kinematics handed to :meth:`reset_and_update` are ordered by the index
    ranges returned from the ``register_*`` calls.
    """

    def __init__(self, n_slips: int = 1, use_numba: bool = False, verbose: bool = False):
        self.n_slips = int(n_slips)
        self.use_numba = bool(use_numba)
        self.verbose = bool(verbose)
        self.cell_map = PointKeyMap(symmetric=False)
        self.interface_map = PointKeyMap(symmetric=True)
        self.slip_history: Optional[SlipHistory] = None
        self.interface_history: Optional[InterfaceHistory] = None
        self.flag_init_was_called = False

    # -- setup ---------------------------------------------------------------

    def register_cell(self, cell_id: int, n_q_points: int) -> slice:
        if self.flag_init_was_called:
            raise RuntimeError("Cannot register points after init()")
        return self.cell_map.add(cell_id, n_q_points)

    def register_interface(self, region_a: int, region_b: int, n_q_points: int) -> slice:
        if self.flag_init_was_called:
            raise RuntimeError("Cannot register points after init()")
        return self.interface_map.add((region_a, region_b), n_q_points)

    def init(self, parameters: Parameters) -> None:
        self.slip_history = SlipHistory(self.cell_map.n_points, self.n_slips)
        self.slip_history.init(parameters.scalar_microstress_law_parameters)
        self.interface_history = InterfaceHistory(self.interface_map.n_points)
        self.interface_history.init(parameters.cohesive_law_parameters)
        self.flag_init_was_called = True
        if self.verbose:
            print(
                f"[history] init: {self.cell_map.n_points} slip points x {self.n_slips} slips, "
                f"{self.interface_map.n_points} interface points"
            )

    def _check_init(self) -> None:
        if not self.flag_init_was_called:
            raise RuntimeError("HistoryStore.init() has not been called")

    @property
    def n_slip_points(self) -> int:
        return self.cell_map.n_points

    @property
    def n_interface_points(self) -> int:
        return self.interface_map.n_points

    # -- protocol ------------------------------------------------------------

    def prepare_for_update(self) -> None:
        """Snapshot the committed values before the trial iterations of a step."""
        self._check_init()
        self.slip_history.store_current_values()
        self.interface_history.store_current_values()

    def reset_values(self) -> None:
        """Discard trial mutations of every point."""
        self._check_init()
        self.slip_history.reset_values()
        self.interface_history.reset_values()

    def update_values(self, kinematics: PointKinematics, context: Optional[HistoryUpdateContext] = None) -> None:
        self._check_init()
        context = context or HistoryUpdateContext()
        if self.n_slip_points > 0:
            if kinematics.slips is None or kinematics.old_slips is None:
                raise ValueError("Slip kinematics are required to update slip resistances")
            self.slip_history.update_values(kinematics.slips, kinematics.old_slips, use_numba=self.use_numba)
        if self.n_interface_points > 0:
            if kinematics.openings is None or kinematics.normals is None:
                raise ValueError("Interface kinematics are required to update the damage variable")
            self.interface_history.update_values(
                kinematics.openings,
                kinematics.normals,
                kinematics.micro_free_energy,
                loading_type=context.loading_type,
                damage_frozen=context.damage_frozen,
                use_numba=self.use_numba,
            )

    def reset_and_update(self, kinematics: PointKinematics, context: Optional[HistoryUpdateContext] = None) -> None:
        self.reset_values()
        self.update_values(kinematics, context)

    def commit(self, kinematics: Optional[PointKinematics] = None) -> None:
        """Promote the working values of a converged step."""
        self._check_init()
        openings = kinematics.openings if kinematics is not None else None
        normals = kinematics.normals if kinematics is not None else None
        if self.n_interface_points > 0:
            self.interface_history.store_effective_quantities(openings, normals)
        self.slip_history.store_current_values()
        self.interface_history.store_current_values()

    # -- accessors -----------------------------------------------------------

    def get_slip_resistances(self, cell_id: Optional[int] = None) -> np.ndarray:
        self._check_init()
        index = None if cell_id is None else self.cell_map[cell_id]
        return self.slip_history.get_slip_resistances(index)

    def _interface_index(self, key: Optional[Tuple[int, int]]) -> Optional[slice]:
        return None if key is None else self.interface_map[key]

    def get_damage_variable(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_damage_variable(self._interface_index(key))

    def get_max_effective_opening_displacement(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_max_effective_opening_displacement(self._interface_index(key))

    def get_effective_opening_displacement(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_effective_opening_displacement(self._interface_index(key))

    def get_effective_cohesive_traction(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_effective_cohesive_traction(self._interface_index(key))

    def get_max_effective_normal_opening_displacement(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_max_effective_normal_opening_displacement(self._interface_index(key))

    def get_max_effective_tangential_opening_displacement(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_max_effective_tangential_opening_displacement(self._interface_index(key))

    def get_max_cohesive_traction(self, key: Optional[Tuple[int, int]] = None) -> np.ndarray:
        self._check_init()
        return self.interface_history.get_max_cohesive_traction(self._interface_index(key))

    def set_interface_freeze(self, mask, key: Optional[Tuple[int, int]] = None) -> None:
        self._check_init()
        self.interface_history.set_freeze(mask, self._interface_index(key))

    def total_damage(self, reduce_sum=None) -> float:
        """Sum of the local damage values, merged with ``reduce_sum`` if given."""
        self._check_init()
        local = float(np.sum(self.interface_history.damage_variable))
        return float(reduce_sum(local)) if reduce_sum is not None else local
