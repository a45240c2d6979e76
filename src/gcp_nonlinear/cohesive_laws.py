"""Cohesive and contact laws at grain-boundary quadrature points.

All functions are pure: kinematics and history values in, tractions and
tangents out. Inputs may be a single point (``opening`` of shape ``(dim,)``)
or a batch (``(n, dim)``); the leading axes broadcast.

Conventions
-----------
* ``opening`` u is the jump of the displacement across the interface
  (neighbor minus current side), ``normal`` n the unit normal.
* Normal opening  δ_n = u·n, tangential opening u_t = u − δ_n n.
* Effective opening δ_eff = sqrt(<δ_n>² + β² |u_t|²), with <x> = max(x, 0).
* Master relation (envelope):  T(δ) = t_c (δ/δ_c) exp(1 − δ/δ_c).
* Undamaged traction t_0 = K_0 a with a = <δ_n> n + β² u_t and the initial
  stiffness K_0 = e t_c / δ_c (slope of T at the origin).
* Degraded traction t = (1 − d)^p t_0. Damage is the only softening
  mechanism: under monotonic opening d = 1 − exp(−δ_max / (p δ_c)), so that
  the effective traction (1 − d)^p K_0 δ_eff equals T(δ_eff) on loading and
  the secant T(δ_max) δ_eff / δ_max on unloading/reloading.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from gcp_nonlinear.config import CohesiveLawParameters, ContactLawParameters


def _split_opening(opening: np.ndarray, normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    u = np.asarray(opening, dtype=float)
    n = np.asarray(normal, dtype=float)
    delta_n = np.asarray(np.sum(u * n, axis=-1))
    u_t = u - delta_n[..., None] * n
    return delta_n, u_t, n


def _outer(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return a[..., :, None] * b[..., None, :]


@dataclass(frozen=True)
class CohesiveLaw:
    """Exponential cohesive law with damage degradation.

    Attributes
    ----------
    critical_cohesive_traction : float
        Peak traction t_c of the master relation.
    critical_opening_displacement : float
        Effective opening δ_c at which the peak is reached.
    tangential_weight : float
        Weight β of the tangential opening in δ_eff.
    degradation_exponent : float
        Exponent p of the degradation function (1 − d)^p.
    flag_couple_macrotraction_to_damage : bool
        Degrade the displacement-field traction.
    flag_couple_microtraction_to_damage : bool
        Degrade the slip-field (microscopic) traction.
    """

    critical_cohesive_traction: float
    critical_opening_displacement: float
    tangential_weight: float = 1.0
    degradation_exponent: float = 1.0
    flag_couple_macrotraction_to_damage: bool = True
    flag_couple_microtraction_to_damage: bool = True

    @classmethod
    def from_parameters(cls, parameters: CohesiveLawParameters) -> "CohesiveLaw":
        return cls(
            critical_cohesive_traction=float(parameters.critical_cohesive_traction),
            critical_opening_displacement=float(parameters.critical_opening_displacement),
            tangential_weight=float(parameters.tangential_weight),
            degradation_exponent=float(parameters.degradation_exponent),
            flag_couple_macrotraction_to_damage=bool(parameters.flag_couple_macrotraction_to_damage),
            flag_couple_microtraction_to_damage=bool(parameters.flag_couple_microtraction_to_damage),
        )

    # ------------------------------------------------------------------
    # Scalar relations
    # ------------------------------------------------------------------

    def effective_opening_displacement(self, opening: np.ndarray, normal: np.ndarray):
        delta_n, u_t, _ = _split_opening(opening, normal)
        beta = float(self.tangential_weight)
        dn = np.asarray(np.maximum(delta_n, 0.0))
        value = np.sqrt(dn * dn + beta * beta * np.sum(u_t * u_t, axis=-1))
        return float(value) if np.ndim(value) == 0 else value

    def effective_opening_components(self, opening: np.ndarray, normal: np.ndarray):
        """Normal ⟨δ_n⟩ and weighted tangential β|u_t| parts of δ_eff."""
        delta_n, u_t, _ = _split_opening(opening, normal)
        normal_part = np.asarray(np.maximum(delta_n, 0.0))
        tangential_part = float(self.tangential_weight) * np.sqrt(np.sum(u_t * u_t, axis=-1))
        return normal_part, tangential_part

    def master_relation(self, effective_opening_displacement):
        tc = float(self.critical_cohesive_traction)
        dc = float(self.critical_opening_displacement)
        x = np.asarray(effective_opening_displacement, dtype=float) / dc
        value = tc * x * np.exp(1.0 - x)
        return float(value) if np.ndim(value) == 0 else value

    def free_energy_density(self, effective_opening_displacement):
        """Integral of the master relation from 0 to δ_eff."""
        tc = float(self.critical_cohesive_traction)
        dc = float(self.critical_opening_displacement)
        x = np.asarray(effective_opening_displacement, dtype=float) / dc
        value = math.e * tc * dc * (1.0 - (1.0 + x) * np.exp(-x))
        return float(value) if np.ndim(value) == 0 else value

    def monotonic_damage(self, max_effective_opening_displacement):
        """Damage d = 1 − exp(−δ_max / (p δ_c)), so that (1 − d)^p K_0 δ_max = T(δ_max)."""
        dc = float(self.critical_opening_displacement)
        p = float(self.degradation_exponent)
        dmax = np.maximum(np.asarray(max_effective_opening_displacement, dtype=float), 0.0)
        d = 1.0 - np.exp(-dmax / (p * dc))
        return float(d) if np.ndim(d) == 0 else d

    def degradation_function_value(self, damage_variable, couple: bool = True):
        if not couple:
            value = np.ones_like(np.asarray(damage_variable, dtype=float))
        else:
            d = np.clip(np.asarray(damage_variable, dtype=float), 0.0, 1.0)
            value = (1.0 - d) ** float(self.degradation_exponent)
        return float(value) if np.ndim(value) == 0 else value

    def degradation_function_derivative_value(self, damage_variable, couple: bool = True):
        p = float(self.degradation_exponent)
        d = np.clip(np.asarray(damage_variable, dtype=float), 0.0, 1.0)
        if not couple:
            value = np.zeros_like(d)
        elif p == 1.0:
            value = -np.ones_like(d)
        else:
            value = -p * (1.0 - d) ** (p - 1.0)
        return float(value) if np.ndim(value) == 0 else value

    def macrotraction_degradation(self, damage_variable):
        return self.degradation_function_value(damage_variable, self.flag_couple_macrotraction_to_damage)

    def microtraction_degradation(self, damage_variable):
        return self.degradation_function_value(damage_variable, self.flag_couple_microtraction_to_damage)

    # ------------------------------------------------------------------
    # Traction and tangent
    # ------------------------------------------------------------------

    @property
    def initial_stiffness(self) -> float:
        """K_0 = e t_c / δ_c, slope of the master relation at the origin."""
        return math.e * float(self.critical_cohesive_traction) / float(self.critical_opening_displacement)

    def _opening_measures(self, opening, normal):
        delta_n, u_t, n = _split_opening(opening, normal)
        beta2 = float(self.tangential_weight) ** 2
        dn = np.asarray(np.maximum(delta_n, 0.0))
        delta_eff = np.sqrt(dn * dn + beta2 * np.sum(u_t * u_t, axis=-1))
        a = dn[..., None] * n + beta2 * u_t
        return delta_n, n, delta_eff, a

    def _da_du(self, delta_n: np.ndarray, n: np.ndarray) -> np.ndarray:
        beta2 = float(self.tangential_weight) ** 2
        dim = n.shape[-1]
        nn = _outer(n, n)
        heaviside = np.asarray(delta_n > 0.0, dtype=float)
        return heaviside[..., None, None] * nn + beta2 * (np.eye(dim) - nn)

    def cohesive_traction(self, opening, normal) -> np.ndarray:
        """Undamaged traction t_0 = K_0 a."""
        _, _, _, a = self._opening_measures(opening, normal)
        return self.initial_stiffness * a

    def cohesive_jacobian(self, opening, normal) -> np.ndarray:
        """Derivative of :meth:`cohesive_traction` w.r.t. the opening vector."""
        delta_n, n, _, _ = self._opening_measures(opening, normal)
        return self.initial_stiffness * self._da_du(delta_n, n)

    def degraded_cohesive_traction(self, opening, normal, damage_variable) -> np.ndarray:
        """φ(d) t_0 with the macroscopic coupling flag."""
        phi = np.asarray(self.macrotraction_degradation(damage_variable), dtype=float)
        return phi[..., None] * self.cohesive_traction(opening, normal)

    def effective_cohesive_traction(self, opening, normal, damage_variable):
        """Scalar traction φ(d) K_0 δ_eff conjugate to the effective opening."""
        _, _, delta_eff, _ = self._opening_measures(opening, normal)
        phi = np.asarray(self.macrotraction_degradation(damage_variable), dtype=float)
        value = phi * self.initial_stiffness * delta_eff
        return float(value) if np.ndim(value) == 0 else value

    def _secant(self, delta_eff: np.ndarray, max_effective_opening_displacement) -> Tuple[np.ndarray, np.ndarray]:
        """Degraded secant φ K_0 and its derivative w.r.t. δ on the active branch."""
        tc = float(self.critical_cohesive_traction)
        dc = float(self.critical_opening_displacement)
        dmax = np.broadcast_to(np.asarray(max_effective_opening_displacement, dtype=float), delta_eff.shape)

        loading = delta_eff >= dmax
        e_load = np.exp(1.0 - delta_eff / dc)
        s_load = tc / dc * e_load
        ds_load = -tc / (dc * dc) * e_load

        s_unload = tc / dc * np.exp(1.0 - dmax / dc)

        s = np.where(loading, s_load, s_unload)
        ds = np.where(loading, ds_load, 0.0)
        return s, ds

    def monotonic_traction(self, opening, normal, max_effective_opening_displacement=0.0) -> np.ndarray:
        """Degraded traction on a monotonic damage path.

        Same value as :meth:`degraded_cohesive_traction` with
        ``d = monotonic_damage(max(δ_max, δ_eff))`` and the macroscopic
        coupling on: the envelope on loading, the secant through the origin
        on unloading.
        """
        _, _, delta_eff, a = self._opening_measures(opening, normal)
        s, _ = self._secant(delta_eff, max_effective_opening_displacement)
        return s[..., None] * a

    def monotonic_jacobian(self, opening, normal, max_effective_opening_displacement=0.0) -> np.ndarray:
        """Consistent tangent of :meth:`monotonic_traction`, damage growth included."""
        delta_n, n, delta_eff, a = self._opening_measures(opening, normal)
        s, ds = self._secant(delta_eff, max_effective_opening_displacement)

        # ds/dδ * dδ/du = ds/dδ * a / δ ; vanishes at δ = 0.
        safe_delta = np.where(delta_eff > 0.0, delta_eff, 1.0)
        coeff = np.where(delta_eff > 0.0, ds / safe_delta, 0.0)
        return s[..., None, None] * self._da_du(delta_n, n) + coeff[..., None, None] * _outer(a, a)


@dataclass(frozen=True)
class ContactLaw:
    """Penalty enforcement of non-interpenetration."""

    penalty_coefficient: float

    @classmethod
    def from_parameters(cls, parameters: ContactLawParameters) -> "ContactLaw":
        return cls(penalty_coefficient=float(parameters.penalty_coefficient))

    def contact_traction(self, opening, normal) -> np.ndarray:
        delta_n, _, n = _split_opening(opening, normal)
        return float(self.penalty_coefficient) * np.asarray(np.minimum(delta_n, 0.0))[..., None] * n

    def contact_jacobian(self, opening, normal) -> np.ndarray:
        delta_n, _, n = _split_opening(opening, normal)
        closed = np.asarray(delta_n < 0.0, dtype=float)
        return float(self.penalty_coefficient) * closed[..., None, None] * _outer(n, n)
