"""Numba kernels for the per-point history updates.

The kernels are stateless and operate on raw arrays owned by
:class:`~gcp_nonlinear.history.SlipHistory` and
:class:`~gcp_nonlinear.history.InterfaceHistory`. Points are independent, so
the outer loop runs under ``prange``; a kernel returning is the barrier
before the next assembly pass reads the working values.

Loading modes (``mode`` argument of :func:`interface_update_kernel`)::

    0  monotonic  (damage ratchet d = 1 − exp(−δ_max / (p δ_c)))
    1  cyclic     (thermodynamic-force driven accumulation)
"""

from __future__ import annotations

import math

import numpy as np
from numba import njit, prange

MODE_MONOTONIC = 0
MODE_CYCLIC = 1


@njit(cache=True, parallel=True)
def slip_update_kernel(
    tmp_slip_resistances: np.ndarray,
    slips: np.ndarray,
    old_slips: np.ndarray,
    hardening_matrix: np.ndarray,
    out_slip_resistances: np.ndarray,
) -> None:
    """g_α = g_α,old + Σ_β h_αβ |γ_β − γ_β,old| for every point."""
    n_points = tmp_slip_resistances.shape[0]
    n_slips = tmp_slip_resistances.shape[1]
    for ip in prange(n_points):
        for a in range(n_slips):
            acc = tmp_slip_resistances[ip, a]
            for b in range(n_slips):
                acc += hardening_matrix[a, b] * abs(slips[ip, b] - old_slips[ip, b])
            out_slip_resistances[ip, a] = acc


@njit(cache=True)
def effective_opening_components_kernel(opening: np.ndarray, normal: np.ndarray):
    """(⟨δ_n⟩, |u_t|²) for one point."""
    dim = opening.shape[0]
    dn = 0.0
    for i in range(dim):
        dn += opening[i] * normal[i]
    ut2 = 0.0
    for i in range(dim):
        ut = opening[i] - dn * normal[i]
        ut2 += ut * ut
    dn_pos = dn if dn > 0.0 else 0.0
    return dn_pos, ut2


@njit(cache=True)
def effective_opening_displacement_kernel(opening: np.ndarray, normal: np.ndarray, tangential_weight: float) -> float:
    dn_pos, ut2 = effective_opening_components_kernel(opening, normal)
    return math.sqrt(dn_pos * dn_pos + tangential_weight * tangential_weight * ut2)


@njit(cache=True, parallel=True)
def interface_update_kernel(
    openings: np.ndarray,
    normals: np.ndarray,
    micro_free_energy: np.ndarray,
    tmp_damage: np.ndarray,
    tmp_max_opening: np.ndarray,
    tmp_max_normal_opening: np.ndarray,
    tmp_max_tangential_opening: np.ndarray,
    tmp_max_traction: np.ndarray,
    old_effective_opening: np.ndarray,
    freeze: np.ndarray,
    mode: int,
    critical_cohesive_traction: float,
    critical_opening_displacement: float,
    tangential_weight: float,
    degradation_exponent: float,
    couple_macrotraction: bool,
    damage_accumulation_constant: float,
    endurance_limit: float,
    out_damage: np.ndarray,
    out_max_opening: np.ndarray,
    out_effective_opening: np.ndarray,
    out_max_normal_opening: np.ndarray,
    out_max_tangential_opening: np.ndarray,
    out_max_traction: np.ndarray,
) -> None:
    tc = critical_cohesive_traction
    dc = critical_opening_displacement
    p = degradation_exponent
    k0 = math.e * tc / dc
    n_points = openings.shape[0]
    for ip in prange(n_points):
        dn_pos, ut2 = effective_opening_components_kernel(openings[ip], normals[ip])
        delta = math.sqrt(dn_pos * dn_pos + tangential_weight * tangential_weight * ut2)
        t_part = tangential_weight * math.sqrt(ut2)
        out_effective_opening[ip] = delta
        out_max_normal_opening[ip] = max(tmp_max_normal_opening[ip], dn_pos)
        out_max_tangential_opening[ip] = max(tmp_max_tangential_opening[ip], t_part)

        dmax = tmp_max_opening[ip]
        if delta > dmax:
            dmax = delta
        out_max_opening[ip] = dmax

        d_old = tmp_damage[ip]
        if freeze[ip]:
            d = d_old
        elif mode == MODE_MONOTONIC:
            d = d_old
            d_env = 1.0 - math.exp(-dmax / (dc * p))
            if d_env > d:
                d = d_env
        else:
            if p == 1.0:
                dphi = -1.0
            else:
                dphi = -p * (1.0 - d_old) ** (p - 1.0)
            x = delta / dc
            psi = math.e * tc * dc * (1.0 - (1.0 + x) * math.exp(-x))
            force = -dphi * (psi + micro_free_energy[ip])
            excess = force - endurance_limit
            if excess < 0.0:
                excess = 0.0
            d = d_old + damage_accumulation_constant * excess * abs(delta - old_effective_opening[ip])

        if d > 1.0:
            d = 1.0
        elif d < 0.0:
            d = 0.0
        out_damage[ip] = d

        phi = (1.0 - d) ** p if couple_macrotraction else 1.0
        out_max_traction[ip] = max(tmp_max_traction[ip], phi * k0 * delta)
