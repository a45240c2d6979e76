"""Scalar microscopic stress law (rate-dependent slip resistance).

    π_α = g_α · f(γ̇_α)

with the regularization ``f`` either a power law, sign(x)|x|^(1/m), or
tanh(x/ε). The hardening matrix h_αβ = H (q + (1 − q) δ_αβ) is shared with
:class:`gcp_nonlinear.history.SlipHistory`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from gcp_nonlinear.config import RegularizationFunction, ScalarMicroscopicStressLawParameters
from gcp_nonlinear.errors import ConfigurationError


def hardening_matrix(n_slips: int, linear_hardening_modulus: float, hardening_parameter: float) -> np.ndarray:
    """h_αβ = H (q + (1 − q) δ_αβ)."""
    q = float(hardening_parameter)
    h = np.full((int(n_slips), int(n_slips)), q, dtype=float)
    h[np.diag_indices(int(n_slips))] = 1.0
    return float(linear_hardening_modulus) * h


@dataclass(frozen=True)
class ScalarMicroscopicStressLaw:
    regularization_function: RegularizationFunction
    regularization_parameter: float
    initial_slip_resistance: float = 0.0
    linear_hardening_modulus: float = 0.0
    hardening_parameter: float = 1.0

    def __post_init__(self) -> None:
        if not isinstance(self.regularization_function, RegularizationFunction):
            raise ConfigurationError(
                f"Unknown regularization function: {self.regularization_function!r}"
            )
        if self.regularization_parameter <= 0.0:
            raise ConfigurationError("regularization_parameter must be positive")

    @classmethod
    def from_parameters(cls, parameters: ScalarMicroscopicStressLawParameters) -> "ScalarMicroscopicStressLaw":
        return cls(
            regularization_function=parameters.regularization_function,
            regularization_parameter=float(parameters.regularization_parameter),
            initial_slip_resistance=float(parameters.initial_slip_resistance),
            linear_hardening_modulus=float(parameters.linear_hardening_modulus),
            hardening_parameter=float(parameters.hardening_parameter),
        )

    def hardening_matrix(self, n_slips: int) -> np.ndarray:
        return hardening_matrix(n_slips, self.linear_hardening_modulus, self.hardening_parameter)

    def regularization_factor(self, slip_rate):
        x = np.asarray(slip_rate, dtype=float)
        eps = float(self.regularization_parameter)
        if self.regularization_function == RegularizationFunction.POWER_LAW:
            value = np.sign(x) * np.abs(x) ** (1.0 / eps)
        elif self.regularization_function == RegularizationFunction.TANH:
            value = np.tanh(x / eps)
        else:  # pragma: no cover
            raise ConfigurationError(f"Unknown regularization function: {self.regularization_function!r}")
        return float(value) if np.ndim(value) == 0 else value

    def regularization_derivative(self, slip_rate):
        """df/dγ̇."""
        x = np.asarray(slip_rate, dtype=float)
        eps = float(self.regularization_parameter)
        if self.regularization_function == RegularizationFunction.POWER_LAW:
            m = 1.0 / eps
            ax = np.abs(x)
            with np.errstate(divide="ignore"):
                value = np.where(ax > 0.0, m * ax ** (m - 1.0), 0.0 if m > 1.0 else np.inf)
        elif self.regularization_function == RegularizationFunction.TANH:
            value = (1.0 - np.tanh(x / eps) ** 2) / eps
        else:  # pragma: no cover
            raise ConfigurationError(f"Unknown regularization function: {self.regularization_function!r}")
        return float(value) if np.ndim(value) == 0 else value

    def microscopic_stress(self, slip_resistance, slip_rate):
        value = np.asarray(slip_resistance, dtype=float) * np.asarray(self.regularization_factor(slip_rate))
        return float(value) if np.ndim(value) == 0 else value

    def jacobian(
        self,
        slip_resistances: np.ndarray,
        slip_values: np.ndarray,
        old_slip_values: np.ndarray,
        time_step_size: float,
    ) -> np.ndarray:
        """∂π_α/∂γ_β at one point.

        Parameters
        ----------
        slip_resistances : (n_slips,) np.ndarray
            Working slip resistances g_α (already updated for this iterate).
        slip_values, old_slip_values : (n_slips,) np.ndarray
            Trial slips γ^n and committed slips γ^{n-1}.
        time_step_size : float
            Δt used for the slip rate.

        Returns
        -------
        (n_slips, n_slips) np.ndarray
            h_αβ sgn(Δγ_β) f(γ̇_α) + δ_αβ g_α f'(γ̇_α)/Δt
        """
        if time_step_size <= 0.0:
            raise ValueError("time_step_size must be positive")
        g = np.asarray(slip_resistances, dtype=float)
        increments = np.asarray(slip_values, dtype=float) - np.asarray(old_slip_values, dtype=float)
        rates = increments / float(time_step_size)

        f = np.asarray(self.regularization_factor(rates), dtype=float)
        df = np.asarray(self.regularization_derivative(rates), dtype=float)

        h = self.hardening_matrix(g.size)
        J = h * np.sign(increments)[None, :] * f[:, None]
        J[np.diag_indices(g.size)] += g * df / float(time_step_size)
        return J
