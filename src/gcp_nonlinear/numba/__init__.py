"""Numba-accelerated kernels.

Small, stateless kernels compiled in ``nopython`` mode. They are selected
with ``Parameters.use_numba = True``; the vectorized NumPy path in
:mod:`gcp_nonlinear.history` computes the same values.
"""

from .kernels_history import (
    MODE_CYCLIC,
    MODE_MONOTONIC,
    effective_opening_displacement_kernel,
    interface_update_kernel,
    slip_update_kernel,
)

__all__ = [
    "MODE_CYCLIC",
    "MODE_MONOTONIC",
    "effective_opening_displacement_kernel",
    "interface_update_kernel",
    "slip_update_kernel",
]
