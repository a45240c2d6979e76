"""Dirichlet constraint handling on global vectors and systems."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

Value = Union[float, Callable[[float], float]]


class DirichletConstraints:
    """Prescribed values on selected dofs.

    Parameters
    ----------
    fixed : dict
        ``dof -> value``; a value may be a callable of time, evaluated by
        :meth:`update`.
    ndof : int, optional
        Size of the global vectors, used to validate the dof ids.

    Notes
    -----
    The Newton update is solved on all dofs. :meth:`condense` replaces the
    constrained rows/columns of the Jacobian by the identity and zeroes the
    corresponding residual entries, so the update vanishes there.
    """

    def __init__(self, fixed: Optional[Dict[int, Value]] = None, ndof: Optional[int] = None):
        self._fixed: Dict[int, Value] = {int(k): v for k, v in (fixed or {}).items()}
        self.ndof = ndof
        if ndof is not None:
            bad = [d for d in self._fixed if d < 0 or d >= ndof]
            if bad:
                raise ValueError(f"Constrained dof ids out of range [0, {ndof}): {bad}")
        self.time = 0.0
        self.values: Dict[int, float] = {}
        self.update(0.0)

    @property
    def fixed_dofs(self) -> np.ndarray:
        return np.array(sorted(self._fixed), dtype=int)

    def update(self, time: float) -> None:
        """Evaluate time-dependent values at ``time``."""
        self.time = float(time)
        self.values = {d: float(v(self.time)) if callable(v) else float(v) for d, v in self._fixed.items()}

    def distribute(self, vector: np.ndarray) -> None:
        for dof, value in self.values.items():
            vector[dof] = value

    def distribute_homogeneous(self, vector: np.ndarray) -> None:
        ids = self.fixed_dofs
        if ids.size:
            vector[ids] = 0.0

    def condense(self, jacobian, residual: np.ndarray) -> Tuple[sp.csr_matrix, np.ndarray]:
        ids = self.fixed_dofs
        K = sp.csr_matrix(jacobian, dtype=float, copy=True)
        r = np.array(residual, dtype=float, copy=True)
        if ids.size == 0:
            return K, r
        n = K.shape[0]
        keep = np.ones(n, dtype=float)
        keep[ids] = 0.0
        D = sp.diags(keep)
        I_fixed = sp.diags(1.0 - keep)
        K = (D @ K @ D + I_fixed).tocsr()
        r[ids] = 0.0
        return K, r
