"""Default linear solver collaborator built on scipy.sparse.linalg."""

from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from gcp_nonlinear.config import SolverType, parse_solver_type
from gcp_nonlinear.errors import LinearSolverError


class ScipyLinearSolver:
    """Direct (``spsolve``) or ILU-preconditioned Krylov (``cg`` / ``gmres``) solve.

    Failures are not retried here: a non-converged Krylov solve, a singular
    factorization or a non-finite update raises :class:`LinearSolverError`.
    """

    def __init__(self, solver_type=SolverType.DIRECT, ilu_drop_tolerance: float = 1e-4, ilu_fill_factor: float = 10.0,
                 verbose: bool = False):
        self.solver_type = parse_solver_type(solver_type)
        self.ilu_drop_tolerance = float(ilu_drop_tolerance)
        self.ilu_fill_factor = float(ilu_fill_factor)
        self.verbose = bool(verbose)

    def _preconditioner(self, A: sp.csc_matrix) -> spla.LinearOperator:
        try:
            ilu = spla.spilu(A, drop_tol=self.ilu_drop_tolerance, fill_factor=self.ilu_fill_factor)
        except RuntimeError as e:
            raise LinearSolverError(f"ILU factorization failed: {e}") from e
        return spla.LinearOperator(A.shape, matvec=ilu.solve, dtype=float)

    def solve(
        self,
        jacobian,
        rhs: np.ndarray,
        relative_tolerance: float,
        absolute_tolerance: float,
        max_iterations: int,
    ) -> Tuple[np.ndarray, int]:
        A = sp.csc_matrix(jacobian, dtype=float)
        b = np.asarray(rhs, dtype=float)
        if A.shape[0] != A.shape[1] or A.shape[0] != b.shape[0]:
            raise LinearSolverError(f"Incompatible system: jacobian {A.shape}, rhs {b.shape}")

        if self.solver_type == SolverType.DIRECT:
            with np.errstate(all="ignore"):
                x = spla.spsolve(A, b)
            n_iterations = 1
        elif self.solver_type in (SolverType.CG, SolverType.GMRES):
            M = self._preconditioner(A)
            counter = [0]

            def _count(_):
                counter[0] += 1

            if self.solver_type == SolverType.CG:
                x, info = spla.cg(
                    A, b, rtol=float(relative_tolerance), atol=float(absolute_tolerance),
                    maxiter=int(max_iterations), M=M, callback=_count,
                )
            else:
                x, info = spla.gmres(
                    A, b, rtol=float(relative_tolerance), atol=float(absolute_tolerance),
                    maxiter=int(max_iterations), M=M, callback=_count, callback_type="pr_norm",
                )
            if info > 0:
                raise LinearSolverError(
                    f"{self.solver_type.value} did not converge in {max_iterations} iterations"
                )
            if info < 0:
                raise LinearSolverError(f"{self.solver_type.value} reported illegal input (info={info})")
            n_iterations = counter[0]
        else:  # pragma: no cover
            raise LinearSolverError(f"Unsupported solver type {self.solver_type!r}")

        x = np.asarray(x, dtype=float).reshape(b.shape)
        if not np.all(np.isfinite(x)):
            raise LinearSolverError("Linear solve returned a non-finite update")
        if self.verbose:
            print(f"        [linear] {self.solver_type.value}: {n_iterations} iterations, ||x||={np.linalg.norm(x):.3e}")
        return x, int(n_iterations)
