"""scipy linear solver backends and Dirichlet constraint handling."""

import numpy as np
import pytest
import scipy.sparse as sp

from gcp_nonlinear.config import SolverType
from gcp_nonlinear.constraints import DirichletConstraints
from gcp_nonlinear.errors import ConfigurationError, LinearSolverError
from gcp_nonlinear.linear_solver import ScipyLinearSolver


def _laplacian(n):
    """1D Dirichlet Laplacian plus a small shift (SPD, sparse)."""
    main = 2.0 * np.ones(n) + 1e-2
    off = -np.ones(n - 1)
    return sp.diags([off, main, off], [-1, 0, 1], format="csr")


@pytest.mark.parametrize("solver_type", ["direct", "cg", "gmres", SolverType.GMRES])
def test_backends_agree_with_dense_solve(solver_type, rng):
    n = 30
    A = _laplacian(n)
    b = rng.normal(size=n)
    expected = np.linalg.solve(A.toarray(), b)

    x, n_iterations = ScipyLinearSolver(solver_type).solve(A, b, 1e-12, 1e-14, 500)
    assert np.allclose(x, expected, rtol=1e-8, atol=1e-10)
    assert n_iterations >= 1


def test_nonsymmetric_system_with_gmres(rng):
    n = 20
    A = _laplacian(n).tolil()
    A[0, 5] = 0.7
    A[7, 2] = -0.4
    A = A.tocsr()
    b = rng.normal(size=n)
    x, _ = ScipyLinearSolver("gmres").solve(A, b, 1e-12, 1e-14, 500)
    assert np.allclose(A @ x, b, atol=1e-9)


def test_unknown_solver_type():
    with pytest.raises(ConfigurationError):
        ScipyLinearSolver("lu-magic")


def test_singular_direct_solve_raises():
    A = sp.csr_matrix(np.array([[1.0, 2.0], [2.0, 4.0]]))
    with pytest.raises(LinearSolverError):
        ScipyLinearSolver("direct").solve(A, np.array([1.0, 0.0]), 1e-8, 1e-12, 10)


def test_krylov_iteration_cap_raises(rng):
    n = 200
    A = sp.diags(np.linspace(1.0, 1e6, n), format="csr")
    # scrambled off-diagonal coupling defeats a one-shot preconditioner
    coupling = rng.normal(size=(n, n)) * (rng.random((n, n)) < 0.05)
    A = A + sp.csr_matrix(coupling) * 1e3
    A = (A @ A.T).tocsr()
    b = rng.normal(size=n)
    solver = ScipyLinearSolver("cg", ilu_drop_tolerance=0.9, ilu_fill_factor=1.0)
    with pytest.raises(LinearSolverError):
        solver.solve(A, b, 1e-14, 1e-30, 1)


def test_shape_mismatch_raises():
    with pytest.raises(LinearSolverError):
        ScipyLinearSolver().solve(sp.eye(3), np.ones(4), 1e-8, 1e-12, 10)


# ---------------------------------------------------------------------------
# Dirichlet constraints
# ---------------------------------------------------------------------------


def test_distribute_time_dependent_values():
    bc = DirichletConstraints({0: 0.0, 3: lambda t: 2.0 * t}, ndof=5)
    assert list(bc.fixed_dofs) == [0, 3]

    bc.update(0.25)
    x = np.ones(5)
    bc.distribute(x)
    assert np.allclose(x, [0.0, 1.0, 1.0, 0.5, 1.0])

    du = np.ones(5)
    bc.distribute_homogeneous(du)
    assert np.allclose(du, [0.0, 1.0, 1.0, 0.0, 1.0])


def test_out_of_range_dof():
    with pytest.raises(ValueError):
        DirichletConstraints({7: 0.0}, ndof=3)


def test_condense_solves_reduced_system(rng):
    n = 6
    A = _laplacian(n)
    b = rng.normal(size=n)
    bc = DirichletConstraints({0: 0.0, 4: 0.0}, ndof=n)

    K, r = bc.condense(A, b)
    assert np.allclose(r[[0, 4]], 0.0)
    assert np.allclose(K.toarray()[[0, 4]], np.eye(n)[[0, 4]])
    assert np.allclose(K.toarray()[:, [0, 4]], np.eye(n)[:, [0, 4]])

    x, _ = ScipyLinearSolver().solve(K, r, 1e-10, 1e-14, 100)
    free = np.array([1, 2, 3, 5])
    expected = np.linalg.solve(A.toarray()[np.ix_(free, free)], b[free])
    assert np.allclose(x[free], expected)
    assert np.allclose(x[[0, 4]], 0.0)
    # inputs are untouched
    assert A[0, 0] == pytest.approx(2.01)


def test_default_collaborators_satisfy_protocols():
    from gcp_nonlinear.interfaces import ConstraintHandler, LinearSolver

    assert isinstance(ScipyLinearSolver(), LinearSolver)
    assert isinstance(DirichletConstraints({0: 1.0}), ConstraintHandler)
    assert not isinstance(object(), LinearSolver)
