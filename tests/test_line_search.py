"""Backtracking line search: descent condition, λ sequence and termination."""

import numpy as np
import pytest

from gcp_nonlinear.config import LineSearchParameters
from gcp_nonlinear.errors import ConvergenceFailure, LineSearchFailure
from gcp_nonlinear.line_search import LineSearch


def test_descent_condition():
    ls = LineSearch(LineSearchParameters(armijo_condition_constant=1e-4))
    ls.reinit(1.0)
    assert ls.suffices_descent_condition(0.5, 1.0)
    assert ls.suffices_descent_condition(1.0 - 2e-4, 1.0)
    assert not ls.suffices_descent_condition(1.0 - 1e-4, 1.0)
    assert not ls.suffices_descent_condition(1.1, 0.5)


def test_quadratic_first_shrink():
    """First shrink uses the minimizer of the quadratic model."""
    ls = LineSearch()
    f0 = 2.0
    ls.reinit(f0)
    # model through f0, f'(0) = -2 f0 and f(1) = 3 f0 -> minimizer 1/4
    lam = ls.get_lambda(3.0 * f0, 1.0)
    assert lam == pytest.approx(0.25)
    assert ls.get_n_iterations() == 1


def test_lambda_sequence_strictly_decreasing_and_terminates():
    params = LineSearchParameters(n_max_iterations=15)
    ls = LineSearch(params)
    f0 = 1.0
    ls.reinit(f0)

    lambdas = [1.0]
    with pytest.raises(LineSearchFailure) as excinfo:
        for _ in range(params.n_max_iterations + 1):
            # merit never decreases: every trial is rejected
            lam = lambdas[-1]
            assert not ls.suffices_descent_condition(f0 * (1.0 + lam), lam)
            lambdas.append(ls.get_lambda(f0 * (1.0 + lam), lam))

    assert isinstance(excinfo.value, ConvergenceFailure)
    assert len(lambdas) - 1 <= params.n_max_iterations
    lambdas = np.array(lambdas)
    assert np.all(lambdas > 0.0)
    assert np.all(np.diff(lambdas) < 0.0)
    ratios = lambdas[1:] / lambdas[:-1]
    assert np.all(ratios >= params.lower_bound_factor - 1e-15)
    assert np.all(ratios <= params.upper_bound_factor + 1e-15)


def test_min_lambda_floor():
    ls = LineSearch(LineSearchParameters(min_lambda=0.05, n_max_iterations=50))
    ls.reinit(1.0)
    lam = 1.0
    with pytest.raises(LineSearchFailure):
        for _ in range(50):
            lam = ls.get_lambda(10.0, lam)
            assert lam >= 0.05


def test_accepts_after_shrink_on_descent_problem():
    """Merit of an overshooting step f(λ) = f0 (1 - 3λ)^2 is accepted once λ is small enough."""
    f0 = 1.0

    def merit(lam):
        return f0 * (1.0 - 3.0 * lam) ** 2

    ls = LineSearch()
    ls.reinit(f0)
    lam = 1.0
    while not ls.suffices_descent_condition(merit(lam), lam):
        new = ls.get_lambda(merit(lam), lam)
        assert 0.0 < new < lam
        lam = new
    assert merit(lam) <= (1.0 - 2.0 * 1e-4 * lam) * f0
    assert ls.get_n_iterations() >= 1
