"""
Test Parameters serialization and option validation.

Verifies that Parameters.to_dict() -> from_dict() and save_yaml() ->
load_yaml() preserve all data, and that bad options fail at construction.
"""

import pytest

from gcp_nonlinear.config import (
    CohesiveLawParameters,
    LineSearchParameters,
    LoadingType,
    Parameters,
    RegularizationFunction,
    ScalarMicroscopicStressLawParameters,
    SolverType,
    TemporalDiscretizationParameters,
    parse_loading_type,
)
from gcp_nonlinear.errors import ConfigurationError


def test_dict_roundtrip():
    """Nested dict round trip keeps every group."""
    params = Parameters.from_dict(
        {
            "absolute_tolerance": 1e-9,
            "critical_cohesive_traction": 500.0,
            "regularization_function": "power_law",
            "loading_type": "cyclic_with_unloading",
            "n_steps_in_preloading_phase": 4,
            "n_cycles": 2,
            "solver_type": "gmres",
            "flag_zero_damage_during_loading_and_unloading": True,
        }
    )
    data = params.to_dict()
    params2 = Parameters.from_dict(data)

    assert params2.newton_parameters.absolute_tolerance == 1e-9
    assert params2.cohesive_law_parameters.critical_cohesive_traction == 500.0
    assert params2.scalar_microstress_law_parameters.regularization_function == RegularizationFunction.POWER_LAW
    assert params2.temporal_discretization_parameters.loading_type == LoadingType.CYCLIC_WITH_UNLOADING
    assert params2.temporal_discretization_parameters.n_steps_in_preloading_phase == 4
    assert params2.krylov_parameters.solver_type == SolverType.GMRES
    assert params2.flag_zero_damage_during_loading_and_unloading is True
    assert params2.to_dict() == data


def test_yaml_roundtrip(tmp_path):
    params = Parameters.from_dict(
        {
            "relative_tolerance": 1e-4,
            "hardening_parameter": 0.4,
            "linear_hardening_modulus": 300.0,
            "loading_type": "cyclic",
            "period": 2.0,
        }
    )
    path = tmp_path / "run.yaml"
    params.save_yaml(str(path))
    loaded = Parameters.load_yaml(str(path))

    assert loaded.krylov_parameters.relative_tolerance == 1e-4
    assert loaded.scalar_microstress_law_parameters.hardening_parameter == 0.4
    assert loaded.temporal_discretization_parameters.period == 2.0
    assert loaded.to_dict() == params.to_dict()


def test_yaml_is_plain_text(tmp_path):
    """Enums are written as their string values."""
    path = tmp_path / "run.yaml"
    Parameters().save_yaml(str(path))
    text = path.read_text()
    assert "loading_type: monotonic" in text
    assert "regularization_function: tanh" in text


def test_unknown_option_raises():
    with pytest.raises(ConfigurationError):
        Parameters.from_dict({"not_an_option": 1})
    with pytest.raises(ConfigurationError):
        Parameters.from_dict({"newton_parameters": {"tolerance": 1e-3}})


def test_unknown_regularization_function_raises():
    with pytest.raises(ConfigurationError):
        ScalarMicroscopicStressLawParameters(regularization_function="exponential")


def test_unknown_loading_type_raises():
    with pytest.raises(ConfigurationError):
        TemporalDiscretizationParameters(loading_type="random")
    # ConfigurationError is also a ValueError
    with pytest.raises(ValueError):
        parse_loading_type("sawtooth")


def test_loading_type_aliases():
    assert parse_loading_type("CyclicWithUnloading") == LoadingType.CYCLIC_WITH_UNLOADING
    assert parse_loading_type("Monotonic") == LoadingType.MONOTONIC


def test_hardening_parameter_range():
    with pytest.raises(ConfigurationError):
        ScalarMicroscopicStressLawParameters(hardening_parameter=1.4)
    with pytest.raises(ConfigurationError):
        ScalarMicroscopicStressLawParameters(hardening_parameter=-0.1)
    ScalarMicroscopicStressLawParameters(hardening_parameter=0.0)
    ScalarMicroscopicStressLawParameters(hardening_parameter=1.0)


def test_invalid_constitutive_constants():
    with pytest.raises(ConfigurationError):
        CohesiveLawParameters(critical_opening_displacement=0.0)
    with pytest.raises(ConfigurationError):
        LineSearchParameters(lower_bound_factor=0.6, upper_bound_factor=0.5)


def test_cyclic_program_sets_end_time():
    p = TemporalDiscretizationParameters(
        loading_type="cyclic_with_unloading",
        time_step_size=0.1,
        period=1.0,
        n_cycles=2,
        n_steps_per_half_cycle=3,
        n_steps_in_preloading_phase=4,
        n_steps_in_loading_and_unloading_phases=2,
        n_steps_in_unloading_phase=2,
    )
    assert p.start_of_loading_phase == pytest.approx(0.4)
    assert p.start_of_cyclic_phase == pytest.approx(0.6)
    assert p.start_of_unloading_phase == pytest.approx(2.6)
    assert p.end_time == pytest.approx(2.8)
    assert p.n_steps_in_cyclic_phase == 12
    assert p.cyclic_time_step_size == pytest.approx(1.0 / 6.0)
