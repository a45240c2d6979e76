"""Load schedule: phase boundaries, extrema steps and damage freeze windows.

Program used below (P=4, L=2, H=3, N=2, U=2, dt=0.1, period=1)::

    Preloading  steps [0, 4)     t in [0.0, 0.4]
    Loading     steps [4, 6)     t in [0.4, 0.6]
    Cyclic      steps [6, 18)    t in [0.6, 2.6]
    Unloading   steps [18, ...)  t in [2.6, 2.8]
"""

import pytest

from gcp_nonlinear.config import TemporalDiscretizationParameters
from gcp_nonlinear.schedule import LoadingPhase, LoadSchedule


def _params(loading_type="cyclic_with_unloading"):
    return TemporalDiscretizationParameters(
        loading_type=loading_type,
        time_step_size=0.1,
        period=1.0,
        n_cycles=2,
        n_steps_per_half_cycle=3,
        n_steps_in_preloading_phase=4,
        n_steps_in_loading_and_unloading_phases=2,
        n_steps_in_unloading_phase=2,
    )


def _time_of_step(p, step):
    """Time t^n reached after ``step`` converged steps."""
    if step <= 6:
        return step * p.time_step_size
    if step <= 18:
        return p.start_of_cyclic_phase + (step - 6) * p.cyclic_time_step_size
    return p.start_of_unloading_phase + (step - 18) * p.time_step_size


@pytest.mark.parametrize(
    "step,phase",
    [
        (0, LoadingPhase.PRELOADING),
        (3, LoadingPhase.PRELOADING),
        (4, LoadingPhase.LOADING),
        (5, LoadingPhase.LOADING),
        (6, LoadingPhase.CYCLIC),
        (17, LoadingPhase.CYCLIC),
        (18, LoadingPhase.UNLOADING),
        (19, LoadingPhase.UNLOADING),
    ],
)
def test_phase_intervals_are_closed_open(step, phase):
    schedule = LoadSchedule(_params())
    assert schedule.phase(step) == phase


def test_negative_step_rejected():
    with pytest.raises(ValueError):
        LoadSchedule(_params()).phase(-1)


def test_step_sizes_follow_phase():
    p = _params()
    schedule = LoadSchedule(p)
    assert schedule.step_size(5) == pytest.approx(0.1)
    assert schedule.step_size(6) == pytest.approx(1.0 / 6.0)
    assert schedule.step_size(17) == pytest.approx(1.0 / 6.0)
    assert schedule.step_size(18) == pytest.approx(0.1)


def test_cycle_count_is_floored():
    p = _params()
    schedule = LoadSchedule(p)
    assert schedule.cycle_count(0.0) < 0
    assert schedule.cycle_count(p.start_of_cyclic_phase) == 0
    assert schedule.cycle_count(p.start_of_cyclic_phase + 0.999) == 0
    # exactly one period later, despite round-off in the accumulated time
    assert schedule.cycle_count(_time_of_step(p, 12)) == 1


def test_cycle_count_accumulated_time_below_boundary():
    p = _params()
    schedule = LoadSchedule(p)
    t = p.start_of_cyclic_phase
    for _ in range(6):
        t += p.cyclic_time_step_size
    assert schedule.cycle_count(t) == 1
    assert schedule.cycle_count(p.start_of_cyclic_phase + p.period - 1e-12) == 1
    assert schedule.cycle_count(p.start_of_cyclic_phase + p.period - 1e-6) == 0


def test_extrema_steps():
    p = _params()
    schedule = LoadSchedule(p)
    extrema = [s for s in range(0, 20) if schedule.is_extrema_step(s, _time_of_step(p, s))]
    # P//2, P, P+L, quarter / three-quarter points of both cycles, start of unloading
    assert extrema == [2, 4, 6, 7, 10, 13, 16, 18]


def test_monotonic_has_no_extrema_and_single_phase():
    p = TemporalDiscretizationParameters(loading_type="monotonic", time_step_size=0.1, end_time=1.0)
    schedule = LoadSchedule(p, flag_skip_extrapolation_at_extrema=True, flag_zero_damage_during_loading_and_unloading=True)
    for step in range(12):
        assert schedule.phase(step) == LoadingPhase.LOADING
        assert not schedule.is_extrema_step(step, 0.1 * step)
        assert not schedule.skip_extrapolation(step, 0.1 * step)
    assert not schedule.is_damage_frozen(0.05)


def test_skip_extrapolation_requires_flag():
    p = _params()
    assert not LoadSchedule(p).skip_extrapolation(4, _time_of_step(p, 4))
    assert LoadSchedule(p, flag_skip_extrapolation_at_extrema=True).skip_extrapolation(4, _time_of_step(p, 4))
    assert not LoadSchedule(p, flag_skip_extrapolation_at_extrema=True).skip_extrapolation(5, _time_of_step(p, 5))


def test_damage_freeze_windows():
    p = _params("cyclic_with_unloading")
    schedule = LoadSchedule(p, flag_zero_damage_during_loading_and_unloading=True)
    assert schedule.is_damage_frozen(0.1)
    assert schedule.is_damage_frozen(0.4)
    assert not schedule.is_damage_frozen(0.5)
    assert not schedule.is_damage_frozen(2.6)
    assert schedule.is_damage_frozen(2.7)

    cyclic = LoadSchedule(_params("cyclic"), flag_zero_damage_during_loading_and_unloading=True)
    assert cyclic.is_damage_frozen(0.4)
    assert not cyclic.is_damage_frozen(2.7)

    no_flag = LoadSchedule(p)
    assert not no_flag.is_damage_frozen(0.1)


def test_classify_bundles_flags():
    p = _params()
    schedule = LoadSchedule(p, flag_skip_extrapolation_at_extrema=True, flag_zero_damage_during_loading_and_unloading=True)
    c = schedule.classify(2, _time_of_step(p, 2), _time_of_step(p, 3))
    assert c.phase == LoadingPhase.PRELOADING
    assert c.extrema_step and c.skip_extrapolation and c.damage_frozen
