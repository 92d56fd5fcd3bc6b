"""Tests for the adaptive Runge-Kutta integrators and the registry."""

import numpy as np
import pytest
from qdyn.core import registry
from qdyn.core.config import SolverConfig
from qdyn.core.errors import IntegrationError, InvalidInput, QDConfigError
from qdyn.integrator import (
    BogackiShampine32,
    DormandPrince54,
    DormandPrince853,
    Integrator,
    Segment,
    Stepper,
    make_integrator,
)


def _decay(t, y):
    return -1j * y


@pytest.mark.parametrize("name", ["dopri5", "rk45", "dp45", "bs23", "rk23", "dop853", "DOPRI5"])
def test_registered_names_resolve(name):
    integ = make_integrator(SolverConfig(method=name))
    assert isinstance(integ, Integrator)


def test_aliases_point_to_same_class():
    assert registry.get("integrator", "rk45") is DormandPrince54
    assert registry.get("integrator", "rk23") is BogackiShampine32
    assert registry.get("integrator", "dop853") is DormandPrince853


def test_unknown_method_raises_config_error():
    with pytest.raises(QDConfigError, match="502"):
        make_integrator(SolverConfig(method="euler"))


@pytest.mark.parametrize("cls", [DormandPrince54, BogackiShampine32, DormandPrince853])
def test_phase_rotation_accuracy(cls):
    integ = cls(SolverConfig(atol=1e-10, rtol=1e-10))
    stepper = integ.start(_decay, 0.0, np.array([1.0 + 0j]), 2.0)
    assert isinstance(stepper, Stepper)
    while not stepper.finished:
        seg = stepper.advance()
    assert seg.t_new == 2.0
    np.testing.assert_allclose(stepper.y, np.exp(-2j), atol=1e-7)
    assert stepper.nfev > 0


def test_segment_dense_output_and_exact_endpoints():
    stepper = DormandPrince54(SolverConfig(rtol=1e-9, atol=1e-12)).start(
        _decay, 0.0, np.array([1.0 + 0j]), 5.0
    )
    seg = stepper.advance()
    assert isinstance(seg, Segment)
    assert seg.t_new > seg.t_old == 0.0
    assert seg(seg.t_new) is seg.y_new
    mid = 0.5 * (seg.t_old + seg.t_new)
    np.testing.assert_allclose(seg(mid), np.exp(-1j * mid), atol=1e-7)


def test_first_step_is_clamped_to_interval():
    cfg = SolverConfig(first_step=10.0)
    stepper = make_integrator(cfg).start(_decay, 0.0, np.array([1.0 + 0j]), 0.5)
    while not stepper.finished:
        stepper.advance()
    assert stepper.t == 0.5


def test_step_floor_aborts():
    # A step floor larger than any step the controller is willing to take.
    cfg = SolverConfig(min_step=1.0, max_step=0.1)
    stepper = make_integrator(cfg).start(_decay, 0.0, np.array([1.0 + 0j]), 10.0)
    with pytest.raises(IntegrationError, match="301"):
        stepper.advance()


def test_advancing_finished_integration_raises():
    stepper = make_integrator(SolverConfig()).start(_decay, 0.0, np.array([1.0 + 0j]), 0.1)
    while not stepper.finished:
        stepper.advance()
    with pytest.raises(IntegrationError, match="302"):
        stepper.advance()


def test_empty_interval_rejected():
    with pytest.raises(InvalidInput):
        make_integrator(SolverConfig()).start(_decay, 1.0, np.array([1.0 + 0j]), 1.0)
