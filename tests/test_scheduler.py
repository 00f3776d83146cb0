"""
Tests for sitl/scheduler.py (mode selection and the tick loop).

Run with: pytest tests/test_scheduler.py -v
"""

import numpy as np
import pytest

from sitl import config as cfg
from sitl.models import (ConstantModel, FixedWingModel, ModelAgnosticModel,
                         MultirotorModel, SimMode)
from sitl.scheduler import SimulationScheduler, Watchdog
from sitl.uavobjects import (Accels, ActuatorDesired, AirframeType,
                             ArmedState, AttitudeSimulated, BaroAltitude,
                             FlightStatus, HomeLocation, MeasurementBus,
                             SystemSettings)


def _ticks(sched, n, start=0):
    for k in range(start, start + n):
        sched.tick(k * cfg.SENSOR_PERIOD_S)


def test_bus_initialised_without_clobbering(bus):
    SimulationScheduler(bus, seed=1)
    assert bus.get(HomeLocation).be == cfg.HOME_BE
    assert bus.get(SystemSettings).airframe_type is AirframeType.QUAD_X


def test_watchdog_updated_every_tick(bus):
    dog = Watchdog()
    sched = SimulationScheduler(bus, seed=1, watchdog=dog)
    _ticks(sched, 7)
    assert dog.updates == 7
    assert dog.last_update == pytest.approx(6 * cfg.SENSOR_PERIOD_S)
    assert sched.tick_count == 7


@pytest.mark.parametrize("airframe, mode, cls", [
    (AirframeType.QUAD_X, SimMode.MULTIROTOR, MultirotorModel),
    (AirframeType.FIXED_WING_VTAIL, SimMode.FIXED_WING, FixedWingModel),
    (AirframeType.TRI, SimMode.MODEL_AGNOSTIC, ModelAgnosticModel),
])
def test_airframe_selects_model(bus, airframe, mode, cls):
    sched = SimulationScheduler(bus, seed=1)
    bus.set(SystemSettings(airframe_type=airframe))
    assert sched.tick(0.0) is mode
    assert isinstance(sched.model_for(mode), cls)
    assert sched.active_mode is mode


def test_forced_constant_mode(bus):
    sched = SimulationScheduler(bus, seed=1, mode=SimMode.CONSTANT)
    bus.set(SystemSettings(airframe_type=AirframeType.FIXED_WING))
    assert sched.tick(0.0) is SimMode.CONSTANT
    assert isinstance(sched.model_for(SimMode.CONSTANT), ConstantModel)
    assert bus.get(Accels).z == -cfg.GRAVITY
    assert bus.get(BaroAltitude).altitude == cfg.CONST_BARO_ALT_M


def test_models_are_lazy_and_reused(bus):
    sched = SimulationScheduler(bus, seed=1)
    assert sched._models == {}
    m1 = sched.model_for(SimMode.MULTIROTOR)
    assert sched.model_for(SimMode.MULTIROTOR) is m1
    assert list(sched._models) == [SimMode.MULTIROTOR]


def test_switching_keeps_separate_state(bus):
    sched = SimulationScheduler(bus, seed=3)
    bus.set(FlightStatus(armed=ArmedState.ARMED))
    bus.set(ActuatorDesired(throttle=1.0))

    _ticks(sched, 250)
    multi = sched.model_for(SimMode.MULTIROTOR)
    altitude = multi.state.pos[2]
    assert altitude < 0.0

    bus.set(SystemSettings(airframe_type=AirframeType.FIXED_WING))
    _ticks(sched, 50, start=250)
    wing = sched.model_for(SimMode.FIXED_WING)
    assert wing is not multi
    # Multirotor frozen while inactive
    assert multi.state.pos[2] == altitude
    assert bus.get(AttitudeSimulated).position == tuple(float(v) for v in wing.state.pos)

    bus.set(SystemSettings(airframe_type=AirframeType.QUAD_P))
    sched.tick(300 * cfg.SENSOR_PERIOD_S)
    assert sched.model_for(SimMode.MULTIROTOR) is multi
    # Resumes from where it left off
    assert multi.state.pos[2] < altitude


def test_same_seed_is_reproducible():
    def run(seed):
        b = MeasurementBus()
        sched = SimulationScheduler(b, seed=seed)
        b.set(HomeLocation(be=cfg.HOME_BE))
        b.set(FlightStatus(armed=ArmedState.ARMED))
        b.set(ActuatorDesired(throttle=0.7, roll=0.05))
        _ticks(sched, 300)
        return b.get(AttitudeSimulated), b.get(Accels)

    assert run(42) == run(42)
    assert run(42) != run(43)


def test_run_free_running_tick_count(bus):
    sched = SimulationScheduler(bus, seed=1)
    assert sched.run(duration=0.1, realtime=False, verbose=False) == 50
    truth = bus.get(AttitudeSimulated)
    assert sched.model_for(SimMode.MULTIROTOR).state.last_time == pytest.approx(
        49 * cfg.SENSOR_PERIOD_S)
    assert truth.position[2] == 0.0


def test_run_realtime_short(bus):
    sched = SimulationScheduler(bus, seed=1)
    assert sched.run(duration=0.02, realtime=True, verbose=False) == 10
    assert sched.watchdog.updates == 10


def test_run_verbose_prints(bus, capsys):
    SimulationScheduler(bus, seed=1).run(duration=0.004, realtime=False)
    out = capsys.readouterr().out
    assert "[Sim] Starting" in out
    assert "[Sim] Done. 2 ticks." in out


def test_reactivated_model_skips_inactive_interval(bus):
    sched = SimulationScheduler(bus, seed=5)
    bus.set(FlightStatus(armed=ArmedState.ARMED))
    bus.set(ActuatorDesired(throttle=0.75))
    _ticks(sched, 250)
    multi = sched.model_for(SimMode.MULTIROTOR)
    vel = multi.state.vel.copy()

    bus.set(SystemSettings(airframe_type=AirframeType.TRI))
    sched.tick(250 * cfg.SENSOR_PERIOD_S)

    bus.set(SystemSettings(airframe_type=AirframeType.QUAD_X))
    sched.tick(10.0)

    assert multi.state.last_time == 10.0
    np.testing.assert_allclose(multi.state.vel, vel, atol=0.1)
