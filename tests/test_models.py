"""
Tests for sitl/models.py (airframe models).

Run with: pytest tests/test_models.py -v
"""

import math

import numpy as np
import pytest

from sitl import config as cfg
from sitl.models import (ConstantModel, FixedWingModel, ModelAgnosticModel,
                         MultirotorModel, RigidBodyModel, SimMode,
                         finite_or_zero, finite_vec,
                         mode_for_airframe)
from sitl.noise import RandomGaussian
from sitl.uavobjects import (Accels, ActuatorDesired, AirframeType,
                             AirspeedSensor, ArmedState, AttitudeActual,
                             AttitudeSimulated, BaroAltitude, FlightStatus,
                             GPSPosition, Gyros, GyrosBias, Magnetometer,
                             RateDesired)

DT = cfg.SENSOR_PERIOD_S


def _gauss(seed=0):
    return RandomGaussian(np.random.default_rng(seed))


def _arm(bus, throttle=0.0, roll=0.0, pitch=0.0, yaw=0.0):
    bus.set(FlightStatus(armed=ArmedState.ARMED))
    bus.set(ActuatorDesired(throttle=throttle, roll=roll, pitch=pitch, yaw=yaw))


def _run(model, bus, n, start=0):
    for k in range(start, start + n):
        model.step(bus, k * DT)


# ──────────────────────────────────────────────────────────────────────────────
#  Mode selection / helpers
# ──────────────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("airframe, mode", [
    (AirframeType.FIXED_WING, SimMode.FIXED_WING),
    (AirframeType.FIXED_WING_ELEVON, SimMode.FIXED_WING),
    (AirframeType.FIXED_WING_VTAIL, SimMode.FIXED_WING),
    (AirframeType.QUAD_X, SimMode.MULTIROTOR),
    (AirframeType.QUAD_P, SimMode.MULTIROTOR),
    (AirframeType.VTOL, SimMode.MULTIROTOR),
    (AirframeType.HEXA, SimMode.MULTIROTOR),
    (AirframeType.OCTO, SimMode.MULTIROTOR),
    (AirframeType.TRI, SimMode.MODEL_AGNOSTIC),
    (AirframeType.HELI_CP, SimMode.MODEL_AGNOSTIC),
    (AirframeType.CUSTOM, SimMode.MODEL_AGNOSTIC),
    ("not-an-airframe", SimMode.MODEL_AGNOSTIC),
])
def test_mode_for_airframe(airframe, mode):
    assert mode_for_airframe(airframe) is mode


def test_finite_guards():
    assert finite_or_zero(float("nan")) == 0.0
    assert finite_or_zero(float("inf")) == 0.0
    assert finite_or_zero(2.5) == 2.5
    np.testing.assert_array_equal(finite_vec([1.0, float("nan"), -float("inf")]),
                                  [1.0, 0.0, 0.0])


# ──────────────────────────────────────────────────────────────────────────────
#  CONSTANT / MODEL_AGNOSTIC
# ──────────────────────────────────────────────────────────────────────────────
def test_constant_model_is_deterministic(bus):
    bus.set(GyrosBias(x=0.5, y=-0.25, z=0.125))
    model = ConstantModel()

    snapshots = []
    for k in range(5):
        model.step(bus, k * DT)
        snapshots.append((bus.get(Accels), bus.get(Gyros), bus.get(Magnetometer),
                          bus.get(BaroAltitude), bus.get(GPSPosition)))

    assert all(s == snapshots[0] for s in snapshots)
    acc, gyr, mag, baro, gps = snapshots[0]
    assert acc == Accels(x=0.0, y=0.0, z=-cfg.GRAVITY, temperature=0.0)
    assert gyr == Gyros(x=0.5, y=-0.25, z=0.125)
    assert mag == Magnetometer(x=400.0, y=0.0, z=800.0)
    assert baro.altitude == 1.0
    assert (gps.latitude, gps.longitude, gps.altitude) == (0, 0, 0.0)


def test_constant_model_keeps_other_gps_fields(bus):
    bus.set(GPSPosition(latitude=5, longitude=6, altitude=7.0, satellites=9))
    ConstantModel().step(bus, 0.0)
    gps = bus.get(GPSPosition)
    assert (gps.latitude, gps.longitude, gps.altitude) == (0, 0, 0.0)
    assert gps.satellites == 9


def test_model_agnostic_gravity_follows_attitude(bus, zero_gauss):
    model = ModelAgnosticModel(zero_gauss)
    half = math.radians(90.0) / 2
    bus.set(AttitudeActual(q1=math.cos(half), q2=math.sin(half), q3=0.0, q4=0.0))
    bus.set(RateDesired(roll=10.0, pitch=-5.0, yaw=2.0))

    model.step(bus, 0.0)

    acc = bus.get(Accels)
    np.testing.assert_allclose([acc.x, acc.y, acc.z], [0.0, -cfg.GRAVITY, 0.0], atol=1e-9)
    assert acc.temperature == cfg.ACCEL_TEMPERATURE_C
    assert bus.get(Gyros) == Gyros(x=10.0, y=-5.0, z=2.0)
    assert bus.get(Magnetometer) == Magnetometer(x=400.0, y=0.0, z=800.0)


# ──────────────────────────────────────────────────────────────────────────────
#  MULTIROTOR
# ──────────────────────────────────────────────────────────────────────────────
class TestMultirotor:

    def test_disarmed_stays_on_ground(self, bus):
        model = MultirotorModel(_gauss(), np.zeros(3))
        bus.set(ActuatorDesired(throttle=1.0))   # ignored while disarmed
        for k in range(1000):
            model.step(bus, k * DT)
            assert model.state.pos[2] == 0.0
            assert model.state.vel[2] == 0.0

    def test_accel_at_rest_is_gravity_loaded(self, bus):
        model = MultirotorModel(_gauss(), np.zeros(3))
        _run(model, bus, 10)
        acc = bus.get(Accels)
        assert acc.z == pytest.approx(-cfg.GRAVITY)
        assert acc.temperature == cfg.ACCEL_TEMPERATURE_C

    def test_hover_throttle_friction_equilibrium(self, bus):
        """Throttle 0.5 cancels gravity; vertical speed stays within friction bound."""
        model = MultirotorModel(_gauss(11), np.zeros(3))
        _arm(bus, throttle=0.5)
        bound = cfg.MR_MAX_THRUST * 0.5 / cfg.MR_K_FRICTION

        for k in range(int(5.0 / DT)):
            model.step(bus, k * DT)
            assert model.state.pos[2] <= 0.0
            assert abs(model.state.vel[2]) <= bound + 1e-6

    def test_full_throttle_terminal_climb_rate(self, bus):
        model = MultirotorModel(_gauss(12), np.zeros(3))
        _arm(bus, throttle=1.0)
        _run(model, bus, int(5.0 / DT))

        # a_down = -2g + g - K v  ->  v_down = -g / K
        terminal = -(cfg.MR_MAX_THRUST - cfg.GRAVITY) / cfg.MR_K_FRICTION
        assert model.state.vel[2] == pytest.approx(terminal, abs=0.5)
        assert model.state.pos[2] < -30.0
        truth = bus.get(AttitudeSimulated)
        assert truth.position[2] == model.state.pos[2]

    def test_ground_clamp_after_landing(self, bus):
        model = MultirotorModel(_gauss(13), np.zeros(3))
        _arm(bus, throttle=1.0)
        _run(model, bus, 500)
        assert model.state.pos[2] < 0.0

        bus.set(FlightStatus(armed=ArmedState.DISARMED))
        _run(model, bus, 3000, start=500)
        for k in range(3500, 3600):
            model.step(bus, k * DT)
            assert model.state.pos[2] == 0.0
            assert model.state.vel[2] == 0.0

    def test_roll_command_rotates_and_stays_normalised(self, bus):
        model = MultirotorModel(_gauss(14), np.zeros(3))
        _arm(bus, throttle=0.6, roll=0.2)
        for k in range(500):
            model.step(bus, k * DT)
            assert abs(np.linalg.norm(model.state.q) - 1.0) < 1e-5
        assert bus.get(AttitudeSimulated).roll > 10.0

    def test_gyro_tracks_filtered_rate(self, bus, zero_gauss):
        model = MultirotorModel(zero_gauss, np.zeros(3))
        _arm(bus, throttle=0.0, yaw=0.1)
        model.step(bus, 0.0)
        expected = 0.1 * cfg.MR_RATE_SCALE_DPS * (1 - cfg.MR_ACTUATOR_ALPHA)
        assert bus.get(Gyros).z == pytest.approx(expected)

    def test_nan_throttle_is_ignored(self, bus):
        model = MultirotorModel(_gauss(15), np.zeros(3))
        _arm(bus, throttle=float("nan"), roll=float("nan"))
        _run(model, bus, 200)
        assert np.all(np.isfinite(model.state.pos))
        assert np.all(np.isfinite(model.state.q))
        assert model.state.pos[2] == 0.0

    def test_dt_clamped_to_minimum(self, bus, zero_gauss):
        model = MultirotorModel(zero_gauss, np.zeros(3))
        _arm(bus, throttle=1.0)
        model.step(bus, 1.0)
        model.step(bus, 1.0)     # zero elapsed time still advances 2 ms
        assert model.state.vel[2] < 0.0

    def test_channels_publish_at_their_rates(self, bus):
        model = MultirotorModel(_gauss(16), np.zeros(3))
        counts = {}

        def counter(name):
            def cb(rec):
                counts[name] = counts.get(name, 0) + 1
            return cb

        for rtype in (Accels, Gyros, BaroAltitude, GPSPosition, Magnetometer,
                      AttitudeSimulated, AirspeedSensor):
            bus.connect(rtype, counter(rtype.__name__))

        n = int(1.0 / DT)
        _run(model, bus, n)

        assert counts["Accels"] == n
        assert counts["Gyros"] == n
        assert counts["AttitudeSimulated"] == n
        assert counts["GPSPosition"] <= math.ceil(1.0 / cfg.GPS_PERIOD_S)
        assert counts["BaroAltitude"] <= math.ceil(1.0 / cfg.BARO_PERIOD_S)
        assert counts["Magnetometer"] <= math.ceil(1.0 / cfg.MAG_PERIOD_S)
        assert counts["GPSPosition"] >= 5
        assert "AirspeedSensor" not in counts

    def test_override_attitude_writes_attitude_actual(self, bus):
        model = MultirotorModel(_gauss(17), np.zeros(3), override_attitude=True)
        _arm(bus, throttle=0.6, pitch=0.1)
        _run(model, bus, 100)
        att = bus.get(AttitudeActual)
        np.testing.assert_allclose([att.q1, att.q2, att.q3, att.q4], model.state.q)

    def test_instances_do_not_share_state(self, bus):
        a = MultirotorModel(_gauss(18), np.zeros(3))
        b = MultirotorModel(_gauss(19), np.zeros(3))
        _arm(bus, throttle=1.0)
        _run(a, bus, 200)
        assert b.state.last_time is None
        np.testing.assert_array_equal(b.state.pos, np.zeros(3))


# ──────────────────────────────────────────────────────────────────────────────
#  FIXED_WING
# ──────────────────────────────────────────────────────────────────────────────
class TestFixedWing:

    def _airborne(self, zero_gauss, speed):
        model = FixedWingModel(zero_gauss, np.zeros(3))
        model.state.pos = np.array([0.0, 0.0, -100.0])
        model.state.vel = np.array([speed, 0.0, 0.0])
        return model

    def test_calm_air_on_ground(self, bus):
        model = FixedWingModel(_gauss(20), np.zeros(3))
        _run(model, bus, 500)
        np.testing.assert_array_equal(model.state.vel, np.zeros(3))
        np.testing.assert_array_equal(model.state.pos, np.zeros(3))

    def test_climbs_above_lift_speed(self, bus, zero_gauss):
        model = self._airborne(zero_gauss, 20.0)
        _arm(bus, throttle=0.5)
        model.step(bus, 0.0)
        assert model.state.vel[2] < 0.0

    def test_sinks_below_lift_speed(self, bus, zero_gauss):
        model = self._airborne(zero_gauss, 4.0)
        _arm(bus, throttle=0.5)
        model.step(bus, 0.0)
        assert model.state.vel[2] > 0.0

    def test_airspeed_sensor_reports_forward_airspeed(self, bus, zero_gauss):
        model = self._airborne(zero_gauss, 15.0)
        model.step(bus, 0.0)
        air = bus.get(AirspeedSensor)
        assert air.sensor_connected is True
        assert air.calibrated_airspeed == pytest.approx(15.0)

    def test_mag_carries_hard_iron_offset(self, bus, zero_gauss):
        model = FixedWingModel(zero_gauss, np.zeros(3))
        model.step(bus, 0.0)
        mag = bus.get(Magnetometer)
        np.testing.assert_allclose([mag.x, mag.y, mag.z],
                                   np.array(cfg.HOME_BE) + cfg.FW_MAG_DISTURBANCE)

    def test_roll_couples_into_yaw_rate(self, bus, zero_gauss):
        model = FixedWingModel(zero_gauss, np.zeros(3))
        _arm(bus)
        bus.set(AttitudeActual(roll=30.0))
        model.step(bus, 0.0)
        assert bus.get(Gyros).z == pytest.approx(30.0 * cfg.FW_ROLL_HEADING_COUPLING)

    def test_rate_desired_low_pass(self, bus, zero_gauss):
        model = FixedWingModel(zero_gauss, np.zeros(3))
        _arm(bus)
        bus.set(RateDesired(roll=100.0))
        model.step(bus, 0.0)
        assert bus.get(Gyros).x == pytest.approx(100.0 * (1 - cfg.FW_ACTUATOR_ALPHA))
        for k in range(1, 100):
            model.step(bus, k * DT)
        assert bus.get(Gyros).x == pytest.approx(100.0, abs=1e-3)


# ──────────────────────────────────────────────────────────────────────────────
#  Shared rigid-body pipeline
# ──────────────────────────────────────────────────────────────────────────────
def test_rigid_body_base_is_abstract(zero_gauss):
    with pytest.raises(TypeError):
        RigidBodyModel(zero_gauss, np.zeros(3))


def test_resume_integrates_min_dt_only(bus, zero_gauss):
    model = MultirotorModel(zero_gauss, np.zeros(3))
    _arm(bus, throttle=1.0)
    _run(model, bus, 100)
    vel = model.state.vel.copy()

    model.resume()
    model.step(bus, 100 * DT + 10.0)

    # One 2 ms step: |dv| <= (|a_thrust - g| + K|v|) * dt
    bound = (cfg.GRAVITY + cfg.MR_K_FRICTION * np.linalg.norm(vel)) * DT
    assert np.all(np.abs(model.state.vel - vel) <= bound + 1e-9)
