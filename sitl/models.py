"""
Airframe Models
================
One object per simulation mode.  Every model implements

    step(bus, now)   — advance one tick at monotonic time ``now`` (s)

and owns all of its persistent state (truth, filtered rates, wind, drift
processes, publication gates), so switching between models never mixes
state.  Dynamic models create their state lazily and keep it for the life
of the object.

  CONSTANT        fixed, noiseless reference values
  MODEL_AGNOSTIC  gravity from the estimated attitude, gyro from RateDesired
  MULTIROTOR      thrust along body-down, linear drag, ground contact
  FIXED_WING      simplified lift / drag / side-slip model, airspeed sensor
"""

import abc
import dataclasses
import enum
import math

import numpy as np

from sitl import attitude
from sitl import config as cfg
from sitl.noise import DriftProcess, RandomGaussian
from sitl.sensors import SensorEmulator
from sitl.uavobjects import (Accels, ActuatorDesired, AirframeType, ArmedState,
                             AttitudeActual, BaroAltitude, FlightStatus,
                             GPSPosition, Gyros, GyrosBias, Magnetometer,
                             MeasurementBus, RateDesired)


class SimMode(enum.Enum):
    CONSTANT = "constant"
    MODEL_AGNOSTIC = "agnostic"
    MULTIROTOR = "multirotor"
    FIXED_WING = "fixedwing"


_FIXED_WING_FRAMES = {
    AirframeType.FIXED_WING,
    AirframeType.FIXED_WING_ELEVON,
    AirframeType.FIXED_WING_VTAIL,
}
_MULTIROTOR_FRAMES = {
    AirframeType.QUAD_X,
    AirframeType.QUAD_P,
    AirframeType.VTOL,
    AirframeType.HEXA,
    AirframeType.OCTO,
}


def mode_for_airframe(airframe) -> SimMode:
    """Map an airframe type to a simulation mode; anything else is MODEL_AGNOSTIC."""
    if airframe in _FIXED_WING_FRAMES:
        return SimMode.FIXED_WING
    if airframe in _MULTIROTOR_FRAMES:
        return SimMode.MULTIROTOR
    return SimMode.MODEL_AGNOSTIC


def finite_or_zero(x) -> float:
    x = float(x)
    return x if math.isfinite(x) else 0.0


def finite_vec(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    return np.where(np.isfinite(v), v, 0.0)


def _zero_gps_fix(bus: MeasurementBus):
    gps = bus.get(GPSPosition)
    bus.set(dataclasses.replace(gps, latitude=0, longitude=0, altitude=0.0))


# ═══════════════════════════════════════════════════════════════════════════════
#  Reference modes
# ═══════════════════════════════════════════════════════════════════════════════
class ConstantModel:
    """Noiseless reference outputs for deterministic bench tests."""

    mode = SimMode.CONSTANT

    def step(self, bus: MeasurementBus, now: float) -> None:
        ax, ay, az = cfg.CONST_ACCEL
        bus.set(Accels(x=ax, y=ay, z=az, temperature=0.0))

        bias = bus.get(GyrosBias)
        bus.set(Gyros(x=0.0 + bias.x, y=0.0 + bias.y, z=0.0 + bias.z))

        bus.set(BaroAltitude(altitude=cfg.CONST_BARO_ALT_M))
        _zero_gps_fix(bus)

        mx, my, mz = cfg.CONST_MAG
        bus.set(Magnetometer(x=mx, y=my, z=mz))


class ModelAgnosticModel:
    """Gravity seen through the estimated attitude; gyros follow RateDesired."""

    mode = SimMode.MODEL_AGNOSTIC

    def __init__(self, gauss: RandomGaussian):
        self.sensors = SensorEmulator(gauss, accel_bias=np.zeros(3))

    def step(self, bus: MeasurementBus, now: float) -> None:
        att = bus.get(AttitudeActual)
        rot = attitude.quat_to_rotation_matrix((att.q1, att.q2, att.q3, att.q4))
        accel = -cfg.GRAVITY * rot[:, 2]
        bus.set(Accels(x=float(accel[0]), y=float(accel[1]), z=float(accel[2]),
                       temperature=cfg.ACCEL_TEMPERATURE_C))

        rate = bus.get(RateDesired)
        self.sensors.publish_gyros(bus, (rate.roll, rate.pitch, rate.yaw))

        bus.set(BaroAltitude(altitude=cfg.CONST_BARO_ALT_M))
        _zero_gps_fix(bus)

        mx, my, mz = cfg.CONST_MAG
        bus.set(Magnetometer(x=mx, y=my, z=mz))


# ═══════════════════════════════════════════════════════════════════════════════
#  Rigid-body models
# ═══════════════════════════════════════════════════════════════════════════════
@dataclasses.dataclass
class TruthState:
    """Noise-free physical state of a simulated airframe (NED)."""
    pos: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))
    vel: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))
    ned_accel: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))
    q: np.ndarray = dataclasses.field(default_factory=lambda: attitude.IDENTITY_QUAT.copy())
    rates: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))
    last_time: float | None = None


class RigidBodyModel(abc.ABC):
    """
    Shared tick pipeline for the multirotor and fixed-wing models.

    Subclasses provide ``_update_rates`` (filtered body rates, deg/s) and
    ``_acceleration`` (NED coordinate acceleration before ground contact).
    """

    mode: SimMode
    MAX_THRUST: float
    K_FRICTION: float
    MAG_OFFSET = 0.0
    APPLY_WIND = True

    def __init__(self, gauss: RandomGaussian, accel_bias,
                 override_attitude: bool = False):
        self.gauss = gauss
        self.override_attitude = override_attitude
        self.sensors = SensorEmulator(gauss, accel_bias)
        self.wind = DriftProcess(cfg.WIND_DECAY, cfg.WIND_NOISE_DIV, gauss)
        self.state = TruthState()

    # ──────────────────────────────────────────────────────────────────────
    def resume(self) -> None:
        """Forget the last step time so the next step integrates MIN_DT only."""
        self.state.last_time = None

    def _advance_clock(self, now: float) -> float:
        s = self.state
        dt = cfg.MIN_DT_S if s.last_time is None else max(now - s.last_time, cfg.MIN_DT_S)
        s.last_time = now
        return dt

    def _thrust(self, armed: bool, throttle: float) -> float:
        thrust = throttle * self.MAX_THRUST if armed else 0.0
        if thrust < 0:
            thrust = 0.0
        return finite_or_zero(thrust)

    def _lowpass_rates(self, armed: bool, cmd, alpha: float) -> None:
        gate = 1.0 if armed else 0.0
        cmd = np.array([finite_or_zero(c) for c in cmd])
        self.state.rates = gate * cmd * (1.0 - alpha) + self.state.rates * alpha

    @abc.abstractmethod
    def _update_rates(self, bus: MeasurementBus, armed: bool) -> None:
        ...

    @abc.abstractmethod
    def _acceleration(self, bus: MeasurementBus, rot: np.ndarray,
                      thrust: float, wind: np.ndarray) -> np.ndarray:
        ...

    def _publish_air_data(self, bus: MeasurementBus, now: float) -> None:
        pass

    def _write_attitude_actual(self, bus: MeasurementBus) -> None:
        q = self.state.q
        roll, pitch, yaw = attitude.quat_to_euler(q)
        bus.set(AttitudeActual(q1=float(q[0]), q2=float(q[1]), q3=float(q[2]),
                               q4=float(q[3]), roll=roll, pitch=pitch, yaw=yaw))

    # ──────────────────────────────────────────────────────────────────────
    def step(self, bus: MeasurementBus, now: float) -> None:
        s = self.state
        dt = self._advance_clock(now)

        armed = bus.get(FlightStatus).armed is ArmedState.ARMED
        thrust = self._thrust(armed, bus.get(ActuatorDesired).throttle)

        # 1. Attitude
        self._update_rates(bus, armed)
        self.sensors.publish_gyros(bus, s.rates)
        s.q = attitude.integrate(s.q, s.rates, dt)
        if self.override_attitude:
            self._write_attitude_actual(bus)

        # 2. Translation
        wind = self.wind.step()
        if not self.APPLY_WIND:
            wind = np.zeros(3)
        rot = attitude.quat_to_rotation_matrix(s.q)
        ned_accel = finite_vec(self._acceleration(bus, rot, thrust, wind))

        s.vel = s.vel + ned_accel * dt
        s.pos = s.pos + s.vel * dt

        # Ground contact (down is positive)
        if s.pos[2] > 0:
            s.pos[2] = 0.0
            s.vel[2] = 0.0
            ned_accel[2] = 0.0
        s.ned_accel = ned_accel

        # 3. Sensors
        self.sensors.publish_accels(bus, rot, ned_accel)

        self.sensors.step_baro_offset()
        self.sensors.publish_baro(bus, now, s.pos)
        self._publish_air_data(bus, now)

        self.sensors.gps_vel_drift.step()
        self.sensors.publish_gps(bus, now, s.pos, s.vel)
        self.sensors.publish_gps_velocity(bus, now, s.vel)

        self.sensors.publish_mag(bus, now, rot, self.MAG_OFFSET)

        self.sensors.publish_truth(bus, s.q, s.pos, s.vel)


class MultirotorModel(RigidBodyModel):
    """
    Thrust along the body-down axis, linear drag against the air mass.

    Actuator roll/pitch/yaw deflection maps to body rate through a slow
    first-order lag.
    """

    mode = SimMode.MULTIROTOR
    ACTUATOR_ALPHA = cfg.MR_ACTUATOR_ALPHA
    RATE_SCALE = cfg.MR_RATE_SCALE_DPS
    MAX_THRUST = cfg.MR_MAX_THRUST
    K_FRICTION = cfg.MR_K_FRICTION

    def _update_rates(self, bus, armed):
        act = bus.get(ActuatorDesired)
        cmd = np.array([act.roll, act.pitch, act.yaw]) * self.RATE_SCALE
        self._lowpass_rates(armed, cmd, self.ACTUATOR_ALPHA)

    def _acceleration(self, bus, rot, thrust, wind):
        # Thrust acts along -body_z; gravity along +NED down
        ned_accel = -thrust * rot[2, :]
        ned_accel[2] += cfg.GRAVITY
        ned_accel -= self.K_FRICTION * (self.state.vel - wind)
        return ned_accel


class FixedWingModel(RigidBodyModel):
    """
    Simplified fixed-wing: lift balances weight at LIFT_SPEED forward
    airspeed; slower sinks, faster climbs.  Side-slip and vertical airspeed
    are heavily damped.

    Rates follow RateDesired; bank angle adds a heading rate.  The airframe
    flies in calm air (the wind process runs but is not applied).
    """

    mode = SimMode.FIXED_WING
    ACTUATOR_ALPHA = cfg.FW_ACTUATOR_ALPHA
    MAX_THRUST = cfg.FW_MAX_THRUST
    K_FRICTION = cfg.FW_K_FRICTION
    LIFT_SPEED = cfg.FW_LIFT_SPEED
    ROLL_HEADING_COUPLING = cfg.FW_ROLL_HEADING_COUPLING
    PITCH_THRUST_COUPLING = cfg.FW_PITCH_THRUST_COUPLING
    SIDESLIP_DAMPING = cfg.FW_SIDESLIP_DAMPING
    MAG_OFFSET = cfg.FW_MAG_DISTURBANCE
    APPLY_WIND = False

    def __init__(self, gauss, accel_bias, override_attitude=False):
        super().__init__(gauss, accel_bias, override_attitude)
        self.airspeed = np.zeros(3)     # forward, sideways, downward (body)

    def _update_rates(self, bus, armed):
        rate = bus.get(RateDesired)
        roll = finite_or_zero(bus.get(AttitudeActual).roll)
        self._lowpass_rates(armed, (rate.roll, rate.pitch, rate.yaw),
                            self.ACTUATOR_ALPHA)
        self.state.rates[2] += roll * self.ROLL_HEADING_COUPLING

    def _acceleration(self, bus, rot, thrust, wind):
        pitch = finite_or_zero(bus.get(AttitudeActual).pitch)
        vel = self.state.vel

        self.airspeed = rot @ (vel - wind)
        fwd, side, down = self.airspeed

        k = self.K_FRICTION
        forces = finite_vec([
            thrust - pitch * self.PITCH_THRUST_COUPLING - fwd * k,
            0.0 - side * k * self.SIDESLIP_DAMPING,
            cfg.GRAVITY * (fwd - self.LIFT_SPEED) + down * k * self.SIDESLIP_DAMPING,
        ])

        # Body force Z is lift-up positive, NED down positive
        ned_accel = forces[0] * rot[0, :] + forces[1] * rot[1, :] - forces[2] * rot[2, :]
        ned_accel[2] += cfg.GRAVITY
        ned_accel -= k * (vel - wind)
        return ned_accel

    def _publish_air_data(self, bus, now):
        self.sensors.publish_airspeed(bus, now, self.airspeed[0])
