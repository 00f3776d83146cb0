"""
Sensor Emulation from Simulated Truth
======================================
Turns the truth state of an airframe model into published sensor records,
each channel with its own noise, bias and publication period.

Coordinate frames
-----------------
NED world:   X-north, Y-east, Z-down
Body:        X-fwd,   Y-right, Z-down

R = quat_to_rotation_matrix(q) maps NED -> body (v_body = R @ v_ned).
"""

import math

import numpy as np

from sitl import config as cfg
from sitl.attitude import quat_to_euler
from sitl.magbias import MagBiasEstimator
from sitl.noise import DriftProcess, RandomGaussian
from sitl.uavobjects import (Accels, AirspeedSensor, AttitudeSimulated,
                             BaroAltitude, GPSPosition, GPSVelocity, Gyros,
                             GyrosBias, HomeLocation, MeasurementBus)


class RateGate:
    """
    Publication gate for one channel.

    ``poll(now)`` is True at most once per ``period``; elapsed time is
    measured from the last accepted publish on the caller's monotonic clock.
    The first publish is allowed once ``now >= delay``.
    """

    __slots__ = ("period", "delay", "last")

    def __init__(self, period: float, delay: float = 0.0):
        self.period = period
        self.delay = delay
        self.last = None

    def poll(self, now: float) -> bool:
        if self.last is None:
            due = now >= self.delay
        else:
            due = (now - self.last) > self.period
        if due:
            self.last = now
        return due


def make_accel_bias(gauss: RandomGaussian) -> np.ndarray:
    """Per-process accelerometer bias, N(0,1)/10 per axis."""
    return gauss.vec3() / cfg.ACCEL_BIAS_NOISE_DIV


class SensorEmulator:
    """Channel synthesis for one airframe model (owns that model's drift state)."""

    def __init__(self, gauss: RandomGaussian, accel_bias,
                 mag_estimator: MagBiasEstimator | None = None):
        self.gauss = gauss
        self.accel_bias = np.asarray(accel_bias, dtype=float)
        self.mag_estimator = mag_estimator or MagBiasEstimator()

        self.gps_drift = DriftProcess(cfg.GPS_DRIFT_DECAY,
                                      cfg.GPS_DRIFT_NOISE_DIV, gauss)
        self.gps_vel_drift = DriftProcess(cfg.GPS_VEL_DRIFT_DECAY,
                                          cfg.GPS_VEL_DRIFT_NOISE_DIV, gauss)
        self.baro_offset = None

        self.baro_gate = RateGate(cfg.BARO_PERIOD_S)
        self.airspeed_gate = RateGate(cfg.AIRSPEED_PERIOD_S)
        self.gps_gate = RateGate(cfg.GPS_PERIOD_S)
        self.gps_vel_gate = RateGate(cfg.GPS_VEL_PERIOD_S, delay=cfg.GPS_VEL_DELAY_S)
        self.mag_gate = RateGate(cfg.MAG_PERIOD_S)

    # ──────────────────────────────────────────────────────────────────────
    #  IMU  (every tick)
    # ──────────────────────────────────────────────────────────────────────
    def publish_gyros(self, bus: MeasurementBus, rates_dps) -> Gyros:
        """Filtered body rate + unit Gaussian noise + compensation bias (deg/s)."""
        bias = bus.get(GyrosBias)
        gyros = Gyros(
            x=float(rates_dps[0]) + self.gauss() + bias.x,
            y=float(rates_dps[1]) + self.gauss() + bias.y,
            z=float(rates_dps[2]) + self.gauss() + bias.z,
        )
        bus.set(gyros)
        return gyros

    def publish_accels(self, bus: MeasurementBus, rot: np.ndarray,
                       ned_accel) -> Accels:
        """
        Specific force in body frame.

        ``ned_accel`` is the coordinate acceleration after ground contact;
        removing gravity from the down axis gives what the sensor feels.
        """
        specific = np.array(ned_accel, dtype=float)
        specific[2] -= cfg.GRAVITY
        body = rot @ specific + self.accel_bias
        accels = Accels(x=float(body[0]), y=float(body[1]), z=float(body[2]),
                        temperature=cfg.ACCEL_TEMPERATURE_C)
        bus.set(accels)
        return accels

    # ──────────────────────────────────────────────────────────────────────
    #  Barometer / airspeed  (20 Hz)
    # ──────────────────────────────────────────────────────────────────────
    def step_baro_offset(self) -> float:
        if self.baro_offset is None:
            self.baro_offset = cfg.BARO_OFFSET_INIT_M
        else:
            self.baro_offset += self.gauss() / cfg.BARO_DRIFT_NOISE_DIV
        return self.baro_offset

    def publish_baro(self, bus: MeasurementBus, now: float, pos) -> bool:
        if not self.baro_gate.poll(now):
            return False
        bus.set(BaroAltitude(altitude=float(-pos[2] + self.baro_offset)))
        return True

    def publish_airspeed(self, bus: MeasurementBus, now: float,
                         forward_airspeed: float) -> bool:
        if not self.airspeed_gate.poll(now):
            return False
        bus.set(AirspeedSensor(sensor_connected=True,
                               calibrated_airspeed=float(forward_airspeed)))
        return True

    # ──────────────────────────────────────────────────────────────────────
    #  GPS  (10 Hz)
    # ──────────────────────────────────────────────────────────────────────
    def publish_gps(self, bus: MeasurementBus, now: float, pos, vel) -> bool:
        """
        Flat-earth projection of the drifting position around HomeLocation.
        Ground speed and heading use the drifting velocity.
        """
        if not self.gps_gate.poll(now):
            return False

        home = bus.get(HomeLocation)
        drift = self.gps_drift.step()
        vdrift = self.gps_vel_drift.value

        # Metres per degree of latitude / longitude at home
        r = home.altitude + cfg.EARTH_RADIUS_M
        m_per_deg_lat = r * math.pi / 180.0
        m_per_deg_lon = math.cos(math.radians(home.latitude / cfg.LATLON_SCALE)) * m_per_deg_lat

        vn = vel[0] + vdrift[0]
        ve = vel[1] + vdrift[1]

        bus.set(GPSPosition(
            latitude=int(round(home.latitude
                               + (pos[0] + drift[0]) / m_per_deg_lat * cfg.LATLON_SCALE)),
            longitude=int(round(home.longitude
                                + (pos[1] + drift[1]) / m_per_deg_lon * cfg.LATLON_SCALE)),
            altitude=float(home.altitude - (pos[2] + drift[2])),
            groundspeed=math.hypot(vn, ve),
            heading=math.degrees(math.atan2(ve, vn)),
            satellites=cfg.GPS_SATELLITES,
            pdop=cfg.GPS_PDOP,
        ))
        return True

    def publish_gps_velocity(self, bus: MeasurementBus, now: float, vel) -> bool:
        if not self.gps_vel_gate.poll(now):
            return False
        v = np.asarray(vel, dtype=float) + self.gps_vel_drift.value
        bus.set(GPSVelocity(north=float(v[0]), east=float(v[1]), down=float(v[2])))
        return True

    # ──────────────────────────────────────────────────────────────────────
    #  Magnetometer  (75 Hz)
    # ──────────────────────────────────────────────────────────────────────
    def publish_mag(self, bus: MeasurementBus, now: float, rot: np.ndarray,
                    offset: float = 0.0) -> bool:
        """Home field rotated into body frame (+ hard-iron offset), then bias-nulled."""
        if not self.mag_gate.poll(now):
            return False
        home = bus.get(HomeLocation)
        raw = rot @ np.asarray(home.be, dtype=float) + offset
        bus.set(self.mag_estimator.apply(bus, raw))
        return True

    # ──────────────────────────────────────────────────────────────────────
    #  Truth  (every tick)
    # ──────────────────────────────────────────────────────────────────────
    @staticmethod
    def publish_truth(bus: MeasurementBus, q, pos, vel) -> AttitudeSimulated:
        roll, pitch, yaw = quat_to_euler(q)
        truth = AttitudeSimulated(
            q1=float(q[0]), q2=float(q[1]), q3=float(q[2]), q4=float(q[3]),
            roll=roll, pitch=pitch, yaw=yaw,
            position=(float(pos[0]), float(pos[1]), float(pos[2])),
            velocity=(float(vel[0]), float(vel[1]), float(vel[2])),
        )
        bus.set(truth)
        return truth
