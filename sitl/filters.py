"""
State-Estimation Filter Plugins
================================
Contract for the filters the synthetic readings flow into.  A filter works
in place on a shared scratch ``FilterState``; ``updated`` says which
channels carry a fresh sample this cycle.  Status 0 means success.
"""

import abc
import enum
from dataclasses import dataclass, field
from typing import List

from sitl.uavobjects import (Accels, AirspeedSensor, AttitudeActual, BaroAltitude,
                             GPSVelocity, Gyros, Magnetometer, MeasurementBus)

# Simple IAS -> TAS approximation: +2 % per 1000 ft (304.8 m)
IAS2TAS_PER_M = 0.02 / 304.8


def ias2tas(altitude_m: float) -> float:
    return 1.0 + IAS2TAS_PER_M * altitude_m


class UpdatedFlags(enum.Flag):
    NONE = 0
    GYRO = enum.auto()
    ACCEL = enum.auto()
    MAG = enum.auto()
    BARO = enum.auto()
    AIR = enum.auto()
    POS = enum.auto()
    VEL = enum.auto()
    ATT = enum.auto()


def _vec3():
    return [0.0, 0.0, 0.0]


@dataclass
class FilterState:
    """Scratch record shared by all filters in a chain."""
    gyro: List[float] = field(default_factory=_vec3)
    accel: List[float] = field(default_factory=_vec3)
    mag: List[float] = field(default_factory=_vec3)
    baro: List[float] = field(default_factory=lambda: [0.0])
    airspeed: List[float] = field(default_factory=lambda: [0.0, 0.0])  # IAS, TAS
    pos: List[float] = field(default_factory=_vec3)
    vel: List[float] = field(default_factory=_vec3)
    attitude: List[float] = field(default_factory=lambda: [1.0, 0.0, 0.0, 0.0])
    updated: UpdatedFlags = UpdatedFlags.NONE

    def is_updated(self, channel: UpdatedFlags) -> bool:
        return bool(self.updated & channel)

    def mark_updated(self, channel: UpdatedFlags) -> None:
        self.updated |= channel

    def clear_updated(self) -> None:
        self.updated = UpdatedFlags.NONE

    @classmethod
    def from_bus(cls, bus: MeasurementBus,
                 updated: UpdatedFlags = UpdatedFlags.NONE) -> "FilterState":
        """
        Scratch state seeded from the latest sensor records: gyro, accel,
        mag, baro, indicated airspeed, GPS velocity, and the attitude
        quaternion from AttitudeActual.  ``pos`` stays at zero; the GPS fix
        is geodetic and converting it to NED is the position filter's job.
        """
        g, a, m = bus.get(Gyros), bus.get(Accels), bus.get(Magnetometer)
        v = bus.get(GPSVelocity)
        att = bus.get(AttitudeActual)
        return cls(
            gyro=[g.x, g.y, g.z],
            accel=[a.x, a.y, a.z],
            mag=[m.x, m.y, m.z],
            baro=[bus.get(BaroAltitude).altitude],
            airspeed=[bus.get(AirspeedSensor).calibrated_airspeed, 0.0],
            vel=[v.north, v.east, v.down],
            attitude=[att.q1, att.q2, att.q3, att.q4],
            updated=updated,
        )


class StateFilter(abc.ABC):

    def init(self) -> int:
        return 0

    @abc.abstractmethod
    def step(self, state: FilterState) -> int:
        ...


class AirspeedFilter(StateFilter):
    """True airspeed from indicated airspeed and the last baro altitude."""

    def __init__(self):
        self.altitude = 0.0

    def init(self) -> int:
        self.altitude = 0.0
        return 0

    def step(self, state: FilterState) -> int:
        if state.is_updated(UpdatedFlags.BARO):
            self.altitude = state.baro[0]
        if state.is_updated(UpdatedFlags.AIR):
            state.airspeed[1] = state.airspeed[0] * ias2tas(self.altitude)
        return 0


class FilterChain:
    """Runs filters in order; stops at the first non-zero status."""

    def __init__(self, filters):
        self.filters = list(filters)

    def init(self) -> int:
        for f in self.filters:
            status = f.init()
            if status != 0:
                return status
        return 0

    def step(self, state: FilterState) -> int:
        for f in self.filters:
            status = f.step(state)
            if status != 0:
                return status
        return 0
