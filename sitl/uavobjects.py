"""
Measurement Bus & Records
==========================
Flat, immutable record types exchanged between the simulator and the rest of
the flight stack, plus the bus that stores the latest snapshot of each.

A record is always replaced wholesale; readers never observe a half-written
value.  Before the first publish, ``get`` returns the zero-initialised
default of the record type.
"""

import enum
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple, Type, TypeVar

Vec3 = Tuple[float, float, float]

_ZERO3: Vec3 = (0.0, 0.0, 0.0)


# ═══════════════════════════════════════════════════════════════════════════════
#  Enumerations
# ═══════════════════════════════════════════════════════════════════════════════
class ArmedState(enum.Enum):
    DISARMED = 0
    ARMING = 1
    ARMED = 2


class AirframeType(enum.Enum):
    FIXED_WING = "FixedWing"
    FIXED_WING_ELEVON = "FixedWingElevon"
    FIXED_WING_VTAIL = "FixedWingVtail"
    VTOL = "VTOL"
    HELI_CP = "HeliCP"
    QUAD_X = "QuadX"
    QUAD_P = "QuadP"
    HEXA = "Hexa"
    HEXA_X = "HexaX"
    OCTO = "Octo"
    OCTO_V = "OctoV"
    TRI = "Tri"
    GROUND_VEHICLE = "GroundVehicleCar"
    CUSTOM = "Custom"


# ═══════════════════════════════════════════════════════════════════════════════
#  Input records (written by the flight stack / operator)
# ═══════════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class FlightStatus:
    armed: ArmedState = ArmedState.DISARMED


@dataclass(frozen=True)
class ActuatorDesired:
    """Normalised actuator command, throttle 0..1, roll/pitch/yaw -1..1."""
    throttle: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class RateDesired:
    """Desired body rates in deg/s."""
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class HomeLocation:
    latitude: int = 0           # deg * 1e7
    longitude: int = 0          # deg * 1e7
    altitude: float = 0.0       # m
    be: Vec3 = _ZERO3           # local magnetic field, NED


@dataclass(frozen=True)
class SystemSettings:
    airframe_type: AirframeType = AirframeType.QUAD_X


@dataclass(frozen=True)
class AttitudeActual:
    """Attitude as estimated by the flight stack (or overridden by the sim)."""
    q1: float = 1.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class GyrosBias:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class MagBias:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


# ═══════════════════════════════════════════════════════════════════════════════
#  Output records (written by the simulator)
# ═══════════════════════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class Accels:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    temperature: float = 0.0


@dataclass(frozen=True)
class Gyros:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class Magnetometer:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class BaroAltitude:
    altitude: float = 0.0


@dataclass(frozen=True)
class AirspeedSensor:
    sensor_connected: bool = False
    calibrated_airspeed: float = 0.0


@dataclass(frozen=True)
class GPSPosition:
    latitude: int = 0           # deg * 1e7
    longitude: int = 0          # deg * 1e7
    altitude: float = 0.0       # m
    groundspeed: float = 0.0    # m/s
    heading: float = 0.0        # deg
    satellites: int = 0
    pdop: float = 0.0


@dataclass(frozen=True)
class GPSVelocity:
    north: float = 0.0
    east: float = 0.0
    down: float = 0.0


@dataclass(frozen=True)
class AttitudeSimulated:
    """Ground truth of the simulated airframe."""
    q1: float = 1.0
    q2: float = 0.0
    q3: float = 0.0
    q4: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    position: Vec3 = _ZERO3
    velocity: Vec3 = _ZERO3


ALL_RECORDS = (
    FlightStatus, ActuatorDesired, RateDesired, HomeLocation, SystemSettings,
    AttitudeActual, GyrosBias, MagBias,
    Accels, Gyros, Magnetometer, BaroAltitude, AirspeedSensor,
    GPSPosition, GPSVelocity, AttitudeSimulated,
)


# ═══════════════════════════════════════════════════════════════════════════════
#  Bus
# ═══════════════════════════════════════════════════════════════════════════════
R = TypeVar("R")


class MeasurementBus:
    """
    Latest-value store keyed by record type.

    ``set`` replaces the whole record under a lock and then calls every
    subscriber of that type with the new record (outside the lock).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[type, object] = {}
        self._subscribers: Dict[type, List[Callable]] = {}

    def initialize(self, *record_types: Type) -> None:
        """Register zero defaults for the given types (all known types if none)."""
        with self._lock:
            for rtype in record_types or ALL_RECORDS:
                self._records.setdefault(rtype, rtype())

    def get(self, record_type: Type[R]) -> R:
        with self._lock:
            rec = self._records.get(record_type)
        return rec if rec is not None else record_type()

    def set(self, record) -> None:
        rtype = type(record)
        with self._lock:
            self._records[rtype] = record
            callbacks = list(self._subscribers.get(rtype, ()))
        for cb in callbacks:
            cb(record)

    def connect(self, record_type: Type, callback: Callable) -> None:
        """Call ``callback(record)`` after every ``set`` of ``record_type``."""
        with self._lock:
            self._subscribers.setdefault(record_type, []).append(callback)

    def disconnect(self, record_type: Type, callback: Callable) -> None:
        with self._lock:
            subs = self._subscribers.get(record_type, [])
            if callback in subs:
                subs.remove(callback)
