#!/usr/bin/env python3
"""
SITL Sensor Bridge
===================
Runs the synthetic sensor simulator and forwards its output to a flight
stack under test over MAVLink.

Data-flow summary
-----------------
  Scheduler ──(model step)──▶  MeasurementBus  ──(record sets)──▶  MAVLinkSensorSink
  MAVLinkSensorSink  ──(HIL_SENSOR / HIL_GPS / HEARTBEAT)──▶  Flight stack

Usage
-----
  Bench run, multirotor hovering on the ground, no MAVLink:
      sitl-sim --airframe QuadX --arm --throttle 0.5 --duration 10 --fast

  Real-time fixed-wing feeding a flight stack on UDP 14560:
      sitl-sim --airframe FixedWing --mavlink udpout:127.0.0.1:14560
"""

import argparse
import math
import time

import numpy as np
from pymavlink import mavutil
from pymavlink.dialects.v20 import common as mavlink2

from sitl import config as cfg
from sitl.models import SimMode
from sitl.scheduler import SimulationScheduler
from sitl.uavobjects import (Accels, ActuatorDesired, AirframeType,
                             AirspeedSensor, ArmedState, BaroAltitude,
                             FlightStatus, GPSPosition, GPSVelocity, Gyros,
                             HomeLocation, Magnetometer, MeasurementBus,
                             SystemSettings)


# HIL_SENSOR.fields_updated bits
ACCEL_BITS      = 0b0000000000111
GYRO_BITS       = 0b0000000111000
MAG_BITS        = 0b0000111000000
ABS_PRESS_BIT   = 0b0001000000000
DIFF_PRESS_BIT  = 0b0010000000000
PRESS_ALT_BIT   = 0b0100000000000
TEMP_BIT        = 0b1000000000000

GPS_FIX_TYPE_NO_FIX = 1
GPS_FIX_TYPE_3D = 3


def altitude_to_pressure_hpa(alt_m: float) -> float:
    """ISA barometric formula (troposphere)."""
    return cfg.SEA_LEVEL_PRESSURE_HPA * (1.0 - 2.25577e-5 * alt_m) ** 5.25588


def airspeed_to_diff_pressure_hpa(airspeed: float) -> float:
    return 0.5 * cfg.AIR_DENSITY_KG_M3 * airspeed * airspeed / 100.0


def _clip_int(x: float, lo: int, hi: int) -> int:
    if not math.isfinite(x):
        return 0
    return int(np.clip(round(x), lo, hi))


# ═══════════════════════════════════════════════════════════════════════════════
#  MAVLink Sensor Sink
# ═══════════════════════════════════════════════════════════════════════════════
class MAVLinkSensorSink:
    """
    Subscribes to the sensor records on the bus and emits MAVLink:
      1. HIL_SENSOR on every accelerometer publish (latest gyro/mag/baro/air)
      2. HIL_GPS    on the first GPS velocity publish after each position fix
      3. HEARTBEAT  at 1 Hz
    """

    def __init__(self, bus: MeasurementBus, mav, clock=time.perf_counter):
        self.bus = bus
        self.mav = mav
        self.clock = clock
        self._t0 = clock()
        self._last_heartbeat = None
        self._dirty = 0
        self._pending_fix = None

        self.sent = {"HIL_SENSOR": 0, "HIL_GPS": 0, "HEARTBEAT": 0}
        self.send_errors = 0

    def attach(self) -> None:
        self.bus.connect(Gyros, self._on_gyros)
        self.bus.connect(Magnetometer, self._on_mag)
        self.bus.connect(BaroAltitude, self._on_baro)
        self.bus.connect(AirspeedSensor, self._on_airspeed)
        self.bus.connect(Accels, self._on_accels)
        self.bus.connect(GPSPosition, self._on_gps)
        self.bus.connect(GPSVelocity, self._on_gps_velocity)

    def detach(self) -> None:
        self.bus.disconnect(Gyros, self._on_gyros)
        self.bus.disconnect(Magnetometer, self._on_mag)
        self.bus.disconnect(BaroAltitude, self._on_baro)
        self.bus.disconnect(AirspeedSensor, self._on_airspeed)
        self.bus.disconnect(Accels, self._on_accels)
        self.bus.disconnect(GPSPosition, self._on_gps)
        self.bus.disconnect(GPSVelocity, self._on_gps_velocity)

    def _time_usec(self) -> int:
        return int((self.clock() - self._t0) * 1e6)

    def _send(self, name: str, fn, *args) -> None:
        try:
            fn(*args)
            self.sent[name] += 1
        except OSError:
            self.send_errors += 1

    # ──────────────────────────────────────────────────────────────────────
    #  Bus callbacks
    # ──────────────────────────────────────────────────────────────────────
    def _on_gyros(self, rec):
        self._dirty |= GYRO_BITS

    def _on_mag(self, rec):
        self._dirty |= MAG_BITS

    def _on_baro(self, rec):
        self._dirty |= ABS_PRESS_BIT | PRESS_ALT_BIT

    def _on_airspeed(self, rec):
        self._dirty |= DIFF_PRESS_BIT

    def _on_accels(self, acc: Accels):
        self.send_hil_sensor(acc)
        self.maybe_heartbeat()

    def _on_gps(self, gps: GPSPosition):
        # Held until the velocity sample of the same fix arrives
        self._pending_fix = gps

    def _on_gps_velocity(self, vel: GPSVelocity):
        gps, self._pending_fix = self._pending_fix, None
        if gps is not None:
            self.send_hil_gps(gps, vel)

    # ──────────────────────────────────────────────────────────────────────
    #  Senders
    # ──────────────────────────────────────────────────────────────────────
    def send_hil_sensor(self, acc: Accels) -> None:
        """HIL_SENSOR (msg 107): accel m/s², gyro rad/s, mag gauss, pressure hPa."""
        gyr = self.bus.get(Gyros)
        mag = self.bus.get(Magnetometer)
        alt = self.bus.get(BaroAltitude).altitude
        air = self.bus.get(AirspeedSensor)

        fields = self._dirty | ACCEL_BITS | TEMP_BIT
        self._dirty = 0

        self._send(
            "HIL_SENSOR", self.mav.hil_sensor_send,
            self._time_usec(),
            acc.x, acc.y, acc.z,
            gyr.x * cfg.DEG_TO_RAD, gyr.y * cfg.DEG_TO_RAD, gyr.z * cfg.DEG_TO_RAD,
            mag.x * cfg.NT_TO_GAUSS, mag.y * cfg.NT_TO_GAUSS, mag.z * cfg.NT_TO_GAUSS,
            altitude_to_pressure_hpa(alt),
            airspeed_to_diff_pressure_hpa(air.calibrated_airspeed),
            alt,
            acc.temperature,
            fields,
        )

    def send_hil_gps(self, gps: GPSPosition,
                     vel: GPSVelocity | None = None) -> None:
        """
        HIL_GPS (msg 113): degE7 lat/lon, mm altitude, cm/s velocities.
        No satellites reports NO_FIX.
        """
        if vel is None:
            vel = self.bus.get(GPSVelocity)
        cog = gps.heading % 360.0
        fix_type = GPS_FIX_TYPE_3D if gps.satellites > 0 else GPS_FIX_TYPE_NO_FIX

        self._send(
            "HIL_GPS", self.mav.hil_gps_send,
            self._time_usec(),
            fix_type,
            _clip_int(gps.latitude, -2**31, 2**31 - 1),
            _clip_int(gps.longitude, -2**31, 2**31 - 1),
            _clip_int(gps.altitude * 1000.0, -2**31, 2**31 - 1),
            _clip_int(gps.pdop * 100.0, 0, 65535),    # eph
            65535,                                    # epv unknown
            _clip_int(gps.groundspeed * 100.0, 0, 65535),
            _clip_int(vel.north * 100.0, -32768, 32767),
            _clip_int(vel.east * 100.0, -32768, 32767),
            _clip_int(vel.down * 100.0, -32768, 32767),
            _clip_int(cog * 100.0, 0, 35999),
            gps.satellites,
        )

    def maybe_heartbeat(self) -> None:
        now = self.clock()
        if self._last_heartbeat is not None and \
                now - self._last_heartbeat < cfg.HEARTBEAT_INTERVAL_S:
            return
        self._last_heartbeat = now
        self._send(
            "HEARTBEAT", self.mav.heartbeat_send,
            mavlink2.MAV_TYPE_ONBOARD_CONTROLLER,
            mavlink2.MAV_AUTOPILOT_INVALID,
            0, 0, 0,
        )


# ═══════════════════════════════════════════════════════════════════════════════
#  Main
# ═══════════════════════════════════════════════════════════════════════════════
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SITL synthetic sensor simulator")
    parser.add_argument("--airframe", type=str, default=AirframeType.QUAD_X.value,
                        choices=[a.value for a in AirframeType],
                        help="Airframe type (selects the simulation model)")
    parser.add_argument("--mode", type=str, default=None,
                        choices=[m.value for m in SimMode],
                        help="Force a simulation mode regardless of airframe")
    parser.add_argument("--duration", type=float, default=None,
                        help="Simulated seconds to run (default: forever)")
    parser.add_argument("--fast", action="store_true",
                        help="Run as fast as possible on a simulated clock")
    parser.add_argument("--seed", type=int, default=None,
                        help="Noise seed for a reproducible run")
    parser.add_argument("--mavlink", type=str, nargs="?", default=None,
                        const=cfg.SIM_MAVLINK_URI,
                        help=f"Send HIL_SENSOR/HIL_GPS to URI (default {cfg.SIM_MAVLINK_URI})")
    parser.add_argument("--override-attitude", action="store_true",
                        help="Write simulated attitude into AttitudeActual")
    parser.add_argument("--arm", action="store_true",
                        help="Arm the airframe at start-up")
    parser.add_argument("--throttle", type=float, default=0.0,
                        help="Fixed throttle command 0..1 for bench runs")
    parser.add_argument("--home-lat", type=float, default=cfg.HOME_LAT_E7 / cfg.LATLON_SCALE,
                        help="Home latitude (deg)")
    parser.add_argument("--home-lon", type=float, default=cfg.HOME_LON_E7 / cfg.LATLON_SCALE,
                        help="Home longitude (deg)")
    parser.add_argument("--home-alt", type=float, default=cfg.HOME_ALT_M,
                        help="Home altitude (m)")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    bus = MeasurementBus()
    sched = SimulationScheduler(
        bus,
        seed=args.seed,
        mode=SimMode(args.mode) if args.mode else None,
        override_attitude=args.override_attitude,
    )

    bus.set(HomeLocation(
        latitude=int(round(args.home_lat * cfg.LATLON_SCALE)),
        longitude=int(round(args.home_lon * cfg.LATLON_SCALE)),
        altitude=args.home_alt,
        be=cfg.HOME_BE,
    ))
    bus.set(SystemSettings(airframe_type=AirframeType(args.airframe)))
    bus.set(FlightStatus(armed=ArmedState.ARMED if args.arm else ArmedState.DISARMED))
    bus.set(ActuatorDesired(throttle=args.throttle))

    print(f"[Bridge] Airframe = {args.airframe}  mode = {sched.select_mode().value}")
    print(f"[Bridge] Home = ({args.home_lat:.7f}, {args.home_lon:.7f}, {args.home_alt:.1f} m)")

    conn = None
    if args.mavlink:
        conn = mavutil.mavlink_connection(
            args.mavlink,
            source_system=cfg.SIM_SYSID,
            source_component=cfg.SIM_COMPID,
            dialect="common",
        )
        sink = MAVLinkSensorSink(bus, conn.mav)
        sink.attach()
        print(f"[Bridge] MAVLink sensor output → {args.mavlink}")

    try:
        sched.run(duration=args.duration, realtime=not args.fast)
    finally:
        if conn is not None:
            conn.close()
        print("[Bridge] Done.")


if __name__ == "__main__":
    main()
