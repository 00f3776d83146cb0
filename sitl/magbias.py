"""
Magnetometer Hard-Iron Bias Nulling
====================================
Online bias estimator from "Magnetometer Offset Cancellation: Theory and
Implementation, revisited" (W. Premerlani, 2011), in the variant that pulls
the earth-frame reading toward the home-location field.

The same code path runs on real and synthetic magnetometer samples; the
current estimate lives in the ``MagBias`` record.
"""

import math

import numpy as np

from sitl import config as cfg
from sitl.attitude import quat_to_rotation_matrix
from sitl.uavobjects import (AttitudeActual, HomeLocation, MagBias,
                             Magnetometer, MeasurementBus)


class MagBiasEstimator:

    def __init__(self, rate: float = cfg.MAG_BIAS_RATE,
                 xy_eps: float = cfg.MAG_XY_NORM_EPS):
        self.rate = rate
        self.xy_eps = xy_eps

    def update(self, mag, bias, be, q, yaw_deg: float):
        """
        One nulling step.

        Parameters
        ----------
        mag     : raw reading (3,), body frame
        bias    : current bias estimate (3,)
        be      : home magnetic field (3,), NED
        q       : attitude quaternion used to rotate the reading to NED
        yaw_deg : heading used to align the horizontal plane

        Returns
        -------
        corrected : mag - bias (3,)
        new_bias  : updated bias estimate (3,)
        """
        mag = np.asarray(mag, dtype=float)
        bias = np.asarray(bias, dtype=float)
        corrected = mag - bias

        r_xy = math.hypot(be[0], be[1])
        r_z = float(be[2])

        # Body -> NED, then undo heading
        b_e = quat_to_rotation_matrix(q).T @ corrected
        cy = math.cos(math.radians(yaw_deg))
        sy = math.sin(math.radians(yaw_deg))
        xy = np.array([cy * b_e[0] + sy * b_e[1],
                       -sy * b_e[0] + cy * b_e[1]])
        xy_norm = math.hypot(xy[0], xy[1])

        delta = np.zeros(3)
        if xy_norm >= self.xy_eps:
            delta[0:2] = -self.rate * (xy / xy_norm * r_xy - xy)
        delta[2] = -self.rate * (r_z - b_e[2])

        return corrected, bias + delta

    def apply(self, bus: MeasurementBus, mag) -> Magnetometer:
        """Correct ``mag`` with the bus bias, store the new bias, return the record."""
        home = bus.get(HomeLocation)
        att = bus.get(AttitudeActual)
        mb = bus.get(MagBias)

        corrected, new_bias = self.update(
            mag,
            (mb.x, mb.y, mb.z),
            home.be,
            (att.q1, att.q2, att.q3, att.q4),
            att.yaw,
        )
        bus.set(MagBias(x=float(new_bias[0]), y=float(new_bias[1]),
                        z=float(new_bias[2])))
        return Magnetometer(x=float(corrected[0]), y=float(corrected[1]),
                            z=float(corrected[2]))
