"""
Attitude Kinematics
====================
Quaternion propagation and conversions shared by both airframe models.

Quaternion layout:  q = [q0, q1, q2, q3] = [w, x, y, z]

Rotation matrix convention
--------------------------
``quat_to_rotation_matrix`` returns R whose rows are the body axes expressed
in NED:

    v_body = R @ v_ned
    v_ned  = R.T @ v_body
"""

import math

import numpy as np

from sitl import config as cfg

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])


def normalize(q: np.ndarray) -> np.ndarray:
    qmag = math.sqrt(float(q @ q))
    if qmag == 0.0 or not math.isfinite(qmag):
        return IDENTITY_QUAT.copy()
    return q / qmag


def integrate(q: np.ndarray, rates_dps, dt: float) -> np.ndarray:
    """
    Advance ``q`` by one Euler step of the body rates (deg/s) and renormalise.

    qdot = 0.5 * q ⊗ [0, p, q, r]
    """
    p, qr, r = (float(w) * cfg.DEG_TO_RAD for w in rates_dps)
    q0, q1, q2, q3 = q
    qdot = 0.5 * dt * np.array([
        -q1 * p - q2 * qr - q3 * r,
        q0 * p - q3 * qr + q2 * r,
        q3 * p + q0 * qr - q1 * r,
        -q2 * p + q1 * qr + q0 * r,
    ])
    return normalize(q + qdot)


def quat_to_rotation_matrix(q) -> np.ndarray:
    """3x3 direction cosine matrix (NED -> body, see module docstring)."""
    q0, q1, q2, q3 = (float(v) for v in q)
    q0s, q1s, q2s, q3s = q0 * q0, q1 * q1, q2 * q2, q3 * q3
    return np.array([
        [q0s + q1s - q2s - q3s, 2 * (q1 * q2 + q0 * q3), 2 * (q1 * q3 - q0 * q2)],
        [2 * (q1 * q2 - q0 * q3), q0s - q1s + q2s - q3s, 2 * (q2 * q3 + q0 * q1)],
        [2 * (q1 * q3 + q0 * q2), 2 * (q2 * q3 - q0 * q1), q0s - q1s - q2s + q3s],
    ])


def quat_to_euler(q) -> tuple:
    """
    Return (roll, pitch, yaw) in degrees, ZYX aerospace sequence.
    roll  = rotation about body-X  (right-wing-down positive)
    pitch = rotation about body-Y  (nose-up positive)
    yaw   = rotation about body-Z  (clockwise-from-above positive)
    """
    q0, q1, q2, q3 = (float(v) for v in q)
    r11 = q0 * q0 + q1 * q1 - q2 * q2 - q3 * q3
    r12 = 2 * (q1 * q2 + q0 * q3)
    r13 = 2 * (q1 * q3 - q0 * q2)
    r23 = 2 * (q2 * q3 + q0 * q1)
    r33 = q0 * q0 - q1 * q1 - q2 * q2 + q3 * q3

    pitch = math.degrees(math.asin(max(-1.0, min(1.0, -r13))))
    yaw = math.degrees(math.atan2(r12, r11))
    roll = math.degrees(math.atan2(r23, r33))
    return roll, pitch, yaw
