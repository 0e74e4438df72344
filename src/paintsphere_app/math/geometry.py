"""Angle helpers for yaw/pitch coordinates on the capture sphere.

Yaw is a heading in degrees that wraps into ``[0, 360)``; pitch is an
elevation in degrees clamped to ``[-90, 90]`` and never wraps.
"""
from __future__ import annotations

import math
from typing import Tuple

import numpy as np

FULL_TURN_DEG = 360.0


def wrap_yaw(yaw_deg: float) -> float:
    """Wrap a heading into ``[0, 360)``."""
    wrapped = math.fmod(yaw_deg, FULL_TURN_DEG)
    if wrapped < 0.0:
        wrapped += FULL_TURN_DEG
    # fmod of tiny negatives can round back up to a full turn
    return 0.0 if wrapped >= FULL_TURN_DEG else wrapped


def clamp_pitch(pitch_deg: float) -> float:
    """Clamp an elevation into ``[-90, 90]``."""
    return max(-90.0, min(90.0, pitch_deg))


def angle_delta(from_deg: float, to_deg: float) -> float:
    """Shortest signed rotation from ``from_deg`` to ``to_deg``, in ``[-180, 180)``."""
    return ((to_deg - from_deg) % FULL_TURN_DEG + 540.0) % FULL_TURN_DEG - 180.0


def angle_delta_array(from_deg: float, to_deg: np.ndarray) -> np.ndarray:
    """Vectorised :func:`angle_delta` against an array of headings."""
    return np.mod(np.mod(to_deg - from_deg, FULL_TURN_DEG) + 540.0, FULL_TURN_DEG) - 180.0


def angular_distance(
    yaw_a: float,
    pitch_a: float,
    yaw_b: float,
    pitch_b: float,
) -> float:
    """Planar distance in degrees between two yaw/pitch directions.

    This is the metric used for guide selection: the yaw difference follows
    the shortest rotation and is not scaled by ``cos(pitch)``.
    """
    d_yaw = angle_delta(yaw_a, yaw_b)
    d_pitch = pitch_b - pitch_a
    return math.hypot(d_yaw, d_pitch)


def project_to_screen(
    yaw_deg: float,
    pitch_deg: float,
    view_yaw_deg: float,
    view_pitch_deg: float,
    screen_size: Tuple[int, int],
    h_fov_deg: float,
    v_fov_deg: float,
) -> Tuple[float, float]:
    """Project a direction into screen pixels relative to the current view.

    The projection is linear in angle: the screen width spans ``h_fov_deg``
    and the height spans ``v_fov_deg``, with the view direction at the
    centre and pitch increasing upwards.
    """
    width, height = screen_size
    d_yaw = angle_delta(view_yaw_deg, yaw_deg)
    d_pitch = pitch_deg - view_pitch_deg
    x = width / 2.0 + (d_yaw / h_fov_deg) * width
    y = height / 2.0 - (d_pitch / v_fov_deg) * height
    return x, y


def angles_to_pixel(yaw_deg: float, pitch_deg: float, width: int, height: int) -> Tuple[int, int]:
    """Map yaw/pitch to equirectangular pixel indices (clamped to the image)."""
    u_norm = wrap_yaw(yaw_deg) / FULL_TURN_DEG
    v_norm = (90.0 - clamp_pitch(pitch_deg)) / 180.0
    u = int(np.clip(u_norm * width, 0, width - 1))
    v = int(np.clip(v_norm * height, 0, height - 1))
    return u, v
