"""Unit quaternion helpers on ``(w, x, y, z)`` numpy arrays."""

from __future__ import annotations

import math

import numpy as np

_EPS = 1e-9


def identity() -> np.ndarray:
    return np.array([1.0, 0.0, 0.0, 0.0])


def normalized(q: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(q))
    if norm < _EPS:
        return identity()
    return np.asarray(q, dtype=float) / norm


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    w1, x1, y1, z1 = a
    w2, x2, y2, z2 = b
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]])


def rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    p = np.concatenate(([0.0], np.asarray(v, dtype=float)))
    return multiply(multiply(q, p), conjugate(q))[1:]


def from_axis_angle(axis: np.ndarray, degrees: float) -> np.ndarray:
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)
    half = math.radians(degrees) / 2.0
    return np.concatenate(([math.cos(half)], axis * math.sin(half)))


def from_to_rotation(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Shortest rotation taking direction ``source`` onto direction ``target``."""
    u = np.asarray(source, dtype=float)
    v = np.asarray(target, dtype=float)
    nu, nv = np.linalg.norm(u), np.linalg.norm(v)
    if nu < _EPS or nv < _EPS:
        return identity()
    u, v = u / nu, v / nv
    d = float(np.clip(np.dot(u, v), -1.0, 1.0))
    if d > 1.0 - _EPS:
        return identity()
    if d < -1.0 + _EPS:
        # antiparallel: any axis orthogonal to u
        ortho = np.cross(u, [1.0, 0.0, 0.0])
        if np.linalg.norm(ortho) < 1e-6:
            ortho = np.cross(u, [0.0, 1.0, 0.0])
        return from_axis_angle(ortho, 180.0)
    return normalized(np.concatenate(([1.0 + d], np.cross(u, v))))


def angle_between(a: np.ndarray, b: np.ndarray) -> float:
    """Angle in degrees between two orientations."""
    d = min(1.0, abs(float(np.dot(normalized(a), normalized(b)))))
    return math.degrees(2.0 * math.acos(d))


def slerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    a, b = normalized(a), normalized(b)
    d = float(np.dot(a, b))
    if d < 0.0:
        b, d = -b, -d
    if d > 1.0 - 1e-6:
        return normalized(a + t * (b - a))
    theta = math.acos(d)
    sin_theta = math.sin(theta)
    return (math.sin((1.0 - t) * theta) * a + math.sin(t * theta) * b) / sin_theta


def rotate_towards(current: np.ndarray, target: np.ndarray, max_degrees: float) -> np.ndarray:
    """Step ``current`` toward ``target`` by at most ``max_degrees``."""
    angle = angle_between(current, target)
    if angle < 1e-6 or max_degrees >= angle:
        return normalized(target)
    if max_degrees <= 0.0:
        return normalized(current)
    return slerp(current, target, max_degrees / angle)
