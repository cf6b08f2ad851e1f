"""
Vector and quaternion helpers for the plane geometry.

Quaternions are stored as numpy arrays in the order [qw, qx, qy, qz].
Rotations act on column vectors (v' = R @ v).

Euler angles follow the ZYX convention used throughout the package:
    R = R3(yaw) @ R2(pitch) @ R1(roll)
"""

import numpy as np
from scipy.spatial.transform import Rotation as R_scipy

c = np.cos
s = np.sin

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])

# |sin(pitch)| above 1 - GIMBAL_LOCK_TOL is treated as gimbal lock
GIMBAL_LOCK_TOL = 1e-10


def normalize(v):
    """
    Unit vector in the direction of v. Zero vectors are returned unchanged.
    """
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v)
    if n == 0:
        return v
    return v / n


def R1(r):
    """
    Rotation matrix around the x-axis, r in radians
    """
    return np.array([[1,    0,    0],
                     [0, c(r), -s(r)],
                     [0, s(r), c(r)]])


def R2(p):
    """
    Rotation matrix around the y-axis, p in radians
    """
    return np.array([[c(p), 0, s(p)],
                     [   0, 1,    0],
                     [-s(p), 0, c(p)]])


def R3(y):
    """
    Rotation matrix around the z-axis, y in radians
    """
    return np.array([[c(y), -s(y), 0],
                     [s(y), c(y), 0],
                     [   0,    0, 1]])


def quat_multiply(q1, q2):
    """
    Hamilton product q1 * q2 (apply q2 first, then q1).
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return np.array([
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
    ])


def quat_conjugate(q):
    w, x, y, z = q
    return np.array([w, -x, -y, -z])


def quat_from_axis_angle(axis, angle):
    """
    Quaternion rotating by angle (radians) about axis (right-hand rule).
    """
    axis = normalize(axis)
    half = angle / 2.0
    return np.concatenate([[c(half)], s(half) * axis])


def quat_from_two_vectors(a, b, fallback_axis=None):
    """
    Shortest-arc quaternion rotating direction a onto direction b.

    For anti-parallel inputs the rotation is ambiguous; rotate by pi about
    fallback_axis when given, otherwise about any axis orthogonal to a.
    """
    a = normalize(a)
    b = normalize(b)
    d = float(np.clip(np.dot(a, b), -1.0, 1.0))

    if d < -1.0 + 1e-6:
        if fallback_axis is not None:
            axis = normalize(fallback_axis)
        else:
            axis = np.cross(a, [1.0, 0.0, 0.0])
            if np.linalg.norm(axis) < 1e-6:
                axis = np.cross(a, [0.0, 1.0, 0.0])
        return quat_from_axis_angle(axis, np.pi)

    q = np.concatenate([[1.0 + d], np.cross(a, b)])
    return q / np.linalg.norm(q)


def quat2dcm(q):
    """
    Convert a quaternion into a dcm matrix.

    Parameters:
    q : ndarray shape (4,)
        Quaternion in the form [w, x, y, z]

    Returns:
    ndarray shape (3, 3)
        Rotation matrix
    """
    w, x, y, z = normalize(q)
    return np.array([
        [w*w + x*x - y*y - z*z,     2*(x*y - w*z),         2*(x*z + w*y)],
        [2*(x*y + w*z),             w*w - x*x + y*y - z*z, 2*(y*z - w*x)],
        [2*(x*z - w*y),             2*(y*z + w*x),         w*w - x*x - y*y + z*z]
    ])


def dcm2quat(R):
    """
    Convert rotation matrix to quaternion representation [qw, qx, qy, qz].
    """
    quat = R_scipy.from_matrix(R).as_quat()  # Returns [qx, qy, qz, qw]
    return np.array([quat[3], quat[0], quat[1], quat[2]])


def quat_rotate(q, v):
    """
    Rotate vector v by quaternion q.
    """
    return quat2dcm(q) @ np.asarray(v, dtype=np.float64)


def euler_to_quat(roll, pitch, yaw, degrees=True):
    """
    Quaternion for R3(yaw) @ R2(pitch) @ R1(roll).
    """
    if degrees:
        roll, pitch, yaw = np.deg2rad([roll, pitch, yaw])
    return dcm2quat(R3(yaw) @ R2(pitch) @ R1(roll))


def quat_to_euler(q, degrees=True):
    """
    Extract (roll, pitch, yaw) from a quaternion, ZYX convention.

    At gimbal lock (|sin(pitch)| ~ 1) only the sum or difference of roll and
    yaw is defined; pitch is clamped to +/-90 degrees, yaw is set to zero and
    the combined rotation is returned as roll.
    """
    w, x, y, z = normalize(q)

    sinp = 2 * (w * y - z * x)
    if abs(sinp) >= 1 - GIMBAL_LOCK_TOL:
        pitch = np.copysign(np.pi / 2, sinp)
        roll = 2 * np.arctan2(x, w)
        roll = np.arctan2(np.sin(roll), np.cos(roll))
        yaw = 0.0
    else:
        pitch = np.arcsin(sinp)
        roll = np.arctan2(2 * (w * x + y * z), 1 - 2 * (x * x + y * y))
        yaw = np.arctan2(2 * (w * z + x * y), 1 - 2 * (y * y + z * z))

    angles = np.array([roll, pitch, yaw])
    if degrees:
        return np.rad2deg(angles)
    return angles


def transform_axis(T, index):
    """
    Normalized axis `index` (0=X, 1=Y, 2=Z) from the rotation block of a 4x4 transform.
    """
    return normalize(np.asarray(T, dtype=np.float64)[:3, index])


def transform_position(T):
    """Translation column of a 4x4 transform."""
    return np.asarray(T, dtype=np.float64)[:3, 3].copy()


def transform_to_quat(T):
    """Orientation of a 4x4 transform as a quaternion."""
    R = np.asarray(T, dtype=np.float64)[:3, :3]
    # Strip any scale in the axes before handing to scipy.
    R = R / np.linalg.norm(R, axis=0, keepdims=True)
    return dcm2quat(R)
