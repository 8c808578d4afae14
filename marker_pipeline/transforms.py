"""Frame geometry: SE(3) matrices, quaternions (x, y, z, w) and the normal alignment."""

from typing import Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

UNIT_Z = np.array([0.0, 0.0, 1.0])
IDENTITY_QUAT = np.array([0.0, 0.0, 0.0, 1.0])

# Axis norms below this are treated as parallel vectors.
AXIS_EPS = 1e-12


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Convert rotation vector and translation vector to 4x4 transformation matrix.

    Args:
        rvec: Rotation vector (3,) or (3,1)
        tvec: Translation vector (3,) or (3,1)

    Returns:
        4x4 homogeneous transformation matrix
    """
    rvec = np.array(rvec, dtype=float).reshape(3)
    tvec = np.array(tvec, dtype=float).reshape(3)

    R, _ = cv2.Rodrigues(rvec)

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = tvec

    return T


def matrix_to_rvec_tvec(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert 4x4 (or 3x4) transformation matrix to rotation vector and translation vector.

    Returns:
        (rvec, tvec) where rvec is (3,1) and tvec is (3,1)
    """
    T = np.asarray(T, dtype=float)
    R = np.ascontiguousarray(T[:3, :3])
    tvec = T[:3, 3].reshape(3, 1).copy()

    rvec, _ = cv2.Rodrigues(R)

    return rvec, tvec


def quat_from_matrix(R: np.ndarray) -> np.ndarray:
    """Quaternion (x, y, z, w) of a 3x3 rotation block."""
    return Rotation.from_matrix(np.asarray(R, dtype=float)[:3, :3]).as_quat()


def rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    return Rotation.from_quat(q).apply(np.asarray(v, dtype=float))


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b: applying the result rotates by b, then by a."""
    return (Rotation.from_quat(a) * Rotation.from_quat(b)).as_quat()


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    """
    Quaternion rotating by `angle` radians about `axis`.

    The axis is normalized; a zero axis gives the identity rotation.
    """
    axis = np.asarray(axis, dtype=float)
    norm = float(np.linalg.norm(axis))
    if not np.isfinite(norm) or norm < AXIS_EPS:
        return IDENTITY_QUAT.copy()
    return Rotation.from_rotvec(axis / norm * float(angle)).as_quat()


def align_to_normal(q: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """
    Pull orientation q toward a measured surface normal.

    up = q applied to +Z, axis = up x normal, angle = up . normal. The dot
    product is used directly as the rotation amount (no arccos), which only
    behaves when up and normal are already close.
    """
    q = np.asarray(q, dtype=float)
    normal = np.asarray(normal, dtype=float)
    up = rotate_vector(q, UNIT_Z)
    axis = np.cross(up, normal)
    angle = float(np.dot(up, normal))
    if float(np.linalg.norm(axis)) < AXIS_EPS:
        return q.copy()
    r = quat_from_axis_angle(axis, angle)
    return quat_multiply(r, q)


def compose_pose(position: np.ndarray, q: np.ndarray, offset: np.ndarray) -> np.ndarray:
    """Position of `offset` (expressed in the pose frame) in the parent frame."""
    return np.asarray(position, dtype=float) + rotate_vector(q, offset)
