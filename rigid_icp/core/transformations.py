"""
Rigid transformation utilities.

Twists are 6-vectors ordered (tx, ty, tz, wx, wy, wz): the translational part
first, then the rotation vector. ``twist_to_transform`` is the exponential map
se(3) -> SE(3) and ``transform_to_twist`` its inverse (log map).

Numerical policy: below ROTATION_EPSILON the closed-form coefficients are
replaced by their Taylor expansions to avoid dividing by ~0.
"""
import math
from typing import Dict

import numpy as np

ROTATION_EPSILON: float = 1e-10
SINGULARITY_EPSILON: float = 1e-6


def create_transformation_matrix(
    x: float, y: float, z: float,
    roll: float = 0, pitch: float = 0, yaw: float = 0
) -> np.ndarray:
    """
    Builds a rigid transform from a translation and Euler angles.

    The rotation is R = Rz(yaw) · Ry(pitch) · Rx(roll) (Z-Y-X order), so
    ``transform_to_pose_dict`` recovers the same parameters.

    Args:
        x, y, z: Translation
        roll, pitch, yaw: Rotation in degrees

    Returns:
        4x4 homogeneous transform
    """
    axes = np.eye(3)
    R = (
        rotvec_to_rotmat(math.radians(yaw) * axes[2])
        @ rotvec_to_rotmat(math.radians(pitch) * axes[1])
        @ rotvec_to_rotmat(math.radians(roll) * axes[0])
    )

    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = (x, y, z)
    return T


def transform_to_pose_dict(T: np.ndarray) -> Dict[str, float]:
    """
    Decomposes a 4x4 transform into translation and Z-Y-X Euler angles.

    Inverse of ``create_transformation_matrix`` away from gimbal lock.

    Returns:
        Dictionary with keys: x, y, z, roll, pitch, yaw (angles in degrees)
    """
    R = T[:3, :3]
    pitch = math.asin(float(np.clip(-R[2, 0], -1.0, 1.0)))
    if abs(math.cos(pitch)) > SINGULARITY_EPSILON:
        roll = math.atan2(R[2, 1], R[2, 2])
        yaw = math.atan2(R[1, 0], R[0, 0])
    else:
        # Gimbal lock: fold everything into yaw
        roll = 0.0
        yaw = math.atan2(-R[0, 1], R[1, 1])

    return {
        "x": float(T[0, 3]),
        "y": float(T[1, 3]),
        "z": float(T[2, 3]),
        "roll": float(math.degrees(roll)),
        "pitch": float(math.degrees(pitch)),
        "yaw": float(math.degrees(yaw)),
    }


def skew(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric matrix from 3-vector (hat operator)."""
    v = np.asarray(v, dtype=float).reshape(-1)
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ], dtype=float)


def unskew(S: np.ndarray) -> np.ndarray:
    """Extract 3-vector from skew-symmetric matrix (vee operator)."""
    return np.array([S[2, 1], S[0, 2], S[1, 0]], dtype=float)


def rotvec_to_rotmat(rotvec: np.ndarray) -> np.ndarray:
    """
    Rodrigues' formula: R = I + sin(θ)[k]_× + (1-cos(θ))[k]_×²

    For θ < ROTATION_EPSILON the first-order expansion I + [rotvec]_× is used;
    a zero vector gives the identity exactly.
    """
    rotvec = np.asarray(rotvec, dtype=float).reshape(-1)
    theta = np.linalg.norm(rotvec)

    if theta < ROTATION_EPSILON:
        return np.eye(3, dtype=float) + skew(rotvec)

    K = skew(rotvec / theta)
    return np.eye(3, dtype=float) + math.sin(theta) * K + (1.0 - math.cos(theta)) * (K @ K)


def rotmat_to_rotvec(R: np.ndarray) -> np.ndarray:
    """
    Log map SO(3) -> so(3).

    Handles θ ≈ 0 (skew part), θ ≈ π (eigenvector of eigenvalue 1) and the
    general case.
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 matrix, got shape {R.shape}")

    trace = np.trace(R)
    theta = math.acos(float(np.clip((trace - 1.0) / 2.0, -1.0, 1.0)))

    if theta < ROTATION_EPSILON:
        return unskew((R - R.T) / 2.0)

    if abs(theta - math.pi) < SINGULARITY_EPSILON:
        eigenvals, eigenvecs = np.linalg.eig(R)
        idx = np.argmin(np.abs(eigenvals - 1.0))
        axis = np.real(eigenvecs[:, idx])
        axis = axis / np.linalg.norm(axis)
        return axis * math.pi

    return unskew((R - R.T) / 2.0) * (theta / math.sin(theta))


def _left_jacobian(rotvec: np.ndarray) -> np.ndarray:
    """V(ω) = I + (1-cos θ)/θ² K + (θ - sin θ)/θ³ K², K = [ω]_×"""
    theta = np.linalg.norm(rotvec)
    K = skew(rotvec)
    if theta < ROTATION_EPSILON:
        return np.eye(3) + 0.5 * K + (K @ K) / 6.0
    theta2 = theta * theta
    return (
        np.eye(3)
        + ((1.0 - math.cos(theta)) / theta2) * K
        + ((theta - math.sin(theta)) / (theta2 * theta)) * (K @ K)
    )


def _left_jacobian_inverse(rotvec: np.ndarray) -> np.ndarray:
    theta = np.linalg.norm(rotvec)
    K = skew(rotvec)
    if theta < ROTATION_EPSILON:
        return np.eye(3) - 0.5 * K + (K @ K) / 12.0
    theta2 = theta * theta
    coeff = (1.0 - (theta * math.sin(theta)) / (2.0 * (1.0 - math.cos(theta)))) / theta2
    return np.eye(3) - 0.5 * K + coeff * (K @ K)


def twist_to_transform(twist: np.ndarray) -> np.ndarray:
    """
    Exponential map se(3) -> SE(3).

    Args:
        twist: (6,) array ordered (tx, ty, tz, wx, wy, wz)

    Returns:
        4x4 homogeneous transform. A zero twist yields the identity exactly.
    """
    twist = np.asarray(twist, dtype=float).reshape(-1)
    if twist.shape[0] != 6:
        raise ValueError(f"Expected 6-element twist, got {twist.shape[0]}")

    v = twist[:3]
    w = twist[3:]
    T = np.eye(4, dtype=float)
    T[:3, :3] = rotvec_to_rotmat(w)
    if np.any(w):
        T[:3, 3] = _left_jacobian(w) @ v
    else:
        T[:3, 3] = v
    return T


def transform_to_twist(T: np.ndarray) -> np.ndarray:
    """Log map SE(3) -> se(3); inverse of ``twist_to_transform``."""
    T = np.asarray(T, dtype=float)
    if T.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got shape {T.shape}")
    w = rotmat_to_rotvec(T[:3, :3])
    v = _left_jacobian_inverse(w) @ T[:3, 3]
    return np.concatenate([v, w])


def shift_twist(twist: np.ndarray, center: np.ndarray) -> np.ndarray:
    """
    Re-express a twist defined about ``center`` as a twist about the origin.

    Equivalent to the adjoint of the pure translation by ``center``:
    exp(shift_twist(ξ, c)) == Tr(c) · exp(ξ) · Tr(-c).
    """
    twist = np.asarray(twist, dtype=float).reshape(-1)
    center = np.asarray(center, dtype=float).reshape(-1)
    shifted = twist.copy()
    shifted[:3] = twist[:3] + np.cross(center, twist[3:])
    return shifted


def orthonormalize(T: np.ndarray) -> np.ndarray:
    """
    Project the rotation block of T back onto SO(3).

    Repeated composition accumulates rounding error in the rotation block;
    the closest rotation in the Frobenius sense is U·Vᵀ from its SVD.
    """
    result = np.array(T, dtype=float, copy=True)
    U, _, Vt = np.linalg.svd(result[:3, :3])
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    result[:3, :3] = R
    result[3, :] = [0.0, 0.0, 0.0, 1.0]
    return result


def invert_transform(T: np.ndarray) -> np.ndarray:
    """Inverse of a rigid transform using R^T instead of a general inverse."""
    R = T[:3, :3]
    t = T[:3, 3]
    inv = np.eye(4, dtype=float)
    inv[:3, :3] = R.T
    inv[:3, 3] = -R.T @ t
    return inv


def transform_points(points: np.ndarray, T: np.ndarray) -> np.ndarray:
    """
    Applies a rigid transform to an (N, 3) or (N, 6) array.

    The first three columns are positions (rotated and translated). In an
    (N, 6) array the last three columns are normals and are only rotated,
    matching the layout ``to_point_cloud`` accepts.

    Returns:
        A new array; the input is never modified
    """
    points = np.array(points, dtype=float, copy=True)
    if points.size == 0 or np.array_equal(T, np.eye(4)):
        return points
    if points.ndim != 2 or points.shape[1] not in (3, 6):
        raise ValueError(f"Expected an (N, 3) or (N, 6) array, got shape {points.shape}")

    R = T[:3, :3]
    points[:, :3] = points[:, :3] @ R.T + T[:3, 3]
    if points.shape[1] == 6:
        points[:, 3:6] = points[:, 3:6] @ R.T
    return points
