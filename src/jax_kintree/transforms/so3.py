"""SO(3) and so(3) operations in JAX.

Rotations are 3x3 matrices and tangent vectors are axis-angle (rotation)
vectors. Every function accepts arbitrary leading batch dimensions and is
pure, so it can be traced by ``jit``, ``jacfwd`` and ``vmap``.
"""

import jax
import jax.numpy as jnp

Array = jax.Array

_SMALL_ANGLE = 1e-6


def skew_symmetric(v: Array) -> Array:
    """
    Map a 3-vector to its cross-product matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) matrix K with K @ u == cross(v, u)
    """
    x, y, z = v[..., 0], v[..., 1], v[..., 2]
    zeros = jnp.zeros_like(x)
    return jnp.stack([
        jnp.stack([zeros, -z, y], axis=-1),
        jnp.stack([z, zeros, -x], axis=-1),
        jnp.stack([-y, x, zeros], axis=-1),
    ], axis=-2)


def vee(K: Array) -> Array:
    """Inverse of ``skew_symmetric``; only the antisymmetric part of K is used."""
    return 0.5 * jnp.stack([
        K[..., 2, 1] - K[..., 1, 2],
        K[..., 0, 2] - K[..., 2, 0],
        K[..., 1, 0] - K[..., 0, 1],
    ], axis=-1)


def exp(rotvec: Array) -> Array:
    """
    SO(3) exponential map (Rodrigues' formula).

    The unnormalised form R = I + a*K + b*K^2 is used with
    a = sin(t)/t and b = (1 - cos(t))/t^2. Near t = 0 both coefficients
    switch to their Taylor series, and the angle is computed from a
    substituted argument so that derivatives stay finite at the identity.
    FK is differentiated through this function.

    Args:
        rotvec: (..., 3) axis-angle vectors

    Returns:
        (..., 3, 3) rotation matrices
    """
    theta_sq = jnp.sum(rotvec * rotvec, axis=-1)[..., None, None]
    small = theta_sq < _SMALL_ANGLE ** 2

    safe_sq = jnp.where(small, 1.0, theta_sq)
    theta = jnp.sqrt(safe_sq)

    a = jnp.where(small, 1.0 - theta_sq / 6.0, jnp.sin(theta) / theta)
    b = jnp.where(small, 0.5 - theta_sq / 24.0, (1.0 - jnp.cos(theta)) / safe_sq)

    K = skew_symmetric(rotvec)
    I = jnp.broadcast_to(jnp.eye(3, dtype=rotvec.dtype), K.shape)
    return I + a * K + b * jnp.matmul(K, K)


def log(R: Array) -> Array:
    """
    SO(3) logarithm map: rotation matrix to axis-angle vector.

    The angle comes from atan2(sin, cos), which stays accurate near zero
    where arccos of the trace loses precision. Near pi the axis is taken
    from the dominant column of (R + I) / 2 and signed to agree with the
    antisymmetric part of R.

    Args:
        R: (..., 3, 3) rotation matrices

    Returns:
        (..., 3) axis-angle vectors with norm in [0, pi]
    """
    w = vee(R)  # sin(theta) * axis
    sin_angle = jnp.linalg.norm(w, axis=-1)
    cos_angle = jnp.clip((jnp.trace(R, axis1=-2, axis2=-1) - 1.0) / 2.0, -1.0, 1.0)
    angle = jnp.arctan2(sin_angle, cos_angle)

    small = angle < _SMALL_ANGLE
    near_pi = (jnp.pi - angle) < _SMALL_ANGLE

    # Taylor series of theta / sin(theta) near zero
    scale = jnp.where(small, 1.0 + angle * angle / 6.0,
                      angle / jnp.where(small, 1.0, sin_angle))
    generic = w * scale[..., None]

    B = 0.5 * (R + jnp.eye(3, dtype=R.dtype))
    column = jnp.argmax(jnp.diagonal(B, axis1=-2, axis2=-1), axis=-1)
    axis_pi = jnp.take_along_axis(B, column[..., None, None], axis=-1)[..., 0]
    axis_pi = axis_pi / jnp.linalg.norm(axis_pi, axis=-1, keepdims=True)
    sign = jnp.where(jnp.sum(axis_pi * w, axis=-1) < 0.0, -1.0, 1.0)
    around_pi = axis_pi * (sign * angle)[..., None]

    return jnp.where(near_pi[..., None], around_pi, generic)


def inverse(R: Array) -> Array:
    """Rotation inverse, i.e. the transpose."""
    return jnp.swapaxes(R, -1, -2)


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) quaternions in (w, x, y, z) order; normalised here

    Returns:
        (..., 3, 3) rotation matrices
    """
    q = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)
    w, xyz = q[..., :1], q[..., 1:]
    # R = I + 2w[v]x + 2[v]x^2 for unit q = (w, v)
    K = skew_symmetric(xyz)
    I = jnp.broadcast_to(jnp.eye(3, dtype=q.dtype), K.shape)
    return I + 2.0 * w[..., None] * K + 2.0 * jnp.matmul(K, K)


def to_quaternion(R: Array) -> Array:
    """
    Convert rotation matrices to unit quaternions (w, x, y, z), w >= 0.

    Shepperd's method: of the four candidate quaternions built from the
    diagonal, the one with the largest pivot is used.
    """
    m = R
    trace = jnp.trace(m, axis1=-2, axis2=-1)
    d0, d1, d2 = m[..., 0, 0], m[..., 1, 1], m[..., 2, 2]

    candidates = jnp.stack([
        jnp.stack([1.0 + trace, m[..., 2, 1] - m[..., 1, 2],
                   m[..., 0, 2] - m[..., 2, 0], m[..., 1, 0] - m[..., 0, 1]], axis=-1),
        jnp.stack([m[..., 2, 1] - m[..., 1, 2], 1.0 + d0 - d1 - d2,
                   m[..., 0, 1] + m[..., 1, 0], m[..., 0, 2] + m[..., 2, 0]], axis=-1),
        jnp.stack([m[..., 0, 2] - m[..., 2, 0], m[..., 0, 1] + m[..., 1, 0],
                   1.0 - d0 + d1 - d2, m[..., 1, 2] + m[..., 2, 1]], axis=-1),
        jnp.stack([m[..., 1, 0] - m[..., 0, 1], m[..., 0, 2] + m[..., 2, 0],
                   m[..., 1, 2] + m[..., 2, 1], 1.0 - d0 - d1 + d2], axis=-1),
    ], axis=-2)
    # candidate i is 4 * q_i * q, its pivot is 4 * q_i^2
    pivots = jnp.diagonal(candidates, axis1=-2, axis2=-1)
    pick = jax.nn.one_hot(jnp.argmax(pivots, axis=-1), 4, dtype=m.dtype)

    q = jnp.sum(candidates * pick[..., :, None], axis=-2)
    q = q / jnp.linalg.norm(q, axis=-1, keepdims=True)
    return jnp.where(q[..., :1] < 0.0, -q, q)
