"""SE(3) and se(3) operations in JAX.

Rigid transforms are 4x4 homogeneous matrices and twists are 6-vectors
``[vx, vy, vz, wx, wy, wz]`` (linear part first). Functions accept leading
batch dimensions.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array

_SMALL_ANGLE = 1e-6


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Assemble homogeneous matrices.

    Args:
        p: (..., 3) translation
        R: (..., 3, 3) rotation

    Returns:
        (..., 4, 4) transforms
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))
    top = jnp.concatenate([R, p[..., None]], axis=-1)
    bottom = jnp.broadcast_to(jnp.array([0.0, 0.0, 0.0, 1.0], dtype=top.dtype), batch_shape + (1, 4))
    return jnp.concatenate([top, bottom], axis=-2)


def _coefficients(w: Array):
    """Coefficients b = (1 - cos t)/t^2 and c = (t - sin t)/t^3 of the V matrix."""
    theta_sq = jnp.sum(w * w, axis=-1)[..., None, None]
    small = theta_sq < _SMALL_ANGLE ** 2
    safe_sq = jnp.where(small, 1.0, theta_sq)
    theta = jnp.sqrt(safe_sq)
    b = jnp.where(small, 0.5 - theta_sq / 24.0, (1.0 - jnp.cos(theta)) / safe_sq)
    c = jnp.where(small, 1.0 / 6.0 - theta_sq / 120.0, (theta - jnp.sin(theta)) / (safe_sq * theta))
    return b, c


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map.

    Args:
        twist: (..., 6) twists, linear part first

    Returns:
        (..., 4, 4) transforms
    """
    v, w = twist[..., :3], twist[..., 3:]
    b, c = _coefficients(w)
    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = I + b * K + c * jnp.matmul(K, K)
    return from_position_and_rotation(jnp.einsum("...ij,...j->...i", V, v), so3.exp(w))


def log(T: Array) -> Array:
    """
    SE(3) logarithm map, the inverse of ``exp``.

    Args:
        T: (..., 4, 4) transforms

    Returns:
        (..., 6) twists, linear part first
    """
    R, t = T[..., :3, :3], T[..., :3, 3]
    w = so3.log(R)
    theta_sq = jnp.sum(w * w, axis=-1)[..., None, None]
    small = theta_sq < _SMALL_ANGLE ** 2

    # V^-1 = I - K/2 + d*K^2 with d = (1 - (t/2) cot(t/2)) / t^2 -> 1/12 near zero
    safe_sq = jnp.where(small, 1.0, theta_sq)
    half = 0.5 * jnp.sqrt(safe_sq)
    d = jnp.where(small, 1.0 / 12.0, (1.0 - half * jnp.cos(half) / jnp.sin(half)) / safe_sq)

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=T.dtype), K.shape)
    V_inv = I - 0.5 * K + d * jnp.matmul(K, K)
    return jnp.concatenate([jnp.einsum("...ij,...j->...i", V_inv, t), w], axis=-1)


def inverse(T: Array) -> Array:
    """Inverse via the block structure [[R^T, -R^T t], [0, 1]]."""
    R_inv = so3.inverse(T[..., :3, :3])
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, T[..., :3, 3])
    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Transform points.

    Args:
        T: (4, 4) transform
        points: (3,) or (N, 3) points

    Returns:
        points of the same shape, expressed in T's parent frame
    """
    return jnp.einsum("ij,...j->...i", T[:3, :3], points) + T[:3, 3]
