"""Immutable rigid-body pose type built on the SE(3) helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jax
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from . import se3, so3

Array = jax.Array


@register_pytree_node_class  # lets Pose pass through jit / jacfwd
@dataclass(frozen=True, eq=False)
class Pose:
    """A single rigid transform, stored as a 4x4 homogeneous matrix."""
    matrix: Array  # shape (4, 4)

    # Constructors
    @classmethod
    def identity(cls) -> "Pose":
        return cls(jnp.eye(4))

    @classmethod
    def from_matrix(cls, matrix) -> "Pose":
        matrix = jnp.asarray(matrix, dtype=jnp.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"matrix must have shape (4,4), got {matrix.shape}")
        return cls(matrix)

    @classmethod
    def from_rotation(cls, rotation, position=None) -> "Pose":
        rotation = jnp.asarray(rotation, dtype=jnp.float64)
        position = jnp.zeros(3) if position is None else jnp.asarray(position, dtype=jnp.float64)
        return cls(se3.from_position_and_rotation(position, rotation))

    @classmethod
    def from_translation(cls, xyz) -> "Pose":
        return cls.from_rotation(jnp.eye(3), xyz)

    @classmethod
    def from_pos_quat(cls, pos, quat: Optional[Array] = None) -> "Pose":
        """Build from a position and an optional (w, x, y, z) quaternion."""
        if quat is None:
            return cls.from_translation(pos)
        return cls.from_rotation(so3.from_quaternion(jnp.asarray(quat, dtype=jnp.float64)), pos)

    @classmethod
    def from_position_rotvec(cls, pos, rotvec) -> "Pose":
        return cls.from_rotation(so3.exp(jnp.asarray(rotvec, dtype=jnp.float64)), pos)

    @classmethod
    def exp(cls, twist) -> "Pose":
        return cls(se3.exp(jnp.asarray(twist, dtype=jnp.float64)))

    # PyTree boiler-plate
    def tree_flatten(self):
        return (self.matrix,), None

    @classmethod
    def tree_unflatten(cls, aux, children):
        (matrix,) = children
        return cls(matrix)

    # Group operations
    def compose(self, other: "Pose") -> "Pose":
        """Self ∘ other (apply *other* first, then self)."""
        return Pose(jnp.matmul(self.matrix, other.matrix))

    def __matmul__(self, other: "Pose") -> "Pose":
        return self.compose(other)

    def inverse(self) -> "Pose":
        return Pose(se3.inverse(self.matrix))

    def log(self) -> Array:
        """Twist [v, w] whose exponential is this pose."""
        return se3.log(self.matrix)

    def interpolate(self, other: "Pose", t: float) -> "Pose":
        """
        Geodesic interpolation on SE(3).

        t = 0 returns self and t = 1 returns other. Values outside [0, 1]
        extrapolate along the same screw motion.
        """
        delta = se3.log(se3.inverse(self.matrix) @ other.matrix)
        return Pose(self.matrix @ se3.exp(t * delta))

    def transform_points(self, points) -> Array:
        """Map (3,) or (N, 3) points from this pose's frame into its parent."""
        points = jnp.asarray(points, dtype=self.matrix.dtype)
        if points.shape[-1] != 3 or points.ndim > 2:
            raise ValueError("points must have shape (3,) or (N,3)")
        return se3.apply(self.matrix, points)

    # Accessors
    @property
    def position(self) -> Array:
        return self.matrix[:3, 3]

    @property
    def rotation(self) -> Array:
        return self.matrix[:3, :3]

    @property
    def quaternion(self) -> Array:
        return so3.to_quaternion(self.rotation)

    @property
    def rotvec(self) -> Array:
        return so3.log(self.rotation)

    def allclose(self, other: "Pose", atol: float = 1e-9) -> bool:
        return bool(jnp.allclose(self.matrix, other.matrix, rtol=0.0, atol=atol))

    def __repr__(self) -> str:
        p = [round(float(x), 6) for x in self.position]
        r = [round(float(x), 6) for x in self.rotvec]
        return f"Pose(position={p}, rotvec={r})"
