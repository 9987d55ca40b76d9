"""
Rigid-transform primitives for jax_kintree.

- so3: rotation matrices and axis-angle vectors
- se3: homogeneous 4x4 transforms and twists
- Pose: immutable single-transform value type used across the library
"""

from . import so3
from . import se3
from .pose import Pose

__all__ = [
    "so3",
    "se3",
    "Pose",
]
