"""Core robot model data structures for jax_kintree.

This module provides the kinematic tree (links, typed joints, frames), its
arena index, and the structural validator.
"""

from .robot_model import (
    Continuous,
    ContinuousState,
    Fixed,
    FixedState,
    Floating,
    FloatingState,
    Frame,
    JointDescription,
    JointState,
    JointType,
    Link,
    Prismatic,
    PrismaticState,
    Robot,
    TreeIndex,
)
from .validation import check

__all__ = [
    "Continuous",
    "ContinuousState",
    "Fixed",
    "FixedState",
    "Floating",
    "FloatingState",
    "Frame",
    "JointDescription",
    "JointState",
    "JointType",
    "Link",
    "Prismatic",
    "PrismaticState",
    "Robot",
    "TreeIndex",
    "check",
]
