"""
jax_kintree: forward and inverse kinematics over kinematic trees in JAX.

A robot is a tree of links joined by typed joints (continuous, prismatic,
floating, fixed) with named frames attached to links. FK composes
transforms from the root to any frame; IK searches joint space with damped
least squares to place one or more tip frames.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import transforms
from . import core
from . import chain
from . import ik
from .chain import FKSolution, FKSolver, JointQuery, TreeFKSolver, compute
from .config import IKConfig, load_ik_config
from .core import (
    Continuous,
    ContinuousState,
    Fixed,
    FixedState,
    Floating,
    FloatingState,
    Frame,
    JointDescription,
    Link,
    Prismatic,
    PrismaticState,
    Robot,
    check,
)
from .errors import (
    DanglingReference,
    FKError,
    IKError,
    JointOutOfRange,
    KinematicsError,
    NotATree,
    NotSolvable,
    StateTypeMismatch,
    UnknownFrame,
    UnknownJoint,
    UnknownLink,
    ValidationError,
    WrongJointName,
    WrongTipName,
)
from .ik import (
    Approx,
    AutodiffIKSolver,
    Exact,
    FiniteDifferenceIKSolver,
    IKSolution,
    IKSolver,
    SolutionKind,
    solve,
)
from .transforms import Pose

__version__ = "0.1.0"
__all__ = [
    "transforms", "core", "chain", "ik",
    # model
    "Robot", "Link", "Frame", "JointDescription",
    "Continuous", "Prismatic", "Floating", "Fixed",
    "ContinuousState", "PrismaticState", "FloatingState", "FixedState",
    "Pose", "check",
    # solvers
    "JointQuery", "FKSolution", "FKSolver", "TreeFKSolver", "compute",
    "IKSolver", "AutodiffIKSolver", "FiniteDifferenceIKSolver", "solve",
    "IKSolution", "Exact", "Approx", "SolutionKind",
    "IKConfig", "load_ik_config",
    # errors
    "KinematicsError", "ValidationError", "DanglingReference", "NotATree",
    "StateTypeMismatch", "UnknownJoint", "UnknownLink", "FKError", "WrongJointName",
    "UnknownFrame", "JointOutOfRange", "IKError", "NotSolvable", "WrongTipName",
]
