"""Forward kinematics over a kinematic tree.

The low-level functions (``link_transforms``, ``frame_transforms``) are pure
in the joint vector ``q`` and built from ``jnp`` operations only, so they can
be wrapped in ``jax.jit`` or differentiated with ``jax.jacfwd``. The
``FKSolver`` interface layers name-based queries and error reporting on top.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .core import Robot, TreeIndex
from .errors import JointOutOfRange, WrongJointName
from .transforms import Pose, so3


@dataclass(frozen=True)
class JointQuery:
    """Query to the FK solver.

    Attributes:
        joints: One slot per degree of freedom in canonical joint order.
                ``None`` keeps the joint's current value. An empty sequence
                applies no overrides.
        links: Names of the frames to compute poses for.
    """
    joints: Sequence[Optional[float]] = ()
    links: Sequence[str] = ()


@dataclass(frozen=True)
class FKSolution:
    """Pose of every requested frame, in request order."""
    frames: Tuple[Tuple[str, Pose], ...]

    def as_dict(self) -> Dict[str, Pose]:
        return dict(self.frames)

    def __getitem__(self, name: str) -> Pose:
        for frame, pose in self.frames:
            if frame == name:
                return pose
        raise KeyError(name)


def _link_transform(index: TreeIndex, q: Array, link: int, cache: Dict[int, Array]) -> Array:
    """World transform of ``link``, reusing and filling ``cache`` along its path."""
    T = None
    for node in index.link_paths[link]:
        if node in cache:
            T = cache[node]
            continue
        joint = index.link_parent_joint[node]
        if joint is None:
            T = index.link_origins[node]
        else:
            local = index.joint_types[joint].local_transform(q[index.joint_slices[joint]])
            T = T @ index.joint_origins[joint] @ local @ index.link_origins[node]
        cache[node] = T
    return T


def link_transforms(robot: Robot, q: Array) -> Dict[str, Array]:
    """World transforms of every link for joint vector ``q``."""
    index = robot.index
    cache: Dict[int, Array] = {}
    return {
        name: _link_transform(index, q, i, cache)
        for i, name in enumerate(index.link_names)
    }


def frame_transforms(robot: Robot, q: Array, frame_names: Iterable[str]) -> Array:
    """
    World transforms of the named frames.

    Args:
        robot: validated robot
        q: joint vector of shape (dof,) in canonical order
        frame_names: frames to evaluate; must exist

    Returns:
        Array of shape (len(frame_names), 4, 4)
    """
    index = robot.index
    cache: Dict[int, Array] = {}
    transforms = []
    for name in frame_names:
        try:
            frame = index.frame_ids[name]
        except KeyError:
            raise WrongJointName(name) from None
        T_link = _link_transform(index, q, index.frame_links[frame], cache)
        transforms.append(T_link @ index.frame_offsets[frame])
    if not transforms:
        return jnp.zeros((0, 4, 4))
    return jnp.stack(transforms)


def jacobian(robot: Robot, q: Array, frame_name: str) -> Array:
    """
    Geometric Jacobian of a frame with respect to the joint vector.

    Rows 0-2 are the linear velocity of the frame origin and rows 3-5 the
    angular velocity, both in world coordinates. Computed by forward-mode
    autodiff through ``frame_transforms``.

    Returns:
        (6, dof) Jacobian
    """
    q = jnp.asarray(q, dtype=jnp.float64)
    return stacked_jacobian(robot, [frame_name])(q)


def stacked_jacobian(robot: Robot, frame_names: Sequence[str]):
    """Build ``q -> (6 * len(frame_names), dof)`` Jacobian for several frames."""
    frame_names = tuple(frame_names)
    for name in frame_names:
        if name not in robot.index.frame_ids:
            raise WrongJointName(name)

    def poses(q):
        return frame_transforms(robot, q, frame_names)

    def jac(q):
        T = poses(q)
        dT = jax.jacfwd(poses)(q)  # (m, 4, 4, dof)
        R = T[:, :3, :3]
        dp = dT[:, :3, 3, :]
        # omega^ = dR R^T
        omega = so3.vee(jnp.einsum("mikn,mjk->mnij", dT[:, :3, :3, :], R))
        rows = jnp.concatenate([dp, jnp.swapaxes(omega, -1, -2)], axis=1)  # (m, 6, dof)
        return rows.reshape(-1, q.shape[0])

    return jax.jit(jac)


def _query_vector(robot: Robot, joints: Sequence[Optional[float]]) -> Array:
    """Current joint vector with the query overrides applied."""
    q = np.array(robot.joint_values(), dtype=np.float64)
    if len(joints) == 0:
        return jnp.asarray(q)
    if len(joints) != q.shape[0]:
        raise ValueError(f"joint query size mismatch: expected {q.shape[0]}, got {len(joints)}")

    index = robot.index
    for joint, s in zip(index.joint_names, index.joint_slices):
        overrides = joints[s]
        if all(value is None for value in overrides):
            continue
        chunk = [q[s.start + i] if value is None else float(value) for i, value in enumerate(overrides)]
        index.joint_types[index.joint_ids[joint]].check_values(joint, chunk)
        q[s] = chunk
    return jnp.asarray(q)


class FKSolver(ABC):
    """Forward kinematics capability."""

    @abstractmethod
    def compute_move(self, query: JointQuery) -> FKSolution:
        """Compute poses of the requested frames after moving the requested joints."""


class TreeFKSolver(FKSolver):
    """Walks the tree from the root, composing parent-to-child transforms.

    The robot's stored joint states are only read; overrides live in a
    transient vector.
    """

    def __init__(self, robot: Robot):
        self.index = robot.index  # validates the structure
        self.robot = robot

    def compute_move(self, query: JointQuery) -> FKSolution:
        q = _query_vector(self.robot, query.joints)
        names = tuple(query.links)
        transforms = frame_transforms(self.robot, q, names)
        return FKSolution(tuple((name, Pose(T)) for name, T in zip(names, transforms)))


def compute(robot: Robot, query: JointQuery) -> FKSolution:
    """Forward kinematics for ``query`` against ``robot``."""
    return TreeFKSolver(robot).compute_move(query)
