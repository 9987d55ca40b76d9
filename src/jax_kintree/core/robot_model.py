"""Kinematic tree data structures.

Descriptive records (links, frames, joint types and states) are immutable
flax ``struct`` dataclasses. ``Robot`` owns them by name and is the only
mutable object: joint *states* can change, structure cannot. Once validated,
the robot resolves every name to an integer handle (``TreeIndex``) so FK and
IK never look names up inside their loops.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np
from flax import struct

from ..errors import JointOutOfRange, StateTypeMismatch, UnknownFrame, UnknownJoint, UnknownLink
from ..transforms import Pose, se3, so3
from .validation import check

Array = jax.Array
Axis = Union[Sequence[float], Array]
Limits = Optional[Tuple[float, float]]


# Joint states
@struct.dataclass
class ContinuousState:
    angle: float = 0.0


@struct.dataclass
class PrismaticState:
    distance: float = 0.0


@struct.dataclass
class FloatingState:
    pose: Pose = struct.field(default_factory=Pose.identity)


@struct.dataclass
class FixedState:
    pass


JointState = Union[ContinuousState, PrismaticState, FloatingState, FixedState]


def _unit(axis: Axis) -> Array:
    axis = jnp.asarray(axis, dtype=jnp.float64)
    return axis / jnp.linalg.norm(axis)


def _check_scalar(name: str, value: float, limits: Limits) -> None:
    if not np.isfinite(value):
        raise JointOutOfRange(name, value)
    if limits is not None and not (limits[0] <= value <= limits[1]):
        raise JointOutOfRange(name, value)


# Joint types
@struct.dataclass
class Continuous:
    """Rotation about ``axis``; unbounded unless ``limits`` is given."""
    axis: Axis
    limits: Limits = struct.field(pytree_node=False, default=None)

    dof: ClassVar[int] = 1
    state_type: ClassVar[type] = ContinuousState

    def default_state(self) -> ContinuousState:
        return ContinuousState(0.0)

    def state_values(self, state: ContinuousState) -> Tuple[float, ...]:
        return (float(state.angle),)

    def state_from_values(self, values: Sequence[float]) -> ContinuousState:
        return ContinuousState(float(values[0]))

    def check_values(self, name: str, values: Sequence[float]) -> None:
        _check_scalar(name, float(values[0]), self.limits)

    def local_transform(self, values: Array) -> Array:
        R = so3.exp(_unit(self.axis) * values[0])
        return se3.from_position_and_rotation(jnp.zeros(3, dtype=R.dtype), R)


@struct.dataclass
class Prismatic:
    """Translation along ``axis``; unbounded unless ``limits`` is given."""
    axis: Axis
    limits: Limits = struct.field(pytree_node=False, default=None)

    dof: ClassVar[int] = 1
    state_type: ClassVar[type] = PrismaticState

    def default_state(self) -> PrismaticState:
        return PrismaticState(0.0)

    def state_values(self, state: PrismaticState) -> Tuple[float, ...]:
        return (float(state.distance),)

    def state_from_values(self, values: Sequence[float]) -> PrismaticState:
        return PrismaticState(float(values[0]))

    def check_values(self, name: str, values: Sequence[float]) -> None:
        _check_scalar(name, float(values[0]), self.limits)

    def local_transform(self, values: Array) -> Array:
        p = _unit(self.axis) * values[0]
        return se3.from_position_and_rotation(p, jnp.eye(3, dtype=p.dtype))


@struct.dataclass
class Floating:
    """Unconstrained 6-DOF joint, exposed as slots [x, y, z, rx, ry, rz]."""
    limits: ClassVar[Limits] = None

    dof: ClassVar[int] = 6
    state_type: ClassVar[type] = FloatingState

    def default_state(self) -> FloatingState:
        return FloatingState(Pose.identity())

    def state_values(self, state: FloatingState) -> Tuple[float, ...]:
        pose = state.pose
        return tuple(float(x) for x in jnp.concatenate([pose.position, pose.rotvec]))

    def state_from_values(self, values: Sequence[float]) -> FloatingState:
        values = jnp.asarray(values, dtype=jnp.float64)
        return FloatingState(Pose.from_position_rotvec(values[:3], values[3:6]))

    def check_values(self, name: str, values: Sequence[float]) -> None:
        for value in values:
            _check_scalar(name, float(value), None)

    def local_transform(self, values: Array) -> Array:
        return se3.from_position_and_rotation(values[:3], so3.exp(values[3:6]))


@struct.dataclass
class Fixed:
    limits: ClassVar[Limits] = None

    dof: ClassVar[int] = 0
    state_type: ClassVar[type] = FixedState

    def default_state(self) -> FixedState:
        return FixedState()

    def state_values(self, state: FixedState) -> Tuple[float, ...]:
        return ()

    def state_from_values(self, values: Sequence[float]) -> FixedState:
        return FixedState()

    def check_values(self, name: str, values: Sequence[float]) -> None:
        pass

    def local_transform(self, values: Array) -> Array:
        return jnp.eye(4, dtype=values.dtype)


JointType = Union[Continuous, Prismatic, Floating, Fixed]


# Structure
@struct.dataclass
class Link:
    """A rigid body. ``origin`` is relative to the joint that defines it."""
    name: str = struct.field(pytree_node=False)
    origin: Pose = struct.field(default_factory=Pose.identity)
    parent_joints: Tuple[str, ...] = struct.field(pytree_node=False, default=())
    child_joints: Tuple[str, ...] = struct.field(pytree_node=False, default=())


@struct.dataclass
class Frame:
    """Named handle at a fixed offset from its anchor link."""
    name: str = struct.field(pytree_node=False)
    parent_link: str = struct.field(pytree_node=False)
    from_parent: Pose = struct.field(default_factory=Pose.identity)


@struct.dataclass
class JointDescription:
    """Static description of a joint; ``origin`` maps the joint frame into the parent link."""
    name: str = struct.field(pytree_node=False)
    parent_link: str = struct.field(pytree_node=False)
    child_link: str = struct.field(pytree_node=False)
    frame: str = struct.field(pytree_node=False)
    joint_type: JointType = struct.field(pytree_node=False)
    origin: Pose = struct.field(default_factory=Pose.identity)


@dataclass(frozen=True)
class TreeIndex:
    """Arena view of a validated robot: names resolved to integer handles.

    Links are numbered in breadth-first order from the root, joints in
    canonical (sorted-name) order, which is also the order of joint vectors.
    """
    root: int
    link_names: Tuple[str, ...]
    link_ids: Mapping[str, int]
    link_origins: Tuple[Array, ...]
    link_parent_joint: Tuple[Optional[int], ...]
    link_paths: Tuple[Tuple[int, ...], ...]
    joint_names: Tuple[str, ...]
    joint_ids: Mapping[str, int]
    joint_types: Tuple[JointType, ...]
    joint_origins: Tuple[Array, ...]
    joint_parent_link: Tuple[int, ...]
    joint_slices: Tuple[slice, ...]
    frame_ids: Mapping[str, int]
    frame_links: Tuple[int, ...]
    frame_offsets: Tuple[Array, ...]
    lower: Array
    upper: Array

    @property
    def dof(self) -> int:
        return int(self.lower.shape[0])

    @classmethod
    def build(cls, robot: "Robot") -> "TreeIndex":
        joint_names = robot.joint_names
        joint_ids = {name: i for i, name in enumerate(joint_names)}
        descs = [robot.joints[name][0] for name in joint_names]

        root_name = next(name for name, link in sorted(robot.links.items()) if not link.parent_joints)
        order = [root_name]
        queue = deque([root_name])
        while queue:
            link = robot.links[queue.popleft()]
            for joint in sorted(link.child_joints):
                child = robot.joints[joint][0].child_link
                order.append(child)
                queue.append(child)
        link_ids = {name: i for i, name in enumerate(order)}

        parent_joint = []
        paths = []
        for name in order:
            link = robot.links[name]
            if link.parent_joints:
                j = joint_ids[link.parent_joints[0]]
                parent_joint.append(j)
                paths.append(paths[link_ids[descs[j].parent_link]] + (link_ids[name],))
            else:
                parent_joint.append(None)
                paths.append((link_ids[name],))

        slices, lower, upper = [], [], []
        start = 0
        for desc in descs:
            n = desc.joint_type.dof
            slices.append(slice(start, start + n))
            start += n
            limits = desc.joint_type.limits
            lower.extend([-np.inf if limits is None else limits[0]] * n)
            upper.extend([np.inf if limits is None else limits[1]] * n)

        frame_names = sorted(robot.frames)
        return cls(
            root=link_ids[root_name],
            link_names=tuple(order),
            link_ids=MappingProxyType(link_ids),
            link_origins=tuple(robot.links[name].origin.matrix for name in order),
            link_parent_joint=tuple(parent_joint),
            link_paths=tuple(paths),
            joint_names=joint_names,
            joint_ids=MappingProxyType(joint_ids),
            joint_types=tuple(desc.joint_type for desc in descs),
            joint_origins=tuple(desc.origin.matrix for desc in descs),
            joint_parent_link=tuple(link_ids[desc.parent_link] for desc in descs),
            joint_slices=tuple(slices),
            frame_ids=MappingProxyType({name: i for i, name in enumerate(frame_names)}),
            frame_links=tuple(link_ids[robot.frames[name].parent_link] for name in frame_names),
            frame_offsets=tuple(robot.frames[name].from_parent.matrix for name in frame_names),
            lower=jnp.asarray(lower, dtype=jnp.float64),
            upper=jnp.asarray(upper, dtype=jnp.float64),
        )

    def frame_slots(self, frame: str) -> Tuple[int, ...]:
        """Joint-vector slots that move the given frame."""
        link = self.frame_links[self.frame_ids[frame]]
        slots = []
        for node in self.link_paths[link]:
            joint = self.link_parent_joint[node]
            if joint is not None:
                s = self.joint_slices[joint]
                slots.extend(range(s.start, s.stop))
        return tuple(slots)


class Robot:
    """Kinematic tree: links, joints with their current state, and frames.

    Structure is fixed at construction. ``set_joint_state`` is the only
    mutation. The tree is validated the first time its index is requested,
    which every solver does on construction.
    """

    def __init__(
        self,
        links: Iterable[Link],
        joints: Iterable[Tuple[JointDescription, JointState]],
        frames: Iterable[Frame],
    ):
        self._links: Dict[str, Link] = _by_name(links, "link")
        self._joints: Dict[str, Tuple[JointDescription, JointState]] = _by_name(joints, "joint", key=lambda j: j[0].name)
        self._frames: Dict[str, Frame] = _by_name(frames, "frame")
        self._index: Optional[TreeIndex] = None

    # Read access
    @property
    def links(self) -> Mapping[str, Link]:
        return MappingProxyType(self._links)

    @property
    def joints(self) -> Mapping[str, Tuple[JointDescription, JointState]]:
        return MappingProxyType(self._joints)

    @property
    def frames(self) -> Mapping[str, Frame]:
        return MappingProxyType(self._frames)

    def link(self, name: str) -> Link:
        try:
            return self._links[name]
        except KeyError:
            raise UnknownLink(name) from None

    def joint(self, name: str) -> Tuple[JointDescription, JointState]:
        try:
            return self._joints[name]
        except KeyError:
            raise UnknownJoint(name) from None

    def frame(self, name: str) -> Frame:
        try:
            return self._frames[name]
        except KeyError:
            raise UnknownFrame(name) from None

    # Mutation
    def set_joint_state(self, name: str, state: JointState) -> None:
        desc, _ = self.joint(name)
        expected = desc.joint_type.state_type
        if type(state) is not expected:
            raise StateTypeMismatch(name, expected.__name__, type(state).__name__)
        self._joints[name] = (desc, state)

    # Joint vectors
    @property
    def joint_names(self) -> Tuple[str, ...]:
        """Canonical joint order used by every joint-value vector."""
        return tuple(sorted(self._joints))

    @property
    def dof(self) -> int:
        return sum(self._joints[name][0].joint_type.dof for name in self._joints)

    def dof_slice(self, name: str) -> slice:
        self.joint(name)
        start = 0
        for joint in self.joint_names:
            n = self._joints[joint][0].joint_type.dof
            if joint == name:
                return slice(start, start + n)
            start += n

    def joint_values(self) -> Array:
        """Current joint states flattened in canonical order."""
        values = []
        for name in self.joint_names:
            desc, state = self._joints[name]
            values.extend(desc.joint_type.state_values(state))
        return jnp.asarray(values, dtype=jnp.float64)

    def apply_joint_values(self, values: Sequence[float]) -> None:
        """Commit a full joint vector (e.g. an IK solution) to the stored states."""
        values = [float(v) for v in np.asarray(values, dtype=np.float64).reshape(-1)]
        if len(values) != self.dof:
            raise ValueError(f"joint vector size mismatch: expected {self.dof}, got {len(values)}")
        start = 0
        updates = []
        for name in self.joint_names:
            joint_type = self._joints[name][0].joint_type
            chunk = values[start:start + joint_type.dof]
            start += joint_type.dof
            joint_type.check_values(name, chunk)
            updates.append((name, joint_type.state_from_values(chunk)))
        for name, state in updates:
            self.set_joint_state(name, state)

    @property
    def index(self) -> TreeIndex:
        if self._index is None:
            check(self)
            self._index = TreeIndex.build(self)
        return self._index


def _by_name(items, kind: str, key=lambda item: item.name) -> Dict:
    result = {}
    for item in items:
        name = key(item)
        if name in result:
            raise ValueError(f"duplicate {kind} name: {name}")
        result[name] = item
    return result
