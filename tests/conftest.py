"""Shared robot fixtures.

Robots are assembled in code; ``build_robot`` derives each link's parent and
child joint lists from the joint descriptions so tests only spell out joints.
"""

import jax.numpy as jnp
import pytest

from jax_kintree import (
    Continuous,
    ContinuousState,
    Fixed,
    FixedState,
    Floating,
    FloatingState,
    Frame,
    JointDescription,
    Link,
    Pose,
    Prismatic,
    PrismaticState,
    Robot,
)

Z = (0.0, 0.0, 1.0)


def build_robot(joints, frames=(), link_origins=None, extra_links=()):
    """Assemble a Robot from (JointDescription, JointState) pairs.

    A frame named after each joint is anchored at its child link unless one
    is supplied explicitly.
    """
    link_origins = link_origins or {}
    names = []
    for desc, _ in joints:
        for name in (desc.parent_link, desc.child_link):
            if name not in names:
                names.append(name)
    names.extend(n for n in extra_links if n not in names)

    links = [
        Link(
            name=name,
            origin=link_origins.get(name, Pose.identity()),
            parent_joints=tuple(d.name for d, _ in joints if d.child_link == name),
            child_joints=tuple(d.name for d, _ in joints if d.parent_link == name),
        )
        for name in names
    ]
    frames = list(frames)
    declared = {f.name for f in frames}
    for desc, _ in joints:
        if desc.frame not in declared:
            frames.append(Frame(desc.frame, desc.child_link))
            declared.add(desc.frame)
    return Robot(links, joints, frames)


def revolute(name, parent, child, origin=None, axis=Z, angle=0.0, limits=None):
    desc = JointDescription(
        name=name,
        parent_link=parent,
        child_link=child,
        frame=name,
        joint_type=Continuous(axis, limits=limits),
        origin=origin or Pose.identity(),
    )
    return desc, ContinuousState(angle)


def prismatic(name, parent, child, origin=None, axis=Z, distance=0.0, limits=None):
    desc = JointDescription(
        name=name,
        parent_link=parent,
        child_link=child,
        frame=name,
        joint_type=Prismatic(axis, limits=limits),
        origin=origin or Pose.identity(),
    )
    return desc, PrismaticState(distance)


def fixed(name, parent, child, origin=None):
    desc = JointDescription(
        name=name,
        parent_link=parent,
        child_link=child,
        frame=name,
        joint_type=Fixed(),
        origin=origin or Pose.identity(),
    )
    return desc, FixedState()


def floating(name, parent, child, pose=None):
    desc = JointDescription(
        name=name, parent_link=parent, child_link=child, frame=name, joint_type=Floating(),
    )
    return desc, FloatingState(pose or Pose.identity())


def offset(x=0.0, y=0.0, z=0.0):
    return Pose.from_translation(jnp.array([x, y, z]))


@pytest.fixture
def single_joint_robot():
    """base --j1 (continuous, Z)--> arm, with frame ``tip`` 1 m along X of arm."""
    return build_robot(
        [revolute("j1", "base", "arm")],
        frames=[Frame("base", "base"), Frame("tip", "arm", offset(x=1.0))],
    )


@pytest.fixture
def planar_arm():
    """Three 1 m links rotating about Z; ``tip`` at the end of the last link."""
    return build_robot(
        [
            revolute("j1", "base", "link1"),
            revolute("j2", "link1", "link2", origin=offset(x=1.0)),
            revolute("j3", "link2", "link3", origin=offset(x=1.0)),
        ],
        frames=[Frame("base", "base"), Frame("tip", "link3", offset(x=1.0))],
    )


@pytest.fixture
def branching_robot():
    """Two revolute branches off a common torso joint, one tip on each."""
    return build_robot(
        [
            revolute("torso", "base", "chest"),
            revolute("left", "chest", "left_arm", origin=offset(y=0.5)),
            revolute("right", "chest", "right_arm", origin=offset(y=-0.5), axis=(0.0, 1.0, 0.0)),
        ],
        frames=[
            Frame("base", "base"),
            Frame("left_tip", "left_arm", offset(x=1.0)),
            Frame("right_tip", "right_arm", offset(x=1.0)),
        ],
    )


@pytest.fixture
def fixed_chain():
    """Only fixed joints: the tip sits 2 m along X of the base."""
    return build_robot(
        [
            fixed("f1", "base", "link1", origin=offset(x=1.0)),
            fixed("f2", "link1", "link2", origin=offset(x=1.0)),
        ],
        frames=[Frame("tip", "link2")],
    )
