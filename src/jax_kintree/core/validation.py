"""Structural validation of a robot description.

``check`` stops at the first inconsistency it finds. A robot is validated
once, before its index is built; solvers therefore never see an invalid tree.
"""

import logging
from typing import TYPE_CHECKING

import numpy as np

from ..errors import DanglingReference, NotATree, StateTypeMismatch, ValidationError

if TYPE_CHECKING:
    from .robot_model import Robot

logger = logging.getLogger(__name__)


def check(robot: "Robot") -> None:
    """Raise a ``ValidationError`` if ``robot`` is not a consistent kinematic tree."""
    links, joints, frames = robot.links, robot.joints, robot.frames

    # References
    for link in links.values():
        for joint in link.parent_joints + link.child_joints:
            if joint not in joints:
                raise DanglingReference(f"link {link.name}", joint)
    for desc, _ in joints.values():
        for link in (desc.parent_link, desc.child_link):
            if link not in links:
                raise DanglingReference(f"joint {desc.name}", link)
        if desc.frame not in frames:
            raise DanglingReference(f"joint {desc.name}", desc.frame)
    for frame in frames.values():
        if frame.parent_link not in links:
            raise DanglingReference(f"frame {frame.name}", frame.parent_link)

    # Joint types
    for desc, state in joints.values():
        expected = desc.joint_type.state_type
        if type(state) is not expected:
            raise StateTypeMismatch(desc.name, expected.__name__, type(state).__name__)
        axis = getattr(desc.joint_type, "axis", None)
        if axis is not None:
            norm = np.linalg.norm(np.asarray(axis, dtype=np.float64))
            if not np.isfinite(norm) or norm == 0.0:
                raise ValidationError(f"joint {desc.name} has a degenerate axis")

    # Adjacency
    for desc, _ in joints.values():
        if desc.parent_link == desc.child_link:
            raise NotATree(f"joint {desc.name} connects link {desc.parent_link} to itself")
        if desc.name not in links[desc.parent_link].child_joints:
            raise NotATree(f"link {desc.parent_link} does not list joint {desc.name} as a child")
        if desc.name not in links[desc.child_link].parent_joints:
            raise NotATree(f"link {desc.child_link} does not list joint {desc.name} as a parent")
    for link in links.values():
        for joint in link.child_joints:
            if joints[joint][0].parent_link != link.name:
                raise NotATree(f"link {link.name} lists joint {joint} whose parent is another link")
        for joint in link.parent_joints:
            if joints[joint][0].child_link != link.name:
                raise NotATree(f"link {link.name} lists joint {joint} whose child is another link")
        if len(link.parent_joints) > 1:
            raise NotATree(f"link {link.name} has {len(link.parent_joints)} parent joints")

    roots = sorted(name for name, link in links.items() if not link.parent_joints)
    if len(roots) != 1:
        raise NotATree(f"expected exactly one root link, found {roots}")

    # Every link reached exactly once from the root
    seen = set()
    stack = [roots[0]]
    while stack:
        name = stack.pop()
        if name in seen:
            raise NotATree(f"link {name} is reachable by more than one path")
        seen.add(name)
        stack.extend(joints[joint][0].child_link for joint in links[name].child_joints)
    unreached = sorted(set(links) - seen)
    if unreached:
        raise NotATree(f"links not connected to root {roots[0]}: {unreached}")

    logger.debug("validated robot: %d links, %d joints, %d frames", len(links), len(joints), len(frames))
