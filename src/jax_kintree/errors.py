"""Exception hierarchy for jax_kintree.

Structural problems with a robot description surface as ``ValidationError``
subclasses. Bad per-call queries surface as ``FKError`` or ``IKError``.
IK non-convergence is not an error: it is reported as an ``Approx`` solution.
"""


class KinematicsError(Exception):
    """Base class for all jax_kintree errors."""


# Structural errors
class ValidationError(KinematicsError):
    """The robot description is not a consistent kinematic tree."""


class DanglingReference(ValidationError):
    """An entity refers to a link, joint or frame that does not exist."""

    def __init__(self, referencer: str, missing_name: str):
        self.referencer = referencer
        self.missing_name = missing_name
        super().__init__(f"{referencer} references unknown entity {missing_name}")


class NotATree(ValidationError):
    """The link/joint adjacency is disconnected, cyclic or inconsistent."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Robot is not a tree: {reason}")


# Model errors
class RobotModelError(KinematicsError):
    """Invalid access or mutation of a robot model."""


class UnknownLink(RobotModelError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown link: {name}")


class UnknownJoint(RobotModelError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown joint: {name}")


class StateTypeMismatch(RobotModelError, ValidationError):
    """A joint state variant does not match the joint's declared type."""

    def __init__(self, name: str, expected: str, got: str):
        self.name = name
        self.expected = expected
        self.got = got
        super().__init__(f"Joint {name} expects {expected}, got {got}")


# Query errors
class FKError(KinematicsError):
    """Forward kinematics query failed."""


class WrongJointName(FKError):
    """Requested pose of a frame that is not defined."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Wrong joint name: {name}")


UnknownFrame = WrongJointName


class JointOutOfRange(FKError):
    """Query asked to move a joint outside of its range."""

    def __init__(self, name: str, value: float):
        self.name = name
        self.value = value
        super().__init__(f"Joint {name} position {value:g} exceeds range")


class IKError(KinematicsError):
    """Inverse kinematics query failed."""


class NotSolvable(IKError):
    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__("Pose is not solvable")


class WrongTipName(IKError):
    """Requested to solve for a tip that has no defined frame."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid tip name: {name}")
