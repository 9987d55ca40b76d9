"""Tests for the transforms module."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_kintree.transforms import Pose, se3, so3


coordinate = st.floats(min_value=-5.0, max_value=5.0, allow_nan=False)
rotvec_component = st.floats(min_value=-1.5, max_value=1.5, allow_nan=False)


# Quaternions
def test_quaternion_to_matrix_identity():
    matrix = so3.from_quaternion(jnp.array([1.0, 0.0, 0.0, 0.0]))
    np.testing.assert_allclose(matrix, jnp.eye(3), atol=1e-12)


def test_matrix_to_quaternion_identity():
    quat = so3.to_quaternion(jnp.eye(3))
    np.testing.assert_allclose(quat, jnp.array([1.0, 0.0, 0.0, 0.0]), atol=1e-12)


def test_quaternion_90_about_y():
    """90° about Y maps X to -Z."""
    quat = jnp.array([np.sqrt(0.5), 0.0, np.sqrt(0.5), 0.0])
    expected = jnp.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])
    np.testing.assert_allclose(so3.from_quaternion(quat), expected, atol=1e-12)
    np.testing.assert_allclose(so3.to_quaternion(expected), quat, atol=1e-12)


def test_matrix_to_quaternion_half_turn():
    """A half turn has w = 0; the pivot must come from the diagonal."""
    R = jnp.diag(jnp.array([1.0, -1.0, -1.0]))  # 180° about X
    quat = so3.to_quaternion(R)
    np.testing.assert_allclose(jnp.abs(quat), jnp.array([0.0, 1.0, 0.0, 0.0]), atol=1e-12)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_quaternion_roundtrip(seed):
    quat = jax.random.uniform(jax.random.PRNGKey(seed), (4,), minval=-1.0, maxval=1.0)
    quat = quat / jnp.linalg.norm(quat)

    quat2 = so3.to_quaternion(so3.from_quaternion(quat))

    # q and -q are the same rotation
    assert float(jnp.abs(jnp.sum(quat * quat2))) > 1.0 - 1e-9


# SO(3)
def test_so3_exp_identity():
    np.testing.assert_allclose(so3.exp(jnp.zeros(3)), jnp.eye(3), atol=1e-12)


def test_so3_log_identity():
    np.testing.assert_allclose(so3.log(jnp.eye(3)), jnp.zeros(3), atol=1e-12)


def test_so3_exp_log_roundtrip():
    rotvec = jnp.array([0.0, 0.0, jnp.pi / 4])
    R = so3.exp(rotvec)
    np.testing.assert_allclose(so3.log(R), rotvec, atol=1e-12)
    np.testing.assert_allclose(so3.exp(so3.log(R)), R, atol=1e-12)


def test_so3_log_small_angle():
    rotvec = jnp.array([1e-9, -2e-9, 0.0])
    np.testing.assert_allclose(so3.log(so3.exp(rotvec)), rotvec, rtol=1e-6, atol=1e-18)


def test_so3_log_half_turn():
    for rotvec in (jnp.array([0.0, 0.0, jnp.pi]), jnp.array([0.0, jnp.pi - 1e-9, 0.0])):
        R = so3.exp(rotvec)
        log_r = so3.log(R)
        np.testing.assert_allclose(jnp.linalg.norm(log_r), jnp.linalg.norm(rotvec), atol=1e-8)
        np.testing.assert_allclose(so3.exp(log_r), R, atol=1e-8)


def test_so3_exp_gradient_at_identity():
    """d exp(w)/dw at w = 0 is the skew generators, with no NaNs."""
    J = jax.jacfwd(so3.exp)(jnp.zeros(3))
    assert jnp.isfinite(J).all()
    for k in range(3):
        np.testing.assert_allclose(J[..., k], so3.skew_symmetric(jnp.eye(3)[k]), atol=1e-12)


def test_so3_inverse():
    R = so3.exp(jnp.array([0.1, 0.2, 0.3]))
    np.testing.assert_allclose(R @ so3.inverse(R), jnp.eye(3), atol=1e-12)


def test_so3_skew_and_vee():
    v = jnp.array([1.0, 2.0, 3.0])
    K = so3.skew_symmetric(v)

    expected = jnp.array([[0.0, -3.0, 2.0], [3.0, 0.0, -1.0], [-2.0, 1.0, 0.0]])
    np.testing.assert_allclose(K, expected)
    np.testing.assert_allclose(K, -K.T)
    np.testing.assert_allclose(so3.vee(K), v)


def test_so3_batch_operations():
    rotvecs = jax.random.uniform(jax.random.PRNGKey(42), (5, 3), minval=-1.0, maxval=1.0)

    R_batch = so3.exp(rotvecs)
    log_batch = so3.log(R_batch)

    assert R_batch.shape == (5, 3, 3)
    assert log_batch.shape == (5, 3)
    np.testing.assert_allclose(log_batch, rotvecs, atol=1e-10)


# SE(3)
def test_se3_exp_log_roundtrip():
    twist = jnp.array([0.5, -1.0, 2.0, 0.3, -0.2, 0.9])
    T = se3.exp(twist)
    np.testing.assert_allclose(se3.log(T), twist, atol=1e-10)


def test_se3_exp_pure_translation():
    T = se3.exp(jnp.array([1.0, 2.0, 3.0, 0.0, 0.0, 0.0]))
    np.testing.assert_allclose(T[:3, :3], jnp.eye(3), atol=1e-12)
    np.testing.assert_allclose(T[:3, 3], jnp.array([1.0, 2.0, 3.0]), atol=1e-12)


def test_se3_apply_batched_points():
    T = se3.from_position_and_rotation(jnp.array([1.0, 2.0, 3.0]), jnp.eye(3))
    points = jnp.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    np.testing.assert_allclose(se3.apply(T, points), points + jnp.array([1.0, 2.0, 3.0]))


@given(
    st.tuples(coordinate, coordinate, coordinate),
    st.tuples(rotvec_component, rotvec_component, rotvec_component),
)
@settings(deadline=None, max_examples=25)
def test_pose_inverse_property(position, rotvec):
    """T ∘ T^-1 is the identity and T^-1 undoes T on points."""
    pose = Pose.from_position_rotvec(jnp.array(position), jnp.array(rotvec))

    np.testing.assert_allclose((pose @ pose.inverse()).matrix, jnp.eye(4), atol=1e-10)

    points = jnp.array([[1.0, -2.0, 0.5], [0.0, 0.0, 0.0]])
    back = pose.inverse().transform_points(pose.transform_points(points))
    np.testing.assert_allclose(back, points, atol=1e-10)


@given(
    st.tuples(coordinate, coordinate, coordinate),
    st.tuples(rotvec_component, rotvec_component, rotvec_component),
)
@settings(deadline=None, max_examples=25)
def test_pose_interpolate_endpoints(position, rotvec):
    start = Pose.from_translation(jnp.array([0.5, 0.0, -1.0]))
    end = Pose.from_position_rotvec(jnp.array(position), jnp.array(rotvec))

    assert start.interpolate(end, 0.0).allclose(start, atol=1e-10)
    assert start.interpolate(end, 1.0).allclose(end, atol=1e-9)


# Pose
def test_pose_compose():
    """Composition applies the right-hand pose first."""
    t1 = Pose.from_translation(jnp.array([1.0, 0.0, 0.0]))
    t2 = Pose.from_pos_quat(jnp.array([0.0, 1.0, 0.0]), jnp.array([np.sqrt(0.5), 0.0, 0.0, np.sqrt(0.5)]))

    transformed = t1.compose(t2).transform_points(jnp.array([1.0, 0.0, 0.0]))

    np.testing.assert_allclose(transformed, jnp.array([1.0, 2.0, 0.0]), atol=1e-12)
    np.testing.assert_allclose((t1 @ t2).matrix, t1.compose(t2).matrix)


def test_pose_interpolate_midpoint():
    start = Pose.identity()
    end = Pose.from_position_rotvec(jnp.zeros(3), jnp.array([0.0, 0.0, jnp.pi / 2]))

    mid = start.interpolate(end, 0.5)

    np.testing.assert_allclose(mid.rotvec, jnp.array([0.0, 0.0, jnp.pi / 4]), atol=1e-12)
    np.testing.assert_allclose(mid.position, jnp.zeros(3), atol=1e-12)


def test_pose_interpolate_translation():
    start = Pose.from_translation(jnp.array([0.0, 0.0, 0.0]))
    end = Pose.from_translation(jnp.array([2.0, -4.0, 1.0]))
    np.testing.assert_allclose(start.interpolate(end, 0.25).position, jnp.array([0.5, -1.0, 0.25]), atol=1e-12)


def test_pose_accessors():
    quat = jnp.array([np.cos(0.3), 0.0, 0.0, np.sin(0.3)])  # 0.6 rad about Z
    pose = Pose.from_pos_quat(jnp.array([1.0, 2.0, 3.0]), quat)

    np.testing.assert_allclose(pose.position, jnp.array([1.0, 2.0, 3.0]))
    np.testing.assert_allclose(pose.quaternion, quat, atol=1e-12)
    np.testing.assert_allclose(pose.rotvec, jnp.array([0.0, 0.0, 0.6]), atol=1e-12)
    np.testing.assert_allclose(Pose.exp(pose.log()).matrix, pose.matrix, atol=1e-12)


def test_pose_from_matrix_validates_shape():
    with pytest.raises(ValueError, match="shape"):
        Pose.from_matrix(jnp.eye(3))
    with pytest.raises(ValueError, match="points"):
        Pose.identity().transform_points(jnp.zeros(4))


def test_pose_is_a_pytree():
    pose = Pose.from_translation(jnp.array([1.0, 2.0, 3.0]))
    doubled = jax.tree_util.tree_map(lambda m: 2.0 * m, pose)
    assert isinstance(doubled, Pose)
    np.testing.assert_allclose(doubled.matrix, 2.0 * pose.matrix)


def test_jit_compatibility():
    @jax.jit
    def compose_inverse(m):
        pose = Pose(m)
        return (pose @ pose.inverse()).matrix

    m = se3.exp(jnp.array([0.1, 0.2, 0.3, 0.4, 0.5, 0.6]))
    np.testing.assert_allclose(compose_inverse(m), jnp.eye(4), atol=1e-12)
