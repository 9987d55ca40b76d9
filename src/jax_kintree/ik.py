"""Inverse kinematics by damped least squares.

The solver iterates on a private joint vector: FK for every tip, a stacked
6-D error per tip, a Jacobian, then the step

    dq = J^T (J J^T + damping^2 I)^-1 e

The damping follows the Levenberg-Marquardt gain ratio: the actual decrease
of the squared residual over the decrease the linearised model predicted.
A trial step is kept only if that ratio is positive and the residual norm
drops, so the current vector is always the best one seen. The Jacobian
strategy is what distinguishes the concrete solvers
(``AutodiffIKSolver`` and ``FiniteDifferenceIKSolver``). Non-convergence is
reported as an ``Approx`` solution carrying the best vector seen; only
targets that no joint can influence raise ``NotSolvable``.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .chain import frame_transforms, stacked_jacobian
from .config import IKConfig
from .core import Robot
from .errors import NotSolvable, WrongTipName
from .transforms import Pose, so3

logger = logging.getLogger(__name__)

Tip = Tuple[str, Pose]

_DAMPING_MIN = 1e-6
_DAMPING_MAX = 1e2
# actual over predicted decrease of the squared residual
_GAIN_ACCEPT = 1e-3
_GAIN_STIFFEN = 0.25
_GAIN_RELAX = 0.75


class SolutionKind(enum.Enum):
    EXACT = "exact"
    APPROX = "approx"


@dataclass(frozen=True, eq=False)
class IKSolution:
    """Result of an IK query; either ``Exact`` or ``Approx``.

    ``joint_values`` spans every degree of freedom in canonical joint order.
    """
    joint_values: Array

    kind: ClassVar[SolutionKind]

    def get_any_solution(self) -> Array:
        """Joint vector, regardless of the exact/approx tag."""
        return self.joint_values

    def is_exact(self) -> bool:
        return self.kind is SolutionKind.EXACT

    def is_approx(self) -> bool:
        return self.kind is SolutionKind.APPROX


@dataclass(frozen=True, eq=False)
class Exact(IKSolution):
    """Residual is within tolerance."""
    kind: ClassVar[SolutionKind] = SolutionKind.EXACT


@dataclass(frozen=True, eq=False)
class Approx(IKSolution):
    """Best vector found without converging, and the tip poses it achieves."""
    tips: Tuple[Tip, ...] = ()
    residual: float = float("nan")

    kind: ClassVar[SolutionKind] = SolutionKind.APPROX


def pose_errors(current: Array, target: Array, rotation_weight: float = 1.0) -> Array:
    """
    Per-tip error twists.

    Args:
        current: (m, 4, 4) achieved transforms
        target: (m, 4, 4) desired transforms

    Returns:
        (m, 6) array of [p* - p, w * log(R* R^T)], both in world coordinates
    """
    dp = target[:, :3, 3] - current[:, :3, 3]
    dR = jnp.matmul(target[:, :3, :3], jnp.swapaxes(current[:, :3, :3], -1, -2))
    return jnp.concatenate([dp, rotation_weight * so3.log(dR)], axis=-1)


class IKSolver(ABC):
    """Inverse kinematics capability."""

    @abstractmethod
    def solve_inverse_pose(
        self,
        tips: Sequence[Tip],
        initial_guess: Optional[Sequence[float]] = None,
    ) -> IKSolution:
        """Compute joint values that place each tip frame at its pose."""


class DampedLeastSquaresIK(IKSolver):
    """Damped least-squares iteration shared by the concrete solvers."""

    def __init__(self, robot: Robot, config: Optional[IKConfig] = None):
        self.index = robot.index  # validates the structure
        self.robot = robot
        self.config = config or IKConfig()
        self._compiled: Dict[Tuple[str, ...], Tuple[Callable, Callable]] = {}

    @abstractmethod
    def _make_jacobian(self, frame_names: Tuple[str, ...], fk: Callable[[Array], Array]) -> Callable[[Array], Array]:
        """Return ``q -> (6 * len(frame_names), dof)`` Jacobian."""

    def _functions(self, frame_names: Tuple[str, ...]) -> Tuple[Callable, Callable]:
        if frame_names not in self._compiled:
            fk = jax.jit(lambda q: frame_transforms(self.robot, q, frame_names))
            self._compiled[frame_names] = (fk, self._make_jacobian(frame_names, fk))
        return self._compiled[frame_names]

    def _initial_vector(self, initial_guess: Optional[Sequence[float]]) -> Array:
        if initial_guess is None:
            q = self.robot.joint_values()
        else:
            q = jnp.asarray(np.asarray(initial_guess, dtype=np.float64).reshape(-1))
            if q.shape[0] != self.index.dof:
                raise ValueError(f"initial guess size mismatch: expected {self.index.dof}, got {q.shape[0]}")
            if not bool(jnp.all(jnp.isfinite(q))):
                raise ValueError("initial guess must be finite")
        return jnp.clip(q, self.index.lower, self.index.upper)

    def _step(self, q: Array, J: Array, error: Array, damping: float) -> Tuple[Array, float]:
        """Trial vector and the squared-residual decrease the linear model predicts for it."""
        cfg = self.config
        weights = jnp.tile(jnp.array([1.0, 1.0, 1.0] + [cfg.rotation_weight] * 3), error.shape[0] // 6)
        Jw = J * weights[:, None]
        A = Jw @ Jw.T + damping ** 2 * jnp.eye(Jw.shape[0])
        dq = Jw.T @ jnp.linalg.solve(A, error)

        max_abs = float(jnp.max(jnp.abs(dq)))
        if max_abs > cfg.max_step:
            dq = dq * (cfg.max_step / max_abs)
        q_trial = jnp.clip(q + dq, self.index.lower, self.index.upper)

        # prediction for the step actually taken, after scaling and clamping
        model = error - Jw @ (q_trial - q)
        predicted = float(error @ error - model @ model)
        return q_trial, predicted

    def solve_inverse_pose(
        self,
        tips: Sequence[Tip],
        initial_guess: Optional[Sequence[float]] = None,
    ) -> IKSolution:
        tips = tuple(tips)
        if not tips:
            raise ValueError("at least one tip is required")
        names = tuple(name for name, _ in tips)
        for name in names:
            if name not in self.index.frame_ids:
                raise WrongTipName(name)

        cfg = self.config
        targets = jnp.stack([pose.matrix for _, pose in tips])
        q = self._initial_vector(initial_guess)
        fk, jac = self._functions(names)

        def residual(q):
            error = pose_errors(fk(q), targets, cfg.rotation_weight).reshape(-1)
            return error, float(jnp.linalg.norm(error))

        # Tips with no joint on their path can only match by construction
        static = [i for i, name in enumerate(names) if not self.index.frame_slots(name)]
        if static:
            errors = pose_errors(fk(q), targets, cfg.rotation_weight)
            for i in static:
                if float(jnp.linalg.norm(errors[i])) > cfg.tolerance:
                    raise NotSolvable(f"tip {names[i]} is not moved by any joint")
            if len(static) == len(names):
                return Exact(q)

        error, norm = residual(q)
        damping = cfg.damping
        stalled = 0
        for iteration in range(cfg.max_iterations):
            if norm <= cfg.tolerance:
                return Exact(q)
            if stalled >= cfg.stagnation_steps:
                logger.info("IK stagnated after %d iterations, residual %.3e", iteration, norm)
                break

            q_trial, predicted = self._step(q, jac(q), error, damping)
            error_trial, norm_trial = residual(q_trial)
            gain = (norm ** 2 - norm_trial ** 2) / predicted if predicted > 0.0 else -1.0
            logger.debug("IK iteration %d: residual %.3e, trial %.3e, gain %.2f, damping %.1e",
                         iteration, norm, norm_trial, gain, damping)

            # Levenberg-Marquardt damping schedule
            if gain > _GAIN_RELAX:
                damping = max(damping * 0.7, _DAMPING_MIN)
            elif gain < _GAIN_STIFFEN:
                damping = min(damping * 2.0, _DAMPING_MAX)

            if gain > _GAIN_ACCEPT and norm_trial < norm * (1.0 - cfg.stagnation_tolerance):
                q, error, norm = q_trial, error_trial, norm_trial
                stalled = 0
            else:
                stalled += 1
        else:
            if norm <= cfg.tolerance:
                return Exact(q)
            logger.info("IK did not converge in %d iterations, residual %.3e", cfg.max_iterations, norm)

        achieved = fk(q)
        return Approx(
            q,
            tips=tuple((name, Pose(T)) for name, T in zip(names, achieved)),
            residual=norm,
        )


class AutodiffIKSolver(DampedLeastSquaresIK):
    """Jacobian from forward-mode autodiff through FK."""

    def _make_jacobian(self, frame_names, fk):
        return stacked_jacobian(self.robot, frame_names)


class FiniteDifferenceIKSolver(DampedLeastSquaresIK):
    """Jacobian from central differences of FK, one joint slot at a time."""

    def _make_jacobian(self, frame_names, fk):
        h = self.config.fd_epsilon

        def jac(q: Array) -> Array:
            columns = []
            for j in range(q.shape[0]):
                dq = jnp.zeros_like(q).at[j].set(h)
                T_plus, T_minus = fk(q + dq), fk(q - dq)
                dp = (T_plus[:, :3, 3] - T_minus[:, :3, 3]) / (2.0 * h)
                dR = jnp.matmul(T_plus[:, :3, :3], jnp.swapaxes(T_minus[:, :3, :3], -1, -2))
                omega = so3.log(dR) / (2.0 * h)
                columns.append(jnp.concatenate([dp, omega], axis=-1).reshape(-1))
            return jnp.stack(columns, axis=1)

        return jac


SOLVERS = {
    "autodiff": AutodiffIKSolver,
    "finite_difference": FiniteDifferenceIKSolver,
}


def solve(
    robot: Robot,
    tips: Sequence[Tip],
    initial_guess: Optional[Sequence[float]] = None,
    config: Optional[IKConfig] = None,
    method: str = "autodiff",
) -> IKSolution:
    """Solve IK for ``tips`` with the solver named by ``method``."""
    try:
        solver_cls = SOLVERS[method]
    except KeyError:
        raise ValueError(f"unknown IK method '{method}', expected one of {sorted(SOLVERS)}") from None
    return solver_cls(robot, config).solve_inverse_pose(tips, initial_guess)
