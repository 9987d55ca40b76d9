"""Solver configuration."""

from dataclasses import dataclass, fields
from typing import Any, Mapping

import yaml


@dataclass(frozen=True)
class IKConfig:
    # Termination
    max_iterations: int = 100
    tolerance: float = 1e-6
    stagnation_steps: int = 20
    stagnation_tolerance: float = 1e-12  # relative residual decrease that counts as progress

    # Step
    damping: float = 1e-2
    max_step: float = 0.5
    rotation_weight: float = 1.0

    # Finite-difference Jacobian
    fd_epsilon: float = 1e-6

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            # zero rotation weight solves for tip positions only
            if f.name == "rotation_weight" and value == 0:
                continue
            if value <= 0:
                raise ValueError(f"IKConfig.{f.name} must be positive, got {value}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IKConfig":
        known = {f.name: f.type for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"unknown IK config keys: {unknown}")
        kwargs = {}
        for name, value in data.items():
            kwargs[name] = int(value) if known[name] in (int, "int") else float(value)
        return cls(**kwargs)


def load_ik_config(path: str) -> IKConfig:
    """Load an ``IKConfig`` from YAML; settings may sit under an ``ik:`` key."""
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if "ik" in data:
        data = data["ik"] or {}
    return IKConfig.from_dict(data)
