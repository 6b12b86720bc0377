"""Saved model snapshots and shared trajectory records."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from torl.nn import Network


def model_file_path(path: str | Path) -> Path:
    """Append ``.json`` to a model path unless it already ends with it."""
    text = str(path)
    return Path(text if text.endswith(".json") else f"{text}.json")


@dataclass
class ModelSnapshot:
    """Trained networks plus the information needed to reuse them."""

    algorithm: str
    environment: str
    state_size: int
    action_size: int
    training_episodes: int
    best_avg_reward: float
    policy_network: Network
    value_network: Network | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation; non-finite rewards become null."""
        reward = self.best_avg_reward if math.isfinite(self.best_avg_reward) else None
        data: dict[str, Any] = {
            "algorithm": self.algorithm,
            "environment": self.environment,
            "state_size": self.state_size,
            "action_size": self.action_size,
            "training_episodes": self.training_episodes,
            "best_avg_reward": reward,
            "policy_network": self.policy_network.to_dict(),
        }
        if self.value_network is not None:
            data["value_network"] = self.value_network.to_dict()
        data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelSnapshot:
        """Rebuild a snapshot; a null best reward reads back as negative infinity."""
        try:
            reward = data["best_avg_reward"]
            value = data.get("value_network")
            return cls(
                algorithm=data["algorithm"],
                environment=data["environment"],
                state_size=int(data["state_size"]),
                action_size=int(data["action_size"]),
                training_episodes=int(data["training_episodes"]),
                best_avg_reward=float("-inf") if reward is None else float(reward),
                policy_network=Network.from_dict(data["policy_network"]),
                value_network=None if value is None else Network.from_dict(value),
                metadata=data["metadata"],
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed model snapshot: {exc}") from exc

    def save(self, path: str | Path) -> Path:
        """Write the snapshot as pretty JSON, creating parent directories; return the file."""
        parent = Path(path).parent
        if str(parent):
            parent.mkdir(parents=True, exist_ok=True)
        full_path = model_file_path(path)
        full_path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return full_path

    @classmethod
    def load(cls, path: str | Path) -> ModelSnapshot:
        """Read a snapshot written by :meth:`save`."""
        text = model_file_path(path).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(text))


@dataclass
class ActionResult:
    """Chosen action and, when a critic exists, its value estimate."""

    action: int
    value: float | None = None


@dataclass
class Transition:
    """One environment step recorded for trajectory-based agents."""

    state: list[float]
    action: int
    reward: float
    next_state: list[float]
    done: bool
    log_prob: float
    value: float