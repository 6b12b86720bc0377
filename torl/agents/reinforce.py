"""REINFORCE: Monte-Carlo policy gradient."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np

from torl.agents.model import ModelSnapshot
from torl.config import Config
from torl.nn import (
    Adam,
    Network,
    add_grads,
    build_activations,
    build_layer_sizes,
    compute_returns,
    normalize,
    scale_grads,
    softmax,
)


def _last_argmax(values: np.ndarray) -> int:
    """Index of the maximum, preferring the last one on ties."""
    return int(len(values) - 1 - np.argmax(values[::-1]))


class ReinforceAgent:
    """Softmax policy trained by the REINFORCE policy-gradient rule."""

    def __init__(
        self, state_size: int, action_size: int, cfg: Config, rng: np.random.Generator
    ) -> None:
        sizes = build_layer_sizes(state_size, cfg.network.hidden_layers, action_size)
        activations = build_activations(cfg.network.activation, len(sizes) - 1)
        self.network = Network.create(sizes, activations, rng)
        self.optimizer = Adam(self.network, cfg.algorithm.learning_rate)
        self.gamma = cfg.algorithm.gamma
        self.normalize = cfg.algorithm.reinforce.normalize_returns
        self.baseline = cfg.algorithm.reinforce.baseline
        self.env_name = cfg.environment.name
        self.state_size = state_size
        self.action_size = action_size

    def select_action(
        self, state: Sequence[float], rng: np.random.Generator
    ) -> tuple[int, float]:
        """Sample an action from the policy; return it with its log-probability."""
        probs = softmax(self.network.infer(state))
        u = rng.random()
        action = int(np.searchsorted(np.cumsum(probs), u, side="left"))
        if action >= len(probs):
            action = self.action_size - 1
        return action, float(np.log(max(probs[action], 1e-10)))

    def greedy_action(self, state: Sequence[float]) -> int:
        """Most probable action."""
        return _last_argmax(softmax(self.network.infer(state)))

    def update(
        self,
        states: Sequence[Sequence[float]],
        actions: Sequence[int],
        rewards: Sequence[float],
    ) -> float:
        """One gradient step over a finished episode; return the mean policy loss."""
        if not states:
            raise ValueError("cannot update on an empty episode")
        returns = compute_returns(rewards, self.gamma)
        if self.baseline == "mean":
            returns = returns - returns.mean()
        if self.normalize and len(returns) > 1:
            returns = normalize(returns)

        acc = self.network.zero_grads()
        total_loss = 0.0
        for state, action, g in zip(states, actions, returns):
            probs = softmax(self.network.forward(state))
            total_loss += -g * float(np.log(max(probs[action], 1e-10)))
            grad_out = probs.copy()
            grad_out[action] -= 1.0
            add_grads(acc, self.network.backward(g * grad_out))

        n = len(states)
        scale_grads(acc, 1.0 / n)
        self.optimizer.step(self.network, acc)
        return total_loss / n

    def snapshot(self, episodes: int, best_avg: float) -> ModelSnapshot:
        """Current policy as a saveable snapshot."""
        return ModelSnapshot(
            algorithm="reinforce",
            environment=self.env_name,
            state_size=self.state_size,
            action_size=self.action_size,
            training_episodes=episodes,
            best_avg_reward=best_avg,
            policy_network=self.network.clone(),
            value_network=None,
            metadata={"baseline": self.baseline},
        )

    def save(self, path: str | Path, episodes: int, best_avg: float) -> Path:
        """Write the snapshot to ``path`` (``.json`` added if missing)."""
        return self.snapshot(episodes, best_avg).save(path)