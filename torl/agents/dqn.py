"""Deep Q-Network agent with experience replay and a target network."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from torl.agents.model import ModelSnapshot
from torl.config import Config
from torl.nn import Adam, Network, add_grads, build_activations, build_layer_sizes


def _last_argmax(values: np.ndarray) -> int:
    """Index of the maximum, preferring the last one on ties."""
    return int(len(values) - 1 - np.argmax(values[::-1]))


@dataclass
class Experience:
    """One stored environment transition."""

    state: list[float]
    action: int
    reward: float
    next_state: list[float]
    done: bool


class ReplayBuffer:
    """Bounded FIFO store of experiences with uniform sampling."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._items: deque[Experience] = deque()

    def push(self, experience: Experience) -> None:
        """Add an experience, evicting the oldest when full."""
        if len(self._items) >= self.capacity and self._items:
            self._items.popleft()
        self._items.append(experience)

    def sample(self, n: int, rng: np.random.Generator) -> list[Experience]:
        """Draw ``n`` experiences uniformly with replacement."""
        if not self._items:
            raise ValueError("cannot sample from an empty replay buffer")
        return [self._items[int(i)] for i in rng.integers(0, len(self._items), size=n)]

    def __len__(self) -> int:
        return len(self._items)


class DqnAgent:
    """Epsilon-greedy Q-learning agent with a periodically synced target network."""

    def __init__(
        self, state_size: int, action_size: int, cfg: Config, rng: np.random.Generator
    ) -> None:
        sizes = build_layer_sizes(state_size, cfg.network.hidden_layers, action_size)
        activations = build_activations(cfg.network.activation, len(sizes) - 1)
        self.online_net = Network.create(sizes, activations, rng)
        self.target_net = self.online_net.clone()
        self.optimizer = Adam(self.online_net, cfg.algorithm.learning_rate)

        dc = cfg.algorithm.dqn
        self.buffer = ReplayBuffer(dc.buffer_size)
        self.epsilon = dc.epsilon_start
        self.epsilon_end = dc.epsilon_end
        self.epsilon_decay = dc.epsilon_decay
        self.gamma = cfg.algorithm.gamma
        self.batch_size = dc.batch_size
        self.target_freq = dc.target_update_freq
        self.warmup = dc.warmup_steps
        self.steps = 0
        self._rng = np.random.default_rng(cfg.environment.seed + 1)
        self.env_name = cfg.environment.name
        self.state_size = state_size
        self.action_size = action_size

    def select_action(self, state: Sequence[float], training: bool) -> int:
        """Epsilon-greedy action when training, greedy otherwise."""
        if training and self._rng.random() < self.epsilon:
            return int(self._rng.integers(0, self.action_size))
        return _last_argmax(self.online_net.infer(state))

    def store_transition(
        self,
        state: Sequence[float],
        action: int,
        reward: float,
        next_state: Sequence[float],
        done: bool,
    ) -> None:
        """Record a transition, decay epsilon and sync the target network when due."""
        self.buffer.push(Experience(list(state), action, reward, list(next_state), done))
        self.epsilon = max(self.epsilon * self.epsilon_decay, self.epsilon_end)
        self.steps += 1
        if self.steps % self.target_freq == 0:
            self.target_net.copy_weights_from(self.online_net)

    def update(self) -> float | None:
        """One gradient step on a sampled mini-batch; None until the buffer is warm."""
        if len(self.buffer) < max(self.warmup, self.batch_size):
            return None

        batch = self.buffer.sample(self.batch_size, self._rng)
        acc = self.online_net.zero_grads()
        total_loss = 0.0
        for exp in batch:
            max_next = 0.0 if exp.done else float(self.target_net.infer(exp.next_state).max())
            target = exp.reward + self.gamma * max_next

            q_pred = self.online_net.forward(exp.state)
            td_err = float(q_pred[exp.action]) - target
            total_loss += td_err * td_err

            grad_out = np.zeros(self.action_size)
            grad_out[exp.action] = 2.0 * td_err / self.batch_size
            add_grads(acc, self.online_net.backward(grad_out))

        self.optimizer.step(self.online_net, acc)
        return total_loss / self.batch_size

    def evaluate(self, state: Sequence[float]) -> int:
        """Greedy action with no exploration."""
        return _last_argmax(self.online_net.infer(state))

    def snapshot(self, episodes: int, best_avg: float) -> ModelSnapshot:
        """Current Q-network as a saveable snapshot."""
        return ModelSnapshot(
            algorithm="dqn",
            environment=self.env_name,
            state_size=self.state_size,
            action_size=self.action_size,
            training_episodes=episodes,
            best_avg_reward=best_avg,
            policy_network=self.online_net.clone(),
            value_network=None,
            metadata={
                "epsilon_final": self.epsilon,
                "total_steps": self.steps,
                "buffer_size": len(self.buffer),
            },
        )

    def save(self, path: str | Path, episodes: int, best_avg: float) -> Path:
        """Write the snapshot to ``path`` (``.json`` added if missing)."""
        return self.snapshot(episodes, best_avg).save(path)