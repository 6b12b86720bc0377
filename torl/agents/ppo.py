"""Proximal Policy Optimization: actor-critic with clipped surrogate and GAE."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np

from torl.agents.model import ModelSnapshot, Transition
from torl.config import Config
from torl.nn import (
    Adam,
    Network,
    add_grads,
    build_activations,
    build_layer_sizes,
    normalize,
    softmax,
)


def _last_argmax(values: np.ndarray) -> int:
    """Index of the maximum, preferring the last one on ties."""
    return int(len(values) - 1 - np.argmax(values[::-1]))


class PpoAgent:
    """Actor network for the policy, critic network for state values."""

    def __init__(
        self, state_size: int, action_size: int, cfg: Config, rng: np.random.Generator
    ) -> None:
        hidden = cfg.network.hidden_layers
        actor_sizes = build_layer_sizes(state_size, hidden, action_size)
        self.actor = Network.create(
            actor_sizes, build_activations(cfg.network.activation, len(actor_sizes) - 1), rng
        )
        critic_sizes = build_layer_sizes(state_size, hidden, 1)
        self.critic = Network.create(
            critic_sizes, build_activations(cfg.network.activation, len(critic_sizes) - 1), rng
        )
        self.actor_opt = Adam(self.actor, cfg.algorithm.learning_rate)
        self.critic_opt = Adam(self.critic, cfg.algorithm.learning_rate)

        pc = cfg.algorithm.ppo
        self.gamma = cfg.algorithm.gamma
        self.gae_lambda = pc.gae_lambda
        self.clip_eps = pc.clip_epsilon
        self.epochs = pc.epochs
        self.batch_size = pc.batch_size
        self.entropy_coef = pc.entropy_coef
        self.value_coef = pc.value_coef
        self.env_name = cfg.environment.name
        self.state_size = state_size
        self.action_size = action_size
        self._rng = np.random.default_rng(cfg.environment.seed + 99)

    def select_action(self, state: Sequence[float]) -> tuple[int, float, float]:
        """Sample an action; return (action, log_prob, value estimate)."""
        probs = softmax(self.actor.infer(state))
        value = float(self.critic.infer(state)[0])
        u = self._rng.random()
        action = int(np.searchsorted(np.cumsum(probs), u, side="left"))
        if action >= len(probs):
            action = self.action_size - 1
        return action, float(np.log(max(probs[action], 1e-10))), value

    def greedy_action(self, state: Sequence[float]) -> int:
        """Most probable action."""
        return _last_argmax(softmax(self.actor.infer(state)))

    def value_estimate(self, state: Sequence[float]) -> float:
        """Critic estimate of the state's value."""
        return float(self.critic.infer(state)[0])

    def compute_gae(
        self, transitions: Sequence[Transition], last_value: float
    ) -> tuple[np.ndarray, np.ndarray]:
        """Generalised advantage estimates and value targets for a trajectory."""
        n = len(transitions)
        advantages = np.zeros(n)
        returns = np.zeros(n)
        gae = 0.0
        v_next = last_value
        for i in reversed(range(n)):
            t = transitions[i]
            mask = 0.0 if t.done else 1.0
            delta = t.reward + self.gamma * v_next * mask - t.value
            gae = delta + self.gamma * self.gae_lambda * mask * gae
            advantages[i] = gae
            returns[i] = gae + t.value
            v_next = t.value
        return advantages, returns

    def update(
        self, transitions: Sequence[Transition], last_value: float
    ) -> tuple[float, float]:
        """Run the PPO epochs over a trajectory; return (mean actor loss, mean critic loss)."""
        advantages, returns = self.compute_gae(transitions, last_value)
        if len(advantages) > 1:
            advantages = normalize(advantages)

        n = len(transitions)
        total_actor = 0.0
        total_critic = 0.0
        for _ in range(self.epochs):
            order = self._rng.permutation(n)
            for start in range(0, n, self.batch_size):
                chunk = order[start : start + self.batch_size]
                actor_grads = self.actor.zero_grads()
                critic_grads = self.critic.zero_grads()
                bs = float(len(chunk))

                for idx in chunk:
                    t = transitions[idx]
                    adv = float(advantages[idx])
                    ret = float(returns[idx])

                    v_err = float(self.critic.forward(t.state)[0]) - ret
                    total_critic += v_err * v_err
                    grad_v = np.array([2.0 * v_err / bs * self.value_coef])
                    add_grads(critic_grads, self.critic.backward(grad_v))

                    probs = softmax(self.actor.forward(t.state))
                    log_probs = np.log(np.maximum(probs, 1e-10))
                    ratio = float(np.exp(log_probs[t.action] - t.log_prob))
                    clip_r = min(max(ratio, 1.0 - self.clip_eps), 1.0 + self.clip_eps)
                    loss_clip = -min(ratio * adv, clip_r * adv)
                    entropy = float(-(probs * log_probs).sum())
                    total_actor += loss_clip - self.entropy_coef * entropy

                    is_clipped = (adv >= 0.0 and ratio > 1.0 + self.clip_eps) or (
                        adv < 0.0 and ratio < 1.0 - self.clip_eps
                    )
                    if is_clipped:
                        grad_clip = np.zeros(self.action_size)
                    else:
                        onehot = np.zeros(self.action_size)
                        onehot[t.action] = 1.0
                        grad_clip = -adv * ratio * (onehot - probs) / bs
                    grad_entropy = probs * (entropy - log_probs - 1.0) / bs
                    grad_out = grad_clip - self.entropy_coef * grad_entropy
                    add_grads(actor_grads, self.actor.backward(grad_out))

                self.actor_opt.step(self.actor, actor_grads)
                self.critic_opt.step(self.critic, critic_grads)

        n_updates = self.epochs * n
        if n_updates == 0:
            return float("nan"), float("nan")
        return total_actor / n_updates, total_critic / n_updates

    def snapshot(self, episodes: int, best_avg: float) -> ModelSnapshot:
        """Actor and critic as a saveable snapshot."""
        return ModelSnapshot(
            algorithm="ppo",
            environment=self.env_name,
            state_size=self.state_size,
            action_size=self.action_size,
            training_episodes=episodes,
            best_avg_reward=best_avg,
            policy_network=self.actor.clone(),
            value_network=self.critic.clone(),
            metadata={
                "clip_eps": self.clip_eps,
                "epochs": self.epochs,
                "gae_lambda": self.gae_lambda,
            },
        )

    def save(self, path: str | Path, episodes: int, best_avg: float) -> Path:
        """Write the snapshot to ``path`` (``.json`` added if missing)."""
        return self.snapshot(episodes, best_avg).save(path)