"""Training loops for every algorithm, model evaluation and console reporting."""

from __future__ import annotations

import math
from typing import Callable, Sequence

import numpy as np
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from torl.agents.dqn import DqnAgent
from torl.agents.model import ModelSnapshot, Transition
from torl.agents.ppo import PpoAgent
from torl.agents.reinforce import ReinforceAgent
from torl.config import Config, ConfigError
from torl.env import Environment, create_env
from torl.nn import softmax

_console = Console(highlight=False, soft_wrap=True, emoji=False)

_CURVE_WIDTH = 60
_CURVE_HEIGHT = 10


class _ProgressReporter:
    """Episode progress bar with a status message and out-of-band log lines."""

    def __init__(self, total: int, algo: str) -> None:
        self._progress = Progress(
            SpinnerColumn(style="green"),
            TimeElapsedColumn(),
            BarColumn(bar_width=40, complete_style="cyan", finished_style="blue"),
            MofNCompleteColumn(),
            TextColumn(f"{algo} |", markup=False),
            TextColumn("{task.fields[msg]}", markup=False),
            console=_console,
        )
        self._task = self._progress.add_task("", total=total, msg="")

    def __enter__(self) -> _ProgressReporter:
        self._progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def message(self, text: str) -> None:
        self._progress.update(self._task, msg=text)

    def println(self, text: str, style: str | None = None) -> None:
        self._progress.console.print(text, style=style, markup=False)

    def advance(self) -> None:
        self._progress.advance(self._task)

    def finish(self, text: str) -> None:
        self._progress.update(self._task, msg=text)


def _last_argmax(values: np.ndarray) -> int:
    """Index of the maximum, preferring the last one on ties."""
    return int(len(values) - 1 - np.argmax(values[::-1]))


def _check_intervals(cfg: Config) -> None:
    if cfg.training.log_interval == 0:
        raise ConfigError("training.log_interval must be > 0")
    if cfg.training.eval_interval == 0:
        raise ConfigError("training.eval_interval must be > 0")


def sliding_avg(values: Sequence[float], window: int) -> float:
    """Mean of the last ``window`` values; 0.0 for an empty sequence."""
    if not values:
        return 0.0
    take = min(len(values), window)
    if take == 0:
        return float("nan")
    return sum(values[-take:]) / take


def train(cfg: Config, verbose: bool = False) -> list[float]:
    """Train the configured agent, save it and return the per-episode rewards."""
    _check_intervals(cfg)
    match cfg.algorithm.name:
        case "dqn":
            return _train_dqn(cfg, verbose)
        case "reinforce":
            return _train_reinforce(cfg, verbose)
        case "ppo":
            return _train_ppo(cfg, verbose)
        case other:
            raise ConfigError(f"Unknown algorithm: '{other}'")


def _run_eval(policy: Callable[[list[float]], int], env: Environment, cfg: Config) -> float:
    """Average total reward of a greedy policy over the configured eval episodes."""
    total = 0.0
    for _ in range(cfg.training.eval_episodes):
        state = env.reset()
        while True:
            result = env.step(policy(state))
            total += result.reward
            state = result.next_state
            if result.done:
                break
    if cfg.training.eval_episodes == 0:
        return float("nan")
    return total / cfg.training.eval_episodes


def _checkpoint(
    agent: DqnAgent | ReinforceAgent | PpoAgent,
    cfg: Config,
    bar: _ProgressReporter,
    episode: int,
    avg100: float,
    best_avg: float,
    target_text: Callable[[float], str],
) -> tuple[float, bool]:
    """Save a new best model and report whether the target reward is reached."""
    if cfg.training.save_best and avg100 > best_avg:
        best_avg = avg100
        agent.save(cfg.output.model_path, episode, best_avg)
    target = cfg.training.target_reward
    if target is not None and avg100 >= target:
        bar.println(target_text(target), style="bold green")
        return best_avg, True
    return best_avg, False


def _report_eval(bar: _ProgressReporter, episode: int, reward: float) -> None:
    bar.println(f"  ✔ eval (ep {episode:>5}): avg_reward={reward:.2f}", style="cyan")


def _finish(
    agent: DqnAgent | ReinforceAgent | PpoAgent, cfg: Config, rewards: list[float], best_avg: float
) -> None:
    agent.save(cfg.output.model_path, cfg.training.episodes, best_avg)
    print_summary(rewards, cfg)
    if cfg.output.print_curve:
        print_reward_curve(rewards)


def _train_dqn(cfg: Config, verbose: bool) -> list[float]:
    env = create_env(cfg.environment)
    rng = np.random.default_rng(cfg.environment.seed)
    agent = DqnAgent(env.state_size, env.action_size, cfg, rng)

    ep_rewards: list[float] = []
    losses: list[float] = []
    best_avg = float("-inf")

    with _ProgressReporter(cfg.training.episodes, "DQN") as bar:
        for episode in range(cfg.training.episodes):
            state = env.reset()
            ep_reward = 0.0
            while True:
                action = agent.select_action(state, True)
                result = env.step(action)
                agent.store_transition(
                    state, action, result.reward, result.next_state, result.done
                )
                loss = agent.update()
                if loss is not None:
                    losses.append(loss)
                ep_reward += result.reward
                state = result.next_state
                if result.done:
                    break
            ep_rewards.append(ep_reward)

            if episode % cfg.training.log_interval == 0:
                avg100 = sliding_avg(ep_rewards, 100)
                recent = losses[-100:]
                avg_loss = sum(recent) / len(recent) if recent else 0.0
                bar.message(
                    f"ep {episode:>5} | reward {ep_reward:>7.1f} | avg100 {avg100:>7.1f} "
                    f"| ε {agent.epsilon:.3f} | loss {avg_loss:.4f}"
                )
                if verbose:
                    bar.println(
                        f"  [ep {episode:>5}] reward={ep_reward:.1f}  avg100={avg100:.1f}  "
                        f"ε={agent.epsilon:.3f}  loss={avg_loss:.4f}"
                    )
                best_avg, stop = _checkpoint(
                    agent,
                    cfg,
                    bar,
                    episode,
                    avg100,
                    best_avg,
                    lambda target: (
                        f"  🎯 Target reward {target:.1f} reached at episode {episode}!"
                    ),
                )
                if stop:
                    break

            if episode % cfg.training.eval_interval == 0 and episode > 0:
                _report_eval(bar, episode, _run_eval(agent.evaluate, env, cfg))

            bar.advance()
        bar.finish("Training complete!")

    _finish(agent, cfg, ep_rewards, best_avg)
    return ep_rewards


def _train_reinforce(cfg: Config, verbose: bool) -> list[float]:
    env = create_env(cfg.environment)
    rng = np.random.default_rng(cfg.environment.seed)
    agent = ReinforceAgent(env.state_size, env.action_size, cfg, rng)

    ep_rewards: list[float] = []
    best_avg = float("-inf")

    with _ProgressReporter(cfg.training.episodes, "REINFORCE") as bar:
        for episode in range(cfg.training.episodes):
            state = env.reset()
            states: list[list[float]] = []
            actions: list[int] = []
            rewards: list[float] = []
            while True:
                action, _ = agent.select_action(state, rng)
                result = env.step(action)
                states.append(state)
                actions.append(action)
                rewards.append(result.reward)
                state = result.next_state
                if result.done:
                    break

            ep_reward = sum(rewards)
            ep_rewards.append(ep_reward)
            loss = agent.update(states, actions, rewards)

            if episode % cfg.training.log_interval == 0:
                avg100 = sliding_avg(ep_rewards, 100)
                bar.message(
                    f"ep {episode:>5} | reward {ep_reward:>7.1f} | avg100 {avg100:>7.1f} "
                    f"| loss {loss:.4f}"
                )
                if verbose:
                    bar.println(
                        f"  [ep {episode:>5}] reward={ep_reward:.1f}  avg100={avg100:.1f}  "
                        f"loss={loss:.4f}"
                    )
                best_avg, stop = _checkpoint(
                    agent,
                    cfg,
                    bar,
                    episode,
                    avg100,
                    best_avg,
                    lambda _target: f"  🎯 Target reached at episode {episode}!",
                )
                if stop:
                    break

            if episode % cfg.training.eval_interval == 0 and episode > 0:
                _report_eval(bar, episode, _run_eval(agent.greedy_action, env, cfg))

            bar.advance()
        bar.finish("Training complete!")

    _finish(agent, cfg, ep_rewards, best_avg)
    return ep_rewards


def _train_ppo(cfg: Config, verbose: bool) -> list[float]:
    steps_per_update = cfg.algorithm.ppo.steps_per_update
    if steps_per_update == 0:
        raise ConfigError("algorithm.ppo.steps_per_update must be > 0")

    env = create_env(cfg.environment)
    rng = np.random.default_rng(cfg.environment.seed)
    agent = PpoAgent(env.state_size, env.action_size, cfg, rng)

    ep_rewards: list[float] = []
    best_avg = float("-inf")
    current_reward = 0.0
    completed = 0
    state = env.reset()

    with _ProgressReporter(cfg.training.episodes, "PPO") as bar:
        while True:
            trajectory: list[Transition] = []
            for _ in range(steps_per_update):
                action, log_prob, value = agent.select_action(state)
                result = env.step(action)
                trajectory.append(
                    Transition(
                        state=state,
                        action=action,
                        reward=result.reward,
                        next_state=result.next_state,
                        done=result.done,
                        log_prob=log_prob,
                        value=value,
                    )
                )
                current_reward += result.reward
                state = result.next_state
                if result.done:
                    ep_rewards.append(current_reward)
                    current_reward = 0.0
                    completed += 1
                    bar.advance()
                    state = env.reset()
                    if completed >= cfg.training.episodes:
                        break

            last_value = (
                0.0 if trajectory and trajectory[-1].done else agent.value_estimate(state)
            )
            actor_loss, critic_loss = agent.update(trajectory, last_value)

            episode = completed
            if episode % cfg.training.log_interval == 0 and episode > 0:
                avg100 = sliding_avg(ep_rewards, 100)
                ep_reward = ep_rewards[-1] if ep_rewards else 0.0
                bar.message(
                    f"ep {episode:>5} | reward {ep_reward:>7.1f} | avg100 {avg100:>7.1f} "
                    f"| actor {actor_loss:.4f} | critic {critic_loss:.4f}"
                )
                if verbose:
                    bar.println(
                        f"  [ep {episode:>5}] reward={ep_reward:.1f}  avg100={avg100:.1f}  "
                        f"a_loss={actor_loss:.4f}  c_loss={critic_loss:.4f}"
                    )
                best_avg, stop = _checkpoint(
                    agent,
                    cfg,
                    bar,
                    episode,
                    avg100,
                    best_avg,
                    lambda _target: f"  🎯 Target reached at episode {episode}!",
                )
                if stop:
                    break

            if episode % cfg.training.eval_interval == 0 and episode > 0:
                _report_eval(bar, episode, _run_eval(agent.greedy_action, env, cfg))

            if completed >= cfg.training.episodes:
                break
        bar.finish("Training complete!")

    _finish(agent, cfg, ep_rewards, best_avg)
    return ep_rewards


def evaluate(cfg: Config, model_path: str, n_episodes: int = 10) -> list[float]:
    """Run a saved model greedily; print and return the reward of each episode."""
    _console.print("\n── Evaluation ──────────────────────────────", style="bold cyan")

    snapshot = ModelSnapshot.load(model_path)
    _console.print(f"  Model     : {model_path}", markup=False)
    _console.print(f"  Algorithm : {snapshot.algorithm}", markup=False)
    _console.print(f"  Env       : {snapshot.environment}", markup=False)
    _console.print(f"  Trained   : {snapshot.training_episodes} episodes", markup=False)
    _console.print(f"  Best avg  : {snapshot.best_avg_reward:.2f}\n", markup=False)

    env = create_env(cfg.environment)
    rewards: list[float] = []
    for ep in range(n_episodes):
        state = env.reset()
        total = 0.0
        for _ in range(cfg.environment.max_steps):
            probs = softmax(snapshot.policy_network.infer(state))
            result = env.step(_last_argmax(probs))
            total += result.reward
            state = result.next_state
            if result.done:
                break
        _console.print(f"  Episode {ep + 1:>3}: reward = {total:.2f}", markup=False)
        rewards.append(total)

    mean = sum(rewards) / len(rewards) if rewards else float("nan")
    best = max(rewards, default=float("-inf"))
    worst = min(rewards, default=float("inf"))

    _console.print("\n── Results ─────────────────────────────────", style="bold cyan")
    _console.print(f"  Mean reward : {mean:.2f}", markup=False)
    _console.print(f"  Max  reward : {best:.2f}", markup=False)
    _console.print(f"  Min  reward : {worst:.2f}", markup=False)
    return rewards


def print_summary(rewards: Sequence[float], cfg: Config) -> None:
    """Print overall statistics of a training run."""
    _console.print("\n── Training Summary ────────────────────────", style="bold cyan")
    mean = sliding_avg(rewards, len(rewards))
    last = sliding_avg(rewards, 100)
    best = max(rewards, default=float("-inf"))
    _console.print(f"  Total episodes   : {len(rewards)}", markup=False)
    _console.print(f"  Overall mean     : {mean:.2f}", markup=False)
    _console.print(f"  Last-100 avg     : {last:.2f}", markup=False)
    _console.print(f"  Best episode     : {best:.2f}", markup=False)
    _console.print(f"  Model saved to   : {cfg.output.model_path}.json", markup=False)


def reward_curve(rewards: Sequence[float]) -> str:
    """ASCII chart of rewards down-sampled to at most 60 columns; empty for no rewards."""
    if not rewards:
        return ""

    step = math.ceil(len(rewards) / _CURVE_WIDTH)
    sampled = [
        sum(rewards[i : i + step]) / len(rewards[i : i + step])
        for i in range(0, len(rewards), step)
    ]
    lo = min(sampled)
    hi = max(sampled)
    span = max(hi - lo, 1.0)

    lines = [f"  Max: {hi:.1f}"]
    for row in reversed(range(_CURVE_HEIGHT)):
        threshold = lo + row / (_CURVE_HEIGHT - 1) * span
        bar = "".join("█" if v >= threshold else " " for v in sampled)
        if row == _CURVE_HEIGHT - 1:
            label = f"{hi:>7.1f} ┤"
        elif row == 0:
            label = f"{lo:>7.1f} ┤"
        else:
            label = "        │"
        lines.append(f"  {label}{bar}")
    lines.append(f"          └{'─' * len(sampled)}┘")
    padding = " " * max(len(sampled) // 2 - 4, 0)
    lines.append(f"           0{padding}{len(rewards)}episodes")
    return "\n".join(lines) + "\n"


def print_reward_curve(rewards: Sequence[float]) -> None:
    """Print the reward chart under a heading; prints nothing for no rewards."""
    if not rewards:
        return
    _console.print("\n── Reward Curve ─────────────────────────────", style="bold cyan")
    _console.print(reward_curve(rewards), markup=False)