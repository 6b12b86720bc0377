"""Reinforcement-learning environments: CartPole, MountainCar and GridWorld."""

from __future__ import annotations

import math
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from torl.config import ConfigError, EnvironmentConfig


@dataclass
class StepResult:
    """Outcome of one environment step."""

    next_state: list[float]
    reward: float
    done: bool
    info: str = ""


class Environment(ABC):
    """Common interface of every environment."""

    name: str = ""

    @property
    @abstractmethod
    def state_size(self) -> int:
        """Length of the observation vector."""

    @property
    @abstractmethod
    def action_size(self) -> int:
        """Number of discrete actions."""

    @abstractmethod
    def reset(self) -> list[float]:
        """Start a new episode and return the first observation."""

    @abstractmethod
    def step(self, action: int) -> StepResult:
        """Apply an action and advance one time step."""

    @abstractmethod
    def render(self) -> str:
        """Human-readable summary of the current state."""


class CartPole(Environment):
    """Classic cart-pole balancing with the standard physics constants."""

    name = "CartPole"

    GRAVITY = 9.8
    MASSCART = 1.0
    MASSPOLE = 0.1
    TOTAL_MASS = MASSCART + MASSPOLE
    LENGTH = 0.5
    POLEMASS_LENGTH = MASSPOLE * LENGTH
    FORCE_MAG = 10.0
    TAU = 0.02
    THETA_THRESH = 12.0 * math.pi / 180.0
    X_THRESH = 2.4

    def __init__(self, max_steps: int, seed: int) -> None:
        self.state = [0.0, 0.0, 0.0, 0.0]
        self.steps = 0
        self.max_steps = max_steps
        self._rng = random.Random(seed)

    @property
    def state_size(self) -> int:
        return 4

    @property
    def action_size(self) -> int:
        return 2

    def reset(self) -> list[float]:
        self.state = [self._rng.uniform(-0.05, 0.05) for _ in range(4)]
        self.steps = 0
        return list(self.state)

    def step(self, action: int) -> StepResult:
        force = self.FORCE_MAG if action == 1 else -self.FORCE_MAG
        x, x_dot, theta, theta_dot = self.state

        cos_th = math.cos(theta)
        sin_th = math.sin(theta)
        tmp = (force + self.POLEMASS_LENGTH * theta_dot * theta_dot * sin_th) / self.TOTAL_MASS
        theta_acc = (self.GRAVITY * sin_th - cos_th * tmp) / (
            self.LENGTH * (4.0 / 3.0 - self.MASSPOLE * cos_th * cos_th / self.TOTAL_MASS)
        )
        x_acc = tmp - self.POLEMASS_LENGTH * theta_acc * cos_th / self.TOTAL_MASS

        self.state = [
            x + self.TAU * x_dot,
            x_dot + self.TAU * x_acc,
            theta + self.TAU * theta_dot,
            theta_dot + self.TAU * theta_acc,
        ]
        self.steps += 1

        done = (
            abs(self.state[0]) > self.X_THRESH
            or abs(self.state[2]) > self.THETA_THRESH
            or self.steps >= self.max_steps
        )
        return StepResult(next_state=list(self.state), reward=1.0, done=done)

    def render(self) -> str:
        x, _, theta, _ = self.state
        return f"cart_pos={x:.3f}  pole_angle={math.degrees(theta):.2f}°"


class MountainCar(Environment):
    """Under-powered car that must rock back and forth to climb a hill."""

    name = "MountainCar"

    POWER = 0.001
    GRAVITY = 0.0025
    MIN_POS = -1.2
    MAX_POS = 0.6
    MAX_SPEED = 0.07
    GOAL_POS = 0.5

    def __init__(self, max_steps: int, seed: int) -> None:
        self.position = -0.6
        self.velocity = 0.0
        self.steps = 0
        self.max_steps = max_steps
        self._rng = random.Random(seed)

    @property
    def state_size(self) -> int:
        return 2

    @property
    def action_size(self) -> int:
        return 3

    def reset(self) -> list[float]:
        self.position = self._rng.uniform(-0.6, -0.4)
        self.velocity = 0.0
        self.steps = 0
        return [self.position, self.velocity]

    def step(self, action: int) -> StepResult:
        # 0 = push left, 1 = no push, 2 = push right
        force = {0: -1.0, 2: 1.0}.get(action, 0.0)

        self.velocity += force * self.POWER - self.GRAVITY * math.cos(3.0 * self.position)
        self.velocity = min(max(self.velocity, -self.MAX_SPEED), self.MAX_SPEED)
        self.position += self.velocity
        self.position = min(max(self.position, self.MIN_POS), self.MAX_POS)

        if self.position == self.MIN_POS and self.velocity < 0.0:
            self.velocity = 0.0
        self.steps += 1

        reached_goal = self.position >= self.GOAL_POS
        done = reached_goal or self.steps >= self.max_steps
        return StepResult(
            next_state=[self.position, self.velocity],
            reward=100.0 if reached_goal else -1.0,
            done=done,
            info="Goal reached!" if reached_goal else "",
        )

    def render(self) -> str:
        bar_len = 40
        frac = (self.position - self.MIN_POS) / (self.MAX_POS - self.MIN_POS)
        car = int(frac * bar_len)
        bar = "".join("▲" if i == car else "─" for i in range(bar_len))
        return f"[{bar}] pos={self.position:.3f}  vel={self.velocity:.4f}"


class GridWorld(Environment):
    """Rectangular grid with random obstacles; the observation is a one-hot cell.

    Actions: 0 = up, 1 = down, 2 = left, 3 = right.
    """

    name = "GridWorld"

    _MOVES = {0: (-1, 0), 1: (1, 0), 2: (0, -1)}

    def __init__(
        self,
        rows: int,
        cols: int,
        obstacle_fraction: float,
        max_steps: int,
        seed: int,
    ) -> None:
        if rows < 1 or cols < 1:
            raise ValueError("grid dimensions must be at least 1x1")
        self.rows = rows
        self.cols = cols
        self.max_steps = max_steps
        self.start = (0, 0)
        self.goal = (rows - 1, cols - 1)
        self._rng = random.Random(seed)

        n_obstacles = int(rows * cols * obstacle_fraction)
        free_cells = rows * cols - len({self.start, self.goal})
        if n_obstacles > free_cells:
            raise ValueError("obstacle_fraction leaves no room for the requested obstacles")

        self.obstacles: list[tuple[int, int]] = []
        while len(self.obstacles) < n_obstacles:
            c = self._rng.randrange(cols)
            r = self._rng.randrange(rows)
            pos = (r, c)
            if pos not in (self.start, self.goal) and pos not in self.obstacles:
                self.obstacles.append(pos)

        self.agent = self.start
        self.steps = 0

    @property
    def state_size(self) -> int:
        return self.rows * self.cols

    @property
    def action_size(self) -> int:
        return 4

    def _encode_state(self) -> list[float]:
        state = [0.0] * (self.rows * self.cols)
        r, c = self.agent
        state[r * self.cols + c] = 1.0
        return state

    def is_obstacle(self, row: int, col: int) -> bool:
        """Whether the cell holds an obstacle."""
        return (row, col) in self.obstacles

    def reset(self) -> list[float]:
        self.agent = self.start
        self.steps = 0
        return self._encode_state()

    def step(self, action: int) -> StepResult:
        dr, dc = self._MOVES.get(action, (0, 1))
        r, c = self.agent
        nr = min(max(r + dr, 0), self.rows - 1)
        nc = min(max(c + dc, 0), self.cols - 1)

        blocked = self.is_obstacle(nr, nc)
        if not blocked:
            self.agent = (nr, nc)
        self.steps += 1

        at_goal = self.agent == self.goal
        done = at_goal or self.steps >= self.max_steps
        if at_goal:
            reward = 10.0
        elif blocked:
            reward = -0.5
        else:
            reward = -0.1
        return StepResult(
            next_state=self._encode_state(),
            reward=reward,
            done=done,
            info="Goal!" if at_goal else "",
        )

    def _cell_char(self, cell: tuple[int, int]) -> str:
        if cell == self.agent:
            return "A"
        if cell == self.goal:
            return "G"
        if cell == self.start:
            return "S"
        if cell in self.obstacles:
            return "█"
        return "·"

    def render(self) -> str:
        return "".join(
            "".join(f"{self._cell_char((r, c))} " for c in range(self.cols)) + "\n"
            for r in range(self.rows)
        )


def create_env(cfg: EnvironmentConfig) -> Environment:
    """Instantiate the environment named in the configuration."""
    match cfg.name:
        case "cartpole":
            return CartPole(cfg.max_steps, cfg.seed)
        case "mountain_car":
            return MountainCar(cfg.max_steps, cfg.seed)
        case "gridworld":
            rows, cols = cfg.grid_size
            return GridWorld(rows, cols, cfg.obstacle_fraction, cfg.max_steps, cfg.seed)
        case other:
            raise ConfigError(f"Unknown environment: '{other}'")