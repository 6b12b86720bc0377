"""Training configuration: schema, TOML loading, validation and sample files."""

import dataclasses
import tomllib
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

VALID_ENVIRONMENTS = ("cartpole", "mountain_car", "gridworld")
VALID_ALGORITHMS = ("dqn", "reinforce", "ppo")
VALID_ACTIVATIONS = ("relu", "tanh", "sigmoid", "linear")


class ConfigError(ValueError):
    """Raised when a configuration cannot be read, parsed or validated."""


@dataclass
class EnvironmentConfig:
    """Which environment to run and how."""

    name: str
    max_steps: int = 500
    seed: int = 42
    grid_size: tuple[int, int] = (5, 5)
    obstacle_fraction: float = 0.1


@dataclass
class NetworkConfig:
    """Hidden layer sizes and their activation."""

    hidden_layers: list[int]
    activation: str = "relu"


@dataclass
class DqnConfig:
    """Settings specific to DQN."""

    epsilon_start: float = 1.0
    epsilon_end: float = 0.01
    epsilon_decay: float = 0.995
    buffer_size: int = 10_000
    batch_size: int = 64
    target_update_freq: int = 100
    warmup_steps: int = 500


@dataclass
class PpoConfig:
    """Settings specific to PPO."""

    clip_epsilon: float = 0.2
    epochs: int = 4
    batch_size: int = 64
    steps_per_update: int = 512
    learning_rate: float = 1e-3
    gae_lambda: float = 0.95
    entropy_coef: float = 0.01
    value_coef: float = 0.5


@dataclass
class ReinforceConfig:
    """Settings specific to REINFORCE."""

    normalize_returns: bool = True
    baseline: str = "mean"


@dataclass
class AlgorithmConfig:
    """Learning algorithm and its hyper-parameters."""

    name: str
    gamma: float = 0.99
    learning_rate: float = 1e-3
    optimizer: str = "adam"
    dqn: DqnConfig = field(default_factory=DqnConfig)
    ppo: PpoConfig = field(default_factory=PpoConfig)
    reinforce: ReinforceConfig = field(default_factory=ReinforceConfig)


@dataclass
class TrainingConfig:
    """Length of training, logging and evaluation cadence."""

    episodes: int
    log_interval: int = 10
    eval_interval: int = 100
    eval_episodes: int = 5
    save_best: bool = True
    target_reward: float | None = None


@dataclass
class OutputConfig:
    """Where and how the trained model is written."""

    model_path: str
    format: str = "json"
    print_curve: bool = True


def _convert(value: Any, tp: Any, where: str) -> Any:
    if dataclasses.is_dataclass(tp):
        if not isinstance(value, dict):
            raise ConfigError(f"{where}: expected a table")
        return _build(tp, value, where)
    if tp is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"{where}: expected a boolean")
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{where}: expected an integer")
        if value < 0:
            raise ConfigError(f"{where}: expected a non-negative integer")
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{where}: expected a number")
        return float(value)
    if tp is str:
        if not isinstance(value, str):
            raise ConfigError(f"{where}: expected a string")
        return value

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin in (types.UnionType, typing.Union):
        if value is None:
            return None
        inner = next(a for a in args if a is not type(None))
        return _convert(value, inner, where)
    if origin is tuple:
        if not isinstance(value, list) or len(value) != len(args):
            raise ConfigError(f"{where}: expected an array of {len(args)} elements")
        return tuple(
            _convert(item, item_tp, f"{where}[{pos}]")
            for pos, (item, item_tp) in enumerate(zip(value, args))
        )
    if origin is list:
        if not isinstance(value, list):
            raise ConfigError(f"{where}: expected an array")
        return [_convert(item, args[0], f"{where}[{pos}]") for pos, item in enumerate(value)]
    raise ConfigError(f"{where}: unsupported type")


def _build(cls: type, table: dict[str, Any], where: str) -> Any:
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = f"{where}.{f.name}" if where else f.name
        if f.name in table:
            kwargs[f.name] = _convert(table[f.name], f.type, key)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise ConfigError(f"missing field `{key}`")
    return cls(**kwargs)


@dataclass
class Config:
    """Complete training configuration."""

    environment: EnvironmentConfig
    network: NetworkConfig
    algorithm: AlgorithmConfig
    training: TrainingConfig
    output: OutputConfig

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a configuration from parsed TOML data."""
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a table")
        return _build(cls, data, "")

    @classmethod
    def from_toml(cls, text: str) -> "Config":
        """Parse a configuration from TOML text."""
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """Read and parse a TOML configuration file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read config file '{path}': {exc}") from exc
        try:
            return cls.from_toml(text)
        except ConfigError as exc:
            raise ConfigError(f"Failed to parse TOML in '{path}': {exc}") from exc

    def validate(self) -> None:
        """Raise ConfigError if any setting is out of range or unknown."""
        if self.environment.name not in VALID_ENVIRONMENTS:
            raise ConfigError(
                f"Unknown environment '{self.environment.name}'. "
                f"Valid options: {', '.join(VALID_ENVIRONMENTS)}"
            )
        if self.algorithm.name not in VALID_ALGORITHMS:
            raise ConfigError(
                f"Unknown algorithm '{self.algorithm.name}'. "
                f"Valid options: {', '.join(VALID_ALGORITHMS)}"
            )
        if self.network.activation not in VALID_ACTIVATIONS:
            raise ConfigError(
                f"Unknown activation '{self.network.activation}'. "
                f"Valid options: {', '.join(VALID_ACTIVATIONS)}"
            )
        if not self.network.hidden_layers:
            raise ConfigError("network.hidden_layers must have at least one element")
        if not 0.0 < self.algorithm.gamma <= 1.0:
            raise ConfigError("algorithm.gamma must be in (0, 1]")
        if self.algorithm.learning_rate <= 0.0:
            raise ConfigError("algorithm.learning_rate must be positive")
        if self.training.episodes == 0:
            raise ConfigError("training.episodes must be > 0")
        if self.environment.max_steps == 0:
            raise ConfigError("environment.max_steps must be > 0")


_ENV_PRESETS = {
    "mountain_car": (500, "[128, 128]", 200),
    "gridworld": (300, "[64, 64]", 200),
}
_DEFAULT_PRESET = (600, "[128, 64]", 500)


def _common_head(env: str, max_steps: int, hidden: str, activation: str) -> str:
    return f"""[environment]
name          = "{env}"
max_steps     = {max_steps}
seed          = 42

[network]
hidden_layers = {hidden}
activation    = "{activation}"

"""


def _common_tail(env: str, episodes: int, algo: str) -> str:
    return f"""[training]
episodes       = {episodes}
log_interval   = 10
eval_interval  = 50
eval_episodes  = 5
save_best      = true

[output]
model_path  = "./models/{env}_{algo}"
format      = "json"
print_curve = true
"""


def generate_sample_config(algorithm: str, env: str) -> str:
    """Return a commented-free sample TOML config for an algorithm and environment."""
    episodes, hidden, max_steps = _ENV_PRESETS.get(env, _DEFAULT_PRESET)

    if algorithm == "ppo":
        body = """[algorithm]
name          = "ppo"
gamma         = 0.99
learning_rate = 3e-4
optimizer     = "adam"

[algorithm.ppo]
clip_epsilon    = 0.2
epochs          = 4
batch_size      = 64
steps_per_update = 512
gae_lambda      = 0.95
entropy_coef    = 0.01
value_coef      = 0.5

"""
        return _common_head(env, max_steps, hidden, "tanh") + body + _common_tail(
            env, episodes, "ppo"
        )

    if algorithm == "reinforce":
        body = """[algorithm]
name          = "reinforce"
gamma         = 0.99
learning_rate = 1e-3
optimizer     = "adam"

[algorithm.reinforce]
normalize_returns = true
baseline          = "mean"

"""
        return _common_head(env, max_steps, hidden, "relu") + body + _common_tail(
            env, episodes, "reinforce"
        )

    body = """[algorithm]
name          = "dqn"
gamma         = 0.99
learning_rate = 1e-3
optimizer     = "adam"

[algorithm.dqn]
epsilon_start    = 1.0
epsilon_end      = 0.01
epsilon_decay    = 0.995
buffer_size      = 10000
batch_size       = 64
target_update_freq = 100
warmup_steps     = 500

"""
    return _common_head(env, max_steps, hidden, "relu") + body + _common_tail(
        env, episodes, "dqn"
    )