# torl

Train reinforcement-learning agents from a TOML config file, with no code to write.

torl has three algorithms: DQN, REINFORCE and PPO. It has three environments: CartPole, MountainCar and GridWorld. The networks are small fully connected networks. They are built on numpy, with their own backpropagation and Adam optimizer. A trained model is saved as a JSON snapshot, and you can evaluate it later.

## Installation

```
pip install .
```

## Quick start

Generate a sample config:

```
torl init --algorithm ppo --env cartpole -o my_config.toml
```

Train an agent from it:

```
torl train -c my_config.toml
torl train -c my_config.toml --output ./my_model -v
```

Evaluate a saved model:

```
torl eval -c my_config.toml -m ./models/cartpole_ppo --episodes 10
```

## Commands

- `torl train -c FILE [-o PATH] [-v]` trains an agent.
  - It validates the config, prints a summary and then trains with a progress bar.
  - It saves the model to `<model_path>.json`. When `save_best` is on, it also saves whenever the 100-episode average improves.
  - At the end it prints a summary, and an ASCII reward curve if `print_curve` is set.
  - `-o` overrides `output.model_path`.
  - `-v` prints a line every time progress is logged.
- `torl eval -c FILE -m PATH [-e N]` runs a saved model greedily for `N` episodes (default 10) and prints each reward with the mean, max and min.
  - The config supplies the environment settings.
  - The `.json` extension of the model path is optional.
- `torl init [-a ALGO] [-e ENV] [-o FILE]` writes a sample config and prints it.
  - The defaults are `dqn`, `cartpole` and `config.toml`.
- `torl --version` prints the version.

Errors are printed to standard error, and the command exits with status 1. This covers an unreadable or invalid config, a failed validation, and a model file that is missing or malformed.

## Config layout

```toml
[environment]
name          = "cartpole"      # cartpole | mountain_car | gridworld
max_steps     = 500
seed          = 42
# grid_size = [5, 5]  and  obstacle_fraction = 0.1  for gridworld

[network]
hidden_layers = [128, 64]
activation    = "relu"          # relu | tanh | sigmoid | linear

[algorithm]
name          = "dqn"           # dqn | reinforce | ppo
gamma         = 0.99
learning_rate = 1e-3

[algorithm.dqn]
epsilon_start      = 1.0
epsilon_end        = 0.01
epsilon_decay      = 0.995
buffer_size        = 10000
batch_size         = 64
target_update_freq = 100
warmup_steps       = 500

[training]
episodes      = 600
log_interval  = 10
eval_interval = 50
eval_episodes = 5
save_best     = true
# target_reward = 475.0   # stop early once the 100-episode average reaches it

[output]
model_path  = "./models/cartpole_dqn"
print_curve = true
```

The `[environment]`, `[network]`, `[algorithm]`, `[training]` and `[output]` tables are required. So are `environment.name`, `network.hidden_layers`, `algorithm.name`, `training.episodes` and `output.model_path`. Every other key has the default shown.

PPO settings go in `[algorithm.ppo]`:

- `clip_epsilon`
- `epochs`
- `batch_size`
- `steps_per_update`
- `gae_lambda`
- `entropy_coef`
- `value_coef`

REINFORCE settings go in `[algorithm.reinforce]`:

- `normalize_returns`
- `baseline`, which is `"none"` or `"mean"`

Validation rejects the following:

- unknown environment, algorithm or activation names
- an empty `hidden_layers`
- a `gamma` outside (0, 1]
- a `learning_rate` that is not positive
- zero `episodes` or zero `max_steps`

Training also rejects a zero `log_interval`, a zero `eval_interval`, or a zero PPO `steps_per_update`.

## Using it from Python

```python
from torl.config import Config
from torl.trainer import train, evaluate

cfg = Config.load("my_config.toml")
cfg.validate()
rewards = train(cfg, verbose=False)      # per-episode rewards
results = evaluate(cfg, cfg.output.model_path, 5)
```

The building blocks can be used on their own:

- `torl.env.create_env`, or the `CartPole`, `MountainCar` and `GridWorld` classes
- `torl.nn.Network` and `torl.nn.Adam`
- the agents in `torl.agents.dqn`, `torl.agents.reinforce` and `torl.agents.ppo`
- `torl.agents.model.ModelSnapshot`, which loads and saves models

## What it does not do

- Training runs on the CPU with numpy only. There is no GPU support and no deep-learning framework.
- Models are saved only as JSON snapshots. The `output.format` key is read but has no effect.
- Training always starts from freshly initialised networks. A saved snapshot cannot be used to resume training.
- The environments have a text `render()` method, but the commands never show episodes visually.

## Running the tests

```
pip install .[test]
pytest
```