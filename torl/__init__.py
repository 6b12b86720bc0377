"""Train reinforcement-learning agents from a TOML config file."""

__version__ = "0.1.0"