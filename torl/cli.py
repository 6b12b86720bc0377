"""Command-line interface: train, evaluate and generate sample configs."""

from __future__ import annotations

import argparse
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.text import Text

from torl import trainer
from torl.config import Config, ConfigError, generate_sample_config

_VERSION = "0.1.0"

_console = Console(highlight=False, soft_wrap=True, emoji=False)
_err_console = Console(stderr=True, highlight=False, soft_wrap=True, emoji=False)

_LOGO = r"""
████████╗ ██████╗ ██████╗ ██╗
╚══██╔══╝██╔═══██╗██╔══██╗██║
   ██║   ██║   ██║██████╔╝██║
   ██║   ██║   ██║██╔══██╗██║
   ██║   ╚██████╔╝██║  ██║███████╗
   ╚═╝    ╚═════╝ ╚═╝  ╚═╝╚══════╝
"""

_EXAMPLES = """\
EXAMPLES:
    torl train -c examples/cartpole_dqn.toml
    torl train -c config.toml --output ./my_model -v
    torl eval  -c examples/cartpole_dqn.toml -m ./models/cartpole_dqn
    torl init  --algorithm ppo --env cartpole -o my_config.toml"""


class CommandError(Exception):
    """A command failed; the message is what the user sees."""


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with the train, eval and init sub-commands."""
    parser = argparse.ArgumentParser(
        prog="torl",
        description="Train RL agents from a TOML config file — no code required",
        epilog=_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"torl {_VERSION}")
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    train = commands.add_parser("train", help="Train an RL agent from a TOML config file")
    train.add_argument(
        "-c", "--config", required=True, type=Path, metavar="FILE",
        help="Path to the TOML config file",
    )
    train.add_argument(
        "-o", "--output", type=Path, metavar="PATH",
        help="Override the model output path from config",
    )
    train.add_argument(
        "-v", "--verbose", action="store_true", help="Print per-episode details (verbose)"
    )

    ev = commands.add_parser("eval", help="Evaluate a saved model")
    ev.add_argument(
        "-c", "--config", required=True, type=Path, metavar="FILE",
        help="Path to the TOML config file (used for environment settings)",
    )
    ev.add_argument(
        "-m", "--model", required=True, type=Path, metavar="PATH",
        help="Path to the saved model (with or without .json extension)",
    )
    ev.add_argument(
        "-e", "--episodes", type=int, default=10, help="Number of evaluation episodes"
    )

    init = commands.add_parser("init", help="Generate a sample TOML config file")
    init.add_argument(
        "-a", "--algorithm", default="dqn",
        help="Algorithm to generate config for (dqn | reinforce | ppo)",
    )
    init.add_argument(
        "-e", "--env", default="cartpole",
        help="Environment to generate config for (cartpole | mountain_car | gridworld)",
    )
    init.add_argument(
        "-o", "--output", type=Path, default=Path("config.toml"),
        help="Output path for the generated config",
    )
    return parser


def _sci(value: float) -> str:
    """Scientific notation with no fractional digits and a bare exponent, e.g. 1e-3."""
    mantissa, exponent = f"{value:.0e}".split("e")
    return f"{mantissa}e{int(exponent)}"


def _plain(value: float) -> str:
    """Shortest decimal form of a float, without exponent or trailing '.0'."""
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" in text or "E" in text:
        return format(Decimal(text), "f")
    return text


def print_banner() -> None:
    """Print the logo and a one-line description."""
    _console.print(_LOGO, style="bright_cyan", markup=False)
    _console.print(
        "  Train RL models from TOML config — zero code required!",
        style="bold bright_white",
        markup=False,
    )
    _console.print(
        "  Algorithms: DQN · REINFORCE · PPO   |   Envs: CartPole · MountainCar · GridWorld",
        style="bright_black",
        markup=False,
    )
    _console.print()


def config_summary(cfg: Config) -> list[tuple[str, str]]:
    """Labelled settings shown before training, general ones first."""
    rows = [
        ("Environment:", cfg.environment.name),
        ("Max steps:", str(cfg.environment.max_steps)),
        ("Algorithm:", cfg.algorithm.name.upper()),
        ("Learning rate:", _sci(cfg.algorithm.learning_rate)),
        ("Gamma:", _plain(cfg.algorithm.gamma)),
        ("Hidden layers:", str(list(cfg.network.hidden_layers))),
        ("Activation:", cfg.network.activation),
        ("Episodes:", str(cfg.training.episodes)),
        ("Output path:", f"{cfg.output.model_path}.json"),
        ("Seed:", str(cfg.environment.seed)),
    ]
    match cfg.algorithm.name:
        case "dqn":
            d = cfg.algorithm.dqn
            rows += [
                ("Replay buffer:", str(d.buffer_size)),
                ("Batch size:", str(d.batch_size)),
                ("Epsilon start:", _plain(d.epsilon_start)),
                ("Target sync:", f"every {d.target_update_freq} steps"),
            ]
        case "ppo":
            p = cfg.algorithm.ppo
            rows += [
                ("Clip ε:", _plain(p.clip_epsilon)),
                ("Update epochs:", str(p.epochs)),
                ("Steps/update:", str(p.steps_per_update)),
                ("GAE λ:", _plain(p.gae_lambda)),
            ]
        case "reinforce":
            r = cfg.algorithm.reinforce
            rows += [
                ("Baseline:", r.baseline),
                ("Normalize returns:", "true" if r.normalize_returns else "false"),
            ]
    return rows


def print_config_summary(cfg: Config) -> None:
    """Print the configuration summary between section rules."""
    line = "─" * 48
    _console.print(f"── Config {line}", style="bold cyan", markup=False)
    for key, value in config_summary(cfg):
        _console.print(
            Text.assemble("  ", (f"{key:<22}", "bright_black"), " ", (value, "bright_white"))
        )
    _console.print(f"── Training {line}", style="bold cyan", markup=False)
    _console.print()


def _load_config(path: Path) -> Config:
    try:
        return Config.load(path)
    except ConfigError as exc:
        raise CommandError(str(exc)) from exc


def _run_train(args: argparse.Namespace) -> None:
    cfg = _load_config(args.config)
    if args.output is not None:
        cfg.output.model_path = str(args.output)
    try:
        cfg.validate()
    except ConfigError as exc:
        raise CommandError(f"Config validation failed: {exc}") from exc

    print_config_summary(cfg)
    try:
        trainer.train(cfg, args.verbose)
    except (ValueError, OSError) as exc:
        raise CommandError(f"Training failed: {exc}") from exc
    _console.print("\n✅  Done! Model saved successfully.", style="bold green", markup=False)


def _run_eval(args: argparse.Namespace) -> None:
    cfg = _load_config(args.config)
    try:
        trainer.evaluate(cfg, str(args.model), args.episodes)
    except (ValueError, OSError) as exc:
        raise CommandError(f"Evaluation failed: {exc}") from exc


def _run_init(args: argparse.Namespace) -> None:
    sample = generate_sample_config(args.algorithm, args.env)
    try:
        args.output.write_text(sample, encoding="utf-8")
    except OSError as exc:
        raise CommandError(f"Cannot write to '{args.output}': {exc}") from exc
    _console.print(
        Text.assemble(
            ("✅  Sample config for ", "green"),
            (args.algorithm, "yellow"),
            (" + ", "green"),
            (args.env, "yellow"),
            (" written to: ", "green"),
            (str(args.output), "bright_white"),
        )
    )
    _console.print()
    _console.print("── Preview ─────────────────────────────────", style="cyan", markup=False)
    _console.print(sample, markup=False)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line; return the process exit status."""
    args = build_parser().parse_args(argv)
    print_banner()
    handlers = {"train": _run_train, "eval": _run_eval, "init": _run_init}
    try:
        handlers[args.command](args)
    except CommandError as exc:
        _err_console.print(f"Error: {exc}", style="red", markup=False)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())