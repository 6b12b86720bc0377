import pytest

from torl.agents.model import ModelSnapshot
from torl.config import Config, ConfigError
from torl.trainer import (
    evaluate,
    print_reward_curve,
    print_summary,
    reward_curve,
    sliding_avg,
    train,
)

MAX_STEPS = 15


def make_config(tmp_path, algorithm, **training):
    data = {
        "environment": {
            "name": "gridworld",
            "max_steps": MAX_STEPS,
            "seed": 7,
            "grid_size": [3, 3],
            "obstacle_fraction": 0.0,
        },
        "network": {"hidden_layers": [8], "activation": "tanh"},
        "algorithm": {
            "name": algorithm,
            "learning_rate": 0.01,
            "dqn": {
                "warmup_steps": 8,
                "batch_size": 4,
                "buffer_size": 100,
                "target_update_freq": 5,
            },
            "ppo": {"steps_per_update": 16, "batch_size": 8, "epochs": 1},
        },
        "training": {
            "episodes": 4,
            "log_interval": 2,
            "eval_interval": 2,
            "eval_episodes": 1,
            **training,
        },
        "output": {"model_path": str(tmp_path / "models" / "agent"), "print_curve": True},
    }
    return Config.from_dict(data)


def test_sliding_avg_empty_is_zero():
    assert sliding_avg([], 100) == 0.0


def test_sliding_avg_uses_only_last_window():
    assert sliding_avg([100.0, 5.0, 5.0], 2) == 5.0


def test_sliding_avg_window_larger_than_values():
    values = [3.0, 3.0, 3.0]
    assert sliding_avg(values, 100) == 3.0


def test_sliding_avg_zero_window_is_nan():
    result = sliding_avg([1.0], 0)
    assert str(result) == "nan"


def test_reward_curve_empty():
    assert reward_curve([]) == ""


def test_reward_curve_downsamples_to_width():
    rewards = [float(i) for i in range(120)]
    lines = reward_curve(rewards).rstrip("\n").split("\n")
    assert lines[-2] == "          └" + "─" * 60 + "┘"
    assert lines[-1].endswith("120episodes")
    assert lines[-1].startswith("           0")
    assert len(lines) == 13


def test_reward_curve_constant_rewards():
    lines = reward_curve([2.0] * 10).rstrip("\n").split("\n")
    assert lines[0] == "  Max: 2.0"
    bottom = lines[10]
    top = lines[1]
    assert bottom.endswith("█" * 10)
    assert "┤" in top and top.endswith(" " * 10)
    assert "█" not in top


def test_reward_curve_columns_grow_for_increasing_rewards():
    rewards = [float(i) for i in range(30)]
    lines = reward_curve(rewards).rstrip("\n").split("\n")
    rows = lines[1:11]
    width = len(rewards)
    columns = [sum(row[-width:][col] == "█" for row in rows) for col in range(width)]
    assert columns == sorted(columns)
    assert columns[-1] == 10
    assert columns[0] == 1


def test_print_reward_curve_prints_heading(capsys):
    print_reward_curve([1.0, 2.0, 3.0])
    out = capsys.readouterr().out
    assert "Reward Curve" in out
    assert "3episodes" in out


def test_print_reward_curve_empty_prints_nothing(capsys):
    print_reward_curve([])
    assert capsys.readouterr().out == ""


def test_print_summary(tmp_path, capsys):
    cfg = make_config(tmp_path, "dqn")
    print_summary([1.0, 2.0, 3.0], cfg)
    out = capsys.readouterr().out
    assert "Total episodes   : 3" in out
    assert "Best episode     : 3.00" in out
    assert "Training Summary" in out


@pytest.mark.parametrize("algorithm", ["dqn", "reinforce", "ppo"])
def test_train_runs_all_episodes_and_saves(tmp_path, algorithm):
    cfg = make_config(tmp_path, algorithm)
    rewards = train(cfg, False)
    assert len(rewards) == 4
    for r in rewards:
        assert -0.5 * MAX_STEPS <= r <= 10.0
    snapshot = ModelSnapshot.load(cfg.output.model_path)
    assert snapshot.algorithm == algorithm
    assert snapshot.training_episodes == 4
    assert snapshot.policy_network.in_size == 9
    assert snapshot.policy_network.out_size == 4
    assert (snapshot.value_network is not None) == (algorithm == "ppo")


@pytest.mark.parametrize("algorithm", ["dqn", "reinforce"])
def test_train_stops_at_target_reward(tmp_path, algorithm, capsys):
    cfg = make_config(tmp_path, algorithm, target_reward=-1000.0)
    rewards = train(cfg, False)
    assert len(rewards) == 1
    assert "Target" in capsys.readouterr().out


def test_ppo_stops_at_target_reward(tmp_path):
    cfg = make_config(tmp_path, "ppo", target_reward=-1000.0, episodes=50, log_interval=1)
    rewards = train(cfg, False)
    assert 1 <= len(rewards) < 50


def test_train_verbose_logs_episodes(tmp_path, capsys):
    cfg = make_config(tmp_path, "reinforce")
    train(cfg, True)
    out = capsys.readouterr().out
    assert "[ep     0]" in out
    assert "Reward Curve" in out


def test_train_unknown_algorithm(tmp_path):
    cfg = make_config(tmp_path, "dqn")
    cfg.algorithm.name = "sarsa"
    with pytest.raises(ConfigError):
        train(cfg, False)


def test_train_rejects_zero_log_interval(tmp_path):
    cfg = make_config(tmp_path, "dqn", log_interval=0)
    with pytest.raises(ConfigError):
        train(cfg, False)


def test_train_rejects_zero_ppo_steps(tmp_path):
    cfg = make_config(tmp_path, "ppo")
    cfg.algorithm.ppo.steps_per_update = 0
    with pytest.raises(ConfigError):
        train(cfg, False)


def test_evaluate_saved_model(tmp_path, capsys):
    cfg = make_config(tmp_path, "reinforce")
    train(cfg, False)
    capsys.readouterr()
    rewards = evaluate(cfg, cfg.output.model_path, 3)
    assert len(rewards) == 3
    for r in rewards:
        assert -0.5 * MAX_STEPS <= r <= 10.0
    out = capsys.readouterr().out
    assert "Mean reward" in out
    assert "reinforce" in out


def test_evaluate_is_deterministic_for_greedy_policy(tmp_path):
    cfg = make_config(tmp_path, "dqn")
    train(cfg, False)
    first = evaluate(cfg, cfg.output.model_path + ".json", 2)
    second = evaluate(cfg, cfg.output.model_path, 2)
    assert first == second


def test_evaluate_missing_model(tmp_path):
    cfg = make_config(tmp_path, "dqn")
    with pytest.raises(FileNotFoundError):
        evaluate(cfg, str(tmp_path / "nowhere"), 1)