import numpy as np
import pytest

from torl.agents.dqn import DqnAgent, Experience, ReplayBuffer
from torl.agents.model import ModelSnapshot
from torl.config import Config


def make_config(**dqn_overrides):
    dqn = {"batch_size": 4, "warmup_steps": 4, "buffer_size": 10, "target_update_freq": 3}
    dqn.update(dqn_overrides)
    return Config.from_dict(
        {
            "environment": {"name": "cartpole", "seed": 7},
            "network": {"hidden_layers": [8]},
            "algorithm": {"name": "dqn", "learning_rate": 0.01, "dqn": dqn},
            "training": {"episodes": 1},
            "output": {"model_path": "model"},
        }
    )


def make_agent(**dqn_overrides):
    return DqnAgent(4, 2, make_config(**dqn_overrides), np.random.default_rng(0))


def exp(tag):
    return Experience([float(tag)] * 4, 0, float(tag), [0.0] * 4, True)


def test_replay_buffer_evicts_oldest():
    buf = ReplayBuffer(3)
    for i in range(5):
        buf.push(exp(i))
    assert len(buf) == 3
    rewards = {e.reward for e in buf.sample(50, np.random.default_rng(1))}
    assert rewards <= {2.0, 3.0, 4.0}


def test_replay_buffer_sample_size():
    buf = ReplayBuffer(5)
    buf.push(exp(1))
    buf.push(exp(2))
    batch = buf.sample(7, np.random.default_rng(0))
    assert len(batch) == 7
    assert all(e.reward in (1.0, 2.0) for e in batch)


def test_replay_buffer_empty_sample_raises():
    with pytest.raises(ValueError):
        ReplayBuffer(4).sample(1, np.random.default_rng(0))


def test_greedy_selection_matches_q_values():
    agent = make_agent()
    state = [0.1, -0.2, 0.3, 0.05]
    q = agent.online_net.infer(state)
    assert agent.evaluate(state) == int(np.argmax(q))
    assert agent.select_action(state, False) == agent.evaluate(state)


def test_exploration_actions_are_valid():
    agent = make_agent()
    actions = {agent.select_action([0.0] * 4, True) for _ in range(50)}
    assert actions <= {0, 1}


def test_store_transition_decays_epsilon():
    cfg = make_config()
    agent = DqnAgent(4, 2, cfg, np.random.default_rng(0))
    agent.store_transition([0.0] * 4, 1, 1.0, [0.0] * 4, False)
    expected = cfg.algorithm.dqn.epsilon_start * cfg.algorithm.dqn.epsilon_decay
    assert agent.epsilon == pytest.approx(expected)
    assert agent.steps == 1
    assert len(agent.buffer) == 1


def test_epsilon_floors_at_end():
    agent = make_agent(epsilon_decay=0.5, epsilon_end=0.2)
    for _ in range(20):
        agent.store_transition([0.0] * 4, 0, 0.0, [0.0] * 4, False)
    assert agent.epsilon == pytest.approx(0.2)


def test_update_waits_for_warmup():
    agent = make_agent(warmup_steps=6)
    for _ in range(5):
        agent.store_transition([0.0] * 4, 0, 1.0, [0.0] * 4, True)
    assert agent.update() is None
    agent.store_transition([0.0] * 4, 0, 1.0, [0.0] * 4, True)
    loss = agent.update()
    assert loss >= 0.0


def test_target_network_syncs_on_schedule():
    agent = make_agent(target_update_freq=10)
    for _ in range(4):
        agent.store_transition([0.5] * 4, 0, 1.0, [0.0] * 4, True)
    agent.update()
    online = agent.online_net.layers[0].weights
    assert not np.allclose(online, agent.target_net.layers[0].weights)
    for _ in range(6):
        agent.store_transition([0.5] * 4, 0, 1.0, [0.0] * 4, True)
    assert agent.steps == 10
    np.testing.assert_array_equal(
        agent.online_net.layers[0].weights, agent.target_net.layers[0].weights
    )


def test_repeated_updates_reduce_loss_on_fixed_target():
    agent = make_agent()
    for _ in range(10):
        agent.store_transition([0.2, -0.1, 0.4, 0.3], 1, 2.0, [0.0] * 4, True)
    first = agent.update()
    for _ in range(200):
        last = agent.update()
    assert last < first
    assert agent.online_net.infer([0.2, -0.1, 0.4, 0.3])[1] == pytest.approx(2.0, abs=0.3)


def test_same_seed_same_network():
    a = make_agent()
    b = make_agent()
    np.testing.assert_array_equal(a.online_net.layers[0].weights, b.online_net.layers[0].weights)


def test_save_and_load_round_trip(tmp_path):
    agent = make_agent()
    agent.store_transition([0.0] * 4, 0, 1.0, [0.0] * 4, False)
    path = agent.save(tmp_path / "sub" / "cartpole_dqn", 12, 3.5)
    assert path.name == "cartpole_dqn.json"
    snap = ModelSnapshot.load(tmp_path / "sub" / "cartpole_dqn")
    assert snap.algorithm == "dqn"
    assert snap.environment == "cartpole"
    assert snap.training_episodes == 12
    assert snap.best_avg_reward == 3.5
    assert snap.value_network is None
    assert snap.metadata["total_steps"] == 1
    assert snap.metadata["buffer_size"] == 1
    state = [0.1, 0.2, 0.3, 0.4]
    np.testing.assert_allclose(snap.policy_network.infer(state), agent.online_net.infer(state))