import pytest

from torl.config import ConfigError, EnvironmentConfig
from torl.env import CartPole, GridWorld, MountainCar, create_env


def test_cartpole_reset_in_range():
    env = CartPole(max_steps=500, seed=1)
    state = env.reset()
    assert len(state) == env.state_size == 4
    assert all(-0.05 <= v <= 0.05 for v in state)
    assert env.action_size == 2


def test_cartpole_reward_and_termination():
    env = CartPole(max_steps=500, seed=3)
    env.reset()
    steps = 0
    while True:
        result = env.step(1)
        steps += 1
        assert result.reward == 1.0
        if result.done:
            break
    assert steps < 500
    x, _, theta, _ = result.next_state
    assert abs(x) > CartPole.X_THRESH or abs(theta) > CartPole.THETA_THRESH


def test_cartpole_max_steps():
    env = CartPole(max_steps=1, seed=0)
    env.reset()
    assert env.step(0).done is True


def test_cartpole_is_deterministic_for_seed():
    a = CartPole(500, 7)
    b = CartPole(500, 7)
    assert a.reset() == b.reset()
    assert a.step(1).next_state == b.step(1).next_state


def test_cartpole_render():
    env = CartPole(500, 0)
    env.state = [0.0, 0.0, 0.0, 0.0]
    assert env.render() == "cart_pos=0.000  pole_angle=0.00°"


def test_mountain_car_reset():
    env = MountainCar(200, 5)
    pos, vel = env.reset()
    assert -0.6 <= pos <= -0.4
    assert vel == 0.0
    assert env.state_size == 2
    assert env.action_size == 3


def test_mountain_car_regular_step():
    env = MountainCar(200, 5)
    env.reset()
    result = env.step(1)
    assert result.reward == -1.0
    assert result.done is False
    assert result.info == ""
    assert abs(result.next_state[1]) <= MountainCar.MAX_SPEED


def test_mountain_car_reaches_goal():
    env = MountainCar(200, 5)
    env.reset()
    env.position = 0.49
    env.velocity = 0.07
    result = env.step(2)
    assert result.done is True
    assert result.reward == 100.0
    assert result.info == "Goal reached!"
    assert result.next_state[0] >= MountainCar.GOAL_POS


def test_mountain_car_left_wall_stops_car():
    env = MountainCar(200, 5)
    env.reset()
    env.position = -1.19
    env.velocity = -0.07
    result = env.step(0)
    assert result.next_state == [MountainCar.MIN_POS, 0.0]


def test_mountain_car_max_steps():
    env = MountainCar(2, 5)
    env.reset()
    assert env.step(1).done is False
    assert env.step(1).done is True


def test_mountain_car_render_marker_at_left():
    env = MountainCar(200, 0)
    env.position = MountainCar.MIN_POS
    env.velocity = 0.0
    assert env.render().startswith("[▲")


def test_gridworld_obstacles():
    env = GridWorld(6, 6, 0.2, 100, 11)
    assert len(env.obstacles) == int(36 * 0.2)
    assert len(set(env.obstacles)) == len(env.obstacles)
    assert env.start not in env.obstacles
    assert env.goal not in env.obstacles
    assert all(0 <= r < 6 and 0 <= c < 6 for r, c in env.obstacles)
    assert all(env.is_obstacle(r, c) for r, c in env.obstacles)


def test_gridworld_reset_one_hot():
    env = GridWorld(3, 4, 0.0, 50, 0)
    state = env.reset()
    assert len(state) == env.state_size == 12
    assert state[0] == 1.0
    assert sum(state) == 1.0
    assert env.action_size == 4


def test_gridworld_reach_goal():
    env = GridWorld(2, 2, 0.0, 50, 0)
    env.reset()
    first = env.step(3)
    assert first.reward == -0.1
    assert first.done is False
    assert first.next_state[1] == 1.0
    second = env.step(1)
    assert second.reward == 10.0
    assert second.done is True
    assert second.info == "Goal!"
    assert second.next_state[3] == 1.0


def test_gridworld_wall_clamps():
    env = GridWorld(3, 3, 0.0, 50, 0)
    before = env.reset()
    result = env.step(0)
    assert result.next_state == before
    assert result.reward == -0.1


def test_gridworld_obstacle_blocks():
    env = GridWorld(3, 3, 0.0, 50, 0)
    env.obstacles = [(0, 1)]
    before = env.reset()
    result = env.step(3)
    assert result.reward == -0.5
    assert result.next_state == before
    assert env.agent == (0, 0)


def test_gridworld_max_steps():
    env = GridWorld(4, 4, 0.0, 1, 0)
    env.reset()
    assert env.step(0).done is True


def test_gridworld_render():
    env = GridWorld(2, 3, 0.0, 10, 0)
    env.reset()
    lines = env.render().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("A ")
    assert lines[1].endswith("G ")
    assert "S" not in env.render()


def test_gridworld_too_many_obstacles():
    with pytest.raises(ValueError):
        GridWorld(2, 2, 1.0, 10, 0)


def test_create_env_dispatch():
    assert isinstance(create_env(EnvironmentConfig(name="cartpole")), CartPole)
    assert isinstance(create_env(EnvironmentConfig(name="mountain_car")), MountainCar)
    grid = create_env(EnvironmentConfig(name="gridworld", grid_size=(3, 4), obstacle_fraction=0.0))
    assert isinstance(grid, GridWorld)
    assert grid.state_size == 12


def test_create_env_unknown():
    with pytest.raises(ConfigError, match="Unknown environment"):
        create_env(EnvironmentConfig(name="pong"))