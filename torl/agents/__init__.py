"""Learning agents: DQN, REINFORCE and PPO, plus model snapshots."""