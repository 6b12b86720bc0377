[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "torl"
version = "0.1.0"
description = "Train reinforcement-learning agents from a TOML config file, no code required"
requires-python = ">=3.11"
keywords = ["reinforcement-learning", "dqn", "ppo", "reinforce", "toml", "cartpole"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]
dependencies = [
    "numpy",
    "rich",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
torl = "torl.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["torl"]

[tool.pytest.ini_options]
addopts = "-ra"
