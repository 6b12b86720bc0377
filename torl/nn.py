"""Small fully connected neural networks with manual backpropagation and Adam."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import numpy as np

Grads = list[tuple[np.ndarray, np.ndarray]]


class Activation(Enum):
    """Element-wise activation function of a layer."""

    RELU = "Relu"
    TANH = "Tanh"
    SIGMOID = "Sigmoid"
    LINEAR = "Linear"

    @classmethod
    def from_name(cls, name: str) -> Activation:
        """Look up an activation by its lower-case name; unknown names are linear."""
        return {
            "relu": cls.RELU,
            "tanh": cls.TANH,
            "sigmoid": cls.SIGMOID,
        }.get(name.lower(), cls.LINEAR)

    def apply(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Apply the activation to every element."""
        x = np.asarray(x, dtype=float)
        match self:
            case Activation.RELU:
                return np.maximum(x, 0.0)
            case Activation.TANH:
                return np.tanh(x)
            case Activation.SIGMOID:
                return 1.0 / (1.0 + np.exp(-x))
            case _:
                return x.copy()

    def backward(
        self, grad_out: Sequence[float] | np.ndarray, pre_act: Sequence[float] | np.ndarray
    ) -> np.ndarray:
        """Chain the output gradient through the activation: dL/dz = dL/da * da/dz."""
        g = np.array(grad_out, dtype=float)
        z = np.asarray(pre_act, dtype=float)
        match self:
            case Activation.RELU:
                return np.where(z > 0.0, g, 0.0)
            case Activation.TANH:
                return g * (1.0 - np.tanh(z) ** 2)
            case Activation.SIGMOID:
                s = 1.0 / (1.0 + np.exp(-z))
                return g * s * (1.0 - s)
            case _:
                return g


@dataclass
class Layer:
    """Dense layer; ``weights`` has shape (out, in)."""

    weights: np.ndarray
    biases: np.ndarray
    activation: Activation
    _input: np.ndarray = field(init=False, repr=False, compare=False)
    _pre_act: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.weights = np.asarray(self.weights, dtype=float)
        self.biases = np.asarray(self.biases, dtype=float)
        self._input = np.zeros(self.weights.shape[1])
        self._pre_act = np.zeros(self.weights.shape[0])

    @classmethod
    def create(
        cls, in_size: int, out_size: int, activation: Activation, rng: np.random.Generator
    ) -> Layer:
        """New layer with Xavier/Glorot-normal weights and zero biases."""
        scale = (2.0 / (in_size + out_size)) ** 0.5
        weights = rng.normal(0.0, scale, size=(out_size, in_size))
        return cls(weights, np.zeros(out_size), activation)

    def forward(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Forward pass that remembers input and pre-activation for backprop."""
        self._input = np.array(x, dtype=float)
        self._pre_act = self.weights @ self._input + self.biases
        return self.activation.apply(self._pre_act)

    def infer(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Forward pass without caching."""
        pre_act = self.weights @ np.asarray(x, dtype=float) + self.biases
        return self.activation.apply(pre_act)

    def backward(
        self, grad_out: Sequence[float] | np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (grad_weights, grad_biases, grad_input) for the cached forward pass."""
        grad_pre = self.activation.backward(grad_out, self._pre_act)
        grad_w = np.outer(grad_pre, self._input)
        grad_in = self.weights.T @ grad_pre
        return grad_w, grad_pre, grad_in

    def _to_dict(self) -> dict[str, Any]:
        return {
            "weights": self.weights.tolist(),
            "biases": self.biases.tolist(),
            "activation": self.activation.value,
        }

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Layer:
        return cls(
            np.array(data["weights"], dtype=float),
            np.array(data["biases"], dtype=float),
            Activation(data["activation"]),
        )


@dataclass
class Network:
    """A stack of dense layers."""

    layers: list[Layer]

    @property
    def in_size(self) -> int:
        return self.layers[0].weights.shape[1]

    @property
    def out_size(self) -> int:
        return self.layers[-1].weights.shape[0]

    @classmethod
    def create(
        cls,
        layer_sizes: Sequence[int],
        activations: Sequence[Activation],
        rng: np.random.Generator,
    ) -> Network:
        """Build a network from [input, hidden..., output] sizes and one activation per layer."""
        if len(layer_sizes) < 2:
            raise ValueError("a network needs at least an input and an output size")
        if len(layer_sizes) - 1 != len(activations):
            raise ValueError("need exactly one activation per layer")
        layers = [
            Layer.create(n_in, n_out, act, rng)
            for n_in, n_out, act in zip(layer_sizes, layer_sizes[1:], activations)
        ]
        return cls(layers)

    def forward(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Forward pass with caching, for training."""
        out = np.asarray(x, dtype=float)
        for layer in self.layers:
            out = layer.forward(out)
        return out

    def infer(self, x: Sequence[float] | np.ndarray) -> np.ndarray:
        """Forward pass without caching, for inference."""
        out = np.asarray(x, dtype=float)
        for layer in self.layers:
            out = layer.infer(out)
        return out

    def backward(self, grad_output: Sequence[float] | np.ndarray) -> Grads:
        """Per-layer (grad_weights, grad_biases) for the last cached forward pass."""
        grads: Grads = []
        grad = np.asarray(grad_output, dtype=float)
        for layer in reversed(self.layers):
            gw, gb, grad = layer.backward(grad)
            grads.append((gw, gb))
        grads.reverse()
        return grads

    def copy_weights_from(self, other: Network) -> None:
        """Overwrite this network's parameters with copies of another's."""
        for mine, theirs in zip(self.layers, other.layers):
            mine.weights = theirs.weights.copy()
            mine.biases = theirs.biases.copy()

    def clone(self) -> Network:
        """Independent deep copy."""
        return copy.deepcopy(self)

    def zero_grads(self) -> Grads:
        """Gradient structure of zeros matching this network."""
        return [(np.zeros_like(l.weights), np.zeros_like(l.biases)) for l in self.layers]

    def apply_grads_sgd(self, grads: Grads, lr: float) -> None:
        """Plain gradient-descent step."""
        for layer, (gw, gb) in zip(self.layers, grads):
            layer.weights -= lr * gw
            layer.biases -= lr * gb

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "layers": [layer._to_dict() for layer in self.layers],
            "in_size": self.in_size,
            "out_size": self.out_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Network:
        """Rebuild a network from :meth:`to_dict` output."""
        layers = [Layer._from_dict(item) for item in data["layers"]]
        if not layers:
            raise ValueError("network has no layers")
        return cls(layers)


class Adam:
    """Adam optimizer bound to the shapes of one network."""

    def __init__(
        self,
        net: Network,
        lr: float,
        beta1: float = 0.9,
        beta2: float = 0.999,
        eps: float = 1e-8,
    ) -> None:
        self.lr = lr
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0
        self._m = net.zero_grads()
        self._v = net.zero_grads()

    def step(self, net: Network, grads: Grads) -> None:
        """Apply one bias-corrected Adam update to ``net``."""
        self.t += 1
        bc1 = 1.0 - self.beta1**self.t
        bc2 = 1.0 - self.beta2**self.t
        for layer, (gw, gb), (mw, mb), (vw, vb) in zip(net.layers, grads, self._m, self._v):
            for param, g, m, v in ((layer.weights, gw, mw, vw), (layer.biases, gb, mb, vb)):
                m *= self.beta1
                m += (1.0 - self.beta1) * g
                v *= self.beta2
                v += (1.0 - self.beta2) * g * g
                m_hat = m / bc1
                v_hat = v / bc2
                param -= self.lr * m_hat / (np.sqrt(v_hat) + self.eps)


def add_grads(acc: Grads, other: Grads) -> None:
    """Add ``other`` into ``acc`` in place."""
    for (aw, ab), (ow, ob) in zip(acc, other):
        aw += ow
        ab += ob


def scale_grads(grads: Grads, scale: float) -> None:
    """Multiply every gradient by ``scale`` in place."""
    for gw, gb in grads:
        gw *= scale
        gb *= scale


def softmax(logits: Sequence[float] | np.ndarray) -> np.ndarray:
    """Numerically stable softmax."""
    z = np.asarray(logits, dtype=float)
    exps = np.exp(z - z.max())
    return exps / exps.sum()


def log_prob_softmax(logits: Sequence[float] | np.ndarray, action: int) -> float:
    """Log-probability of ``action`` under the softmax of ``logits``."""
    return float(np.log(max(softmax(logits)[action], 1e-10)))


def build_layer_sizes(state: int, hidden: Sequence[int], actions: int) -> list[int]:
    """[state, hidden..., actions]."""
    return [state, *hidden, actions]


def build_activations(name: str, n_layers: int) -> list[Activation]:
    """Hidden activation for all but the last layer, which is linear."""
    hidden = Activation.from_name(name)
    return [hidden] * (n_layers - 1) + [Activation.LINEAR]


def compute_returns(rewards: Sequence[float], gamma: float) -> np.ndarray:
    """Discounted returns G_t = r_t + gamma * G_{t+1}."""
    returns = np.zeros(len(rewards))
    running = 0.0
    for i in reversed(range(len(rewards))):
        running = rewards[i] + gamma * running
        returns[i] = running
    return returns


def normalize(values: Sequence[float] | np.ndarray) -> np.ndarray:
    """Shift to zero mean and scale to unit (population) standard deviation."""
    v = np.asarray(values, dtype=float)
    mean = v.mean()
    std = max(float(np.sqrt(((v - mean) ** 2).mean())), 1e-8)
    return (v - mean) / std