"""Element-wise activation functions and a by-name registry of shared instances.

Every activation works in place on a ``numpy`` array (or a writable view of
one) using single-precision arithmetic.
"""

from __future__ import annotations

import numpy as np

__all__ = [
    "relu",
    "sigmoid",
    "hard_tanh",
    "fast_tanh",
    "fast_sigmoid",
    "leaky_relu",
    "Activation",
    "ActivationTanh",
    "ActivationHardTanh",
    "ActivationFastTanh",
    "ActivationReLU",
    "ActivationLeakyReLU",
    "ActivationSigmoid",
    "get_activation",
    "enable_fast_tanh",
    "disable_fast_tanh",
    "is_fast_tanh_enabled",
]

_F = np.float32

# PyTorch's default negative slope.
LEAKY_RELU_NEGATIVE_SLOPE = _F(0.01)

_TANH_A = _F(2.45550750702956)
_TANH_B = _F(0.893229853513558)
_TANH_C = _F(0.821226666969744)
_TANH_D = _F(2.44506634652299)
_TANH_E = _F(0.814642734961073)


def _as_f32(x):
    return np.asarray(x, dtype=_F)[()]


def relu(x):
    """Rectified linear unit."""
    x = _as_f32(x)
    return np.where(x > 0, x, _F(0.0)).astype(_F)[()]


def sigmoid(x):
    """Logistic sigmoid ``1 / (1 + exp(-x))``."""
    x = _as_f32(x)
    with np.errstate(over="ignore"):
        return (_F(1.0) / (_F(1.0) + np.exp(-x))).astype(_F)[()]


def hard_tanh(x):
    """Clamp to the interval [-1, 1]."""
    return np.clip(_as_f32(x), _F(-1.0), _F(1.0)).astype(_F)[()]


def fast_tanh(x):
    """Rational approximation of tanh."""
    x = _as_f32(x)
    ax = np.abs(x)
    x2 = x * x
    numerator = x * (_TANH_A + _TANH_A * ax + (_TANH_B + _TANH_C * ax) * x2)
    denominator = _TANH_D + (_TANH_D + x2) * np.abs(x + _TANH_E * x * ax)
    return (numerator / denominator).astype(_F)[()]


def fast_sigmoid(x):
    """Sigmoid built on :func:`fast_tanh`."""
    x = _as_f32(x)
    return (_F(0.5) * (fast_tanh(x * _F(0.5)) + _F(1.0))).astype(_F)[()]


def leaky_relu(x):
    """Leaky ReLU with a negative slope of 0.01."""
    x = _as_f32(x)
    return np.where(x > 0, x, LEAKY_RELU_NEGATIVE_SLOPE * x).astype(_F)[()]


class Activation:
    """Identity activation; subclasses transform the array in place."""

    def apply(self, data):
        """Leave ``data`` unchanged."""


class ActivationTanh(Activation):
    def apply(self, data):
        """Apply tanh to ``data`` in place."""
        data[...] = np.tanh(np.asarray(data, dtype=_F))


class ActivationHardTanh(Activation):
    def apply(self, data):
        """Apply hard tanh to ``data`` in place."""
        data[...] = hard_tanh(data)


class ActivationFastTanh(Activation):
    def apply(self, data):
        """Apply the fast tanh approximation to ``data`` in place."""
        data[...] = fast_tanh(data)


class ActivationReLU(Activation):
    def apply(self, data):
        """Apply ReLU to ``data`` in place."""
        data[...] = relu(data)


class ActivationLeakyReLU(Activation):
    def apply(self, data):
        """Apply leaky ReLU to ``data`` in place."""
        data[...] = leaky_relu(data)


class ActivationSigmoid(Activation):
    def apply(self, data):
        """Apply the sigmoid to ``data`` in place."""
        data[...] = sigmoid(data)


_TANH = ActivationTanh()
_FAST_TANH = ActivationFastTanh()

_activations: dict[str, Activation] = {
    "Tanh": _TANH,
    "Hardtanh": ActivationHardTanh(),
    "Fasttanh": _FAST_TANH,
    "ReLU": ActivationReLU(),
    "LeakyReLU": ActivationLeakyReLU(),
    "Sigmoid": ActivationSigmoid(),
}

_using_fast_tanh = False
_tanh_backup: Activation | None = None


def get_activation(name):
    """Return the shared activation registered under ``name``.

    Raises KeyError for an unknown name.
    """
    try:
        return _activations[name]
    except KeyError:
        raise KeyError(f"Unknown activation: {name!r}") from None


def enable_fast_tanh():
    """Make "Tanh" resolve to the fast approximation."""
    global _using_fast_tanh, _tanh_backup
    _using_fast_tanh = True
    if _activations["Tanh"] is not _activations["Fasttanh"]:
        _tanh_backup = _activations["Tanh"]
        _activations["Tanh"] = _activations["Fasttanh"]


def disable_fast_tanh():
    """Restore the exact tanh under "Tanh"."""
    global _using_fast_tanh
    _using_fast_tanh = False
    if _activations["Tanh"] is _activations["Fasttanh"] and _tanh_backup is not None:
        _activations["Tanh"] = _tanh_backup


def is_fast_tanh_enabled():
    """Whether the fast tanh approximation is in use."""
    return _using_fast_tanh