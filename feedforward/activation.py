"""
activation.py
~~~~~~~~~~~~~

Elementwise activation functions paired with their derivatives.

An Activation is passed to the network as a value. Its derivative is
always evaluated on the pre-activation matrix z, never on the output.
"""

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np

from feedforward.matrix import Matrix

MatrixFunc = Callable[[Matrix], Matrix]


@dataclass(frozen=True)
class Activation:
    """A named (function, derivative) pair operating on matrices."""

    name: str
    function: MatrixFunc
    derivative: MatrixFunc

    def __call__(self, z: Matrix) -> Matrix:
        return self.function(z)


def _logistic(grid: np.ndarray) -> np.ndarray:
    # exp overflows to inf for large inputs, and 1/(1+inf) is the correct limit
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-grid))


def _mirrored_logistic(grid: np.ndarray) -> np.ndarray:
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(grid))


def sigmoid(z: Matrix) -> Matrix:
    """The logistic function 1/(1+e^-z), applied elementwise."""
    return z.apply(_logistic)


def sigmoid_prime(z: Matrix) -> Matrix:
    """Derivative of :func:`sigmoid`: s(z) * (1 - s(z))."""
    def prime(grid):
        s = _logistic(grid)
        return s * (1.0 - s)
    return z.apply(prime)


def mirrored_sigmoid(z: Matrix) -> Matrix:
    """
    The mirrored logistic 1/(1+e^z), applied elementwise.

    This is s(-z): it decreases as z grows. It is kept bit-for-bit with
    the formula the network was first trained with.
    """
    return z.apply(_mirrored_logistic)


def mirrored_sigmoid_prime(z: Matrix) -> Matrix:
    """
    m(z) * (1 - m(z)) with m = :func:`mirrored_sigmoid`.

    The true derivative of m is the negation of this value, so gradients
    computed with this pair point uphill for every odd number of layers
    they pass through.
    """
    def prime(grid):
        m = _mirrored_logistic(grid)
        return m * (1.0 - m)
    return z.apply(prime)


SIGMOID = Activation('sigmoid', sigmoid, sigmoid_prime)
MIRRORED_SIGMOID = Activation(
    'mirrored_sigmoid', mirrored_sigmoid, mirrored_sigmoid_prime
)

ACTIVATIONS: Dict[str, Activation] = {
    SIGMOID.name: SIGMOID,
    MIRRORED_SIGMOID.name: MIRRORED_SIGMOID,
}


def get_activation(name: str) -> Activation:
    """
    Look up an activation by name.

    Args:
        name: Registered activation name (e.g. 'sigmoid')

    Returns:
        The matching Activation

    Raises:
        ValueError: If no activation is registered under that name
    """
    try:
        return ACTIVATIONS[name]
    except KeyError:
        raise ValueError(
            f"Unknown activation '{name}'. "
            f"Available: {', '.join(sorted(ACTIVATIONS))}"
        ) from None
